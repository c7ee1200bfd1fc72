"""
Server configuration.

Read once from the environment at the entry point and passed to
create_app() explicitly. Library code never reads os.environ.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Mapping, Optional, Tuple

logger = logging.getLogger(__name__)

DEFAULT_CORS_ORIGINS = ("http://localhost:5173", "http://localhost:5174")
DEFAULT_MAX_CONTENT_LENGTH = 10 * 1024 * 1024


def _int_setting(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name)
    if raw in (None, ''):
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


@dataclass(frozen=True)
class ServerConfig:
    """
    Attributes:
        port: HTTP port
        mongodb_uri: MongoDB connection string (None: no database)
        database_name: MongoDB database name
        redis_url: Redis URL (None: no cache)
        cache_ttl: Default cache TTL in seconds
        brochure_list_ttl: TTL for GET /brochures
        brochure_detail_ttl: TTL for GET /brochures/<id>
        cors_origins: Allowed browser origins
        rate_limit_window_seconds: Rate limit window
        rate_limit_max_requests: Requests allowed per client per window
        rate_limit_enabled: Turn rate limiting off (tests)
        brochures_path: Brochure content file (None: bundled default)
        max_content_length: Largest accepted request body in bytes
    """
    port: int = 3000
    mongodb_uri: Optional[str] = None
    database_name: str = "aftercare_db"
    redis_url: Optional[str] = None
    cache_ttl: int = 300
    brochure_list_ttl: int = 300
    brochure_detail_ttl: int = 600
    cors_origins: Tuple[str, ...] = field(default=DEFAULT_CORS_ORIGINS)
    rate_limit_window_seconds: int = 60
    rate_limit_max_requests: int = 100
    rate_limit_enabled: bool = True
    brochures_path: Optional[str] = None
    max_content_length: int = DEFAULT_MAX_CONTENT_LENGTH

    @property
    def rate_limit(self) -> str:
        """Flask-Limiter limit string, e.g. '100 per 60 second'."""
        return f"{self.rate_limit_max_requests} per {self.rate_limit_window_seconds} second"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] = None) -> "ServerConfig":
        """
        Build configuration from environment variables.

        Args:
            environ: Mapping to read (defaults to os.environ)

        Raises:
            ValueError: If a numeric setting is not an integer
        """
        environ = os.environ if environ is None else environ

        origins = list(DEFAULT_CORS_ORIGINS)
        if environ.get('FRONTEND_URL'):
            origins.append(environ['FRONTEND_URL'])

        return cls(
            port=_int_setting(environ, 'PORT', 3000),
            mongodb_uri=environ.get('MONGODB_URI') or None,
            database_name=environ.get('DATABASE_NAME') or "aftercare_db",
            redis_url=environ.get('REDIS_URL') or None,
            cache_ttl=_int_setting(environ, 'CACHE_TTL', 300),
            cors_origins=tuple(origins),
            rate_limit_window_seconds=_int_setting(environ, 'RATE_LIMIT_WINDOW_SECONDS', 60),
            rate_limit_max_requests=_int_setting(environ, 'RATE_LIMIT_MAX_REQUESTS', 100),
            brochures_path=environ.get('BROCHURES_PATH') or None,
        )
