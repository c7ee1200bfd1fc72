"""
Aftercare Backend API - server entry point

Reads configuration from the environment (and .env), connects the optional
MongoDB store and Redis cache, then serves the Flask app.
"""

import logging
import signal
import sys

from dotenv import load_dotenv

from backend.cache import connect_cache
from backend.config import ServerConfig
from backend.persistence import connect_tracker_store
from backend.server import create_app

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def running_mode(tracker_store, cache) -> str:
    """Describe which soft dependencies are active."""
    has_db = tracker_store.persistent
    has_cache = cache is not None
    if has_db and has_cache:
        return "Running with full database and cache"
    if has_db:
        return "Running with database only (no cache)"
    if has_cache:
        return "Running with cache only (no database)"
    return "Running in MVP mode (no database/cache)"


def main():
    load_dotenv()

    try:
        config = ServerConfig.from_env()
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        return 1

    logger.info("Starting Aftercare Backend API...")

    tracker_store = connect_tracker_store(config.mongodb_uri, config.database_name)
    cache = connect_cache(config.redis_url, default_ttl=config.cache_ttl)
    logger.info(running_mode(tracker_store, cache))

    def shutdown(signum, frame):
        logger.info(f"Received signal {signum}, closing connections...")
        tracker_store.close()
        if cache is not None:
            cache.close()
        sys.exit(0)

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    app = create_app(config, tracker_store=tracker_store, cache=cache)

    logger.info(f"Health check: http://localhost:{config.port}/health")
    logger.info(f"Brochures: http://localhost:{config.port}/brochures/myomectomy")
    app.run(host='0.0.0.0', port=config.port)
    return 0


if __name__ == '__main__':
    sys.exit(main())
