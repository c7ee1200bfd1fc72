"""
Client configuration.

Read once at the entry point (main.py) and passed to the API client and
state manager explicitly.
"""

import os
from dataclasses import dataclass
from typing import Mapping

from client.sync import DEFAULT_PROCEDURE_TYPE


@dataclass(frozen=True)
class ClientConfig:
    """
    Attributes:
        api_url: Backend base URL
        request_timeout: Per-request timeout in seconds (connect and read)
        storage_path: Local storage file for the console client
        procedure_type: Procedure sent with every sync
    """
    api_url: str = "http://localhost:3000"
    request_timeout: float = 10.0
    storage_path: str = "aftercare_storage.json"
    procedure_type: str = DEFAULT_PROCEDURE_TYPE

    @classmethod
    def from_env(cls, environ: Mapping[str, str] = None) -> "ClientConfig":
        """
        Raises:
            ValueError: If API_TIMEOUT_SECONDS is not a positive number
        """
        environ = os.environ if environ is None else environ

        timeout = float(environ.get('API_TIMEOUT_SECONDS') or cls.request_timeout)
        if timeout <= 0:
            raise ValueError(f"API_TIMEOUT_SECONDS must be positive, got {timeout}")

        return cls(
            api_url=(environ.get('API_URL') or cls.api_url).rstrip('/'),
            request_timeout=timeout,
            storage_path=environ.get('TRACKER_STORAGE_PATH') or cls.storage_path,
            procedure_type=environ.get('PROCEDURE_TYPE') or DEFAULT_PROCEDURE_TYPE,
        )
