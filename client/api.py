"""
HTTP client for the Aftercare backend

Responsibilities:
- Brochure retrieval (list, detail)
- Tracker entry creation and listing
- Health/connectivity checks

Design principles:
- Explicit timeout on every request (no transport defaults)
- Every failure (transport error, non-2xx, undecodable body) becomes ApiError
- Returns the 'data' member of the response envelope
"""

import logging
from typing import Any, Dict, List, Optional

import requests

from common.timestamps import iso_timestamp

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """
    Backend request failure.

    Attributes:
        message: Server-provided message, or a transport description
        status_code: HTTP status (None for transport failures)
        details: Validation details from 400 responses
    """

    def __init__(self, message: str, status_code: Optional[int] = None, details: Optional[List[str]] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.details = details or []


class TrackerApiClient:
    """
    Args:
        base_url: e.g. 'http://localhost:3000'
        timeout: Seconds for connect and read
        session: requests.Session (injected in tests)
    """

    def __init__(self, base_url: str, timeout: float = 10.0, session: requests.Session = None):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({'Content-Type': 'application/json'})

    def _request(self, method: str, endpoint: str, **kwargs) -> Dict[str, Any]:
        url = f"{self.base_url}{endpoint}"

        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.Timeout as e:
            logger.error(f"API request timed out for {endpoint}: {e}")
            raise ApiError(f"Request timed out after {self.timeout}s") from e
        except requests.RequestException as e:
            logger.error(f"API request failed for {endpoint}: {e}")
            raise ApiError(f"Network error: {e}") from e

        try:
            data = response.json()
        except ValueError:
            data = {}

        if not response.ok:
            message = (data.get('message') if isinstance(data, dict) else None) \
                or f"HTTP error! status: {response.status_code}"
            details = data.get('details') if isinstance(data, dict) else None
            logger.error(f"API request failed for {endpoint}: {response.status_code} {message}")
            raise ApiError(message, status_code=response.status_code, details=details)

        if not isinstance(data, dict):
            raise ApiError(f"Unexpected response body from {endpoint}", status_code=response.status_code)

        return data

    # ========================
    # Brochures
    # ========================

    def list_brochures(self) -> List[Dict[str, Any]]:
        return self._request('GET', '/brochures')['data']

    def get_brochure(self, brochure_id: str) -> Dict[str, Any]:
        return self._request('GET', f"/brochures/{brochure_id}")['data']

    # ========================
    # Trackers
    # ========================

    def create_tracker_entry(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        POST a tracker entry, stamping it with the current time.

        Args:
            payload: Body from client.sync.build_sync_payload()

        Returns:
            dict: Stored record as returned by the server

        Raises:
            ApiError: On any failure
        """
        body = {**payload, 'timestamp': iso_timestamp()}
        return self._request('POST', '/trackers', json=body)['data']

    def get_patient_trackers(self, patient_id: str, limit: int = 50, offset: int = 0) -> List[Dict[str, Any]]:
        return self._request(
            'GET',
            f"/trackers/{patient_id}",
            params={'limit': limit, 'offset': offset},
        )['data']

    # ========================
    # Health
    # ========================

    def check_health(self) -> Dict[str, Any]:
        return self._request('GET', '/health')

    def check_connectivity(self) -> bool:
        """True if /health answers; never raises."""
        try:
            self.check_health()
            return True
        except ApiError as e:
            logger.warning(f"API connectivity check failed: {e}")
            return False
