"""HTTP client for the free food events REST API."""
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger(__name__)


@dataclass
class ApiResult:
    """Mirror of the API's `{data, error}` envelope."""
    data: Any = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class EventsApiClient:
    """Client used by listing pages and admin tools to reach the API."""

    MAX_RETRIES = 3
    BASE_DELAY = 1  # seconds

    def __init__(
        self,
        base_url: str,
        timeout: int = 30,
        admin_password: Optional[str] = None,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize the API client.

        Args:
            base_url: API root, e.g. "https://example.com/api"
            timeout: HTTP request timeout in seconds (default: 30)
            admin_password: Sent as X-Admin-Password on mutating requests
            session: Optional pre-configured requests session
        """
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.admin_password = admin_password
        self.session = session or requests.Session()

    def close(self) -> None:
        self.session.close()

    def test_connection(self) -> ApiResult:
        """Check that the events endpoint answers."""
        result = self.fetch_events()
        return ApiResult(data=result.ok, error=result.error)

    def fetch_events(self) -> ApiResult:
        """Fetch all stored events, newest first."""
        return self._request('GET', '/events')

    def fetch_ranked_events(
        self,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None
    ) -> ApiResult:
        """
        Fetch events split into today, upcoming and past.

        Args:
            latitude: Observer latitude; the server fallback is used when omitted
            longitude: Observer longitude
        """
        params = None
        if latitude is not None and longitude is not None:
            params = {'lat': latitude, 'lng': longitude}
        return self._request('GET', '/events/ranked', params=params)

    def add_event(self, event: Dict[str, Any]) -> ApiResult:
        return self._request('POST', '/events', json=event)

    def update_event(self, event_id: str, updates: Dict[str, Any]) -> ApiResult:
        return self._request('PATCH', f'/events/{event_id}', json=updates)

    def delete_event(self, event_id: str) -> ApiResult:
        return self._request('DELETE', f'/events/{event_id}')

    def cleanup_past_events(self) -> ApiResult:
        """Delete past events; `data` is the number removed."""
        result = self._request('DELETE', '/events/cleanup/past', data_key='deletedCount')
        if result.ok:
            logger.info(f"Cleanup removed {result.data} past events")
        return result

    def _request(
        self,
        method: str,
        path: str,
        data_key: str = 'data',
        **kwargs
    ) -> ApiResult:
        """
        Send a request and unwrap the JSON envelope.

        GET requests are retried with exponential backoff; mutations are sent
        once. Network and HTTP failures are returned as `error`, never raised.
        """
        url = f"{self.base_url}{path}"
        headers = {}
        if method != 'GET' and self.admin_password:
            headers['X-Admin-Password'] = self.admin_password

        attempts = self.MAX_RETRIES if method == 'GET' else 1

        for attempt in range(attempts):
            try:
                response = self.session.request(
                    method,
                    url,
                    headers=headers,
                    timeout=self.timeout,
                    **kwargs
                )
            except requests.RequestException as e:
                if attempt < attempts - 1:
                    delay = self.BASE_DELAY * (2 ** attempt)
                    logger.warning(
                        f"{method} {url} failed (attempt {attempt + 1}/{attempts}): {e}. "
                        f"Retrying in {delay} seconds..."
                    )
                    time.sleep(delay)
                    continue
                logger.error(f"{method} {url} failed: {e}")
                return ApiResult(error=str(e))

            return self._unwrap(response, data_key)

    def _unwrap(self, response: requests.Response, data_key: str) -> ApiResult:
        try:
            payload = response.json()
        except ValueError:
            payload = None

        if not isinstance(payload, dict):
            if response.ok:
                return ApiResult(error='Unexpected response from events API')
            return ApiResult(error=f"HTTP {response.status_code}")

        error = payload.get('error')
        if error is None and not response.ok:
            error = f"HTTP {response.status_code}"
        if error is not None:
            logger.warning(f"Events API error ({response.status_code}): {error}")

        return ApiResult(data=payload.get(data_key), error=error)
