"""
Base HTTP client for Radarr/Sonarr API communication.
Uses urllib to avoid external dependencies.
"""

import json
import math
import re
import socket
import urllib.request
import urllib.error
import urllib.parse
from typing import Dict, Any, List, Optional, Callable
from abc import ABC, abstractmethod

from ..models import MediaItem


DEFAULT_TIMEOUT = 15
PAGE_SIZE = 100
MAX_PAGES = 500  # Safety limit - 50,000 items


class APIError(Exception):
    """Exception raised for API errors."""
    def __init__(self, message: str, status_code: int = 0, response: str = ""):
        self.message = message
        self.status_code = status_code
        self.response = response
        super().__init__(self.message)


class AuthenticationError(APIError):
    """The API key was rejected."""


class NotFoundError(APIError):
    """Endpoint not found - usually a wrong base URL."""


class RateLimitedError(APIError):
    """HTTP 429. retry_after is in seconds, None when the server gave no hint."""
    def __init__(self, message: str, retry_after: Optional[float] = None,
                 status_code: int = 429, response: str = ""):
        self.retry_after = retry_after
        super().__init__(message, status_code=status_code, response=response)


class TransportError(APIError):
    """Connection refused, DNS failure, timeout."""


class MalformedResponseError(APIError):
    """The body was not the JSON shape we expected."""


def normalize_url(url: str) -> str:
    """Ensure a URL has a scheme and no trailing slash."""
    normalized = url.strip()
    if not re.match(r'^https?://', normalized, re.IGNORECASE):
        normalized = f"http://{normalized}"
    return normalized.rstrip('/')


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Parse a Retry-After header given in seconds; None when unusable."""
    if not value:
        return None
    try:
        seconds = float(value.strip())
    except ValueError:
        return None
    if not math.isfinite(seconds):
        return None
    return max(seconds, 0.0)


class BaseClient(ABC):
    """Base class for Radarr/Sonarr API clients."""

    # Command posted to /command and the id field it takes
    search_command = ""
    search_ids_field = ""

    def __init__(self, url: str, api_key: str, name: str = "",
                 timeout: float = DEFAULT_TIMEOUT):
        self.base_url = normalize_url(url)
        self.api_key = api_key
        self.name = name or self.__class__.__name__
        self.timeout = timeout

    @property
    def api_version(self) -> str:
        """API version path."""
        return "/api/v3"

    def _build_url(self, endpoint: str, params: Optional[Dict] = None) -> str:
        """Build full URL with optional query parameters."""
        url = f"{self.base_url}{self.api_version}/{endpoint.lstrip('/')}"
        if params:
            query = urllib.parse.urlencode(params)
            url = f"{url}?{query}"
        return url

    def _get_headers(self) -> Dict[str, str]:
        """Get request headers with API key."""
        return {
            'X-Api-Key': self.api_key,
            'Content-Type': 'application/json',
            'Accept': 'application/json',
        }

    def _request(self, method: str, endpoint: str,
                 params: Optional[Dict] = None,
                 data: Optional[Dict] = None) -> Any:
        """Make HTTP request and map failures onto the error taxonomy."""
        url = self._build_url(endpoint, params)
        headers = self._get_headers()

        body = None
        if data is not None:
            body = json.dumps(data).encode('utf-8')

        req = urllib.request.Request(url, data=body, headers=headers, method=method)

        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as response:
                content = response.read().decode('utf-8')
        except urllib.error.HTTPError as e:
            response_body = ""
            try:
                response_body = e.read().decode('utf-8', errors='replace')
            except OSError:
                pass
            raise self._error_for_status(e.code, e.reason, e.headers, response_body)
        except urllib.error.URLError as e:
            raise TransportError(f"Connection error: {e.reason}")
        except (socket.timeout, TimeoutError):
            raise TransportError(f"Request timed out after {self.timeout}s")
        except ConnectionError as e:
            raise TransportError(f"Connection error: {e}")

        if not content:
            return {}
        try:
            return json.loads(content)
        except json.JSONDecodeError as e:
            raise MalformedResponseError(f"Invalid JSON response: {e}")

    def _error_for_status(self, code: int, reason: str, headers,
                          response_body: str) -> APIError:
        if code in (401, 403):
            return AuthenticationError("Unauthorized: invalid API key",
                                       status_code=code, response=response_body)
        if code == 404:
            return NotFoundError("Not found: check server URL",
                                 status_code=code, response=response_body)
        if code == 429:
            retry_after = parse_retry_after(headers.get('Retry-After') if headers else None)
            return RateLimitedError("Rate limited by server", retry_after=retry_after,
                                    response=response_body)
        return APIError(f"HTTP {code}: {reason}", status_code=code, response=response_body)

    def get(self, endpoint: str, params: Optional[Dict] = None) -> Any:
        """HTTP GET request."""
        return self._request('GET', endpoint, params=params)

    def post(self, endpoint: str, data: Optional[Dict] = None,
             params: Optional[Dict] = None) -> Any:
        """HTTP POST request."""
        return self._request('POST', endpoint, params=params, data=data or {})

    def test_connection(self) -> Dict[str, Any]:
        """Test connection to the service."""
        try:
            status = self.get('system/status')
        except APIError as e:
            return {'success': False, 'message': str(e)}
        if not isinstance(status, dict):
            return {'success': False, 'message': 'Unexpected status response'}
        return {
            'success': True,
            'message': 'Connected',
            'version': status.get('version', ''),
            'app_name': status.get('appName', ''),
        }

    # ==================== Wanted ====================

    def _page_params(self, page: int, page_size: int) -> Dict[str, Any]:
        return {
            'page': page,
            'pageSize': page_size,
            'sortKey': 'id',
            'sortDirection': 'ascending',
            'monitored': 'true',
        }

    def _get_page(self, endpoint: str, page: int, page_size: int) -> Dict:
        result = self.get(endpoint, params=self._page_params(page, page_size))
        if not isinstance(result, dict) or not isinstance(result.get('records', []), list):
            raise MalformedResponseError(f"Unexpected response shape from {endpoint}")
        return result

    def get_missing(self, page: int = 1, page_size: int = PAGE_SIZE) -> Dict:
        """Single page of monitored missing items."""
        return self._get_page('wanted/missing', page, page_size)

    def get_cutoff_unmet(self, page: int = 1, page_size: int = PAGE_SIZE) -> Dict:
        """Single page of items below their quality cutoff."""
        return self._get_page('wanted/cutoff', page, page_size)

    def get_all_missing(self) -> List[MediaItem]:
        """All missing items across pages."""
        return self._get_all(self.get_missing)

    def get_all_cutoff_unmet(self) -> List[MediaItem]:
        """All cutoff-unmet items across pages."""
        return self._get_all(self.get_cutoff_unmet)

    def _get_all(self, fetch_page: Callable[[int, int], Dict]) -> List[MediaItem]:
        items: List[MediaItem] = []
        page = 1

        while True:
            result = fetch_page(page, PAGE_SIZE)
            records = result.get('records', [])
            try:
                items.extend(self._to_item(record) for record in records)
            except (KeyError, TypeError, ValueError) as e:
                raise MalformedResponseError(f"Unexpected record in response: {e}")

            total = result.get('totalRecords')
            if total is None:
                if len(records) < PAGE_SIZE:
                    break
            elif len(items) >= total or not records:
                break

            page += 1
            if page > MAX_PAGES:
                break

        return items

    @abstractmethod
    def _to_item(self, record: Dict[str, Any]) -> MediaItem:
        """Convert one wanted record into a MediaItem."""
        pass

    # ==================== Search ====================

    def trigger_search(self, item_ids: List[int]) -> Dict:
        """Trigger one batched search command for the given item ids."""
        return self.post('command', data={
            'name': self.search_command,
            self.search_ids_field: list(item_ids),
        })
