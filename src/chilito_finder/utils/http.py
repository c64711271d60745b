"""
Shared HTTP client.

One `requests.Session` per client gives connection pooling, keep-alive and cookie
storage across searches. Every request is counted in `APIMetrics`, and when a
`CancelToken` is supplied the request timeout is clamped to the time the search has
left, so an expired search never waits on a slow upstream.
"""

from typing import Any, Dict, Optional

import requests

from ..config import HTTP_TIMEOUT
from ..core.errors import StrategyError
from .cancel import CancelToken
from .metrics import APIMetrics

DESKTOP_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/96.0.4664.110 Safari/537.36"
)

JSON_HEADERS = {
    "User-Agent": DESKTOP_USER_AGENT,
    "Accept": "application/json",
    "Referer": "https://www.tacobell.com/",
}

HTML_HEADERS = {
    "User-Agent": DESKTOP_USER_AGENT,
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
}


class HttpClient:
    def __init__(
            self,
            session: Optional[requests.Session] = None,
            timeout: float = HTTP_TIMEOUT,
            metrics: Optional[APIMetrics] = None,
            ) -> None:
        self.session = session or requests.Session()
        self.timeout = timeout
        self.metrics = metrics or APIMetrics()

    def get(
            self,
            url: str,
            *,
            params: Optional[Dict[str, Any]] = None,
            headers: Optional[Dict[str, str]] = None,
            timeout: Optional[float] = None,
            cancel: Optional[CancelToken] = None,
            ) -> requests.Response:
        """GET `url`; raises requests.RequestException on transport errors."""
        timeout = timeout if timeout is not None else self.timeout
        if cancel is not None:
            cancel.raise_if_cancelled()
            timeout = cancel.clamp(timeout)
        try:
            response = self.session.get(url, params=params, headers=headers, timeout=timeout)
        except requests.RequestException:
            self.metrics.record_request(ok=False)
            raise
        self.metrics.record_request(ok=response.status_code == 200)
        return response

    def close(self) -> None:
        self.session.close()


def expect_ok(response: requests.Response, service: str) -> requests.Response:
    """Raise an HTTPError unless the upstream answered 200."""
    if response.status_code != 200:
        raise requests.HTTPError(
            f"{service} returned status code {response.status_code}", response=response
        )
    return response


def json_payload(response: requests.Response, service: str, expected: type = dict) -> Any:
    """Decode the JSON body, raising StrategyError unless it is an `expected` (dict or list)."""
    data = response.json()
    if not isinstance(data, expected):
        raise StrategyError(f"{service} returned {type(data).__name__}, expected {expected.__name__}")
    return data


_default_http_client: Optional[HttpClient] = None


def get_default_http_client() -> HttpClient:
    global _default_http_client
    if _default_http_client is None:
        _default_http_client = HttpClient()
    return _default_http_client
