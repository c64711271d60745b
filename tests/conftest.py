import json
import os
import sys
from pathlib import Path

import pytest
import requests

# Keep test runs from writing log files under the user's home directory
os.environ.setdefault("CHILITO_LOG_TO_FILE", "0")

# Ensure the src/ package root is on sys.path for direct pytest runs
SRC_ROOT = Path(__file__).resolve().parents[1] / "src"
if str(SRC_ROOT) not in sys.path:
    sys.path.insert(0, str(SRC_ROOT))

from chilito_finder.utils.http import HttpClient  # noqa: E402


class FakeResponse:
    def __init__(self, status_code=200, text="", payload=None):
        self.status_code = status_code
        self.text = text if payload is None else json.dumps(payload)
        self._payload = payload

    def json(self):
        if self._payload is not None:
            return self._payload
        return json.loads(self.text)


class FakeSession:
    """
    Stand-in for requests.Session.

    `routes` maps a URL substring to either a list of responses/exceptions consumed in
    order (the last one repeats) or a callable taking (url, params, headers).
    """

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.calls = []

    def get(self, url, params=None, headers=None, timeout=None):
        self.calls.append({"url": url, "params": params, "headers": headers, "timeout": timeout})
        for fragment, handler in self.routes.items():
            if fragment in url:
                if callable(handler):
                    outcome = handler(url, params, headers)
                else:
                    outcome = handler.pop(0) if len(handler) > 1 else handler[0]
                if isinstance(outcome, Exception):
                    raise outcome
                return outcome
        raise requests.ConnectionError(f"no route for {url}")

    def urls(self):
        return [call["url"] for call in self.calls]

    def close(self):
        pass


@pytest.fixture
def make_http():
    def _make(routes=None):
        session = FakeSession(routes)
        return HttpClient(session=session, timeout=1.0)
    return _make


@pytest.fixture
def ok():
    def _ok(text="", payload=None):
        return FakeResponse(200, text=text, payload=payload)
    return _ok
