"""
API Metrics Tracking Module

Collects and emits structured logging of outbound request usage for one search.

APIMetrics keeps counters for:
  - total requests: every HTTP request issued through `HttpClient`
  - failed requests: transport errors and non-200 responses
  - candidates checked: stores whose menus were verified

The summary, with a failure ratio, is logged via the package JSON logger so that
request volume against the upstream sites can be monitored per search.
"""

from .logger import logger


class APIMetrics:
    """Track API usage metrics"""
    def __init__(self):
        self.total_requests:int = 0
        self.failed_requests:int = 0
        self.candidates_checked:int = 0

    def record_request(self, ok: bool) -> None:
        self.total_requests += 1
        if not ok:
            self.failed_requests += 1

    def reset(self) -> None:
        self.total_requests = 0
        self.failed_requests = 0
        self.candidates_checked = 0

    def as_dict(self) -> dict:
        return {
            "total_requests": self.total_requests,
            "failed_requests": self.failed_requests,
            "candidates_checked": self.candidates_checked,
            "failure_ratio": round(self.failed_requests / max(1, self.total_requests), 2)
        }

    def log_metrics(self, **extra):
        """Log current API metrics"""
        logger.info("API Metrics Summary", extra={"metrics": self.as_dict(), **extra})
