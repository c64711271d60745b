"""Exception taxonomy for the search pipeline."""

from enum import Enum
from typing import List, Optional, Tuple

import requests


class ErrorKind(str, Enum):
    GEOCODE = "geocode"
    LOCATE = "locate"
    CANCELLED = "cancelled"


class ChilitoError(Exception):
    """Base class for every error raised by chilito_finder."""


class StrategyError(ChilitoError):
    """A strategy completed its request but produced no usable answer."""


class CascadeExhausted(ChilitoError):
    """Every strategy in a cascade failed."""

    def __init__(self, operation: str, errors: List[Tuple[str, Exception]]):
        self.operation = operation
        self.errors = errors
        summary = "; ".join(f"{name}: {err}" for name, err in errors) or "no strategies configured"
        super().__init__(f"all {operation} strategies failed - {summary}")

    @property
    def last_error(self) -> Optional[Exception]:
        return self.errors[-1][1] if self.errors else None


class GeocodeError(CascadeExhausted):
    """The address could not be turned into coordinates."""


class LocateError(CascadeExhausted):
    """No store discovery strategy produced an answer."""


class SearchCancelled(ChilitoError):
    """The caller cancelled the search or its deadline passed."""


# Errors a strategy may raise that mean "try the next one"
RECOVERABLE_ERRORS = (
    requests.RequestException,
    StrategyError,
    ValueError,
    KeyError,
    IndexError,
    TypeError,
)
