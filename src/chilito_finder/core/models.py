"""Records passed between the pipeline stages. All of them live for one search only."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple

from ..spatial.distance import GeoPoint
from .errors import ErrorKind

ADDRESS_UNKNOWN = "Address unknown"


@dataclass
class POIRecord:
    """One store returned by a discovery strategy.

    `source_key` is unique within a single locate call. `canonical_id` is the store
    number the menu pages need; it is filled by the identifier resolver when the
    discovery source did not provide one.
    """
    source_key: str
    display_name: str
    address: str
    location: GeoPoint
    distance_km: float
    phone: Optional[str] = None
    canonical_id: Optional[str] = None

    def __post_init__(self):
        if self.distance_km < 0:
            raise ValueError(f"distance_km must be non-negative, got {self.distance_km}")


class VerificationResult(str, Enum):
    FOUND = "found"
    NOT_FOUND = "not_found"
    INCONCLUSIVE = "inconclusive"  # no menu page could be fetched


@dataclass(frozen=True)
class CandidateAttempt:
    record: POIRecord
    store_id: str
    result: VerificationResult


@dataclass(frozen=True)
class SearchOutcome:
    found: bool
    location: Optional[POIRecord] = None
    error_kind: Optional[ErrorKind] = None
    message: str = ""
    origin: Optional[GeoPoint] = None
    attempts: Tuple[CandidateAttempt, ...] = field(default_factory=tuple)
