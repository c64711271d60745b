"""
Chilito Search Orchestrator
---------------------------

This module ties the pipeline stages together for one search:

    address -> GeocodeResolver -> POILocator -> rank -> (IdentifierResolver -> ContentVerifier) per store

Geocoding and store discovery failures end the search with an `ErrorKind`; every other
upstream failure is absorbed by the stage that met it. The result is always a
`SearchOutcome`, never an exception.

Classes:
    ChilitoSearch:
        search(address, radius_m) -> SearchOutcome
        search_near_device(provider, radius_m) -> SearchOutcome
"""

import time
import uuid
from enum import Enum
from typing import Callable, List, Optional

from ..config import CANDIDATE_DELAY, DEFAULT_RADIUS, MAX_CANDIDATES
from ..spatial.distance import GeoPoint, format_coordinates
from ..utils.cancel import CancelToken
from ..utils.http import HttpClient
from ..utils.logger import logger
from ..utils.metrics import APIMetrics
from .errors import ErrorKind, GeocodeError, LocateError, SearchCancelled
from .geocode import GeocodeResolver
from .menu import ContentVerifier, OverrideTable
from .models import CandidateAttempt, POIRecord, SearchOutcome, VerificationResult
from .places import POILocator
from .ranking import rank
from .store_id import IdentifierResolver


class SearchState(str, Enum):
    GEOCODING = "geocoding"
    LOCATING = "locating"
    RANKING = "ranking"
    VERIFYING = "verifying"
    DONE = "done"


class ChilitoSearch:
    """
    ChilitoSearch finds the nearest Taco Bell whose menu lists the Chili Cheese Burrito.

    The search is an explicit state machine:

        GEOCODING -> LOCATING -> RANKING -> VERIFYING(i) -> DONE

    - GEOCODING fails the search when every geocoder failed.
    - LOCATING fails the search when every discovery strategy failed; an empty store
      list ends the search immediately as "not found".
    - VERIFYING walks the ranked stores nearest first, at most `max_candidates` of them.
      Each store gets a store number (never fails) and a menu verification. The first
      FOUND ends the search; NOT_FOUND and INCONCLUSIVE both move on, and are kept in
      `SearchOutcome.attempts` for diagnostics.

    Stores are verified strictly one at a time, so a farther store can never be reported
    while a nearer one is still undecided, and request volume is bounded by
    max_candidates x (location page + pages x retry attempts).

    Cancellation (explicit, or a `timeout` in seconds) is honoured at every request and
    sleep and ends the search with `error_kind=CANCELLED` and no location.

    Attributes:
        geocoder (GeocodeResolver): Address -> coordinates cascade
        locator (POILocator): Coordinates -> nearby stores cascade
        resolver (IdentifierResolver): Store -> store number
        verifier (ContentVerifier): Store number -> verification result
        max_candidates (int): Closest stores whose menus are checked
        candidate_delay (float): Politeness pause between stores, in seconds
        metrics (APIMetrics): Request counters of the shared HTTP client

    Usage:
        finder = ChilitoSearch()
        outcome = finder.search("123 Main St, Springfield", radius_m=20000)
        if outcome.found:
            print(outcome.location.address)
    """

    def __init__(
            self,
            geocoder: Optional[GeocodeResolver] = None,
            locator: Optional[POILocator] = None,
            resolver: Optional[IdentifierResolver] = None,
            verifier: Optional[ContentVerifier] = None,
            http: Optional[HttpClient] = None,
            overrides: Optional[OverrideTable] = None,
            max_candidates: int = MAX_CANDIDATES,
            candidate_delay: float = CANDIDATE_DELAY,
            ) -> None:

        self.http:              HttpClient          = http or HttpClient()
        self.geocoder:          GeocodeResolver     = geocoder or GeocodeResolver(http=self.http)
        self.locator:           POILocator          = locator or POILocator(http=self.http)
        self.resolver:          IdentifierResolver  = resolver or IdentifierResolver(http=self.http)
        self.verifier:          ContentVerifier     = verifier or ContentVerifier(http=self.http, overrides=overrides)
        self.max_candidates:    int                 = max_candidates
        self.candidate_delay:   float               = candidate_delay
        self.metrics:           APIMetrics          = self.http.metrics
        self.state:             SearchState         = SearchState.DONE

    def log_info(self, message: str, extra: dict):
        logger.info(message, extra=extra)

    def log_error(self, message: str, extra: dict):
        logger.error(message, extra=extra)

    def _enter(self, state: SearchState, search_id: str, **extra) -> None:
        self.state = state
        logger.debug(f"Search state -> {state.value}", extra={
            "operation": "search",
            "search_id": search_id,
            "state": state.value,
            **extra
        })

# -------------------------------------------------- Entry points ---------------------------------------------------------

    def search(
            self,
            address: str,
            radius_m: int = DEFAULT_RADIUS,
            *,
            timeout: Optional[float] = None,
            cancel: Optional[CancelToken] = None
            ) -> SearchOutcome:
        """
        Run the full search for `address` within `radius_m` meters.

        `timeout` (seconds) bounds the whole search. When a `cancel` token is also given,
        its deadline is brought forward to `timeout` if that is sooner.
        """
        if cancel is None:
            cancel = CancelToken(timeout=timeout)
        elif timeout is not None:
            cancel.limit(timeout)
        search_id = str(uuid.uuid4())[:8]
        start_time = time.time()
        self.metrics.reset()

        self.log_info("Starting Chilito search", extra={
            "operation": "search",
            "search_id": search_id,
            "address": address,
            "radius": radius_m,
            "max_candidates": self.max_candidates
        })

        try:
            outcome = self._run(address, radius_m, cancel, search_id)
        except GeocodeError as e:
            self.log_error(f"Geocoding failed: {e}", extra={"operation": "search", "search_id": search_id})
            outcome = SearchOutcome(found=False, error_kind=ErrorKind.GEOCODE, message=str(e))
        except LocateError as e:
            self.log_error(f"Store search failed: {e}", extra={"operation": "search", "search_id": search_id})
            outcome = SearchOutcome(found=False, error_kind=ErrorKind.LOCATE, message=str(e))
        except SearchCancelled:
            self.log_info("Search cancelled", extra={
                "operation": "search",
                "search_id": search_id,
                "state": self.state.value,
                "status": "cancelled"
            })
            outcome = SearchOutcome(found=False, error_kind=ErrorKind.CANCELLED, message="search cancelled")

        self.state = SearchState.DONE
        self.metrics.log_metrics(operation="search", search_id=search_id)
        self.log_info("Chilito search complete", extra={
            "operation": "search",
            "search_id": search_id,
            "found": outcome.found,
            "error_kind": outcome.error_kind.value if outcome.error_kind else None,
            "duration_sec": round(time.time() - start_time, 2),
            "status": "completed"
        })
        return outcome

    def search_near_device(
            self,
            provider: Callable[[], GeoPoint],
            radius_m: int = DEFAULT_RADIUS,
            **kwargs
            ) -> SearchOutcome:
        """Search from the coordinates reported by a location-services `provider`."""
        return self.search(format_coordinates(provider()), radius_m, **kwargs)

# -------------------------------------------------- State machine ---------------------------------------------------------

    def _run(self, address: str, radius_m: int, cancel: CancelToken, search_id: str) -> SearchOutcome:
        self._enter(SearchState.GEOCODING, search_id)
        origin = self.geocoder.resolve(address, cancel=cancel, search_id=search_id)

        self._enter(SearchState.LOCATING, search_id, lat=origin.lat, lng=origin.lng)
        stores = self.locator.locate(origin, radius_m, cancel=cancel, search_id=search_id)

        self._enter(SearchState.RANKING, search_id, store_count=len(stores))
        ranked = rank(stores)
        if not ranked:
            return SearchOutcome(
                found=False,
                origin=origin,
                message="no Taco Bell locations found in the specified radius"
            )

        attempts: List[CandidateAttempt] = []
        for index, record in enumerate(ranked[:self.max_candidates]):
            if index > 0:
                cancel.sleep(self.candidate_delay)
            self._enter(SearchState.VERIFYING, search_id, candidate=index)

            attempt = self._check_candidate(record, cancel, search_id)
            attempts.append(attempt)
            if attempt.result is VerificationResult.FOUND:
                return SearchOutcome(
                    found=True,
                    location=record,
                    origin=origin,
                    message=f"found at {record.display_name}",
                    attempts=tuple(attempts)
                )

        return SearchOutcome(
            found=False,
            origin=origin,
            message=f"none of the {len(attempts)} closest stores lists the Chilito",
            attempts=tuple(attempts)
        )

    def _check_candidate(self, record: POIRecord, cancel: CancelToken, search_id: str) -> CandidateAttempt:
        self.log_info(f"Checking menu at {record.display_name} ({record.distance_km:.2f} km away)", extra={
            "operation": "check_candidate",
            "search_id": search_id,
            "source_key": record.source_key,
            "distance_km": round(record.distance_km, 3)
        })

        store_id = self.resolver.resolve_id(record, cancel=cancel, search_id=search_id)
        record.canonical_id = store_id
        result = self.verifier.verify(store_id, cancel=cancel, search_id=search_id)
        self.metrics.candidates_checked += 1

        self.log_info(f"Menu check at {record.display_name}: {result.value}", extra={
            "operation": "check_candidate",
            "search_id": search_id,
            "store_id": store_id,
            "result": result.value
        })
        return CandidateAttempt(record=record, store_id=store_id, result=result)
