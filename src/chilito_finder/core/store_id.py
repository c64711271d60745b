"""
Store Number Resolution Module
------------------------------

Menu pages are keyed by the chain's six-digit store number. Stores found through the
chain's own API already carry it; stores found through OpenStreetMap do not, so the number
is scraped from the public location-search page. Strategies, in order:

    1. KnownStoreNumber   - canonical_id / source_key already shaped like a store number
    2. StoreCardAttribute - `data-store-id` on a location card whose address is similar
    3. ScriptStoreId      - a storeId/store_id/storeNumber key inside inline scripts
    4. AnchorStoreParam   - a store=/storeId=/storeNumber= query parameter in a link
    5. (fallback)         - the record's source_key

Strategies 2-4 share one fetch of the search page per resolution.

`IdentifierResolver.resolve_id` never raises: a page that cannot be fetched simply makes
strategies 2-4 fail and the fallback is used.
"""

import re
import uuid
from typing import Optional, Sequence

from bs4 import BeautifulSoup

from ..config import LOCATION_SEARCH_TIMEOUT, TACO_BELL_LOCATION_SEARCH_URL
from ..utils.cancel import CancelToken
from ..utils.http import HTML_HEADERS, HttpClient, expect_ok, get_default_http_client
from ..utils.logger import logger
from .cascade import run_cascade
from .errors import RECOVERABLE_ERRORS, CascadeExhausted, StrategyError
from .models import POIRecord

STORE_NUMBER_SHAPE = re.compile(r"^\d{6}$")
SCRIPT_STORE_ID = re.compile(r"(?:storeId|store_id|storeNumber)[\s:\"'=]+(\d+)")
HREF_STORE_ID = re.compile(r"(?:store|storeId|storeNumber)=(\d+)")

_PUNCTUATION = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")


def normalize_address(address: str) -> str:
    address = _PUNCTUATION.sub(" ", (address or "").lower())
    return _WHITESPACE.sub(" ", address).strip()


def similar_addresses(addr1: str, addr2: str) -> bool:
    """
    Decide whether two differently formatted addresses describe the same place.

    After normalization (lowercase, punctuation to spaces, collapsed whitespace) the
    addresses are similar when equal, when one contains the other, or when enough
    significant tokens (longer than 2 characters) of the first appear in the second.
    A token matches exactly, or as a substring when either token is longer than 4
    characters. Two matches are needed, three when either address has more than 5 tokens.
    """
    norm1 = normalize_address(addr1)
    norm2 = normalize_address(addr2)
    if not norm1 or not norm2:
        return False

    if norm1 == norm2 or norm1 in norm2 or norm2 in norm1:
        return True

    parts1 = norm1.split()
    parts2 = norm2.split()

    matches = 0
    for p1 in parts1:
        if len(p1) <= 2:
            continue
        for p2 in parts2:
            if p1 == p2 or (len(p1) > 4 and p1 in p2) or (len(p2) > 4 and p2 in p1):
                matches += 1
                break

    min_matches = 3 if len(parts1) > 5 or len(parts2) > 5 else 2
    return matches >= min_matches


class StoreLookup:
    """The record being resolved plus its location-search page, fetched at most once."""

    def __init__(
            self,
            record: POIRecord,
            http: HttpClient,
            url: str = TACO_BELL_LOCATION_SEARCH_URL,
            timeout: float = LOCATION_SEARCH_TIMEOUT
            ):
        self.record = record
        self.http = http
        self.url = url
        self.timeout = timeout
        self._soup: Optional[BeautifulSoup] = None
        self._error: Optional[Exception] = None

    def page(self, cancel: CancelToken) -> BeautifulSoup:
        if self._soup is None and self._error is None:
            try:
                response = expect_ok(
                    self.http.get(
                        self.url,
                        params={"q": self.record.address},
                        headers=HTML_HEADERS,
                        timeout=self.timeout,
                        cancel=cancel
                    ),
                    "location search page"
                )
                self._soup = BeautifulSoup(response.text, "html.parser")
            except RECOVERABLE_ERRORS as e:
                self._error = e
        if self._error is not None:
            raise StrategyError(f"location search page unavailable: {self._error}")
        return self._soup


class KnownStoreNumber:
    name = "known_store_number"

    def attempt(self, lookup: StoreLookup, cancel: CancelToken) -> str:
        for candidate in (lookup.record.canonical_id, lookup.record.source_key):
            if candidate and STORE_NUMBER_SHAPE.match(candidate):
                return candidate
        raise StrategyError("no store number in discovery data")


class StoreCardAttribute:
    name = "store_card"

    def attempt(self, lookup: StoreLookup, cancel: CancelToken) -> str:
        for card in lookup.page(cancel).select(".location-card, .store-card, [data-store-id]"):
            store_id = card.get("data-store-id")
            if not store_id:
                continue
            card_address = " ".join(
                el.get_text(" ", strip=True) for el in card.select(".address, .location-address")
            )
            if similar_addresses(card_address, lookup.record.address):
                return store_id.strip()
        raise StrategyError("no location card matched the address")


class ScriptStoreId:
    name = "script"

    def attempt(self, lookup: StoreLookup, cancel: CancelToken) -> str:
        for script in lookup.page(cancel).find_all("script"):
            match = SCRIPT_STORE_ID.search(script.get_text() or "")
            if match:
                return match.group(1)
        raise StrategyError("no store id in page scripts")


class AnchorStoreParam:
    name = "anchor"

    def attempt(self, lookup: StoreLookup, cancel: CancelToken) -> str:
        for anchor in lookup.page(cancel).find_all("a", href=True):
            match = HREF_STORE_ID.search(anchor["href"])
            if match:
                return match.group(1)
        raise StrategyError("no store id in page links")


def default_store_id_strategies() -> list:
    return [KnownStoreNumber(), StoreCardAttribute(), ScriptStoreId(), AnchorStoreParam()]


class IdentifierResolver:
    def __init__(
            self,
            strategies: Optional[Sequence] = None,
            http: Optional[HttpClient] = None,
            search_url: str = TACO_BELL_LOCATION_SEARCH_URL
            ):
        self.strategies = list(strategies) if strategies is not None else default_store_id_strategies()
        self.http = http or get_default_http_client()
        self.search_url = search_url

    def resolve_id(
            self,
            record: POIRecord,
            cancel: Optional[CancelToken] = None,
            search_id: Optional[str] = None
            ) -> str:
        """Return the store number for `record`, falling back to its source_key."""
        search_id = search_id or str(uuid.uuid4())[:8]
        lookup = StoreLookup(record, self.http, self.search_url)
        try:
            store_id = run_cascade(
                self.strategies,
                lookup,
                operation="resolve_store_id",
                accept=bool,
                cancel=cancel,
                search_id=search_id
            )
        except CascadeExhausted:
            store_id = None

        if not store_id:
            logger.warning("Could not find store id, using fallback", extra={
                "operation": "resolve_store_id",
                "search_id": search_id,
                "store_name": record.display_name,
                "source_key": record.source_key
            })
            return record.source_key
        return store_id
