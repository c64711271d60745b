"""
Taco Bell Store Discovery Module
--------------------------------

This module finds Taco Bell stores around a coordinate. Two discovery strategies are
tried in order and never merged:

    1. TacoBellStoreLocator - the chain's stores web service (structured "nearByStores")
    2. OverpassStoreLocator - an OpenStreetMap Overpass bounding-box tag query

The fallback runs only when the primary raised or found nothing inside the radius.
Merging both would count the same building twice, and names plus free-form addresses
are not reliable enough to deduplicate across sources.

Every strategy shares the same post-processing (`LocatorStrategy.attempt`): records
outside `radius_m` are dropped and duplicate `source_key`s are collapsed, so the radius
filter is applied uniformly regardless of what the upstream claims to have honoured.

Distances come from the source's own `formattedDistance` when it parses (miles are
converted to kilometers) and from the haversine formula otherwise.

Classes:
    POILocator: locate(origin, radius_m) -> list[POIRecord]; raises LocateError only
                when every strategy raised.
"""

import re
import time
import uuid
from dataclasses import dataclass
from typing import List, Optional, Sequence

from ..config import OVERPASS_TIMEOUT, OVERPASS_URL, TACO_BELL_STORES_URL
from ..spatial.distance import GeoPoint, bounding_box, haversine_km
from ..utils.cancel import CancelToken
from ..utils.http import JSON_HEADERS, HttpClient, expect_ok, get_default_http_client, json_payload
from ..utils.logger import logger
from .cascade import run_cascade
from .errors import LocateError
from .models import ADDRESS_UNKNOWN, POIRecord
from .ranking import dedupe_by_source_key, filter_within_radius

KM_PER_MILE = 1.60934

_DISTANCE_TEXT = re.compile(r"^\s*([\d,]*\.?\d+)\s*([a-zA-Z]*)\.?\s*$")
_UNIT_TO_KM = {
    "": KM_PER_MILE,  # the stores API reports miles
    "mi": KM_PER_MILE,
    "mile": KM_PER_MILE,
    "miles": KM_PER_MILE,
    "km": 1.0,
    "kilometer": 1.0,
    "kilometers": 1.0,
    "m": 0.001,
    "meters": 0.001,
}


@dataclass(frozen=True)
class LocateQuery:
    origin: GeoPoint
    radius_m: int

    @property
    def radius_km(self) -> float:
        return self.radius_m / 1000.0


def parse_distance_km(text: Optional[str]) -> Optional[float]:
    """Parse strings like "0.25 Miles" into kilometers; None when absent or unparseable."""
    if not text:
        return None
    match = _DISTANCE_TEXT.match(str(text))
    if not match:
        return None
    factor = _UNIT_TO_KM.get(match.group(2).lower())
    if factor is None:
        return None
    return float(match.group(1).replace(",", "")) * factor


def _mapping(value) -> dict:
    return value if isinstance(value, dict) else {}


def _text(mapping: dict, key: str) -> str:
    value = mapping.get(key)
    return str(value).strip() if isinstance(value, (str, int)) else ""


class LocatorStrategy:
    """Base class: subclasses implement `fetch`; `attempt` applies the shared radius filter."""

    name = "locator"

    def fetch(self, query: LocateQuery, cancel: CancelToken) -> List[POIRecord]:
        raise NotImplementedError

    def _to_record(self, item: dict, origin: GeoPoint) -> Optional[POIRecord]:
        raise NotImplementedError

    def _collect(self, items, origin: GeoPoint) -> List[POIRecord]:
        """Convert raw entries one by one; a malformed entry is skipped, never fatal."""
        if not isinstance(items, list):
            return []
        records = []
        for item in items:
            if not isinstance(item, dict):
                continue
            try:
                record = self._to_record(item, origin)
            except (TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed entry: {e}", extra={
                    "operation": "locate",
                    "strategy": self.name,
                    "error": str(e)
                })
                continue
            if record is not None:
                records.append(record)
        return records

    def attempt(self, query: LocateQuery, cancel: CancelToken) -> List[POIRecord]:
        records = dedupe_by_source_key(self.fetch(query, cancel))
        within = filter_within_radius(records, query.radius_km)
        logger.info(f"Found {len(within)} stores within {query.radius_km:.2f} km", extra={
            "operation": "locate",
            "strategy": self.name,
            "returned": len(records),
            "within_radius": len(within)
        })
        return within


class TacoBellStoreLocator(LocatorStrategy):
    name = "tacobell_stores"

    def __init__(self, http: HttpClient, url: str = TACO_BELL_STORES_URL):
        self.http = http
        self.url = url

    def fetch(self, query: LocateQuery, cancel: CancelToken) -> List[POIRecord]:
        params = {
            "latitude": f"{query.origin.lat:.6f}",
            "longitude": f"{query.origin.lng:.6f}",
            "_": int(time.time() * 1000),
        }
        headers = dict(JSON_HEADERS, Referer="https://www.tacobell.com/locations")
        response = expect_ok(
            self.http.get(self.url, params=params, headers=headers, cancel=cancel),
            "Taco Bell stores API"
        )
        stores = json_payload(response, "Taco Bell stores API").get("nearByStores") or []
        return self._collect(stores, query.origin)

    def _to_record(self, store: dict, origin: GeoPoint) -> Optional[POIRecord]:
        number = str(store.get("storeNumber") or "").strip()
        geo = _mapping(store.get("geoPoint"))
        if not number or geo.get("latitude") is None or geo.get("longitude") is None:
            logger.debug("Skipping store without number or coordinates", extra={
                "operation": "locate",
                "strategy": self.name,
                "store_number": number
            })
            return None

        location = GeoPoint(float(geo["latitude"]), float(geo["longitude"]))
        distance = parse_distance_km(store.get("formattedDistance"))
        if distance is None:
            distance = haversine_km(origin.lat, origin.lng, location.lat, location.lng)

        return POIRecord(
            source_key=number,
            display_name=f"Taco Bell {number}",
            address=format_store_address(_mapping(store.get("address"))),
            location=location,
            distance_km=distance,
            phone=_text(store, "phoneNumber") or None,
            canonical_id=number,
        )


def format_store_address(address: dict) -> str:
    """Format the stores API address block as "line1, line2, Town, ST 12345"."""
    line1 = _text(address, "line1")
    line2 = _text(address, "line2")
    town = _text(address, "town")
    postal = _text(address, "postalCode")
    region = _text(_mapping(address.get("region")), "isocode")
    if region.startswith("US-"):
        region = region[len("US-"):]

    street = ", ".join(p for p in (line1, line2 if line2 != "null" else "") if p)
    tail = " ".join(p for p in (region, postal) if p)
    formatted = ", ".join(p for p in (street, town, tail) if p)
    return formatted or ADDRESS_UNKNOWN


class OverpassStoreLocator(LocatorStrategy):
    name = "overpass"

    def __init__(
            self,
            http: HttpClient,
            url: str = OVERPASS_URL,
            timeout: float = OVERPASS_TIMEOUT,
            brand: str = "Taco Bell"
            ):
        self.http = http
        self.url = url
        self.timeout = timeout
        self.brand = brand

    def build_query(self, query: LocateQuery) -> str:
        south, west, north, east = bounding_box(query.origin, query.radius_m)
        bbox = f"{south:.6f},{west:.6f},{north:.6f},{east:.6f}"
        selector = f'["amenity"="fast_food"]["name"~"{self.brand}",i]({bbox});'
        return (
            "[out:json];\n"
            "(\n"
            f"  node{selector}\n"
            f"  way{selector}\n"
            f"  relation{selector}\n"
            ");\n"
            "out center;"
        )

    def fetch(self, query: LocateQuery, cancel: CancelToken) -> List[POIRecord]:
        response = expect_ok(
            self.http.get(
                self.url,
                params={"data": self.build_query(query)},
                timeout=self.timeout,
                cancel=cancel
            ),
            "Overpass API"
        )
        elements = json_payload(response, "Overpass API").get("elements") or []
        return self._collect(elements, query.origin)

    def _to_record(self, element: dict, origin: GeoPoint) -> Optional[POIRecord]:
        kind = element.get("type", "node")
        source = element if kind == "node" else _mapping(element.get("center"))
        if source.get("lat") is None or source.get("lon") is None:
            return None

        tags = _mapping(element.get("tags"))
        location = GeoPoint(float(source["lat"]), float(source["lon"]))
        return POIRecord(
            source_key=f"osm-{kind}-{element.get('id')}",
            display_name=tags.get("name") or self.brand,
            address=assemble_osm_address(tags),
            location=location,
            distance_km=haversine_km(origin.lat, origin.lng, location.lat, location.lng),
            phone=tags.get("phone") or tags.get("contact:phone") or None,
        )


def assemble_osm_address(tags: dict) -> str:
    """Build "12 Main St, City, ST 12345" from addr:* tags; ADDRESS_UNKNOWN when none are set."""
    address = ""
    if tags.get("addr:housenumber") and tags.get("addr:street"):
        address = f"{tags['addr:housenumber']} {tags['addr:street']}"
    for key in ("addr:city", "addr:state"):
        if tags.get(key):
            address = f"{address}, {tags[key]}" if address else tags[key]
    if tags.get("addr:postcode"):
        address = f"{address} {tags['addr:postcode']}" if address else tags["addr:postcode"]
    return address or ADDRESS_UNKNOWN


def default_locators(http: HttpClient) -> list:
    return [TacoBellStoreLocator(http), OverpassStoreLocator(http)]


class POILocator:
    def __init__(self, strategies: Optional[Sequence] = None, http: Optional[HttpClient] = None):
        self.strategies = list(strategies) if strategies is not None else default_locators(
            http or get_default_http_client()
        )

    def locate(
            self,
            origin: GeoPoint,
            radius_m: int,
            cancel: Optional[CancelToken] = None,
            search_id: Optional[str] = None
            ) -> List[POIRecord]:
        """
        Return the stores within `radius_m` of `origin` from the first strategy that finds any.

        Raises:
            LocateError: If every strategy raised. An empty list is a valid answer otherwise.
        """
        search_id = search_id or str(uuid.uuid4())[:8]
        start_time = time.time()

        logger.info("Searching for stores", extra={
            "operation": "locate",
            "search_id": search_id,
            "lat": origin.lat,
            "lng": origin.lng,
            "radius": radius_m
        })

        records = run_cascade(
            self.strategies,
            LocateQuery(origin, radius_m),
            operation="locate",
            accept=bool,
            cancel=cancel,
            error_cls=LocateError,
            search_id=search_id
        )

        logger.info("Completed store search", extra={
            "operation": "locate",
            "search_id": search_id,
            "total_results": len(records),
            "duration_sec": round(time.time() - start_time, 2)
        })
        return records
