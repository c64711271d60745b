"""
Module for turning a free-text address into coordinates.
---------------------------------

Geocoding is a cascade of strategies tried in a fixed order, most authoritative first:

    1. CoordinateTextGeocoder  - text already in "lat,lng" form (device location); no network
    2. TacoBellGeocoder        - the chain's own location API
    3. MapboxGeocoder          - commercial geocoder (needs MAPBOX_TOKEN)
    4. NominatimGeocoder       - OpenStreetMap open data

The first strategy that answers wins; results are never cross-validated, so an ambiguous
address may resolve differently depending on which service is reachable. That imprecision
is accepted.

Classes:
    GeocodeResolver:
        resolve(address) -> GeoPoint, raising GeocodeError only when every strategy failed.
"""

import uuid
from typing import Optional, Sequence
from urllib.parse import quote

from ..config import (
    MAPBOX_TOKEN,
    MAPBOX_GEOCODE_URL,
    NOMINATIM_SEARCH_URL,
    NOMINATIM_TIMEOUT,
    NOMINATIM_USER_AGENT,
    TACO_BELL_GEOCODE_URL,
)
from ..spatial.distance import GeoPoint, parse_coordinates
from ..utils.cancel import CancelToken
from ..utils.http import JSON_HEADERS, HttpClient, expect_ok, get_default_http_client, json_payload
from ..utils.logger import logger
from .cascade import run_cascade
from .errors import GeocodeError, StrategyError


class CoordinateTextGeocoder:
    name = "coordinates"

    def attempt(self, address: str, cancel: CancelToken) -> GeoPoint:
        point = parse_coordinates(address)
        if point is None:
            raise StrategyError("address is not a lat,lng pair")
        return point


class TacoBellGeocoder:
    name = "tacobell"

    def __init__(self, http: HttpClient, url_template: str = TACO_BELL_GEOCODE_URL):
        self.http = http
        self.url_template = url_template

    def attempt(self, address: str, cancel: CancelToken) -> GeoPoint:
        url = self.url_template.format(query=quote(address, safe=""))
        response = expect_ok(self.http.get(url, headers=JSON_HEADERS, cancel=cancel), "Taco Bell API")
        data = json_payload(response, "Taco Bell API")
        if not data.get("success"):
            raise StrategyError("Taco Bell API geocoding was not successful")
        geometry = data.get("geometry") or {}
        return GeoPoint(float(geometry["lat"]), float(geometry["lng"]))


class MapboxGeocoder:
    name = "mapbox"

    def __init__(
            self,
            http: HttpClient,
            token: Optional[str] = MAPBOX_TOKEN,
            url_template: str = MAPBOX_GEOCODE_URL
            ):
        self.http = http
        self.token = token
        self.url_template = url_template

    def attempt(self, address: str, cancel: CancelToken) -> GeoPoint:
        if not self.token:
            raise StrategyError("MAPBOX_TOKEN is not configured")
        url = self.url_template.format(query=quote(address, safe=""))
        response = expect_ok(
            self.http.get(url, params={"access_token": self.token, "limit": 1}, cancel=cancel),
            "Mapbox"
        )
        features = json_payload(response, "Mapbox").get("features") or []
        if not features:
            raise StrategyError("no geocoding results returned")
        # Mapbox orders the pair [lng, lat]
        lng, lat = features[0]["center"][:2]
        return GeoPoint(float(lat), float(lng))


class NominatimGeocoder:
    name = "nominatim"

    def __init__(
            self,
            http: HttpClient,
            user_agent: str = NOMINATIM_USER_AGENT,
            url: str = NOMINATIM_SEARCH_URL,
            timeout: float = NOMINATIM_TIMEOUT
            ):
        self.http = http
        self.user_agent = user_agent
        self.url = url
        self.timeout = timeout

    def attempt(self, address: str, cancel: CancelToken) -> GeoPoint:
        params = {
            "q": address,
            "format": "json",
            "limit": "1",
            "addressdetails": "1",
        }
        response = expect_ok(
            self.http.get(
                self.url,
                params=params,
                headers={"User-Agent": self.user_agent},
                timeout=self.timeout,
                cancel=cancel
            ),
            "Nominatim"
        )
        results = json_payload(response, "Nominatim", expected=list)
        if not results:
            raise StrategyError("no geocoding results returned")
        return GeoPoint(float(results[0]["lat"]), float(results[0]["lon"]))


def default_geocoders(http: HttpClient) -> list:
    return [
        CoordinateTextGeocoder(),
        TacoBellGeocoder(http),
        MapboxGeocoder(http),
        NominatimGeocoder(http),
    ]


class GeocodeResolver:
    def __init__(self, strategies: Optional[Sequence] = None, http: Optional[HttpClient] = None):
        self.strategies = list(strategies) if strategies is not None else default_geocoders(
            http or get_default_http_client()
        )

    def resolve(
            self,
            address: str,
            cancel: Optional[CancelToken] = None,
            search_id: Optional[str] = None
            ) -> GeoPoint:
        """
        Geocode `address` with the first strategy that succeeds.

        Raises:
            GeocodeError: If every strategy failed; the last underlying error is chained.
            SearchCancelled: If `cancel` fires between strategies or during a request.
        """
        search_id = search_id or str(uuid.uuid4())[:8]

        logger.info("Geocoding address", extra={
            "operation": "geocode",
            "search_id": search_id,
            "address": address
        })

        try:
            point = run_cascade(
                self.strategies,
                address,
                operation="geocode",
                cancel=cancel,
                error_cls=GeocodeError,
                search_id=search_id
            )
        except GeocodeError as e:
            logger.error(f"Error geocoding address: {e}", extra={
                "operation": "geocode",
                "search_id": search_id,
                "address": address,
                "status": "error"
            })
            raise

        logger.info("Successfully geocoded address", extra={
            "operation": "geocode",
            "search_id": search_id,
            "lat": point.lat,
            "lng": point.lng,
            "status": "success"
        })
        return point
