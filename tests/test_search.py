import pytest
import requests

from chilito_finder.core.errors import ErrorKind, GeocodeError, LocateError, StrategyError
from chilito_finder.core.menu import ContentVerifier, OverrideTable, RetryPolicy
from chilito_finder.core.models import POIRecord, VerificationResult
from chilito_finder.core.search import ChilitoSearch, SearchState
from chilito_finder.spatial.distance import GeoPoint
from chilito_finder.utils.cancel import CancelToken
from conftest import FakeResponse

SPRINGFIELD = GeoPoint(39.1, -89.6)


def store(key, distance):
    return POIRecord(key, f"Taco Bell {key}", f"{key} Main St", SPRINGFIELD, distance, canonical_id=key)


class FakeGeocoder:
    def __init__(self, point=SPRINGFIELD, error=None):
        self.point = point
        self.error = error
        self.addresses = []

    def resolve(self, address, cancel=None, search_id=None):
        self.addresses.append(address)
        if self.error is not None:
            raise self.error
        return self.point


class FakeLocator:
    def __init__(self, stores=None, error=None):
        self.stores = stores or []
        self.error = error
        self.calls = 0

    def locate(self, origin, radius_m, cancel=None, search_id=None):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return list(self.stores)


class FakeResolver:
    def resolve_id(self, record, cancel=None, search_id=None):
        return record.canonical_id or record.source_key


class FakeVerifier:
    def __init__(self, results=None):
        self.results = results or {}
        self.checked = []

    def verify(self, store_id, cancel=None, search_id=None):
        cancel.raise_if_cancelled()
        self.checked.append(store_id)
        return self.results.get(store_id, VerificationResult.NOT_FOUND)


def make_search(stores=None, results=None, **kwargs):
    return ChilitoSearch(
        geocoder=kwargs.pop("geocoder", FakeGeocoder()),
        locator=kwargs.pop("locator", FakeLocator(stores)),
        resolver=FakeResolver(),
        verifier=kwargs.pop("verifier", FakeVerifier(results)),
        **kwargs
    )


@pytest.fixture
def springfield_routes():
    # Store A (000111) is 1.2 km away and has no Chilito, store B (000222) at 3.4 km has it
    return {
        "api.tacobell.com/location": [FakeResponse(200, payload={
            "success": True, "geometry": {"lat": 39.1, "lng": -89.6}
        })],
        "tacobellwebservices": [FakeResponse(200, payload={"nearByStores": [
            {
                "storeNumber": "000222",
                "formattedDistance": "2.1127 Miles",
                "geoPoint": {"latitude": 39.13, "longitude": -89.6},
                "address": {"line1": "2 Oak Ave", "town": "Springfield"},
            },
            {
                "storeNumber": "000111",
                "formattedDistance": "0.7457 Miles",
                "geoPoint": {"latitude": 39.11, "longitude": -89.6},
                "address": {"line1": "1 Main St", "town": "Springfield"},
            },
        ]})],
        "store=000111": [FakeResponse(200, text="<p>Crunchwrap Supreme</p>")],
        "store=000222": [FakeResponse(200, text="<p class='product-name'>Chili Cheese Burrito</p>")],
    }


def test_springfield_end_to_end(make_http, springfield_routes):
    # 1. Real pipeline over a fake transport
    http = make_http(springfield_routes)
    verifier = ContentVerifier(
        http=http,
        overrides=OverrideTable(),
        retry_policy=RetryPolicy(attempts=2, base_delay=0, jitter=0),
        url_delay=0
    )
    finder = ChilitoSearch(http=http, verifier=verifier, candidate_delay=0)

    # 2. Kick off the entire search
    outcome = finder.search("123 Main St, Springfield", radius_m=20000)

    # 3. The farther store B wins because the nearer store A was checked and rejected
    assert outcome.found
    assert outcome.error_kind is None
    assert outcome.location.source_key == "000222"
    assert outcome.location.distance_km == pytest.approx(3.4, abs=0.01)
    assert outcome.origin == SPRINGFIELD
    assert [(a.store_id, a.result) for a in outcome.attempts] == [
        ("000111", VerificationResult.NOT_FOUND),
        ("000222", VerificationResult.FOUND),
    ]

    # 4. Every menu page of A was read before any page of B
    menu_urls = [url for url in http.session.urls() if "/food/" in url]
    assert all("000111" in url for url in menu_urls[:4])
    assert menu_urls[4:] == ["https://www.tacobell.com/food/menu?store=000222"]
    assert finder.metrics.candidates_checked == 2
    assert finder.state is SearchState.DONE


def test_nearest_found_store_is_reported():
    finder = make_search(
        stores=[store("000333", 5.0), store("000111", 1.0), store("000222", 2.0)],
        results={"000222": VerificationResult.FOUND, "000333": VerificationResult.FOUND},
    )

    outcome = finder.search("anywhere")

    assert outcome.location.source_key == "000222"
    assert finder.verifier.checked == ["000111", "000222"]


def test_no_stores_means_no_verification():
    verifier = FakeVerifier()
    outcome = make_search(stores=[], verifier=verifier).search("nowhere")

    assert not outcome.found
    assert outcome.error_kind is None
    assert outcome.attempts == ()
    assert verifier.checked == []


def test_only_max_candidates_are_verified():
    stores = [store(f"00000{i}", float(i)) for i in range(1, 9)]
    finder = make_search(stores=stores, max_candidates=3)

    outcome = finder.search("anywhere")

    assert not outcome.found
    assert finder.verifier.checked == ["000001", "000002", "000003"]
    assert len(outcome.attempts) == 3


def test_inconclusive_candidates_are_skipped():
    finder = make_search(
        stores=[store("000111", 1.0), store("000222", 2.0)],
        results={"000111": VerificationResult.INCONCLUSIVE, "000222": VerificationResult.FOUND},
    )

    outcome = finder.search("anywhere")

    assert outcome.found
    assert outcome.attempts[0].result is VerificationResult.INCONCLUSIVE


def test_geocode_failure_is_reported_as_geocode_error():
    geocoder = FakeGeocoder(error=GeocodeError("geocode", [("nominatim", StrategyError("no results"))]))
    locator = FakeLocator()

    outcome = make_search(geocoder=geocoder, locator=locator).search("Atlantis")

    assert not outcome.found
    assert outcome.error_kind is ErrorKind.GEOCODE
    assert outcome.location is None
    assert locator.calls == 0


def test_locate_failure_is_reported_as_locate_error():
    locator = FakeLocator(error=LocateError("locate", [("overpass", requests.Timeout("slow"))]))

    outcome = make_search(locator=locator).search("anywhere")

    assert outcome.error_kind is ErrorKind.LOCATE
    assert outcome.origin is None


def test_cancellation_mid_verification_reports_no_location(monkeypatch):
    finder = make_search(stores=[store("000111", 1.0), store("000222", 2.0)])
    original_verify = finder.verifier.verify

    def cancel_after_first(store_id, cancel=None, search_id=None):
        result = original_verify(store_id, cancel=cancel, search_id=search_id)
        cancel.cancel()
        return result

    monkeypatch.setattr(finder.verifier, "verify", cancel_after_first)

    outcome = finder.search("anywhere")

    assert outcome.error_kind is ErrorKind.CANCELLED
    assert not outcome.found
    assert outcome.location is None
    assert finder.verifier.checked == ["000111"]


def test_expired_timeout_cancels_before_any_work():
    geocoder = FakeGeocoder()
    finder = make_search(stores=[store("000111", 1.0)], geocoder=geocoder)
    outcome = finder.search("anywhere", timeout=0)

    assert outcome.error_kind is ErrorKind.CANCELLED
    assert finder.verifier.checked == []


def test_search_near_device_uses_provider_coordinates():
    geocoder = FakeGeocoder()
    finder = make_search(stores=[], geocoder=geocoder)

    finder.search_near_device(lambda: GeoPoint(39.1, -89.6), radius_m=5000)

    assert geocoder.addresses == ["39.100000,-89.600000"]


def test_odd_upstream_payloads_end_as_geocode_outcome(make_http):
    # 1. Every geocoder answers 200 with a body of the wrong shape
    http = make_http({
        "api.tacobell.com": [FakeResponse(200, text="null")],
        "api.mapbox.com": [FakeResponse(200, text="[]")],
        "nominatim": [FakeResponse(200, text='{"error": "busy"}')],
    })
    finder = ChilitoSearch(http=http, verifier=FakeVerifier())

    # 2. The search reports a geocoding failure instead of raising
    outcome = finder.search("123 Main St", 5000)

    assert not outcome.found
    assert outcome.error_kind is ErrorKind.GEOCODE


def test_timeout_tightens_a_caller_supplied_token():
    token = CancelToken()
    finder = make_search(stores=[store("000111", 1.0)])

    outcome = finder.search("anywhere", timeout=0, cancel=token)

    assert outcome.error_kind is ErrorKind.CANCELLED
    assert token.deadline is not None
