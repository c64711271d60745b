import pytest
import requests

from chilito_finder.core.errors import LocateError, StrategyError
from chilito_finder.core.models import ADDRESS_UNKNOWN, POIRecord
from chilito_finder.core.places import (
    KM_PER_MILE,
    LocateQuery,
    LocatorStrategy,
    OverpassStoreLocator,
    POILocator,
    TacoBellStoreLocator,
    assemble_osm_address,
    format_store_address,
    parse_distance_km,
)
from chilito_finder.spatial.distance import GeoPoint
from chilito_finder.utils.cancel import CancelToken
from conftest import FakeResponse

ORIGIN = GeoPoint(39.1, -89.6)


def record(key, distance):
    return POIRecord(key, f"Taco Bell {key}", "1 Main St", GeoPoint(39.1, -89.6), distance)


class StaticLocator(LocatorStrategy):
    def __init__(self, name, records=None, error=None):
        self.name = name
        self.records = records or []
        self.error = error
        self.calls = 0

    def fetch(self, query, cancel):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return list(self.records)


def stores_payload():
    return {
        "nearByStores": [
            {
                "storeNumber": "000111",
                "formattedDistance": "0.75 Miles",
                "phoneNumber": "(217) 555-0101",
                "geoPoint": {"latitude": 39.11, "longitude": -89.61},
                "address": {
                    "line1": "123 Main St",
                    "line2": "null",
                    "town": "Springfield",
                    "postalCode": "62701",
                    "region": {"isocode": "US-IL"},
                },
            },
            {
                "storeNumber": "000222",
                "geoPoint": {"latitude": 39.12, "longitude": -89.62},
                "address": {"line1": "9 Oak Ave", "town": "Springfield"},
            },
            {"storeNumber": "", "geoPoint": {"latitude": 39.0, "longitude": -89.0}},
            {"storeNumber": "000333", "geoPoint": {}},
        ]
    }


@pytest.mark.parametrize("text, expected", [
    ("0.25 Miles", 0.25 * KM_PER_MILE),
    ("2 mi", 2 * KM_PER_MILE),
    ("1.5", 1.5 * KM_PER_MILE),
    ("3 km", 3.0),
    ("500 m", 0.5),
])
def test_parse_distance_km(text, expected):
    assert parse_distance_km(text) == pytest.approx(expected)


@pytest.mark.parametrize("text", [None, "", "far away", "3 parsecs"])
def test_parse_distance_km_rejects_garbage(text):
    assert parse_distance_km(text) is None


def test_tacobell_locator_parses_stores(make_http, ok):
    http = make_http({"tacobellwebservices": [ok(payload=stores_payload())]})

    records = TacoBellStoreLocator(http).attempt(LocateQuery(ORIGIN, 100000), CancelToken())

    assert [r.source_key for r in records] == ["000111", "000222"]
    first, second = records
    assert first.canonical_id == "000111"
    assert first.display_name == "Taco Bell 000111"
    assert first.address == "123 Main St, Springfield, IL 62701"
    assert first.distance_km == pytest.approx(0.75 * KM_PER_MILE)
    assert first.phone == "(217) 555-0101"
    # no formattedDistance: computed from coordinates
    assert 2.0 < second.distance_km < 4.0

    params = http.session.calls[0]["params"]
    assert params["latitude"] == "39.100000"
    assert params["longitude"] == "-89.600000"


def test_tacobell_locator_applies_radius(make_http, ok):
    http = make_http({"tacobellwebservices": [ok(payload=stores_payload())]})
    locator = TacoBellStoreLocator(http)

    assert locator.attempt(LocateQuery(ORIGIN, 100), CancelToken()) == []
    assert len(locator.attempt(LocateQuery(ORIGIN, 100000), CancelToken())) == 2


def test_format_store_address():
    assert format_store_address({"line1": "1 A St", "line2": "Suite 2", "town": "Town"}) == "1 A St, Suite 2, Town"
    assert format_store_address({}) == ADDRESS_UNKNOWN


def test_overpass_locator_builds_records(make_http, ok):
    payload = {"elements": [
        {
            "type": "node", "id": 42, "lat": 39.101, "lon": -89.601,
            "tags": {"name": "Taco Bell", "addr:housenumber": "5", "addr:street": "Elm St",
                     "addr:city": "Springfield", "addr:state": "IL", "addr:postcode": "62704"},
        },
        {"type": "way", "id": 7, "center": {"lat": 39.102, "lon": -89.602}, "tags": {}},
        {"type": "way", "id": 8, "tags": {"name": "Taco Bell"}},
    ]}
    http = make_http({"overpass": [ok(payload=payload)]})

    records = OverpassStoreLocator(http).attempt(LocateQuery(ORIGIN, 5000), CancelToken())

    assert [r.source_key for r in records] == ["osm-node-42", "osm-way-7"]
    assert records[0].address == "5 Elm St, Springfield, IL 62704"
    assert records[0].canonical_id is None
    assert records[1].address == ADDRESS_UNKNOWN
    assert records[1].display_name == "Taco Bell"


def test_overpass_query_is_a_bounding_box_tag_query(make_http):
    query = OverpassStoreLocator(make_http()).build_query(LocateQuery(GeoPoint(10, 20), 111000))
    assert '["amenity"="fast_food"]["name"~"Taco Bell",i](9.000000,19.000000,11.000000,21.000000);' in query
    assert query.endswith("out center;")


def test_assemble_osm_address_partial_tags():
    assert assemble_osm_address({"addr:city": "Springfield"}) == "Springfield"
    assert assemble_osm_address({"addr:street": "Elm St"}) == ADDRESS_UNKNOWN


def test_fallback_not_used_when_primary_finds_stores():
    primary = StaticLocator("primary", [record("a", 1.0)])
    fallback = StaticLocator("fallback", [record("b", 2.0)])

    records = POILocator([primary, fallback]).locate(ORIGIN, 10000)

    assert [r.source_key for r in records] == ["a"]
    assert fallback.calls == 0


def test_fallback_used_when_primary_finds_nothing_in_radius():
    primary = StaticLocator("primary", [record("far", 50.0)])
    fallback = StaticLocator("fallback", [record("near", 2.0)])

    records = POILocator([primary, fallback]).locate(ORIGIN, 10000)

    assert [r.source_key for r in records] == ["near"]


def test_fallback_used_when_primary_raises():
    primary = StaticLocator("primary", error=requests.Timeout("slow"))
    fallback = StaticLocator("fallback", [record("b", 2.0)])

    assert [r.source_key for r in POILocator([primary, fallback]).locate(ORIGIN, 10000)] == ["b"]


def test_empty_answer_after_a_failure_is_not_an_error():
    primary = StaticLocator("primary", error=requests.ConnectionError("down"))
    fallback = StaticLocator("fallback", [])

    assert POILocator([primary, fallback]).locate(ORIGIN, 10000) == []


def test_every_strategy_raising_is_a_locate_error():
    locator = POILocator([
        StaticLocator("primary", error=requests.ConnectionError("down")),
        StaticLocator("fallback", error=requests.HTTPError("504")),
    ])
    with pytest.raises(LocateError):
        locator.locate(ORIGIN, 10000)


def test_duplicate_source_keys_are_collapsed():
    locator = StaticLocator("dupes", [record("a", 1.0), record("a", 1.5), record("b", 2.0)])
    records = locator.attempt(LocateQuery(ORIGIN, 10000), CancelToken())
    assert [(r.source_key, r.distance_km) for r in records] == [("a", 1.0), ("b", 2.0)]


def test_non_200_stores_response_falls_back(make_http, ok):
    http = make_http({
        "tacobellwebservices": [FakeResponse(502, text="bad gateway")],
        "overpass": [ok(payload={"elements": [{"type": "node", "id": 1, "lat": 39.1, "lon": -89.6}]})],
    })

    records = POILocator(http=http).locate(ORIGIN, 1000)

    assert [r.source_key for r in records] == ["osm-node-1"]


@pytest.mark.parametrize("body", ["null", "[]", '"text"', '{"nearByStores": "none"}', '{"nearByStores": [1, "a", null]}'])
def test_odd_stores_payload_shapes_never_crash(make_http, body):
    http = make_http({"tacobellwebservices": [FakeResponse(200, text=body)]})
    try:
        records = TacoBellStoreLocator(http).attempt(LocateQuery(ORIGIN, 100000), CancelToken())
    except StrategyError:
        return
    assert records == []


@pytest.mark.parametrize("body", ["null", "[]", '{"elements": {"a": 1}}', '{"elements": [{"type": "way", "center": "x"}]}'])
def test_odd_overpass_payload_shapes_never_crash(make_http, body):
    http = make_http({"overpass": [FakeResponse(200, text=body)]})
    try:
        records = OverpassStoreLocator(http).attempt(LocateQuery(ORIGIN, 100000), CancelToken())
    except StrategyError:
        return
    assert records == []


def test_non_object_payloads_exhaust_both_locators(make_http):
    http = make_http({
        "tacobellwebservices": [FakeResponse(200, text="[]")],
        "overpass": [FakeResponse(200, text="null")],
    })
    with pytest.raises(LocateError):
        POILocator(http=http).locate(ORIGIN, 1000)


def test_string_address_and_geo_blocks_degrade(make_http, ok):
    payload = {"nearByStores": [
        {"storeNumber": "000111", "geoPoint": {"latitude": 39.1, "longitude": -89.6}, "address": "123 Main St"},
        {"storeNumber": "000222", "geoPoint": "39.1,-89.6"},
    ]}
    http = make_http({"tacobellwebservices": [ok(payload=payload)]})

    records = TacoBellStoreLocator(http).attempt(LocateQuery(ORIGIN, 100000), CancelToken())

    assert [r.source_key for r in records] == ["000111"]
    assert records[0].address == ADDRESS_UNKNOWN


def test_malformed_store_is_skipped_and_the_rest_kept(make_http, ok):
    payload = {"nearByStores": [
        {"storeNumber": "000111", "geoPoint": {"latitude": 39.11, "longitude": -89.61}},
        {"storeNumber": "000222", "geoPoint": {"latitude": "", "longitude": -89.62}},
        {"storeNumber": "000333", "geoPoint": {"latitude": 139.0, "longitude": -89.62}},
        {"storeNumber": "000444", "geoPoint": {"latitude": [], "longitude": -89.62}},
    ]}
    http = make_http({
        "tacobellwebservices": [ok(payload=payload)],
        "overpass": [ok(payload={"elements": []})],
    })

    records = POILocator(http=http).locate(ORIGIN, 100000)

    assert [r.source_key for r in records] == ["000111"]
    assert all("overpass" not in url for url in http.session.urls())


def test_malformed_overpass_element_is_skipped(make_http, ok):
    payload = {"elements": [
        {"type": "node", "id": 1, "lat": 39.1, "lon": -89.6},
        {"type": "node", "id": 2, "lat": "north", "lon": -89.6},
    ]}
    http = make_http({"overpass": [ok(payload=payload)]})

    records = OverpassStoreLocator(http).attempt(LocateQuery(ORIGIN, 5000), CancelToken())

    assert [r.source_key for r in records] == ["osm-node-1"]
