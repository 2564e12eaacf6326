import asyncio

import httpx
import pytest

from map_copilot.services.boundaries import (
    AdminBoundaryClient,
    BoundaryUpstreamError,
    Province,
    find_matching_province,
)

PROVINCES_URL = "https://boundaries.test/provinces"

PROVINCES = [
    Province("01", "Thành phố Hà Nội", "Ha Noi City", "Thành phố Trung ương"),
    Province("48", "Thành phố Đà Nẵng", "Da Nang City", "Thành phố Trung ương"),
    Province("79", "Thành phố Hồ Chí Minh", "Ho Chi Minh City", "Thành phố Trung ương"),
    Province("89", "Tỉnh An Giang", "An Giang Province", "Tỉnh"),
]

HCM_BOUNDARY = {
    "status": "OK",
    "data": {
        "prov_code": "79",
        "prov_fname": "Thành phố Hồ Chí Minh",
        "prov_fne": "Ho Chi Minh City",
        "level": "Thành phố Trung ương",
        "geomLevel": "street",
        "center": {"lat": 10.77, "lng": 106.69},
        "viewport": {"northeast": {"lat": 11.16, "lng": 107.02}, "southwest": {"lat": 10.37, "lng": 106.36}},
        "geom": {
            "type": "Polygon",
            "coordinates": [[[106.36, 10.37], [107.02, 10.37], [107.02, 11.16], [106.36, 10.37]]],
        },
    },
}


def client_for(handler, provinces_url=PROVINCES_URL, api_key="test-key"):
    return AdminBoundaryClient(
        provinces_url=provinces_url,
        api_key=api_key,
        geom_level="street",
        timeout=5,
        transport=httpx.MockTransport(handler),
    )


def json_handler(payload, seen=None, status_code=200):
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return httpx.Response(status_code, json=payload)

    return handler


# =========================
# Matching
# =========================
@pytest.mark.parametrize(
    "query, code",
    [
        ("Thành phố Hồ Chí Minh", "79"),
        ("ho chi minh", "79"),
        ("HỒ CHÍ MINH", "79"),
        ("Ho Chi Minh City", "79"),
        ("Da Nang city", "48"),
        ("đà nẵng", "48"),
        ("ranh giới Hà Nội", "01"),
        ("boundary ha noi", "01"),
        ("An Giang", "89"),
        ("tỉnh an giang", "89"),
    ],
)
def test_find_matching_province(query, code):
    assert find_matching_province(query, PROVINCES).code == code


@pytest.mark.parametrize("query", ["Quận 1", "Bến Thành market", "ranh giới", "", "hanoi tower"])
def test_find_matching_province_without_match(query):
    assert find_matching_province(query, PROVINCES) is None


def test_find_matching_province_with_empty_list():
    assert find_matching_province("Hà Nội", []) is None


# =========================
# Province list
# =========================
def test_provinces_are_fetched_once():
    seen = []
    payload = {
        "status": "OK",
        "data": [
            {"prov_code": "79", "prov_fname": "Thành phố Hồ Chí Minh", "prov_fne": "Ho Chi Minh City"},
            {"prov_fname": "no code"},
            {"prov_code": 1, "prov_fname": "Thành phố Hà Nội", "prov_fne": "Ha Noi City", "level": "TW"},
        ],
    }
    client = client_for(json_handler(payload, seen))

    async def main():
        first = await client.provinces()
        second = await client.provinces()
        return first, second

    first, second = asyncio.run(main())
    assert first is second
    assert [p.code for p in first] == ["79", "1"]
    assert first[1].level == "TW"
    assert len(seen) == 1
    assert seen[0].url.params["apikey"] == "test-key"
    assert seen[0].headers["app-version"] == "1.1"


def test_provinces_not_configured_makes_no_call():
    seen = []
    client = client_for(json_handler({"status": "OK", "data": []}, seen), provinces_url="")
    assert client.configured is False
    assert asyncio.run(client.provinces()) == []
    assert seen == []


def test_provinces_non_ok_status_is_empty_and_retried():
    seen = []
    client = client_for(json_handler({"status": "ERROR", "data": None}, seen))

    async def main():
        await client.provinces()
        return await client.provinces()

    assert asyncio.run(main()) == []
    assert len(seen) == 2


def test_provinces_http_error():
    client = client_for(json_handler({}, status_code=503))
    with pytest.raises(BoundaryUpstreamError) as exc:
        asyncio.run(client.provinces())
    assert exc.value.status == "HTTP_ERROR"
    assert exc.value.operation == "provinces"


# =========================
# Boundary geometry
# =========================
def test_boundary_is_parsed():
    seen = []
    client = client_for(json_handler(HCM_BOUNDARY, seen))
    boundary = asyncio.run(client.boundary("79"))

    assert seen[0].url.path == "/provinces/79"
    assert seen[0].url.params["geom_level"] == "street"
    assert boundary.code == "79"
    assert boundary.name_en == "Ho Chi Minh City"
    assert boundary.center == (10.77, 106.69)
    assert boundary.geometry["type"] == "Polygon"
    assert boundary.to_dict() == {
        "provCode": "79",
        "name": "Thành phố Hồ Chí Minh",
        "nameEn": "Ho Chi Minh City",
        "level": "Thành phố Trung ương",
        "geomLevel": "street",
        "center": {"lat": 10.77, "lng": 106.69},
        "viewport": HCM_BOUNDARY["data"]["viewport"],
    }


@pytest.mark.parametrize(
    "payload",
    [
        {"status": "ERROR", "data": HCM_BOUNDARY["data"]},
        {"status": "OK", "data": None},
        {"status": "OK", "data": {"prov_code": "79", "geom": {"type": "Polygon", "coordinates": []}}},
    ],
)
def test_boundary_invalid_data(payload):
    client = client_for(json_handler(payload))
    with pytest.raises(BoundaryUpstreamError) as exc:
        asyncio.run(client.boundary("79"))
    assert exc.value.status == "INVALID_RESPONSE"
    assert exc.value.operation == "province_boundary"


def test_boundary_not_configured():
    client = client_for(json_handler(HCM_BOUNDARY), api_key=None)
    with pytest.raises(BoundaryUpstreamError) as exc:
        asyncio.run(client.boundary("79"))
    assert exc.value.status == "CONFIG_ERROR"


def test_boundary_network_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(BoundaryUpstreamError) as exc:
        asyncio.run(client_for(handler).boundary("79"))
    assert exc.value.status == "NETWORK_ERROR"
