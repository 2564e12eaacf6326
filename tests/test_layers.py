import asyncio

from map_copilot.agent.layers import build_layers
from map_copilot.services.boundaries import ProvinceBoundary
from map_copilot.services.tools import ToolResult
from tests.conftest import BEN_THANH, place_north_of


def roles(collection):
    return [f["properties"]["role"] for f in collection["features"]]


def test_nothing_to_draw():
    assert build_layers(ToolResult(False, "failed")) == {"type": "FeatureCollection", "features": []}


def test_nearby_layers(make_orchestrator, fake_places):
    result = asyncio.run(
        make_orchestrator(fake_places).search("s1", keyword="cafe", radius=500, limit=2, map_center=BEN_THANH)
    )
    layers = build_layers(ToolResult(True, "ok", render={"nearby": result}))

    assert roles(layers) == ["nearby-buffer", "nearby-center", "nearby-place", "nearby-place"]
    buffer = layers["features"][0]
    assert buffer["geometry"]["type"] == "Polygon"
    ring = buffer["geometry"]["coordinates"][0]
    assert ring[0] == ring[-1]
    assert buffer["properties"]["radiusMeters"] == 500
    first = layers["features"][2]
    assert first["properties"]["name"] == "a"
    assert first["properties"]["distanceMeters"] == 50
    assert first["geometry"]["coordinates"][0] == BEN_THANH[1]


def test_route_layers():
    route = [(106.7, 10.77), (106.71, 10.78), (106.72, 10.79)]
    layers = build_layers(ToolResult(True, "ok", render={"route": route}))
    assert roles(layers) == ["directions-route", "directions-start", "directions-end"]
    assert layers["features"][0]["geometry"]["coordinates"] == [list(p) for p in route]
    assert layers["features"][1]["geometry"]["coordinates"] == [106.7, 10.77]
    assert layers["features"][2]["geometry"]["coordinates"] == [106.72, 10.79]


def test_marker_and_user_layers():
    place = place_north_of(BEN_THANH, 0, "Ben Thanh")
    place.photo_reference = "ref-1"
    place.open_now = False
    layers = build_layers(ToolResult(True, "ok", render={"marker": place, "user": (10.5, 106.25)}))

    marker, user = layers["features"]
    assert marker["properties"]["role"] == "search-place"
    assert marker["properties"]["openState"] == "closed"
    assert marker["properties"]["photoUrl"].endswith("/places/photo?ref=ref-1&maxwidth=640")
    assert "distanceMeters" not in marker["properties"]
    assert user["geometry"]["coordinates"] == [106.25, 10.5]
    assert user["properties"]["role"] == "user-location"


def test_boundary_layers():
    geometry = {
        "type": "MultiPolygon",
        "coordinates": [[[[106.3, 10.3], [107.0, 10.3], [107.0, 11.1], [106.3, 10.3]]]],
    }
    boundary = ProvinceBoundary(
        code="79",
        name="Thành phố Hồ Chí Minh",
        name_en="Ho Chi Minh City",
        level=None,
        geom_level="street",
        center=(10.77, 106.69),
        viewport=None,
        geometry=geometry,
    )
    layers = build_layers(ToolResult(True, "ok", render={"boundary": boundary}))

    assert roles(layers) == ["admin-boundary", "boundary-center"]
    polygon, center = layers["features"]
    assert polygon["geometry"] is geometry
    assert polygon["properties"]["provCode"] == "79"
    assert polygon["properties"]["nameEn"] == "Ho Chi Minh City"
    assert center["geometry"]["coordinates"] == [106.69, 10.77]


def test_boundary_without_center_draws_only_the_polygon():
    boundary = ProvinceBoundary("01", "Hà Nội", "Ha Noi", None, None, None, None, {"type": "Polygon", "coordinates": []})
    layers = build_layers(ToolResult(True, "ok", render={"boundary": boundary}))
    assert roles(layers) == ["admin-boundary"]
