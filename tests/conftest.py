import math

import pytest

from map_copilot.config import EARTH_RADIUS_M
from map_copilot.services.context_store import ConversationContextStore
from map_copilot.services.location import LocationResolver, StaticDevicePosition
from map_copilot.services.nearby import NearbySearchOrchestrator
from map_copilot.services.places import DirectionsRoute, PlaceNotFoundError, PlacesUpstreamError, ResolvedPlace

BEN_THANH = (10.7769, 106.7009)
METERS_PER_DEGREE = 2 * math.pi * EARTH_RADIUS_M / 360


def place_north_of(center, meters, name, rating=None):
    """A place `meters` due north of center (pure latitude offset)."""
    return ResolvedPlace(
        lat=center[0] + meters / METERS_PER_DEGREE,
        lng=center[1],
        name=name,
        address=f"{name} street",
        place_id=f"id-{name}",
        rating=rating,
    )


class FakePlaces:
    def __init__(self, nearby=None, known=None, route=None, fail_nearby=False):
        self.nearby = list(nearby or [])
        self.known = dict(known or {})
        self.route = route
        self.fail_nearby = fail_nearby
        self.nearby_calls = []
        self.text_calls = []
        self.directions_calls = []

    async def text_search(self, query):
        self.text_calls.append(query)
        if query not in self.known:
            raise PlaceNotFoundError("ZERO_RESULTS", f'No result found for "{query}"', "text_search")
        lat, lng = self.known[query]
        return ResolvedPlace(lat=lat, lng=lng, name=query, address=f"{query}, Vietnam")

    async def nearby_search(self, lat, lng, keyword=None, place_type=None, radius=1000):
        self.nearby_calls.append(
            {"lat": lat, "lng": lng, "keyword": keyword, "place_type": place_type, "radius": radius}
        )
        if self.fail_nearby:
            raise PlacesUpstreamError("OVER_QUERY_LIMIT", "quota", "nearby_search")
        return list(self.nearby)

    async def directions(self, origin, destination, mode):
        self.directions_calls.append((origin, destination, mode))
        return self.route


@pytest.fixture
def contexts():
    return ConversationContextStore()


@pytest.fixture
def scenario_places():
    inside = [
        place_north_of(BEN_THANH, 450, "d", rating=3.9),
        place_north_of(BEN_THANH, 50, "a", rating=4.5),
        place_north_of(BEN_THANH, 310, "c", rating=None),
        place_north_of(BEN_THANH, 120, "b", rating=4.1),
        place_north_of(BEN_THANH, 200, "e", rating=4.8),
    ]
    outside = [
        place_north_of(BEN_THANH, 520, "x", rating=5.0),
        place_north_of(BEN_THANH, 700, "y", rating=4.9),
        place_north_of(BEN_THANH, 1500, "z", rating=4.0),
    ]
    return inside[:2] + outside[:1] + inside[2:] + outside[1:]


@pytest.fixture
def fake_places(scenario_places):
    return FakePlaces(
        nearby=scenario_places,
        known={"Ben Thanh Market": BEN_THANH, "Hoan Kiem Lake": (21.0287, 105.8524)},
        route=DirectionsRoute(
            encoded_polyline="_p~iF~ps|U_ulLnnqC_mqNvxq`@",
            distance_text="12 km",
            distance_m=12000,
            duration_text="20 mins",
            duration_sec=1200,
            start_address="Start St",
            end_address="End St",
        ),
    )


@pytest.fixture
def make_orchestrator(contexts):
    def _make(places, device=None, **kwargs):
        resolver = LocationResolver(places, device or StaticDevicePosition(), timeout=0.5)
        return NearbySearchOrchestrator(places, resolver, contexts, **kwargs)

    return _make
