"""
Nearby search orchestration.

One call runs these steps, always in this order:

1. decide whether to reuse the session's previous search (no keyword, no type)
2. fail early when there is still nothing to search for
3. resolve the center (reused, map center, device position or text search)
4. normalize radius and minimum rating
5. ask the place directory (its radius is only a hint)
6. drop everything farther than the radius by haversine distance
7. drop everything below the minimum rating (unrated never passes)
8. sort by distance, directory order breaks ties
9. apply the requested limit
10. remember the search for follow-ups, even when nothing was found
11. build the buffer ring
"""

import dataclasses
import logging
from dataclasses import dataclass, field
from typing import Callable, Protocol

from map_copilot.config import BUFFER_SEGMENTS, CAMERA_KEYWORD_PATTERNS, MAX_NEARBY_RESULTS
from map_copilot.services.context_store import ConversationContextStore, NearbySearchContext
from map_copilot.services.errors import MissingSearchTermError
from map_copilot.services.geo import (
    buffer_area_km2,
    build_buffer_polygon,
    haversine_distance_m,
    normalize_location_text,
    normalize_min_rating,
    normalize_radius,
)
from map_copilot.services.location import LocationResolver, ResolvedLocation
from map_copilot.services.places import ResolvedPlace
from map_copilot.services.ranking import apply_limit, normalize_limit, sort_by_distance

logger = logging.getLogger("uvicorn.error")

TRAFFIC_CAMERA_TYPE = "traffic_camera"


class PlaceDirectory(Protocol):
    async def nearby_search(
        self,
        lat: float,
        lng: float,
        keyword: str | None = None,
        place_type: str | None = None,
        radius: int = 1000,
    ) -> list[ResolvedPlace]: ...


def is_traffic_camera_request(keyword: str | None, place_type: str | None) -> bool:
    if place_type == TRAFFIC_CAMERA_TYPE:
        return True
    if place_type or not keyword:
        return False
    normalized = normalize_location_text(keyword)
    return any(pattern in normalized for pattern in CAMERA_KEYWORD_PATTERNS)


@dataclass
class NearbySearchResult:
    center: ResolvedLocation
    keyword: str | None
    place_type: str | None
    radius: int
    min_rating: float | None
    requested_limit: int | None
    raw_count: int
    filtered_out_count: int
    rating_filtered_out_count: int
    total_found: int
    places: list[ResolvedPlace] = field(default_factory=list)
    buffer: list[tuple[float, float]] = field(default_factory=list)
    reused_context: bool = False

    @property
    def shown(self) -> int:
        return len(self.places)

    @property
    def buffer_area_km2(self) -> float:
        return buffer_area_km2(self.radius)

    def to_dict(self) -> dict:
        return {
            "center": self.center.to_dict(),
            "radius": self.radius,
            "bufferAreaKm2": self.buffer_area_km2,
            "keyword": self.keyword,
            "type": self.place_type,
            "minRating": self.min_rating,
            "requestedLimit": self.requested_limit,
            "rawCount": self.raw_count,
            "filteredOutCount": self.filtered_out_count,
            "ratingFilteredOutCount": self.rating_filtered_out_count,
            "totalFound": self.total_found,
            "shown": self.shown,
            "reusedContext": self.reused_context,
            "places": [
                {
                    "name": p.name,
                    "address": p.address,
                    "rating": p.rating,
                    "userRatingsTotal": p.user_ratings_total,
                    "openNow": p.open_now,
                    "businessStatus": p.business_status,
                    "distanceMeters": round(p.distance_m),
                    "lat": p.lat,
                    "lng": p.lng,
                    "photoReference": p.photo_reference,
                }
                for p in self.places
            ],
        }


class NearbySearchOrchestrator:
    def __init__(
        self,
        directory: PlaceDirectory,
        resolver: LocationResolver,
        contexts: ConversationContextStore,
        camera_directory: PlaceDirectory | None = None,
        is_camera_request: Callable[[str | None, str | None], bool] = is_traffic_camera_request,
        max_results: int = MAX_NEARBY_RESULTS,
        buffer_segments: int = BUFFER_SEGMENTS,
    ):
        self.directory = directory
        self.resolver = resolver
        self.contexts = contexts
        self.camera_directory = camera_directory
        self.is_camera_request = is_camera_request
        self.max_results = max_results
        self.buffer_segments = buffer_segments

    def _pick_directory(self, keyword: str | None, place_type: str | None) -> tuple[PlaceDirectory, str | None]:
        if self.camera_directory is not None and self.is_camera_request(keyword, place_type):
            return self.camera_directory, TRAFFIC_CAMERA_TYPE
        return self.directory, place_type

    async def search(
        self,
        session_id: str,
        *,
        keyword: str | None = None,
        place_type: str | None = None,
        radius=None,
        min_rating=None,
        location: str | None = None,
        limit=None,
        map_center: tuple[float, float],
    ) -> NearbySearchResult:
        async with self.contexts.session_lock(session_id):
            return await self._search(
                session_id,
                keyword=keyword,
                place_type=place_type,
                radius=radius,
                min_rating=min_rating,
                location=location,
                limit=limit,
                map_center=map_center,
            )

    async def _search(self, session_id, *, keyword, place_type, radius, min_rating, location, limit, map_center):
        keyword = (keyword or "").strip() or None
        place_type = (place_type or "").strip() or None
        location = (location or "").strip() or None

        # ① follow-up reuse
        previous = self.contexts.get(session_id)
        reuse = keyword is None and place_type is None and previous is not None
        if reuse:
            keyword = previous.keyword
            place_type = previous.place_type
            if radius is None:
                radius = previous.radius
            if min_rating is None:
                min_rating = previous.min_rating

        # ② never send an unconstrained query
        if keyword is None and place_type is None:
            raise MissingSearchTermError()

        # ③ center
        if reuse and location is None:
            center = ResolvedLocation(previous.lat, previous.lng, previous.label)
        else:
            center = await self.resolver.resolve(location, map_center)

        # ④ normalization
        radius = normalize_radius(radius)
        min_rating = normalize_min_rating(min_rating)
        requested_limit = normalize_limit(limit, self.max_results)

        # ⑤ directory
        directory, stored_type = self._pick_directory(keyword, place_type)
        candidates = await directory.nearby_search(
            lat=center.lat,
            lng=center.lng,
            keyword=keyword,
            place_type=place_type,
            radius=radius,
        )

        # ⑥ strict radius
        in_radius = []
        for place in candidates:
            distance = haversine_distance_m(center.lat, center.lng, place.lat, place.lng)
            if distance <= radius:
                in_radius.append(dataclasses.replace(place, distance_m=distance))

        # ⑦ rating
        if min_rating is None:
            rated = in_radius
        else:
            rated = [p for p in in_radius if p.rating is not None and p.rating >= min_rating]

        # ⑧ ⑨ order and limit
        ordered = sort_by_distance(rated)
        visible = apply_limit(ordered, requested_limit)

        # ⑩ follow-up context, also for empty results
        self.contexts.set(
            session_id,
            NearbySearchContext(
                keyword=keyword,
                place_type=stored_type,
                radius=radius,
                min_rating=min_rating,
                lat=center.lat,
                lng=center.lng,
                label=center.label,
            ),
        )

        logger.info(
            "nearby search session=%s keyword=%s type=%s radius=%s raw=%s outside=%s below_rating=%s",
            session_id,
            keyword,
            stored_type,
            radius,
            len(candidates),
            len(candidates) - len(in_radius),
            len(in_radius) - len(rated),
        )

        # ⑪ buffer
        return NearbySearchResult(
            center=center,
            keyword=keyword,
            place_type=stored_type,
            radius=radius,
            min_rating=min_rating,
            requested_limit=requested_limit,
            raw_count=len(candidates),
            filtered_out_count=len(candidates) - len(in_radius),
            rating_filtered_out_count=len(in_radius) - len(rated),
            total_found=len(ordered),
            places=visible,
            buffer=build_buffer_polygon(center.lat, center.lng, radius, self.buffer_segments),
            reused_context=reuse,
        )
