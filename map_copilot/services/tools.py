"""
Map tools the router can call, and the dispatcher that runs them.

Tools return data (coordinates, rings, route lines); drawing is the
browser's job. Every tool except nearbySearch clears the session's
nearby-search context before it runs.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from map_copilot.services.boundaries import (
    AdminBoundaryClient,
    BoundaryUpstreamError,
    Province,
    find_matching_province,
)
from map_copilot.services.context_store import ConversationContextStore
from map_copilot.services.errors import InvalidToolArgumentsError, MapToolError
from map_copilot.services.geo import (
    PolylineDecodeError,
    decode_polyline,
    is_current_location_text,
    normalize_directions_mode,
    to_google_directions_mode,
)
from map_copilot.services.location import CURRENT_LOCATION_LABEL, LocationResolver
from map_copilot.services.nearby import NearbySearchOrchestrator, NearbySearchResult
from map_copilot.services.places import PlacesUpstreamError

logger = logging.getLogger("uvicorn.error")

NEARBY_SEARCH = "nearbySearch"


@dataclass
class ToolResult:
    success: bool
    message: str
    data: dict | None = None
    # payload for the map layer builder; not sent back to the LLM
    render: Any = field(default=None, repr=False)

    def to_dict(self) -> dict:
        out = {"success": self.success, "message": self.message}
        if self.data is not None:
            out["data"] = self.data
        return out


def _required_text(args: dict, name: str) -> str:
    value = args.get(name)
    if not isinstance(value, str) or not value.strip():
        raise InvalidToolArgumentsError(f'"{name}" is required.')
    return value.strip()


def _optional_text(args: dict, name: str) -> str | None:
    value = args.get(name)
    if not isinstance(value, str):
        return None
    return value.strip() or None


def nearby_message(result: NearbySearchResult) -> str:
    where = f"within {result.radius} m of {result.center.label}"
    if result.total_found == 0:
        if result.raw_count == 0:
            return f"No nearby results {where}; the directory returned nothing."
        return (
            f"No nearby results {where}. The directory returned {result.raw_count} places "
            f"but none passed the current filters "
            f"({result.filtered_out_count} outside the radius, "
            f"{result.rating_filtered_out_count} below the minimum rating)."
        )
    if result.requested_limit is None:
        shown = f"Showing all {result.shown} on the map."
    else:
        shown = f"Showing {result.shown} on the map as requested."
    return f"Found {result.total_found} places {where}. {shown}"


class MapToolbox:
    def __init__(
        self,
        places,
        resolver: LocationResolver,
        nearby: NearbySearchOrchestrator,
        contexts: ConversationContextStore,
        boundaries: AdminBoundaryClient | None = None,
    ):
        self.places = places
        self.resolver = resolver
        self.nearby = nearby
        self.contexts = contexts
        self.boundaries = boundaries
        self._executors = {
            "searchPlace": self.search_place,
            "getDirections": self.get_directions,
            NEARBY_SEARCH: self.nearby_search,
            "getUserLocation": self.get_user_location,
            "getMapCenter": self.get_map_center,
        }

    @property
    def tool_names(self) -> list[str]:
        return list(self._executors)

    async def execute(
        self,
        session_id: str,
        name: str,
        args: dict | None,
        map_center: tuple[float, float],
        zoom: float | None = None,
    ) -> ToolResult:
        executor = self._executors.get(name)
        if executor is None:
            return ToolResult(False, f'Tool "{name}" is not supported.')

        if name != NEARBY_SEARCH:
            self.contexts.clear(session_id)

        try:
            return await executor(
                session_id=session_id, args=args or {}, map_center=map_center, zoom=zoom
            )
        except MapToolError as e:
            logger.error("tool %s failed (%s/%s): %s", name, e.kind, e.operation, e.message)
            return ToolResult(False, f'Tool "{name}" failed: {e.message}', {"error": e.to_dict()})

    # =========================
    # searchPlace
    # =========================
    async def _match_province(self, query: str) -> Province | None:
        if self.boundaries is None:
            return None
        try:
            provinces = await self.boundaries.provinces()
        except BoundaryUpstreamError as e:
            # without the province list searchPlace falls back to text search
            logger.warning("province list unavailable: %s", e.message)
            return None
        return find_matching_province(query, provinces)

    async def search_place(self, *, args, **_) -> ToolResult:
        query = _required_text(args, "query")

        province = await self._match_province(query)
        if province is not None:
            boundary = await self.boundaries.boundary(province.code)
            level = f", {boundary.level}" if boundary.level else ""
            return ToolResult(
                True,
                f"Showing the administrative boundary of {boundary.name} ({boundary.name_en}){level}.",
                boundary.to_dict(),
                render={"boundary": boundary},
            )

        place = await self.places.text_search(query)

        suffix = f" ({place.address})" if place.address != place.name else ""
        return ToolResult(
            True,
            f'Found "{query}" at {place.name}{suffix}.',
            place.to_dict(),
            render={"marker": place},
        )

    # =========================
    # getDirections
    # =========================
    async def _endpoint(self, text: str) -> tuple[str, str | None]:
        """(origin/destination for the API, display address)"""
        if is_current_location_text(text):
            lat, lng = await self.resolver.current_position()
            return f"{lat},{lng}", CURRENT_LOCATION_LABEL
        place = await self.places.text_search(text)
        return f"{place.lat},{place.lng}", place.address

    async def get_directions(self, *, args, **_) -> ToolResult:
        origin_text = _required_text(args, "from")
        destination_text = _required_text(args, "to")
        mode = normalize_directions_mode(args.get("mode"))

        origin, origin_address = await self._endpoint(origin_text)
        destination, destination_address = await self._endpoint(destination_text)

        route = await self.places.directions(origin, destination, to_google_directions_mode(mode))
        if route is None:
            return ToolResult(False, f'No route found from "{origin_text}" to "{destination_text}".')

        try:
            coordinates = decode_polyline(route.encoded_polyline)
        except PolylineDecodeError as e:
            raise PlacesUpstreamError("INVALID_RESPONSE", str(e), "directions") from e
        if len(coordinates) < 2:
            raise PlacesUpstreamError("INVALID_RESPONSE", "route has fewer than two points", "directions")

        note = None
        if mode == "motorbike":
            note = "There is no dedicated motorbike mode, so the route is estimated for driving."

        start = origin_address
        if origin_address != CURRENT_LOCATION_LABEL:
            start = route.start_address or origin_address
        end = destination_address
        if destination_address != CURRENT_LOCATION_LABEL:
            end = route.end_address or destination_address

        message = (
            f'Route ({mode}) from "{origin_text}" to "{destination_text}": '
            f"{route.distance_text}, about {route.duration_text}."
        )
        if note:
            message += f" {note}"

        return ToolResult(
            True,
            message,
            {
                "from": start,
                "to": end,
                "mode": mode,
                "distanceText": route.distance_text,
                "durationText": route.duration_text,
                "distanceMeters": route.distance_m,
                "durationSeconds": route.duration_sec,
                "points": len(coordinates),
                "modeNote": note,
            },
            render={"route": coordinates},
        )

    # =========================
    # nearbySearch
    # =========================
    async def nearby_search(self, *, session_id, args, map_center, **_) -> ToolResult:
        result = await self.nearby.search(
            session_id,
            keyword=_optional_text(args, "keyword"),
            place_type=_optional_text(args, "type"),
            radius=args.get("radius"),
            min_rating=args.get("minRating"),
            location=_optional_text(args, "location"),
            limit=args.get("limit"),
            map_center=map_center,
        )
        return ToolResult(True, nearby_message(result), result.to_dict(), render={"nearby": result})

    # =========================
    # getUserLocation / getMapCenter
    # =========================
    async def get_user_location(self, **_) -> ToolResult:
        lat, lng = await self.resolver.current_position()
        return ToolResult(
            True,
            f"Your location: [{lng:.4f}, {lat:.4f}]",
            {"lat": lat, "lng": lng},
            render={"user": (lat, lng)},
        )

    async def get_map_center(self, *, map_center, zoom, **_) -> ToolResult:
        lat, lng = map_center
        message = f"Current map center: [{lng:.4f}, {lat:.4f}]"
        if zoom is not None:
            message += f", zoom {zoom:.1f}"
        return ToolResult(True, message + ".", {"lat": lat, "lng": lng, "zoom": zoom})
