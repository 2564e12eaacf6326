import math
from dataclasses import asdict, dataclass, field

import httpx

from map_copilot.config import (
    GOOGLE_DIRECTIONS_URL,
    GOOGLE_NEARBY_URL,
    GOOGLE_PHOTO_URL,
    GOOGLE_PLACES_API_KEY,
    GOOGLE_TEXT_SEARCH_URL,
    HTTP_TIMEOUT_SEC,
    MAP_LANGUAGE,
)
from map_copilot.services.errors import CollaboratorError


# =========================
# Google Places errors
# =========================
class PlacesUpstreamError(CollaboratorError):
    def __init__(self, status: str, message: str | None = None, operation: str | None = None):
        self.status = status
        super().__init__(f"{status}: {message}", operation)


class PlaceNotFoundError(PlacesUpstreamError):
    kind = "input"


@dataclass
class ResolvedPlace:
    lat: float
    lng: float
    name: str
    address: str
    place_id: str | None = None
    rating: float | None = None
    user_ratings_total: int | None = None
    types: list[str] = field(default_factory=list)
    open_now: bool | None = None
    business_status: str | None = None
    photo_reference: str | None = None
    # filled in by the nearby search, never by the directory
    distance_m: float | None = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class DirectionsRoute:
    encoded_polyline: str
    distance_text: str
    distance_m: int | None
    duration_text: str
    duration_sec: int | None
    start_address: str | None
    end_address: str | None


def _number(value):
    if isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value):
        return value
    return None


def _photo_reference(item: dict) -> str | None:
    photos = item.get("photos") or []
    ref = (photos[0] or {}).get("photo_reference") if photos else None
    if not isinstance(ref, str):
        return None
    return ref.strip() or None


def parse_place(item: dict, fallback_name: str = "Place") -> ResolvedPlace | None:
    """
    Google result → ResolvedPlace.

    Results without usable coordinates are dropped (None).
    """
    loc = (item.get("geometry") or {}).get("location") or {}
    lat = _number(loc.get("lat"))
    lng = _number(loc.get("lng"))
    if lat is None or lng is None:
        return None

    name = (item.get("name") or "").strip() or fallback_name
    address = (item.get("formatted_address") or item.get("vicinity") or "").strip() or name
    open_now = (item.get("opening_hours") or {}).get("open_now")

    return ResolvedPlace(
        lat=lat,
        lng=lng,
        name=name,
        address=address,
        place_id=item.get("place_id"),
        rating=_number(item.get("rating")),
        user_ratings_total=_number(item.get("user_ratings_total")),
        types=list(item.get("types") or []),
        open_now=open_now if isinstance(open_now, bool) else None,
        business_status=item.get("business_status"),
        photo_reference=_photo_reference(item),
    )


class GooglePlacesClient:
    """
    Place directory backed by the Google Places / Directions JSON APIs.

    Every method raises PlacesUpstreamError with the failing operation attached;
    the callers never see raw httpx errors.
    """

    def __init__(
        self,
        api_key: str | None = GOOGLE_PLACES_API_KEY,
        language: str = MAP_LANGUAGE,
        timeout: float = HTTP_TIMEOUT_SEC,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self.language = language
        self.timeout = timeout
        self._transport = transport

    async def _get_json(self, url: str, params: dict, operation: str) -> dict:
        if not self.api_key:
            raise PlacesUpstreamError("CONFIG_ERROR", "GOOGLE_PLACES_API_KEY is missing", operation)

        params = {**params, "language": self.language, "key": self.api_key}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                r = await client.get(url, params=params)
                r.raise_for_status()
                return r.json()
        except httpx.HTTPStatusError as e:
            raise PlacesUpstreamError("HTTP_ERROR", str(e.response.status_code), operation) from e
        except httpx.HTTPError as e:
            raise PlacesUpstreamError("NETWORK_ERROR", str(e) or type(e).__name__, operation) from e
        except ValueError as e:
            raise PlacesUpstreamError("INVALID_RESPONSE", "response is not JSON", operation) from e

    @staticmethod
    def _check_status(data: dict, operation: str) -> None:
        status = data.get("status")
        if status and status not in ("OK", "ZERO_RESULTS"):
            raise PlacesUpstreamError(status, data.get("error_message") or "unknown cause", operation)

    # ==================================================
    # Text Search: single best match
    # ==================================================
    async def text_search(self, query: str) -> ResolvedPlace:
        data = await self._get_json(GOOGLE_TEXT_SEARCH_URL, {"query": query}, "text_search")
        self._check_status(data, "text_search")

        results = data.get("results") or []
        if data.get("status") == "ZERO_RESULTS" or not results:
            raise PlaceNotFoundError("ZERO_RESULTS", f'No result found for "{query}"', "text_search")

        place = parse_place(results[0], fallback_name=query)
        if place is None:
            raise PlacesUpstreamError(
                "INVALID_RESPONSE", f'No valid coordinates for "{query}"', "text_search"
            )
        return place

    # ==================================================
    # Nearby Search
    # ==================================================
    # radius is only a hint to Google; callers re-check the distance
    async def nearby_search(
        self,
        lat: float,
        lng: float,
        keyword: str | None = None,
        place_type: str | None = None,
        radius: int = 1000,
    ) -> list[ResolvedPlace]:
        params = {"location": f"{lat},{lng}", "radius": radius}
        if keyword:
            params["keyword"] = keyword
        if place_type:
            params["type"] = place_type

        data = await self._get_json(GOOGLE_NEARBY_URL, params, "nearby_search")
        self._check_status(data, "nearby_search")

        places = []
        for item in data.get("results") or []:
            place = parse_place(item)
            if place is not None:
                places.append(place)
        return places

    # ==================================================
    # Directions
    # ==================================================
    async def directions(self, origin: str, destination: str, mode: str) -> DirectionsRoute | None:
        params = {"origin": origin, "destination": destination, "mode": mode}
        data = await self._get_json(GOOGLE_DIRECTIONS_URL, params, "directions")
        self._check_status(data, "directions")

        if data.get("status") == "ZERO_RESULTS":
            return None

        route = (data.get("routes") or [{}])[0]
        leg = (route.get("legs") or [{}])[0]
        points = (route.get("overview_polyline") or {}).get("points")
        if not points:
            raise PlacesUpstreamError("INVALID_RESPONSE", "route without polyline", "directions")

        distance = leg.get("distance") or {}
        duration = leg.get("duration") or {}
        return DirectionsRoute(
            encoded_polyline=points,
            distance_text=distance.get("text") or "unknown",
            distance_m=distance.get("value"),
            duration_text=duration.get("text") or "unknown",
            duration_sec=duration.get("value"),
            start_address=leg.get("start_address"),
            end_address=leg.get("end_address"),
        )


# ==================================================
# Place Photo
# ==================================================
# Returns the image itself, not JSON. Google answers with a redirect.
async def fetch_photo(photo_reference: str, maxwidth: int = 600) -> httpx.Response:
    if not GOOGLE_PLACES_API_KEY:
        raise PlacesUpstreamError("CONFIG_ERROR", "GOOGLE_PLACES_API_KEY is missing", "photo")

    params = {
        "photo_reference": photo_reference,
        "maxwidth": maxwidth,
        "key": GOOGLE_PLACES_API_KEY,
    }

    async with httpx.AsyncClient(timeout=HTTP_TIMEOUT_SEC, follow_redirects=True) as client:
        return await client.get(GOOGLE_PHOTO_URL, params=params)
