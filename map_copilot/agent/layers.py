from map_copilot.config import PUBLIC_BASE_URL
from map_copilot.services.boundaries import ProvinceBoundary
from map_copilot.services.places import ResolvedPlace
from map_copilot.services.tools import ToolResult


def _photo_url(photo_reference: str | None, maxwidth: int = 640) -> str | None:
    """
    The browser loads photos through our /places/photo proxy so the
    Google key never leaves the server.
    """
    if not photo_reference:
        return None
    base = (PUBLIC_BASE_URL or "").rstrip("/")
    return f"{base}/places/photo?ref={photo_reference}&maxwidth={maxwidth}"


def _open_label(open_now: bool | None) -> str:
    if open_now is True:
        return "open"
    if open_now is False:
        return "closed"
    return "unknown"


def place_to_feature(place: ResolvedPlace, role: str, color: str | None = None) -> dict:
    props = {
        "role": role,
        "name": place.name,
        "address": place.address,
        "rating": place.rating,
        "userRatingsTotal": place.user_ratings_total,
        "types": place.types,
        "openState": _open_label(place.open_now),
        "photoUrl": _photo_url(place.photo_reference),
    }
    if place.distance_m is not None:
        props["distanceMeters"] = round(place.distance_m)
    if color:
        props["color"] = color

    return {
        "type": "Feature",
        "geometry": {"type": "Point", "coordinates": [place.lng, place.lat]},
        "properties": props,
    }


def point_feature(lat: float, lng: float, role: str, **props) -> dict:
    return {
        "type": "Feature",
        "geometry": {"type": "Point", "coordinates": [lng, lat]},
        "properties": {"role": role, **props},
    }


def buffer_feature(ring: list[tuple[float, float]], radius_m: int) -> dict:
    return {
        "type": "Feature",
        "geometry": {"type": "Polygon", "coordinates": [[list(p) for p in ring]]},
        "properties": {"role": "nearby-buffer", "radiusMeters": radius_m},
    }


def route_feature(coordinates: list[tuple[float, float]]) -> dict:
    return {
        "type": "Feature",
        "geometry": {"type": "LineString", "coordinates": [list(p) for p in coordinates]},
        "properties": {"role": "directions-route"},
    }


def boundary_feature(boundary: ProvinceBoundary) -> dict:
    return {
        "type": "Feature",
        "geometry": boundary.geometry,
        "properties": {
            "role": "admin-boundary",
            "provCode": boundary.code,
            "name": boundary.name,
            "nameEn": boundary.name_en,
            "level": boundary.level,
            "viewport": boundary.viewport,
        },
    }


def build_layers(result: ToolResult) -> dict:
    """
    GeoJSON FeatureCollection for whatever the tool produced.

    Empty collection for tools with nothing to draw (getMapCenter, failures).
    """
    features: list[dict] = []
    render = result.render or {}

    nearby = render.get("nearby")
    if nearby is not None:
        features.append(buffer_feature(nearby.buffer, nearby.radius))
        features.append(
            point_feature(nearby.center.lat, nearby.center.lng, "nearby-center", label=nearby.center.label)
        )
        features.extend(place_to_feature(p, "nearby-place") for p in nearby.places)

    route = render.get("route")
    if route:
        features.append(route_feature(route))
        start_lng, start_lat = route[0]
        end_lng, end_lat = route[-1]
        features.append(point_feature(start_lat, start_lng, "directions-start", color="#22C55E"))
        features.append(point_feature(end_lat, end_lng, "directions-end", color="#EF4444"))

    marker = render.get("marker")
    if marker is not None:
        features.append(place_to_feature(marker, "search-place", color="#4F46E5"))

    boundary = render.get("boundary")
    if boundary is not None:
        features.append(boundary_feature(boundary))
        if boundary.center is not None:
            lat, lng = boundary.center
            features.append(point_feature(lat, lng, "boundary-center", name=boundary.name, color="#4338CA"))

    user = render.get("user")
    if user is not None:
        features.append(point_feature(user[0], user[1], "user-location"))

    return {"type": "FeatureCollection", "features": features}
