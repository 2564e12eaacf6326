import math
import unicodedata

import polyline

from map_copilot.config import (
    BUFFER_SEGMENTS,
    CURRENT_LOCATION_PATTERNS,
    DEFAULT_DIRECTIONS_MODE,
    DEFAULT_NEARBY_RADIUS,
    DIRECTIONS_MODES,
    EARTH_RADIUS_M,
    MAX_NEARBY_RADIUS,
    MIN_NEARBY_RADIUS,
)


class PolylineDecodeError(ValueError):
    pass


def _is_number(value) -> bool:
    # bool is an int subclass; a stray True must not become a 1 m radius
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


# ==================================================
# Distance / buffer
# ==================================================
def haversine_distance_m(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """
    Great-circle distance in meters.

    This is the ground truth for "inside the search radius": the place
    directory's own radius parameter over-includes.
    """
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_M * c


def build_buffer_polygon(
    lat: float,
    lng: float,
    radius_m: float,
    segments: int = BUFFER_SEGMENTS,
) -> list[tuple[float, float]]:
    """
    Closed ring of (lng, lat) pairs approximating a circle around the center.

    Each vertex is a spherical destination point at angular distance
    radius / earth radius, so the ring stays round near the poles too.
    The ring has segments + 1 points and its last point is its first.
    """
    if segments < 3:
        raise ValueError("segments must be at least 3")

    angular = radius_m / EARTH_RADIUS_M
    lat_rad = math.radians(lat)
    lng_rad = math.radians(lng)

    ring: list[tuple[float, float]] = []
    for i in range(segments):
        bearing = 2 * math.pi * i / segments
        sin_lat = (
            math.sin(lat_rad) * math.cos(angular)
            + math.cos(lat_rad) * math.sin(angular) * math.cos(bearing)
        )
        point_lat = math.asin(max(-1.0, min(1.0, sin_lat)))
        point_lng = lng_rad + math.atan2(
            math.sin(bearing) * math.sin(angular) * math.cos(lat_rad),
            math.cos(angular) - math.sin(lat_rad) * math.sin(point_lat),
        )
        ring.append((math.degrees(point_lng), math.degrees(point_lat)))

    ring.append(ring[0])
    return ring


def buffer_area_km2(radius_m: float) -> float:
    return round(math.pi * (radius_m / 1000) ** 2, 2)


# ==================================================
# Encoded polyline (precision 1e5)
# ==================================================
# polyline.decode accepts any character; reject those outside the alphabet
_POLYLINE_CHARS = frozenset(chr(c) for c in range(63, 127))


def decode_polyline(encoded: str) -> list[tuple[float, float]]:
    """Decode an encoded polyline into (lng, lat) pairs."""
    try:
        for offset, char in enumerate(encoded):
            if char not in _POLYLINE_CHARS:
                raise PolylineDecodeError(f"invalid polyline character at offset {offset}")
        return [tuple(p) for p in polyline.decode(encoded, 5, geojson=True)]
    except IndexError as e:
        raise PolylineDecodeError("truncated polyline") from e
    except PolylineDecodeError:
        raise
    except (TypeError, ValueError) as e:
        raise PolylineDecodeError(f"malformed polyline: {e}") from e


# ==================================================
# Argument normalization
# ==================================================
def normalize_radius(value) -> int:
    if not _is_number(value):
        return DEFAULT_NEARBY_RADIUS
    return min(MAX_NEARBY_RADIUS, max(MIN_NEARBY_RADIUS, _round_half_up(value)))


def normalize_min_rating(value) -> float | None:
    if not _is_number(value):
        return None
    bounded = min(5.0, max(0.0, float(value)))
    return _round_half_up(bounded * 10) / 10


def normalize_directions_mode(mode: str | None) -> str:
    if not mode:
        return DEFAULT_DIRECTIONS_MODE
    normalized = mode.strip().lower()
    return normalized if normalized in DIRECTIONS_MODES else DEFAULT_DIRECTIONS_MODE


def to_google_directions_mode(mode: str) -> str:
    # Google Directions has no motorbike mode
    return "driving" if mode == "motorbike" else mode


# ==================================================
# Location text
# ==================================================
def normalize_location_text(value: str) -> str:
    value = value.lower().replace("đ", "d")
    stripped = "".join(
        c for c in unicodedata.normalize("NFD", value) if not unicodedata.combining(c)
    )
    return " ".join(stripped.split())


def is_current_location_text(value: str | None) -> bool:
    if not value or not value.strip():
        return False
    normalized = normalize_location_text(value)
    return any(pattern in normalized for pattern in CURRENT_LOCATION_PATTERNS)
