import math

from map_copilot.config import MAX_NEARBY_RESULTS
from map_copilot.services.places import ResolvedPlace


def sort_by_distance(items: list[ResolvedPlace]) -> list[ResolvedPlace]:
    # sorted() is stable: equal distances keep the directory's order
    return sorted(items, key=lambda x: x.distance_m)


def normalize_limit(limit, maximum: int = MAX_NEARBY_RESULTS) -> int | None:
    """
    Result count the user asked for, or None for "show everything".

    Accepts numbers and numeric strings (LLM arguments are not always typed).
    """
    if isinstance(limit, bool):
        return None
    if isinstance(limit, str):
        try:
            limit = float(limit.strip()) if limit.strip() else None
        except ValueError:
            return None
    if not isinstance(limit, (int, float)) or not math.isfinite(limit):
        return None

    rounded = math.floor(limit)
    if rounded <= 0:
        return None
    return min(maximum, rounded)


def apply_limit(items: list[ResolvedPlace], limit: int | None) -> list[ResolvedPlace]:
    return list(items) if limit is None else items[:limit]
