"""
Administrative boundaries (province / city level).

searchPlace first tries to match the query against the province list; a
match shows the province's boundary polygon instead of a text-search marker.
Districts and wards are never matched.
"""

import logging
from dataclasses import dataclass, field

import httpx

from map_copilot.config import (
    ADMIN_BOUNDARY_API_KEY,
    ADMIN_BOUNDARY_GEOM_LEVEL,
    ADMIN_BOUNDARY_PROVINCES_URL,
    HTTP_TIMEOUT_SEC,
)
from map_copilot.services.errors import CollaboratorError
from map_copilot.services.geo import normalize_location_text

logger = logging.getLogger("uvicorn.error")

# stripped from official names before comparing
PROVINCE_PREFIXES = ("thanh pho", "tinh", "tp.", "tp")
# stripped from what the user typed
QUERY_PREFIXES = (
    "thanh pho",
    "tinh",
    "tp.",
    "tp ",
    "ranh gioi hanh chinh",
    "ranh gioi",
    "rghc",
    "boundary",
)


class BoundaryUpstreamError(CollaboratorError):
    def __init__(self, status: str, message: str | None = None, operation: str | None = None):
        self.status = status
        super().__init__(f"{status}: {message}", operation)


@dataclass(frozen=True)
class Province:
    code: str
    name: str
    name_en: str
    level: str | None = None


@dataclass
class ProvinceBoundary:
    code: str
    name: str
    name_en: str
    level: str | None
    geom_level: str | None
    center: tuple[float, float] | None  # (lat, lng)
    viewport: dict | None
    geometry: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "provCode": self.code,
            "name": self.name,
            "nameEn": self.name_en,
            "level": self.level,
            "geomLevel": self.geom_level,
            "center": {"lat": self.center[0], "lng": self.center[1]} if self.center else None,
            "viewport": self.viewport,
        }


def _strip_prefix(normalized: str, prefixes) -> str:
    for prefix in prefixes:
        if normalized.startswith(prefix):
            return normalized[len(prefix):].strip()
    return normalized


def find_matching_province(query: str, provinces: list[Province]) -> Province | None:
    """
    Province whose name matches the query, ignoring case, diacritics and
    prefixes like "thanh pho" / "tinh" / "boundary". None when nothing matches.
    """
    if not query or not provinces:
        return None

    normalized_query = normalize_location_text(query)
    stripped_query = _strip_prefix(normalized_query, QUERY_PREFIXES)
    if not stripped_query:
        return None

    for province in provinces:
        name = normalize_location_text(province.name)
        name_en = normalize_location_text(province.name_en)

        if normalized_query in (name, name_en):
            return province
        # "ho chi minh" matches "thanh pho ho chi minh"
        if stripped_query == _strip_prefix(name, PROVINCE_PREFIXES):
            return province
        # "da nang" matches "da nang city"
        for suffix in (" city", " province"):
            if name_en.endswith(suffix):
                name_en = name_en[: -len(suffix)].strip()
                break
        if stripped_query == name_en:
            return province

    return None


def _parse_center(raw) -> tuple[float, float] | None:
    if not isinstance(raw, dict):
        return None
    lat, lng = raw.get("lat"), raw.get("lng")
    if isinstance(lat, (int, float)) and isinstance(lng, (int, float)):
        return float(lat), float(lng)
    return None


class AdminBoundaryClient:
    """
    Province list and boundary geometry over the admin-boundary JSON API.

    The province list is fetched once and kept for the life of the process.
    """

    def __init__(
        self,
        provinces_url: str = ADMIN_BOUNDARY_PROVINCES_URL,
        api_key: str | None = ADMIN_BOUNDARY_API_KEY,
        geom_level: str = ADMIN_BOUNDARY_GEOM_LEVEL,
        timeout: float = HTTP_TIMEOUT_SEC,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.provinces_url = (provinces_url or "").rstrip("/")
        self.api_key = api_key
        self.geom_level = geom_level
        self.timeout = timeout
        self._transport = transport
        self._provinces: list[Province] | None = None

    @property
    def configured(self) -> bool:
        return bool(self.provinces_url and self.api_key)

    async def _get_json(self, url: str, params: dict, operation: str) -> dict:
        if not self.configured:
            raise BoundaryUpstreamError("CONFIG_ERROR", "admin boundary API is not configured", operation)

        params = {**params, "apikey": self.api_key}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                r = await client.get(url, params=params, headers={"app-version": "1.1"})
                r.raise_for_status()
                return r.json()
        except httpx.HTTPStatusError as e:
            raise BoundaryUpstreamError("HTTP_ERROR", str(e.response.status_code), operation) from e
        except httpx.HTTPError as e:
            raise BoundaryUpstreamError("NETWORK_ERROR", str(e) or type(e).__name__, operation) from e
        except ValueError as e:
            raise BoundaryUpstreamError("INVALID_RESPONSE", "response is not JSON", operation) from e

    # =========================
    # Province list
    # =========================
    async def provinces(self) -> list[Province]:
        if self._provinces is not None:
            return self._provinces
        if not self.configured:
            return []

        data = await self._get_json(self.provinces_url, {}, "provinces")
        items = data.get("data")
        if data.get("status") != "OK" or not isinstance(items, list):
            logger.error("unexpected provinces response: status=%s", data.get("status"))
            return []

        provinces = []
        for item in items:
            if not isinstance(item, dict) or not item.get("prov_code"):
                continue
            provinces.append(
                Province(
                    code=str(item["prov_code"]),
                    name=item.get("prov_fname") or "",
                    name_en=item.get("prov_fne") or "",
                    level=item.get("level"),
                )
            )
        self._provinces = provinces
        logger.info("loaded %s provinces", len(provinces))
        return provinces

    # =========================
    # Boundary geometry
    # =========================
    async def boundary(self, code: str) -> ProvinceBoundary:
        data = await self._get_json(
            f"{self.provinces_url}/{code}", {"geom_level": self.geom_level}, "province_boundary"
        )
        item = data.get("data")
        geometry = item.get("geom") if isinstance(item, dict) else None
        if data.get("status") != "OK" or not isinstance(geometry, dict) or not geometry.get("coordinates"):
            raise BoundaryUpstreamError("INVALID_RESPONSE", "boundary data is not valid", "province_boundary")

        return ProvinceBoundary(
            code=str(item.get("prov_code") or code),
            name=item.get("prov_fname") or "",
            name_en=item.get("prov_fne") or "",
            level=item.get("level"),
            geom_level=item.get("geomLevel"),
            center=_parse_center(item.get("center")),
            viewport=item.get("viewport") if isinstance(item.get("viewport"), dict) else None,
            geometry=geometry,
        )
