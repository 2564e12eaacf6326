import asyncio
import logging
from dataclasses import dataclass
from typing import Protocol

from map_copilot.config import DEVICE_POSITION_TIMEOUT_SEC
from map_copilot.services.errors import CollaboratorError, MapToolError
from map_copilot.services.geo import is_current_location_text
from map_copilot.services.places import PlaceNotFoundError, ResolvedPlace

logger = logging.getLogger("uvicorn.error")

MAP_CENTER_LABEL = "current map center"
CURRENT_LOCATION_LABEL = "your current location"


# =========================
# Device position errors
# =========================
class PositionError(CollaboratorError):
    code = "unavailable"
    default_message = "Could not get your current location."

    def __init__(self, message: str | None = None, operation: str | None = "device_position"):
        super().__init__(message or self.default_message, operation)


class PositionDeniedError(PositionError):
    code = "denied"
    default_message = "Location access was denied. Allow location access and try again."


class PositionUnavailableError(PositionError):
    code = "unavailable"
    default_message = "Your device could not report its current location."


class PositionTimeoutError(PositionError):
    code = "timeout"
    default_message = "Timed out while waiting for your current location."


POSITION_ERRORS = {
    cls.code: cls for cls in (PositionDeniedError, PositionUnavailableError, PositionTimeoutError)
}


class LocationNotFoundError(MapToolError):
    pass


@dataclass(frozen=True)
class ResolvedLocation:
    lat: float
    lng: float
    label: str

    def to_dict(self) -> dict:
        return {"lat": self.lat, "lng": self.lng, "label": self.label}


class DevicePosition(Protocol):
    async def get_current_position(self, timeout: float) -> tuple[float, float]: ...


class PlaceLookup(Protocol):
    async def text_search(self, query: str) -> ResolvedPlace: ...


class StaticDevicePosition:
    """
    Position the browser already reported with the request.

    The browser runs the geolocation prompt; we only get its outcome:
    a coordinate, or one of the error codes denied / unavailable / timeout.
    """

    def __init__(self, lat: float | None = None, lng: float | None = None, error: str | None = None):
        self.lat = lat
        self.lng = lng
        self.error = error

    async def get_current_position(self, timeout: float) -> tuple[float, float]:
        if self.error:
            raise POSITION_ERRORS.get(self.error, PositionUnavailableError)()
        if self.lat is None or self.lng is None:
            raise PositionUnavailableError()
        return self.lat, self.lng


class LocationResolver:
    def __init__(
        self,
        places: PlaceLookup,
        device: DevicePosition | None = None,
        timeout: float = DEVICE_POSITION_TIMEOUT_SEC,
    ):
        self.places = places
        self.device = device or StaticDevicePosition()
        self.timeout = timeout

    async def current_position(self) -> tuple[float, float]:
        try:
            return await asyncio.wait_for(
                self.device.get_current_position(self.timeout), timeout=self.timeout
            )
        except asyncio.TimeoutError:
            logger.warning("device position timed out after %ss", self.timeout)
            raise PositionTimeoutError() from None

    async def resolve(
        self, location_text: str | None, map_center: tuple[float, float]
    ) -> ResolvedLocation:
        """
        Turn a free-form location reference into a coordinate and a label.

        - blank          → the map center the client sent
        - "my location"  → the device position (errors are surfaced, no fallback)
        - anything else  → best text-search match
        """
        if not location_text or not location_text.strip():
            return ResolvedLocation(map_center[0], map_center[1], MAP_CENTER_LABEL)

        if is_current_location_text(location_text):
            lat, lng = await self.current_position()
            return ResolvedLocation(lat, lng, CURRENT_LOCATION_LABEL)

        try:
            place = await self.places.text_search(location_text.strip())
        except PlaceNotFoundError as e:
            raise LocationNotFoundError(
                f'Could not find a place matching "{location_text.strip()}".', "text_search"
            ) from e
        return ResolvedLocation(place.lat, place.lng, place.address or place.name)
