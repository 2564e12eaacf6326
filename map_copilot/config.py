import os

from dotenv import load_dotenv

load_dotenv()


def _int_env(name: str, fallback: int) -> int:
    value = os.getenv(name)
    if not value:
        return fallback
    try:
        return int(value)
    except ValueError:
        return fallback


def _float_env(name: str, fallback: float) -> float:
    value = os.getenv(name)
    if not value:
        return fallback
    try:
        return float(value)
    except ValueError:
        return fallback


# =========================
# Google Maps Platform
# =========================
GOOGLE_PLACES_API_KEY = os.getenv("GOOGLE_PLACES_API_KEY")
GOOGLE_TEXT_SEARCH_URL = "https://maps.googleapis.com/maps/api/place/textsearch/json"
GOOGLE_NEARBY_URL = "https://maps.googleapis.com/maps/api/place/nearbysearch/json"
GOOGLE_DIRECTIONS_URL = "https://maps.googleapis.com/maps/api/directions/json"
GOOGLE_PHOTO_URL = "https://maps.googleapis.com/maps/api/place/photo"

MAP_LANGUAGE = os.getenv("MAP_LANGUAGE", "vi")
HTTP_TIMEOUT_SEC = _float_env("HTTP_TIMEOUT_SEC", 10.0)

# photo URLs handed to the map point back at our own /places/photo proxy
PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", "")

# =========================
# Administrative boundaries (provinces / cities)
# =========================
# searchPlace only matches provinces when both are set
ADMIN_BOUNDARY_PROVINCES_URL = os.getenv("ADMIN_BOUNDARY_PROVINCES_URL", "")
ADMIN_BOUNDARY_API_KEY = os.getenv("ADMIN_BOUNDARY_API_KEY")
ADMIN_BOUNDARY_GEOM_LEVEL = os.getenv("ADMIN_BOUNDARY_GEOM_LEVEL", "street")

# =========================
# OpenRouter (OpenAI compatible)
# =========================
OPENROUTER_API_KEY = os.getenv("OPENROUTER_API_KEY")
OPENROUTER_BASE_URL = os.getenv("OPENROUTER_BASE_URL", "https://openrouter.ai/api/v1")
OPENROUTER_MODEL = os.getenv("OPENROUTER_MODEL", "openai/gpt-4o-mini")
OPENROUTER_APP_NAME = os.getenv("OPENROUTER_APP_NAME", "Map Copilot")
OPENROUTER_SITE_URL = os.getenv("OPENROUTER_SITE_URL", "http://localhost:3000")
OPENROUTER_TOOL_MAX_TOKENS = _int_env("OPENROUTER_TOOL_MAX_TOKENS", 1024)
OPENROUTER_RESPONSE_MAX_TOKENS = _int_env("OPENROUTER_RESPONSE_MAX_TOKENS", 768)

# =========================
# Routing response cache
# =========================
CACHE_ENABLED = os.getenv("MAP_AGENT_CACHE_ENABLED") != "false"
CACHE_TTL_SEC = _int_env("MAP_AGENT_CACHE_TTL_MS", 5 * 60 * 1000) / 1000
CACHE_MAX_ENTRIES = _int_env("MAP_AGENT_CACHE_MAX_ENTRIES", 200)

# =========================
# Nearby search
# =========================
DEFAULT_NEARBY_RADIUS = 1000
MIN_NEARBY_RADIUS = 100
MAX_NEARBY_RADIUS = 50000
MAX_NEARBY_RESULTS = _int_env("MAX_NEARBY_RESULTS", 200)

EARTH_RADIUS_M = 6378137
BUFFER_SEGMENTS = _int_env("BUFFER_SEGMENTS", 72)

DEVICE_POSITION_TIMEOUT_SEC = _float_env("DEVICE_POSITION_TIMEOUT_SEC", 10.0)

DEFAULT_DIRECTIONS_MODE = "driving"
DIRECTIONS_MODES = ("driving", "walking", "bicycling", "transit", "motorbike")

# compared after lowercasing and stripping diacritics
CURRENT_LOCATION_PATTERNS = [
    "vi tri hien tai",
    "vi tri cua toi",
    "vi tri cua minh",
    "noi toi dang dung",
    "noi toi dang o",
    "dia diem hien tai",
    "my current location",
    "current location",
    "my location",
    "where i am",
    "where i am now",
]

CAMERA_KEYWORD_PATTERNS = [
    "camera",
    "camera giao thong",
    "cam giao thong",
    "traffic camera",
]

NEARBY_PLACE_TYPES = (
    "restaurant",
    "cafe",
    "hotel",
    "hospital",
    "school",
    "atm",
    "pharmacy",
    "bank",
    "store",
    "gas_station",
    "tourist_attraction",
    "airport",
    "shopping_mall",
    "supermarket",
)

# =========================
# Per-session follow-up context
# =========================
SESSION_CONTEXT_TTL_SEC = _int_env("SESSION_CONTEXT_TTL_SEC", 30 * 60)
SESSION_CONTEXT_MAX = _int_env("SESSION_CONTEXT_MAX", 10000)
