import logging
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field

from map_copilot.agent.layers import build_layers
from map_copilot.services.boundaries import AdminBoundaryClient
from map_copilot.services.context_store import ConversationContextStore
from map_copilot.services.llm_router import (
    PROMPT_VERSION,
    REQUEST_PROMPT,
    RESPONSE_PROMPT,
    LLMRouter,
    RoutingUpstreamError,
    build_messages,
)
from map_copilot.services.location import LocationResolver, StaticDevicePosition
from map_copilot.services.nearby import NearbySearchOrchestrator
from map_copilot.services.places import GooglePlacesClient
from map_copilot.services.request_cache import RequestCache, build_cache_key
from map_copilot.services.tools import MapToolbox

router = APIRouter()
logger = logging.getLogger("uvicorn.error")

# =========================
# Process-wide state (memory)
# =========================
_request_cache = RequestCache()
_context_store = ConversationContextStore()
_places_client = GooglePlacesClient()
_llm_router = LLMRouter()
_boundary_client = AdminBoundaryClient()


def get_request_cache() -> RequestCache:
    return _request_cache


def get_context_store() -> ConversationContextStore:
    return _context_store


def get_places_client():
    return _places_client


def get_llm_router():
    return _llm_router


def get_boundary_client():
    return _boundary_client


# =========================
# Request bodies
# =========================
class AgentMessage(BaseModel):
    role: Literal["user", "assistant", "system", "tool"]
    content: str
    tool_call_id: str | None = None


class AgentRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    messages: list[AgentMessage]
    response_only: bool = Field(default=False, alias="responseOnly")


class LatLng(BaseModel):
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)


class ToolRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(default="default", alias="sessionId", min_length=1)
    arguments: dict = Field(default_factory=dict)
    map_center: LatLng = Field(alias="mapCenter")
    zoom: float | None = None
    device_position: LatLng | None = Field(default=None, alias="devicePosition")
    device_position_error: Literal["denied", "unavailable", "timeout"] | None = Field(
        default=None, alias="devicePositionError"
    )


# =========================
# Routing (which tool to call)
# =========================
@router.post("/map-agent")
async def map_agent(
    body: AgentRequest,
    cache: RequestCache = Depends(get_request_cache),
    llm: LLMRouter = Depends(get_llm_router),
):
    system_prompt = RESPONSE_PROMPT if body.response_only else REQUEST_PROMPT
    messages = build_messages(
        system_prompt, [m.model_dump(exclude_none=True) for m in body.messages]
    )
    key = build_cache_key(llm.model, PROMPT_VERSION, messages)

    try:
        response, source = await cache.fetch(key, lambda: llm.route(messages, body.response_only))
    except RoutingUpstreamError as e:
        logger.error("map-agent upstream error: %s", e)
        raise HTTPException(status_code=500, detail=e.message)

    payload = {**response.to_dict(), "cached": source != "upstream"}
    if source != "upstream":
        payload["cacheSource"] = source
    return payload


# =========================
# Tool execution
# =========================
@router.post("/map-agent/tools/{name}")
async def run_tool(
    name: str,
    body: ToolRequest,
    contexts: ConversationContextStore = Depends(get_context_store),
    places=Depends(get_places_client),
    boundaries=Depends(get_boundary_client),
):
    device = StaticDevicePosition(
        lat=body.device_position.lat if body.device_position else None,
        lng=body.device_position.lng if body.device_position else None,
        error=body.device_position_error,
    )
    resolver = LocationResolver(places, device)
    toolbox = MapToolbox(
        places=places,
        resolver=resolver,
        nearby=NearbySearchOrchestrator(places, resolver, contexts),
        contexts=contexts,
        boundaries=boundaries,
    )

    if name not in toolbox.tool_names:
        raise HTTPException(status_code=404, detail=f'Tool "{name}" is not supported.')

    result = await toolbox.execute(
        body.session_id,
        name,
        body.arguments,
        map_center=(body.map_center.lat, body.map_center.lng),
        zoom=body.zoom,
    )
    return {**result.to_dict(), "layers": build_layers(result)}
