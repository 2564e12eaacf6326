import json
import logging
from dataclasses import dataclass, field

from openai import AsyncOpenAI, OpenAIError

from map_copilot.config import (
    DIRECTIONS_MODES,
    NEARBY_PLACE_TYPES,
    OPENROUTER_API_KEY,
    OPENROUTER_APP_NAME,
    OPENROUTER_BASE_URL,
    OPENROUTER_MODEL,
    OPENROUTER_RESPONSE_MAX_TOKENS,
    OPENROUTER_SITE_URL,
    OPENROUTER_TOOL_MAX_TOKENS,
)
from map_copilot.services.errors import CollaboratorError

logger = logging.getLogger("uvicorn.error")

# bump when either prompt changes so old cache keys stop matching
PROMPT_VERSION = "2026-10-18"

REQUEST_PROMPT = """You are Map Copilot, an assistant that controls an interactive map.
Understand the user's map request and answer with the right tool call.
- Place names → searchPlace (also for provinces/cities and their boundaries).
- Routes from A to B → getDirections.
- "near me", "around", "nearby" → nearbySearch; for "near me" pass location "my location".
- For follow-up filters ("only 4 stars and up") call nearbySearch with just the new filter.
- "where am I" → getUserLocation. Map center questions → getMapCenter.
- Only answer in plain text for greetings or clarifying questions, in one short sentence."""

RESPONSE_PROMPT = """You are Map Copilot. The map tools have already run.
Summarize the tool results for the user in one or two short sentences.
Mention counts and the search radius when a nearby search ran. Do not call tools."""

MAP_TOOL_SCHEMAS = [
    {
        "type": "function",
        "function": {
            "name": "searchPlace",
            "description": (
                "Search for a place by name or address and fly the map there. "
                "A province or city name shows its administrative boundary instead."
            ),
            "parameters": {
                "type": "object",
                "properties": {"query": {"type": "string", "description": "Place name or address."}},
                "required": ["query"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "getDirections",
            "description": "Find a route between two places and draw it on the map.",
            "parameters": {
                "type": "object",
                "properties": {
                    "from": {"type": "string", "description": 'Start place, or "my location".'},
                    "to": {"type": "string", "description": 'Destination, or "my location".'},
                    "mode": {"type": "string", "enum": list(DIRECTIONS_MODES)},
                },
                "required": ["from", "to"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "nearbySearch",
            "description": (
                "Find places near a location, filtered strictly to the radius, with an optional "
                "minimum rating and result count. At least one of keyword or type is needed, "
                "except for follow-up filters which reuse the previous nearby search. "
                "Traffic cameras have no place type: pass them as a keyword "
                '(e.g. "traffic camera").'
            ),
            "parameters": {
                "type": "object",
                "properties": {
                    "keyword": {"type": "string"},
                    "type": {"type": "string", "enum": list(NEARBY_PLACE_TYPES)},
                    "location": {
                        "type": "string",
                        "description": 'Center place, or "my location". Omit for the map center.',
                    },
                    "radius": {"type": "number", "description": "Meters, 100-50000. Default 1000."},
                    "minRating": {"type": "number", "description": "Minimum rating from 0 to 5."},
                    "limit": {"type": "number", "description": "Only when the user asks for N results."},
                },
                "required": [],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "getUserLocation",
            "description": "Get the user's current GPS location and fly there.",
            "parameters": {"type": "object", "properties": {}, "required": []},
        },
    },
    {
        "type": "function",
        "function": {
            "name": "getMapCenter",
            "description": "Return the current map center and zoom level.",
            "parameters": {"type": "object", "properties": {}, "required": []},
        },
    },
]


class RoutingUpstreamError(CollaboratorError):
    pass


@dataclass(frozen=True)
class ToolCall:
    id: str
    name: str
    arguments: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "arguments": dict(self.arguments)}


@dataclass(frozen=True)
class RoutingResponse:
    reply: str
    tool_calls: tuple[ToolCall, ...] = ()
    finish_reason: str | None = None

    def to_dict(self) -> dict:
        return {
            "reply": self.reply,
            "toolCalls": [tc.to_dict() for tc in self.tool_calls],
            "finishReason": self.finish_reason,
        }


def safe_parse_json_object(raw: str | None) -> dict:
    try:
        parsed = json.loads(raw or "")
    except ValueError:
        return {}
    return parsed if isinstance(parsed, dict) else {}


def build_messages(system_prompt: str, incoming: list[dict]) -> list[dict]:
    """System prompt + chat history in chat-completions shape."""
    messages = [{"role": "system", "content": system_prompt}]
    for m in incoming:
        if m["role"] == "tool":
            messages.append(
                {"role": "tool", "content": m["content"], "tool_call_id": m.get("tool_call_id") or ""}
            )
        else:
            messages.append({"role": m["role"], "content": m["content"]})
    return messages


class LLMRouter:
    def __init__(self, client: AsyncOpenAI | None = None, model: str = OPENROUTER_MODEL):
        self._client = client
        self.model = model

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            if not OPENROUTER_API_KEY:
                raise RoutingUpstreamError("OPENROUTER_API_KEY is not configured", "route")
            self._client = AsyncOpenAI(
                api_key=OPENROUTER_API_KEY,
                base_url=OPENROUTER_BASE_URL,
                default_headers={"HTTP-Referer": OPENROUTER_SITE_URL, "X-Title": OPENROUTER_APP_NAME},
            )
        return self._client

    async def route(self, messages: list[dict], response_only: bool = False) -> RoutingResponse:
        kwargs = {"model": self.model, "messages": messages, "temperature": 0.1}
        if response_only:
            kwargs["max_tokens"] = OPENROUTER_RESPONSE_MAX_TOKENS
        else:
            kwargs.update(
                tools=MAP_TOOL_SCHEMAS,
                tool_choice="auto",
                max_tokens=OPENROUTER_TOOL_MAX_TOKENS,
            )

        try:
            completion = await self.client.chat.completions.create(**kwargs)
        except OpenAIError as e:
            logger.error("routing call failed: %s", e)
            raise RoutingUpstreamError(f"OpenRouter API error: {e}", "route") from e

        if not completion.choices:
            raise RoutingUpstreamError("OpenRouter returned no choices", "route")
        choice = completion.choices[0]

        tool_calls = ()
        if not response_only:
            tool_calls = tuple(
                ToolCall(
                    id=tc.id,
                    name=tc.function.name,
                    arguments=safe_parse_json_object(tc.function.arguments),
                )
                for tc in (choice.message.tool_calls or [])
            )

        return RoutingResponse(
            reply=(choice.message.content or "").strip(),
            tool_calls=tool_calls,
            finish_reason=choice.finish_reason,
        )
