import json
import logging
import re
from typing import Any, Optional

from pydantic import ValidationError

from app.core.config import Settings, settings as default_settings
from app.models.schemas import (
    ChatResponse,
    Location,
    MobilityResponse,
    RealTimeUpdates,
    Route,
    RouteAccessibility,
    RoutePayload,
    Sustainability,
)
from app.services.llm import TextGenerationClient
from app.services.routing import (
    calculate_carbon_footprint,
    find_mode_key,
    get_transport_mode,
    green_score,
    mode_key,
)

logger = logging.getLogger(__name__)

ROUTE_DATA_MARKER = "ROUTE_DATA:"
CONTROL_TOKENS = re.compile(r"</?s>|\[/?INST\]")
ROUTE_DATA_BLOCK = re.compile(re.escape(ROUTE_DATA_MARKER) + r".*$", re.DOTALL)


def resolve_payload_mode(mode: Any) -> Any:
    """Fill a payload mode from the catalogue: by key for strings, by id or name for
    objects that leave out the sustainability flag"""

    if isinstance(mode, str):
        return get_transport_mode(find_mode_key(mode) or mode).model_dump(by_alias=True)

    if isinstance(mode, dict) and "isSustainable" not in mode and "is_sustainable" not in mode:
        key = find_mode_key(mode.get("id")) or find_mode_key(mode.get("name"))
        if key is not None:
            return {**get_transport_mode(key).model_dump(by_alias=True), **mode}

    return mode


def extract_route_payload(text: str) -> Optional[RoutePayload]:
    """Parse the JSON object after ROUTE_DATA:, None if absent or malformed"""

    marker = text.find(ROUTE_DATA_MARKER)
    if marker == -1:
        return None

    start = text.find("{", marker)
    if start == -1:
        return None

    try:
        raw, _ = json.JSONDecoder().raw_decode(text, start)
        if isinstance(raw, dict) and "mode" in raw:
            raw["mode"] = resolve_payload_mode(raw["mode"])
        payload = RoutePayload.model_validate(raw)
    except (ValueError, ValidationError) as e:
        logger.error(f"Error parsing route data: {e}")
        return None

    logger.info(f"Parsed route data: {payload}")
    return payload


def strip_route_payload(text: str) -> str:
    return ROUTE_DATA_BLOCK.sub("", text).strip()


def clean_generated_text(text: str, prompt: str) -> str:
    return CONTROL_TOKENS.sub("", text.replace(prompt, "")).strip()


def merge_route_payload(
    mobility_data: Optional[MobilityResponse],
    payload: RoutePayload,
) -> Optional[MobilityResponse]:
    """Overlay model-provided route fields on the computed route"""

    updates = payload.model_dump(exclude_none=True, exclude={"mode", "accessibility", "steps"})
    if payload.mode is not None:
        updates["mode"] = payload.mode
    if payload.accessibility is not None:
        updates["accessibility"] = payload.accessibility
    if payload.steps is not None:
        updates["steps"] = payload.steps

    if mobility_data and mobility_data.routes:
        route = mobility_data.routes[0].model_copy(update=updates)
    else:
        if payload.mode is None or payload.distance is None or payload.duration is None:
            logger.warning("Route data without a computed route lacks mode/distance/duration")
            return mobility_data
        route = Route(**updates)

    if payload.carbon_footprint is None and (payload.mode is not None or payload.distance is not None):
        route = route.model_copy(
            update={"carbon_footprint": calculate_carbon_footprint(route.distance, mode_key(route.mode))}
        )

    return MobilityResponse(
        routes=[route],
        amenities=mobility_data.amenities if mobility_data else [],
        sustainability=Sustainability(
            carbon_footprint=route.carbon_footprint or 0.0,
            green_score=green_score(route.mode),
        ),
        accessibility=route.accessibility or RouteAccessibility(),
        real_time_updates=mobility_data.real_time_updates if mobility_data else RealTimeUpdates(),
    )


def destination_preamble(mobility_data: Optional[MobilityResponse]) -> str:
    if not mobility_data or not mobility_data.routes:
        return ""
    destination = mobility_data.routes[0].destination
    if destination is None:
        return ""
    return (
        f"Destination: {destination.name} ({destination.type})\n"
        f"Address: {destination.address}\n\n"
    )


class ResponseComposer:
    """Prompts the language model and merges its reply with computed mobility data"""

    def __init__(self, llm_client: TextGenerationClient, settings: Settings = default_settings):
        self.llm_client = llm_client
        self.settings = settings

    def _location_label(self, location: Optional[Location]) -> str:
        if location is None:
            return (
                f"{self.settings.DEFAULT_LOCATION_NAME} "
                f"({self.settings.DEFAULT_LAT}, {self.settings.DEFAULT_LNG})"
            )
        return f"{location.name or self.settings.DEFAULT_LOCATION_NAME} ({location.lat}, {location.lng})"

    def _mobility_digest(self, mobility_data: Optional[MobilityResponse]) -> str:
        if not mobility_data:
            return ""

        updates = mobility_data.real_time_updates
        lines = [
            "Current mobility data:",
            f"- Available transport modes: {', '.join(r.mode.name for r in mobility_data.routes)}",
            f"- Real-time updates: {updates.traffic} traffic, {updates.weather} weather",
        ]

        route = mobility_data.routes[0] if mobility_data.routes else None
        if route is not None and route.duration > 0:
            lines.append(
                f"- Route: {route.distance / 1000:.2f} km, "
                f"approximately {round(route.duration / 60)} minutes"
            )
        return "\n".join(lines)

    def build_prompt(
        self,
        message: str,
        mobility_data: Optional[MobilityResponse],
        location: Optional[Location],
    ) -> str:
        destination_name = "Not available"
        if mobility_data and mobility_data.routes and mobility_data.routes[0].destination:
            destination_name = mobility_data.routes[0].destination.name

        return f"""<s>[INST] You are a mobility assistant. Provide concise, relevant information based on the user's question. Always respond in English only.

Current location: {self._location_label(location)}

{self._mobility_digest(mobility_data)}

User question: {message}

Guidelines:
1. Always respond in English only
2. Be concise and direct
3. Only include information that was explicitly asked for
4. For route requests:
   - Provide the route details
   - Include distance and duration
   - Only mention transport mode if specified in the question
5. For accessibility queries:
   - Only respond if specifically asked about accessibility
   - Do not assume any specific accessibility needs
6. For sustainability:
   - Only provide sustainability information if specifically asked
7. For transport mode selection:
   - Only suggest transport modes if asked
   - Do not make assumptions about user preferences
8. When asked about the destination name, always include the name: {destination_name}

[/INST]</s>"""

    async def compose(
        self,
        message: str,
        mobility_data: Optional[MobilityResponse],
        location: Optional[Location],
    ) -> ChatResponse:
        prompt = self.build_prompt(message, mobility_data, location)

        logger.info("Sending request to Hugging Face API...")
        generated = await self.llm_client.generate(prompt)

        text = clean_generated_text(generated, prompt)
        payload = extract_route_payload(text)
        visible = strip_route_payload(text)

        if payload is not None:
            mobility_data = merge_route_payload(mobility_data, payload)

        return ChatResponse(
            response=destination_preamble(mobility_data) + visible,
            mobility_data=mobility_data,
        )
