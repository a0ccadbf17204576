import logging
from typing import Optional, Tuple

from app.core.config import Settings, settings as default_settings
from app.core.errors import ConfigurationError, GeodataError, InvalidRequestError
from app.models.schemas import ChatResponse, Location, MobilityResponse
from app.services.composer import ResponseComposer
from app.services.intent import Intent, extract_intent
from app.services.llm import TextGenerationClient
from app.services.osm_client import OSMClient
from app.services.places import PlaceResolver
from app.services.routing import RouteBuilder, build_mobility_response

logger = logging.getLogger(__name__)


class ChatService:
    """Answers one chat message: intent, places, route, then the language model.

    Holds only collaborators, so one instance is shared by all requests.
    """

    def __init__(
        self,
        place_resolver: PlaceResolver,
        route_builder: RouteBuilder,
        composer: ResponseComposer,
    ):
        self.place_resolver = place_resolver
        self.route_builder = route_builder
        self.composer = composer

    async def handle(self, message: Optional[str], location: Optional[Location]) -> ChatResponse:
        if not message:
            raise InvalidRequestError("Message is required")

        if not self.composer.llm_client.is_configured:
            logger.error("Hugging Face API token is not configured")
            raise ConfigurationError("API configuration error - Token not found")

        intent = extract_intent(message)
        mobility_data: Optional[MobilityResponse] = None

        if location is not None:
            if intent.is_route_request:
                try:
                    early, mobility_data = await self._plan_route(location, intent)
                except GeodataError as e:
                    logger.error(f"Error fetching places: {e}")
                    mobility_data = None
                else:
                    if early is not None:
                        return early
            else:
                try:
                    mobility_data = await self.route_builder.get_mobility_response(
                        location, location, intent.transport_mode
                    )
                except GeodataError as e:
                    logger.error(f"Mobility snapshot unavailable: {e}")

        return await self.composer.compose(message, mobility_data, location)

    async def _plan_route(
        self,
        start: Location,
        intent: Intent,
    ) -> Tuple[Optional[ChatResponse], Optional[MobilityResponse]]:
        """Returns an early reply when no places exist, else the computed mobility data"""

        logger.info(
            f"Route request: destination='{intent.destination_type}' "
            f"mode={intent.transport_mode} nearest={intent.is_nearest_query}"
        )

        places = await self.place_resolver.find_places(start)

        if not places:
            logger.info("No places found in the area")
            end = self.route_builder.fallback_destination(start, intent.destination_type)
            route = self.route_builder.straight_line_route(start, end, intent.transport_mode)
            reply = ChatResponse(
                response=(
                    f"I couldn't find any {intent.destination_type} in the area. "
                    "I've shown you a route to a nearby point instead."
                ),
                mobility_data=build_mobility_response(route),
            )
            return reply, None

        place = self.place_resolver.select_place(
            places, intent.destination_type, intent.is_nearest_query
        )
        route = await self.route_builder.build_route(start, place, intent.transport_mode)
        return None, build_mobility_response(route)


def create_chat_service(settings: Settings = default_settings) -> ChatService:
    osm_client = OSMClient(settings)
    return ChatService(
        place_resolver=PlaceResolver(osm_client, settings),
        route_builder=RouteBuilder(osm_client, settings),
        composer=ResponseComposer(TextGenerationClient(settings), settings),
    )
