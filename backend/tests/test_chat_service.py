import random
from unittest.mock import AsyncMock

import pytest

from app.core.config import Settings
from app.core.errors import ConfigurationError, GeodataError, InvalidRequestError, LanguageModelError
from app.services.chat import ChatService
from app.services.composer import ResponseComposer
from app.services.llm import TextGenerationClient
from app.services.osm_client import OSMClient
from app.services.places import PlaceResolver
from app.services.routing import RouteBuilder


def build_service(settings: Settings, sleep) -> ChatService:
    osm_client = OSMClient(settings)
    return ChatService(
        place_resolver=PlaceResolver(osm_client, settings),
        route_builder=RouteBuilder(osm_client, settings, rng=random.Random(3)),
        composer=ResponseComposer(TextGenerationClient(settings, sleep=sleep), settings),
    )


@pytest.fixture
def service(test_settings, fake_sleep) -> ChatService:
    return build_service(test_settings, fake_sleep)


@pytest.fixture
def osm(service) -> OSMClient:
    return service.place_resolver.osm_client


@pytest.mark.asyncio
async def test_message_is_required(service, origin):
    with pytest.raises(InvalidRequestError):
        await service.handle("", origin)


@pytest.mark.asyncio
async def test_missing_token_fails_before_lookups(fake_sleep, origin, monkeypatch):
    service = build_service(Settings(HUGGINGFACE_API_TOKEN="", _env_file=None), fake_sleep)
    search = AsyncMock()
    monkeypatch.setattr(service.place_resolver.osm_client, "search_places", search)

    with pytest.raises(ConfigurationError):
        await service.handle("route to a cafe", origin)
    search.assert_not_called()


@pytest.mark.asyncio
async def test_no_places_short_circuits_language_model(monkeypatch, service, osm, origin):
    monkeypatch.setattr(osm, "search_places", AsyncMock(return_value=[]))
    generate = AsyncMock()
    monkeypatch.setattr(service.composer.llm_client, "generate", generate)

    result = await service.handle("route to nearest pharmacy", origin)

    assert "couldn't find any" in result.response
    assert "nearest pharmacy" in result.response
    route = result.mobility_data.routes[0]
    assert route.duration == 0
    assert route.steps == []
    assert len(route.geometry.coordinates) == 2
    assert 600 < route.distance < 1200
    generate.assert_not_called()


@pytest.mark.asyncio
async def test_route_request_end_to_end(monkeypatch, service, osm, origin, overpass_elements, osrm_ok_response):
    monkeypatch.setattr(osm, "search_places", AsyncMock(return_value=overpass_elements))
    get_route = AsyncMock(return_value=osrm_ok_response)
    monkeypatch.setattr(osm, "get_route", get_route)
    generate = AsyncMock(return_value="It is a five minute walk.")
    monkeypatch.setattr(service.composer.llm_client, "generate", generate)

    result = await service.handle("route to nearest pharmacy", origin)

    assert result.response.startswith("Destination: Boots Pharmacy (pharmacy)\nAddress: Borough High Street")
    assert result.response.endswith("It is a five minute walk.")
    assert result.mobility_data.routes[0].destination.name == "Boots Pharmacy"
    assert result.mobility_data.sustainability.green_score == 100
    _, end, mode = get_route.await_args.args
    assert (end.lat, end.lng, mode) == (51.5080, -0.0900, "walking")
    prompt = generate.await_args.args[0]
    assert "always include the name: Boots Pharmacy" in prompt


@pytest.mark.asyncio
async def test_router_failure_code_gives_straight_line(monkeypatch, service, osm, origin, overpass_elements):
    monkeypatch.setattr(osm, "search_places", AsyncMock(return_value=overpass_elements))
    monkeypatch.setattr(osm, "get_route", AsyncMock(return_value={"code": "NoRoute", "routes": []}))
    monkeypatch.setattr(service.composer.llm_client, "generate", AsyncMock(return_value="Sorry."))

    result = await service.handle("directions to the pharmacy by bus", origin)

    route = result.mobility_data.routes[0]
    assert route.duration == 0
    assert len(route.steps) == 0
    assert route.mode.id == "car"
    assert result.mobility_data.sustainability.green_score == 50
    assert result.response == "Sorry."


@pytest.mark.asyncio
async def test_malformed_router_reply_gives_straight_line(monkeypatch, service, osm, origin, overpass_elements):
    reply = {"code": "Ok", "routes": [{"geometry": None, "legs": [{"steps": [{"distance": None}]}]}]}
    monkeypatch.setattr(osm, "search_places", AsyncMock(return_value=overpass_elements))
    monkeypatch.setattr(osm, "get_route", AsyncMock(return_value=reply))
    monkeypatch.setattr(service.composer.llm_client, "generate", AsyncMock(return_value="Head north."))

    result = await service.handle("route to nearest pharmacy", origin)

    route = result.mobility_data.routes[0]
    assert route.duration == 0
    assert route.steps == []
    assert result.response == "Head north."


@pytest.mark.asyncio
async def test_geodata_outage_still_answers(monkeypatch, service, osm, origin):
    monkeypatch.setattr(osm, "search_places", AsyncMock(side_effect=GeodataError("Overpass API error: Gateway Timeout")))
    generate = AsyncMock(return_value="I can't look that up right now.")
    monkeypatch.setattr(service.composer.llm_client, "generate", generate)

    result = await service.handle("route to the museum", origin)

    assert result.mobility_data is None
    assert result.response == "I can't look that up right now."
    assert "Current mobility data" not in generate.await_args.args[0]


@pytest.mark.asyncio
async def test_non_route_message_uses_snapshot(monkeypatch, service, origin):
    snapshot = AsyncMock(side_effect=GeodataError("Route calculation failed"))
    monkeypatch.setattr(service.route_builder, "get_mobility_response", snapshot)
    monkeypatch.setattr(service.composer.llm_client, "generate", AsyncMock(return_value="Clear skies."))

    result = await service.handle("what is around me by bike?", origin)

    snapshot.assert_awaited_once_with(origin, origin, "cycling")
    assert result.mobility_data is None
    assert result.response == "Clear skies."


@pytest.mark.asyncio
async def test_without_location_skips_geodata(monkeypatch, service, osm):
    search = AsyncMock()
    monkeypatch.setattr(osm, "search_places", search)
    monkeypatch.setattr(service.composer.llm_client, "generate", AsyncMock(return_value="Hi"))

    result = await service.handle("route to the station", None)

    assert result.mobility_data is None
    search.assert_not_called()


@pytest.mark.asyncio
async def test_language_model_exhaustion_propagates(monkeypatch, service):
    monkeypatch.setattr(
        service.composer.llm_client,
        "generate",
        AsyncMock(side_effect=LanguageModelError("Hugging Face API error: Bad Gateway (502)")),
    )

    with pytest.raises(LanguageModelError):
        await service.handle("hello", None)
