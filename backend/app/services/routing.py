import asyncio
import logging
import math
import random
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from app.core.config import Settings, settings as default_settings
from app.core.errors import GeodataError
from app.models.schemas import (
    Location,
    MobilityAmenity,
    MobilityResponse,
    Place,
    RealTimeInfo,
    RealTimeUpdates,
    Route,
    RouteAccessibility,
    RouteDestination,
    RouteGeometry,
    RouteStep,
    Sustainability,
    TransportMode,
)
from app.services.osm_client import OSMClient, calculate_distance

logger = logging.getLogger(__name__)

TRANSPORT_MODES: Dict[str, TransportMode] = {
    "driving": TransportMode(id="car", name="Car", icon="🚗", is_sustainable=False, accessibility="high"),
    "walking": TransportMode(id="walk", name="Walking", icon="🚶", is_sustainable=True, accessibility="high"),
    "cycling": TransportMode(id="bike", name="Cycling", icon="🚲", is_sustainable=True, accessibility="medium"),
}

SUSTAINABLE_MODES = {"walking", "cycling"}
DRIVING_KG_CO2_PER_KM = 0.2


def get_transport_mode(mode: str) -> TransportMode:
    return TRANSPORT_MODES.get(mode, TRANSPORT_MODES["driving"])


def find_mode_key(label: Optional[str]) -> Optional[str]:
    """Catalogue key whose key, id or display name matches label, ignoring case"""

    if not label:
        return None
    needle = label.strip().lower()
    for key, mode in TRANSPORT_MODES.items():
        if needle in (key, mode.id.lower(), mode.name.lower()):
            return key
    return None


def mode_key(mode: TransportMode) -> str:
    key = find_mode_key(mode.id) or find_mode_key(mode.name)
    if key is not None:
        return key
    return "walking" if mode.is_sustainable else "driving"


def calculate_carbon_footprint(distance: float, mode: str) -> float:
    """kg CO2 for distance in metres: zero for walking and cycling"""

    if mode in SUSTAINABLE_MODES:
        return 0.0
    return (distance / 1000) * DRIVING_KG_CO2_PER_KM


def green_score(mode: TransportMode) -> int:
    return 100 if mode.is_sustainable else 50


def accessibility_for_mode(mode: str) -> RouteAccessibility:
    return RouteAccessibility(
        wheelchair=mode in ("driving", "walking"),
        visual=True,
        audio=True,
    )


def format_instruction(step: Dict[str, Any]) -> str:
    """Readable instruction from an OSRM step's maneuver"""

    if step.get("instruction"):
        return step["instruction"]

    maneuver = step.get("maneuver") or {}
    kind = maneuver.get("type", "continue")
    modifier = maneuver.get("modifier")
    name = step.get("name")

    if kind == "depart":
        text = "Depart"
    elif kind == "arrive":
        return "Arrive at destination"
    elif kind == "turn" and modifier:
        text = f"Turn {modifier}"
    elif modifier:
        text = f"{kind.replace('_', ' ').capitalize()} {modifier}"
    else:
        text = kind.replace("_", " ").capitalize()

    return f"{text} onto {name}" if name else text


def build_mobility_response(
    route: Route,
    amenities: Optional[List[MobilityAmenity]] = None,
    real_time_updates: Optional[RealTimeUpdates] = None,
) -> MobilityResponse:
    return MobilityResponse(
        routes=[route],
        amenities=amenities or [],
        sustainability=Sustainability(
            carbon_footprint=route.carbon_footprint or 0.0,
            green_score=green_score(route.mode),
        ),
        accessibility=route.accessibility,
        real_time_updates=real_time_updates or RealTimeUpdates(),
    )


class RouteBuilder:
    """Builds routed or straight-line routes between an origin and a destination"""

    def __init__(
        self,
        osm_client: OSMClient,
        settings: Settings = default_settings,
        rng: Optional[random.Random] = None,
    ):
        self.osm_client = osm_client
        self.settings = settings
        self.rng = rng or random.Random()

    def straight_line_route(
        self,
        start: Location,
        end: Location,
        mode: str,
    ) -> Route:
        distance_km = calculate_distance(start.lat, start.lng, end.lat, end.lng)
        return Route(
            mode=get_transport_mode(mode),
            distance=distance_km * 1000,
            duration=0,
            carbon_footprint=0,
            accessibility=RouteAccessibility(),
            steps=[],
            geometry=RouteGeometry(
                coordinates=[[start.lng, start.lat], [end.lng, end.lat]]
            ),
        )

    def fallback_destination(self, start: Location, name: str) -> Location:
        """Point roughly 1 km away at a random bearing"""

        angle = self.rng.random() * 2 * math.pi
        offset = self.settings.FALLBACK_DESTINATION_OFFSET_DEG
        return Location(
            lat=max(-90.0, min(90.0, start.lat + offset * math.sin(angle))),
            lng=max(-180.0, min(180.0, start.lng + offset * math.cos(angle))),
            name=name,
        )

    async def build_route(self, start: Location, place: Place, mode: str) -> Route:
        """Routed path to place, or a straight line when the router reports failure"""

        end = Location(lat=place.coordinates.lat, lng=place.coordinates.lng, name=place.name)
        data = await self.osm_client.get_route(start, end, mode)

        if data.get("code") != "Ok" or not data.get("routes"):
            logger.warning(f"⚠ Route calculation failed ({data.get('code')}), using straight line")
            return self.straight_line_route(start, end, mode)

        try:
            return self._routed(data["routes"][0], place, mode)
        except (KeyError, TypeError, AttributeError, ValidationError) as e:
            logger.warning(f"⚠ Malformed route response ({e}), using straight line")
            return self.straight_line_route(start, end, mode)

    def _routed(self, route: Dict[str, Any], place: Place, mode: str) -> Route:
        legs = route.get("legs") or [{}]
        steps = [
            RouteStep(
                instruction=format_instruction(step),
                distance=step.get("distance", 0),
                duration=step.get("duration", 0),
                mode=step.get("mode", mode),
                name=step.get("name"),
                intersections=step.get("intersections"),
                geometry=step.get("geometry"),
            )
            for step in legs[0].get("steps", [])
        ]

        distance = route.get("distance", 0)
        logger.info(
            f"✓ {mode} route: {distance / 1000:.2f}km, "
            f"{route.get('duration', 0) / 60:.1f}min, {len(steps)} steps"
        )

        return Route(
            mode=get_transport_mode(mode),
            distance=distance,
            duration=route.get("duration", 0),
            carbon_footprint=calculate_carbon_footprint(distance, mode),
            accessibility=RouteAccessibility(),
            steps=steps,
            geometry=RouteGeometry(coordinates=route.get("geometry", {}).get("coordinates", [])),
            destination=RouteDestination(
                name=place.name,
                type=place.type,
                address=place.address,
                phone=place.phone,
                website=place.website,
                opening_hours=place.opening_hours,
                accessibility=place.accessibility,
            ),
        )

    async def calculate_route(self, start: Location, end: Location, mode: str = "driving") -> Route:
        """Summary route used for the location snapshot; raises on router failure"""

        data = await self.osm_client.get_route(start, end, mode)
        if data.get("code") != "Ok" or not data.get("routes"):
            raise GeodataError("Route calculation failed")

        try:
            return self._summary(data["routes"][0], mode)
        except (KeyError, TypeError, AttributeError, ValueError, ValidationError) as e:
            raise GeodataError(f"Malformed route response: {e}") from e

    def _summary(self, route: Dict[str, Any], mode: str) -> Route:
        coordinates = route.get("geometry", {}).get("coordinates", [])
        distance = route.get("distance", 0)

        return Route(
            mode=get_transport_mode(mode),
            distance=distance,
            duration=route.get("duration", 0),
            carbon_footprint=calculate_carbon_footprint(distance, mode),
            accessibility=accessibility_for_mode(mode),
            steps=[
                RouteStep(
                    instruction="Route",
                    distance=distance,
                    duration=route.get("duration", 0),
                    mode=mode,
                    polyline=[[lat, lng] for lng, lat in coordinates],
                )
            ],
            geometry=RouteGeometry(coordinates=coordinates),
        )

    async def get_location_details(self, location: Location) -> List[MobilityAmenity]:
        try:
            data = await self.osm_client.reverse_geocode(location.lat, location.lng)
            amenity = MobilityAmenity(
                type="location",
                name=data.get("display_name") or location.name or "Unknown location",
                location=Location(
                    lat=float(data.get("lat", location.lat)),
                    lng=float(data.get("lon", location.lng)),
                ),
                accessibility=self._accessibility_features(data),
                real_time_info=RealTimeInfo(
                    status="active",
                    next_update=(datetime.now(timezone.utc) + timedelta(minutes=5)).isoformat(),
                ),
            )
        except (GeodataError, ValueError) as e:
            logger.error(f"Error fetching location details: {e}")
            return []
        return [amenity]

    async def get_real_time_updates(self, location: Location) -> RealTimeUpdates:
        # Static until a live traffic/weather feed is wired in
        return RealTimeUpdates(traffic="Moderate", weather="Clear", incidents=[])

    async def get_mobility_response(
        self,
        start: Location,
        end: Location,
        mode: str = "driving",
    ) -> MobilityResponse:
        route, amenities, real_time_updates = await asyncio.gather(
            self.calculate_route(start, end, mode),
            self.get_location_details(start),
            self.get_real_time_updates(start),
        )
        return build_mobility_response(route, amenities, real_time_updates)

    def _accessibility_features(self, data: Dict[str, Any]) -> List[str]:
        tags = data.get("extratags") or data.get("tags") or {}
        features = []
        if tags.get("wheelchair") == "yes":
            features.append("wheelchair")
        if tags.get("tactile_paving") == "yes":
            features.append("tactile")
        if tags.get("audio_signals") == "yes":
            features.append("audio")
        return features
