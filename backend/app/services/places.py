import logging
from functools import cmp_to_key
from typing import Any, Dict, List, Optional, Tuple

from app.core.config import Settings, settings as default_settings
from app.core.errors import PlaceNotFoundError
from app.models.schemas import Location, Place, PlaceAccessibility
from app.services.osm_client import OSMClient, calculate_distance

logger = logging.getLogger(__name__)

PROMINENT_TYPES = {"station", "landmark", "attraction"}
TIE_BAND = 0.1

# tag -> sentinel used when the tag is missing
TEXT_FIELDS = {
    "address": ("addr:street", "Address not available"),
    "phone": ("phone", "Phone not available"),
    "website": ("website", "Website not available"),
    "opening_hours": ("opening_hours", "Hours not available"),
    "wheelchair": ("wheelchair", "unknown"),
    "smoking": ("smoking", "unknown"),
    "fee": ("fee", "unknown"),
    "parking": ("parking", "unknown"),
    "public_transport": ("public_transport", "unknown"),
}
OPTIONAL_FIELDS = ("cuisine", "brand", "operator", "capacity")


def _element_coordinates(element: Dict[str, Any]) -> Optional[Tuple[float, float]]:
    lat = element.get("lat")
    lon = element.get("lon")
    if lat is None or lon is None:
        center = element.get("center") or {}
        lat, lon = center.get("lat"), center.get("lon")
    if lat is None or lon is None:
        return None
    return float(lat), float(lon)


def _parse_rating(value: Any) -> Optional[float]:
    if value in (None, ""):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def normalize_place(element: Dict[str, Any], origin: Location) -> Optional[Place]:
    """Convert a raw Overpass element into a Place, None if it has no position"""

    coords = _element_coordinates(element)
    if coords is None:
        return None

    lat, lng = coords
    tags = element.get("tags") or {}

    fields = {
        field: tags.get(tag) or sentinel
        for field, (tag, sentinel) in TEXT_FIELDS.items()
    }
    fields.update({field: tags.get(field) or None for field in OPTIONAL_FIELDS})

    return Place(
        name=tags.get("name") or "Unnamed Place",
        type=tags.get("amenity") or tags.get("shop") or tags.get("leisure") or "unknown",
        distance=calculate_distance(origin.lat, origin.lng, lat, lng),
        coordinates=Location(lat=lat, lng=lng),
        rating=_parse_rating(tags.get("rating")),
        accessibility=PlaceAccessibility(
            wheelchair=tags.get("wheelchair") == "yes",
            audio=tags.get("audio") == "yes",
            visual=tags.get("visual") == "yes",
        ),
        **fields,
    )


def calculate_relevance(place: Place, search_term: str, is_nearest_query: bool) -> float:
    score = 0.0
    search_lower = search_term.lower()
    name = place.name.lower()
    place_type = place.type.lower()

    if is_nearest_query:
        if place_type == search_lower:
            score += 3
        if search_lower in name:
            score += 2
    elif search_lower in name:
        score += 2

    matched_words = [word for word in search_lower.split() if word in name]
    score += len(matched_words) * 0.5

    if place_type in PROMINENT_TYPES:
        score += 1

    if place.rating:
        score += place.rating * 0.5
    if place.accessibility.wheelchair:
        score += 0.5
    if place.parking == "yes":
        score += 0.3
    if place.public_transport == "yes":
        score += 0.3

    return score


def rank_places(places: List[Place], search_term: str, is_nearest_query: bool) -> List[Place]:
    """Nearest queries sort by distance, others by relevance; near-ties use the other key"""

    scored = [(place, calculate_relevance(place, search_term, is_nearest_query)) for place in places]

    def compare(a: Tuple[Place, float], b: Tuple[Place, float]) -> float:
        (place_a, relevance_a), (place_b, relevance_b) = a, b
        if is_nearest_query:
            if abs(place_a.distance - place_b.distance) < TIE_BAND:
                return relevance_b - relevance_a
            return place_a.distance - place_b.distance
        if abs(relevance_a - relevance_b) < TIE_BAND:
            return place_a.distance - place_b.distance
        return relevance_b - relevance_a

    scored.sort(key=cmp_to_key(compare))
    return [place for place, _ in scored]


class PlaceResolver:
    """Finds and ranks candidate destinations around an origin"""

    def __init__(self, osm_client: OSMClient, settings: Settings = default_settings):
        self.osm_client = osm_client
        self.radius_m = settings.PLACE_SEARCH_RADIUS_M

    async def find_places(self, origin: Location) -> List[Place]:
        """Normalized places around origin; empty list when the area has none"""

        elements = await self.osm_client.search_places(origin.lat, origin.lng, self.radius_m)
        places = [
            place
            for place in (normalize_place(element, origin) for element in elements)
            if place is not None
        ]
        skipped = len(elements) - len(places)
        if skipped:
            logger.debug(f"Skipped {skipped} elements without coordinates")
        return places

    def select_place(
        self,
        places: List[Place],
        destination_type: str,
        is_nearest_query: bool,
    ) -> Place:
        ranked = rank_places(places, destination_type, is_nearest_query)
        if not ranked:
            raise PlaceNotFoundError("No suitable place found")

        selected = ranked[0]
        logger.info(
            f"✓ Selected '{selected.name}' ({selected.type}) "
            f"{selected.distance:.2f}km away from {len(ranked)} candidates"
        )
        return selected
