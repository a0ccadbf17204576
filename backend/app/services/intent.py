import re
from dataclasses import dataclass

ROUTE_KEYWORDS = ("route", "directions", "how to get to")
TRANSIT_KEYWORDS = ("bus", "train", "tube", "metro", "public transport")
CYCLING_KEYWORDS = ("bike", "cycle")

DEFAULT_DESTINATION = "Destination"
DESTINATION_PATTERN = re.compile(r"\bto (.+?)(?:\s*from|$)", re.IGNORECASE)


@dataclass(frozen=True)
class Intent:
    is_route_request: bool
    transport_mode: str
    destination_type: str
    is_nearest_query: bool


def infer_transport_mode(message: str) -> str:
    """First match wins: transit terms, then bike terms, else walking.

    Transit has no routing profile of its own and is routed as driving.
    """
    text = message.lower()
    if any(keyword in text for keyword in TRANSIT_KEYWORDS):
        return "driving"
    if any(keyword in text for keyword in CYCLING_KEYWORDS):
        return "cycling"
    return "walking"


def extract_destination_type(message: str) -> str:
    match = DESTINATION_PATTERN.search(message)
    if not match:
        return DEFAULT_DESTINATION
    return match.group(1).strip() or DEFAULT_DESTINATION


def extract_intent(message: str) -> Intent:
    text = (message or "").lower()

    return Intent(
        is_route_request=any(keyword in text for keyword in ROUTE_KEYWORDS),
        transport_mode=infer_transport_mode(text),
        destination_type=extract_destination_type(message or ""),
        is_nearest_query="nearest" in text,
    )
