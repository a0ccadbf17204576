from typing import Any, List, Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Models serialised with camelCase keys for the map UI"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Location(BaseModel):
    model_config = ConfigDict(frozen=True)

    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)
    name: Optional[str] = None


class ChatRequest(BaseModel):
    message: Optional[str] = Field(default=None, description="Free-text question")
    location: Optional[Location] = None


class PlaceAccessibility(BaseModel):
    wheelchair: bool = False
    audio: bool = False
    visual: bool = False


class Place(BaseModel):
    name: str
    type: str
    distance: float = Field(..., description="Distance from origin in km")
    coordinates: Location
    address: str
    phone: str
    website: str
    opening_hours: str
    rating: Optional[float] = None
    wheelchair: str = "unknown"
    smoking: str = "unknown"
    cuisine: Optional[str] = None
    brand: Optional[str] = None
    operator: Optional[str] = None
    capacity: Optional[str] = None
    fee: str = "unknown"
    parking: str = "unknown"
    public_transport: str = "unknown"
    accessibility: PlaceAccessibility = Field(default_factory=PlaceAccessibility)


class TransportMode(CamelModel):
    id: str = ""
    name: str
    icon: str = ""
    is_sustainable: bool = False
    accessibility: str = "high"


class RouteAccessibility(BaseModel):
    wheelchair: bool = True
    visual: bool = True
    audio: bool = True


class RouteStep(BaseModel):
    instruction: str
    distance: float
    duration: float
    mode: str
    name: Optional[str] = None
    intersections: Optional[List[Any]] = None
    geometry: Optional[Any] = None
    polyline: Optional[List[List[float]]] = None


class RouteGeometry(BaseModel):
    type: str = "LineString"
    coordinates: List[List[float]] = Field(default_factory=list, description="[lng, lat] pairs")


class RouteDestination(BaseModel):
    name: str
    type: str
    address: str
    phone: Optional[str] = None
    website: Optional[str] = None
    opening_hours: Optional[str] = None
    accessibility: Optional[PlaceAccessibility] = None


class Route(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    mode: TransportMode
    distance: float = Field(..., description="Metres")
    duration: float = Field(..., description="Seconds")
    carbon_footprint: float = Field(default=0.0, description="kg CO2")
    accessibility: RouteAccessibility = Field(default_factory=RouteAccessibility)
    steps: List[RouteStep] = Field(default_factory=list)
    geometry: Optional[RouteGeometry] = None
    destination: Optional[RouteDestination] = None


class RealTimeInfo(CamelModel):
    status: str
    next_update: Optional[str] = None


class MobilityAmenity(CamelModel):
    type: str
    name: str
    location: Location
    accessibility: List[str] = Field(default_factory=list)
    real_time_info: Optional[RealTimeInfo] = None


class Sustainability(CamelModel):
    carbon_footprint: float = 0.0
    green_score: int


class RealTimeUpdates(BaseModel):
    traffic: str = "Moderate"
    weather: str = "Clear"
    incidents: List[str] = Field(default_factory=list)


class MobilityResponse(CamelModel):
    routes: List[Route]
    amenities: List[MobilityAmenity] = Field(default_factory=list)
    sustainability: Sustainability
    accessibility: RouteAccessibility
    real_time_updates: RealTimeUpdates = Field(default_factory=RealTimeUpdates)


class RoutePayload(CamelModel):
    """Route fields a model may embed in its reply after the ROUTE_DATA marker"""

    mode: Optional[TransportMode] = None
    distance: Optional[float] = None
    duration: Optional[float] = None
    carbon_footprint: Optional[float] = None
    accessibility: Optional[RouteAccessibility] = None
    steps: Optional[List[RouteStep]] = None


class ChatResponse(CamelModel):
    response: str
    mobility_data: Optional[MobilityResponse] = None
