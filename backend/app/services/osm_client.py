import logging
from math import atan2, cos, radians, sin, sqrt
from typing import Any, Dict, List, Optional

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from app.core.config import Settings, settings as default_settings
from app.core.errors import GeodataError
from app.models.schemas import Location

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0
PLACE_CATEGORIES = ("amenity", "shop", "leisure")


def calculate_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Haversine distance in kilometers"""

    lat1_rad = radians(lat1)
    lat2_rad = radians(lat2)
    dlon = radians(lon2 - lon1)
    dlat = radians(lat2 - lat1)

    a = sin(dlat / 2) ** 2 + cos(lat1_rad) * cos(lat2_rad) * sin(dlon / 2) ** 2
    c = 2 * atan2(sqrt(a), sqrt(1 - a))

    return EARTH_RADIUS_KM * c


class OSMClient:
    """Client for Overpass (places), OSRM (routing) and Nominatim (reverse geocoding)"""

    def __init__(
        self,
        settings: Settings = default_settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings
        self.transport = transport

    def _client(self, timeout: Optional[float] = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=timeout or self.settings.REQUEST_TIMEOUT,
            headers={"User-Agent": self.settings.USER_AGENT},
            transport=self.transport,
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=5),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True,
    )
    async def _request(
        self,
        method: str,
        url: str,
        service: str,
        timeout: Optional[float] = None,
        **kwargs: Any,
    ) -> httpx.Response:
        async with self._client(timeout) as client:
            try:
                return await client.request(method, url, **kwargs)
            except httpx.TimeoutException:
                logger.error(f"{service} request timeout: {url}")
                raise

    def build_places_query(self, lat: float, lng: float, radius_m: int) -> str:
        around = f"(around:{radius_m},{lat},{lng})"
        selectors = "\n".join(
            f'  {element}["{category}"]{around};'
            for category in PLACE_CATEGORIES
            for element in ("node", "way", "relation")
        )
        return (
            f"[out:json][timeout:{self.settings.OVERPASS_TIMEOUT_SECONDS}];\n"
            f"(\n{selectors}\n);\n"
            "out center;"
        )

    async def search_places(
        self,
        lat: float,
        lng: float,
        radius_m: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Tagged amenity/shop/leisure elements within radius_m of the point"""

        radius = radius_m or self.settings.PLACE_SEARCH_RADIUS_M
        query = self.build_places_query(lat, lng, radius)

        try:
            response = await self._request(
                "POST",
                self.settings.OVERPASS_URL,
                "Overpass",
                timeout=self.settings.OVERPASS_TIMEOUT_SECONDS + 5,
                data={"data": query},
            )
        except httpx.HTTPError as e:
            raise GeodataError(f"Overpass request failed: {e}") from e

        if response.status_code != 200:
            logger.error(
                f"Overpass API error: status={response.status_code} "
                f"reason={response.reason_phrase} headers={dict(response.headers)}"
            )
            raise GeodataError(f"Overpass API error: {response.reason_phrase}")

        try:
            elements = response.json().get("elements") or []
        except ValueError as e:
            raise GeodataError(f"Overpass returned invalid JSON: {e}") from e

        logger.info(f"✓ Overpass: {len(elements)} elements within {radius}m")
        return elements

    async def get_route(
        self,
        start: Location,
        end: Location,
        profile: str = "driving",
    ) -> Dict[str, Any]:
        """Raw OSRM route response; callers inspect its ``code``"""

        url = (
            f"{self.settings.OSRM_URL}/{profile}/"
            f"{start.lng},{start.lat};{end.lng},{end.lat}"
        )
        params = {"overview": "full", "geometries": "geojson", "steps": "true"}

        try:
            response = await self._request("GET", url, "OSRM", params=params)
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise GeodataError(f"OSRM request failed: {e}") from e

        if data.get("code") != "Ok":
            logger.warning(
                f"OSRM returned code={data.get('code')} status={response.status_code} "
                f"headers={dict(response.headers)}"
            )
        return data

    async def reverse_geocode(self, lat: float, lng: float) -> Dict[str, Any]:
        """Nominatim reverse lookup with extra tags"""

        params = {"format": "json", "lat": lat, "lon": lng, "extratags": 1}

        try:
            response = await self._request(
                "GET", f"{self.settings.NOMINATIM_URL}/reverse", "Nominatim", params=params
            )
        except httpx.HTTPError as e:
            raise GeodataError(f"Nominatim request failed: {e}") from e

        if response.status_code != 200:
            logger.error(
                f"Nominatim error: status={response.status_code} headers={dict(response.headers)}"
            )
            raise GeodataError(f"Nominatim error: {response.reason_phrase}")

        try:
            return response.json()
        except ValueError as e:
            raise GeodataError(f"Nominatim returned invalid JSON: {e}") from e
