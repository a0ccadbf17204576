import os
import sys
from pathlib import Path

os.environ.setdefault("HUGGINGFACE_API_TOKEN", "hf_test_token")
os.environ.setdefault("ENVIRONMENT", "test")

ROOT_DIR = Path(__file__).resolve().parents[2]
BACKEND_DIR = ROOT_DIR / "backend"
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from typing import Any, Dict, List

import pytest

from app.core.config import Settings
from app.models.schemas import Location


class RecordingSleep:
    """Stands in for asyncio.sleep and remembers requested delays"""

    def __init__(self) -> None:
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        HUGGINGFACE_API_TOKEN="hf_test_token",
        HUGGINGFACE_API_URL="https://hf.test/models",
        OVERPASS_URL="https://overpass.test/api/interpreter",
        OSRM_URL="https://osrm.test/route/v1",
        NOMINATIM_URL="https://nominatim.test",
    )


@pytest.fixture
def fake_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def origin() -> Location:
    return Location(lat=51.505, lng=-0.09, name="London Bridge")


@pytest.fixture
def overpass_elements() -> List[Dict[str, Any]]:
    return [
        {
            "type": "node",
            "id": 1,
            "lat": 51.5080,
            "lon": -0.0900,
            "tags": {
                "amenity": "pharmacy",
                "name": "Boots Pharmacy",
                "addr:street": "Borough High Street",
                "opening_hours": "Mo-Sa 08:00-20:00",
                "wheelchair": "yes",
            },
        },
        {
            "type": "way",
            "id": 2,
            "center": {"lat": 51.5150, "lon": -0.0950},
            "tags": {"shop": "supermarket", "name": "Tesco Express"},
        },
        {"type": "node", "id": 3, "lat": 51.5200, "lon": -0.1000},
        {"type": "relation", "id": 4, "tags": {"leisure": "park"}},
    ]


@pytest.fixture
def osrm_ok_response() -> Dict[str, Any]:
    return {
        "code": "Ok",
        "routes": [
            {
                "distance": 450.0,
                "duration": 330.0,
                "geometry": {
                    "type": "LineString",
                    "coordinates": [[-0.09, 51.505], [-0.0901, 51.5065], [-0.09, 51.508]],
                },
                "legs": [
                    {
                        "steps": [
                            {
                                "distance": 200.0,
                                "duration": 150.0,
                                "mode": "walking",
                                "name": "Borough High Street",
                                "maneuver": {"type": "depart"},
                                "intersections": [{"location": [-0.09, 51.505]}],
                                "geometry": {"type": "LineString", "coordinates": []},
                            },
                            {
                                "distance": 250.0,
                                "duration": 180.0,
                                "mode": "walking",
                                "name": "Southwark Street",
                                "maneuver": {"type": "turn", "modifier": "left"},
                                "intersections": [],
                                "geometry": {"type": "LineString", "coordinates": []},
                            },
                            {
                                "distance": 0.0,
                                "duration": 0.0,
                                "mode": "walking",
                                "name": "",
                                "maneuver": {"type": "arrive"},
                                "intersections": [],
                                "geometry": {"type": "LineString", "coordinates": []},
                            },
                        ]
                    }
                ],
            }
        ],
    }
