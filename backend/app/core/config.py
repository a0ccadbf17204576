from typing import List
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_ignore_empty=True,
        extra="ignore",
    )

    PROJECT_NAME: str = "Mobility Assistant API"
    VERSION: str = "0.1.0"
    API_V1_STR: str = "/api/v1"

    ENVIRONMENT: str = "development"

    HUGGINGFACE_API_TOKEN: str | None = None
    HUGGINGFACE_API_URL: str = "https://api-inference.huggingface.co/models"
    LLM_MODEL: str = "mistralai/Mistral-7B-Instruct-v0.2"

    OVERPASS_URL: str = "https://overpass-api.de/api/interpreter"
    OSRM_URL: str = "http://router.project-osrm.org/route/v1"
    NOMINATIM_URL: str = "https://nominatim.openstreetmap.org"
    USER_AGENT: str = "mobility-assistant/0.1"

    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:5173"]

    REQUEST_TIMEOUT: int = 30
    OVERPASS_TIMEOUT_SECONDS: int = 25
    PLACE_SEARCH_RADIUS_M: int = 10000

    LLM_MAX_ATTEMPTS: int = 3
    LLM_MODEL_LOADING_WAIT_SECONDS: float = 30.0
    LLM_RETRY_WAIT_SECONDS: float = 5.0
    LLM_MAX_NEW_TOKENS: int = 300

    DEFAULT_LOCATION_NAME: str = "London, UK"
    DEFAULT_LAT: float = 51.505
    DEFAULT_LNG: float = -0.09

    # ~1 km expressed as a decimal-degree offset
    FALLBACK_DESTINATION_OFFSET_DEG: float = 0.01

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v: str | List[str]) -> List[str]:
        if isinstance(v, str) and not v.startswith("["):
            return [i.strip() for i in v.split(",")]
        elif isinstance(v, (list, str)):
            return v
        raise ValueError(v)


settings = Settings()
