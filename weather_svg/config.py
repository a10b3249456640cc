"""Run configuration pulled from environment variables via pydantic."""
from functools import lru_cache

from pydantic import AliasChoices, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from weather_svg.errors import ConfigurationError
from utils.logging_utils import get_tagged_logger
logger = get_tagged_logger(__name__, tag="weather_svg/config")

SUPPORTED_PROVIDERS = ("pirate_weather", "openweathermap")


class Settings(BaseSettings):
    """Environment-driven configuration for the SVG build and the dependency report."""
    model_config = SettingsConfigDict(
        env_prefix="WEATHER_SVG_", env_file=".env", extra="ignore", populate_by_name=True
    )

    api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("WEATHER_SVG_API_KEY", "PIRATE_WEATHER_API_KEY", "OPENWEATHER_API_KEY"),
    )
    provider: str = "pirate_weather"  # options: pirate_weather, openweathermap
    latitude: float = 17.3760
    longitude: float = 78.4928
    timezone: str = "Asia/Kolkata"
    time_api_url: str = "https://worldtimeapi.org/api/timezone/Asia/Kolkata"

    template_path: str = "./template.svg"
    output_path: str = "./chat.svg"
    strict_placeholders: bool = False

    timeout_ms: int = Field(default=10_000, gt=0)
    max_attempts: int = Field(default=5, ge=1)
    backoff_base_ms: int = Field(default=1_000, ge=0)
    backoff_cap_ms: int = Field(default=30_000, ge=0)
    run_timeout_ms: int | None = None  # overall deadline across all fetches

    log_level: str = "INFO"

    report_path: str = "update-report.md"
    apply_updates: bool = False
    github_output: str | None = Field(default=None, validation_alias="GITHUB_OUTPUT")

    @field_validator("provider", mode="after")
    @classmethod
    def normalize_provider(cls, v: str) -> str:
        """Accept 'Pirate-Weather' style spellings and reject unknown providers."""
        name = v.strip().lower().replace("-", "_")
        if name not in SUPPORTED_PROVIDERS:
            raise ValueError(f"Unknown provider '{v}' (expected one of {', '.join(SUPPORTED_PROVIDERS)})")
        return name

    @field_validator("api_key", mode="after")
    @classmethod
    def blank_key_is_missing(cls, v: str | None) -> str | None:
        """Treat an empty or whitespace-only key as unset."""
        if v is None or not v.strip():
            return None
        return v.strip()


def load_settings() -> Settings:
    """Read settings from the environment; invalid values raise ConfigurationError."""
    try:
        return Settings()
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration: {exc}") from exc


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Process-wide settings, loaded on first use."""
    return load_settings()


if __name__ == "__main__":
    logger.logger.setLevel("DEBUG")
    logger.debug("Loaded settings: %s", get_settings().model_dump_json(indent=4, exclude={"api_key"}))
