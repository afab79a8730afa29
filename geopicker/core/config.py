"""Application configuration."""

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings.

    Environment variables will be loaded and validated using Pydantic.
    """

    app_name: str = "Geopicker"
    version: str = "0.1.0"
    api_prefix: str = ""

    # CORS Settings
    cors_origins: list[str] = ["*"]  # Default to allow all in development
    cors_allow_credentials: bool = False

    # Logging Settings
    LOG_LEVEL: str = "INFO"
    JSON_LOGS: bool = True

    # Upstream geocoding provider
    NOMINATIM_BASE_URL: str = "https://nominatim.openstreetmap.org"
    NOMINATIM_USER_AGENT: str | None = None
    NOMINATIM_EMAIL: str | None = None
    NOMINATIM_ACCEPT_LANGUAGE: str | None = None
    NOMINATIM_STRICT_USER_AGENT: bool = False
    GEOCODING_TIMEOUT: float = Field(default=10.0, gt=0)
    GEOCODING_DEFAULT_COUNTRY: str = "ma"
    GEOCODING_SEARCH_LIMIT: int = Field(default=5, ge=1, le=10)

    # Picker session timings
    PICKER_SETTLE_DEBOUNCE_MS: int = Field(default=350, ge=0)
    PICKER_SEARCH_DEBOUNCE_MS: int = Field(default=500, ge=0)
    PICKER_SEARCH_MIN_CHARS: int = Field(default=3, ge=1)

    # Fallback map center (Casablanca city center)
    PICKER_DEFAULT_LAT: float = Field(default=33.5731, ge=-90, le=90)
    PICKER_DEFAULT_LNG: float = Field(default=-7.5898, ge=-180, le=180)

    # Geolocation
    GEOLOCATION_HIGH_ACCURACY_TIMEOUT: float = Field(default=5.0, gt=0)
    GEOLOCATION_LOW_ACCURACY_TIMEOUT: float = Field(default=10.0, gt=0)
    IP_GEOLOCATION_URL: str = "http://ip-api.com/json"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="allow",  # Allow extra fields in environment
    )

    @model_validator(mode="after")
    def validate_origins(self) -> "Settings":
        """Validate CORS origins."""
        if self.cors_origins == ["*"]:
            self.cors_origins = [
                "http://localhost",
                "http://localhost:8000",
                "http://localhost:3000",
            ]
        return self

    @model_validator(mode="after")
    def normalize_country(self) -> "Settings":
        """Lower-case and strip the default country restriction."""
        self.GEOCODING_DEFAULT_COUNTRY = self.GEOCODING_DEFAULT_COUNTRY.strip().lower()
        return self


# Create settings instance
settings = Settings()
