from functools import lru_cache
from typing import Annotated

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

TEN_MIB = 10 * 1024 * 1024


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        extra="ignore",
        validate_by_name=True,
        populate_by_name=True,
    )
    environment: str = Field(
        default="development",
        validation_alias=AliasChoices("ENVIRONMENT", "APP_ENV"),
    )
    database_url: str = ""

    docs_enabled: bool = Field(default=True)
    openapi_enabled: bool = Field(default=True)
    expose_error_details: bool = False

    ai_provider: str = "gateway"
    ai_gateway_api_key: str = Field(
        default="",
        validation_alias=AliasChoices("AI_GATEWAY_API_KEY", "LOVABLE_API_KEY"),
    )
    ai_gateway_url: str = "https://ai.gateway.lovable.dev/v1"
    ai_model: str = "google/gemini-2.5-flash"
    ai_timeout_seconds: float = 30.0
    ai_max_tokens: int | None = None
    ai_debug_store_raw: bool = False

    max_image_bytes: int = TEN_MIB

    history_default_limit: int = 10
    history_max_limit: int = 100

    # The history is public demo data: anyone may read and add detections.
    detections_public_read: bool = True
    detections_public_insert: bool = True

    security_headers_enabled: bool = Field(
        default=True,
        validation_alias=AliasChoices("SECURITY_HEADERS_ENABLED", "SECURE_HEADERS_ENABLED"),
    )

    rate_limit_analyze_enabled: bool = False
    rate_limit_analyze_per_min: int = 20
    trusted_proxy_cidrs: Annotated[list[str], NoDecode] = Field(default_factory=list)

    cors_allow_origins: Annotated[list[str], NoDecode] = Field(default_factory=lambda: ["*"])
    cors_allow_methods: Annotated[list[str], NoDecode] = Field(default_factory=lambda: ["GET", "POST", "OPTIONS"])
    cors_allow_headers: Annotated[list[str], NoDecode] = Field(default_factory=lambda: [
        "Authorization",
        "X-Client-Info",
        "Apikey",
        "Content-Type",
    ])

    @field_validator(
        "cors_allow_origins",
        "cors_allow_methods",
        "cors_allow_headers",
        "trusted_proxy_cidrs",
        mode="before",
    )
    @classmethod
    def _split_csv(cls, value):
        if value is None:
            return []
        if isinstance(value, str):
            if value.strip() == "":
                return []
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    @field_validator("ai_provider", mode="before")
    @classmethod
    def _normalize_provider(cls, value):
        return str(value or "").lower().strip()

    @property
    def is_production(self) -> bool:
        return self.environment.lower().strip() in {"production", "prod"}

    def validate_required_config(self) -> list[str]:
        """Return human-readable problems with the current configuration."""
        errors: list[str] = []
        if self.ai_provider != "mock" and not self.ai_gateway_api_key:
            errors.append("AI_GATEWAY_API_KEY (LOVABLE_API_KEY) is not configured")
        if not self.database_url:
            errors.append("DATABASE_URL is not configured")
        if self.history_default_limit < 1 or self.history_default_limit > self.history_max_limit:
            errors.append("HISTORY_DEFAULT_LIMIT must be between 1 and HISTORY_MAX_LIMIT")
        if self.max_image_bytes <= 0:
            errors.append("MAX_IMAGE_BYTES must be positive")
        return errors


@lru_cache
def get_settings() -> Settings:
    return Settings()
