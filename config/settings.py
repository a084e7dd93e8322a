"""
Application settings loaded from environment variables.

Uses pydantic-settings for validation and type safety.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    """
    Application settings.

    All values loaded from .env file or environment variables.
    Validation happens automatically on startup.
    """

    model_config = SettingsConfigDict(
        env_file=(".env", "../.env"),  # Check current dir, then parent
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"  # Ignore extra env vars
    )

    # ===================
    # SUPABASE
    # ===================
    supabase_url: str = Field(
        ...,
        description="Supabase project URL"
    )
    supabase_key: str = Field(
        ...,
        description="Supabase anon/public key"
    )
    supabase_service_key: Optional[str] = Field(
        None,
        description="Supabase service role key (for admin operations)"
    )

    # ===================
    # IMPORT MATCHING
    # ===================
    match_min_code_length: int = Field(
        default=4,
        ge=1,
        le=20,
        description="Minimum row code length before searching for the code inside quoted descriptions"
    )
    match_min_fragment_length: int = Field(
        default=0,
        ge=0,
        le=50,
        description="Minimum length of the shorter description in a containment match (0 = no guard, 1 = skip empty descriptions)"
    )

    # ===================
    # IMPORT DEFAULTS
    # ===================
    default_replacement_motive: str = Field(
        default="Reemplazo importado desde Excel",
        min_length=1,
        description="Motive recorded when a replacement has no motive text"
    )
    temp_code_prefix: str = Field(
        default="TEMP-",
        description="Prefix of temporary codes that never become catalog entries"
    )
    default_category: str = Field(
        default="SIN-CATEGORIA",
        description="Category used when a row has none"
    )
    default_unit: str = Field(
        default="UND",
        description="Unit used when a row has none"
    )
    default_brand: str = Field(
        default="SIN-MARCA",
        description="Brand used when a row has none"
    )

    # ===================
    # APP SETTINGS
    # ===================
    environment: str = Field(
        default="development",
        pattern="^(development|staging|production)$",
        description="Application environment"
    )
    debug: bool = Field(
        default=True,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Logging level"
    )
    api_host: str = Field(
        default="0.0.0.0",
        description="API host"
    )
    api_port: int = Field(
        default=8000,
        ge=1000,
        le=65535,
        description="API port"
    )
    cors_origins: list[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173"],
        description="Frontend origins allowed to call the API"
    )

    # ===================
    # COMPUTED PROPERTIES
    # ===================
    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == "production"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload.

    Returns:
        Settings: Application settings

    Raises:
        ValidationError: If required env vars are missing or invalid
    """
    return Settings()


# For convenient imports: from config.settings import settings
settings = get_settings()
