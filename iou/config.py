"""
Configuration for the IOU ledger service.

Values come from environment variables prefixed with ``IOU_`` (or a local
``.env`` file).
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="IOU_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = Field(default="IOU Ledger API", description="Title shown in the OpenAPI docs")
    log_level: str = Field(default="INFO", description="Minimum level for structured logs")
    log_json: bool = Field(default=True, description="Render logs as JSON lines instead of console text")
    seed_demo_data: bool = Field(default=True, description="Start the in-memory store with two demo users")
    notification_limit: int = Field(default=200, ge=1, description="Max notifications returned per listing")
    user_search_limit: int = Field(default=10, ge=1, description="Max users returned by a search")
    cors_origins: str = Field(default="*", description="Comma-separated list of allowed CORS origins")

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload.
    """
    return Settings()
