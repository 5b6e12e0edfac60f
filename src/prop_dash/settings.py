"""Application settings for prop-dash."""

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime settings for the prediction service and query cache."""

    model_config = SettingsConfigDict(
        env_prefix="PROP_DASH_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    api_key: str = Field(
        default="",
        validation_alias=AliasChoices("PREDICTION_API_KEY", "PROP_DASH_API_KEY"),
    )
    api_base_url: str = "http://localhost:8000/api"
    api_timeout_s: float = 10.0
    api_max_attempts: int = 3
    games_refetch_interval_s: float = 60.0
    shooting_stale_minutes: float = 5.0
    line_debounce_s: float = 0.3
    shooting_fallback_enabled: bool = False
    log_level: str = "INFO"
