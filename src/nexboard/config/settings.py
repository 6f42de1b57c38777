"""Runtime configuration loaded from env variables or config files."""

from functools import lru_cache
from pathlib import Path
from typing import Annotated, List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict
from pydantic_settings.sources import (
    DotEnvSettingsSource,
    EnvSettingsSource,
    InitSettingsSource,
    SecretsSettingsSource,
    TomlConfigSettingsSource,
)


class Settings(BaseSettings):
    """Application level settings."""

    environment: str = Field("development", alias="ENVIRONMENT")

    api_host: str = Field("0.0.0.0", alias="API_HOST")
    api_port: int = Field(8080, alias="PORT")
    cors_origins: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: ["http://localhost:5173"], alias="CORS_ORIGINS"
    )

    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_path: Path = Field(Path("logs/app.log"), alias="LOG_PATH")

    # Live event stream
    stream_path: str = Field("/api/alerts/stream", alias="STREAM_PATH")
    stream_tokens: Annotated[List[str], NoDecode] = Field(default_factory=list, alias="STREAM_TOKENS")
    mailbox_capacity: int = Field(10, ge=1, alias="SSE_MAILBOX_CAPACITY")
    broadcast_capacity: int = Field(100, ge=1, alias="SSE_BROADCAST_CAPACITY")
    heartbeat_interval: float = Field(30.0, gt=0, alias="SSE_HEARTBEAT_INTERVAL")
    id_prefix: str = Field("client_", alias="SSE_ID_PREFIX")
    drop_warning_interval: float = Field(10.0, ge=0, alias="SSE_DROP_WARNING_INTERVAL")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="",
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("cors_origins", "stream_tokens", mode="before")
    @classmethod
    def _split_csv(cls, value):
        # CORS_ORIGINS=http://a,http://b
        if isinstance(value, str):
            return [part.strip() for part in value.split(",") if part.strip()]
        return value

    @field_validator("stream_path")
    @classmethod
    def _normalise_path(cls, value: str) -> str:
        if not value.startswith("/"):
            return "/" + value
        return value

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings: InitSettingsSource,
        env_settings: EnvSettingsSource,
        dotenv_settings: DotEnvSettingsSource,
        file_secret_settings: SecretsSettingsSource,
    ):
        """
        Source priority, highest first:
        1. init_settings
        2. env_settings
        3. dotenv_settings (.env)
        4. configs/settings.toml, if present
        5. file_secret_settings
        """
        sources = [init_settings, env_settings, dotenv_settings]

        toml_file = Path("configs/settings.toml")
        if toml_file.exists():
            sources.append(TomlConfigSettingsSource(settings_cls, toml_file=toml_file))

        sources.append(file_secret_settings)
        return tuple(sources)


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()  # type: ignore[call-arg]


__all__ = ["Settings", "get_settings"]
