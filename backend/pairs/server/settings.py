"""Pairs server configuration via environment variables."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from pairs.logic.settings import GameSettings
from shared.validators import CorsEnvSettingsSource, parse_cors_origins

if TYPE_CHECKING:
    from pydantic_settings.sources.base import PydanticBaseSettingsSource


class PairsServerSettings(BaseSettings):
    model_config = {"env_prefix": "PAIRS_"}

    max_rooms: int = Field(default=500, ge=1)
    log_dir: str | None = Field(default="backend/logs/pairs", min_length=1)
    cors_origins: list[str] = ["http://localhost:5173"]
    # Delay between the second reveal and its resolution, so both faces are seen.
    resolve_delay_seconds: float = Field(default=0.6, ge=0, le=5)
    default_max_players: int = Field(default=4, ge=1, le=GameSettings().max_players)

    @field_validator("cors_origins", mode="before")
    @classmethod
    def validate_cors_origins(cls, v: str | list[str]) -> list[str]:
        return parse_cors_origins(v)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return init_settings, CorsEnvSettingsSource(settings_cls), dotenv_settings, file_secret_settings
