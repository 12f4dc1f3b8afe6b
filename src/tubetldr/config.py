"""Configuration loading.

Settings are loaded in priority order (highest first):
  1. Environment variables  (TUBETLDR__GENERATION__HOST=http://ollama:11434)
  2. tubetldr.yaml          (searched in cwd, then platform config dir)
  3. Hardcoded defaults

The config file is optional; all fields have sensible defaults. Credentials
(YouTube API key, Telegram bot token) are normally supplied via environment.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import platformdirs
from pydantic import BaseModel, Field
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

_DEFAULT_DATA_DIR = platformdirs.user_data_dir("tubetldr")
_DEFAULT_DB_PATH = str(Path(_DEFAULT_DATA_DIR) / "cache.db")


def _find_config_file() -> str | None:
    """Return the path of the first tubetldr.yaml found, or None."""
    candidates = [
        Path("tubetldr.yaml"),
        Path(platformdirs.user_config_dir("tubetldr")) / "tubetldr.yaml",
    ]
    for path in candidates:
        if path.exists():
            return str(path)
    return None


class ServerSettings(BaseModel):
    host: str = "0.0.0.0"
    port: int = 8080


class CacheSettings(BaseModel):
    ttl_seconds: int = 7200
    db_path: str = _DEFAULT_DB_PATH
    memory_max_entries: int = 512
    memory_ttl_seconds: int = 300
    cleanup_interval_hours: int = 6


class YouTubeSettings(BaseModel):
    api_key: str = ""
    oauth_token: str = ""
    timeout_seconds: float = 10.0
    default_language: str = "en"
    fallback_languages: list[str] = ["en"]


class GenerationSettings(BaseModel):
    host: str = "http://localhost:11434"
    default_model: str = "gemma3:1b"
    timeout_seconds: float = 30.0
    max_chapters: int = Field(default=10, ge=1, le=20)
    max_prompt_chars: int = 2000
    temperature: float = 0.7
    top_p: float = 0.9
    num_ctx: int = 2048
    num_predict: int = 500


class OrchestratorSettings(BaseModel):
    single_flight: bool = True


class TelemetrySettings(BaseModel):
    backend: Literal["log", "sqlite", "none"] = "log"


class TelegramSettings(BaseModel):
    bot_token: str = ""
    webhook_secret: str = ""
    api_base: str = "https://api.telegram.org"


class LoggingSettings(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: Literal["json", "text"] = "json"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # Double-underscore separates nesting: TUBETLDR__SERVER__PORT=9090
        env_prefix="TUBETLDR__",
        env_nested_delimiter="__",
        yaml_file=_find_config_file(),
        yaml_file_encoding="utf-8",
    )

    server: ServerSettings = ServerSettings()
    cache: CacheSettings = CacheSettings()
    youtube: YouTubeSettings = YouTubeSettings()
    generation: GenerationSettings = GenerationSettings()
    orchestrator: OrchestratorSettings = OrchestratorSettings()
    telemetry: TelemetrySettings = TelemetrySettings()
    telegram: TelegramSettings = TelegramSettings()
    logging: LoggingSettings = LoggingSettings()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
        **kwargs: Any,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,  # Constructor args (highest priority)
            env_settings,  # Environment variables
            YamlConfigSettingsSource(settings_cls),  # YAML file
            # dotenv and file secrets are not read
        )
