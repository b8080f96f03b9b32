"""Configuration loading.

Settings are loaded in priority order (highest first):
  1. Environment variables  (LLMSFORGE__RATE_LIMIT__MAX_REQUESTS=60)
  2. llmsforge.yaml         (searched in cwd, then platform config dir)
  3. Hardcoded defaults

No config file is required; every field has a default.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import platformdirs
from pydantic import BaseModel
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

_CONFIG_FILE_NAME = "llmsforge.yaml"


def _find_config_file() -> str | None:
    """Return the path of the first llmsforge.yaml found, or None."""
    candidates = [
        Path(_CONFIG_FILE_NAME),
        Path(platformdirs.user_config_dir("llmsforge")) / _CONFIG_FILE_NAME,
    ]
    for path in candidates:
        if path.exists():
            return str(path)
    return None


class ServerSettings(BaseModel):
    host: str = "0.0.0.0"
    port: int = 8080
    # Guards the cache admin routes. Auto-generated at startup when unset.
    admin_key: str | None = None


class FetcherSettings(BaseModel):
    timeout_seconds: float = 30.0
    max_redirects: int = 5
    user_agent: str = "llmsforge/1.0 (Documentation Extractor)"
    block_private_ips: bool = True


class CacheSettings(BaseModel):
    extraction_ttl_seconds: float = 300.0
    extraction_max_entries: int = 100
    validation_ttl_seconds: float = 120.0
    validation_max_entries: int = 200
    prune_interval_seconds: float = 300.0


class RateLimitSettings(BaseModel):
    window_seconds: float = 60.0
    max_requests: int = 30
    cleanup_interval_seconds: float = 300.0


class ExtractionSettings(BaseModel):
    max_pages: int = 50
    page_delay_seconds: float = 0.1
    max_concurrent: int = 5
    max_batch_urls: int = 50


class LoggingSettings(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: Literal["json", "text"] = "json"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # Double-underscore separates nesting: LLMSFORGE__SERVER__PORT=9090
        env_prefix="LLMSFORGE__",
        env_nested_delimiter="__",
        yaml_file=_find_config_file(),
        yaml_file_encoding="utf-8",
    )

    server: ServerSettings = ServerSettings()
    fetcher: FetcherSettings = FetcherSettings()
    cache: CacheSettings = CacheSettings()
    rate_limit: RateLimitSettings = RateLimitSettings()
    extraction: ExtractionSettings = ExtractionSettings()
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
            # dotenv and file secrets intentionally excluded
        )
