"""Configuration loading.

Settings are loaded in priority order (highest first):
  1. Constructor arguments   (used by the CLI for --cache-dir / --log-level)
  2. Environment variables   (STATICHTTPCACHE__CACHE__ROOT=/tmp/cache)
  3. statichttpcache.yaml    (searched in cwd, then platform config dir)
  4. Hardcoded defaults

The config file is optional. The library API never reads settings on its
own; only ``Cache.from_settings`` and the CLI do.
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

from statichttpcache import __version__

_DEFAULT_CACHE_ROOT = platformdirs.user_cache_dir("statichttpcache")


def _find_config_file() -> str | None:
    """Return the path of the first statichttpcache.yaml found, or None."""
    candidates = [
        Path("statichttpcache.yaml"),
        Path(platformdirs.user_config_dir("statichttpcache")) / "statichttpcache.yaml",
    ]
    for path in candidates:
        if path.exists():
            return str(path)
    return None


class CacheSettings(BaseModel):
    root: str = _DEFAULT_CACHE_ROOT
    busy_timeout_seconds: float = 5.0


class HttpSettings(BaseModel):
    timeout_seconds: float = 30.0
    follow_redirects: bool = True
    verify_tls: bool = True
    user_agent: str = f"statichttpcache/{__version__}"


class LoggingSettings(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "WARNING"
    format: Literal["json", "text"] = "text"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # Double-underscore separates nesting: STATICHTTPCACHE__HTTP__TIMEOUT_SECONDS=5
        env_prefix="STATICHTTPCACHE__",
        env_nested_delimiter="__",
        yaml_file=_find_config_file(),
        yaml_file_encoding="utf-8",
    )

    cache: CacheSettings = CacheSettings()
    http: HttpSettings = HttpSettings()
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
            init_settings,
            env_settings,
            YamlConfigSettingsSource(settings_cls),
            # dotenv and file secrets intentionally excluded
        )
