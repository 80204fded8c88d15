"""Configuration loader for steed using Pydantic settings.

Config precedence (highest wins):
  1. Explicit keyword values (``Settings(page={...})``) and CLI flags
  2. Environment variables (STEED_* with __ for nesting)
  3. settings.local.toml
  4. settings.<env>.toml
  5. settings.default.toml
"""

from __future__ import annotations

import os
import tomllib
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# ---------------------------------------------------------------------------
# Path helpers
# ---------------------------------------------------------------------------

_THIS_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = Path(os.getenv("STEED_PROJECT_ROOT", _THIS_DIR.parents[2]))
CONFIG_DIR = PROJECT_ROOT / "config"

ENV_VAR_NAME = "STEED_ENV"
DEFAULT_ENV = "local"


def _resolve_env() -> str:
    return (os.getenv(ENV_VAR_NAME) or DEFAULT_ENV).strip()


def _load_toml(path: Path) -> dict[str, Any]:
    if path.is_file():
        with open(path, "rb") as f:
            return tomllib.load(f)
    return {}


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class BrowserSettings(BaseSettings):
    """Browser subprocess launch settings."""

    model_config = SettingsConfigDict(env_prefix="STEED_BROWSER__")

    executable: str = "steed-driver"
    extra_args: list[str] = Field(default_factory=list)
    load_images: bool = True
    ignore_ssl_errors: bool = False
    ssl_protocol: str = "any"  # sslv3 | sslv2 | tlsv1 | any
    web_security: bool = True
    proxy: str = ""
    proxy_type: str = ""  # http | socks5 | none
    proxy_auth: str = ""
    debug_port: int = 0
    cookies_file: str = ""
    launch_retries: int = 3
    launch_retry_delay: float = 0.5
    shutdown_grace_sec: float = 3.0

    @field_validator("ssl_protocol")
    @classmethod
    def _check_ssl_protocol(cls, v: str) -> str:
        if v not in ("sslv3", "sslv2", "tlsv1", "any"):
            raise ValueError(f"unsupported ssl_protocol: {v}")
        return v


class PageSettings(BaseSettings):
    """Per-page timing and behaviour defaults."""

    model_config = SettingsConfigDict(env_prefix="STEED_PAGE__")

    timeout_ms: int = 5_000
    interval_ms: int = 50
    switch_to_new_tab: bool = False
    client_scripts: list[str] = Field(default_factory=list)
    viewport_width: int = 400
    viewport_height: int = 300

    @field_validator("timeout_ms", "interval_ms")
    @classmethod
    def _positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("must be positive")
        return v


class LoggingSettings(BaseSettings):
    """Logging output configuration."""

    model_config = SettingsConfigDict(env_prefix="STEED_LOGGING__")

    level: str = "INFO"
    json_format: bool = False


# ---------------------------------------------------------------------------
# Root settings
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    """Root steed settings with nested sections."""

    model_config = SettingsConfigDict(
        env_prefix="STEED_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    env: str = Field(default_factory=_resolve_env)
    project_root: Path = Field(default=PROJECT_ROOT)
    debug: bool = False

    browser: BrowserSettings = Field(default_factory=BrowserSettings)
    page: PageSettings = Field(default_factory=PageSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @model_validator(mode="before")
    @classmethod
    def _merge_toml_files(cls, values: dict[str, Any]) -> dict[str, Any]:
        """Layer TOML config files before env var overrides."""
        defaults = _load_toml(CONFIG_DIR / "settings.default.toml")
        env_name = (values.get("env") or os.getenv(ENV_VAR_NAME) or DEFAULT_ENV).strip()
        env_overrides = _load_toml(CONFIG_DIR / f"settings.{env_name}.toml")
        local_overrides = _load_toml(CONFIG_DIR / "settings.local.toml")

        # Merge: defaults < env-specific < local < explicit values
        merged: dict[str, Any] = {}
        for layer in (defaults, env_overrides, local_overrides, values):
            for key, val in layer.items():
                if isinstance(val, dict) and isinstance(merged.get(key), dict):
                    merged[key] = {**merged[key], **val}
                else:
                    merged[key] = val
        return merged

    @model_validator(mode="after")
    def _resolve_paths(self) -> "Settings":
        """Normalize relative paths against project_root."""
        root = self.project_root
        if self.browser.cookies_file and not Path(self.browser.cookies_file).is_absolute():
            self.browser.cookies_file = str(root / self.browser.cookies_file)
        self.page.client_scripts = [
            s if Path(s).is_absolute() else str(root / s) for s in self.page.client_scripts
        ]
        return self


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the singleton settings instance (cached)."""
    return Settings()
