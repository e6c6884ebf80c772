"""Configuration loader for couponpilot using Pydantic settings.

Config precedence (highest wins):
  1. CLI flags (where applicable)
  2. Environment variables (COUPONPILOT_* with __ for nesting)
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

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# ---------------------------------------------------------------------------
# Path helpers
# ---------------------------------------------------------------------------

_THIS_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = Path(os.getenv("COUPONPILOT_PROJECT_ROOT", _THIS_DIR.parents[2]))
CONFIG_DIR = PROJECT_ROOT / "config"

ENV_VAR_NAME = "COUPONPILOT_ENV"
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


class LocatorSettings(BaseSettings):
    """Field Locator service (selector detection)."""

    model_config = SettingsConfigDict(env_prefix="COUPONPILOT_LOCATOR__")

    base_url: str = "http://localhost:5000/api"
    detect_path: str = "/selector/detect"
    timeout_sec: float = 30.0
    markup_limit: int = 50_000


class ClassifierSettings(BaseSettings):
    """Outcome Classifier service (post-submit validation)."""

    model_config = SettingsConfigDict(env_prefix="COUPONPILOT_CLASSIFIER__")

    base_url: str = "http://localhost:5000/api"
    validate_path: str = "/coupon-validator/validate"
    timeout_sec: float = 20.0
    fragment_limit: int = 10_000
    ancestor_levels: int = 5


class CorpusSettings(BaseSettings):
    """Coupon corpus lookup service."""

    model_config = SettingsConfigDict(env_prefix="COUPONPILOT_CORPUS__")

    base_url: str = "http://localhost:5000/api"
    timeout_sec: float = 10.0
    search_limit: int = 50


class InteractorSettings(BaseSettings):
    """Timing for simulated typing and submission."""

    model_config = SettingsConfigDict(env_prefix="COUPONPILOT_INTERACTOR__")

    poll_attempts: int = Field(default=5, ge=1)
    poll_interval_ms: int = Field(default=500, ge=0)
    clear_settle_ms: int = Field(default=200, ge=0)
    char_delay_ms: int = Field(default=50, ge=0)
    submit_settle_ms: int = Field(default=300, ge=0)
    post_submit_settle_ms: int = Field(default=2_000, ge=0)


class TrialSettings(BaseSettings):
    """Orchestrator pacing."""

    model_config = SettingsConfigDict(env_prefix="COUPONPILOT_TRIAL__")

    pacing_ms: int = Field(default=2_500, ge=0)


class BrowserSettings(BaseSettings):
    """Playwright browser settings (CLI runs only)."""

    model_config = SettingsConfigDict(env_prefix="COUPONPILOT_BROWSER__")

    headless: bool = True
    timeout_ms: int = 30_000
    wait_until: str = "load"  # load | domcontentloaded | networkidle
    user_agent: str = ""


# ---------------------------------------------------------------------------
# Root settings
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    """Root couponpilot settings with nested sections."""

    model_config = SettingsConfigDict(
        env_prefix="COUPONPILOT_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    env: str = Field(default_factory=_resolve_env)
    project_root: Path = Field(default=PROJECT_ROOT)
    debug: bool = False
    log_level: str = "INFO"

    locator: LocatorSettings = Field(default_factory=LocatorSettings)
    classifier: ClassifierSettings = Field(default_factory=ClassifierSettings)
    corpus: CorpusSettings = Field(default_factory=CorpusSettings)
    interactor: InteractorSettings = Field(default_factory=InteractorSettings)
    trial: TrialSettings = Field(default_factory=TrialSettings)
    browser: BrowserSettings = Field(default_factory=BrowserSettings)

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
    def _normalize_urls(self) -> "Settings":
        """Strip trailing slashes so paths can be appended verbatim."""
        self.locator.base_url = self.locator.base_url.rstrip("/")
        self.classifier.base_url = self.classifier.base_url.rstrip("/")
        self.corpus.base_url = self.corpus.base_url.rstrip("/")
        return self


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the singleton settings instance (cached)."""
    return Settings()
