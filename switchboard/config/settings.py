"""
Runtime settings for Switchboard.

Reads deployment flags and server-managed keys from the process
environment (after loading a .env file when one exists) and validates
them with Pydantic. One Settings instance is cached per process.

Usage:
    from switchboard.config.settings import get_settings

    settings = get_settings()
    if settings.server_keys_enabled:
        ...

Tests build explicit instances instead:
    Settings(hosted=True, blacklisted_models=["gpt-4*"])
"""

from __future__ import annotations

import os
import threading
from typing import Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

ROTATING_KEY_FAMILIES = ("openai", "anthropic", "gemini")
ROTATING_KEY_SLOTS = (1, 2, 3)

_TRUTHY = {"1", "true", "yes", "on"}


def _as_bool(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in _TRUTHY


def _split_csv(value: Optional[str]) -> list[str]:
    if not value:
        return []
    return [part.strip().lower() for part in value.split(",") if part.strip()]


class Settings(BaseModel):
    """Environment-derived configuration. Immutable once built."""

    model_config = {"frozen": True}

    env: str = Field("development", description="development | production | test")
    hosted: bool = Field(False, description="Running as the managed hosted platform")
    use_server_keys: bool = Field(
        False, description="Self-hosted deployment sharing server Anthropic keys",
    )
    blacklisted_providers: list[str] = Field(default_factory=list)
    blacklisted_models: list[str] = Field(default_factory=list)
    cost_multiplier: float = Field(1.0, ge=0.0)
    strict_model_resolution: bool = False
    master_key: Optional[str] = Field(None, repr=False)

    ollama_url: Optional[str] = None
    vllm_base_url: Optional[str] = None
    vllm_api_key: Optional[str] = Field(None, repr=False)

    # family → ordered keys, e.g. {"anthropic": ["sk-ant-1", "sk-ant-2"]}
    rotating_keys: dict[str, list[str]] = Field(default_factory=dict, repr=False)

    @field_validator("env")
    @classmethod
    def normalize_env(cls, v: str) -> str:
        return v.strip().lower() or "development"

    @field_validator("blacklisted_providers", "blacklisted_models")
    @classmethod
    def normalize_list(cls, v: list[str]) -> list[str]:
        return [item.strip().lower() for item in v if item and item.strip()]

    @field_validator("rotating_keys")
    @classmethod
    def drop_empty_keys(cls, v: dict[str, list[str]]) -> dict[str, list[str]]:
        return {
            family.lower(): [k for k in keys if k]
            for family, keys in v.items()
        }

    @property
    def is_production(self) -> bool:
        return self.env == "production"

    @property
    def server_keys_enabled(self) -> bool:
        """Shared server keys are only honoured on self-hosted deployments."""
        return self.use_server_keys and not self.hosted


def _rotating_keys_from_env(environ: Mapping[str, str]) -> dict[str, list[str]]:
    keys: dict[str, list[str]] = {}
    for family in ROTATING_KEY_FAMILIES:
        prefix = f"{family.upper()}_API_KEY"
        values = [environ.get(f"{prefix}_{slot}", "") for slot in ROTATING_KEY_SLOTS]
        if family == "openai":
            values.insert(0, environ.get(prefix, ""))
        family_keys = [v.strip() for v in values if v and v.strip()]
        if family_keys:
            keys[family] = family_keys
    return keys


def load_settings(
    environ: Optional[Mapping[str, str]] = None,
    dotenv: bool = True,
) -> Settings:
    """
    Build Settings from environment variables.

    Args:
        environ: Mapping to read instead of os.environ (tests).
        dotenv: Load a .env file into os.environ first. Ignored when
                an explicit mapping is given.
    """
    if environ is None:
        if dotenv:
            load_dotenv()
        environ = os.environ

    multiplier = environ.get("COST_MULTIPLIER", "").strip()

    return Settings(
        env=environ.get("SWITCHBOARD_ENV", "development"),
        hosted=_as_bool(environ.get("SWITCHBOARD_HOSTED")),
        use_server_keys=_as_bool(environ.get("USE_SERVER_KEYS")),
        blacklisted_providers=_split_csv(environ.get("BLACKLISTED_PROVIDERS")),
        blacklisted_models=_split_csv(environ.get("BLACKLISTED_MODELS")),
        cost_multiplier=float(multiplier) if multiplier else 1.0,
        strict_model_resolution=_as_bool(environ.get("SWITCHBOARD_STRICT_MODELS")),
        master_key=environ.get("SWITCHBOARD_MASTER_KEY") or None,
        ollama_url=environ.get("OLLAMA_URL") or None,
        vllm_base_url=environ.get("VLLM_BASE_URL") or None,
        vllm_api_key=environ.get("VLLM_API_KEY") or None,
        rotating_keys=_rotating_keys_from_env(environ),
    )


_settings: Optional[Settings] = None
_settings_lock = threading.Lock()


def get_settings() -> Settings:
    """Process-wide Settings, loaded on first use."""
    global _settings
    if _settings is None:
        with _settings_lock:
            if _settings is None:
                _settings = load_settings()
    return _settings


def reset_settings() -> None:
    """Drop the cached Settings so the next call re-reads the environment."""
    global _settings
    with _settings_lock:
        _settings = None
