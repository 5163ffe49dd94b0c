"""Configuration loader — reads config.yaml plus environment, validates with Pydantic.

Environment variables (and a local .env file) override values from the YAML
file, so deployments can keep credentials out of the config on disk.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Literal

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4.1-mini-2025-04-14"

# env var → config field
_ENV_OVERRIDES = {
    "OPENAI_MODEL": "model",
    "OPENAI_BASE_URL": "base_url",
    "OPENAI_RESPONSE_LANGUAGE": "response_language",
    "SNAPSOLVE_PROVIDER": "provider",
    "SNAPSOLVE_SCREENSHOT_DIR": "screenshot_dir",
    "SNAPSOLVE_ACCESS_KEY": "access_key",
}

_API_KEY_ENV = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
}


class SolverConfig(BaseModel):
    """Top-level solver configuration."""

    # Completion service
    provider: Literal["openai", "anthropic"] = "openai"
    api_key: str | None = None
    model: str = DEFAULT_MODEL
    base_url: str | None = None
    response_language: str = "Russian"
    max_tokens: int = 2000
    request_timeout: float = 60.0
    max_retries: int = 1

    # Language resolver
    fallback_language: str = "python"
    readiness_poll_interval: float = 0.1
    readiness_max_attempts: int = 50

    # Screenshot store
    screenshot_dir: str = "screenshots"
    max_queue_size: int = 5

    # Host auth & CORS
    access_key: str | None = None
    allowed_origins: list[str] = ["*"]

    @field_validator(
        "max_tokens",
        "request_timeout",
        "readiness_poll_interval",
        "readiness_max_attempts",
        "max_queue_size",
    )
    @classmethod
    def must_be_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("must be greater than zero")
        return v

    @field_validator("max_retries")
    @classmethod
    def retry_budget(cls, v: int) -> int:
        if v not in (0, 1):
            raise ValueError("max_retries must be 0 or 1")
        return v

    @property
    def api_key_env(self) -> str:
        """Name of the environment variable holding the credential."""
        return _API_KEY_ENV[self.provider]

    def redacted(self) -> dict:
        """Return the config as a dict with credentials masked."""
        data = self.model_dump()
        for key in ("api_key", "access_key"):
            if data.get(key):
                data[key] = "***"
        return data


# ---------------------------------------------------------------------------
# Module-level config cache
# ---------------------------------------------------------------------------

_config: SolverConfig | None = None


def load_config(path: str = "config.yaml") -> SolverConfig:
    """Read config.yaml (optional) and the environment, validate, and cache."""
    global _config

    load_dotenv()

    raw: dict = {}
    config_file = Path(path)
    if config_file.exists():
        raw = yaml.safe_load(config_file.read_text()) or {}
        if not isinstance(raw, dict):
            raise ValueError(f"Config file must contain a mapping: {config_file.resolve()}")
    else:
        logger.info(f"Config file {config_file} not found, using environment only")

    for env_name, field_name in _ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if value:
            raw[field_name] = value

    provider = raw.get("provider", "openai")
    api_key = os.environ.get(_API_KEY_ENV.get(provider, "OPENAI_API_KEY"))
    if api_key:
        raw["api_key"] = api_key

    _config = SolverConfig(**raw)

    logger.info(
        f"Loaded config: provider={_config.provider}, model={_config.model}, "
        f"response_language={_config.response_language}"
    )
    return _config


def get_config() -> SolverConfig:
    """Return cached config. Raises if not yet loaded."""
    if _config is None:
        raise RuntimeError("Config not loaded — call load_config() first")
    return _config
