"""PlanStream configuration: Pydantic model, TOML load, environment overlay."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, SecretStr, field_validator

from planstream.core.constants import (
    CONFIG_FILENAME,
    DEFAULT_MAX_MESSAGE_CHARS,
    DEFAULT_MAX_PENDING_FENCE_CHARS,
    DEFAULT_SIMULATED_CHUNK_CHARS,
    DEFAULT_TEMPERATURE,
    DEFAULT_TIMEOUT_SECONDS,
    PLAN_TEMPERATURE,
    _default_config_dir,
)
from planstream.core.exceptions import ConfigError, ConfigNotFoundError

# ---------------------------------------------------------------------------
# Sub-models
# ---------------------------------------------------------------------------


class ProviderConfig(BaseModel):
    """LLM provider selection and credentials."""

    name: str = "gemini"  # gemini | openai | groq
    model: str = ""  # empty = provider default
    api_key: SecretStr | None = None
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    temperature: float = DEFAULT_TEMPERATURE
    plan_temperature: float = PLAN_TEMPERATURE

    @field_validator("name")
    @classmethod
    def validate_provider_name(cls, v: str) -> str:
        from planstream.providers.base import ProviderKind

        try:
            return ProviderKind(v.lower()).value
        except ValueError:
            supported = ", ".join(k.value for k in ProviderKind)
            raise ValueError(f"Unknown provider {v!r}. Supported: {supported}") from None

    @field_validator("timeout_seconds")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if not (1.0 <= v <= 600.0):
            raise ValueError("timeout_seconds must be between 1 and 600")
        return v

    @field_validator("temperature", "plan_temperature")
    @classmethod
    def validate_temperature(cls, v: float) -> float:
        if not (0.0 <= v <= 2.0):
            raise ValueError("temperature must be between 0.0 and 2.0")
        return v


class StreamingConfig(BaseModel):
    """Bounds on a single generation."""

    max_message_chars: int = DEFAULT_MAX_MESSAGE_CHARS
    max_pending_fence_chars: int = DEFAULT_MAX_PENDING_FENCE_CHARS
    simulated_chunk_chars: int = DEFAULT_SIMULATED_CHUNK_CHARS
    simulate_gemini: bool = False  # replay generateContent instead of streaming

    @field_validator("max_message_chars")
    @classmethod
    def validate_max_message_chars(cls, v: int) -> int:
        if not (1_000 <= v <= 10_000_000):
            raise ValueError("max_message_chars must be between 1000 and 10000000")
        return v

    @field_validator("max_pending_fence_chars")
    @classmethod
    def validate_max_pending_fence_chars(cls, v: int) -> int:
        if not (100 <= v <= 10_000_000):
            raise ValueError("max_pending_fence_chars must be between 100 and 10000000")
        return v

    @field_validator("simulated_chunk_chars")
    @classmethod
    def validate_chunk_chars(cls, v: int) -> int:
        if not (1 <= v <= 4096):
            raise ValueError("simulated_chunk_chars must be between 1 and 4096")
        return v


class LoggingConfig(BaseModel):
    level: str = "WARNING"
    format: str = "text"  # "text" | "json"

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR"}
        if v.upper() not in allowed:
            raise ValueError(f"Log level must be one of: {allowed}")
        return v.upper()

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        if v not in ("text", "json"):
            raise ValueError("Log format must be 'text' or 'json'")
        return v


# ---------------------------------------------------------------------------
# Root config
# ---------------------------------------------------------------------------


class PlanStreamConfig(BaseModel):
    """Root PlanStream configuration model."""

    model_config = {"extra": "forbid"}

    provider: ProviderConfig = Field(default_factory=ProviderConfig)
    streaming: StreamingConfig = Field(default_factory=StreamingConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    def api_key(self) -> str:
        """Return the configured API key, or '' when none is set."""
        if self.provider.api_key is None:
            return ""
        return self.provider.api_key.get_secret_value()

    def api_key_for(self, provider: str) -> str:
        """
        API key for *provider*. The configured key belongs to the configured
        provider; any other provider falls back to its vendor variable.
        """
        if provider == self.provider.name:
            return self.api_key()
        return os.environ.get(_VENDOR_KEY_ENV.get(provider, ""), "")


# ---------------------------------------------------------------------------
# Load
# ---------------------------------------------------------------------------

# Vendor-native variables used as API key fallbacks
_VENDOR_KEY_ENV: dict[str, str] = {
    "gemini": "GEMINI_API_KEY",
    "openai": "OPENAI_API_KEY",
    "groq": "GROQ_API_KEY",
}


def _config_file_path() -> Path:
    if env_path := os.environ.get("PLANSTREAM_CONFIG"):
        return Path(env_path)
    return _default_config_dir() / CONFIG_FILENAME


def load_config(path: Path | str | None = None) -> PlanStreamConfig:
    """
    Load PlanStreamConfig from a TOML file, overlaid with environment variables.

    Priority (highest to lowest):
      1. Environment variables (PLANSTREAM_*, then vendor API key variables)
      2. Config file
      3. Model defaults

    An explicit *path* must exist. Without one, a missing default file simply
    means "use defaults".
    """
    import tomllib

    explicit = path is not None or bool(os.environ.get("PLANSTREAM_CONFIG"))
    cfg_path = Path(path) if path is not None else _config_file_path()

    data: dict[str, Any] = {}
    if cfg_path.exists():
        try:
            with open(cfg_path, "rb") as f:
                data = tomllib.load(f)
        except Exception as exc:
            raise ConfigError(f"Cannot read config file {cfg_path}: {exc}") from exc
    elif explicit:
        raise ConfigNotFoundError(f"Config file not found: {cfg_path}")

    _apply_env_overrides(data)

    try:
        return PlanStreamConfig.model_validate(data)
    except Exception as exc:
        raise ConfigError(f"Invalid config at {cfg_path}: {exc}") from exc


def _apply_env_overrides(data: dict[str, Any]) -> None:
    """Overlay PLANSTREAM_* environment variables onto parsed TOML."""
    if name := os.environ.get("PLANSTREAM_PROVIDER", ""):
        data.setdefault("provider", {})["name"] = name
    if model := os.environ.get("PLANSTREAM_MODEL", ""):
        data.setdefault("provider", {})["model"] = model
    if key := os.environ.get("PLANSTREAM_API_KEY", ""):
        data.setdefault("provider", {})["api_key"] = key
    if level := os.environ.get("PLANSTREAM_LOG_LEVEL", ""):
        data.setdefault("logging", {})["level"] = level
    if max_chars := os.environ.get("PLANSTREAM_MAX_MESSAGE_CHARS", ""):
        data.setdefault("streaming", {})["max_message_chars"] = max_chars

    provider = data.setdefault("provider", {})
    if not provider.get("api_key"):
        vendor_var = _VENDOR_KEY_ENV.get(str(provider.get("name", "gemini")).lower(), "")
        if vendor_var and (vendor_key := os.environ.get(vendor_var, "")):
            provider["api_key"] = vendor_key
