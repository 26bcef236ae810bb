"""PlanStream exception hierarchy."""

from __future__ import annotations


class PlanStreamError(Exception):
    """Base exception for all PlanStream errors."""


class ConfigError(PlanStreamError):
    """Raised when the configuration is invalid or cannot be read."""


class ConfigNotFoundError(ConfigError):
    """Raised when an explicitly requested configuration file does not exist."""


class ProviderError(PlanStreamError):
    """Raised when an LLM provider transport fails or returns a non-2xx status."""

    def __init__(self, message: str, *, provider: str = "", status_code: int | None = None) -> None:
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code


class ProviderNotConfiguredError(ProviderError):
    """Raised when a provider is used without an API key."""


class EmptyResponseError(PlanStreamError):
    """Raised when a stream finishes without a single delta being emitted."""

    def __init__(self, message: str = "The LLM did not return any content", *, provider: str = "") -> None:
        super().__init__(message)
        self.provider = provider
