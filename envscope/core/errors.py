"""Custom exceptions for envscope."""

from __future__ import annotations

from pydantic import ValidationError as PydanticValidationError


class EnvscopeError(Exception):
    """Base exception for all envscope errors."""

    pass


class ConfigurationError(EnvscopeError):
    """Raised when configuration is invalid.

    Carries every validation problem found, not just the first one, so a
    broken setup can be fixed in a single pass.
    """

    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        self.errors = list(errors or [])
        if self.errors:
            message = f"{message}: " + "; ".join(self.errors)
        super().__init__(message)


class ProviderContractError(EnvscopeError):
    """Raised when a provider does not satisfy the provider contract."""

    def __init__(self, message: str, provider_name: str | None = None) -> None:
        self.provider_name = provider_name
        super().__init__(message)


class PluginError(EnvscopeError):
    """Raised when a plugin declaration is invalid."""

    def __init__(self, message: str, plugin_name: str | None = None) -> None:
        self.plugin_name = plugin_name
        if plugin_name:
            message = f"Plugin '{plugin_name}': {message}"
        super().__init__(message)


def format_validation_errors(exc: PydanticValidationError) -> list[str]:
    """Flatten a pydantic ValidationError into ``"dotted.path: message"`` strings."""
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ())) or "<root>"
        messages.append(f"{location}: {error.get('msg', 'invalid value')}")
    return messages
