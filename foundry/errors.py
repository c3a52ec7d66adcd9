from __future__ import annotations


class FoundryError(Exception):
    """Base class for caller-visible errors raised by foundry."""


class WalkForwardError(FoundryError, ValueError):
    """Walk-forward selection was called with unusable inputs."""


class ConfigError(FoundryError, ValueError):
    """A fold, sweep or strategy configuration is malformed."""


class UnknownFamilyError(FoundryError, KeyError):
    """No strategy family is registered under the requested name."""

    def __init__(self, family: str) -> None:
        super().__init__(family)
        self.family = family

    def __str__(self) -> str:
        return f"Unknown strategy family '{self.family}'"


__all__ = ["FoundryError", "WalkForwardError", "ConfigError", "UnknownFamilyError"]
