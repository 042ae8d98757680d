from __future__ import annotations


class InjectionError(Exception):
    """Base class for errors raised while injecting the agent sidecar."""


class InvalidInputError(InjectionError):
    """Raised when the pod handed to the injector is missing or malformed."""


class ConfigError(InjectionError):
    """Raised when a configuration value or override source cannot be used."""


__all__ = ["InjectionError", "InvalidInputError", "ConfigError"]
