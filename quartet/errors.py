from __future__ import annotations
from enum import Enum


class QuartetError(Exception):
    """Base class for errors raised by the fan-out service."""


class InvalidRequest(QuartetError, ValueError):
    """Malformed query; raised before any provider is resolved or called."""


class UnknownModel(QuartetError, KeyError):
    def __init__(self, name: str) -> None:
        super().__init__(name)
        self.name = name

    def __str__(self) -> str:
        return f"Unknown model '{self.name}'"


class ConfigError(QuartetError):
    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        super().__init__(message)
        self.errors = list(errors or [])

    def __str__(self) -> str:
        base = super().__str__()
        if not self.errors:
            return base
        return base + ": " + "; ".join(self.errors)


class ErrorKind(str, Enum):
    UNKNOWN_MODEL = "unknown_model"
    MISSING_CREDENTIAL = "missing_credential"
    UPSTREAM_ERROR = "upstream_error"
    TIMEOUT = "timeout"
    TRANSPORT_ERROR = "transport_error"
    CONFIG_ERROR = "config_error"
    INTERNAL_ERROR = "internal_error"
