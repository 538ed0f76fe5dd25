"""Error taxonomy shared by the registry, issuer and rotation layers."""

from __future__ import annotations

__all__ = [
    "BackendError",
    "ConfigurationError",
    "RecordValidationError",
    "RotationInputError",
    "TransientBackendError",
]


class ConfigurationError(RuntimeError):
    """Missing or malformed environment configuration."""


class RotationInputError(ValueError):
    """A rotation request is missing a field or carries a blank one.

    Never retried: the same input will fail the same way.
    """


class RecordValidationError(ValueError):
    """A persisted registry row could not be decoded into a record."""

    def __init__(self, message: str, item_id: str | None = None):
        super().__init__(message)
        self.item_id = item_id


class BackendError(RuntimeError):
    """A registry or issuer call failed for a non-transient reason."""

    def __init__(self, message: str, *, backend: str = "", operation: str = ""):
        super().__init__(message)
        self.backend = backend
        self.operation = operation


class TransientBackendError(BackendError):
    """Timeout, throttling or temporary unavailability; safe to retry."""
