"""
Module: errors.py
Description: Exception hierarchy for the attribution SDK.

Only configuration problems reach the caller. Delivery failures are
reported as a False return from the delivery client and retried by the
engine; persistence failures are logged and never fatal.
"""


class AdCiderError(Exception):
    """Base class for all SDK errors."""


class ConfigurationError(AdCiderError):
    """A required value (API key, installation id) is missing or empty."""


class InitializationError(AdCiderError):
    """The SDK is in the wrong lifecycle state for the requested call."""


class PersistenceError(AdCiderError):
    """Durable state could not be written."""

    def __init__(self, message: str, path=None):
        super().__init__(message)
        self.path = path
