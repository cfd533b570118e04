"""Custom exception hierarchy for the reference engine."""


class ReferenceEngineError(Exception):
    """Base exception for reference engine errors."""


class ConfigError(ReferenceEngineError):
    """Raised when configuration is invalid or incomplete."""


class ValidationError(ReferenceEngineError):
    """Raised when an input record cannot be interpreted."""


class StoreError(ReferenceEngineError):
    """Raised when the reference store fails to read or persist a record."""


class ReferenceNotFoundError(StoreError):
    """Raised when a reference id does not exist in the store."""
