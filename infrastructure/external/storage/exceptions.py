"""Storage service exceptions."""


class StorageError(Exception):
    """Base storage exception."""
    pass


class NotFoundError(StorageError):
    """Object not found in storage."""
    pass


class PermissionDeniedError(StorageError):
    """Permission denied for storage operation."""
    pass


class TransientError(StorageError):
    """Transient error (network, throttling, server error)."""
    pass


class ConfigurationError(StorageError):
    """Storage backend missing or misconfigured."""
    pass


class ValidationError(StorageError):
    """Storage validation error."""
    pass
