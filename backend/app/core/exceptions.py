"""
Domain errors raised by the cart, catalog and checkout services.
"""


class TransientStoreError(Exception):
    """A remote store or catalog call failed (network, service, permission)."""

    def __init__(self, operation: str, cause: Exception = None):
        self.operation = operation
        self.cause = cause
        message = f"{operation} failed"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)


class MalformedLocalDataError(Exception):
    """Device storage held bytes that could not be decoded into a cart."""


class InvalidOperationError(ValueError):
    """An operation was called with arguments it can never accept."""


class CartRefreshError(TransientStoreError):
    """A cart write was committed but re-reading the cart afterwards failed."""
