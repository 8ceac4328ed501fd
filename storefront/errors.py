class StorefrontError(Exception):
    """Base class for errors raised by the storefront services."""


class RemoteStoreError(StorefrontError):
    """A call to the row store failed (network, auth or constraint error)."""

    def __init__(self, message, table=None):
        super().__init__(message)
        self.table = table


class NotAuthorized(StorefrontError):
    """The caller is not allowed to perform an admin operation."""
