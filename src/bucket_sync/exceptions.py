"""Custom exceptions for the bucket-sync application."""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from bucket_sync.store import ObjectRecord


class BucketSyncError(Exception):
    """Base exception for all application-specific errors."""

    exit_code: int = 1


class ConfigError(BucketSyncError):
    """Raised for configuration-related issues."""

    exit_code = 3


class StoreConnectionError(BucketSyncError):
    """Raised when an object store client cannot be created or reached."""

    exit_code = 4


class ListingError(BucketSyncError):
    """
    Raised when a page of the source listing cannot be fetched.

    Attributes:
        cursor (str): The cursor that was passed to the failing listing call.
    """

    exit_code = 5

    def __init__(self, message: str, cursor: str = "") -> None:
        super().__init__(message)
        self.cursor: str = cursor


class TransferError(BucketSyncError):
    """
    Raised when a single object cannot be copied to the destination.

    Attributes:
        record (ObjectRecord): The object whose transfer failed.
    """

    def __init__(self, record: "ObjectRecord", message: str) -> None:
        super().__init__(message)
        self.record: "ObjectRecord" = record


class RetryTransferError(TransferError):
    """Raised when an object fails again during the retry pass."""

    pass
