"""Exception hierarchy for docsync.

Every surfaced error carries the operation name, the affected cache key or
subscription scope, and the root cause so callers can decide on retries.
"""

from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .models.mutation import BatchResult


class DocSyncError(Exception):
    """Base exception for all docsync failures."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        key: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.operation = operation
        self.key = key
        self.cause = cause

    def __str__(self) -> str:
        base = super().__str__()
        parts = []
        if self.operation:
            parts.append(f"operation={self.operation}")
        if self.key:
            parts.append(f"key={self.key}")
        if self.cause is not None:
            parts.append(f"cause={type(self.cause).__name__}: {self.cause}")
        if parts:
            return f"{base} ({', '.join(parts)})"
        return base


class ConfigError(DocSyncError, ValueError):
    """Raised for invalid configuration files."""


class CacheCorruption(DocSyncError):
    """Raised internally when a cache entry fails its integrity check."""


class DataUnavailable(DocSyncError):
    """Raised when a fetch fails and no stale cache entry can be served."""


class SubscriptionError(DocSyncError):
    """Raised (or passed to error callbacks) when a live subscription fails."""


class BatchPartialFailure(DocSyncError):
    """Raised on request when some chunks of a batch save failed."""

    def __init__(self, result: "BatchResult", operation: str = "batch_save"):
        failed = len(result.failed)
        total = failed + len(result.succeeded)
        super().__init__(
            f"{failed} of {total} mutations failed",
            operation=operation,
        )
        self.result = result
