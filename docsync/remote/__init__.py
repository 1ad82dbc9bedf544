"""Remote store interface consumed by docsync."""

from .base import RemoteStore, ChangeHandler, ErrorHandler, Unsubscribe

__all__ = [
    "RemoteStore",
    "ChangeHandler",
    "ErrorHandler",
    "Unsubscribe",
]
