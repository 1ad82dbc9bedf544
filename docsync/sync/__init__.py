"""Synchronization module for docsync.

Provides the layer between callers and the remote store:
- Read-through dataset fetches with in-flight de-duplication
- Chunked, atomic-per-chunk batch writes
- Scoped change subscriptions that invalidate cached data
"""

from .batch import BatchWriter
from .subscriber import ChangeSubscriber, Subscription
from .manager import DataManager
from .autosave import AutoSaver

__all__ = [
    "BatchWriter",
    "ChangeSubscriber",
    "Subscription",
    "DataManager",
    "AutoSaver",
]
