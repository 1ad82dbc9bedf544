"""docsync - client-side cache and synchronization for remote document stores."""

__version__ = "0.1.0"

from .cache import CacheStore, DurableCache
from .errors import (
    BatchPartialFailure,
    CacheCorruption,
    ConfigError,
    DataUnavailable,
    DocSyncError,
    SubscriptionError,
)
from .models.dataset import Dataset
from .models.document import Change, ChangeType, Document, FieldFilter, OrderBy, RemoteQuery
from .models.mutation import BatchResult, MutationOperation, MutationRequest
from .remote import RemoteStore
from .sync import AutoSaver, BatchWriter, ChangeSubscriber, DataManager, Subscription
from .utils.scheduling import debounce, throttle

__all__ = [
    "__version__",
    "AutoSaver",
    "BatchPartialFailure",
    "BatchResult",
    "BatchWriter",
    "CacheCorruption",
    "CacheStore",
    "Change",
    "ChangeSubscriber",
    "ChangeType",
    "ConfigError",
    "DataManager",
    "DataUnavailable",
    "Dataset",
    "DocSyncError",
    "Document",
    "DurableCache",
    "FieldFilter",
    "MutationOperation",
    "MutationRequest",
    "OrderBy",
    "RemoteQuery",
    "RemoteStore",
    "Subscription",
    "SubscriptionError",
    "debounce",
    "throttle",
]
