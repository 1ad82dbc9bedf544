"""Cache module for docsync.

Provides the TTL and integrity checked cache with:
- In-memory entries in front of a DuckDB durable layer
- Corruption detection with purge-on-read
- Opportunistic sweeping when storage crosses a soft cap
"""

from .schema import CacheSchema
from .manager import DurableCache
from .store import CacheStore
from .integrity import compute_hash, serialize

__all__ = [
    "CacheSchema",
    "DurableCache",
    "CacheStore",
    "compute_hash",
    "serialize",
]
