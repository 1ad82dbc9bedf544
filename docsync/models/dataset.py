"""Dataset and cache entry models."""

from typing import Dict, List

from pydantic import BaseModel, Field, computed_field

from .document import Document


class Dataset(BaseModel):
    """Merged records from every configured source plus a grouping index.

    Rebuilt on every cache miss or forced refresh; never mutated in place
    by docsync.
    """

    records: List[Document] = Field(default_factory=list)
    derived_index: Dict[str, List[str]] = Field(
        default_factory=dict,
        description="Group key -> record IDs, in record order",
    )
    last_updated: int = Field(default=0, description="Build time in epoch ms")

    @computed_field
    @property
    def total_records(self) -> int:
        return len(self.records)

    @computed_field
    @property
    def has_data(self) -> bool:
        return bool(self.records)

    @property
    def groups(self) -> List[str]:
        """Group keys in first-seen order."""
        return list(self.derived_index)

    def by_collection(self, collection: str) -> List[Document]:
        """Get records that came from one source collection.

        Args:
            collection: Source collection name

        Returns:
            Matching records, in dataset order
        """
        return [doc for doc in self.records if doc.collection == collection]

    def by_group(self, group: str) -> List[Document]:
        """Get records filed under a group key.

        Args:
            group: Group key from the derived index

        Returns:
            Matching records, in dataset order
        """
        wanted = set(self.derived_index.get(group, []))
        return [doc for doc in self.records if doc.id in wanted]


class CacheEntry(BaseModel):
    """A cached payload with its freshness and integrity metadata."""

    key: str
    payload: str = Field(description="Canonical JSON serialization of the value")
    stored_at: int = Field(description="Epoch ms when the entry was written")
    ttl_ms: int = Field(ge=0)
    integrity_hash: str

    @property
    def size_bytes(self) -> int:
        return len(self.payload.encode("utf-8"))

    def is_expired(self, now_ms: float) -> bool:
        """Check TTL.

        Args:
            now_ms: Current time in epoch ms

        Returns:
            True once the entry is no longer servable
        """
        return now_ms - self.stored_at >= self.ttl_ms
