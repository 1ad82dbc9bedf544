"""Mutation, chunk and batch result models."""

import uuid
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, computed_field, model_validator

from ..errors import BatchPartialFailure


class MutationOperation(str, Enum):
    """Write operation applied to a single document."""

    SET = "set"
    UPDATE = "update"
    DELETE = "delete"


class MutationRequest(BaseModel):
    """A single write destined for the remote store."""

    mutation_id: str = Field(
        default_factory=lambda: uuid.uuid4().hex,
        description="Caller-visible ID used in batch results",
    )
    target_collection: str
    document_id: str
    operation: MutationOperation
    payload: Optional[Dict[str, Any]] = None

    @model_validator(mode="after")
    def check_payload(self) -> "MutationRequest":
        """Require a payload for writes that carry data."""
        if self.operation != MutationOperation.DELETE and self.payload is None:
            raise ValueError(f"{self.operation.value} mutation requires a payload")
        return self


class Chunk(BaseModel):
    """An ordered group of mutations committed as one atomic unit."""

    index: int = Field(ge=0)
    max_size: int = Field(ge=1)
    mutations: List[MutationRequest] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_size(self) -> "Chunk":
        """Enforce the provider batch limit."""
        if len(self.mutations) > self.max_size:
            raise ValueError(
                f"chunk {self.index} holds {len(self.mutations)} mutations, "
                f"limit is {self.max_size}"
            )
        return self

    @property
    def size(self) -> int:
        return len(self.mutations)


class FailedMutation(BaseModel):
    """A mutation whose chunk failed to commit."""

    mutation_id: str
    chunk_index: int
    cause: str
    error_type: str = "Exception"


class BatchResult(BaseModel):
    """Complete succeeded/failed partition of a batch save."""

    succeeded: List[str] = Field(default_factory=list)
    failed: List[FailedMutation] = Field(default_factory=list)
    chunk_sizes: List[int] = Field(default_factory=list)

    @computed_field
    @property
    def ok(self) -> bool:
        """True when every mutation was committed."""
        return not self.failed

    @computed_field
    @property
    def partial(self) -> bool:
        """True when some, but not all, mutations were committed."""
        return bool(self.failed) and bool(self.succeeded)

    @property
    def failed_ids(self) -> List[str]:
        return [f.mutation_id for f in self.failed]

    def retry_subset(self, mutations: List[MutationRequest]) -> List[MutationRequest]:
        """Select the mutations that need to be retried.

        Args:
            mutations: The mutations originally passed to the batch save

        Returns:
            Failed mutations, in original order
        """
        failed = set(self.failed_ids)
        return [m for m in mutations if m.mutation_id in failed]

    def raise_for_failures(self) -> None:
        """Raise BatchPartialFailure if any mutation failed."""
        if self.failed:
            raise BatchPartialFailure(self)
