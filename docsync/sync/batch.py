"""Chunked batch writes against the remote store.

Mutations are split into chunks no larger than the provider batch limit.
Chunks commit concurrently under a semaphore; each chunk is one atomic
commit_batch() call, and there is no transactionality across chunks.
"""

import asyncio
from typing import Dict, List, Optional, Sequence

from loguru import logger

from ..models.mutation import BatchResult, Chunk, FailedMutation, MutationRequest
from ..remote.base import RemoteStore

DEFAULT_BATCH_LIMIT = 500


class BatchWriter:
    """Commits mutation lists in provider-safe atomic chunks."""

    def __init__(
        self,
        remote: RemoteStore,
        batch_limit: Optional[int] = None,
        max_concurrency: int = 4,
        group_by_collection: bool = False,
    ):
        """Initialize batch writer.

        Args:
            remote: Remote store to commit to
            batch_limit: Chunk size cap (defaults to the store's own limit,
                never larger than it)
            max_concurrency: Maximum chunks in flight at once
            group_by_collection: Keep each chunk to a single collection
        """
        limit = batch_limit or remote.batch_limit or DEFAULT_BATCH_LIMIT
        if remote.batch_limit:
            limit = min(limit, remote.batch_limit)
        if limit < 1:
            raise ValueError("batch_limit must be >= 1")
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")

        self._remote = remote
        self.batch_limit = limit
        self.max_concurrency = max_concurrency
        self.group_by_collection = group_by_collection

    def plan(self, mutations: Sequence[MutationRequest]) -> List[Chunk]:
        """Split mutations into ordered chunks.

        Args:
            mutations: Mutations in caller order

        Returns:
            Chunks covering every mutation exactly once
        """
        if self.group_by_collection:
            groups: Dict[str, List[MutationRequest]] = {}
            for mutation in mutations:
                groups.setdefault(mutation.target_collection, []).append(mutation)
            runs = list(groups.values())
        else:
            runs = [list(mutations)]

        chunks: List[Chunk] = []
        for run in runs:
            for start in range(0, len(run), self.batch_limit):
                chunks.append(
                    Chunk(
                        index=len(chunks),
                        max_size=self.batch_limit,
                        mutations=run[start : start + self.batch_limit],
                    )
                )
        return chunks

    async def _commit_chunk(self, chunk: Chunk, semaphore: asyncio.Semaphore) -> None:
        async with semaphore:
            logger.debug("Committing chunk {} ({} mutations)", chunk.index, chunk.size)
            await self._remote.commit_batch(chunk.mutations)

    async def commit(self, mutations: Sequence[MutationRequest]) -> BatchResult:
        """Commit mutations and report a complete succeeded/failed partition.

        Args:
            mutations: Mutations in caller order

        Returns:
            BatchResult with both partitions in original mutation order
        """
        mutations = list(mutations)
        if not mutations:
            return BatchResult()

        ids = [m.mutation_id for m in mutations]
        if len(set(ids)) != len(ids):
            raise ValueError("mutation_id values must be unique within a batch")

        chunks = self.plan(mutations)
        semaphore = asyncio.Semaphore(self.max_concurrency)

        outcomes = await asyncio.gather(
            *(self._commit_chunk(chunk, semaphore) for chunk in chunks),
            return_exceptions=True,
        )

        failures: Dict[str, FailedMutation] = {}
        for chunk, outcome in zip(chunks, outcomes):
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, BaseException):
                logger.warning(
                    "Chunk {} of {} failed ({} mutations): {}",
                    chunk.index + 1,
                    len(chunks),
                    chunk.size,
                    outcome,
                )
                for mutation in chunk.mutations:
                    failures[mutation.mutation_id] = FailedMutation(
                        mutation_id=mutation.mutation_id,
                        chunk_index=chunk.index,
                        cause=str(outcome),
                        error_type=type(outcome).__name__,
                    )

        result = BatchResult(
            succeeded=[m.mutation_id for m in mutations if m.mutation_id not in failures],
            failed=[failures[m.mutation_id] for m in mutations if m.mutation_id in failures],
            chunk_sizes=[chunk.size for chunk in chunks],
        )

        logger.info(
            "Batch commit: {} chunks, {} succeeded, {} failed",
            len(chunks),
            len(result.succeeded),
            len(result.failed),
        )
        return result
