"""Data manager: read-through cache, write-through batch saves.

Wraps a RemoteStore with CacheStore caching the same way a cached data
source wraps its loader. Reads fan out in parallel and are de-duplicated
while in flight; writes go through BatchWriter and invalidate the cached
dataset.
"""

import asyncio
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Tuple

from loguru import logger

from ..cache.store import CacheStore
from ..config import BatchConfig, DatasetConfig, SchedulingConfig
from ..errors import DataUnavailable
from ..models.dataset import Dataset
from ..models.document import Document, FieldFilter, OrderBy, RemoteQuery
from ..models.mutation import BatchResult, MutationRequest
from ..remote.base import RemoteStore
from ..utils.indexing import build_group_index
from ..utils.scheduling import Throttler, throttle
from .batch import BatchWriter
from .subscriber import ChangeCallback, ChangeSubscriber, Subscription, SubscriptionErrorCallback


class DataManager:
    """Orchestrates cache, batch writer and change subscriber for one dataset."""

    def __init__(
        self,
        remote: RemoteStore,
        cache: CacheStore,
        dataset: Optional[DatasetConfig] = None,
        batch: Optional[BatchConfig] = None,
        scheduling: Optional[SchedulingConfig] = None,
        ttl_ms: Optional[int] = None,
        writer: Optional[BatchWriter] = None,
        subscriber: Optional[ChangeSubscriber] = None,
    ):
        """Initialize data manager.

        Args:
            remote: Remote document store
            cache: Cache store (injected, never created here)
            dataset: Sources and index settings (defaults when None)
            batch: Batch write settings (defaults when None)
            scheduling: Throttle settings (defaults when None)
            ttl_ms: Dataset TTL (cache default when None)
            writer: Batch writer override
            subscriber: Change subscriber override
        """
        self._remote = remote
        self._cache = cache
        self.dataset_config = dataset or DatasetConfig()
        batch = batch or BatchConfig()
        scheduling = scheduling or SchedulingConfig()
        self.scheduling = scheduling
        self.ttl_ms = ttl_ms

        self._writer = writer or BatchWriter(
            remote,
            batch_limit=batch.batch_limit,
            max_concurrency=batch.max_concurrency,
            group_by_collection=batch.group_by_collection,
        )
        self._subscriber = subscriber or ChangeSubscriber(remote, cache)

        self._inflight: Dict[str, Tuple["asyncio.Task[Dataset]", int]] = {}
        self._generation = 0
        self._refresh_tasks: Set["asyncio.Task[Any]"] = set()
        self._refresh_throttle: Throttler = throttle(
            self._spawn_refresh, scheduling.refresh_throttle_ms
        )
        self.remote_reads = 0

    @property
    def cache(self) -> CacheStore:
        return self._cache

    @property
    def subscriber(self) -> ChangeSubscriber:
        return self._subscriber

    @property
    def cache_key(self) -> str:
        return self.dataset_config.cache_key

    # === Reads ===

    async def fetch_dataset(self, force_refresh: bool = False) -> Dataset:
        """Get the merged dataset, from cache when fresh.

        Args:
            force_refresh: Bypass a valid cache entry

        Returns:
            Dataset

        Raises:
            DataUnavailable: Remote reads failed and no stale entry exists
        """
        key = self.cache_key

        if not force_refresh:
            cached = self._cache.get(key)
            if cached is not None:
                logger.debug("Using cached dataset {}", key)
                return Dataset.model_validate(cached)

        # Only join fetches started since the last invalidation; older ones
        # may carry data from before a write.
        pending = self._inflight.get(key)
        if pending is not None and pending[1] == self._generation:
            logger.debug("Joining in-flight fetch for {}", key)
            task = pending[0]
        else:
            task = asyncio.ensure_future(self._load(key, self._generation))
            self._inflight[key] = (task, self._generation)
            task.add_done_callback(lambda t, k=key: self._forget(k, t))

        return await asyncio.shield(task)

    def _forget(self, key: str, task: "asyncio.Task[Dataset]") -> None:
        pending = self._inflight.get(key)
        if pending is not None and pending[0] is task:
            del self._inflight[key]
        if not task.cancelled():
            # Mark the exception retrieved; awaiting callers receive it
            task.exception()

    async def _load(self, key: str, generation: int) -> Dataset:
        queries = [source.to_query() for source in self.dataset_config.sources]
        logger.info("Fetching {} from {} sources", key, len(queries))

        try:
            self.remote_reads += 1
            results = await asyncio.gather(*(self._remote.query(q) for q in queries))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            stale = self._cache.get_stale(key)
            if stale is not None:
                logger.warning("Fetch of {} failed, serving stale cache: {}", key, e)
                return Dataset.model_validate(stale)
            raise DataUnavailable(
                "Dataset could not be fetched",
                operation="fetch_dataset",
                key=key,
                cause=e,
            ) from e

        dataset = self._build_dataset(results)

        async with self._cache.lock(key):
            if generation != self._generation:
                logger.info("Discarding late fetch result for {}", key)
            else:
                self._cache.set(key, dataset.model_dump(mode="json"), self.ttl_ms)

        return dataset

    def _build_dataset(self, results: Sequence[List[Document]]) -> Dataset:
        records: List[Document] = []
        for documents in results:
            records.extend(documents)

        index_config = self.dataset_config.index
        derived_index = build_group_index(
            records,
            group_field=index_config.group_field,
            path_field=index_config.path_field,
            path_anchor=index_config.path_anchor,
        )
        return Dataset(
            records=records,
            derived_index=derived_index,
            last_updated=self._cache.now(),
        )

    def invalidate(self) -> None:
        """Drop the cached dataset and fence off in-flight fetches."""
        self._generation += 1
        self._cache.invalidate(self.cache_key)

    async def refresh(self) -> Dataset:
        """Invalidate and fetch fresh data."""
        self.invalidate()
        return await self.fetch_dataset(force_refresh=True)

    def request_refresh(self) -> bool:
        """Throttled refresh trigger for bursty callers.

        Returns:
            True if a refresh was started, False if it was throttled
        """
        return self._refresh_throttle()

    def _spawn_refresh(self) -> None:
        task = asyncio.ensure_future(self.refresh())
        self._refresh_tasks.add(task)
        task.add_done_callback(self._refresh_done)

    def _refresh_done(self, task: "asyncio.Task[Any]") -> None:
        self._refresh_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning("Background refresh failed: {}", task.exception())

    def cancel_fetches(self) -> int:
        """Cancel in-flight fetches; their results are never cached.

        Returns:
            Number of fetches cancelled
        """
        self._generation += 1
        tasks = [task for task, _ in self._inflight.values()] + list(self._refresh_tasks)
        for task in tasks:
            task.cancel()
        self._inflight.clear()
        return len(tasks)

    # === Writes ===

    async def batch_save(self, mutations: Sequence[MutationRequest]) -> BatchResult:
        """Commit mutations and invalidate affected cache entries.

        Args:
            mutations: Mutations in caller order

        Returns:
            Succeeded/failed partition
        """
        mutations = list(mutations)
        result = await self._writer.commit(mutations)

        if result.succeeded:
            succeeded = set(result.succeeded)
            touched = {
                m.target_collection for m in mutations if m.mutation_id in succeeded
            }
            if touched & set(self.dataset_config.collections):
                self.invalidate()

        if result.failed:
            logger.warning(
                "batch_save: {} of {} mutations failed",
                len(result.failed),
                len(mutations),
            )
        return result

    # === Subscriptions ===

    async def watch_group(
        self,
        group: str,
        callback: ChangeCallback,
        on_error: Optional[SubscriptionErrorCallback] = None,
    ) -> Subscription:
        """Watch the primary collection for one group.

        Args:
            group: Group key, matched against the index group field
            callback: Receives delta batches
            on_error: Receives subscription failures

        Returns:
            Active subscription under scope "group:<group>"
        """
        primary = self.dataset_config.sources[0]
        group_field = self.dataset_config.index.group_field or "group"
        query = RemoteQuery(
            collection=primary.collection,
            where=[FieldFilter(field=group_field, op="==", value=group)],
            order_by=OrderBy(field=primary.order_by, direction=primary.direction)
            if primary.order_by
            else None,
        )

        return await self.subscribe(f"group:{group}", query, callback, on_error=on_error)

    async def subscribe(
        self,
        scope_key: str,
        query: RemoteQuery,
        callback: ChangeCallback,
        predicate: Optional[Callable] = None,
        on_error: Optional[SubscriptionErrorCallback] = None,
    ) -> Subscription:
        """Watch an arbitrary query; deltas invalidate the cached dataset."""

        def on_changes(changes):
            # Fence off fetches that started before the remote change
            self._generation += 1
            callback(changes)

        return await self._subscriber.subscribe(
            scope_key,
            query,
            on_changes,
            predicate=predicate,
            on_error=on_error,
            invalidate_keys=[self.cache_key],
        )

    def unsubscribe_all(self) -> int:
        return self._subscriber.unsubscribe_all()

    # === Lifecycle ===

    def get_memory_info(self) -> Dict[str, Any]:
        """Get memory usage info.

        Returns:
            Dict with cache, listener and in-flight counts
        """
        stats = self._cache.stats()
        return {
            "cache_entries": stats["memory_entries"],
            "total_size_bytes": stats["memory_bytes"],
            "total_size_mb": round(stats["memory_bytes"] / (1024 * 1024), 2),
            "listeners": len(self._subscriber),
            "inflight_fetches": len(self._inflight),
            "remote_reads": self.remote_reads,
        }

    def close(self) -> None:
        """Tear down listeners, in-flight work and the memory cache."""
        self._refresh_throttle.cancel()
        self.cancel_fetches()
        self._subscriber.unsubscribe_all()
        self._cache.clear(durable=False)
        logger.debug("DataManager for {} closed", self.cache_key)
