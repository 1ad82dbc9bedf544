"""Scoped change subscriptions.

At most one Subscription is active per scope key. subscribe() on a scope
that already has one cancels the old one to completion before the new
remote listener is set up.
"""

import asyncio
from typing import Any, Callable, Dict, List, Optional, Sequence

from loguru import logger

from ..cache.store import CacheStore
from ..errors import SubscriptionError
from ..models.document import Change, ChangeType, RemoteQuery
from ..remote.base import RemoteStore, Unsubscribe

ChangeCallback = Callable[[List[Change]], None]
ChangePredicate = Callable[[Change], bool]
SubscriptionErrorCallback = Callable[[SubscriptionError], None]


class Subscription:
    """A live watch on one remote query under a scope key."""

    def __init__(
        self,
        scope_key: str,
        query: RemoteQuery,
        callback: ChangeCallback,
        predicate: Optional[ChangePredicate] = None,
        on_error: Optional[SubscriptionErrorCallback] = None,
        invalidate_keys: Sequence[str] = (),
        cache: Optional[CacheStore] = None,
    ):
        self.scope_key = scope_key
        self.query = query
        self.predicate = predicate
        self.invalidate_keys = list(invalidate_keys)
        self._callback = callback
        self._on_error = on_error
        self._cache = cache
        self._unsubscribe: Optional[Unsubscribe] = None
        self._released: Optional[Callable[["Subscription"], None]] = None
        self.active = False
        self.delivered = 0

    def _attach(
        self,
        unsubscribe: Unsubscribe,
        released: Callable[["Subscription"], None],
    ) -> None:
        self._unsubscribe = unsubscribe
        self._released = released

    def accepts(self, change: Change) -> bool:
        """Check whether a delta belongs to this scope.

        Removals are accepted even when the document no longer matches the
        query, since leaving the scope is itself a change to it.
        """
        if change.type != ChangeType.REMOVED and not self.query.matches(change.document):
            return False
        if self.predicate is not None and not self.predicate(change):
            return False
        return True

    def _handle_changes(self, changes: List[Change]) -> None:
        if not self.active:
            logger.debug("Dropping {} deltas for inactive scope {}", len(changes), self.scope_key)
            return

        relevant = [change for change in changes if self.accepts(change)]
        if not relevant:
            return

        if self._cache is not None:
            for key in self.invalidate_keys:
                self._cache.invalidate(key)

        self.delivered += len(relevant)
        logger.debug("Delivering {} changes to scope {}", len(relevant), self.scope_key)
        self._callback(relevant)

    def _handle_error(self, error: BaseException) -> None:
        if not self.active:
            return

        wrapped = SubscriptionError(
            "Subscription failed",
            operation="subscribe",
            key=self.scope_key,
            cause=error,
        )
        logger.error("{}; marking inactive", wrapped)
        self.cancel()

        if self._on_error is not None:
            self._on_error(wrapped)

    def cancel(self) -> None:
        """Tear down the remote listener. Idempotent."""
        if not self.active and self._unsubscribe is None:
            return

        self.active = False
        unsubscribe, self._unsubscribe = self._unsubscribe, None
        if unsubscribe is not None:
            unsubscribe()

        released, self._released = self._released, None
        if released is not None:
            released(self)

        logger.debug("Cancelled subscription {}", self.scope_key)

    def __call__(self) -> None:
        self.cancel()


class ChangeSubscriber:
    """Registry of scope key -> active Subscription."""

    def __init__(self, remote: RemoteStore, cache: Optional[CacheStore] = None):
        """Initialize change subscriber.

        Args:
            remote: Remote store to watch
            cache: Cache whose entries are invalidated on deltas
        """
        self._remote = remote
        self._cache = cache
        self._subscriptions: Dict[str, Subscription] = {}
        self._pending: Dict[str, Subscription] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock(self, scope_key: str) -> asyncio.Lock:
        if scope_key not in self._locks:
            self._locks[scope_key] = asyncio.Lock()
        return self._locks[scope_key]

    def _release(self, subscription: Subscription) -> None:
        if self._subscriptions.get(subscription.scope_key) is subscription:
            del self._subscriptions[subscription.scope_key]

    async def subscribe(
        self,
        scope_key: str,
        query: RemoteQuery,
        callback: ChangeCallback,
        predicate: Optional[ChangePredicate] = None,
        on_error: Optional[SubscriptionErrorCallback] = None,
        invalidate_keys: Sequence[str] = (),
    ) -> Subscription:
        """Watch a query under a scope key, replacing any existing watch.

        Args:
            scope_key: Identity of the subscription
            query: Remote query scoping the watch
            callback: Receives each non-empty filtered delta batch
            predicate: Extra local filter applied to each delta
            on_error: Receives a SubscriptionError if the stream fails
            invalidate_keys: Cache keys invalidated whenever deltas arrive

        Returns:
            The active Subscription; calling it (or .cancel()) tears it down
        """
        async with self._lock(scope_key):
            previous = self._subscriptions.get(scope_key)
            if previous is not None:
                logger.debug("Replacing subscription {}", scope_key)
                previous.cancel()

            subscription = Subscription(
                scope_key,
                query,
                callback,
                predicate=predicate,
                on_error=on_error,
                invalidate_keys=invalidate_keys,
                cache=self._cache,
            )

            # Deltas may arrive while setup is still awaiting
            subscription.active = True
            self._pending[scope_key] = subscription
            try:
                unsubscribe = await self._remote.subscribe(
                    query,
                    subscription._handle_changes,
                    subscription._handle_error,
                )
            except asyncio.CancelledError:
                subscription.active = False
                raise
            except Exception as e:
                subscription.active = False
                error = SubscriptionError(
                    "Subscription setup failed",
                    operation="subscribe",
                    key=scope_key,
                    cause=e,
                )
                logger.error("{}", error)
                raise error from e
            finally:
                if self._pending.get(scope_key) is subscription:
                    del self._pending[scope_key]

            if not subscription.active:
                # Torn down or failed while setup was awaiting
                unsubscribe()
                logger.debug("Subscription {} ended during setup", scope_key)
                return subscription

            subscription._attach(unsubscribe, self._release)
            self._subscriptions[scope_key] = subscription
            logger.info("Subscribed {} to {}", scope_key, query.collection)
            return subscription

    async def replace(
        self,
        scope_key: str,
        query: RemoteQuery,
        callback: ChangeCallback,
        **kwargs: Any,
    ) -> Subscription:
        """Alias of subscribe(), named for its cancel-then-attach semantics."""
        return await self.subscribe(scope_key, query, callback, **kwargs)

    def get(self, scope_key: str) -> Optional[Subscription]:
        return self._subscriptions.get(scope_key)

    def cancel(self, scope_key: str) -> bool:
        """Cancel the subscription under a scope key, including one still
        being set up.

        Returns:
            True if a subscription was active or pending
        """
        found = False
        for registry in (self._subscriptions, self._pending):
            subscription = registry.get(scope_key)
            if subscription is not None:
                subscription.cancel()
                found = True
        return found

    def unsubscribe_all(self) -> int:
        """Cancel every subscription, including pending ones. Idempotent.

        Returns:
            Number of subscriptions cancelled
        """
        subscriptions = list(self._subscriptions.values()) + list(self._pending.values())
        for subscription in subscriptions:
            subscription.cancel()
        self._subscriptions.clear()
        return len(subscriptions)

    @property
    def scopes(self) -> List[str]:
        return list(self._subscriptions)

    def __len__(self) -> int:
        return len(self._subscriptions)
