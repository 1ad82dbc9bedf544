"""Shared fixtures: an in-memory remote store and a controllable clock."""

import asyncio
from typing import Dict, List, Optional, Sequence, Set

import pytest

from docsync.cache import CacheStore, DurableCache
from docsync.models.document import Change, ChangeType, Document, RemoteQuery
from docsync.models.mutation import MutationRequest
from docsync.remote.base import ChangeHandler, ErrorHandler, RemoteStore, Unsubscribe


class FakeClock:
    """Epoch-ms clock advanced by hand."""

    def __init__(self, start: float = 1_700_000_000_000):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


class Listener:
    def __init__(self, query: RemoteQuery, on_changes: ChangeHandler, on_error: ErrorHandler):
        self.query = query
        self.on_changes = on_changes
        self.on_error = on_error
        self.active = True
        self.unsubscribe_calls = 0

    def unsubscribe(self) -> None:
        self.unsubscribe_calls += 1
        self.active = False


class FakeRemoteStore(RemoteStore):
    """Remote store backed by per-collection document lists."""

    def __init__(
        self,
        documents: Optional[Dict[str, List[Document]]] = None,
        batch_limit: int = 500,
    ):
        self.documents: Dict[str, List[Document]] = documents or {}
        self._batch_limit = batch_limit

        self.query_calls = 0
        self.query_delay = 0.0
        self.query_error: Optional[BaseException] = None

        self.commits: List[List[str]] = []
        self.commit_delay = 0.0
        self.fail_documents: Set[str] = set()
        self.in_flight = 0
        self.max_in_flight = 0

        self.listeners: List[Listener] = []
        self.subscribe_error: Optional[BaseException] = None

    @property
    def name(self) -> str:
        return "fake"

    @property
    def batch_limit(self) -> int:
        return self._batch_limit

    async def query(self, query: RemoteQuery) -> List[Document]:
        self.query_calls += 1
        if self.query_delay:
            await asyncio.sleep(self.query_delay)
        if self.query_error is not None:
            raise self.query_error
        return query.apply(self.documents.get(query.collection, []))

    async def commit_batch(self, mutations: Sequence[MutationRequest]) -> None:
        assert len(mutations) <= self._batch_limit
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.commit_delay:
                await asyncio.sleep(self.commit_delay)
            if any(m.document_id in self.fail_documents for m in mutations):
                raise RuntimeError("commit rejected")
            self.commits.append([m.mutation_id for m in mutations])
        finally:
            self.in_flight -= 1

    async def subscribe(
        self,
        query: RemoteQuery,
        on_changes: ChangeHandler,
        on_error: ErrorHandler,
    ) -> Unsubscribe:
        await asyncio.sleep(0)
        if self.subscribe_error is not None:
            raise self.subscribe_error
        listener = Listener(query, on_changes, on_error)
        self.listeners.append(listener)
        return listener.unsubscribe

    @property
    def active_listeners(self) -> List[Listener]:
        return [listener for listener in self.listeners if listener.active]

    def push(self, changes: List[Change]) -> None:
        """Deliver a delta batch to every active listener."""
        for listener in self.active_listeners:
            listener.on_changes(changes)

    def fail_stream(self, error: BaseException) -> None:
        for listener in self.active_listeners:
            listener.active = False
            listener.on_error(error)


def make_docs(collection: str, count: int, group: Optional[str] = None) -> List[Document]:
    docs = []
    for i in range(count):
        data = {"title": f"{collection} {i}", "timestamp": 1000 + i}
        if group:
            data["pageUrl"] = f"https://example.com/careerlibrary/{group}/page-{i}"
        docs.append(Document(id=f"{collection}-{i}", collection=collection, data=data))
    return docs


def change(change_type: ChangeType, doc_id: str, collection: str = "careerPages", **data) -> Change:
    return Change(
        type=change_type,
        document=Document(id=doc_id, collection=collection, data=data),
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def remote():
    return FakeRemoteStore(
        {
            "careerPages": make_docs("careerPages", 10, group="nursing"),
            "savedUrls": make_docs("savedUrls", 7, group="teaching"),
        }
    )


@pytest.fixture
def store(clock):
    return CacheStore(clock=clock)


@pytest.fixture
def durable_store(clock):
    store = CacheStore(durable=DurableCache(":memory:"), clock=clock)
    yield store
    store.close()
