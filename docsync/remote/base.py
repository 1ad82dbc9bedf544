"""Remote document store abstraction.

docsync consumes a remote store through this interface and never
implements one. Adapters wrap a concrete backend (Firestore, a REST API,
an emulator) behind these four members.
"""

from abc import ABC, abstractmethod
from typing import Callable, List, Sequence

from ..models.document import Change, Document, RemoteQuery
from ..models.mutation import MutationRequest

ChangeHandler = Callable[[List[Change]], None]
ErrorHandler = Callable[[BaseException], None]
Unsubscribe = Callable[[], None]


class RemoteStore(ABC):
    """Abstract base class for remote document stores."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Get the name of this remote store."""
        pass

    @property
    @abstractmethod
    def batch_limit(self) -> int:
        """Maximum number of operations one commit_batch() call may apply."""
        pass

    @abstractmethod
    async def query(self, query: RemoteQuery) -> List[Document]:
        """Read documents.

        Args:
            query: Collection, ordering and where-clauses

        Returns:
            Documents in query order
        """
        pass

    @abstractmethod
    async def commit_batch(self, mutations: Sequence[MutationRequest]) -> None:
        """Apply mutations atomically.

        Either every mutation is applied or none is; failure is signalled
        by raising.

        Args:
            mutations: At most batch_limit mutations
        """
        pass

    @abstractmethod
    async def subscribe(
        self,
        query: RemoteQuery,
        on_changes: ChangeHandler,
        on_error: ErrorHandler,
    ) -> Unsubscribe:
        """Start watching a query.

        on_changes receives delta batches in commit order on the event loop
        thread. on_error is called at most once, after which no more deltas
        are delivered.

        Args:
            query: Query whose results are watched
            on_changes: Delta batch handler
            on_error: Stream failure handler

        Returns:
            Synchronous, idempotent unsubscribe function
        """
        pass
