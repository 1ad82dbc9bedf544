"""Remote document, change and query models."""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class Document(BaseModel):
    """A single document read from the remote store."""

    id: str = Field(description="Opaque document ID assigned by the remote store")
    collection: str = Field(description="Collection the document was read from")
    data: Dict[str, Any] = Field(default_factory=dict)

    def get(self, field: str, default: Any = None) -> Any:
        """Get a field value from the document data."""
        return self.data.get(field, default)


class ChangeType(str, Enum):
    """Kind of remote delta."""

    ADDED = "added"
    MODIFIED = "modified"
    REMOVED = "removed"


class Change(BaseModel):
    """A single remote delta delivered to a subscription."""

    type: ChangeType
    document: Document


class FieldFilter(BaseModel):
    """A where-clause on a single document field."""

    field: str
    op: str = Field(
        default="==",
        pattern="^(==|!=|<|<=|>|>=|in|not-in|array-contains)$",
    )
    value: Any = None

    def matches(self, document: Document) -> bool:
        """Evaluate the filter against a document.

        Args:
            document: Document to test

        Returns:
            True if the document satisfies the filter
        """
        if self.field not in document.data:
            return self.op == "!="
        actual = document.data[self.field]

        try:
            if self.op == "==":
                return actual == self.value
            if self.op == "!=":
                return actual != self.value
            if self.op == "<":
                return actual < self.value
            if self.op == "<=":
                return actual <= self.value
            if self.op == ">":
                return actual > self.value
            if self.op == ">=":
                return actual >= self.value
            if self.op == "in":
                return actual in self.value
            if self.op == "not-in":
                return actual not in self.value
            if self.op == "array-contains":
                return isinstance(actual, list) and self.value in actual
        except TypeError:
            # Mixed types never match, same as the remote store
            return False
        return False


class OrderBy(BaseModel):
    """Sort order for a query."""

    field: str = "timestamp"
    direction: str = Field(default="desc", pattern="^(asc|desc)$")


class RemoteQuery(BaseModel):
    """A query against one remote collection."""

    collection: str
    order_by: Optional[OrderBy] = None
    where: List[FieldFilter] = Field(default_factory=list)
    limit: Optional[int] = Field(default=None, ge=1)

    def matches(self, document: Document) -> bool:
        """Check whether a document falls inside this query's scope.

        Args:
            document: Document to test

        Returns:
            True if the collection and every where-clause match
        """
        if document.collection != self.collection:
            return False
        return all(f.matches(document) for f in self.where)

    def apply(self, documents: List[Document]) -> List[Document]:
        """Filter, order and limit documents the way the remote store would.

        Args:
            documents: Candidate documents

        Returns:
            Documents matching this query, in query order
        """
        result = [doc for doc in documents if self.matches(doc)]

        if self.order_by:
            field = self.order_by.field
            present = [doc for doc in result if doc.get(field) is not None]
            missing = [doc for doc in result if doc.get(field) is None]
            present.sort(
                key=lambda doc: doc.get(field),
                reverse=self.order_by.direction == "desc",
            )
            result = present + missing

        if self.limit is not None:
            result = result[: self.limit]

        return result
