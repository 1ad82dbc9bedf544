"""Tests for derived index helpers and query evaluation."""

from docsync.models.document import Document, FieldFilter, OrderBy, RemoteQuery
from docsync.utils.indexing import build_group_index, extract_path_group


class TestExtractPathGroup:
    """Tests for path segment extraction."""

    def test_absolute_url(self):
        url = "https://example.com/careerlibrary/nursing/overview?tab=1"
        assert extract_path_group(url, "careerlibrary") == "nursing"

    def test_bare_path(self):
        assert extract_path_group("/careerlibrary/teaching", "careerlibrary") == "teaching"

    def test_anchor_missing_or_last(self):
        assert extract_path_group("/other/nursing", "careerlibrary") is None
        assert extract_path_group("/careerlibrary/", "careerlibrary") is None

    def test_non_string(self):
        assert extract_path_group(None, "careerlibrary") is None
        assert extract_path_group(42, "careerlibrary") is None


class TestBuildGroupIndex:
    """Tests for the grouping index."""

    def test_explicit_field_wins(self):
        docs = [
            Document(
                id="1",
                collection="c",
                data={"career": "law", "pageUrl": "/careerlibrary/nursing"},
            ),
            Document(id="2", collection="c", data={"pageUrl": "/careerlibrary/nursing"}),
            Document(id="3", collection="c", data={"title": "orphan"}),
            Document(id="4", collection="c", data={"career": "law"}),
        ]
        assert build_group_index(docs) == {"law": ["1", "4"], "nursing": ["2"]}

    def test_empty(self):
        assert build_group_index([]) == {}


class TestRemoteQuery:
    """Tests for local query evaluation."""

    docs = [
        Document(id="a", collection="c", data={"n": 3, "tags": ["x"]}),
        Document(id="b", collection="c", data={"n": 1}),
        Document(id="c", collection="c", data={}),
        Document(id="d", collection="other", data={"n": 2}),
    ]

    def test_order_and_limit(self):
        query = RemoteQuery(collection="c", order_by=OrderBy(field="n", direction="asc"))
        assert [d.id for d in query.apply(self.docs)] == ["b", "a", "c"]
        query.limit = 1
        assert [d.id for d in query.apply(self.docs)] == ["b"]

    def test_filters(self):
        assert FieldFilter(field="n", op=">", value=2).matches(self.docs[0])
        assert not FieldFilter(field="n", op=">", value="x").matches(self.docs[0])
        assert FieldFilter(field="tags", op="array-contains", value="x").matches(self.docs[0])
        assert FieldFilter(field="n", op="!=", value=1).matches(self.docs[2])
        assert not FieldFilter(field="n", op="==", value=1).matches(self.docs[2])

    def test_collection_must_match(self):
        assert not RemoteQuery(collection="c").matches(self.docs[3])
