"""Derived index helpers.

Groups records by a structural key, taken from an explicit field when
present and otherwise from the path segment following an anchor in a
URL-like field (e.g. ``/careerlibrary/<group>/...``).
"""

from typing import Dict, Iterable, List, Optional
from urllib.parse import urlparse

from ..models.document import Document


def extract_path_group(value: str, anchor: str) -> Optional[str]:
    """Extract the path segment after an anchor segment.

    Args:
        value: Absolute URL or bare path
        anchor: Segment that precedes the group segment

    Returns:
        Group segment or None if the anchor is absent or last
    """
    if not value or not isinstance(value, str):
        return None

    try:
        path = urlparse(value).path if "://" in value else value
    except ValueError:
        return None

    parts = path.lstrip("/").split("/")
    try:
        idx = parts.index(anchor)
    except ValueError:
        return None

    if idx + 1 < len(parts) and parts[idx + 1]:
        return parts[idx + 1]
    return None


def group_key(
    document: Document,
    group_field: Optional[str],
    path_field: Optional[str],
    path_anchor: str,
) -> Optional[str]:
    """Determine the group a document belongs to.

    Args:
        document: Document to classify
        group_field: Field holding the group directly
        path_field: URL-like field to fall back to
        path_anchor: Anchor segment inside path_field

    Returns:
        Group key or None if the document has none
    """
    if group_field:
        value = document.get(group_field)
        if value:
            return str(value)

    if path_field:
        return extract_path_group(document.get(path_field), path_anchor)

    return None


def build_group_index(
    documents: Iterable[Document],
    group_field: Optional[str] = "career",
    path_field: Optional[str] = "pageUrl",
    path_anchor: str = "careerlibrary",
) -> Dict[str, List[str]]:
    """Build group key -> document IDs.

    Groups keep first-seen order and IDs keep document order.

    Args:
        documents: Documents in dataset order
        group_field: Field holding the group directly
        path_field: URL-like fallback field
        path_anchor: Anchor segment inside path_field

    Returns:
        Grouping index
    """
    index: Dict[str, List[str]] = {}
    for doc in documents:
        key = group_key(doc, group_field, path_field, path_anchor)
        if key is None:
            continue
        index.setdefault(key, []).append(doc.id)
    return index
