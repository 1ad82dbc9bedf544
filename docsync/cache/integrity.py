"""Canonical serialization and integrity hashing for cache payloads."""

import hashlib
import json
from datetime import date, datetime
from decimal import Decimal
from typing import Any


def json_serializer(obj: Any) -> Any:
    """Custom JSON serializer for special types."""
    if hasattr(obj, "model_dump"):
        return obj.model_dump(mode="json")
    elif isinstance(obj, Decimal):
        return str(obj)
    elif isinstance(obj, (datetime, date)):
        return obj.isoformat()
    elif isinstance(obj, (set, frozenset)):
        return sorted(obj)
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def serialize(payload: Any) -> str:
    """Serialize a payload to canonical JSON.

    Keys are sorted and separators are compact, so equal payloads always
    produce identical text.

    Args:
        payload: JSON-compatible value

    Returns:
        Canonical JSON string
    """
    return json.dumps(
        payload,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=json_serializer,
    )


def deserialize(text: str) -> Any:
    return json.loads(text)


def compute_hash(serialized: str) -> str:
    """Hash serialized payload text.

    Args:
        serialized: Output of serialize()

    Returns:
        Hex SHA-256 digest
    """
    return hashlib.sha256(serialized.encode("utf-8")).hexdigest()


def verify(serialized: str, expected_hash: str) -> bool:
    """Check serialized text against its stored hash."""
    return compute_hash(serialized) == expected_hash
