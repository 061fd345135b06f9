"""
JSON Canonicalization for deterministic rule output.

Ensures that a serialized rule is byte-for-byte identical for the same tree
by enforcing consistent key ordering and separators.

This matters for:
- Change detection (an edit that only moves nodes on the canvas is not a change)
- Round-trip tests (tree -> canvas -> tree compares equal as text)
- Content-based cache keys
"""

import hashlib
import json
from typing import Any


def canonicalize_json(obj: Any) -> dict | list | Any:
    """
    Produce a deterministic, canonical representation of a JSON object.

    This function ensures:
    - All dictionary keys are sorted alphabetically
    - Nested structures are recursively canonicalized
    - Tuples are emitted as lists

    Args:
        obj: Python object (dict, list, or primitive) to canonicalize

    Returns:
        Canonicalized version with sorted keys at all levels

    Note:
        Arrays preserve their input order. Group children are ordered by the
        author, and that order is kept even though AND/OR are commutative.
    """
    if isinstance(obj, dict):
        return {k: canonicalize_json(v) for k, v in sorted(obj.items())}

    elif isinstance(obj, (list, tuple)):
        return [canonicalize_json(item) for item in obj]

    else:
        # Primitives (str, int, float, bool, None) pass through unchanged
        return obj


def to_canonical_json_string(obj: Any) -> str:
    """
    Convert a Python object to a canonical JSON string.

    Example:
        >>> to_canonical_json_string({"value": 100, "field": "amount"})
        '{"field":"amount","value":100}'
    """
    canonical = canonicalize_json(obj)
    return json.dumps(canonical, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def to_canonical_json_pretty(obj: Any) -> str:
    """Pretty-printed canonical JSON, for logs and previews."""
    canonical = canonicalize_json(obj)
    return json.dumps(canonical, sort_keys=True, indent=2, ensure_ascii=False)


def checksum(obj: Any) -> str:
    """SHA-256 hex digest of the canonical JSON string."""
    return hashlib.sha256(to_canonical_json_string(obj).encode("utf-8")).hexdigest()
