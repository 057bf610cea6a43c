"""
Street name normalization and block id construction.

Normalized names are the join key between independently processed batches,
so every code path that derives a block id goes through these helpers.
"""

import re
from typing import Optional

_WHITESPACE = re.compile(r"\s+")
_INVALID_CHARS = re.compile(r"[^a-z0-9_]")


def normalize_street_name(name: Optional[str]) -> str:
    """Normalize a street name for use in block ids.

    Lowercases, collapses whitespace runs to underscores and drops every
    character outside ``[a-z0-9_]``. Idempotent.

    Args:
        name: Raw street name (may be None)

    Returns:
        Normalized name, or empty string for empty input
    """
    if not name:
        return ""

    normalized = str(name).lower().strip()
    normalized = _WHITESPACE.sub("_", normalized)
    return _INVALID_CHARS.sub("", normalized)


def generate_block_id(
    street_name: Optional[str],
    from_cross: Optional[str],
    to_cross: Optional[str],
) -> str:
    """Build a geometric block id from a street and its two bounding cross streets.

    Empty parts are dropped before joining.
    """
    parts = [normalize_street_name(part) for part in (street_name, from_cross, to_cross)]
    return "_".join(part for part in parts if part)
