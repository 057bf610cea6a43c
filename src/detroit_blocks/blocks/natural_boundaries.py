"""
Natural block boundary detection.

Looks for gaps in consecutive house numbers along one street; a gap wider
than the threshold is taken to mark a cross street.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List

from ..addressing.parser import parse_address

DEFAULT_GAP_THRESHOLD = 50


@dataclass
class NaturalBoundary:
    """A run of house numbers without a gap wider than the threshold."""
    start: int
    end: int
    members: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "start": self.start,
            "end": self.end,
            "member_count": len(self.members),
        }


def detect_boundaries(
    records: Iterable[Dict[str, Any]],
    gap_threshold: int = DEFAULT_GAP_THRESHOLD,
) -> List[NaturalBoundary]:
    """Split address records into runs separated by house number gaps.

    Records whose address cannot be parsed are dropped. The remainder is
    sorted by house number (stable, so equal numbers keep input order) and
    a new run starts whenever the gap to the previous number is strictly
    greater than ``gap_threshold``.

    Args:
        records: Dicts with an ``address`` key
        gap_threshold: Largest gap still treated as the same block

    Returns:
        List of NaturalBoundary in ascending house number order. Each member
        is the input record with a ``parsed`` key added.
    """
    parsed_records = []
    for record in records:
        parsed = parse_address(record.get("address"))
        if parsed is not None:
            parsed_records.append({**record, "parsed": parsed})

    if not parsed_records:
        return []

    parsed_records.sort(key=lambda r: r["parsed"].house_number)

    first = parsed_records[0]
    current = NaturalBoundary(
        start=first["parsed"].house_number,
        end=first["parsed"].house_number,
        members=[first],
    )
    boundaries = []

    for record in parsed_records[1:]:
        number = record["parsed"].house_number
        if number - current.end > gap_threshold:
            boundaries.append(current)
            current = NaturalBoundary(start=number, end=number, members=[record])
        else:
            current.end = number
            current.members.append(record)

    boundaries.append(current)
    return boundaries
