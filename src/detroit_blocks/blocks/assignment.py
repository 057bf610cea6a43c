"""
Batch block assignment for address records.

Groups parcels by normalized street name and assigns consistent block ids
using either fixed-size binning or natural boundary detection. All per-run
state lives in an AssignmentAccumulator owned by the caller (or by a single
assign_blocks() call), never at module level.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional

from ..addressing.parser import ParsedAddress, parse_address
from .fixed_size import DEFAULT_BLOCK_SIZE, block_id_for_address, block_range, format_block_id
from .natural_boundaries import DEFAULT_GAP_THRESHOLD, detect_boundaries

logger = logging.getLogger(__name__)


class BlockStrategy(str, Enum):
    """Block identification strategy selected by run configuration."""
    FIXED_SIZE = "fixed_size"
    NATURAL_BOUNDARY = "natural_boundary"
    GEOMETRIC = "geometric"


@dataclass
class AssignmentOptions:
    """Options for address-based block assignment."""
    block_size: int = DEFAULT_BLOCK_SIZE
    use_natural_boundaries: bool = False
    gap_threshold: int = DEFAULT_GAP_THRESHOLD

    @classmethod
    def from_config(cls, assignment_config: Dict[str, Any]) -> "AssignmentOptions":
        """Build options from the ``assignment`` config section."""
        return cls(
            block_size=int(assignment_config.get("block_size", DEFAULT_BLOCK_SIZE)),
            use_natural_boundaries=bool(assignment_config.get("use_natural_boundaries", False)),
            gap_threshold=int(assignment_config.get("gap_threshold", DEFAULT_GAP_THRESHOLD)),
        )

    @property
    def strategy(self) -> BlockStrategy:
        if self.use_natural_boundaries:
            return BlockStrategy.NATURAL_BOUNDARY
        return BlockStrategy.FIXED_SIZE


@dataclass
class BlockStats:
    """Running statistics for one block."""
    count: int = 0
    min_number: Optional[int] = None
    max_number: Optional[int] = None
    street_name: str = ""

    def add(self, house_number: int) -> None:
        """Record one parcel with the given house number."""
        self.count += 1
        if self.min_number is None or house_number < self.min_number:
            self.min_number = house_number
        if self.max_number is None or house_number > self.max_number:
            self.max_number = house_number

    def merge(self, other: "BlockStats") -> None:
        """Fold another block's statistics into this one."""
        self.count += other.count
        if other.min_number is not None:
            if self.min_number is None or other.min_number < self.min_number:
                self.min_number = other.min_number
        if other.max_number is not None:
            if self.max_number is None or other.max_number > self.max_number:
                self.max_number = other.max_number
        if not self.street_name:
            self.street_name = other.street_name

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "count": self.count,
            "min_number": self.min_number,
            "max_number": self.max_number,
            "street_name": self.street_name,
        }


@dataclass
class AssignmentSummary:
    """Counters describing one assignment run."""
    total_parcels: int = 0
    successfully_assigned: int = 0
    parse_errors: int = 0
    unique_blocks: int = 0
    unique_streets: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "total_parcels": self.total_parcels,
            "successfully_assigned": self.successfully_assigned,
            "parse_errors": self.parse_errors,
            "unique_blocks": self.unique_blocks,
            "unique_streets": self.unique_streets,
        }


@dataclass
class AssignmentResult:
    """Output of assign_blocks()."""
    assigned: List[Dict[str, Any]]
    block_stats: Dict[str, BlockStats]
    summary: AssignmentSummary
    street_names: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-friendly dictionary (parsed addresses flattened)."""
        assigned = []
        for record in self.assigned:
            record = dict(record)
            if isinstance(record.get("parsed"), ParsedAddress):
                record["parsed"] = record["parsed"].to_dict()
            assigned.append(record)

        return {
            "assigned": assigned,
            "block_stats": {
                block_id: stats.to_dict()
                for block_id, stats in self.block_stats.items()
            },
            "summary": self.summary.to_dict(),
            "street_names": list(self.street_names),
        }


class AssignmentAccumulator:
    """Per-run accumulator for block statistics and street groups.

    One instance belongs to exactly one run; concurrent runs each hold their
    own. ``merge()`` folds a chunk's AssignmentResult into running totals so
    a streaming caller can process a large file chunk by chunk.
    """

    def __init__(self):
        self.block_stats: Dict[str, BlockStats] = {}
        self.street_groups: Dict[str, List[Dict[str, Any]]] = {}
        self.total_parcels = 0
        self.successfully_assigned = 0
        self.parse_errors = 0

    def add_to_street(self, street_name: str, record: Dict[str, Any]) -> None:
        self.street_groups.setdefault(street_name, []).append(record)

    def record_assignment(self, block_id: str, parsed: ParsedAddress) -> None:
        """Count one parcel against a block."""
        stats = self.block_stats.get(block_id)
        if stats is None:
            stats = BlockStats(street_name=parsed.raw_street_label)
            self.block_stats[block_id] = stats
        stats.add(parsed.house_number)
        self.successfully_assigned += 1

    def merge(self, result: AssignmentResult) -> None:
        """Add a chunk result to the running totals."""
        for block_id, stats in result.block_stats.items():
            if block_id not in self.block_stats:
                self.block_stats[block_id] = BlockStats(street_name=stats.street_name)
            self.block_stats[block_id].merge(stats)

        for street_name in result.street_names:
            self.street_groups.setdefault(street_name, [])

        self.total_parcels += result.summary.total_parcels
        self.successfully_assigned += result.summary.successfully_assigned
        self.parse_errors += result.summary.parse_errors

    def summary(self) -> AssignmentSummary:
        return AssignmentSummary(
            total_parcels=self.total_parcels,
            successfully_assigned=self.successfully_assigned,
            parse_errors=self.parse_errors,
            unique_blocks=len(self.block_stats),
            unique_streets=len(self.street_groups),
        )


def _assign_fixed_size(
    street_name: str,
    records: List[Dict[str, Any]],
    options: AssignmentOptions,
    accumulator: AssignmentAccumulator,
) -> List[Dict[str, Any]]:
    assigned = []
    for record in records:
        block_id = block_id_for_address(record["parsed"], options.block_size)
        assigned.append({
            **record,
            "block_id": block_id,
            "block_method": BlockStrategy.FIXED_SIZE.value,
        })
        accumulator.record_assignment(block_id, record["parsed"])
    return assigned


def _assign_natural_boundary(
    street_name: str,
    records: List[Dict[str, Any]],
    options: AssignmentOptions,
    accumulator: AssignmentAccumulator,
) -> List[Dict[str, Any]]:
    assigned = []
    for boundary in detect_boundaries(records, options.gap_threshold):
        # Id format stays fixed-size; only membership follows the gaps
        start, end = block_range(boundary.start, options.block_size)
        block_id = format_block_id(street_name, start, end)

        for member in boundary.members:
            assigned.append({
                **member,
                "block_id": block_id,
                "block_method": BlockStrategy.NATURAL_BOUNDARY.value,
            })
            accumulator.record_assignment(block_id, member["parsed"])
    return assigned


StreetAssigner = Callable[
    [str, List[Dict[str, Any]], AssignmentOptions, AssignmentAccumulator],
    List[Dict[str, Any]],
]

STRATEGIES: Dict[BlockStrategy, StreetAssigner] = {
    BlockStrategy.FIXED_SIZE: _assign_fixed_size,
    BlockStrategy.NATURAL_BOUNDARY: _assign_natural_boundary,
}


def assign_blocks(
    parcels: Iterable[Dict[str, Any]],
    options: Optional[AssignmentOptions] = None,
) -> AssignmentResult:
    """Assign block ids to a batch of parcel records.

    Unparseable addresses are emitted first, in input order, with
    ``block_id=None`` and ``parse_error=True``. Parsed records follow grouped
    by street in first-seen order; within a street the fixed-size strategy
    keeps input order while the natural-boundary strategy re-sorts by house
    number.

    Args:
        parcels: Dicts with at least an ``address`` key
        options: Assignment options (defaults to fixed 100-number blocks)

    Returns:
        AssignmentResult with assigned records, block stats and a summary
    """
    options = options or AssignmentOptions()
    accumulator = AssignmentAccumulator()
    results: List[Dict[str, Any]] = []

    for parcel in parcels:
        accumulator.total_parcels += 1
        parsed = parse_address(parcel.get("address"))

        if parsed is None:
            results.append({**parcel, "block_id": None, "parse_error": True})
            accumulator.parse_errors += 1
            continue

        accumulator.add_to_street(parsed.street_name, {**parcel, "parsed": parsed})

    assign_street = STRATEGIES[options.strategy]
    for street_name, records in accumulator.street_groups.items():
        results.extend(assign_street(street_name, records, options, accumulator))

    summary = accumulator.summary()
    logger.debug(
        f"Assigned {summary.successfully_assigned}/{summary.total_parcels} parcels "
        f"to {summary.unique_blocks} blocks on {summary.unique_streets} streets "
        f"({options.strategy.value})"
    )

    return AssignmentResult(
        assigned=results,
        block_stats=accumulator.block_stats,
        summary=summary,
        street_names=list(accumulator.street_groups),
    )
