"""
Address-based block assignment.

Two strategies share one contract (records in, block ids out):
- fixed_size: house numbers binned into fixed ranges
- natural_boundary: runs split at gaps in house numbering, ids still binned
"""

from .assignment import (
    AssignmentAccumulator,
    AssignmentOptions,
    AssignmentResult,
    AssignmentSummary,
    BlockStats,
    BlockStrategy,
    assign_blocks,
)
from .fixed_size import block_id_for_address, block_range, split_block_id
from .natural_boundaries import NaturalBoundary, detect_boundaries
from .validation_rules import (
    BlockValidator,
    SmallBlockRule,
    SparseBlockRule,
    ValidationIssue,
    ValidationReport,
    validate,
)

__all__ = [
    "AssignmentAccumulator",
    "AssignmentOptions",
    "AssignmentResult",
    "AssignmentSummary",
    "BlockStats",
    "BlockStrategy",
    "BlockValidator",
    "NaturalBoundary",
    "SmallBlockRule",
    "SparseBlockRule",
    "ValidationIssue",
    "ValidationReport",
    "assign_blocks",
    "block_id_for_address",
    "block_range",
    "detect_boundaries",
    "split_block_id",
    "validate",
]
