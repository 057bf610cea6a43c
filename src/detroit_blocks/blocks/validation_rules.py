"""
Validation rules for block assignments.

Each rule inspects one block's statistics and returns a ValidationIssue
when it applies. Issues are diagnostics only; they never stop a run from
persisting its blocks.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .assignment import AssignmentResult, BlockStats

SEVERITY_INFO = "info"
SEVERITY_WARNING = "warning"
SEVERITY_ERROR = "error"


@dataclass
class ValidationIssue:
    """Result of a validation rule check."""
    type: str  # Short identifier (e.g., "sparse_block")
    block_id: str
    message: str
    severity: str  # "info", "warning", "error"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "block_id": self.block_id,
            "message": self.message,
            "severity": self.severity,
        }


@dataclass
class ValidationReport:
    """All issues found for one assignment result."""
    valid: bool
    issues: List[ValidationIssue] = field(default_factory=list)

    def by_severity(self, severity: str) -> List[ValidationIssue]:
        return [issue for issue in self.issues if issue.severity == severity]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "issues": [issue.to_dict() for issue in self.issues],
        }


class ValidationRule(ABC):
    """Base class for block validation rules."""

    @abstractmethod
    def check(self, block_id: str, stats: BlockStats) -> Optional[ValidationIssue]:
        """Check one block.

        Args:
            block_id: Block identifier
            stats: Accumulated statistics for the block

        Returns:
            ValidationIssue if rule triggered, None otherwise
        """
        pass


class SparseBlockRule(ValidationRule):
    """Flag blocks with far fewer parcels than their number range suggests.

    Assumes one side of a street uses every ``number_spacing``-th number.
    """

    def __init__(self, min_density: float = 0.3, number_spacing: int = 2):
        self.min_density = min_density
        self.number_spacing = number_spacing

    def check(self, block_id: str, stats: BlockStats) -> Optional[ValidationIssue]:
        if stats.min_number is None or stats.max_number is None:
            return None

        number_range = stats.max_number - stats.min_number
        expected_count = number_range // self.number_spacing + 1

        if stats.count < expected_count * self.min_density:
            return ValidationIssue(
                type="sparse_block",
                block_id=block_id,
                message=(
                    f"Block {block_id} has only {stats.count} parcels "
                    f"but spans {number_range} numbers"
                ),
                severity=SEVERITY_WARNING,
            )
        return None


class SmallBlockRule(ValidationRule):
    """Flag blocks with very few parcels."""

    def __init__(self, min_parcels: int = 3):
        self.min_parcels = min_parcels

    def check(self, block_id: str, stats: BlockStats) -> Optional[ValidationIssue]:
        if stats.count < self.min_parcels:
            return ValidationIssue(
                type="small_block",
                block_id=block_id,
                message=f"Block {block_id} has only {stats.count} parcels",
                severity=SEVERITY_INFO,
            )
        return None


class BlockValidator:
    """Runs validation rules over every block of an assignment result."""

    def __init__(self, rules: Optional[List[ValidationRule]] = None):
        """Initialize validator.

        Args:
            rules: Rules to apply (default: sparse and small block rules)
        """
        if rules is None:
            rules = [SparseBlockRule(), SmallBlockRule()]
        self.rules = rules

    @classmethod
    def from_config(cls, validation_config: Dict[str, Any]) -> "BlockValidator":
        """Build a validator from the ``validation`` config section."""
        return cls(rules=[
            SparseBlockRule(
                min_density=validation_config.get("sparse_min_density", 0.3),
                number_spacing=validation_config.get("number_spacing", 2),
            ),
            SmallBlockRule(
                min_parcels=validation_config.get("small_block_min_parcels", 3),
            ),
        ])

    def validate_stats(self, block_stats: Dict[str, BlockStats]) -> ValidationReport:
        issues = []
        for block_id, stats in block_stats.items():
            for rule in self.rules:
                issue = rule.check(block_id, stats)
                if issue is not None:
                    issues.append(issue)

        valid = not any(issue.severity == SEVERITY_ERROR for issue in issues)
        return ValidationReport(valid=valid, issues=issues)

    def validate(self, result: AssignmentResult) -> ValidationReport:
        return self.validate_stats(result.block_stats)


def validate(result: AssignmentResult) -> ValidationReport:
    """Validate an assignment result with the default rules."""
    return BlockValidator().validate(result)
