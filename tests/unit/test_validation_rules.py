"""
Unit tests for block validation rules.
"""

import pytest

from detroit_blocks.blocks import (
    BlockStats,
    BlockValidator,
    SmallBlockRule,
    SparseBlockRule,
    assign_blocks,
    validate,
)


@pytest.fixture
def dense_stats():
    return BlockStats(count=10, min_number=1200, max_number=1218, street_name="CASS AVE")


@pytest.fixture
def sparse_stats():
    return BlockStats(count=2, min_number=1200, max_number=1298, street_name="CASS AVE")


class TestSparseBlockRule:
    """Test sparse block detection."""

    def test_dense_block_passes(self, dense_stats):
        assert SparseBlockRule().check("cass_1200_1299", dense_stats) is None

    def test_sparse_block_flagged(self, sparse_stats):
        """Test 2 parcels over 98 numbers (50 expected) is flagged."""
        issue = SparseBlockRule().check("cass_1200_1299", sparse_stats)

        assert issue.type == "sparse_block"
        assert issue.severity == "warning"
        assert issue.message == "Block cass_1200_1299 has only 2 parcels but spans 98 numbers"

    def test_density_boundary(self):
        """Test count equal to expected * density is not sparse."""
        stats = BlockStats(count=3, min_number=0, max_number=18)  # 10 expected

        assert SparseBlockRule(min_density=0.3).check("b", stats) is None
        assert SparseBlockRule(min_density=0.31).check("b", stats) is not None

    def test_configurable_spacing(self, sparse_stats):
        assert SparseBlockRule(number_spacing=100).check("b", sparse_stats) is None

    def test_empty_stats_ignored(self):
        assert SparseBlockRule().check("b", BlockStats()) is None


class TestSmallBlockRule:
    """Test small block detection."""

    def test_small_block_flagged(self, sparse_stats):
        issue = SmallBlockRule().check("cass_1200_1299", sparse_stats)

        assert issue.type == "small_block"
        assert issue.severity == "info"

    def test_min_parcels_met(self):
        assert SmallBlockRule(min_parcels=3).check("b", BlockStats(count=3)) is None


class TestBlockValidator:
    """Test running rules over assignment results."""

    def test_warnings_do_not_invalidate(self, sparse_stats, dense_stats):
        report = BlockValidator().validate_stats({"sparse": sparse_stats, "dense": dense_stats})

        assert report.valid is True
        assert {issue.type for issue in report.issues} == {"sparse_block", "small_block"}
        assert len(report.by_severity("warning")) == 1
        assert len(report.by_severity("info")) == 1

    def test_from_config(self, sparse_stats):
        validator = BlockValidator.from_config({
            "sparse_min_density": 0.01,
            "number_spacing": 2,
            "small_block_min_parcels": 1,
        })

        assert validator.validate_stats({"b": sparse_stats}).issues == []

    def test_validate_assignment_result(self):
        result = assign_blocks([{"address": "1200 Cass Ave"}, {"address": "1298 Cass Ave"}])

        report = validate(result)

        assert report.valid
        assert [issue.block_id for issue in report.issues] == ["cass_1200_1299", "cass_1200_1299"]
        assert report.to_dict()["issues"][0]["type"] == "sparse_block"
