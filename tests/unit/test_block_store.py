"""
Unit tests for the SQLite block store.
"""

import sqlite3
from datetime import date

import pytest

from detroit_blocks.models import (
    BlockAnalyticsSnapshot,
    BlockRecord,
    ParcelRecord,
    RunStatus,
)
from detroit_blocks.storage import BlockStore, init_database
from detroit_blocks.storage.migrations import get_current_version


@pytest.fixture
def store(tmp_path):
    """Create a store in a temporary directory."""
    return BlockStore(tmp_path / "nested" / "blocks.db")


def make_block(block_id="main_st_first_ave_second_ave", **overrides):
    data = {
        "block_id": block_id,
        "street_name": "Main St",
        "from_cross_street": "First Ave",
        "to_cross_street": "Second Ave",
    }
    data.update(overrides)
    return BlockRecord(**data)


class TestSchema:
    """Test schema creation."""

    def test_creates_database(self, tmp_path):
        db_path = tmp_path / "nested" / "blocks.db"
        BlockStore(db_path)

        assert db_path.exists()
        with sqlite3.connect(db_path) as conn:
            tables = {row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")}
            assert get_current_version(conn) == 1
        assert {"blocks", "block_parcels", "block_analytics", "analytics_runs"} <= tables

    def test_init_database_idempotent(self, tmp_path):
        db_path = tmp_path / "blocks.db"
        init_database(db_path)
        init_database(db_path)

        with sqlite3.connect(db_path) as conn:
            assert get_current_version(conn) == 1

    def test_version_without_table(self):
        conn = sqlite3.connect(":memory:")
        try:
            assert get_current_version(conn) == 0
        finally:
            conn.close()


class TestBlocks:
    """Test block upserts."""

    def test_insert_and_get(self, store):
        saved = store.upsert_block(make_block(center_point={"type": "Point", "coordinates": [1, 2]}))

        assert saved.street_name == "Main St"
        assert saved.center_point == {"type": "Point", "coordinates": [1, 2]}
        assert saved.created_at is not None
        assert store.count_blocks() == 1

    def test_upsert_updates_in_place(self, store):
        store.upsert_block(make_block(center_point={"type": "Point", "coordinates": [1, 2]}))
        updated = store.upsert_block(make_block(street_name="MAIN ST"))

        assert store.count_blocks() == 1
        assert updated.street_name == "MAIN ST"
        # Missing geometry keeps the stored value
        assert updated.center_point == {"type": "Point", "coordinates": [1, 2]}

    def test_get_missing(self, store):
        assert store.get_block("nope") is None


class TestParcels:
    """Test parcel upserts keyed on (block_id, parcel_id)."""

    def test_upsert_parcels(self, store):
        store.upsert_block(make_block())
        written = store.upsert_parcels([
            ParcelRecord(block_id="main_st_first_ave_second_ave", parcel_id="02", address="1202 Main St"),
            ParcelRecord(
                block_id="main_st_first_ave_second_ave",
                parcel_id="01",
                address="1200 Main St",
                property_data={"sale_price": 1000},
            ),
        ])

        parcels = store.get_parcels("main_st_first_ave_second_ave")
        assert written == 2
        assert [p.parcel_id for p in parcels] == ["01", "02"]
        assert parcels[0].property_data == {"sale_price": 1000}
        assert parcels[1].property_data == {}

    def test_same_parcel_updates(self, store):
        block_id = "main_st_first_ave_second_ave"
        store.upsert_parcels([ParcelRecord(block_id=block_id, parcel_id="01", address="old")])
        store.upsert_parcels([ParcelRecord(block_id=block_id, parcel_id="01", address="new")])

        parcels = store.get_parcels(block_id)
        assert len(parcels) == 1
        assert parcels[0].address == "new"

    def test_same_parcel_in_two_blocks(self, store):
        store.upsert_parcels([
            ParcelRecord(block_id="a", parcel_id="01"),
            ParcelRecord(block_id="b", parcel_id="01"),
        ])

        assert len(store.get_parcels("a")) == 1
        assert len(store.get_parcels("b")) == 1

    def test_empty(self, store):
        assert store.upsert_parcels([]) == 0


class TestAnalytics:
    """Test analytics snapshots."""

    def test_requires_block_id(self, store):
        with pytest.raises(ValueError):
            store.upsert_analytics(BlockAnalyticsSnapshot())

    def test_round_trip_fields(self, store):
        snapshot = BlockAnalyticsSnapshot(
            block_id="a",
            analytics_date=date(2024, 1, 1),
            total_parcels=4,
            median_assessed_value=25.0,
            last_sale_date=date(2023, 5, 6),
        )
        store.upsert_analytics(snapshot)

        loaded = store.get_analytics("a", date(2024, 1, 1))
        assert loaded == snapshot

    def test_one_snapshot_per_day(self, store):
        store.upsert_analytics(BlockAnalyticsSnapshot(block_id="a", analytics_date=date(2024, 1, 1), total_parcels=1))
        store.upsert_analytics(BlockAnalyticsSnapshot(block_id="a", analytics_date=date(2024, 1, 1), total_parcels=5))

        loaded = store.get_analytics("a", date(2024, 1, 1))
        assert loaded.total_parcels == 5

    def test_latest_by_default(self, store):
        store.upsert_analytics(BlockAnalyticsSnapshot(block_id="a", analytics_date=date(2024, 2, 1), total_parcels=2))
        store.upsert_analytics(BlockAnalyticsSnapshot(block_id="a", analytics_date=date(2024, 1, 1), total_parcels=1))

        assert store.get_analytics("a").analytics_date == date(2024, 2, 1)
        assert store.get_analytics("missing") is None


class TestRuns:
    """Test run tracking."""

    def test_lifecycle(self, store):
        run = store.start_run("sales_import", {"source": "test.csv"})

        assert run.status == RunStatus.RUNNING
        assert run.metadata == {"source": "test.csv"}
        assert run.started_at is not None
        assert run.completed_at is None

        store.update_run(run.run_id, parcels_processed=10)
        completed = store.complete_run(run.run_id, blocks_processed=3, errors_count=1)

        assert completed.status == RunStatus.COMPLETED
        assert completed.parcels_processed == 10
        assert completed.blocks_processed == 3
        assert completed.errors_count == 1
        assert completed.completed_at is not None

    def test_fail_run(self, store):
        run = store.start_run("full")

        failed = store.fail_run(run.run_id, "boom", parcels_processed=2)

        assert failed.status == RunStatus.FAILED
        assert failed.error_details == {"error": "boom"}
        assert failed.parcels_processed == 2

    def test_unknown_field(self, store):
        run = store.start_run("full")

        with pytest.raises(ValueError, match="Unknown run fields"):
            store.update_run(run.run_id, bogus=1)

    def test_run_ids_increase(self, store):
        first = store.start_run("full")
        second = store.start_run("incremental")

        assert second.run_id > first.run_id
        assert store.get_run(999) is None


def test_newer_schema_refused(tmp_path):
    db_path = tmp_path / "future.db"
    init_database(db_path)
    with sqlite3.connect(db_path) as conn:
        conn.execute("INSERT INTO schema_version (version) VALUES (99)")

    with pytest.raises(RuntimeError, match="schema version 99"):
        BlockStore(db_path)
