"""
SQLite store for blocks, block parcels, analytics snapshots and runs.

Uniqueness keys:
- blocks: block_id
- block_parcels: (block_id, parcel_id)
- block_analytics: (block_id, analytics_date)
"""

import json
import sqlite3
from contextlib import contextmanager
from datetime import date
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from ..models import BlockAnalyticsSnapshot, BlockRecord, ParcelRecord, RunRecord, RunStatus
from .migrations import apply_schema

ANALYTICS_COLUMNS = [
    name for name in BlockAnalyticsSnapshot.model_fields
    if name not in ("block_id", "analytics_date")
]


def _json_or_none(value: Any) -> Optional[str]:
    return json.dumps(value, default=str) if value else None


class BlockStore:
    """Persists block detection output."""

    def __init__(self, db_path: Path):
        """Initialize block store.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self._ensure_schema()

    def _ensure_schema(self) -> None:
        """Create tables if they don't exist."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        apply_schema(self.db_path)

    @contextmanager
    def _get_connection(self):
        """Get database connection with proper error handling."""
        conn = sqlite3.connect(
            self.db_path,
            timeout=30.0,
            isolation_level="DEFERRED"
        )
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    # ------------------------------------------------------------------
    # Blocks
    # ------------------------------------------------------------------

    def upsert_block(self, block: BlockRecord) -> BlockRecord:
        """Insert or update a block keyed by block_id.

        Args:
            block: BlockRecord to save

        Returns:
            The stored BlockRecord
        """
        with self._get_connection() as conn:
            conn.execute(
                """INSERT INTO blocks (
                    block_id, street_name, from_cross_street, to_cross_street,
                    block_bounds, center_point
                ) VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(block_id) DO UPDATE SET
                    street_name = excluded.street_name,
                    from_cross_street = excluded.from_cross_street,
                    to_cross_street = excluded.to_cross_street,
                    block_bounds = COALESCE(excluded.block_bounds, blocks.block_bounds),
                    center_point = COALESCE(excluded.center_point, blocks.center_point),
                    updated_at = CURRENT_TIMESTAMP""",
                (
                    block.block_id,
                    block.street_name,
                    block.from_cross_street,
                    block.to_cross_street,
                    _json_or_none(block.block_bounds),
                    _json_or_none(block.center_point),
                )
            )
        return self.get_block(block.block_id)

    def get_block(self, block_id: str) -> Optional[BlockRecord]:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM blocks WHERE block_id = ?",
                (block_id,)
            ).fetchone()
            return BlockRecord.from_db_row(row) if row else None

    def count_blocks(self) -> int:
        with self._get_connection() as conn:
            return conn.execute("SELECT COUNT(*) FROM blocks").fetchone()[0]

    # ------------------------------------------------------------------
    # Parcels
    # ------------------------------------------------------------------

    def upsert_parcels(self, parcels: Iterable[ParcelRecord]) -> int:
        """Insert or update parcels keyed by (block_id, parcel_id).

        Returns:
            Number of parcel rows written
        """
        rows = [
            (
                parcel.block_id,
                str(parcel.parcel_id),
                parcel.address,
                _json_or_none(parcel.property_data),
                _json_or_none(parcel.geometry),
            )
            for parcel in parcels
        ]
        if not rows:
            return 0

        with self._get_connection() as conn:
            conn.executemany(
                """INSERT INTO block_parcels (
                    block_id, parcel_id, address, property_data, geometry
                ) VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(block_id, parcel_id) DO UPDATE SET
                    address = excluded.address,
                    property_data = excluded.property_data,
                    geometry = excluded.geometry""",
                rows
            )
        return len(rows)

    def get_parcels(self, block_id: str) -> List[ParcelRecord]:
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM block_parcels WHERE block_id = ? ORDER BY parcel_id",
                (block_id,)
            ).fetchall()
            return [ParcelRecord.from_db_row(row) for row in rows]

    # ------------------------------------------------------------------
    # Analytics
    # ------------------------------------------------------------------

    def upsert_analytics(self, snapshot: BlockAnalyticsSnapshot) -> None:
        """Insert or replace the snapshot for (block_id, analytics_date)."""
        if not snapshot.block_id:
            raise ValueError("Analytics snapshot has no block_id")

        columns = ["block_id", "analytics_date"] + ANALYTICS_COLUMNS
        values = [snapshot.block_id, snapshot.analytics_date.isoformat()]
        for name in ANALYTICS_COLUMNS:
            value = getattr(snapshot, name)
            values.append(value.isoformat() if isinstance(value, date) else value)

        placeholders = ", ".join("?" * len(columns))
        updates = ", ".join(f"{name} = excluded.{name}" for name in ANALYTICS_COLUMNS)

        with self._get_connection() as conn:
            conn.execute(
                f"""INSERT INTO block_analytics ({", ".join(columns)})
                    VALUES ({placeholders})
                    ON CONFLICT(block_id, analytics_date) DO UPDATE SET
                    {updates}, updated_at = CURRENT_TIMESTAMP""",
                values
            )

    def get_analytics(
        self,
        block_id: str,
        analytics_date: Optional[date] = None,
    ) -> Optional[BlockAnalyticsSnapshot]:
        """Get the snapshot for a date, or the latest one."""
        with self._get_connection() as conn:
            if analytics_date is not None:
                row = conn.execute(
                    """SELECT * FROM block_analytics
                       WHERE block_id = ? AND analytics_date = ?""",
                    (block_id, analytics_date.isoformat())
                ).fetchone()
            else:
                row = conn.execute(
                    """SELECT * FROM block_analytics
                       WHERE block_id = ?
                       ORDER BY analytics_date DESC LIMIT 1""",
                    (block_id,)
                ).fetchone()
            return BlockAnalyticsSnapshot.from_db_row(row) if row else None

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    def start_run(self, run_type: str, metadata: Optional[Dict[str, Any]] = None) -> RunRecord:
        with self._get_connection() as conn:
            cursor = conn.execute(
                "INSERT INTO analytics_runs (run_type, status, metadata_json) VALUES (?, ?, ?)",
                (run_type, RunStatus.RUNNING.value, _json_or_none(metadata))
            )
            run_id = cursor.lastrowid
        return self.get_run(run_id)

    def update_run(self, run_id: int, **fields: Any) -> None:
        """Update counters on a run.

        Args:
            run_id: Run to update
            **fields: parcels_processed, blocks_processed, errors_count,
                error_details, metadata
        """
        columns = {
            "parcels_processed": "parcels_processed",
            "blocks_processed": "blocks_processed",
            "errors_count": "errors_count",
            "error_details": "error_details",
            "metadata": "metadata_json",
        }
        unknown = set(fields) - set(columns)
        if unknown:
            raise ValueError(f"Unknown run fields: {sorted(unknown)}")
        if not fields:
            return

        assignments = []
        params = []
        for name, value in fields.items():
            assignments.append(f"{columns[name]} = ?")
            params.append(_json_or_none(value) if name in ("error_details", "metadata") else value)
        params.append(run_id)

        with self._get_connection() as conn:
            conn.execute(
                f"UPDATE analytics_runs SET {', '.join(assignments)} WHERE run_id = ?",
                params
            )

    def _finish_run(self, run_id: int, status: RunStatus, **fields: Any) -> RunRecord:
        self.update_run(run_id, **fields)
        with self._get_connection() as conn:
            conn.execute(
                """UPDATE analytics_runs
                   SET status = ?, completed_at = CURRENT_TIMESTAMP
                   WHERE run_id = ?""",
                (status.value, run_id)
            )
        return self.get_run(run_id)

    def complete_run(self, run_id: int, **fields: Any) -> RunRecord:
        return self._finish_run(run_id, RunStatus.COMPLETED, **fields)

    def fail_run(self, run_id: int, error: str, **fields: Any) -> RunRecord:
        return self._finish_run(run_id, RunStatus.FAILED, error_details={"error": error}, **fields)

    def get_run(self, run_id: int) -> Optional[RunRecord]:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM analytics_runs WHERE run_id = ?",
                (run_id,)
            ).fetchone()
            return RunRecord.from_db_row(row) if row else None
