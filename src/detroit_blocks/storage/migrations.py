"""
Schema setup and version tracking for the block store.

``schema.sql`` is idempotent (CREATE ... IF NOT EXISTS) and records its
version in ``schema_version``. A database written by a newer release is
refused rather than silently downgraded.
"""

import logging
import sqlite3
from pathlib import Path
from typing import Union

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).parent / "schema.sql"
SCHEMA_VERSION = 1


def get_current_version(conn: sqlite3.Connection) -> int:
    """Highest applied schema version, or 0 for a fresh database."""
    try:
        row = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
    except sqlite3.OperationalError:
        return 0
    return row[0] or 0


def apply_schema(db_path: Union[str, Path]) -> int:
    """Create missing tables and indexes.

    Args:
        db_path: SQLite database file

    Returns:
        Schema version after applying

    Raises:
        RuntimeError: If the database has a newer schema than this package
    """
    conn = sqlite3.connect(db_path)
    try:
        found = get_current_version(conn)
        if found > SCHEMA_VERSION:
            raise RuntimeError(
                f"{db_path} has schema version {found}; "
                f"this release supports up to {SCHEMA_VERSION}"
            )

        conn.executescript(SCHEMA_PATH.read_text())
        conn.commit()

        version = get_current_version(conn)
        if version != found:
            logger.debug(f"Block store schema at version {version} (was {found})")
        return version
    finally:
        conn.close()


def init_database(db_path: Union[str, Path]) -> int:
    """Create the database file (and parent directories) with the schema."""
    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    version = apply_schema(db_path)
    logger.info(f"Database initialized: {db_path} (schema v{version})")
    return version
