"""
SQLite persistence for blocks, parcels, analytics and runs.
"""

from .block_store import BlockStore
from .migrations import apply_schema, init_database

__all__ = [
    "BlockStore",
    "apply_schema",
    "init_database",
]
