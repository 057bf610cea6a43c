"""
Detroit Block Analytics.

Groups Detroit parcels into blocks, either by house number along a street or
by cutting street centerlines at their cross streets, and keeps block-level
statistics in a SQLite store.
"""

__version__ = "0.1.0"
