"""
Block-level analytics over assigned parcels.
"""

from .block_analytics import compute_analytics, median, parse_sale_date, sales_activity

__all__ = [
    "compute_analytics",
    "median",
    "parse_sale_date",
    "sales_activity",
]
