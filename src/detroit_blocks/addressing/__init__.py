"""
Address parsing and street name normalization.
"""

from .normalizer import generate_block_id, normalize_street_name
from .parser import Directional, ParsedAddress, StreetType, parse_address

__all__ = [
    "Directional",
    "ParsedAddress",
    "StreetType",
    "generate_block_id",
    "normalize_street_name",
    "parse_address",
]
