"""
Fixed-size house number binning.

Examples (block_size=100):
- 1234 Woodward -> woodward_1200_1299
- 15050 7 Mile Rd -> 7_mile_rd_15000_15099
- 525 E Jefferson -> e_jefferson_500_599
"""

from typing import Optional, Tuple

from ..addressing.parser import ParsedAddress

DEFAULT_BLOCK_SIZE = 100


def block_range(house_number: int, block_size: int = DEFAULT_BLOCK_SIZE) -> Tuple[int, int]:
    """Return the inclusive (start, end) house number range containing house_number."""
    if block_size <= 0:
        raise ValueError(f"block_size must be positive, got {block_size}")

    start = (house_number // block_size) * block_size
    return start, start + block_size - 1


def format_block_id(street_name: str, start: int, end: int) -> str:
    """Join a normalized street name and a house number range into a block id."""
    return f"{street_name}_{start}_{end}"


def block_id_for_address(
    parsed: Optional[ParsedAddress],
    block_size: int = DEFAULT_BLOCK_SIZE,
) -> Optional[str]:
    """Generate a fixed-size block id for a parsed address.

    Args:
        parsed: Parsed address (None yields None)
        block_size: Number of house numbers per block

    Returns:
        Block id such as ``woodward_1200_1299``
    """
    if parsed is None:
        return None

    start, end = block_range(parsed.house_number, block_size)
    return format_block_id(parsed.street_name, start, end)


def split_block_id(block_id: str) -> Tuple[str, int, int]:
    """Split a fixed-size block id into (street label, start, end).

    The street label has underscores replaced by spaces
    (``7_mile_rd_15000_15099`` -> ``("7 mile rd", 15000, 15099)``).

    Raises:
        ValueError: If the id does not end in two house numbers
    """
    parts = block_id.split("_")
    if len(parts) < 3:
        raise ValueError(f"Not a fixed-size block id: {block_id}")
    street = " ".join(parts[:-2])
    return street, int(parts[-2]), int(parts[-1])
