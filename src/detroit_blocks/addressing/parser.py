"""
Address parser for Detroit parcel addresses.

Handles formats such as:
- "1234 Woodward Ave"
- "500 E Jefferson Ave"
- "1234-1236 Main St" (multi-unit, first number kept)
- "15000 7 Mile Rd" (numbered street, parsed by the fallback pattern)
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from .normalizer import normalize_street_name

logger = logging.getLogger(__name__)


class Directional(str, Enum):
    """Directional street prefix."""
    N = "N"
    S = "S"
    E = "E"
    W = "W"


class StreetType(str, Enum):
    """Recognized street type suffixes (canonical abbreviations)."""
    ST = "ST"
    AVE = "AVE"
    RD = "RD"
    BLVD = "BLVD"
    DR = "DR"
    LN = "LN"
    CT = "CT"
    PL = "PL"
    WAY = "WAY"
    PKWY = "PKWY"
    HWY = "HWY"
    CIR = "CIR"
    TER = "TER"


# Full word -> canonical abbreviation
STREET_TYPE_ALIASES = {
    "ST": StreetType.ST,
    "STREET": StreetType.ST,
    "AVE": StreetType.AVE,
    "AVENUE": StreetType.AVE,
    "RD": StreetType.RD,
    "ROAD": StreetType.RD,
    "BLVD": StreetType.BLVD,
    "BOULEVARD": StreetType.BLVD,
    "DR": StreetType.DR,
    "DRIVE": StreetType.DR,
    "LN": StreetType.LN,
    "LANE": StreetType.LN,
    "CT": StreetType.CT,
    "COURT": StreetType.CT,
    "PL": StreetType.PL,
    "PLACE": StreetType.PL,
    "WAY": StreetType.WAY,
    "PKWY": StreetType.PKWY,
    "PARKWAY": StreetType.PKWY,
    "HWY": StreetType.HWY,
    "HIGHWAY": StreetType.HWY,
    "CIR": StreetType.CIR,
    "CIRCLE": StreetType.CIR,
    "TER": StreetType.TER,
    "TERRACE": StreetType.TER,
}

_TYPE_PATTERN = "|".join(sorted(STREET_TYPE_ALIASES, key=len, reverse=True))

# number[-number] [directional] street-words street-type[.]
# No word after the house number may start with a digit; numbered streets
# ("7 Mile Rd", "W 7 Mile Rd") go to the fallback.
ADDRESS_PATTERN = re.compile(
    r"^(\d+)(?:-\d+)?\s+(?!.*\b\d)"
    r"(?:(N|S|E|W|NORTH|SOUTH|EAST|WEST)\s+)?"
    r"([A-Z].*?)\s+"
    rf"({_TYPE_PATTERN})\.?$"
)

FALLBACK_PATTERN = re.compile(r"^(\d+)(?:-\d+)?\s+(.+)$")


@dataclass(frozen=True)
class ParsedAddress:
    """Components of a parsed street address."""
    house_number: int
    street_name: str
    raw_street_label: str
    directional: Optional[Directional] = None
    street_type: Optional[StreetType] = None

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "house_number": self.house_number,
            "street_name": self.street_name,
            "raw_street_label": self.raw_street_label,
            "directional": self.directional.value if self.directional else None,
            "street_type": self.street_type.value if self.street_type else None,
        }


def parse_address(address: Any) -> Optional[ParsedAddress]:
    """Parse a free-text address into its components.

    Args:
        address: Raw address string

    Returns:
        ParsedAddress, or None when the address has no leading house number
        or is not a non-empty string
    """
    if not address or not isinstance(address, str):
        return None

    cleaned = address.strip().upper()
    if not cleaned:
        return None

    match = ADDRESS_PATTERN.match(cleaned)
    if match:
        house_number, directional, street_words, street_type = match.groups()
        label_parts = [directional, street_words, street_type]
        return ParsedAddress(
            house_number=int(house_number),
            street_name=normalize_street_name(f"{directional or ''} {street_words}"),
            raw_street_label=" ".join(part for part in label_parts if part),
            directional=Directional(directional[0]) if directional else None,
            street_type=STREET_TYPE_ALIASES[street_type],
        )

    fallback = FALLBACK_PATTERN.match(cleaned)
    if fallback:
        house_number, remainder = fallback.groups()
        street_name = normalize_street_name(remainder)
        if street_name:
            return ParsedAddress(
                house_number=int(house_number),
                street_name=street_name,
                raw_street_label=remainder.strip(),
            )

    logger.debug(f"Could not parse address: {address}")
    return None
