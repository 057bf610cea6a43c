"""
Unit tests for street name normalization and geometric block ids.
"""

import pytest

from detroit_blocks.addressing import generate_block_id, normalize_street_name


@pytest.mark.parametrize("raw, expected", [
    ("Woodward", "woodward"),
    ("E Jefferson", "e_jefferson"),
    ("  7   Mile  Rd ", "7_mile_rd"),
    ("St. Aubin", "st_aubin"),
    ("M-10 (Lodge)", "m10_lodge"),
    ("", ""),
    (None, ""),
])
def test_normalize_street_name(raw, expected):
    assert normalize_street_name(raw) == expected


@pytest.mark.parametrize("raw", ["Woodward Ave", "E. Grand  Blvd", "7 MILE", "Martin Luther King Jr"])
def test_normalize_is_idempotent(raw):
    """Test normalizing an already normalized name changes nothing."""
    once = normalize_street_name(raw)
    assert normalize_street_name(once) == once


def test_generate_block_id():
    assert generate_block_id("Woodward Ave", "Mack Ave", "Warren Ave") == "woodward_ave_mack_ave_warren_ave"


def test_generate_block_id_with_sentinels():
    assert generate_block_id("Cass", "start", "Canfield") == "cass_start_canfield"


def test_generate_block_id_drops_empty_parts():
    assert generate_block_id("Cass", "", None) == "cass"
