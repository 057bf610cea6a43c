"""
Unit tests for ParcelLoader.
"""

import pandas as pd
import pytest

from detroit_blocks.ingest import ParcelLoader, load_parcels

SALES_CSV = """Parcel Number,Street Address,Sale Date,Sale Price,Property Class Code,x,y
01001234.,1234 Main St,2023-01-01,50000,401,-83.05,42.33
01001235, 1236 Main St ,2023-02-01,,401,,
,1238 Main St,2023-03-01,1000,401,-83.05,42.33
01001237,,2023-04-01,1000,401,-83.05,42.33
"""


@pytest.fixture
def sales_csv(tmp_path):
    """Write a small sales export."""
    path = tmp_path / "sales.csv"
    path.write_text(SALES_CSV)
    return path


class TestLoad:
    """Test loading and normalizing records."""

    def test_columns_normalized(self, sales_csv):
        records = ParcelLoader().load(sales_csv)

        assert len(records) == 2
        first = records[0]
        assert first["parcel_id"] == "01001234"
        assert first["address"] == "1234 Main St"
        assert first["sale_price"] == 50000.0
        assert first["property_class"] == "401"
        assert first["lat"] == pytest.approx(42.33)
        assert first["lng"] == pytest.approx(-83.05)

    def test_missing_values(self, sales_csv):
        second = ParcelLoader().load(sales_csv)[1]

        assert second["address"] == "1236 Main St"
        assert second["sale_price"] == 0.0
        assert second["lat"] is None
        assert second["lng"] is None

    def test_require_coordinates(self, sales_csv):
        records = load_parcels(sales_csv, require_coordinates=True)

        assert [r["parcel_id"] for r in records] == ["01001234"]

    def test_chunks(self, sales_csv):
        chunks = list(ParcelLoader(chunk_size=2).iter_chunks(sales_csv))

        # Second chunk has only rows that get dropped
        assert len(chunks) == 1
        assert len(chunks[0]) == 2

    def test_chunk_size_override(self, sales_csv):
        chunks = list(ParcelLoader().iter_chunks(sales_csv, chunk_size=1))

        assert [len(chunk) for chunk in chunks] == [1, 1]

    def test_alternate_column_names(self):
        df = pd.DataFrame({
            "PARCELNO": ["22"],
            "Address": ["100 Elm St"],
            "amt_sale_price": ["12.5"],
            "Latitude": ["42.1"],
            "Longitude": ["-83.1"],
        })

        records = ParcelLoader().prepare_records(df)

        assert records == [{
            "parcel_id": "22",
            "address": "100 Elm St",
            "sale_price": 12.5,
            "lat": 42.1,
            "lng": -83.1,
        }]

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            list(ParcelLoader().iter_chunks(tmp_path / "missing.csv"))

    def test_invalid_chunk_size(self):
        with pytest.raises(ValueError):
            ParcelLoader(chunk_size=0)


class TestCsvStats:
    """Test file statistics."""

    def test_stats(self, sales_csv):
        stats = ParcelLoader().csv_stats(sales_csv)

        assert stats["file_size"] == sales_csv.stat().st_size
        assert stats["sample_lines"] == 5
        assert stats["headers"][0] == "Parcel Number"
        assert stats["estimated_rows"] == pytest.approx(4, abs=1)

    def test_missing(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            ParcelLoader().csv_stats(tmp_path / "missing.csv")


class TestValidateHeaders:
    """Test header validation."""

    def test_valid_case_insensitive(self, sales_csv):
        result = ParcelLoader().validate_headers(sales_csv, ["parcel number", "STREET ADDRESS"])

        assert result["valid"] is True
        assert result["missing"] == []
        assert "Sale Date" in result["extra"]
        assert "Parcel Number" not in result["extra"]

    def test_missing_columns(self, sales_csv):
        result = ParcelLoader().validate_headers(sales_csv, ["Parcel Number", "Owner"])

        assert result["valid"] is False
        assert result["missing"] == ["Owner"]
