"""
Parcel/sales CSV loader utilities.

Reads the Detroit property sales export (or any CSV with compatible
columns) in chunks and yields normalized parcel record dictionaries
ready for block assignment.
"""

import logging
from itertools import islice
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence, Union

import pandas as pd

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 5000
STATS_SAMPLE_LINES = 100


class ParcelLoader:
    """Loads parcel records from CSV exports."""

    # Column mapping: {standard_name: [possible_variants]}
    COLUMN_MAPPING = {
        'parcel_id': ['Parcel Number', 'parcel_id', 'Parcel ID', 'PARCELNO'],
        'address': ['Street Address', 'address', 'Address'],
        'street_number': ['Street Number', 'street_number'],
        'street_name': ['Street Name', 'street_name'],
        'sale_date': ['Sale Date', 'sale_date'],
        'sale_price': ['Sale Price', 'sale_price', 'amt_sale_price'],
        'property_class': ['Property Class Code', 'property_class'],
        'lat': ['y', 'lat', 'Latitude'],
        'lng': ['x', 'lng', 'Longitude'],
    }

    NUMERIC_COLUMNS = ('sale_price', 'lat', 'lng')

    def __init__(
        self,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        require_coordinates: bool = False,
    ):
        """Initialize parcel loader.

        Args:
            chunk_size: Number of CSV rows per chunk
            require_coordinates: Drop records without lat/lng
        """
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        self.chunk_size = chunk_size
        self.require_coordinates = require_coordinates

    def iter_chunks(
        self,
        path: Union[str, Path],
        chunk_size: Optional[int] = None,
    ) -> Iterator[List[Dict[str, Any]]]:
        """Yield lists of normalized parcel records.

        Args:
            path: CSV file path
            chunk_size: Override the loader's chunk size

        Yields:
            List of parcel dictionaries per chunk

        Raises:
            FileNotFoundError: If path doesn't exist
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Parcel file not found: {path}")

        total = 0
        skipped = 0
        reader = pd.read_csv(
            path,
            dtype=str,
            chunksize=chunk_size or self.chunk_size,
            skipinitialspace=True,
        )
        for df in reader:
            records = self.prepare_records(df)
            skipped += len(df) - len(records)
            total += len(records)
            logger.info(f"Processed {total} records from {path.name}")
            if records:
                yield records

        logger.info(f"Completed loading {total} records from {path} ({skipped} skipped)")

    def load(self, path: Union[str, Path]) -> List[Dict[str, Any]]:
        """Load every record in a CSV file."""
        records = []
        for chunk in self.iter_chunks(path):
            records.extend(chunk)
        return records

    def prepare_records(self, df: pd.DataFrame) -> List[Dict[str, Any]]:
        """Convert a raw CSV chunk to parcel dictionaries.

        Rows missing a parcel id or street address are dropped, as are
        rows without coordinates when ``require_coordinates`` is set.

        Args:
            df: DataFrame with raw CSV data

        Returns:
            List of parcel dictionaries
        """
        df = self._normalize_columns(df)

        for column in self.NUMERIC_COLUMNS:
            if column in df.columns:
                df[column] = pd.to_numeric(df[column], errors='coerce')
        if 'sale_price' in df.columns:
            df['sale_price'] = df['sale_price'].fillna(0.0)

        df = df.astype(object).where(pd.notna(df), None)

        records = []
        for row in df.to_dict(orient='records'):
            record = {
                key: value.strip() if isinstance(value, str) else value
                for key, value in row.items()
            }

            parcel_id = record.get('parcel_id')
            if not parcel_id or not record.get('address'):
                continue
            record['parcel_id'] = parcel_id[:-1] if parcel_id.endswith('.') else parcel_id

            if self.require_coordinates and (record.get('lat') is None or record.get('lng') is None):
                continue

            records.append(record)

        return records

    def _normalize_columns(self, df: pd.DataFrame) -> pd.DataFrame:
        """Normalize column names to standard format."""
        rename_map = {}
        for standard_name, variants in self.COLUMN_MAPPING.items():
            for variant in variants:
                if variant in df.columns:
                    rename_map[variant] = standard_name
                    break  # Use first match only

        if rename_map:
            df = df.rename(columns=rename_map)
            logger.debug(f"Normalized columns: {rename_map}")

        return df

    def csv_stats(self, path: Union[str, Path]) -> Dict[str, Any]:
        """Estimate file size and row count from a sample of lines.

        Args:
            path: CSV file path

        Returns:
            Dictionary with file size, headers and estimated row count
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Parcel file not found: {path}")

        file_size = path.stat().st_size
        with open(path, 'rb') as f:
            sample = list(islice(f, STATS_SAMPLE_LINES))

        headers = list(pd.read_csv(path, nrows=0).columns)
        sample_bytes = sum(len(line) for line in sample)
        avg_bytes_per_line = sample_bytes / len(sample) if sample else 0
        estimated_lines = int(file_size / avg_bytes_per_line) if avg_bytes_per_line else 0

        return {
            'file_path': str(path),
            'file_size': file_size,
            'file_size_mb': round(file_size / 1024 / 1024, 2),
            'headers': headers,
            'sample_lines': len(sample),
            'estimated_rows': max(estimated_lines - 1, 0),
        }

    def validate_headers(
        self,
        path: Union[str, Path],
        required: Sequence[str],
    ) -> Dict[str, Any]:
        """Check a CSV header row for required columns (case-insensitive)."""
        headers = list(pd.read_csv(path, nrows=0).columns)
        present = {h.lower() for h in headers}
        wanted = {r.lower() for r in required}

        missing = [r for r in required if r.lower() not in present]
        return {
            'valid': not missing,
            'headers': headers,
            'missing': missing,
            'extra': [h for h in headers if h.lower() not in wanted],
        }


def load_parcels(
    path: Union[str, Path],
    require_coordinates: bool = False,
) -> List[Dict[str, Any]]:
    """Convenience function to load parcel records.

    Args:
        path: CSV file path
        require_coordinates: Drop records without lat/lng

    Returns:
        List of parcel dictionaries
    """
    loader = ParcelLoader(require_coordinates=require_coordinates)
    return loader.load(path)
