"""
Pydantic models for persisted block records.
"""

import json
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class RunStatus(str, Enum):
    """Processing run status."""
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class BlockRecord(BaseModel):
    """A block as stored: id plus display fields and geometry."""

    block_id: str
    street_name: str
    from_cross_street: str
    to_cross_street: str
    block_bounds: Optional[Dict[str, Any]] = None  # GeoJSON polygon
    center_point: Optional[Dict[str, Any]] = None  # GeoJSON point
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_db_row(cls, row: Any) -> "BlockRecord":
        return cls(
            block_id=row["block_id"],
            street_name=row["street_name"],
            from_cross_street=row["from_cross_street"],
            to_cross_street=row["to_cross_street"],
            block_bounds=json.loads(row["block_bounds"]) if row["block_bounds"] else None,
            center_point=json.loads(row["center_point"]) if row["center_point"] else None,
            created_at=datetime.fromisoformat(row["created_at"]) if row["created_at"] else None,
            updated_at=datetime.fromisoformat(row["updated_at"]) if row["updated_at"] else None,
        )


class ParcelRecord(BaseModel):
    """A parcel linked to a block; unique on (block_id, parcel_id)."""

    block_id: str
    parcel_id: str
    address: Optional[str] = None
    property_data: Dict[str, Any] = Field(default_factory=dict)
    geometry: Optional[Dict[str, Any]] = None  # GeoJSON

    @classmethod
    def from_db_row(cls, row: Any) -> "ParcelRecord":
        return cls(
            block_id=row["block_id"],
            parcel_id=row["parcel_id"],
            address=row["address"],
            property_data=json.loads(row["property_data"]) if row["property_data"] else {},
            geometry=json.loads(row["geometry"]) if row["geometry"] else None,
        )


class BlockAnalyticsSnapshot(BaseModel):
    """Point-in-time analytics for one block; unique on (block_id, analytics_date)."""

    block_id: Optional[str] = None
    analytics_date: date = Field(default_factory=date.today)

    # Parcel counts
    total_parcels: int = 0
    residential_parcels: int = 0
    commercial_parcels: int = 0
    vacant_parcels: int = 0

    # Building statistics
    total_buildings: int = 0
    occupied_buildings: int = 0
    vacant_buildings: int = 0
    condemned_buildings: int = 0

    # Financial metrics
    avg_assessed_value: Optional[float] = None
    median_assessed_value: Optional[float] = None
    total_assessed_value: Optional[float] = None
    avg_taxable_value: Optional[float] = None
    median_taxable_value: Optional[float] = None

    # Sales activity (last 2 years)
    recent_sales_count: int = 0
    recent_sales_avg_price: Optional[float] = None
    last_sale_date: Optional[date] = None

    # Tax status
    tax_delinquent_count: int = 0
    tax_delinquent_percentage: Optional[float] = None

    # Property characteristics
    avg_lot_size_sqft: Optional[float] = None
    avg_building_size_sqft: Optional[float] = None

    # Ownership
    owner_occupied_count: int = 0
    investor_owned_count: int = 0
    city_owned_count: int = 0
    land_bank_owned_count: int = 0

    @property
    def vacancy_rate(self) -> Optional[float]:
        if self.total_parcels == 0:
            return None
        return self.vacant_parcels / self.total_parcels * 100

    @classmethod
    def from_db_row(cls, row: Any) -> "BlockAnalyticsSnapshot":
        data = {key: row[key] for key in row.keys() if key in cls.model_fields}
        return cls(**data)


class RunRecord(BaseModel):
    """A tracked processing run."""

    run_id: Optional[int] = None
    run_type: str
    status: RunStatus = RunStatus.RUNNING
    parcels_processed: int = 0
    blocks_processed: int = 0
    errors_count: int = 0
    error_details: Optional[Dict[str, Any]] = None
    metadata: Optional[Dict[str, Any]] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @classmethod
    def from_db_row(cls, row: Any) -> "RunRecord":
        return cls(
            run_id=row["run_id"],
            run_type=row["run_type"],
            status=RunStatus(row["status"]),
            parcels_processed=row["parcels_processed"],
            blocks_processed=row["blocks_processed"],
            errors_count=row["errors_count"],
            error_details=json.loads(row["error_details"]) if row["error_details"] else None,
            metadata=json.loads(row["metadata_json"]) if row["metadata_json"] else None,
            started_at=datetime.fromisoformat(row["started_at"]) if row["started_at"] else None,
            completed_at=datetime.fromisoformat(row["completed_at"]) if row["completed_at"] else None,
        )
