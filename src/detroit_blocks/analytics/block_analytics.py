"""
Block analytics aggregation.

Computes a BlockAnalyticsSnapshot from the parcels currently assigned to a
block. The snapshot is recomputed wholesale on every run; statistics with no
input values stay unset rather than defaulting to zero.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

import numpy as np
import pandas as pd

from ..geometry.features import ParcelFeature
from ..models import BlockAnalyticsSnapshot

RECENT_SALE_YEARS = 2
VACANT_PROPERTY_CLASS = "336"

ParcelLike = Union[ParcelFeature, Mapping[str, Any]]


def median(values: Iterable[float]) -> Optional[float]:
    """Median of values (mean of the two middle values for even counts).

    Returns None for an empty input.
    """
    values = list(values)
    if not values:
        return None
    return float(np.median(values))


def _mean(values: List[float]) -> Optional[float]:
    if not values:
        return None
    return float(np.mean(values))


def _properties(parcel: ParcelLike) -> Mapping[str, Any]:
    if isinstance(parcel, ParcelFeature):
        return parcel.properties
    if "properties" in parcel and isinstance(parcel["properties"], Mapping):
        return parcel["properties"]
    return parcel


def _number(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if np.isnan(number):
        return None
    return number


def _positive(value: Any) -> Optional[float]:
    number = _number(value)
    if number is None or number <= 0:
        return None
    return number


def parse_sale_date(value: Any) -> Optional[datetime]:
    """Parse a sale date from a string, datetime or epoch milliseconds."""
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if np.isnan(value):
            return None
        parsed = pd.to_datetime(value, unit="ms", errors="coerce")
    else:
        parsed = pd.to_datetime(value, errors="coerce")

    if parsed is pd.NaT or pd.isna(parsed):
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.tz_convert(None)
    return parsed.to_pydatetime()


def sales_activity(
    sales: Iterable[ParcelLike],
    recent_cutoff: datetime,
) -> Tuple[List[datetime], List[float], Optional[datetime]]:
    """Recent sale dates, recent positive sale prices and the latest sale date.

    Each input row is one sale, so a parcel sold twice contributes twice.
    """
    recent_dates: List[datetime] = []
    recent_prices: List[float] = []
    last_sale_date: Optional[datetime] = None

    for sale in sales:
        props = _properties(sale)
        sale_date = parse_sale_date(props.get("sale_date"))
        if sale_date is None:
            continue
        if sale_date > recent_cutoff:
            recent_dates.append(sale_date)
            price = _positive(props.get("amt_sale_price", props.get("sale_price")))
            if price is not None:
                recent_prices.append(price)
        if last_sale_date is None or sale_date > last_sale_date:
            last_sale_date = sale_date

    return recent_dates, recent_prices, last_sale_date


def compute_analytics(
    parcels: Iterable[ParcelLike],
    as_of: Optional[datetime] = None,
    block_id: Optional[str] = None,
    sales: Optional[Iterable[ParcelLike]] = None,
) -> BlockAnalyticsSnapshot:
    """Aggregate parcel attributes into block analytics.

    Args:
        parcels: ParcelFeatures, GeoJSON features or flat property dicts,
            one per parcel
        as_of: Reference time for the recent-sales window (default: now).
            An aware datetime is converted to naive UTC.
        block_id: Block the snapshot belongs to
        sales: Sale rows for the block, possibly several per parcel
            (default: the parcels themselves)

    Returns:
        BlockAnalyticsSnapshot
    """
    as_of = as_of or datetime.now()
    if as_of.tzinfo is not None:
        as_of = as_of.astimezone(timezone.utc).replace(tzinfo=None)
    recent_cutoff = as_of - pd.DateOffset(years=RECENT_SALE_YEARS)

    parcels = list(parcels)
    recent_sale_dates, recent_sale_prices, last_sale_date = sales_activity(
        parcels if sales is None else sales, recent_cutoff
    )

    counts: Dict[str, int] = {
        "total_parcels": 0,
        "residential_parcels": 0,
        "commercial_parcels": 0,
        "vacant_parcels": 0,
        "total_buildings": 0,
        "occupied_buildings": 0,
        "vacant_buildings": 0,
        "condemned_buildings": 0,
        "tax_delinquent_count": 0,
        "owner_occupied_count": 0,
        "investor_owned_count": 0,
        "city_owned_count": 0,
        "land_bank_owned_count": 0,
    }

    assessed_values: List[float] = []
    taxable_values: List[float] = []
    lot_sizes: List[float] = []
    building_sizes: List[float] = []

    for parcel in parcels:
        props = _properties(parcel)
        counts["total_parcels"] += 1

        # Property classification
        property_class = props.get("property_class")
        property_class = str(property_class).strip() if property_class is not None else ""
        if property_class.startswith("1"):
            counts["residential_parcels"] += 1
        elif property_class.startswith("2"):
            counts["commercial_parcels"] += 1

        building_status = props.get("building_status")

        if (
            property_class == VACANT_PROPERTY_CLASS
            or props.get("use_code") == "VACANT"
            or building_status == "Vacant"
        ):
            counts["vacant_parcels"] += 1

        if building_status:
            counts["total_buildings"] += 1
            if building_status == "Occupied":
                counts["occupied_buildings"] += 1
            elif building_status == "Vacant":
                counts["vacant_buildings"] += 1
            elif building_status == "Condemned":
                counts["condemned_buildings"] += 1

        # Tax status
        if (
            props.get("tax_status") == "Delinquent"
            or props.get("tax_status_description") == "Delinquent"
        ):
            counts["tax_delinquent_count"] += 1

        # Ownership: owner-occupied, city, land bank, else investor
        taxpayer = str(props.get("taxpayer_1") or "").lower()
        if (_number(props.get("pct_pre_claimed")) or 0) > 0:
            counts["owner_occupied_count"] += 1
        elif "city of detroit" in taxpayer:
            counts["city_owned_count"] += 1
        elif "land bank" in taxpayer:
            counts["land_bank_owned_count"] += 1
        else:
            counts["investor_owned_count"] += 1

        for key, bucket in (
            ("amt_assessed_value", assessed_values),
            ("amt_taxable_value", taxable_values),
            ("total_square_footage", lot_sizes),
            ("building_square_footage", building_sizes),
        ):
            value = _positive(props.get(key))
            if value is not None:
                bucket.append(value)

    snapshot = BlockAnalyticsSnapshot(
        block_id=block_id,
        analytics_date=as_of.date(),
        recent_sales_count=len(recent_sale_dates),
        **counts,
    )

    if assessed_values:
        snapshot.avg_assessed_value = _mean(assessed_values)
        snapshot.median_assessed_value = median(assessed_values)
        snapshot.total_assessed_value = float(np.sum(assessed_values))

    if taxable_values:
        snapshot.avg_taxable_value = _mean(taxable_values)
        snapshot.median_taxable_value = median(taxable_values)

    snapshot.avg_lot_size_sqft = _mean(lot_sizes)
    snapshot.avg_building_size_sqft = _mean(building_sizes)
    snapshot.recent_sales_avg_price = _mean(recent_sale_prices)

    if last_sale_date is not None:
        snapshot.last_sale_date = last_sale_date.date()

    if snapshot.total_parcels > 0:
        snapshot.tax_delinquent_percentage = (
            snapshot.tax_delinquent_count / snapshot.total_parcels * 100
        )

    return snapshot

