"""
Unit tests for block analytics aggregation.
"""

from datetime import date, datetime, timezone

import pytest
from shapely.geometry import Point

from detroit_blocks.analytics import compute_analytics, median, parse_sale_date
from detroit_blocks.geometry import ParcelFeature

AS_OF = datetime(2024, 6, 1)


class TestMedian:
    """Test the median helper."""

    def test_odd(self):
        assert median([30, 10, 20]) == 20

    def test_even_uses_mean_of_middle(self):
        assert median([10, 20, 30, 40]) == 25

    def test_empty(self):
        assert median([]) is None


class TestParseSaleDate:
    """Test sale date parsing."""

    def test_string(self):
        assert parse_sale_date("2023-04-05") == datetime(2023, 4, 5)

    def test_epoch_milliseconds(self):
        assert parse_sale_date(1672531200000) == datetime(2023, 1, 1)

    def test_unparseable(self):
        assert parse_sale_date("not a date") is None
        assert parse_sale_date("") is None
        assert parse_sale_date(None) is None
        assert parse_sale_date(float("nan")) is None


class TestComputeAnalytics:
    """Test snapshot computation."""

    def test_empty_block(self):
        snapshot = compute_analytics([], as_of=AS_OF, block_id="empty")

        assert snapshot.block_id == "empty"
        assert snapshot.analytics_date == date(2024, 6, 1)
        assert snapshot.total_parcels == 0
        assert snapshot.avg_assessed_value is None
        assert snapshot.median_assessed_value is None
        assert snapshot.tax_delinquent_percentage is None
        assert snapshot.last_sale_date is None
        assert snapshot.vacancy_rate is None

    def test_property_classes(self):
        parcels = [
            {"property_class": "401"},
            {"property_class": "101"},
            {"property_class": "201"},
            {"property_class": "336"},
            {"use_code": "VACANT"},
            {},
        ]

        snapshot = compute_analytics(parcels, as_of=AS_OF)

        assert snapshot.total_parcels == 6
        assert snapshot.residential_parcels == 1
        assert snapshot.commercial_parcels == 1
        assert snapshot.vacant_parcels == 2
        assert snapshot.vacancy_rate == pytest.approx(100 / 3)

    def test_buildings(self):
        parcels = [
            {"building_status": "Occupied"},
            {"building_status": "Vacant"},
            {"building_status": "Condemned"},
            {"building_status": "Unknown"},
            {},
        ]

        snapshot = compute_analytics(parcels, as_of=AS_OF)

        assert snapshot.total_buildings == 4
        assert snapshot.occupied_buildings == 1
        assert snapshot.vacant_buildings == 1
        assert snapshot.condemned_buildings == 1
        # Vacant building marks its parcel vacant
        assert snapshot.vacant_parcels == 1

    def test_financials_skip_non_positive(self):
        parcels = [
            {"amt_assessed_value": 10000, "amt_taxable_value": 5000},
            {"amt_assessed_value": "30000", "amt_taxable_value": 0},
            {"amt_assessed_value": 20000},
            {"amt_assessed_value": None},
        ]

        snapshot = compute_analytics(parcels, as_of=AS_OF)

        assert snapshot.avg_assessed_value == 20000
        assert snapshot.median_assessed_value == 20000
        assert snapshot.total_assessed_value == 60000
        assert snapshot.avg_taxable_value == 5000
        assert snapshot.median_taxable_value == 5000

    def test_recent_sales(self):
        parcels = [
            {"sale_date": "2023-01-15", "sale_price": 50000},
            {"sale_date": "2024-03-01", "amt_sale_price": 70000},
            {"sale_date": "2023-08-01", "sale_price": 0},
            {"sale_date": "2019-05-01", "sale_price": 10000},
            {"sale_date": "garbage", "sale_price": 99999},
        ]

        snapshot = compute_analytics(parcels, as_of=AS_OF)

        assert snapshot.recent_sales_count == 3
        assert snapshot.recent_sales_avg_price == 60000
        assert snapshot.last_sale_date == date(2024, 3, 1)

    def test_tax_delinquency(self):
        parcels = [
            {"tax_status": "Delinquent"},
            {"tax_status_description": "Delinquent"},
            {"tax_status": "Current"},
            {},
        ]

        snapshot = compute_analytics(parcels, as_of=AS_OF)

        assert snapshot.tax_delinquent_count == 2
        assert snapshot.tax_delinquent_percentage == 50

    def test_ownership_precedence(self):
        parcels = [
            {"pct_pre_claimed": 100, "taxpayer_1": "CITY OF DETROIT"},
            {"pct_pre_claimed": 0, "taxpayer_1": "City of Detroit-P&DD"},
            {"taxpayer_1": "DETROIT LAND BANK AUTHORITY"},
            {"taxpayer_1": "ACME HOLDINGS LLC"},
            {},
        ]

        snapshot = compute_analytics(parcels, as_of=AS_OF)

        assert snapshot.owner_occupied_count == 1
        assert snapshot.city_owned_count == 1
        assert snapshot.land_bank_owned_count == 1
        assert snapshot.investor_owned_count == 2
        ownership = (
            snapshot.owner_occupied_count
            + snapshot.city_owned_count
            + snapshot.land_bank_owned_count
            + snapshot.investor_owned_count
        )
        assert ownership == snapshot.total_parcels

    def test_sizes(self):
        parcels = [
            {"total_square_footage": 4000, "building_square_footage": 1200},
            {"total_square_footage": 6000},
        ]

        snapshot = compute_analytics(parcels, as_of=AS_OF)

        assert snapshot.avg_lot_size_sqft == 5000
        assert snapshot.avg_building_size_sqft == 1200

    def test_accepts_features_and_geojson(self):
        feature = ParcelFeature(
            parcel_id="1", geometry=Point(0, 0), properties={"property_class": "101"}
        )
        geojson = {"type": "Feature", "properties": {"property_class": "201"}, "geometry": None}

        snapshot = compute_analytics([feature, geojson], as_of=AS_OF)

        assert snapshot.total_parcels == 2
        assert snapshot.residential_parcels == 1
        assert snapshot.commercial_parcels == 1

    def test_sales_rows_counted_separately_from_parcels(self):
        parcels = [{"parcel_id": "1", "sale_date": "2015-03-01", "sale_price": 40000}]
        sales = [
            {"parcel_id": "1", "sale_date": "2024-01-01", "sale_price": 90000},
            {"parcel_id": "1", "sale_date": "2015-03-01", "sale_price": 40000},
        ]

        snapshot = compute_analytics(parcels, as_of=AS_OF, sales=sales)

        assert snapshot.total_parcels == 1
        assert snapshot.recent_sales_count == 1
        assert snapshot.recent_sales_avg_price == 90000
        assert snapshot.last_sale_date == date(2024, 1, 1)

    def test_timezone_aware_as_of(self):
        parcels = [{"sale_date": "2024-01-01", "sale_price": 50000}]

        snapshot = compute_analytics(parcels, as_of=datetime(2024, 6, 1, tzinfo=timezone.utc))

        assert snapshot.recent_sales_count == 1
        assert snapshot.analytics_date == date(2024, 6, 1)
