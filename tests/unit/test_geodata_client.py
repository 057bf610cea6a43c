"""
Unit tests for GeodataClient using a mocked requests session.
"""

import re
from unittest.mock import MagicMock

import pytest
import requests
from shapely.geometry import LineString, Point, Polygon

from detroit_blocks.ingest import GeodataAPIError, GeodataClient, esri_geometry

ENDPOINTS = {
    "parcels": "https://gis.example.test/parcels/FeatureServer/0/",
    "streets": "https://gis.example.test/streets/FeatureServer/0",
    "geocoder": "https://gis.example.test/geocoder",
    "buildings": "",
}


def json_response(data, status=200):
    response = MagicMock()
    response.json.return_value = data
    response.status_code = status
    response.ok = status < 400
    if status >= 400:
        response.raise_for_status.side_effect = requests.exceptions.HTTPError(f"{status} error")
    return response


def feature(feature_id):
    return {"type": "Feature", "properties": {"parcel_id": feature_id}, "geometry": None}


@pytest.fixture
def session():
    return MagicMock()


@pytest.fixture
def client(session):
    return GeodataClient(ENDPOINTS, batch_size=2, max_retries=2, retry_delay=0, session=session)


class TestPlumbing:
    """Test endpoints, retries and error bodies."""

    def test_empty_endpoints_dropped(self, client):
        assert set(client.endpoints) == {"parcels", "streets", "geocoder"}

    def test_missing_endpoint(self, client):
        with pytest.raises(ValueError, match="buildings"):
            client.fetch_buildings_in_area({"rings": []})

    def test_query_url_and_params(self, client, session):
        session.get.return_value = json_response({"features": [feature("1")]})

        features = client.fetch_streets_by_name("O'Hara")

        assert features == [feature("1")]
        url = session.get.call_args.args[0]
        params = session.get.call_args.kwargs["params"]
        assert url == "https://gis.example.test/streets/FeatureServer/0/query"
        assert params["f"] == "geojson"
        assert params["outFields"] == "*"
        assert "O''Hara" in params["where"]

    def test_retries_then_succeeds(self, client, session):
        session.get.side_effect = [
            requests.exceptions.ConnectionError("down"),
            json_response({"count": 7}),
        ]

        assert client.get_count("parcels") == 7
        assert session.get.call_count == 2

    def test_retries_exhausted(self, client, session):
        session.get.side_effect = requests.exceptions.Timeout("slow")

        with pytest.raises(GeodataAPIError, match="3 attempts"):
            client.get_count("parcels")
        assert session.get.call_count == 3

    def test_http_error_retried(self, client, session):
        session.get.return_value = json_response({}, status=500)

        with pytest.raises(GeodataAPIError):
            client.get_count("parcels")
        assert session.get.call_count == 3

    def test_service_error_body(self, client, session):
        session.get.return_value = json_response({"error": {"code": 400, "message": "Invalid query"}})

        with pytest.raises(GeodataAPIError, match="Service error"):
            client.get_count("parcels")
        assert session.get.call_count == 1

    def test_from_config(self):
        client = GeodataClient.from_config({
            "endpoints": {"parcels": "https://x.test/p"},
            "batch_size": 10,
            "max_retries": 1,
        })

        assert client.endpoints == {"parcels": "https://x.test/p"}
        assert client.batch_size == 10
        assert client.max_retries == 1
        assert client.max_workers == 5


class TestPagination:
    """Test offset pagination."""

    def test_stops_on_short_page(self, client, session):
        session.get.side_effect = [
            json_response({"features": [feature("1"), feature("2")]}),
            json_response({"features": [feature("3")]}),
        ]

        pages = list(client.iter_parcels())

        assert [len(page) for page in pages] == [2, 1]
        offsets = [call.kwargs["params"]["resultOffset"] for call in session.get.call_args_list]
        assert offsets == [0, 2]
        assert session.get.call_args.kwargs["params"]["orderByFields"] == "parcel_id"

    def test_stops_on_empty_page(self, client, session):
        session.get.side_effect = [
            json_response({"features": [feature("1"), feature("2")]}),
            json_response({"features": []}),
        ]

        pages = list(client.iter_streets("street_name = 'MAIN'"))

        assert len(pages) == 1
        assert session.get.call_args.kwargs["params"]["where"] == "street_name = 'MAIN'"


class TestQueries:
    """Test spatial and id queries."""

    def test_intersecting_streets_excludes_self(self, client, session):
        session.get.return_value = json_response({"features": []})

        client.fetch_intersecting_streets({"paths": []}, exclude_street_id=42)

        params = session.get.call_args.kwargs["params"]
        assert params["where"] == "street_id <> 42"
        assert params["geometryType"] == "esriGeometryPolyline"
        assert params["inSR"] == 4326

    def test_intersecting_streets_quotes_string_id(self, client, session):
        session.get.return_value = json_response({"features": []})

        client.fetch_intersecting_streets({"paths": []}, exclude_street_id="abc'd")

        params = session.get.call_args.kwargs["params"]
        assert params["where"] == "street_id <> 'abc''d'"

    def test_parcels_in_area(self, client, session):
        session.get.return_value = json_response({"features": [feature("1")]})

        features = client.fetch_parcels_in_area({"rings": [[[0, 0], [1, 0], [1, 1], [0, 0]]]})

        assert features == [feature("1")]
        params = session.get.call_args.kwargs["params"]
        assert params["geometryType"] == "esriGeometryPolygon"
        assert '"rings"' in params["geometry"]

    def test_parcels_by_ids_chunked_in_order(self, client, session):
        def respond(url, params=None, timeout=None):
            ids = re.findall(r"parcel_id = '([^']*)'", params["where"])
            return json_response({"features": [feature(i) for i in ids]})

        session.get.side_effect = respond
        parcel_ids = [str(i) for i in range(120)]

        features = client.fetch_parcels_by_ids(parcel_ids)

        assert session.get.call_count == 3
        assert [f["properties"]["parcel_id"] for f in features] == parcel_ids

    def test_parcels_by_ids_empty(self, client, session):
        assert client.fetch_parcels_by_ids([]) == []
        session.get.assert_not_called()

    def test_parcels_by_ids_worker_threads_own_sessions(self, monkeypatch):
        created = []

        def make_session():
            session = MagicMock()
            session.get.side_effect = lambda url, params=None, timeout=None: json_response(
                {"features": [feature(i) for i in re.findall(r"parcel_id = '([^']*)'", params["where"])]}
            )
            created.append(session)
            return session

        monkeypatch.setattr(requests, "Session", make_session)
        client = GeodataClient(ENDPOINTS, max_workers=2, retry_delay=0)
        parcel_ids = [str(i) for i in range(120)]

        features = client.fetch_parcels_by_ids(parcel_ids)

        assert [f["properties"]["parcel_id"] for f in features] == parcel_ids
        # The constructing thread's session stays out of the pool
        assert client.session is created[0]
        created[0].get.assert_not_called()
        assert 2 <= len(created) <= 3
        assert sum(s.get.call_count for s in created[1:]) == 3

    def test_injected_session_used_by_workers(self, client, session):
        session.get.return_value = json_response({"features": []})

        client.fetch_parcels_by_ids([str(i) for i in range(60)])

        assert session.get.call_count == 2

    def test_geocode(self, client, session):
        session.get.return_value = json_response({"candidates": [{"address": "1234 MAIN ST", "score": 100}]})

        candidate = client.geocode_address("1234 Main St")

        assert candidate["score"] == 100
        assert session.get.call_args.args[0].endswith("/geocoder/findAddressCandidates")

    def test_geocode_no_candidates(self, client, session):
        session.get.return_value = json_response({"candidates": []})

        assert client.geocode_address("nowhere") is None

    def test_test_connections(self, client, session):
        session.get.side_effect = [
            json_response({}),
            json_response({}, status=404),
            requests.exceptions.ConnectionError("refused"),
        ]

        results = client.test_connections()

        assert results["parcels"]["success"] is True
        assert results["streets"]["success"] is False
        assert results["streets"]["status"] == 404
        assert results["geocoder"]["success"] is False
        assert "refused" in results["geocoder"]["error"]


class TestEsriGeometry:
    """Test shapely to Esri JSON conversion."""

    def test_line(self):
        body = esri_geometry(LineString([(0, 0), (1, 1)]))

        assert body == {"paths": [[[0.0, 0.0], [1.0, 1.0]]], "spatialReference": {"wkid": 4326}}

    def test_polygon(self):
        body = esri_geometry(Polygon([(0, 0), (1, 0), (1, 1)]), wkid=32617)

        assert body["rings"] == [[[0.0, 0.0], [1.0, 0.0], [1.0, 1.0], [0.0, 0.0]]]
        assert body["spatialReference"] == {"wkid": 32617}

    def test_point_rejected(self):
        with pytest.raises(ValueError):
            esri_geometry(Point(0, 0))
