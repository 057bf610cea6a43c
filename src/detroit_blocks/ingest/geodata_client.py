"""
Client for the city's ArcGIS REST feature services.

Endpoints (configured, usually from environment variables):
- parcels:   parcel polygons with assessor attributes
- streets:   street centerlines (street_id, street_name)
- buildings: building footprints
- geocoder:  address locator (findAddressCandidates)
"""

import json
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, Iterator, List, Optional, Sequence

import requests
from shapely.geometry import LineString, MultiLineString, MultiPolygon, Polygon
from shapely.geometry.base import BaseGeometry

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 500
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY = 1.0
DEFAULT_MAX_WORKERS = 5
DEFAULT_TIMEOUT = 60
ID_CHUNK_SIZE = 50


class GeodataAPIError(RuntimeError):
    """Raised when a request still fails after all retries."""


class GeodataClient:
    """Paginated, retrying access to the parcel/street/building services."""

    def __init__(
        self,
        endpoints: Dict[str, Optional[str]],
        batch_size: int = DEFAULT_BATCH_SIZE,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        max_workers: int = DEFAULT_MAX_WORKERS,
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        """Initialize client.

        Args:
            endpoints: Service base URLs keyed by parcels/streets/buildings/geocoder
            batch_size: Page size for paginated queries
            max_retries: Retries after the first failed attempt
            retry_delay: Seconds to wait between attempts
            max_workers: Concurrent requests for batched id lookups
            timeout: Per-request timeout in seconds
            session: Optional requests session (for connection reuse or tests).
                An injected session is shared by every worker thread and
                must be safe for that; otherwise each thread opens its own.
        """
        self.endpoints = {name: url for name, url in endpoints.items() if url}
        self.batch_size = batch_size
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.max_workers = max_workers
        self.timeout = timeout
        self._owns_session = session is None
        self.session = session or requests.Session()
        self._local = threading.local()
        self._local.session = self.session

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "GeodataClient":
        """Create a client from the ``api`` configuration section."""
        return cls(
            endpoints=config.get("endpoints", {}),
            batch_size=config.get("batch_size", DEFAULT_BATCH_SIZE),
            max_retries=config.get("max_retries", DEFAULT_MAX_RETRIES),
            retry_delay=config.get("retry_delay", DEFAULT_RETRY_DELAY),
            max_workers=config.get("max_workers", DEFAULT_MAX_WORKERS),
            timeout=config.get("timeout", DEFAULT_TIMEOUT),
        )

    # ------------------------------------------------------------------
    # HTTP plumbing
    # ------------------------------------------------------------------

    def _endpoint(self, name: str) -> str:
        url = self.endpoints.get(name)
        if not url:
            raise ValueError(f"No endpoint configured for '{name}'")
        return url.rstrip("/")

    def _get_session(self) -> requests.Session:
        """Session for the calling thread."""
        if not self._owns_session:
            return self.session
        session = getattr(self._local, "session", None)
        if session is None:
            session = requests.Session()
            self._local.session = session
        return session

    def _get_json(self, url: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """GET a JSON document, retrying with a fixed delay."""
        attempts = self.max_retries + 1
        for attempt in range(attempts):
            try:
                response = self._get_session().get(url, params=params, timeout=self.timeout)
                response.raise_for_status()
                data = response.json()
            except (requests.exceptions.RequestException, ValueError) as e:
                if attempt < attempts - 1:
                    logger.warning(
                        f"Retrying request ({attempt + 1}/{self.max_retries}): {url} ({e})"
                    )
                    time.sleep(self.retry_delay)
                    continue
                raise GeodataAPIError(f"Request failed after {attempts} attempts: {url}: {e}") from e

            # ArcGIS reports errors with HTTP 200 and an error body
            if isinstance(data, dict) and "error" in data:
                raise GeodataAPIError(f"Service error from {url}: {data['error']}")
            return data

        raise GeodataAPIError(f"Request failed: {url}")

    def _query(self, service: str, params: Dict[str, Any]) -> Dict[str, Any]:
        params = {key: value for key, value in params.items() if value is not None}
        return self._get_json(f"{self._endpoint(service)}/query", params)

    def _query_features(self, service: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        base = {"outFields": "*", "returnGeometry": "true", "f": "geojson"}
        base.update(params)
        return self._query(service, base).get("features") or []

    def _paginate(self, service: str, where: str, order_by: str) -> Iterator[List[Dict[str, Any]]]:
        offset = 0
        while True:
            features = self._query_features(service, {
                "where": where,
                "resultOffset": offset,
                "resultRecordCount": self.batch_size,
                "orderByFields": order_by,
            })
            if not features:
                return
            yield features
            offset += len(features)
            if len(features) < self.batch_size:
                return

    # ------------------------------------------------------------------
    # Paginated collections
    # ------------------------------------------------------------------

    def iter_parcels(self, where: str = "1=1") -> Iterator[List[Dict[str, Any]]]:
        """Yield pages of parcel GeoJSON features."""
        return self._paginate("parcels", where, "parcel_id")

    def iter_streets(self, where: str = "1=1") -> Iterator[List[Dict[str, Any]]]:
        """Yield pages of street centerline GeoJSON features."""
        return self._paginate("streets", where, "street_id")

    # ------------------------------------------------------------------
    # Spatial queries
    # ------------------------------------------------------------------

    def fetch_parcels_in_area(self, geometry: Dict[str, Any], where: str = "1=1") -> List[Dict[str, Any]]:
        """Parcels intersecting a polygon (Esri JSON, WGS84)."""
        return self._query_features("parcels", {
            "geometry": json.dumps(geometry),
            "geometryType": "esriGeometryPolygon",
            "spatialRel": "esriSpatialRelIntersects",
            "inSR": 4326,
            "where": where,
        })

    def fetch_intersecting_streets(
        self,
        geometry: Dict[str, Any],
        exclude_street_id: Optional[Any] = None,
    ) -> List[Dict[str, Any]]:
        """Streets crossing a polyline, excluding the street itself."""
        where = "1=1" if exclude_street_id is None else f"street_id <> {_sql_literal(exclude_street_id)}"
        return self._query_features("streets", {
            "geometry": json.dumps(geometry),
            "geometryType": "esriGeometryPolyline",
            "spatialRel": "esriSpatialRelIntersects",
            "inSR": 4326,
            "where": where,
        })

    def fetch_buildings_in_area(self, geometry: Dict[str, Any]) -> List[Dict[str, Any]]:
        return self._query_features("buildings", {
            "geometry": json.dumps(geometry),
            "geometryType": "esriGeometryPolygon",
            "spatialRel": "esriSpatialRelIntersects",
            "inSR": 4326,
            "where": "1=1",
        })

    def fetch_streets_by_name(self, street_name: str) -> List[Dict[str, Any]]:
        escaped = street_name.replace("'", "''")
        return self._query_features("streets", {
            "where": f"UPPER(street_name) LIKE UPPER('%{escaped}%')",
        })

    def fetch_parcels_by_ids(self, parcel_ids: Sequence[str]) -> List[Dict[str, Any]]:
        """Fetch parcels by id in chunks of 50 with bounded concurrency.

        Results are returned in chunk order.
        """
        chunks = [
            list(parcel_ids[i:i + ID_CHUNK_SIZE])
            for i in range(0, len(parcel_ids), ID_CHUNK_SIZE)
        ]
        if not chunks:
            return []

        def fetch_chunk(chunk: List[str]) -> List[Dict[str, Any]]:
            where = " OR ".join(f"parcel_id = {_sql_literal(str(pid))}" for pid in chunk)
            return self._query_features("parcels", {"where": where})

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            results = list(executor.map(fetch_chunk, chunks))

        return [feature for features in results for feature in features]

    # ------------------------------------------------------------------
    # Counts, geocoding, diagnostics
    # ------------------------------------------------------------------

    def get_count(self, service: str = "parcels", where: str = "1=1") -> int:
        data = self._query(service, {"where": where, "returnCountOnly": "true", "f": "json"})
        return int(data.get("count") or 0)

    def geocode_address(self, address: str) -> Optional[Dict[str, Any]]:
        """Return the best geocoder candidate for an address, if any."""
        data = self._get_json(
            f"{self._endpoint('geocoder')}/findAddressCandidates",
            {"singleLine": address, "outFields": "*", "f": "json"},
        )
        candidates = data.get("candidates") or []
        return candidates[0] if candidates else None

    def test_connections(self) -> Dict[str, Dict[str, Any]]:
        """Check each configured endpoint once (no retries)."""
        results = {}
        for name, url in self.endpoints.items():
            try:
                response = self.session.get(url, params={"f": "json"}, timeout=self.timeout)
                results[name] = {
                    "success": response.ok,
                    "status": response.status_code,
                    "endpoint": url,
                }
            except requests.exceptions.RequestException as e:
                results[name] = {"success": False, "error": str(e), "endpoint": url}
        return results


def _sql_literal(value: Any) -> str:
    """Render a where-clause literal; strings are quoted with '' escaping."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return "'{}'".format(str(value).replace("'", "''"))


def esri_geometry(geometry: BaseGeometry, wkid: int = 4326) -> Dict[str, Any]:
    """Convert a shapely line or polygon to Esri JSON for spatial queries.

    Raises:
        ValueError: For geometry types the query endpoints don't accept
    """
    if isinstance(geometry, LineString):
        body = {"paths": [[list(c) for c in geometry.coords]]}
    elif isinstance(geometry, MultiLineString):
        body = {"paths": [[list(c) for c in part.coords] for part in geometry.geoms]}
    elif isinstance(geometry, (Polygon, MultiPolygon)):
        polygons = [geometry] if isinstance(geometry, Polygon) else list(geometry.geoms)
        rings = []
        for polygon in polygons:
            rings.append([list(c) for c in polygon.exterior.coords])
            rings.extend([list(c) for c in interior.coords] for interior in polygon.interiors)
        body = {"rings": rings}
    else:
        raise ValueError(f"Unsupported query geometry: {geometry.geom_type}")

    body["spatialReference"] = {"wkid": wkid}
    return body
