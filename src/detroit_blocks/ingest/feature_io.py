"""
Read street/parcel layers from disk and write detected blocks back out.

Any format GeoPandas can read (GeoPackage, GeoJSON, Shapefile) is accepted.
Inputs are reprojected to WGS84 so they match the geodata API.
"""

import logging
from pathlib import Path
from typing import List, Optional, Sequence, Union

import geopandas as gpd

from ..geometry.features import ParcelFeature, StreetFeature
from ..geometry.projection import Projector
from ..geometry.segmentation import StreetSegment

logger = logging.getLogger(__name__)

WGS84 = "EPSG:4326"

DRIVERS = {
    ".gpkg": "GPKG",
    ".geojson": "GeoJSON",
    ".json": "GeoJSON",
    ".shp": "ESRI Shapefile",
}


def _read_layer(path: Union[str, Path], layer: Optional[str] = None) -> gpd.GeoDataFrame:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Layer file not found: {path}")

    gdf = gpd.read_file(path, layer=layer) if layer else gpd.read_file(path)
    if gdf.crs is None:
        logger.warning(f"{path.name} has no CRS; assuming {WGS84}")
        gdf = gdf.set_crs(WGS84)
    elif gdf.crs.to_string() != WGS84:
        gdf = gdf.to_crs(WGS84)

    logger.info(f"Loaded {len(gdf)} features from {path}")
    return gdf


def read_streets(
    path: Union[str, Path],
    id_field: str = "street_id",
    name_field: str = "street_name",
    layer: Optional[str] = None,
) -> List[StreetFeature]:
    """Load street centerlines as StreetFeatures (WGS84).

    Args:
        path: Layer file
        id_field: Attribute holding the street id (row index if absent)
        name_field: Attribute holding the street name
        layer: Layer name for multi-layer files

    Returns:
        List of StreetFeature
    """
    gdf = _read_layer(path, layer)
    streets = []
    for index, feature in zip(gdf.index, gdf.iterfeatures(na="null", drop_id=True)):
        if feature["geometry"] is None:
            continue
        properties = dict(feature["properties"])
        properties["street_id"] = properties.get(id_field, index)
        properties["street_name"] = properties.get(name_field) or ""
        feature["properties"] = properties
        streets.append(StreetFeature.from_geojson(feature))
    return streets


def read_parcels(
    path: Union[str, Path],
    id_field: str = "parcel_id",
    layer: Optional[str] = None,
) -> List[ParcelFeature]:
    """Load parcels (polygons or points) as ParcelFeatures (WGS84)."""
    gdf = _read_layer(path, layer)
    parcels = []
    for index, feature in zip(gdf.index, gdf.iterfeatures(na="null", drop_id=True)):
        if feature["geometry"] is None:
            continue
        properties = dict(feature["properties"])
        properties["parcel_id"] = properties.get(id_field, index)
        feature["properties"] = properties
        parcels.append(ParcelFeature.from_geojson(feature))
    return parcels


def blocks_to_geodataframe(
    blocks: Sequence[StreetSegment],
    projector: Projector,
) -> gpd.GeoDataFrame:
    """Convert metric block segments to a GeoDataFrame in the source CRS."""
    rows = [
        {
            "block_id": block.block_id,
            "street_name": block.street_name,
            "from_cross_street": block.from_cross_street,
            "to_cross_street": block.to_cross_street,
            "length_m": round(block.geometry.length, 2),
            "geometry": projector.to_source(block.geometry),
        }
        for block in blocks
    ]
    crs = projector.source_crs or projector.metric_crs
    columns = ["block_id", "street_name", "from_cross_street", "to_cross_street", "length_m", "geometry"]
    return gpd.GeoDataFrame(rows, columns=columns, geometry="geometry", crs=crs)


def write_blocks(
    blocks: Sequence[StreetSegment],
    output_path: Union[str, Path],
    projector: Projector,
) -> Path:
    """Write block segments to a GeoPackage/GeoJSON/Shapefile.

    Returns:
        Path written
    """
    output_path = Path(output_path)
    driver = DRIVERS.get(output_path.suffix.lower())
    if driver is None:
        raise ValueError(f"Unsupported output format: {output_path.suffix}")

    output_path.parent.mkdir(parents=True, exist_ok=True)
    gdf = blocks_to_geodataframe(blocks, projector)
    if driver == "GPKG":
        gdf.to_file(output_path, driver=driver, layer="blocks")
    else:
        gdf.to_file(output_path, driver=driver)

    logger.info(f"Wrote {len(gdf)} blocks to {output_path}")
    return output_path
