"""
Data ingestion: parcel CSV exports, the city geodata API and local layers.
"""

from .feature_io import blocks_to_geodataframe, read_parcels, read_streets, write_blocks
from .geodata_client import GeodataAPIError, GeodataClient, esri_geometry
from .parcel_loader import ParcelLoader, load_parcels

__all__ = [
    "GeodataAPIError",
    "GeodataClient",
    "ParcelLoader",
    "blocks_to_geodataframe",
    "esri_geometry",
    "load_parcels",
    "read_parcels",
    "read_streets",
    "write_blocks",
]
