"""
Street and parcel features used by geometric block detection.

Features arrive from the geodata API or from local files as GeoJSON-like
dicts; these dataclasses hold them as shapely geometries.
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, Optional

from shapely.geometry import LineString, MultiLineString, shape
from shapely.geometry.base import BaseGeometry
from shapely.ops import linemerge

logger = logging.getLogger(__name__)


@dataclass
class StreetFeature:
    """A street centerline."""
    street_id: Any
    street_name: str
    geometry: BaseGeometry
    properties: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_geojson(cls, feature: Dict[str, Any]) -> "StreetFeature":
        """Create a StreetFeature from a GeoJSON feature dict.

        Expects ``street_id`` and ``street_name`` properties.
        """
        properties = feature.get("properties") or {}
        return cls(
            street_id=properties.get("street_id"),
            street_name=properties.get("street_name") or "",
            geometry=shape(feature["geometry"]),
            properties=properties,
        )

    def transformed(self, func: Callable[[BaseGeometry], BaseGeometry]) -> "StreetFeature":
        return replace(self, geometry=func(self.geometry))


@dataclass
class ParcelFeature:
    """A parcel (polygon or point) with its property attributes."""
    parcel_id: Any
    geometry: BaseGeometry
    properties: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_geojson(cls, feature: Dict[str, Any]) -> "ParcelFeature":
        properties = feature.get("properties") or {}
        return cls(
            parcel_id=properties.get("parcel_id"),
            geometry=shape(feature["geometry"]),
            properties=properties,
        )

    @property
    def address(self) -> Optional[str]:
        return self.properties.get("address")

    def transformed(self, func: Callable[[BaseGeometry], BaseGeometry]) -> "ParcelFeature":
        return replace(self, geometry=func(self.geometry))


def as_centerline(geometry: BaseGeometry) -> Optional[LineString]:
    """Reduce a street geometry to a single LineString.

    MultiLineStrings are merged; if parts stay disconnected the longest part
    is used.

    Args:
        geometry: Street geometry

    Returns:
        LineString, or None if the geometry has no line component
    """
    if isinstance(geometry, LineString):
        return geometry

    if isinstance(geometry, MultiLineString):
        merged = linemerge(geometry)
        if isinstance(merged, LineString):
            return merged

        parts = list(merged.geoms)
        longest = max(parts, key=lambda part: part.length)
        logger.warning(
            f"Street geometry has {len(parts)} disconnected parts; "
            f"using longest ({longest.length:.1f})"
        )
        return longest

    return None
