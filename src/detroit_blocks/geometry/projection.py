"""
Coordinate transformation between source data and a metric working CRS.

Distances in block detection (endpoint threshold, corridor buffer) are in
metres, so geometries are projected before any measurement. UTM zone 17N
(EPSG:32617) covers Detroit.
"""

from typing import Optional

from pyproj import CRS, Transformer
from shapely.geometry.base import BaseGeometry
from shapely.ops import transform

DEFAULT_SOURCE_CRS = "EPSG:4326"
DEFAULT_METRIC_CRS = "EPSG:32617"  # UTM Zone 17N


class Projector:
    """Projects shapely geometries to and from a metric CRS."""

    def __init__(
        self,
        source_crs: Optional[str] = DEFAULT_SOURCE_CRS,
        metric_crs: str = DEFAULT_METRIC_CRS,
    ):
        """Initialize projector.

        Args:
            source_crs: CRS of incoming geometries; None means the input is
                already in planar metres and no transformation is applied
            metric_crs: Projected CRS used for measurement
        """
        self.source_crs = source_crs
        self.metric_crs = metric_crs

        if source_crs is None or CRS.from_user_input(source_crs) == CRS.from_user_input(metric_crs):
            self._forward = None
            self._inverse = None
        else:
            self._forward = Transformer.from_crs(source_crs, metric_crs, always_xy=True)
            self._inverse = Transformer.from_crs(metric_crs, source_crs, always_xy=True)

    @property
    def is_identity(self) -> bool:
        return self._forward is None

    def to_metric(self, geometry: BaseGeometry) -> BaseGeometry:
        if self._forward is None:
            return geometry
        return transform(self._forward.transform, geometry)

    def to_source(self, geometry: BaseGeometry) -> BaseGeometry:
        if self._inverse is None:
            return geometry
        return transform(self._inverse.transform, geometry)
