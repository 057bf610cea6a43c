"""
Geometry-based block detection.

Streets are cut into blocks at their cross streets; blocks are buffered into
corridors that capture nearby parcels.
"""

from .corridor import assign_parcels_to_blocks, buffer_segment
from .detector import DetectionResult, GeometricBlockDetector
from .features import ParcelFeature, StreetFeature
from .intersections import Intersection, find_intersections, order_along_line
from .projection import Projector
from .segmentation import StreetSegment, segment_street

__all__ = [
    "DetectionResult",
    "GeometricBlockDetector",
    "Intersection",
    "ParcelFeature",
    "Projector",
    "StreetFeature",
    "StreetSegment",
    "assign_parcels_to_blocks",
    "buffer_segment",
    "find_intersections",
    "order_along_line",
    "segment_street",
]
