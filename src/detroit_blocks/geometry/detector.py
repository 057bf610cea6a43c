"""
Geometric block detection.

Algorithm:
1. Project streets, cross streets and parcels into a metric CRS
2. For each street:
   a. Find the first intersection with every candidate cross street
   b. Order the intersections by distance along the street
   c. Cut the street into block segments between consecutive intersections
3. Optionally buffer every block into a corridor and assign parcels to the
   first corridor containing them

Usage:
    detector = GeometricBlockDetector(source_crs="EPSG:4326")
    result = detector.detect_blocks(streets, cross_streets, parcels)

    for block in result.blocks:
        print(block.block_id, len(result.block_parcels[block.block_id]))
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from shapely.errors import GEOSException

from .corridor import DEFAULT_BUFFER_DISTANCE_M, assign_parcels_to_blocks, buffer_segment
from .features import ParcelFeature, StreetFeature, as_centerline
from .intersections import find_intersections, order_along_line
from .projection import DEFAULT_METRIC_CRS, DEFAULT_SOURCE_CRS, Projector
from .segmentation import DEFAULT_MIN_ENDPOINT_DISTANCE_M, StreetSegment, segment_street

logger = logging.getLogger(__name__)


@dataclass
class DetectionResult:
    """Blocks detected for a set of streets, with parcel memberships."""
    blocks: List[StreetSegment] = field(default_factory=list)
    block_parcels: Dict[str, List[ParcelFeature]] = field(default_factory=dict)
    unassigned_parcels: List[ParcelFeature] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "blocks": [block.to_dict() for block in self.blocks],
            "block_parcels": {
                block_id: [parcel.parcel_id for parcel in parcels]
                for block_id, parcels in self.block_parcels.items()
            },
            "unassigned_parcels": [parcel.parcel_id for parcel in self.unassigned_parcels],
        }


class GeometricBlockDetector:
    """Detect blocks from street and cross street geometries."""

    def __init__(
        self,
        source_crs: Optional[str] = DEFAULT_SOURCE_CRS,
        metric_crs: str = DEFAULT_METRIC_CRS,
        min_endpoint_distance_m: float = DEFAULT_MIN_ENDPOINT_DISTANCE_M,
        buffer_distance_m: float = DEFAULT_BUFFER_DISTANCE_M,
    ):
        """Initialize detector.

        Args:
            source_crs: CRS of input geometries (None = planar metres)
            metric_crs: CRS used for measurement
            min_endpoint_distance_m: Threshold for leading/trailing blocks
            buffer_distance_m: Corridor buffer distance
        """
        self.projector = Projector(source_crs=source_crs, metric_crs=metric_crs)
        self.min_endpoint_distance_m = min_endpoint_distance_m
        self.buffer_distance_m = buffer_distance_m

    @classmethod
    def from_config(cls, geometry_config: Dict[str, Any]) -> "GeometricBlockDetector":
        """Build a detector from the ``geometry`` config section."""
        return cls(
            source_crs=geometry_config.get("source_crs", DEFAULT_SOURCE_CRS),
            metric_crs=geometry_config.get("metric_crs", DEFAULT_METRIC_CRS),
            min_endpoint_distance_m=geometry_config.get(
                "min_endpoint_distance_m", DEFAULT_MIN_ENDPOINT_DISTANCE_M
            ),
            buffer_distance_m=geometry_config.get(
                "buffer_distance_m", DEFAULT_BUFFER_DISTANCE_M
            ),
        )

    def project_streets(self, streets: Sequence[StreetFeature]) -> List[StreetFeature]:
        return [street.transformed(self.projector.to_metric) for street in streets]

    def project_parcels(self, parcels: Sequence[ParcelFeature]) -> List[ParcelFeature]:
        return [parcel.transformed(self.projector.to_metric) for parcel in parcels]

    def segment(
        self,
        street: StreetFeature,
        cross_streets: Sequence[StreetFeature],
    ) -> List[StreetSegment]:
        """Segment one street (metric CRS) at its cross streets (metric CRS)."""
        line = as_centerline(street.geometry)
        if line is None:
            logger.warning(f"Skipping {street.street_name}: geometry is not a line")
            return []

        intersections = find_intersections(street, cross_streets)
        ordered = order_along_line(line, intersections)
        segments = segment_street(street, ordered, self.min_endpoint_distance_m)

        logger.debug(
            f"Created {len(segments)} blocks for {street.street_name} "
            f"({len(intersections)} intersections)"
        )
        return segments

    def detect_blocks(
        self,
        streets: Sequence[StreetFeature],
        cross_streets: Sequence[StreetFeature],
        parcels: Optional[Sequence[ParcelFeature]] = None,
    ) -> DetectionResult:
        """Detect blocks for every street and optionally join parcels to them.

        Args:
            streets: Streets to segment (source CRS)
            cross_streets: Candidate cross streets (source CRS); a street is
                never treated as its own cross street
            parcels: Parcels to assign (source CRS)

        Returns:
            DetectionResult with geometries in the metric CRS
        """
        logger.info(f"Starting block detection for {len(streets)} streets")

        metric_cross_streets = self.project_streets(cross_streets)
        result = DetectionResult()

        for street in self.project_streets(streets):
            try:
                result.blocks.extend(self.segment(street, metric_cross_streets))
            except (GEOSException, ValueError) as e:
                logger.error(f"Error processing street {street.street_name}: {e}")

        if parcels:
            metric_parcels = self.project_parcels(parcels)
            logger.info(f"Assigning {len(metric_parcels)} parcels to blocks")
            result.block_parcels = assign_parcels_to_blocks(
                metric_parcels, result.blocks, self.buffer_distance_m
            )

            assigned_ids = {
                id(parcel)
                for block_parcels in result.block_parcels.values()
                for parcel in block_parcels
            }
            result.unassigned_parcels = [
                parcel for parcel in metric_parcels if id(parcel) not in assigned_ids
            ]
            if result.unassigned_parcels:
                logger.info(f"{len(result.unassigned_parcels)} parcels fell outside every block corridor")
        else:
            result.block_parcels = {block.block_id: [] for block in result.blocks}

        logger.info(f"Block detection complete: {len(result.blocks)} blocks detected")
        return result

    def corridor(self, segment: StreetSegment):
        """Corridor polygon for a metric segment, in the metric CRS."""
        return buffer_segment(segment, self.buffer_distance_m)
