"""
Block corridors and parcel-to-block spatial assignment.

A corridor is the street segment buffered into a polygon. Buffered
corridors of neighbouring blocks overlap near shared intersections, so a
parcel is assigned to the first block (in input order) whose corridor
contains its representative point. Changing this precedence changes
historical block membership.
"""

import logging
from typing import Dict, List, Optional, Sequence

from shapely.errors import GEOSException
from shapely.geometry import Point, Polygon
from shapely.geometry.base import BaseGeometry
from shapely.prepared import prep

from .features import ParcelFeature
from .segmentation import StreetSegment

logger = logging.getLogger(__name__)

DEFAULT_BUFFER_DISTANCE_M = 50.0


def buffer_segment(
    segment: StreetSegment,
    distance_m: float = DEFAULT_BUFFER_DISTANCE_M,
) -> Optional[Polygon]:
    """Buffer a block segment into its corridor polygon.

    Args:
        segment: Segment with geometry in a metric CRS
        distance_m: Buffer distance in metres

    Returns:
        Corridor polygon, or None if buffering fails
    """
    try:
        corridor = segment.geometry.buffer(distance_m)
        if corridor.is_empty:
            raise ValueError("empty buffer")
        return corridor
    except (GEOSException, ValueError) as e:
        logger.warning(f"Error creating block polygon for {segment.block_id}: {e}")
        return None


def representative_point(geometry: BaseGeometry) -> Point:
    """Point used to place a parcel: itself for points, centroid otherwise."""
    if isinstance(geometry, Point):
        return geometry
    return geometry.centroid


def assign_parcels_to_blocks(
    parcels: Sequence[ParcelFeature],
    blocks: Sequence[StreetSegment],
    buffer_distance_m: float = DEFAULT_BUFFER_DISTANCE_M,
) -> Dict[str, List[ParcelFeature]]:
    """Assign each parcel to the first block whose corridor contains it.

    Parcels inside no corridor appear in no block's list. Points on a
    corridor boundary count as inside.

    Args:
        parcels: Parcels with geometry in the same metric CRS as the blocks
        blocks: Block segments in precedence order
        buffer_distance_m: Corridor buffer distance in metres

    Returns:
        Dict of block_id -> parcels, with a key for every block
    """
    block_parcels: Dict[str, List[ParcelFeature]] = {block.block_id: [] for block in blocks}

    corridors = []
    for block in blocks:
        corridor = buffer_segment(block, buffer_distance_m)
        if corridor is not None:
            corridors.append((block.block_id, prep(corridor)))

    for parcel in parcels:
        try:
            point = representative_point(parcel.geometry)
            if point.is_empty:
                raise ValueError("parcel has empty geometry")

            for block_id, corridor in corridors:
                if corridor.covers(point):
                    block_parcels[block_id].append(parcel)
                    break
        except (GEOSException, ValueError) as e:
            logger.warning(f"Error assigning parcel {parcel.parcel_id} to block: {e}")

    return block_parcels
