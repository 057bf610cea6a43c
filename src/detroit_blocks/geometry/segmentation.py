"""
Cutting a street centerline into blocks at its ordered intersections.

Segments on one street are contiguous and share only their endpoint
intersections. The stretch before the first and after the last intersection
becomes its own block unless the street endpoint is within
``min_endpoint_distance`` of that intersection.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from shapely.errors import GEOSException
from shapely.geometry import LineString, Point, mapping
from shapely.ops import substring

from ..addressing.normalizer import generate_block_id
from .features import StreetFeature, as_centerline
from .intersections import Intersection

logger = logging.getLogger(__name__)

START_SENTINEL = "start"
END_SENTINEL = "end"
DEFAULT_MIN_ENDPOINT_DISTANCE_M = 10.0


@dataclass
class StreetSegment:
    """A block: the stretch of one street between two cross streets."""
    block_id: str
    street_name: str
    from_cross_street: str
    to_cross_street: str
    geometry: LineString
    center: Point
    bounds: Tuple[float, float, float, float]
    street_id: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "block_id": self.block_id,
            "street_name": self.street_name,
            "from_cross_street": self.from_cross_street,
            "to_cross_street": self.to_cross_street,
            "geometry": mapping(self.geometry),
            "center": mapping(self.center),
            "bounds": list(self.bounds),
        }


def _slice_segment(
    street: StreetFeature,
    line: LineString,
    start_distance: float,
    end_distance: float,
    from_name: str,
    to_name: str,
) -> Optional[StreetSegment]:
    """Slice one block out of the centerline; None if the slice is degenerate."""
    try:
        piece = substring(line, start_distance, end_distance)
        if not isinstance(piece, LineString) or piece.is_empty or piece.length <= 0:
            raise ValueError(
                f"degenerate slice between {start_distance:.2f} and {end_distance:.2f}"
            )

        return StreetSegment(
            block_id=generate_block_id(street.street_name, from_name, to_name),
            street_name=street.street_name,
            from_cross_street=from_name,
            to_cross_street=to_name,
            geometry=piece,
            center=piece.centroid,
            bounds=piece.bounds,
            street_id=street.street_id,
        )
    except (GEOSException, ValueError) as e:
        logger.warning(
            f"Error creating block segment on {street.street_name} "
            f"({from_name} -> {to_name}): {e}"
        )
        return None


def segment_street(
    street: StreetFeature,
    ordered_intersections: Sequence[Intersection],
    min_endpoint_distance: float = DEFAULT_MIN_ENDPOINT_DISTANCE_M,
) -> List[StreetSegment]:
    """Create block segments from intersections ordered along the street.

    Args:
        street: Street whose geometry is in a metric CRS
        ordered_intersections: Intersections sorted by distance along the line
        min_endpoint_distance: Street start/end closer than this (strictly)
            to the nearest intersection gets no leading/trailing block

    Returns:
        Segments in street order: leading, interior, trailing. Segments whose
        slice fails are logged and omitted.
    """
    line = as_centerline(street.geometry)
    if line is None or line.is_empty:
        logger.warning(f"Street {street.street_name} has no usable centerline")
        return []

    if not ordered_intersections:
        segment = _slice_segment(street, line, 0.0, line.length, START_SENTINEL, END_SENTINEL)
        return [segment] if segment else []

    distances = [
        i.distance_along if i.distance_along is not None else line.project(i.point)
        for i in ordered_intersections
    ]
    segments: List[StreetSegment] = []

    first = ordered_intersections[0]
    start_point = Point(line.coords[0])
    if start_point.distance(first.point) > min_endpoint_distance:
        segment = _slice_segment(
            street, line, 0.0, distances[0], START_SENTINEL, first.cross_street_name
        )
        if segment:
            segments.append(segment)

    for index in range(len(ordered_intersections) - 1):
        from_intersection = ordered_intersections[index]
        to_intersection = ordered_intersections[index + 1]
        segment = _slice_segment(
            street,
            line,
            distances[index],
            distances[index + 1],
            from_intersection.cross_street_name,
            to_intersection.cross_street_name,
        )
        if segment:
            segments.append(segment)

    last = ordered_intersections[-1]
    end_point = Point(line.coords[-1])
    if last.point.distance(end_point) > min_endpoint_distance:
        segment = _slice_segment(
            street, line, distances[-1], line.length, last.cross_street_name, END_SENTINEL
        )
        if segment:
            segments.append(segment)

    return segments
