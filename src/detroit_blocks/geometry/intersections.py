"""
Intersection points between a street and its cross streets.
"""

import logging
from dataclasses import dataclass, replace
from typing import Any, List, Optional, Sequence

from shapely.errors import GEOSException
from shapely.geometry import LineString, Point
from shapely.geometry.base import BaseGeometry

from .features import StreetFeature

logger = logging.getLogger(__name__)


@dataclass
class Intersection:
    """Where a cross street meets the street being segmented."""
    point: Point
    cross_street_id: Any
    cross_street_name: str
    distance_along: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "coordinates": [self.point.x, self.point.y],
            "cross_street_id": self.cross_street_id,
            "cross_street_name": self.cross_street_name,
            "distance_along": self.distance_along,
        }


def first_point(geometry: BaseGeometry) -> Optional[Point]:
    """Reduce an intersection result to its first point.

    Point parts take precedence over overlapping line parts; for an overlap
    the first vertex of the shared line is used.
    """
    if geometry is None or geometry.is_empty:
        return None

    if isinstance(geometry, Point):
        return geometry

    if isinstance(geometry, LineString):
        return Point(geometry.coords[0])

    parts = list(getattr(geometry, "geoms", []))
    for part in parts:
        if isinstance(part, Point) and not part.is_empty:
            return part
    for part in parts:
        point = first_point(part)
        if point is not None:
            return point

    return None


def find_intersections(
    street: StreetFeature,
    cross_streets: Sequence[StreetFeature],
) -> List[Intersection]:
    """Find the first intersection point with each candidate cross street.

    Candidates sharing the street's id, candidates that do not intersect and
    candidates whose geometry fails are skipped.

    Args:
        street: Street being segmented
        cross_streets: Candidate cross streets

    Returns:
        List of Intersection in candidate order (not yet ordered along line)
    """
    intersections = []

    for cross_street in cross_streets:
        if street.street_id is not None and cross_street.street_id == street.street_id:
            continue

        try:
            point = first_point(street.geometry.intersection(cross_street.geometry))
        except (GEOSException, ValueError) as e:
            logger.warning(
                f"Error finding intersection of {street.street_name} "
                f"with {cross_street.street_name}: {e}"
            )
            continue

        if point is None:
            logger.debug(f"{cross_street.street_name} does not intersect {street.street_name}")
            continue

        intersections.append(Intersection(
            point=point,
            cross_street_id=cross_street.street_id,
            cross_street_name=cross_street.street_name,
        ))

    return intersections


def order_along_line(line: LineString, intersections: Sequence[Intersection]) -> List[Intersection]:
    """Sort intersections by their projected distance from the line start.

    Args:
        line: Street centerline
        intersections: Unordered intersections

    Returns:
        New Intersection objects with ``distance_along`` set, ascending
    """
    measured = [
        replace(intersection, distance_along=line.project(intersection.point))
        for intersection in intersections
    ]
    return sorted(measured, key=lambda intersection: intersection.distance_along)
