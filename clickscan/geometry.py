"""
Geometry for deciding whether a decoded code lies under the cursor.

Responsibility:
    Robust point-in-polygon classification and the tolerance adjustment
    that pulls the click toward a code's centroid before testing.

Numerical robustness:
    Plain floating-point cross products misclassify points lying exactly
    on an edge or vertex. orientation() returns the exact sign of the 2D
    determinant: a float evaluation is accepted when it clears a forward
    error bound, otherwise the determinant is recomputed with exact
    rational arithmetic. Every classification decision below goes through
    orientation() or through exact float comparisons.

Non-goals:
    - No knowledge of regions, plans or rasters beyond plain numbers.
"""

import math
from enum import Enum
from fractions import Fraction
from typing import List, Sequence

import numpy as np

from clickscan.detection import DetectedBarcode, Point

# Forward error bound for the float determinant (Shewchuk's ccwerrboundA).
_EPSILON = 2.0 ** -53
_CCW_ERRBOUND_A = (3.0 + 16.0 * _EPSILON) * _EPSILON


class Containment(Enum):
    """Tri-state point-in-polygon result."""

    OUTSIDE = "outside"
    ON_BOUNDARY = "on-boundary"
    INSIDE = "inside"

    @property
    def kept(self) -> bool:
        """Inside and on-boundary both count as under the cursor."""
        return self is not Containment.OUTSIDE


def _sign(value) -> int:
    return (value > 0) - (value < 0)


def orientation(a: Point, b: Point, c: Point) -> int:
    """Exact sign of the turn a → b → c.

    Returns:
        1 if c lies to the left of the directed line a → b
        (counter-clockwise in a y-up frame), -1 if to the right,
        0 if the three points are exactly collinear.
    """
    ax, ay = a
    bx, by = b
    cx, cy = c

    detleft = (ax - cx) * (by - cy)
    detright = (ay - cy) * (bx - cx)
    det = detleft - detright

    if detleft > 0:
        if detright <= 0:
            return _sign(det)
        detsum = detleft + detright
    elif detleft < 0:
        if detright >= 0:
            return _sign(det)
        detsum = -detleft - detright
    else:
        return _sign(det)

    if abs(det) >= _CCW_ERRBOUND_A * detsum:
        return _sign(det)

    return _exact_orientation(a, b, c)


def _exact_orientation(a: Point, b: Point, c: Point) -> int:
    ax, ay = Fraction(a[0]), Fraction(a[1])
    bx, by = Fraction(b[0]), Fraction(b[1])
    cx, cy = Fraction(c[0]), Fraction(c[1])
    return _sign((ax - cx) * (by - cy) - (ay - cy) * (bx - cx))


def _on_segment(a: Point, b: Point, p: Point) -> bool:
    """True if p lies on the closed segment a-b (a == b allowed)."""
    if not (min(a[0], b[0]) <= p[0] <= max(a[0], b[0])):
        return False
    if not (min(a[1], b[1]) <= p[1] <= max(a[1], b[1])):
        return False
    return orientation(a, b, p) == 0


def point_in_polygon(polygon: Sequence[Point], point: Point) -> Containment:
    """Classify a point against a closed polygon.

    The polygon may be given in either winding order and need not repeat
    its first vertex. Edge cases:
        - A point on any edge, horizontal ones included, or on a vertex is
          ON_BOUNDARY.
        - Zero-length edges are only matched when the point coincides with
          them and never contribute a crossing.
        - Crossings use the half-open rule (an endpoint counts as above
          the ray only when strictly above), so a ray through a vertex
          shared by an upward and a downward edge is counted consistently.
    An empty polygon contains nothing.
    """
    n = len(polygon)
    if n == 0:
        return Containment.OUTSIDE

    px, py = point
    inside = False

    for i in range(n):
        a = polygon[i]
        b = polygon[(i + 1) % n]

        if _on_segment(a, b, point):
            return Containment.ON_BOUNDARY

        a_above = a[1] > py
        b_above = b[1] > py
        if a_above == b_above:
            continue

        # Edge straddles the horizontal line through the point. The crossing
        # lies right of the point iff the point is on the inner side of the
        # edge relative to its upward direction.
        turn = orientation(a, b, point)
        if b_above:
            if turn > 0:
                inside = not inside
        elif turn < 0:
            inside = not inside

    return Containment.INSIDE if inside else Containment.OUTSIDE


def polygon_centroid(points: Sequence[Point]) -> Point:
    """Area-weighted centroid of a closed polygon.

    Falls back to the vertex mean when the polygon has zero signed area
    (collinear or repeated corners).

    Raises:
        ValueError: If points is empty.
    """
    if len(points) == 0:
        raise ValueError("Cannot compute the centroid of an empty polygon.")

    pts = np.asarray(points, dtype=np.float64)
    x = pts[:, 0]
    y = pts[:, 1]
    x_next = np.roll(x, -1)
    y_next = np.roll(y, -1)

    cross = x * y_next - x_next * y
    area2 = cross.sum()
    if area2 == 0:
        return float(x.mean()), float(y.mean())

    cx = ((x + x_next) * cross).sum() / (3.0 * area2)
    cy = ((y + y_next) * cross).sum() / (3.0 * area2)
    return float(cx), float(cy)


def adjust_toward(query: Point, centroid: Point, tolerance: float) -> Point:
    """Move query toward centroid by tolerance, never past it.

    A query already at the centroid is returned unmoved.
    """
    dx = query[0] - centroid[0]
    dy = query[1] - centroid[1]
    distance = math.hypot(dx, dy)
    if distance == 0:
        return query

    adjusted = max(distance - tolerance, 0.0)
    factor = adjusted / distance
    return centroid[0] + dx * factor, centroid[1] + dy * factor


def locate_with_tolerance(
    polygon: Sequence[Point],
    query: Point,
    tolerance: float,
) -> Containment:
    """Classify query after pulling it toward the polygon's centroid."""
    if len(polygon) == 0:
        return Containment.OUTSIDE
    adjusted = adjust_toward(query, polygon_centroid(polygon), tolerance)
    return point_in_polygon(polygon, adjusted)


def filter_under_cursor(
    results: Sequence[DetectedBarcode],
    x_ratio: float,
    y_ratio: float,
    tolerance_ratio: float,
    raster_width: int,
    raster_height: int,
) -> List[DetectedBarcode]:
    """Keep the results whose polygon contains the (tolerant) click.

    Ratios are rescaled to the raster's pixel dimensions; the tolerance is
    scaled by the raster width. Decode order is preserved.
    """
    query = (x_ratio * raster_width, y_ratio * raster_height)
    tolerance = tolerance_ratio * raster_width
    return [
        result
        for result in results
        if locate_with_tolerance(result.corner_points, query, tolerance).kept
    ]
