"""Point and polygon helpers: simplification, scaling, hit testing."""
from typing import Iterable, Sequence, Tuple

import numpy as np
from skimage.measure import points_in_poly

from smartmask.types import Point, Path


def as_array(points: Sequence[Point]) -> np.ndarray:
    """Convert a point sequence to an (N, 2) float array of (x, y)."""
    if len(points) == 0:
        return np.zeros((0, 2), dtype=np.float64)
    return np.array([(p.x, p.y) for p in points], dtype=np.float64)


def from_array(coords: Iterable) -> Path:
    """Convert (x, y) pairs back to a point tuple."""
    return tuple(Point(float(x), float(y)) for x, y in coords)


def is_closed(points: Sequence[Point]) -> bool:
    return len(points) > 0 and points[0] == points[-1]


def close_path(points: Sequence[Point]) -> Path:
    """Append the first point when the path has more than 2 points and is open."""
    points = tuple(points)
    if len(points) > 2 and not is_closed(points):
        return points + (points[0],)
    return points


def simplify_path(points: Sequence[Point], tolerance: float = 2.0) -> Path:
    """
    Drop points that lie within ``tolerance`` of the last kept point.

    The first point is always kept. The result is explicitly closed when it
    has more than 2 points.

    Args:
        points: Traced boundary in image coordinates
        tolerance: Minimum distance between consecutive kept points

    Returns:
        Filtered, closed point tuple
    """
    if not points:
        return ()

    kept = [points[0]]
    for point in points[1:]:
        if point.distance_to(kept[-1]) > tolerance:
            kept.append(point)

    return close_path(kept)


def scale_path(points: Sequence[Point], scale: float) -> Path:
    """Map working-grid coordinates back to image space by dividing by ``scale``."""
    if scale == 1:
        return tuple(points)
    return tuple(Point(p.x / scale, p.y / scale) for p in points)


def path_bounds(points: Sequence[Point]) -> Tuple[float, float, float, float]:
    """Return (min_x, min_y, max_x, max_y) of a non-empty path."""
    coords = as_array(points)
    if len(coords) == 0:
        raise ValueError("Cannot compute bounds of an empty path")
    min_x, min_y = coords.min(axis=0)
    max_x, max_y = coords.max(axis=0)
    return float(min_x), float(min_y), float(max_x), float(max_y)


def polygon_area(points: Sequence[Point]) -> float:
    """Absolute shoelace area of the implicitly closed polygon."""
    coords = as_array(points)
    if len(coords) < 3:
        return 0.0
    x, y = coords[:, 0], coords[:, 1]
    return float(abs(np.dot(x, np.roll(y, -1)) - np.dot(y, np.roll(x, -1))) / 2.0)


def point_in_polygon(point: Point, polygon: Sequence[Point]) -> bool:
    """Even-odd containment test against an implicitly closed polygon."""
    if len(polygon) < 3:
        return False
    return bool(points_in_poly([[point.x, point.y]], as_array(polygon))[0])
