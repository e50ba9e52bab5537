"""Outer boundary tracing using Moore-neighbour contour following."""
import logging
from typing import List, Optional, Tuple

import numpy as np

logger = logging.getLogger(__name__)

# Clockwise on screen (y grows downward), starting West
MOORE_OFFSETS = (
    (-1, 0), (-1, -1), (0, -1), (1, -1),
    (1, 0), (1, 1), (0, 1), (-1, 1),
)
_OFFSET_INDEX = {offset: i for i, offset in enumerate(MOORE_OFFSETS)}


def trace_boundary(
    grid: np.ndarray,
    target: int,
    start: Tuple[int, int],
    max_steps: Optional[int] = None
) -> Tuple[List[Tuple[int, int]], bool]:
    """
    Walk the outer boundary of the region ``grid == target`` clockwise.

    ``start`` must be the region's first pixel in row-major order, so its
    West neighbour is guaranteed to lie outside the region and serves as
    the initial backtrack. At every step the 8 neighbours of the current
    pixel are scanned clockwise beginning just after the backtrack; the
    first region pixel becomes the next boundary pixel and the neighbour
    scanned immediately before it becomes the new backtrack.

    Args:
        grid: (H, W) label grid
        target: Label of the region to trace
        start: (x, y) of the region's top-left pixel
        max_steps: Iteration budget; defaults to the grid's pixel count

    Returns:
        Tuple of (points, closed):
        - points: (x, y) boundary pixels in walk order, start first
        - closed: False if the budget ran out before the walk got back
          to ``start``; points then holds the partial boundary
    """
    height, width = grid.shape
    if max_steps is None:
        max_steps = height * width

    def inside(x: int, y: int) -> bool:
        return 0 <= x < width and 0 <= y < height and grid[y, x] == target

    sx, sy = start
    if not inside(sx, sy):
        raise ValueError(f"Start pixel {start} is not part of region {target}")

    points = [(sx, sy)]
    x, y = sx, sy
    backtrack = 0

    for _ in range(max_steps):
        step = None
        for turn in range(1, 9):
            direction = (backtrack + turn) % 8
            dx, dy = MOORE_OFFSETS[direction]
            if inside(x + dx, y + dy):
                step = direction
                break

        if step is None:
            # Isolated pixel
            return points, True

        # The neighbour checked just before the hit is outside the region
        bx, by = MOORE_OFFSETS[(step - 1) % 8]
        dx, dy = MOORE_OFFSETS[step]
        nx, ny = x + dx, y + dy
        backtrack = _OFFSET_INDEX[(x + bx - nx, y + by - ny)]
        x, y = nx, ny

        if (x, y) == (sx, sy):
            return points, True

        points.append((x, y))

    logger.warning(
        f"Boundary trace of region {target} hit its {max_steps}-step budget; "
        f"keeping {len(points)} partial points"
    )
    return points, False
