"""Connected-component extraction over a cluster label map."""
from dataclasses import dataclass
from typing import List, Tuple

import numpy as np
from scipy import ndimage


@dataclass
class Component:
    """Maximal 4-connected run of same-cluster pixels on the working grid.

    ``rows``/``cols`` are in row-major order, so the first entry is the
    component's top-left (first-discovered) pixel.
    """
    index: int
    cluster: int
    rows: np.ndarray
    cols: np.ndarray

    @property
    def size(self) -> int:
        return len(self.rows)

    @property
    def start(self) -> Tuple[int, int]:
        """First pixel in raster order as (x, y)."""
        return int(self.cols[0]), int(self.rows[0])

    @property
    def bbox(self) -> Tuple[int, int, int, int]:
        """Inclusive (min_x, min_y, max_x, max_y)."""
        return (
            int(self.cols.min()),
            int(self.rows.min()),
            int(self.cols.max()),
            int(self.rows.max()),
        )


def label_components(label_map: np.ndarray) -> List[Component]:
    """
    Split a cluster label map into 4-connected components.

    Components are numbered in the order a row-major scan first reaches
    them, which matches a breadth-first flood started from every unvisited
    pixel in turn.

    Args:
        label_map: (H, W) int array of cluster indices

    Returns:
        List of components; ``index`` is the position in this list
    """
    found = []
    width = label_map.shape[1]

    # scipy's default 2D structuring element is the 4-connected cross
    for cluster in np.unique(label_map):
        labeled, n_features = ndimage.label(label_map == cluster)
        for i, window in enumerate(ndimage.find_objects(labeled), start=1):
            if window is None:
                continue
            rows, cols = np.nonzero(labeled[window] == i)
            found.append((int(cluster), rows + window[0].start, cols + window[1].start))

    found.sort(key=lambda item: item[1][0] * width + item[2][0])

    return [
        Component(index=i, cluster=cluster, rows=rows, cols=cols)
        for i, (cluster, rows, cols) in enumerate(found)
    ]


def filter_small_components(
    components: List[Component],
    total_pixels: int,
    min_fraction: float = 0.005
) -> List[Component]:
    """Drop components smaller than ``min_fraction`` of the working grid."""
    threshold = total_pixels * min_fraction
    return [c for c in components if c.size >= threshold]


def component_grid(components: List[Component], shape: Tuple[int, int]) -> np.ndarray:
    """Rasterize component indices; every pixel belongs to exactly one component."""
    grid = np.full(shape, -1, dtype=np.int32)
    for component in components:
        grid[component.rows, component.cols] = component.index
    return grid
