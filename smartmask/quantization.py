"""Nearest-neighbour downsampling and k-means colour clustering."""
import logging
from typing import Tuple, Union

import numpy as np
from sklearn.metrics import pairwise_distances_argmin

logger = logging.getLogger(__name__)

RandomSource = Union[np.random.Generator, int, None]


def working_scale(width: int, height: int, max_size: int = 150) -> float:
    """Downsample factor that fits the image into ``max_size``; never upscales."""
    return min(max_size / width, max_size / height, 1.0)


def downsample_nearest(
    pixels: np.ndarray,
    max_size: int = 150
) -> Tuple[np.ndarray, float]:
    """
    Shrink an image with nearest-neighbour sampling.

    The working grid is ``floor(width * scale) x floor(height * scale)``
    and each working pixel copies source pixel ``floor(dst / scale)``.

    Args:
        pixels: (H, W, C) image array
        max_size: Largest allowed working dimension

    Returns:
        Tuple of (working_image, scale). With scale == 1 the working image
        is an exact copy of the input.
    """
    height, width = pixels.shape[:2]
    scale = working_scale(width, height, max_size)

    if scale == 1.0:
        return pixels.copy(), scale

    dst_w = int(np.floor(width * scale))
    dst_h = int(np.floor(height * scale))

    xs = np.minimum(np.floor(np.arange(dst_w) / scale).astype(np.intp), width - 1)
    ys = np.minimum(np.floor(np.arange(dst_h) / scale).astype(np.intp), height - 1)

    return pixels[ys[:, None], xs[None, :]], scale


def kmeans_rgb(
    pixels: np.ndarray,
    n_clusters: int = 8,
    iterations: int = 4,
    rng: RandomSource = None
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Cluster pixel colours with a fixed number of Lloyd iterations.

    Centroids start at ``n_clusters`` pixels drawn uniformly at random.
    Each iteration assigns every pixel to its nearest centroid (lowest
    index wins ties) and moves each centroid to the mean of its pixels;
    a centroid with no pixels keeps its previous value.

    Args:
        pixels: (N, 3) RGB values; alpha must already be dropped
        n_clusters: Number of centroids
        iterations: Number of assign/update rounds
        rng: numpy Generator (or anything with a compatible ``integers``
             method) or integer seed for the initial sample

    Returns:
        Tuple of (labels, centroids):
        - labels: (N,) int array of cluster indices from the last assignment
        - centroids: (n_clusters, 3) float array
    """
    if n_clusters < 1:
        raise ValueError(f"n_clusters must be >= 1, got {n_clusters}")

    pixels = np.asarray(pixels, dtype=np.float64).reshape(-1, 3)
    n_pixels = len(pixels)

    if n_pixels == 0:
        return np.zeros(0, dtype=np.intp), np.zeros((n_clusters, 3))

    if not hasattr(rng, "integers"):
        rng = np.random.default_rng(rng)
    centroids = pixels[rng.integers(0, n_pixels, size=n_clusters)].copy()
    labels = np.zeros(n_pixels, dtype=np.intp)

    for _ in range(iterations):
        labels = pairwise_distances_argmin(pixels, centroids)

        counts = np.bincount(labels, minlength=n_clusters)
        sums = np.stack(
            [np.bincount(labels, weights=pixels[:, c], minlength=n_clusters) for c in range(3)],
            axis=1
        )
        occupied = counts > 0
        centroids[occupied] = sums[occupied] / counts[occupied, None]

    logger.debug(
        f"k-means: {n_pixels} pixels, {int(np.count_nonzero(np.bincount(labels, minlength=n_clusters)))} "
        f"of {n_clusters} clusters occupied"
    )

    return labels, centroids
