"""Unsupervised region segmentation: cluster colours, split into components, trace outlines."""
import logging
import threading
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import numpy as np

from smartmask.boundary_tracing import trace_boundary
from smartmask.components import (
    Component,
    component_grid,
    filter_small_components,
    label_components,
)
from smartmask.geometry import from_array, scale_path, simplify_path
from smartmask.quantization import RandomSource, downsample_nearest, kmeans_rgb
from smartmask.types import ImageBuffer, Segment, SegmentationError, SegmenterConfig

logger = logging.getLogger(__name__)


@dataclass
class SegmentationStages:
    """Intermediate results of the last run, kept for stage dumps."""
    working: np.ndarray
    scale: float
    label_map: np.ndarray
    centroids: np.ndarray
    components: List[Component] = field(default_factory=list)
    kept: List[Component] = field(default_factory=list)
    traces: List[List[Tuple[int, int]]] = field(default_factory=list)


def _hex_color(rgb: np.ndarray) -> str:
    r, g, b = (int(round(c)) for c in np.clip(rgb, 0, 255))
    return f"#{r:02x}{g:02x}{b:02x}"


def _as_pixel_array(pixels, width: int, height: int) -> np.ndarray:
    """Validate a raw RGBA (or RGB) buffer and view it as (H, W, C)."""
    if width <= 0 or height <= 0:
        raise SegmentationError(f"Invalid image size {width}x{height}")

    if isinstance(pixels, (bytes, bytearray, memoryview)):
        pixels = np.frombuffer(pixels, dtype=np.uint8)
    pixels = np.asarray(pixels)

    if pixels.ndim == 1:
        if pixels.size != width * height * 4:
            raise SegmentationError(
                f"Buffer of {pixels.size} values does not match {width}x{height} RGBA"
            )
        pixels = pixels.reshape(height, width, 4)

    if pixels.ndim != 3 or pixels.shape[:2] != (height, width) or pixels.shape[2] not in (3, 4):
        raise SegmentationError(
            f"Expected ({height}, {width}, 3|4) pixel array, got shape {pixels.shape}"
        )

    return pixels


@dataclass
class SegmentationResult:
    """Segments of one run together with the intermediate stages that produced them."""
    segments: List[Segment]
    stages: Optional[SegmentationStages] = None


class RegionSegmenter:
    """Produces candidate regions from a pixel buffer.

    Pipeline: nearest-neighbour downsample, k-means on RGB, 4-connected
    components, noise filter, Moore-neighbour outline, upscale, simplify.

    ``run`` keeps no per-run state on the segmenter, so one instance can
    serve overlapping runs from a worker pool; only the draw from the
    shared random source is serialised.
    """

    def __init__(self, config: Optional[SegmenterConfig] = None, rng: RandomSource = None):
        """
        Initialize segmenter.

        Args:
            config: Segmenter configuration (uses defaults if None)
            rng: Random source for centroid initialisation; a numpy
                 Generator or integer seed. Unseeded runs differ.
        """
        self.config = config or SegmenterConfig()
        self.rng = rng if hasattr(rng, "integers") else np.random.default_rng(rng)
        self.last_stages: Optional[SegmentationStages] = None
        self._rng_lock = threading.Lock()

    def segment(self, pixels, width: int, height: int) -> List[Segment]:
        """
        Segment an image into non-overlapping candidate regions.

        Stores the run's stages in ``last_stages``. Use ``run`` when several
        images are segmented concurrently.

        Args:
            pixels: RGBA buffer, (H, W, 4) array or flat bytes; alpha is ignored
            width: Image width in pixels
            height: Image height in pixels

        Returns:
            Unselected segments in creation order, boundaries in image space

        Raises:
            SegmentationError: If the buffer is malformed or a stage fails
        """
        result = self.run(pixels, width, height)
        self.last_stages = result.stages
        return result.segments

    def run(self, pixels, width: int, height: int) -> SegmentationResult:
        """Segment an image and return the segments with their stages."""
        cfg = self.config
        pixels = _as_pixel_array(pixels, width, height)

        try:
            working, scale = downsample_nearest(pixels, cfg.max_working_size)
            grid_h, grid_w = working.shape[:2]
            total = grid_h * grid_w

            if total == 0:
                logger.info(f"Working grid for {width}x{height} image is empty; no segments")
                return SegmentationResult(segments=[])

            # numpy Generators are not thread-safe
            with self._rng_lock:
                labels, centroids = kmeans_rgb(
                    working[..., :3].reshape(-1, 3),
                    n_clusters=cfg.n_clusters,
                    iterations=cfg.iterations,
                    rng=self.rng,
                )
            label_map = labels.reshape(grid_h, grid_w)

            components = label_components(label_map)
            kept = filter_small_components(components, total, cfg.min_component_fraction)
            logger.debug(
                f"Working grid {grid_w}x{grid_h} (scale {scale:.3f}): "
                f"{len(components)} components, {len(kept)} above noise threshold"
            )

            grid = component_grid(components, (grid_h, grid_w))
            stages = SegmentationStages(
                working=working,
                scale=scale,
                label_map=label_map,
                centroids=centroids,
                components=components,
                kept=kept,
            )

            segments = []
            for component in kept:
                trace, _ = trace_boundary(grid, component.index, component.start, max_steps=total)
                stages.traces.append(trace)

                boundary = simplify_path(
                    scale_path(from_array(trace), scale),
                    cfg.simplify_tolerance,
                )
                number = len(segments) + 1
                segments.append(Segment(
                    boundary=boundary,
                    display_color=cfg.palette[len(segments) % len(cfg.palette)],
                    selected=False,
                    label=f"Region {number} ({_hex_color(centroids[component.cluster])})",
                ))

        except SegmentationError:
            raise
        except Exception as e:
            raise SegmentationError(f"Segmentation failed: {e}") from e

        logger.info(f"Segmented {width}x{height} image into {len(segments)} regions")
        return SegmentationResult(segments=segments, stages=stages)


def segment_image(
    image: ImageBuffer,
    config: Optional[SegmenterConfig] = None,
    rng: RandomSource = None
) -> List[Segment]:
    """Convenience wrapper: segment an ImageBuffer with a one-off segmenter."""
    return RegionSegmenter(config, rng).segment(image.pixels, image.width, image.height)
