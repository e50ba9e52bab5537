"""Debug utilities: segment auditing and segmentation stage dumps."""
import logging
from pathlib import Path
from typing import Dict, List, Sequence

import cv2
import numpy as np
from skimage.segmentation import mark_boundaries

from smartmask.geometry import path_bounds, polygon_area
from smartmask.raster_ingest import save_rgba
from smartmask.segmenter import SegmentationStages
from smartmask.types import Segment

logger = logging.getLogger(__name__)


def audit_segments(segments: Sequence[Segment], width: int, height: int) -> dict:
    """
    Summarise a segmentation result and log suspicious segments.

    Args:
        segments: Segments to audit
        width: Image width
        height: Image height

    Returns:
        Dictionary with audit statistics
    """
    stats = {
        "total_segments": len(segments),
        "selected": 0,
        "open_boundaries": 0,
        "degenerate": 0,
        "covered_fraction": 0.0,
    }

    image_area = float(width * height) or 1.0

    for segment in segments:
        boundary = segment.boundary
        if segment.selected:
            stats["selected"] += 1

        if len(boundary) <= 2:
            stats["degenerate"] += 1
            logger.warning(f"{segment.id} ({segment.label}): only {len(boundary)} boundary points")
            continue

        if boundary[0] != boundary[-1]:
            stats["open_boundaries"] += 1
            logger.warning(f"{segment.id} ({segment.label}): boundary is not closed")

        stats["covered_fraction"] += polygon_area(boundary) / image_area

    logger.info(
        f"Segment audit: {stats['total_segments']} total, "
        f"{stats['degenerate']} degenerate, "
        f"{stats['open_boundaries']} open, "
        f"{stats['covered_fraction']:.1%} of image covered by outlines"
    )

    return stats


def describe_segments(segments: Sequence[Segment]) -> List[str]:
    """One line per segment: number, label, selection, bounding box."""
    lines = []
    for i, segment in enumerate(segments, start=1):
        mark = "*" if segment.selected else " "
        if segment.boundary:
            x0, y0, x1, y1 = path_bounds(segment.boundary)
            box = f"[{x0:.0f},{y0:.0f}]-[{x1:.0f},{y1:.0f}]"
        else:
            box = "(empty)"
        lines.append(f"{mark} {i:3d}  {segment.label or segment.id:<24} {box}  {len(segment.boundary)} pts")
    return lines


def _palette_image(label_map: np.ndarray, colors: np.ndarray) -> np.ndarray:
    rgb = np.clip(np.round(colors), 0, 255).astype(np.uint8)[label_map]
    alpha = np.full(label_map.shape + (1,), 255, dtype=np.uint8)
    return np.concatenate([rgb, alpha], axis=-1)


def _components_image(stages: SegmentationStages) -> np.ndarray:
    """Kept components in distinct colours, discarded ones black."""
    shape = stages.label_map.shape
    out = np.zeros(shape + (4,), dtype=np.uint8)
    out[..., 3] = 255
    rng = np.random.default_rng(0)
    for component in stages.kept:
        out[component.rows, component.cols, :3] = rng.integers(64, 256, size=3)
    return out


def _traces_image(stages: SegmentationStages) -> np.ndarray:
    """Traced outlines drawn over the working image."""
    rgb = np.ascontiguousarray(stages.working[..., :3], dtype=np.uint8)
    rgb = (mark_boundaries(rgb, stages.label_map, color=(0.5, 0.5, 0.5)) * 255).astype(np.uint8)
    rgb = np.ascontiguousarray(rgb)
    for trace in stages.traces:
        if len(trace) >= 2:
            pts = np.array(trace, dtype=np.int32).reshape(-1, 1, 2)
            cv2.polylines(rgb, [pts], True, (255, 0, 255), 1)
        elif trace:
            x, y = trace[0]
            rgb[y, x] = (255, 0, 255)
    alpha = np.full(rgb.shape[:2] + (1,), 255, dtype=np.uint8)
    return np.concatenate([rgb, alpha], axis=-1)


def save_stages(stages: SegmentationStages, output_dir: Path) -> Dict[str, Path]:
    """
    Write the intermediate images of a segmentation run.

    Files: working grid, cluster colours, kept components, traced outlines.

    Returns:
        Mapping of stage name to written path
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    images = {
        "stage_01_working": stages.working if stages.working.shape[2] == 4 else
        np.concatenate([stages.working, np.full(stages.working.shape[:2] + (1,), 255, np.uint8)], axis=-1),
        "stage_02_clusters": _palette_image(stages.label_map, stages.centroids),
        "stage_03_components": _components_image(stages),
        "stage_04_boundaries": _traces_image(stages),
    }

    written = {}
    for name, image in images.items():
        written[name] = save_rgba(image, output_dir / f"{name}.png")
        logger.debug(f"Saved stage: {written[name]}")

    logger.info(
        f"Saved {len(written)} stages to {output_dir} "
        f"({len(stages.components)} components, {len(stages.kept)} kept)"
    )
    return written
