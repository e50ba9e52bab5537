"""Mask compositing: selected regions, manual strokes, border, feather, invert.

Every layer is rendered onto a premultiplied RGBA float canvas. A colour
policy decides what each layer paints with, so the exported mask and the
tinted on-screen overlay come from the same geometry pass:

    1. selected segments, filled (plus a 2 x border outline when border > 0)
    2. manual paths in commit order; add paints, subtract erases
    3. Gaussian feather over the combined canvas
    4. invert: the policy's invert colour with the canvas cut out of it
"""
from typing import Optional, Sequence, Tuple

import cv2
import numpy as np

from smartmask import constants
from smartmask.geometry import as_array
from smartmask.types import ManualPath, MaskSettings, Point, Segment, Tool

RGBA = Tuple[float, float, float, float]

# Fixed-point bits for sub-pixel coordinates in OpenCV drawing calls
_SHIFT = 4
_ONE = 1 << _SHIFT

OPAQUE_WHITE = (255, 255, 255, 1.0)


def premultiply(color: RGBA) -> np.ndarray:
    """(r, g, b, a) with 0-255 channels and 0-1 alpha -> premultiplied floats."""
    r, g, b, a = color
    return np.array([r / 255.0 * a, g / 255.0 * a, b / 255.0 * a, a], dtype=np.float32)


class MaskPolicy:
    """Paints every layer opaque white; the canvas alpha is the mask."""

    def segment_color(self, segment: Segment) -> RGBA:
        return OPAQUE_WHITE

    def add_color(self) -> RGBA:
        return OPAQUE_WHITE

    def invert_color(self) -> RGBA:
        return OPAQUE_WHITE


class TintPolicy(MaskPolicy):
    """Per-segment palette tints for on-screen display."""

    def segment_color(self, segment: Segment) -> RGBA:
        return segment.display_color

    def add_color(self) -> RGBA:
        return constants.ADD_STROKE_COLOR

    def invert_color(self) -> RGBA:
        return constants.INVERT_DIM_COLOR


def _fixed_point(points: Sequence[Point]) -> np.ndarray:
    return np.round(as_array(points) * _ONE).astype(np.int32)


def fill_coverage(points: Sequence[Point], shape: Tuple[int, int], antialias: bool = False) -> np.ndarray:
    """Coverage (0-1 float) of a filled, implicitly closed polygon."""
    layer = np.zeros(shape, dtype=np.uint8)
    if len(points) >= 3:
        line_type = cv2.LINE_AA if antialias else cv2.LINE_8
        cv2.fillPoly(layer, [_fixed_point(points)], 255, lineType=line_type, shift=_SHIFT)
    return layer.astype(np.float32) / 255.0


def stroke_coverage(
    points: Sequence[Point],
    width: float,
    shape: Tuple[int, int],
    closed: bool = False,
    antialias: bool = False
) -> np.ndarray:
    """
    Coverage of a polyline stroked with round caps and joins.

    Args:
        points: Polyline vertices in image coordinates
        width: Stroke width in pixels
        shape: (height, width) of the output
        closed: Also stroke the segment from the last point back to the first
        antialias: Use anti-aliased edges instead of hard pixel edges

    Returns:
        (H, W) float32 coverage in [0, 1]; all zero for fewer than 2 points
    """
    layer = np.zeros(shape, dtype=np.uint8)
    if len(points) < 2 or width <= 0:
        return layer.astype(np.float32)

    line_type = cv2.LINE_AA if antialias else cv2.LINE_8
    thickness = max(1, int(round(width)))
    coords = _fixed_point(points)
    if closed:
        coords = np.vstack([coords, coords[:1]])

    for start, end in zip(coords[:-1], coords[1:]):
        cv2.line(layer, tuple(int(v) for v in start), tuple(int(v) for v in end),
                 255, thickness=thickness, lineType=line_type, shift=_SHIFT)

    if thickness > 1:
        radius = int(round(width / 2.0 * _ONE))
        for vertex in coords:
            cv2.circle(layer, tuple(int(v) for v in vertex), radius, 255,
                       thickness=-1, lineType=line_type, shift=_SHIFT)

    return layer.astype(np.float32) / 255.0


def source_over(canvas: np.ndarray, coverage: np.ndarray, color: RGBA) -> np.ndarray:
    """Paint ``color`` over the canvas where coverage is non-zero."""
    src = premultiply(color)
    cov = coverage[..., None]
    return src * cov + canvas * (1.0 - src[3] * cov)


def destination_out(canvas: np.ndarray, coverage: np.ndarray) -> np.ndarray:
    """Erase the canvas under the coverage, whatever painted it."""
    return canvas * (1.0 - coverage[..., None])


def effective_stroke_width(path: ManualPath, border_size: float) -> float:
    """Brush width after the border setting: grows add strokes, shrinks subtract strokes."""
    if border_size <= 0:
        return path.brush_size
    if path.tool == Tool.SUBTRACT:
        return max(1.0, path.brush_size - border_size * 2)
    return path.brush_size + border_size * 2


def feather(canvas: np.ndarray, radius: float) -> np.ndarray:
    """Gaussian blur with sigma ``radius``; pixels beyond the edge count as empty."""
    if radius <= 0:
        return canvas
    return cv2.GaussianBlur(canvas, (0, 0), sigmaX=float(radius), sigmaY=float(radius),
                            borderType=cv2.BORDER_CONSTANT)


def invert(canvas: np.ndarray, color: RGBA) -> np.ndarray:
    """Fill with ``color`` and cut the canvas alpha out of it."""
    return premultiply(color) * (1.0 - canvas[..., 3:4])


def render_layers(
    segments: Sequence[Segment],
    manual_paths: Sequence[ManualPath],
    settings: MaskSettings,
    width: int,
    height: int,
    policy: Optional[MaskPolicy] = None,
    antialias: bool = False
) -> np.ndarray:
    """
    Render the full layer stack into a new premultiplied RGBA canvas.

    Args:
        segments: All segments; only selected ones are painted
        manual_paths: Strokes in commit order
        settings: Mask settings (clamped before use)
        width: Canvas width
        height: Canvas height
        policy: Colour policy, MaskPolicy if None
        antialias: Anti-alias polygon and stroke edges

    Returns:
        (H, W, 4) float32 premultiplied RGBA in [0, 1]
    """
    policy = policy or MaskPolicy()
    settings = settings.clamped()
    shape = (height, width)
    canvas = np.zeros((height, width, 4), dtype=np.float32)

    for segment in segments:
        if not segment.selected or len(segment.boundary) < 2:
            continue
        color = policy.segment_color(segment)
        canvas = source_over(canvas, fill_coverage(segment.boundary, shape, antialias), color)
        if settings.border_size > 0:
            outline = stroke_coverage(segment.boundary, settings.border_size * 2, shape,
                                      closed=True, antialias=antialias)
            canvas = source_over(canvas, outline, color)

    for path in manual_paths:
        if len(path.points) < 2:
            continue
        coverage = stroke_coverage(path.points, effective_stroke_width(path, settings.border_size),
                                   shape, antialias=antialias)
        if path.tool == Tool.SUBTRACT:
            canvas = destination_out(canvas, coverage)
        else:
            canvas = source_over(canvas, coverage, policy.add_color())

    canvas = feather(canvas, settings.feather)

    if settings.invert_mask:
        canvas = invert(canvas, policy.invert_color())

    return np.clip(canvas, 0.0, 1.0).astype(np.float32)


def composite(
    segments: Sequence[Segment],
    manual_paths: Sequence[ManualPath],
    settings: MaskSettings,
    width: int,
    height: int,
    antialias: bool = False
) -> np.ndarray:
    """
    Compute the output mask.

    Returns:
        (H, W) float32 opacity, 0 = excluded, 1 = included
    """
    canvas = render_layers(segments, manual_paths, settings, width, height,
                           MaskPolicy(), antialias)
    return canvas[..., 3].copy()


def over(dst: np.ndarray, src: np.ndarray) -> np.ndarray:
    """Porter-Duff source-over of two premultiplied canvases."""
    return src + dst * (1.0 - src[..., 3:4])


def to_premultiplied(pixels: np.ndarray) -> np.ndarray:
    """uint8 straight-alpha RGBA -> float premultiplied RGBA."""
    rgba = pixels.astype(np.float32) / 255.0
    rgba[..., :3] *= rgba[..., 3:4]
    return rgba


def to_straight_uint8(canvas: np.ndarray) -> np.ndarray:
    """float premultiplied RGBA -> uint8 straight-alpha RGBA."""
    alpha = canvas[..., 3:4]
    rgb = np.divide(canvas[..., :3], alpha, out=np.zeros_like(canvas[..., :3]), where=alpha > 0)
    out = np.concatenate([rgb, alpha], axis=-1)
    return np.clip(np.round(out * 255.0), 0, 255).astype(np.uint8)


def render_overlay(
    image: np.ndarray,
    segments: Sequence[Segment],
    manual_paths: Sequence[ManualPath],
    settings: MaskSettings,
    antialias: bool = True
) -> np.ndarray:
    """
    Image with the tinted selection drawn over it, for display.

    Segment outlines are drawn on top unless the mask is inverted: selected
    segments in their solid tint, unselected ones in translucent white.

    Args:
        image: (H, W, 4) uint8 RGBA source image

    Returns:
        (H, W, 4) uint8 RGBA
    """
    height, width = image.shape[:2]
    shape = (height, width)
    canvas = to_premultiplied(image)
    tint = render_layers(segments, manual_paths, settings, width, height,
                         TintPolicy(), antialias)
    canvas = over(canvas, tint)

    if not settings.invert_mask:
        for segment in segments:
            if len(segment.boundary) < 2:
                continue
            if segment.selected:
                r, g, b, _ = segment.display_color
                color = (r, g, b, 1.0)
                line_width = constants.SELECTED_OUTLINE_WIDTH
            else:
                color = constants.UNSELECTED_OUTLINE_COLOR
                line_width = constants.UNSELECTED_OUTLINE_WIDTH
            outline = stroke_coverage(segment.boundary, line_width, shape,
                                      closed=True, antialias=antialias)
            canvas = source_over(canvas, outline, color)

    return to_straight_uint8(canvas)


def apply_mask(image: np.ndarray, mask: np.ndarray) -> np.ndarray:
    """
    Keep the image where the mask is opaque.

    Alpha becomes ``image_alpha * mask``; colour is kept where the result
    is visible and zeroed where it is fully transparent.

    Args:
        image: (H, W, 4) uint8 RGBA
        mask: (H, W) float opacity in [0, 1]

    Returns:
        (H, W, 4) uint8 RGBA cut-out
    """
    if image.shape[:2] != mask.shape:
        raise ValueError(f"Mask shape {mask.shape} does not match image {image.shape[:2]}")

    out = image.copy()
    alpha = image[..., 3].astype(np.float32) * np.clip(mask, 0.0, 1.0)
    out[..., 3] = np.clip(np.round(alpha), 0, 255).astype(np.uint8)
    out[out[..., 3] == 0, :3] = 0
    return out
