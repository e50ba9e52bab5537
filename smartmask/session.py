"""Editing session: ties segmentation, history, settings and export together."""
import logging
import threading
from concurrent.futures import CancelledError, Executor, Future
from dataclasses import fields, replace
from typing import Iterable, Optional, Tuple, Union

import numpy as np

from smartmask import constants
from smartmask.compositor import apply_mask, composite, render_overlay
from smartmask.geometry import point_in_polygon
from smartmask.history import EditHistory
from smartmask.raster_ingest import fit_to_canvas, ingest_from_array
from smartmask.segmenter import RegionSegmenter, SegmentationResult, SegmentationStages
from smartmask.types import (
    ImageBuffer,
    ImageLoadError,
    ManualPath,
    MaskSettings,
    Point,
    Segment,
    SegmentationError,
    Snapshot,
    Tool,
)

logger = logging.getLogger(__name__)

_SETTING_NAMES = tuple(f.name for f in fields(MaskSettings))


def _to_point(value) -> Point:
    if isinstance(value, Point):
        return value
    x, y = value
    return Point(float(x), float(y))


class EditorSession:
    """
    Single-user editing session.

    The session is the only writer of its history. Loading an image clears
    the history and starts a segmentation run; until that run reports back,
    toggles and strokes are rejected. Each run is tagged with an id so a
    result that arrives after a newer image was loaded is dropped.

    Run bookkeeping is guarded by a lock: results delivered on a worker
    thread are checked and applied in one step.

    Mask settings live outside the history: undo/redo changes content,
    never the sliders.
    """

    def __init__(
        self,
        segmenter: Optional[RegionSegmenter] = None,
        settings: Optional[MaskSettings] = None,
        max_canvas: Optional[Tuple[int, int]] = (constants.MAX_CANVAS_WIDTH, constants.MAX_CANVAS_HEIGHT),
        antialias: bool = False
    ):
        """
        Initialize session.

        Args:
            segmenter: Region segmenter (default configuration if None)
            settings: Initial mask settings, clamped
            max_canvas: Box that loaded images are scaled down to fit, or None
            antialias: Anti-alias mask edges
        """
        self.segmenter = segmenter or RegionSegmenter()
        self.settings = (settings or MaskSettings()).clamped()
        self.max_canvas = max_canvas
        self.antialias = antialias
        self.history = EditHistory()
        self.image: Optional[ImageBuffer] = None
        self.stages: Optional[SegmentationStages] = None
        self.last_error: Optional[Exception] = None
        self._lock = threading.Lock()
        self._run_id = 0
        self._pending_run: Optional[int] = None

    # --- State ---

    @property
    def current(self) -> Snapshot:
        return self.history.current

    @property
    def segments(self) -> Tuple[Segment, ...]:
        return self.current.segments

    @property
    def manual_paths(self) -> Tuple[ManualPath, ...]:
        return self.current.manual_paths

    @property
    def has_image(self) -> bool:
        return self.image is not None

    @property
    def is_busy(self) -> bool:
        """True while a segmentation run is outstanding."""
        return self._pending_run is not None

    @property
    def selected_count(self) -> int:
        return len(self.current.selected_segments)

    @property
    def is_empty(self) -> bool:
        """Image loaded but nothing to edit: no segments and no strokes."""
        return self.has_image and not self.is_busy and not self.segments and not self.manual_paths

    def can_undo(self) -> bool:
        return self.history.can_undo()

    def can_redo(self) -> bool:
        return self.history.can_redo()

    # --- Image loading ---

    def _prepare(self, image: Union[ImageBuffer, np.ndarray]) -> ImageBuffer:
        """Normalise to RGBA with dimensions taken from the pixel array."""
        if isinstance(image, ImageBuffer):
            image = ingest_from_array(image.pixels, image.source_path)
        else:
            image = ingest_from_array(image)
        if self.max_canvas is not None:
            image = fit_to_canvas(image, self.max_canvas)
        return image

    def _reject_image(self, error: ImageLoadError) -> None:
        logger.warning(f"Image rejected: {error}")
        with self._lock:
            self.history.reset()
            self.image = None
            self.stages = None
            self._pending_run = None
            self.last_error = error

    def _begin_run(self, image: ImageBuffer) -> int:
        with self._lock:
            if self._pending_run is not None:
                logger.info(f"Run {self._pending_run} superseded by a new image")
            self._run_id += 1
            self.image = image
            self.stages = None
            self.history.reset()
            self._pending_run = self._run_id
            self.last_error = None
            run_id = self._run_id
        logger.info(f"Run {run_id}: segmenting {image.width}x{image.height} image")
        return run_id

    def _finish_run(
        self,
        run_id: int,
        result: Optional[SegmentationResult],
        error: Optional[Exception] = None
    ) -> bool:
        with self._lock:
            if run_id != self._pending_run:
                logger.warning(f"Discarding stale segmentation result from run {run_id}")
                return False
            segments = result.segments if result is not None else []
            self.history.reset(Snapshot(segments=segments))
            self.stages = result.stages if result is not None else None
            self.last_error = error
            self._pending_run = None
        logger.info(f"Run {run_id}: {len(segments)} segments ready")
        return True

    def load_image(self, image: Union[ImageBuffer, np.ndarray]) -> Tuple[Segment, ...]:
        """
        Load an image and segment it before returning.

        A segmentation failure leaves the image loaded with no segments;
        the manual tools still work. A buffer that is not an image at all
        leaves no image loaded; either way the error is kept in
        ``last_error``.

        Returns:
            Segments of the new initial snapshot
        """
        try:
            image = self._prepare(image)
        except ImageLoadError as e:
            self._reject_image(e)
            return ()

        run_id = self._begin_run(image)
        try:
            result = self.segmenter.run(image.pixels, image.width, image.height)
        except SegmentationError as e:
            logger.warning(f"Run {run_id}: segmentation failed, continuing without segments: {e}")
            self._finish_run(run_id, None, e)
        else:
            self._finish_run(run_id, result)
        return self.segments

    def load_image_async(self, image: Union[ImageBuffer, np.ndarray], executor: Executor) -> Future:
        """
        Load an image and segment it on ``executor``.

        Edits are rejected until the returned future completes. If another
        image is loaded first, this run's result is discarded.

        Returns:
            Future resolving to the run's SegmentationResult (or raising its
            error). An unusable image gives an already-failed future.
        """
        try:
            image = self._prepare(image)
        except ImageLoadError as e:
            self._reject_image(e)
            future = Future()
            future.set_exception(e)
            return future

        run_id = self._begin_run(image)
        future = executor.submit(self.segmenter.run, image.pixels, image.width, image.height)
        future.add_done_callback(lambda f: self._complete(run_id, f))
        return future

    def _complete(self, run_id: int, future: Future) -> None:
        try:
            result = future.result()
        except SegmentationError as e:
            logger.warning(f"Run {run_id}: segmentation failed, continuing without segments: {e}")
            self._finish_run(run_id, None, e)
        except CancelledError:
            logger.warning(f"Run {run_id}: segmentation cancelled")
            self._finish_run(run_id, None)
        else:
            self._finish_run(run_id, result)

    # --- Edits ---

    def _editable(self, action: str) -> bool:
        if self.is_busy:
            logger.warning(f"Ignoring {action} while segmentation is running")
            return False
        if self.image is None:
            logger.debug(f"Ignoring {action}: no image loaded")
            return False
        return True

    def toggle_segment(self, segment_id: str) -> bool:
        """Flip one segment's selection as a new undo step."""
        if not self._editable("segment toggle"):
            return False
        if not any(s.id == segment_id for s in self.segments):
            logger.debug(f"Unknown segment {segment_id}")
            return False
        self.history.push(self.current.with_toggled(segment_id))
        return True

    def toggle_at(self, x: float, y: float) -> Optional[str]:
        """
        Smart tool: toggle the newest segment containing (x, y).

        Returns:
            Id of the toggled segment, or None if nothing was hit
        """
        if not self._editable("smart select"):
            return None
        point = Point(float(x), float(y))
        for segment in reversed(self.segments):
            if point_in_polygon(point, segment.boundary):
                self.toggle_segment(segment.id)
                return segment.id
        return None

    def commit_stroke(self, points: Iterable, tool: Union[Tool, str]) -> Optional[ManualPath]:
        """
        Record a freehand stroke at the current pen size.

        Strokes with fewer than 2 points, and tools other than add and
        subtract, record nothing.

        Returns:
            The committed path, or None
        """
        tool = Tool(tool)
        if tool not in (Tool.ADD, Tool.SUBTRACT):
            return None
        if not self._editable("stroke"):
            return None
        points = tuple(_to_point(p) for p in points)
        if len(points) < 2:
            return None
        path = ManualPath(points=points, tool=tool, brush_size=self.settings.pen_size)
        self.history.push(self.current.with_path(path))
        return path

    def undo(self) -> bool:
        return self.history.undo()

    def redo(self) -> bool:
        return self.history.redo()

    def reset(self) -> None:
        """Discard the image and every edit. An outstanding run's result is dropped."""
        with self._lock:
            self.history.reset()
            self.image = None
            self.stages = None
            self._pending_run = None
            self.last_error = None

    def update_setting(self, name: str, value) -> MaskSettings:
        """
        Change one mask setting, clamped to its range. Not recorded in history.

        Raises:
            KeyError: If ``name`` is not a MaskSettings field
            TypeError: If ``invert_mask`` is given anything but a bool
        """
        if name not in _SETTING_NAMES:
            raise KeyError(f"Unknown setting {name!r}; expected one of {_SETTING_NAMES}")
        if name == "invert_mask" and not isinstance(value, (bool, np.bool_)):
            raise TypeError(f"invert_mask must be a bool, got {value!r}")
        self.settings = replace(self.settings, **{name: value}).clamped()
        return self.settings

    # --- Output ---

    def mask(self) -> Optional[np.ndarray]:
        """Current (H, W) float mask, or None without an image."""
        if self.image is None:
            return None
        snapshot = self.current
        return composite(snapshot.segments, snapshot.manual_paths, self.settings,
                         self.image.width, self.image.height, self.antialias)

    def preview(self) -> Optional[np.ndarray]:
        """Image with the tinted selection overlay, or None without an image."""
        if self.image is None:
            return None
        snapshot = self.current
        return render_overlay(self.image.pixels, snapshot.segments, snapshot.manual_paths,
                              self.settings)

    def export(self) -> Optional[np.ndarray]:
        """
        Cut-out of the source image: visible only where the mask is opaque.

        Returns:
            (H, W, 4) uint8 RGBA, or None when no image is loaded
        """
        if self.image is None:
            logger.info("Nothing to export: no image loaded")
            return None
        result = apply_mask(self.image.pixels, self.mask())
        logger.info(f"Exported {self.image.width}x{self.image.height} cut-out")
        return result
