"""Tests for the editing session."""
import threading
from concurrent.futures import Executor, Future, ThreadPoolExecutor

import pytest
import numpy as np

from smartmask.segmenter import RegionSegmenter
from smartmask.session import EditorSession
from smartmask.types import ImageBuffer, ImageLoadError, MaskSettings, Point, SegmentationError, Tool
from conftest import solid_image


class ManualExecutor(Executor):
    """Holds submitted jobs until the test runs them."""

    def __init__(self):
        self.jobs = []

    def submit(self, fn, *args, **kwargs):
        future = Future()
        self.jobs.append((future, fn, args, kwargs))
        return future

    def run(self, i=0):
        future, fn, args, kwargs = self.jobs[i]
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:
            future.set_exception(e)


class FailingSegmenter:
    def run(self, pixels, width, height):
        raise SegmentationError("boom")


STROKE = [(20, 50), (80, 50)]


@pytest.fixture
def session(square_draws):
    return EditorSession(segmenter=RegionSegmenter(rng=square_draws))


@pytest.fixture
def loaded(session, square_image):
    session.load_image(square_image)
    return session


class TestLoading:
    """Test image loading and segmentation runs."""

    def test_load_segments_image(self, session, square_image):
        segments = session.load_image(square_image)

        assert len(segments) == 2
        assert session.has_image
        assert not session.is_busy
        assert len(session.history) == 1
        assert not session.can_undo()

    def test_large_image_fitted_to_canvas(self, session):
        session.load_image(solid_image(1600, 600))

        assert (session.image.width, session.image.height) == (800, 300)
        assert session.image.pixels.shape == (300, 800, 4)

    def test_new_image_clears_history(self, loaded, square_image):
        loaded.commit_stroke(STROKE, Tool.ADD)

        loaded.load_image(square_image)

        assert len(loaded.history) == 1
        assert loaded.manual_paths == ()

    def test_failure_leaves_manual_tools(self, square_image):
        """A failed segmentation keeps the image with no segments."""
        session = EditorSession(segmenter=FailingSegmenter())

        segments = session.load_image(square_image)

        assert segments == ()
        assert isinstance(session.last_error, SegmentationError)
        assert session.has_image
        assert session.is_empty
        assert session.commit_stroke(STROKE, Tool.ADD) is not None

    def test_edits_rejected_while_busy(self, session, square_image):
        """Toggles and strokes are ignored until the run completes."""
        executor = ManualExecutor()
        session.load_image_async(square_image, executor)

        assert session.is_busy
        assert session.commit_stroke(STROKE, Tool.ADD) is None
        assert session.toggle_at(20, 20) is None
        assert len(session.history) == 1

        executor.run()

        assert not session.is_busy
        assert len(session.segments) == 2
        assert session.commit_stroke(STROKE, Tool.ADD) is not None

    def test_stale_result_discarded(self, session, square_image):
        """A run superseded by a newer load does not replace its segments."""
        executor = ManualExecutor()
        session.load_image_async(solid_image(60, 40), executor)
        session.load_image_async(square_image, executor)

        executor.run(0)

        assert session.is_busy
        assert session.segments == ()

        executor.run(1)

        assert not session.is_busy
        assert len(session.segments) == 2
        assert session.stages.working.shape[:2] == (100, 100)

    def test_load_during_result_delivery(self, session, square_image):
        """A load that starts while a worker applies its result waits, then wins."""
        executor = ManualExecutor()
        session.load_image_async(solid_image(100, 100, (0, 200, 0, 255)), executor)

        applying = threading.Event()
        release = threading.Event()
        reset = session.history.reset

        def slow_reset(snapshot=None):
            if threading.current_thread().name == "worker":
                applying.set()
                release.wait(5)
            reset(snapshot)

        session.history.reset = slow_reset

        worker = threading.Thread(target=executor.run, args=(0,), name="worker")
        worker.start()
        assert applying.wait(5)

        loader = threading.Thread(target=session.load_image_async, args=(square_image, executor))
        loader.start()
        loader.join(0.2)
        release.set()
        worker.join(5)
        loader.join(5)

        assert session.is_busy
        executor.run(1)

        assert not session.is_busy
        assert [s.label for s in session.segments] == ["Region 1 (#c83232)", "Region 2 (#000000)"]

    def test_wrong_channel_count_rejected(self, loaded):
        """A buffer that is not an image leaves nothing loaded instead of raising."""
        segments = loaded.load_image(np.zeros((4, 4, 2), dtype=np.uint8))

        assert segments == ()
        assert isinstance(loaded.last_error, ImageLoadError)
        assert not loaded.has_image
        assert not loaded.is_busy
        assert loaded.export() is None

    def test_wrong_channel_count_rejected_async(self, session):
        future = session.load_image_async(np.zeros((4, 4, 2), dtype=np.uint8), ManualExecutor())

        assert isinstance(future.exception(), ImageLoadError)
        assert not session.has_image
        assert not session.is_busy

    def test_buffer_dimensions_come_from_pixels(self, session, square_image):
        """Declared width and height that disagree with the array are ignored."""
        image = ImageBuffer(pixels=square_image[:, :50], width=100, height=100)

        session.load_image(image)

        assert (session.image.width, session.image.height) == (50, 100)
        assert session.last_error is None
        assert session.export().shape == (100, 50, 4)

    def test_async_failure(self, square_image):
        executor = ManualExecutor()
        session = EditorSession(segmenter=FailingSegmenter())

        future = session.load_image_async(square_image, executor)
        executor.run()

        assert future.exception() is not None
        assert not session.is_busy
        assert session.segments == ()
        assert isinstance(session.last_error, SegmentationError)

    def test_cancelled_run(self, session, square_image):
        executor = ManualExecutor()
        future = session.load_image_async(square_image, executor)

        future.cancel()

        assert not session.is_busy
        assert session.segments == ()

    def test_thread_pool(self, session, square_image):
        with ThreadPoolExecutor(max_workers=1) as pool:
            session.load_image_async(square_image, pool)

        assert not session.is_busy
        assert len(session.segments) == 2


class TestEdits:
    """Test toggles, strokes, undo and redo."""

    def test_toggle_creates_history_step(self, loaded):
        square = loaded.segments[1]

        assert loaded.toggle_segment(square.id)

        assert loaded.segments[1].selected
        assert loaded.selected_count == 1
        assert len(loaded.history) == 2

    def test_undo_redo_toggle(self, loaded):
        square_id = loaded.segments[1].id
        loaded.toggle_segment(square_id)

        assert loaded.undo()
        assert not loaded.segments[1].selected
        assert loaded.redo()
        assert loaded.segments[1].selected

    def test_toggle_unknown_segment(self, loaded):
        assert not loaded.toggle_segment("seg-does-not-exist")
        assert len(loaded.history) == 1

    def test_toggle_at_prefers_newest(self, loaded):
        """The square is inside the background outline but was created later."""
        square_id = loaded.segments[1].id

        assert loaded.toggle_at(20, 20) == square_id

    def test_toggle_at_background(self, loaded):
        assert loaded.toggle_at(60, 60) == loaded.segments[0].id

    def test_toggle_at_miss(self, loaded):
        assert loaded.toggle_at(500, 500) is None
        assert len(loaded.history) == 1

    def test_stroke_uses_pen_size(self, loaded):
        loaded.update_setting("pen_size", 35)

        path = loaded.commit_stroke(STROKE, "subtract")

        assert path.brush_size == 35
        assert path.tool == Tool.SUBTRACT
        assert path.points == (Point(20, 50), Point(80, 50))
        assert loaded.manual_paths == (path,)

    def test_non_drawing_tools_record_nothing(self, loaded):
        assert loaded.commit_stroke(STROKE, Tool.SMART) is None
        assert loaded.commit_stroke(STROKE, Tool.PAN) is None
        assert len(loaded.history) == 1

    def test_short_stroke_records_nothing(self, loaded):
        assert loaded.commit_stroke([(10, 10)], Tool.ADD) is None
        assert len(loaded.history) == 1

    def test_edit_after_undo_drops_redo(self, loaded):
        loaded.commit_stroke(STROKE, Tool.ADD)
        loaded.undo()

        loaded.commit_stroke(STROKE, Tool.SUBTRACT)

        assert not loaded.can_redo()
        assert [p.tool for p in loaded.manual_paths] == [Tool.SUBTRACT]

    def test_no_edits_without_image(self, session):
        assert session.commit_stroke(STROKE, Tool.ADD) is None
        assert session.toggle_at(1, 1) is None

    def test_reset(self, loaded):
        loaded.commit_stroke(STROKE, Tool.ADD)

        loaded.reset()

        assert not loaded.has_image
        assert len(loaded.history) == 1
        assert loaded.segments == ()
        assert loaded.export() is None


class TestSettings:
    """Test mask settings handling."""

    def test_values_clamped(self, session):
        session.update_setting("pen_size", 500)
        session.update_setting("border_size", -3)
        session.update_setting("feather", 25)

        assert session.settings == MaskSettings(pen_size=100, border_size=0, feather=20)

    def test_initial_settings_clamped(self):
        session = EditorSession(settings=MaskSettings(pen_size=0))

        assert session.settings.pen_size == 1

    def test_not_part_of_history(self, loaded):
        """Settings survive undo and do not add history steps."""
        loaded.commit_stroke(STROKE, Tool.ADD)
        loaded.update_setting("invert_mask", True)

        assert len(loaded.history) == 2
        loaded.undo()
        assert loaded.settings.invert_mask

    def test_unknown_setting(self, session):
        with pytest.raises(KeyError):
            session.update_setting("opacity", 0.5)

    def test_invert_requires_bool(self, session):
        """Strings such as "false" are not coerced to True."""
        with pytest.raises(TypeError):
            session.update_setting("invert_mask", "false")

        assert session.settings.invert_mask is False

    def test_invert_accepts_numpy_bool(self, session):
        session.update_setting("invert_mask", np.bool_(True))

        assert session.settings.invert_mask is True


class TestOutput:
    """Test mask, preview and export."""

    def test_nothing_without_image(self, session):
        assert session.mask() is None
        assert session.preview() is None
        assert session.export() is None

    def test_export_selected_square(self, loaded, square_image):
        loaded.toggle_at(20, 20)

        cutout = loaded.export()

        assert cutout.shape == square_image.shape
        assert tuple(cutout[20, 20]) == (0, 0, 0, 255)
        assert cutout[60, 60, 3] == 0
        assert cutout[5, 5, 3] == 0

    def test_mask_within_square(self, loaded):
        loaded.toggle_at(20, 20)

        mask = loaded.mask()

        rows, cols = np.nonzero(mask > 0)
        assert rows.min() >= 8 and rows.max() <= 31
        assert cols.min() >= 8 and cols.max() <= 31

    def test_inverted_export(self, loaded):
        loaded.toggle_at(20, 20)
        loaded.update_setting("invert_mask", True)

        cutout = loaded.export()

        assert cutout[20, 20, 3] == 0
        assert tuple(cutout[60, 60]) == (200, 50, 50, 255)

    def test_preview(self, loaded):
        loaded.toggle_at(20, 20)

        preview = loaded.preview()

        assert preview.shape == (100, 100, 4)
        assert preview.dtype == np.uint8
