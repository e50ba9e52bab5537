"""Tests for the undo/redo history."""
from smartmask.history import EditHistory
from smartmask.types import Point, Segment, Snapshot


def _snapshot(n):
    """Distinct snapshot tagged by its segment count."""
    segments = tuple(
        Segment(boundary=(Point(0, 0), Point(1, 0), Point(1, 1)), display_color=(0, 0, 0, 0.5))
        for _ in range(n)
    )
    return Snapshot(segments=segments)


class TestEditHistory:
    """Test cursor movement and truncation."""

    def test_starts_with_empty_snapshot(self):
        history = EditHistory()

        assert len(history) == 1
        assert history.index == 0
        assert history.current == Snapshot()
        assert not history.can_undo()
        assert not history.can_redo()

    def test_push_moves_cursor(self):
        history = EditHistory(_snapshot(0))
        s1 = _snapshot(1)

        history.push(s1)

        assert history.current is s1
        assert history.index == 1
        assert history.can_undo()

    def test_push_after_undo_truncates(self):
        """[s0, s1, s2], undo, push s3 -> [s0, s1, s3]."""
        s0, s1, s2, s3 = (_snapshot(i) for i in range(4))
        history = EditHistory(s0)
        history.push(s1)
        history.push(s2)

        history.undo()
        history.push(s3)

        assert history.snapshots == (s0, s1, s3)
        assert history.index == 2
        assert not history.can_redo()

    def test_undo_at_start_is_noop(self):
        history = EditHistory()

        assert history.undo() is False
        assert history.index == 0

    def test_redo_at_end_is_noop(self):
        history = EditHistory()
        history.push(_snapshot(1))

        assert history.redo() is False
        assert history.index == 1

    def test_undo_redo_round_trip(self):
        s0, s1, s2 = (_snapshot(i) for i in range(3))
        history = EditHistory(s0)
        history.push(s1)
        history.push(s2)

        assert history.undo() and history.undo()
        assert history.current is s0
        assert history.redo()
        assert history.current is s1
        assert len(history) == 3

    def test_reset(self):
        """Reset leaves a single snapshot and no redo states."""
        history = EditHistory()
        history.push(_snapshot(1))
        history.push(_snapshot(2))
        fresh = _snapshot(3)

        history.reset(fresh)

        assert history.snapshots == (fresh,)
        assert history.index == 0
        assert not history.can_undo()
        assert not history.can_redo()

    def test_reset_defaults_to_empty(self):
        history = EditHistory(_snapshot(2))

        history.reset()

        assert history.current == Snapshot()
