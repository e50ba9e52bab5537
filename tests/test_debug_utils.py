"""Tests for debug helpers."""
from smartmask.debug_utils import audit_segments, describe_segments, save_stages
from smartmask.segmenter import RegionSegmenter
from smartmask.types import Point, Segment


def _segment(*coords, selected=False):
    return Segment(
        boundary=tuple(Point(float(x), float(y)) for x, y in coords),
        display_color=(0, 0, 0, 0.5),
        selected=selected,
        label="Region",
    )


class TestAudit:
    def test_counts(self):
        segments = [
            _segment((0, 0), (10, 0), (10, 10), (0, 10), (0, 0), selected=True),
            _segment((0, 0), (5, 0), (5, 5)),
            _segment((1, 1)),
        ]

        stats = audit_segments(segments, 100, 100)

        assert stats["total_segments"] == 3
        assert stats["selected"] == 1
        assert stats["open_boundaries"] == 1
        assert stats["degenerate"] == 1
        assert 0.01 < stats["covered_fraction"] < 0.012


class TestDescribe:
    def test_one_line_per_segment(self):
        lines = describe_segments([
            _segment((0, 0), (10, 0), (10, 10), (0, 0), selected=True),
            _segment(),
        ])

        assert len(lines) == 2
        assert lines[0].startswith("*")
        assert "[0,0]-[10,10]" in lines[0]
        assert "(empty)" in lines[1]


class TestSaveStages:
    def test_writes_four_images(self, tmp_path, square_image, square_draws):
        segmenter = RegionSegmenter(rng=square_draws)
        segmenter.segment(square_image, 100, 100)

        written = save_stages(segmenter.last_stages, tmp_path)

        assert len(written) == 4
        assert all(path.exists() for path in written.values())
