"""Core types for the masking editor."""
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional, List, Tuple
import itertools

import numpy as np

from smartmask import constants


_ids = itertools.count(1)


def new_id(prefix: str) -> str:
    """Return a session-unique identifier such as ``seg-12``."""
    return f"{prefix}-{next(_ids)}"


class Tool(Enum):
    """Editing tools. Only ADD and SUBTRACT produce manual paths."""
    SMART = "smart"
    ADD = "add"
    SUBTRACT = "subtract"
    PAN = "pan"


@dataclass(frozen=True)
class Point:
    """2D point in image pixel coordinates (0,0 = top-left)."""
    x: float
    y: float

    def distance_to(self, other: "Point") -> float:
        return ((self.x - other.x) ** 2 + (self.y - other.y) ** 2) ** 0.5


Path = Tuple[Point, ...]


@dataclass(frozen=True)
class ManualPath:
    """Freehand stroke committed with the add or subtract tool.

    ``brush_size`` is the stroke width in image pixels at commit time.
    """
    points: Path
    tool: Tool
    brush_size: float
    id: str = field(default_factory=lambda: new_id("path"))

    def __post_init__(self):
        if self.tool not in (Tool.ADD, Tool.SUBTRACT):
            raise ValueError(f"Manual paths must use add or subtract, got {self.tool}")
        object.__setattr__(self, "points", tuple(self.points))


@dataclass(frozen=True)
class Segment:
    """Candidate region produced by the segmenter."""
    boundary: Path
    display_color: Tuple[int, int, int, float]
    selected: bool = False
    label: Optional[str] = None
    id: str = field(default_factory=lambda: new_id("seg"))

    def __post_init__(self):
        object.__setattr__(self, "boundary", tuple(self.boundary))

    def toggled(self) -> "Segment":
        """Copy of this segment with the selection flag flipped."""
        return replace(self, selected=not self.selected)


@dataclass(frozen=True)
class Snapshot:
    """One immutable version of the editable state."""
    segments: Tuple[Segment, ...] = ()
    manual_paths: Tuple[ManualPath, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "segments", tuple(self.segments))
        object.__setattr__(self, "manual_paths", tuple(self.manual_paths))

    def with_path(self, path: ManualPath) -> "Snapshot":
        return replace(self, manual_paths=self.manual_paths + (path,))

    def with_toggled(self, segment_id: str) -> "Snapshot":
        segments = tuple(
            s.toggled() if s.id == segment_id else s for s in self.segments
        )
        return replace(self, segments=segments)

    @property
    def selected_segments(self) -> List[Segment]:
        return [s for s in self.segments if s.selected]


def _clamp(value: float, bounds: Tuple[float, float]) -> float:
    lo, hi = bounds
    return min(hi, max(lo, value))


@dataclass(frozen=True)
class MaskSettings:
    """Global mask adjustment parameters. Not part of undo history."""
    pen_size: float = constants.DEFAULT_PEN_SIZE
    invert_mask: bool = False
    border_size: float = 0.0
    feather: float = 0.0

    def clamped(self) -> "MaskSettings":
        """Return a copy with every numeric option clamped to its range."""
        return MaskSettings(
            pen_size=_clamp(float(self.pen_size), constants.PEN_SIZE_RANGE),
            invert_mask=bool(self.invert_mask),
            border_size=_clamp(float(self.border_size), constants.BORDER_RANGE),
            feather=_clamp(float(self.feather), constants.FEATHER_RANGE),
        )


@dataclass
class SegmenterConfig:
    """Configuration for the region segmenter."""
    # Downsampling
    max_working_size: int = 150

    # Clustering
    n_clusters: int = 8
    iterations: int = 4

    # Noise filter, fraction of working pixels
    min_component_fraction: float = 0.005

    # Simplification tolerance in image pixels
    simplify_tolerance: float = 2.0

    palette: Tuple[Tuple[int, int, int, float], ...] = constants.SEGMENT_COLORS


@dataclass
class ImageBuffer:
    """Decoded RGBA image, uint8 array of shape (height, width, 4)."""
    pixels: np.ndarray
    width: int
    height: int
    source_path: str = ""


class SmartMaskError(Exception):
    """Base exception for the masking editor."""
    pass


class SegmentationError(SmartMaskError):
    """Raised when a pixel buffer cannot be segmented."""
    pass


class ImageLoadError(SmartMaskError):
    """Raised when an image file cannot be decoded."""
    pass
