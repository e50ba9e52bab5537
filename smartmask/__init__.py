"""smartmask: region segmentation and mask compositing for cut-out editing."""
from smartmask.types import (
    Point,
    Tool,
    ManualPath,
    Segment,
    Snapshot,
    MaskSettings,
    SegmenterConfig,
    ImageBuffer,
    SmartMaskError,
    SegmentationError,
    ImageLoadError,
)

__version__ = "0.1.0"

__all__ = [
    "Point",
    "Tool",
    "ManualPath",
    "Segment",
    "Snapshot",
    "MaskSettings",
    "SegmenterConfig",
    "ImageBuffer",
    "SmartMaskError",
    "SegmentationError",
    "ImageLoadError",
]
