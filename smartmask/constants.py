"""Settings ranges, defaults and display palette."""

DEFAULT_PEN_SIZE = 20
PEN_SIZE_RANGE = (1, 100)
BORDER_RANGE = (0, 20)
FEATHER_RANGE = (0, 20)

# Uploaded images are scaled down to fit this box before segmentation
MAX_CANVAS_WIDTH = 800
MAX_CANVAS_HEIGHT = 600

# RGBA tints cycled by segment creation order
SEGMENT_COLORS = (
    (255, 99, 132, 0.5),
    (54, 162, 235, 0.5),
    (255, 206, 86, 0.5),
    (75, 192, 192, 0.5),
    (153, 102, 255, 0.5),
    (255, 159, 64, 0.5),
)

ADD_STROKE_COLOR = (236, 72, 153, 0.8)
INVERT_DIM_COLOR = (0, 0, 0, 0.6)
UNSELECTED_OUTLINE_COLOR = (255, 255, 255, 0.7)
SELECTED_OUTLINE_WIDTH = 3
UNSELECTED_OUTLINE_WIDTH = 1
