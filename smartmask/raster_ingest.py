"""Raster image ingestion into RGBA buffers."""
import logging
from pathlib import Path
from typing import Optional, Tuple, Union
import numpy as np
from PIL import Image
from PIL import ImageOps

from smartmask import constants
from smartmask.types import ImageBuffer, ImageLoadError

logger = logging.getLogger(__name__)


def fit_size(width: int, height: int, max_width: int, max_height: int) -> Tuple[int, int]:
    """
    Scale (width, height) down to fit inside the given box, keeping aspect.

    Width is constrained first, then height, and both are floored.
    """
    aspect = width / height
    w, h = float(width), float(height)

    if w > max_width:
        w = max_width
        h = w / aspect
    if h > max_height:
        h = max_height
        w = h * aspect

    return max(1, int(w)), max(1, int(h))


def fit_to_canvas(
    image: ImageBuffer,
    max_size: Tuple[int, int] = (constants.MAX_CANVAS_WIDTH, constants.MAX_CANVAS_HEIGHT)
) -> ImageBuffer:
    """Downscale an image that exceeds the canvas box. Smaller images are returned as-is."""
    width, height = fit_size(image.width, image.height, *max_size)
    if (width, height) == (image.width, image.height):
        return image

    logger.info(f"Fitting {image.width}x{image.height} image to {width}x{height}")
    resized = Image.fromarray(image.pixels).resize(
        (width, height), Image.BILINEAR
    )
    return ImageBuffer(
        pixels=np.array(resized, dtype=np.uint8),
        width=width,
        height=height,
        source_path=image.source_path,
    )


def ingest(
    path: Union[str, Path],
    max_size: Optional[Tuple[int, int]] = (constants.MAX_CANVAS_WIDTH, constants.MAX_CANVAS_HEIGHT)
) -> ImageBuffer:
    """
    Ingest a raster image file as RGBA.

    Args:
        path: Path to image file
        max_size: Canvas box to fit the image into, or None to keep full size

    Returns:
        ImageBuffer with uint8 RGBA pixels

    Raises:
        FileNotFoundError: If file doesn't exist
        ImageLoadError: If file cannot be decoded
    """
    path = Path(path)

    if not path.exists():
        raise FileNotFoundError(f"Image file not found: {path}")

    if not path.is_file():
        raise ImageLoadError(f"Path is not a file: {path}")

    try:
        with Image.open(path) as img:
            # Apply EXIF orientation transformation to handle rotation
            img = ImageOps.exif_transpose(img)
            pixels = np.array(img.convert("RGBA"), dtype=np.uint8)
    except (IOError, OSError) as e:
        raise ImageLoadError(f"Failed to load image {path}: {e}") from e

    image = ingest_from_array(pixels, str(path))
    if max_size is not None:
        image = fit_to_canvas(image, max_size)
    return image


def ingest_from_array(image: np.ndarray, path: str = "") -> ImageBuffer:
    """
    Create an ImageBuffer from a numpy array.

    Args:
        image: (H, W), (H, W, 3) or (H, W, 4) array, uint8 or float in [0, 1]
        path: Optional path for reference

    Returns:
        ImageBuffer with uint8 RGBA pixels
    """
    image = np.asarray(image)

    if image.ndim == 2:
        # Grayscale - convert to RGB
        image = np.stack([image] * 3, axis=-1)

    if image.ndim != 3:
        raise ImageLoadError(f"Expected 2D or 3D array, got {image.ndim}D")

    if image.shape[0] == 0 or image.shape[1] == 0:
        raise ImageLoadError(f"Image has no pixels: shape {image.shape}")

    if image.dtype != np.uint8:
        image = image.astype(np.float64)
        if image.max(initial=0.0) <= 1.0:
            image = image * 255.0
        image = np.clip(np.round(image), 0, 255).astype(np.uint8)

    if image.shape[2] == 3:
        alpha = np.full(image.shape[:2] + (1,), 255, dtype=np.uint8)
        image = np.concatenate([image, alpha], axis=-1)
    elif image.shape[2] != 4:
        raise ImageLoadError(f"Expected 3 or 4 channels, got {image.shape[2]}")

    height, width = image.shape[:2]
    return ImageBuffer(
        pixels=np.ascontiguousarray(image),
        width=width,
        height=height,
        source_path=path,
    )


def save_rgba(pixels: np.ndarray, path: Union[str, Path]) -> Path:
    """Write an RGBA (or single-channel) uint8 buffer as an image file."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.fromarray(np.ascontiguousarray(pixels, dtype=np.uint8)).save(path)
    return path
