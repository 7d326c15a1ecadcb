"""Preprocessing module for fingerscan

This module contains the image primitives shared by every stage:
- Image loading / decoding into RasterBuffers
- Grayscale conversion and resizing
- Gradient and Laplacian operators
- Segmentation strategies (finger region vs background) for coverage estimation

"""

from __future__ import annotations
from pathlib import Path
from typing import Callable, Tuple
import cv2
import numpy as np
from scipy import ndimage

from fingerscan.config import DEFAULT_QUALITY, QualitySettings
from fingerscan.exceptions import InvalidImageError
from fingerscan.models import RasterBuffer


# A segmentation strategy maps a grayscale image (float, 0-255) to a boolean
# foreground mask of the same shape.
SegmentationStrategy = Callable[[np.ndarray, QualitySettings], np.ndarray]


# ---------------------------------------------------------------------------
# Image I/O


def _to_raster(image: np.ndarray) -> RasterBuffer:
    if image.dtype == np.uint16:
        image = (image / 257.0).round().astype(np.uint8)
    return RasterBuffer(image)


def load_image(path: Path) -> RasterBuffer:
    """Load an image file keeping its channel layout.

    Args:
        path: Path to image file

    Returns:
        RasterBuffer (8-bit, grayscale or BGR/BGRA)

    Raises:
        FileNotFoundError: If the file does not exist
        InvalidImageError: If the file cannot be decoded
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Image not found: {path}")
    image = cv2.imread(str(path), cv2.IMREAD_UNCHANGED)
    if image is None:
        raise InvalidImageError(f"Unable to read image: {path}")
    return _to_raster(image)


def decode_image(data: bytes) -> RasterBuffer:
    """Decode an encoded image (PNG, JPEG, ...) from memory.

    Raises:
        InvalidImageError: If the bytes are not a decodable image
    """
    if not data:
        raise InvalidImageError("Empty image data")
    buffer = np.frombuffer(data, dtype=np.uint8)
    image = cv2.imdecode(buffer, cv2.IMREAD_UNCHANGED)
    if image is None:
        raise InvalidImageError("Unable to decode image data")
    return _to_raster(image)


def encode_png(image: RasterBuffer) -> bytes:
    """Encode a raster as a lossless PNG blob."""
    pixels = image.pixels
    if image.is_normalized:
        pixels = np.clip(pixels * 255.0, 0, 255).round().astype(np.uint8)
    elif pixels.dtype != np.uint8:
        pixels = np.clip(pixels, 0, 255).astype(np.uint8)
    ok, encoded = cv2.imencode(".png", pixels)
    if not ok:
        raise InvalidImageError("PNG encoding failed")
    return encoded.tobytes()


# ---------------------------------------------------------------------------
# Conversion and resizing


def to_gray_float(image: RasterBuffer) -> np.ndarray:
    """Convert a raster to a single-channel float32 image (0-255 range)."""
    pixels = image.pixels.astype(np.float32)
    if image.is_normalized:
        pixels = pixels * 255.0
    if pixels.ndim == 3:
        code = cv2.COLOR_BGRA2GRAY if pixels.shape[2] == 4 else cv2.COLOR_BGR2GRAY
        pixels = cv2.cvtColor(pixels, code)
    return np.clip(pixels, 0.0, 255.0)


def to_gray_uint8(image: RasterBuffer) -> np.ndarray:
    """Convert a raster to a single-channel uint8 image."""
    return np.round(to_gray_float(image)).astype(np.uint8)


def resize_longest(image: np.ndarray, size: int, interpolation: int = None) -> np.ndarray:
    """Resize so the longer side equals ``size``, keeping the aspect ratio.

    Args:
        image: Input image (2-D or 3-D)
        size: Target length of the longer side (pixels)
        interpolation: OpenCV flag (area for shrinking, cubic for enlarging if None)

    Returns:
        Resized image (the input itself when already at size)
    """
    h, w = image.shape[:2]
    longest = max(h, w)
    if longest == size or longest == 0:
        return image
    scale = size / float(longest)
    new_w = max(1, int(round(w * scale)))
    new_h = max(1, int(round(h * scale)))
    if interpolation is None:
        interpolation = cv2.INTER_AREA if scale < 1.0 else cv2.INTER_CUBIC
    return cv2.resize(image, (new_w, new_h), interpolation=interpolation)


def downsample_to(image: np.ndarray, max_side: int) -> np.ndarray:
    """Shrink (never enlarge) so the longer side is at most ``max_side``."""
    if max(image.shape[:2]) <= max_side:
        return image
    return resize_longest(image, max_side, cv2.INTER_AREA)


def center_region(image: np.ndarray, fraction: float) -> Tuple[np.ndarray, Tuple[int, int, int, int]]:
    """Crop the centred region covering ``fraction`` of each dimension.

    Returns:
        Tuple of (region, (x, y, width, height))
    """
    h, w = image.shape[:2]
    rw = max(1, int(w * fraction))
    rh = max(1, int(h * fraction))
    x = (w - rw) // 2
    y = (h - rh) // 2
    return image[y:y + rh, x:x + rw], (x, y, rw, rh)


# ---------------------------------------------------------------------------
# Differential operators


def laplacian_variance(gray: np.ndarray) -> float:
    """Variance of the 4-neighbour Laplacian over the image interior."""
    if gray.shape[0] < 3 or gray.shape[1] < 3:
        return 0.0
    lap = cv2.Laplacian(gray.astype(np.float64), cv2.CV_64F, ksize=1)
    return float(lap[1:-1, 1:-1].var())


def sobel_gradients(gray: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Compute 3x3 Sobel gradients.

    Returns:
        Tuple of (gx, gy) in float64
    """
    image = np.ascontiguousarray(gray, dtype=np.float64)
    gx = cv2.Sobel(image, cv2.CV_64F, 1, 0, ksize=3)
    gy = cv2.Sobel(image, cv2.CV_64F, 0, 1, ksize=3)
    return gx, gy


def neighbour_contrast(gray: np.ndarray) -> np.ndarray:
    """Morphological gradient (3x3 max - min), normalized to 0-1."""
    kernel = np.ones((3, 3), np.uint8)
    image = np.clip(gray, 0, 255).astype(np.uint8)
    return cv2.morphologyEx(image, cv2.MORPH_GRADIENT, kernel).astype(np.float32) / 255.0


# ---------------------------------------------------------------------------
# Segmentation


def _clean_mask(mask: np.ndarray) -> np.ndarray:
    """Close/open, fill holes and keep the largest connected component."""
    kernel = np.ones((3, 3), np.uint8)
    mask = mask.astype(np.uint8)
    mask = cv2.morphologyEx(mask, cv2.MORPH_CLOSE, kernel, iterations=1)
    mask = cv2.morphologyEx(mask, cv2.MORPH_OPEN, kernel, iterations=1)
    filled = ndimage.binary_fill_holes(mask.astype(bool))

    labels, count = ndimage.label(filled)
    if count <= 1:
        return filled
    sizes = ndimage.sum(filled, labels, index=np.arange(1, count + 1))
    return labels == (int(np.argmax(sizes)) + 1)


def edge_density_segmentation(image: np.ndarray,
                              settings: QualitySettings = None) -> np.ndarray:
    """Segment the finger as the largest region dense in ridge edges.

    A pixel is an edge when the brightness range of its 3x3 neighbourhood exceeds
    ``settings.edge_threshold``. The local edge density is averaged over
    ``block_size`` windows and thresholded with ``min_edge_density``.

    Args:
        image: Input grayscale image (float, 0-255)
        settings: QualitySettings (uses defaults if None)

    Returns:
        Boolean mask: True for foreground, False for background
    """
    if settings is None:
        settings = DEFAULT_QUALITY

    edges = (neighbour_contrast(image) > settings.edge_threshold).astype(np.float32)
    density = cv2.boxFilter(edges, -1, (settings.block_size, settings.block_size), normalize=True)
    return _clean_mask(density >= settings.min_edge_density)


def block_variance_segmentation(image: np.ndarray,
                                settings: QualitySettings = None) -> np.ndarray:
    """Segment foreground from background using block variance.

    Divides the image into blocks and computes variance for each block.
    High-variance blocks indicate ridge structures (foreground), while
    low-variance blocks indicate background or noise. Partial blocks at the
    right and bottom borders are evaluated on their own pixels.

    Args:
        image: Input grayscale image (float, 0-255)
        settings: QualitySettings (uses defaults if None)

    Returns:
        Boolean mask: True for foreground, False for background
    """
    if settings is None:
        settings = DEFAULT_QUALITY

    block_size = settings.block_size
    h, w = image.shape
    mask = np.zeros((h, w), dtype=np.uint8)

    for y in range(0, h, block_size):
        for x in range(0, w, block_size):
            block = image[y:y + block_size, x:x + block_size]
            if block.var() >= settings.variance_threshold:
                mask[y:y + block_size, x:x + block_size] = 1

    return _clean_mask(mask)
