"""Feature extraction module for fingerscan

Builds the compact similarity descriptor of an enhanced finger image:
- Orientation histogram: undirected gradient angles over [0, 180) degrees
- Texture vector: per-patch intensity mean and standard deviation on a fixed grid

Each sub-vector is L2-normalized, or left all-zero for degenerate input.
"""

from __future__ import annotations
import math
from typing import Optional
import numpy as np

from fingerscan.config import DEFAULT_FEATURES, FeatureSettings
from fingerscan.exceptions import ExtractionError
from fingerscan.logger import get_logger
from fingerscan.models import FeatureVector, RasterBuffer
from fingerscan.preprocessing import resize_longest, sobel_gradients, to_gray_float

logger = get_logger("extractor")


# ---------------------------------------------------------------------------
# Helpers


def l2_normalize(vector: np.ndarray) -> np.ndarray:
    """Scale to unit Euclidean norm; zero vectors are returned unchanged."""
    norm = float(np.linalg.norm(vector))
    if norm == 0.0 or not math.isfinite(norm):
        return np.zeros_like(vector, dtype=np.float64)
    return vector.astype(np.float64) / norm


def _circular_smooth(hist: np.ndarray, kernel) -> np.ndarray:
    left, centre, right = kernel
    return left * np.roll(hist, 1) + centre * hist + right * np.roll(hist, -1)


# ---------------------------------------------------------------------------
# Sub-vectors


def orientation_histogram(gray: np.ndarray, settings: FeatureSettings = None) -> np.ndarray:
    """Compute the normalized ridge orientation histogram.

    Gradient angles are folded to [0, pi) because ridge direction is undirected.
    Pixels with gradient magnitude below ``settings.min_gradient`` are skipped.

    Args:
        gray: Grayscale image (float, 0-255)
        settings: FeatureSettings (uses defaults if None)

    Returns:
        Histogram of length ``orientation_bins`` with unit L2 norm (all-zero if
        the image has no gradient)
    """
    if settings is None:
        settings = DEFAULT_FEATURES

    bins = settings.orientation_bins
    if gray.shape[0] < 3 or gray.shape[1] < 3:
        return np.zeros(bins, dtype=np.float64)

    gx, gy = sobel_gradients(gray)
    magnitude = np.hypot(gx, gy)
    valid = magnitude >= max(settings.min_gradient, np.finfo(np.float64).tiny)
    if not np.any(valid):
        return np.zeros(bins, dtype=np.float64)

    angles = np.mod(np.arctan2(gy[valid], gx[valid]), math.pi)
    indices = np.minimum((angles / math.pi * bins).astype(np.int64), bins - 1)
    weights = magnitude[valid] if settings.magnitude_weighted else None
    hist = np.bincount(indices, weights=weights, minlength=bins).astype(np.float64)

    if settings.smoothing:
        hist = _circular_smooth(hist, settings.smoothing)
    return l2_normalize(hist)


def texture_vector(gray: np.ndarray, settings: FeatureSettings = None) -> np.ndarray:
    """Compute per-patch (mean, std) statistics on a fixed grid.

    The image is split into ``texture_grid`` x ``texture_grid`` patches in
    row-major order; the last row and column absorb the remainder. Intensities
    are normalized to 0-1 and empty patches contribute zeros.

    Args:
        gray: Grayscale image (float, 0-255)
        settings: FeatureSettings (uses defaults if None)

    Returns:
        Vector of length ``2 * texture_grid ** 2`` with unit L2 norm (all-zero
        for an all-black image)
    """
    if settings is None:
        settings = DEFAULT_FEATURES

    grid = settings.texture_grid
    h, w = gray.shape
    ph, pw = h // grid, w // grid
    image = gray / 255.0
    values = np.zeros((grid, grid, 2), dtype=np.float64)

    for row in range(grid):
        y0 = row * ph
        y1 = h if row == grid - 1 else y0 + ph
        for col in range(grid):
            x0 = col * pw
            x1 = w if col == grid - 1 else x0 + pw
            patch = image[y0:y1, x0:x1]
            if patch.size == 0:
                continue
            values[row, col, 0] = patch.mean()
            values[row, col, 1] = patch.std()

    return l2_normalize(values.ravel())


# ---------------------------------------------------------------------------
# Extractor


class FeatureExtractor:
    """Extracts FeatureVectors from enhanced finger images."""

    def __init__(self, settings: Optional[FeatureSettings] = None) -> None:
        self.settings = settings or DEFAULT_FEATURES

    def extract(self, image: RasterBuffer) -> FeatureVector:
        """Extract the orientation histogram and texture vector of an image.

        Args:
            image: Enhanced grayscale crop (any supported layout is accepted)

        Returns:
            FeatureVector with unit-norm (or all-zero) sub-vectors

        Raises:
            ExtractionError: If the image has zero area
        """
        if image.is_empty:
            raise ExtractionError("Cannot extract features from an empty image")

        gray = to_gray_float(image)
        if self.settings.normalize_size is not None:
            gray = resize_longest(gray, self.settings.normalize_size)

        vector = FeatureVector(
            orientation_histogram=orientation_histogram(gray, self.settings),
            texture_vector=texture_vector(gray, self.settings),
        )
        logger.debug(
            f"Extracted features from {image.width}x{image.height} image "
            f"(dominant bin {int(np.argmax(vector.orientation_histogram))})"
        )
        return vector


def extract_features(image: RasterBuffer, settings: FeatureSettings = None) -> FeatureVector:
    """Extract a FeatureVector with the given (or default) settings."""
    return FeatureExtractor(settings).extract(image)
