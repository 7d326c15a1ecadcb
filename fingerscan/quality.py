"""Quality assessment module for fingerscan

Scores a raw capture on four independent heuristics and gates acceptance:
- Blur/focus: Laplacian variance with a saturating calibration
- Illumination: histogram mean, spread and clipped mass
- Coverage: fraction of the frame covered by the segmented finger region
- Orientation: alignment of the region's dominant axis with the vertical

A capture passes only if the weighted composite AND every sub-score clear
their thresholds.
"""

from __future__ import annotations
import math
from typing import Callable, Optional
import cv2
import numpy as np

from fingerscan.config import DEFAULT_QUALITY, QualitySettings
from fingerscan.exceptions import InvalidImageError
from fingerscan.logger import get_logger
from fingerscan.models import QualityResult, RasterBuffer
from fingerscan.preprocessing import (
    SegmentationStrategy, downsample_to, edge_density_segmentation,
    laplacian_variance, sobel_gradients, to_gray_float
)

logger = get_logger("quality")


# ---------------------------------------------------------------------------
# Individual metrics


def blur_score(gray: np.ndarray, settings: QualitySettings = None) -> float:
    """Score image sharpness in [0, 1] (higher = sharper).

    The image is downsampled (area interpolation) so its longer side is at most
    ``settings.blur_sample_size``, then the variance of the 4-neighbour Laplacian
    is mapped through a monotonic piecewise-linear calibration.

    Args:
        gray: Grayscale image (float, 0-255)
        settings: QualitySettings (uses defaults if None)

    Returns:
        Blur score in [0.0, 1.0]; strictly non-increasing as the image gets blurrier
    """
    if settings is None:
        settings = DEFAULT_QUALITY

    sample = downsample_to(gray, settings.blur_sample_size)
    variance = laplacian_variance(sample)
    score = float(np.interp(variance, settings.blur_variance_points, settings.blur_score_points))
    logger.debug(f"Laplacian variance {variance:.2f} -> blur score {score:.3f}")
    return score


def _mean_brightness_score(mean: float, settings: QualitySettings) -> float:
    # 1.0 at mid-grey, band_edge_score at the dark/bright limits, 0.0 at black/white
    return float(np.interp(
        mean,
        [0.0, settings.dark_mean, 0.5, settings.bright_mean, 1.0],
        [0.0, settings.band_edge_score, 1.0, settings.band_edge_score, 0.0],
    ))


def illumination_score(gray: np.ndarray, settings: QualitySettings = None) -> float:
    """Score exposure in [0, 1] (higher = better lit).

    Combines a mean-brightness term (peaks at mid-grey, falls off linearly
    towards the dark and bright limits), a spread term (standard deviation
    relative to ``target_std``) and a penalty for the histogram mass clipped
    at the dark or bright end.

    Args:
        gray: Grayscale image (float, 0-255)
        settings: QualitySettings (uses defaults if None)

    Returns:
        Illumination score in [0.0, 1.0]
    """
    if settings is None:
        settings = DEFAULT_QUALITY

    levels = np.clip(gray, 0, 255).astype(np.uint8)
    hist = cv2.calcHist([levels], [0], None, [256], [0, 256]).ravel()
    total = hist.sum()
    if total == 0:
        return 0.0
    hist = hist / total

    bins = np.arange(256, dtype=np.float64) / 255.0
    mean = float((hist * bins).sum())
    std = float(math.sqrt(max((hist * (bins - mean) ** 2).sum(), 0.0)))

    mean_term = _mean_brightness_score(mean, settings)
    spread_term = min(1.0, std / settings.target_std)
    clipped = float(hist[:settings.dark_level + 1].sum() + hist[settings.bright_level:].sum())
    penalty = 1.0 - min(1.0, clipped / settings.max_clipped_fraction)

    score = (settings.mean_weight * mean_term + settings.spread_weight * spread_term) * penalty
    logger.debug(f"Illumination mean={mean:.3f} std={std:.3f} clipped={clipped:.3f} -> {score:.3f}")
    return float(np.clip(score, 0.0, 1.0))


def coverage_score(mask: np.ndarray) -> float:
    """Fraction of the frame covered by the finger region."""
    if mask.size == 0:
        return 0.0
    return float(np.count_nonzero(mask)) / float(mask.size)


def _ridge_direction_score(gray: np.ndarray, settings: QualitySettings) -> float:
    """Orientation from the balance of horizontal vs vertical ridge gradients.

    The outline of a vertical finger produces stronger gradients across the
    finger (x direction) than along it in the central third of the image.
    """
    h, w = gray.shape
    centre = gray[h // 3:h - h // 3, w // 3:w - w // 3] / 255.0
    if centre.shape[0] < 3 or centre.shape[1] < 3:
        return settings.neutral_orientation

    gx, gy = sobel_gradients(centre)
    strong = np.hypot(gx, gy) > settings.orientation_edge_threshold
    if not np.any(strong):
        return settings.neutral_orientation

    mean_gx = float(np.abs(gx[strong]).mean())
    mean_gy = float(np.abs(gy[strong]).mean())
    ratio = mean_gx / mean_gy if mean_gy > 0 else float("inf")

    if ratio >= 1.5:
        return 1.0
    if ratio >= 1.2:
        return 0.8
    if ratio >= 1.0:
        return 0.6
    if ratio >= 0.8:
        return 0.4
    return 0.2


def orientation_score(gray: np.ndarray,
                      mask: np.ndarray,
                      settings: QualitySettings = None) -> float:
    """Score alignment of the finger with the vertical axis in [0, 1].

    The dominant axis of the segmented region is taken from its second central
    moments. Deviations up to ``orientation_tolerance_deg`` score 1.0, falling
    linearly to 0.0 for a horizontal finger. When the region has no usable axis
    (empty, nearly round, or filling the frame) the ridge-gradient balance of
    the image centre is used instead.

    Args:
        gray: Grayscale image (float, 0-255)
        mask: Boolean finger mask of the same shape
        settings: QualitySettings (uses defaults if None)

    Returns:
        Orientation score in [0.0, 1.0]
    """
    if settings is None:
        settings = DEFAULT_QUALITY

    fill = coverage_score(mask)
    if fill == 0.0 or fill > settings.max_fill:
        return _ridge_direction_score(gray, settings)

    moments = cv2.moments(mask.astype(np.uint8), binaryImage=True)
    m00 = moments["m00"]
    mu20 = moments["mu20"] / m00
    mu02 = moments["mu02"] / m00
    mu11 = moments["mu11"] / m00

    half_trace = 0.5 * (mu20 + mu02)
    spread = math.sqrt(max(0.25 * (mu20 - mu02) ** 2 + mu11 ** 2, 0.0))
    major = half_trace + spread
    minor = half_trace - spread
    if minor <= 0:
        elongation = float("inf")
    else:
        elongation = math.sqrt(major / minor)
    if elongation < settings.min_elongation:
        return _ridge_direction_score(gray, settings)

    axis_deg = math.degrees(0.5 * math.atan2(2.0 * mu11, mu20 - mu02))
    deviation = 90.0 - abs(axis_deg)
    tolerance = settings.orientation_tolerance_deg
    if deviation <= tolerance:
        return 1.0
    return float(np.clip(1.0 - (deviation - tolerance) / (90.0 - tolerance), 0.0, 1.0))


# ---------------------------------------------------------------------------
# Assessor


class QualityAssessor:
    """Scores raw captures and decides whether they are usable.

    Attributes:
        settings: Thresholds, weights and calibration
        segmentation: Strategy producing the finger mask for coverage/orientation
    """

    def __init__(
        self,
        settings: Optional[QualitySettings] = None,
        segmentation: Optional[SegmentationStrategy] = None
    ) -> None:
        self.settings = settings or DEFAULT_QUALITY
        self.segmentation = segmentation or edge_density_segmentation

    def _safe(self, name: str, metric: Callable[[], float]) -> float:
        try:
            return float(np.clip(metric(), 0.0, 1.0))
        except Exception as e:
            logger.warning(f"{name} metric failed, scoring 0: {type(e).__name__}: {e}")
            return 0.0

    def assess(self, image: RasterBuffer) -> QualityResult:
        """Assess a raw capture.

        Args:
            image: Raw capture (any supported channel layout)

        Returns:
            QualityResult with sub-scores, composite and pass/fail decision

        Raises:
            InvalidImageError: If the image has zero area
        """
        if image.is_empty:
            raise InvalidImageError("Cannot assess quality of an empty image")

        settings = self.settings
        inputs = {}

        def _gray() -> np.ndarray:
            if "gray" not in inputs:
                inputs["gray"] = to_gray_float(image)
            return inputs["gray"]

        def _region_input() -> np.ndarray:
            if "region" not in inputs:
                inputs["region"] = downsample_to(_gray(), settings.segmentation_sample_size)
            return inputs["region"]

        def _coverage() -> float:
            inputs["mask"] = np.asarray(self.segmentation(_region_input(), settings), dtype=bool)
            return coverage_score(inputs["mask"])

        def _orientation() -> float:
            region_input = _region_input()
            mask = inputs.get("mask")
            if mask is None:
                mask = np.zeros(region_input.shape, dtype=bool)
            return orientation_score(region_input, mask, settings)

        result = QualityResult.from_scores(
            blur=self._safe("blur", lambda: blur_score(_gray(), settings)),
            illumination=self._safe("illumination", lambda: illumination_score(_gray(), settings)),
            coverage=self._safe("coverage", _coverage),
            orientation=self._safe("orientation", _orientation),
            settings=settings,
        )

        logger.info(
            f"Quality {'PASSED' if result.passed else 'FAILED'} overall={result.overall_score:.3f} "
            f"blur={result.blur_score:.3f} illumination={result.illumination_score:.3f} "
            f"coverage={result.coverage_score:.3f} orientation={result.orientation_score:.3f}"
            + (f" failures={','.join(result.failures)}" if result.failures else "")
        )
        return result


def assess_quality(image: RasterBuffer, settings: QualitySettings = None) -> QualityResult:
    """Assess a raw capture with the default segmentation strategy."""
    return QualityAssessor(settings).assess(image)
