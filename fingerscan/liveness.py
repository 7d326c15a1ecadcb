"""Liveness detection module for fingerscan

Distinguishes a live finger from a static reproduction (print, screen) using a
short burst of frames. Three heuristic cues are combined:
- Motion: natural micro-movement between consecutive frames
- Texture: skin-like, non periodic, uncompressed micro texture of the latest frame
- Consistency: frame-to-frame correlation that is neither frozen nor chaotic,
  with some variation of coarse texture between frames

Motion and consistency are measured on native-resolution pixels; only the
texture cue works on an area-downsampled copy of the latest frame.

No trained model is involved; every score is a calibrated heuristic in [0, 1].
"""

from __future__ import annotations
import math
from typing import Callable, List, Optional, Sequence
import numpy as np
from scipy.stats import entropy
from skimage.feature import local_binary_pattern

from fingerscan.config import DEFAULT_LIVENESS, LivenessSettings
from fingerscan.logger import get_logger
from fingerscan.models import UNDECIDED, Frame, LivenessResult
from fingerscan.preprocessing import downsample_to, sobel_gradients, to_gray_float

logger = get_logger("liveness")


# ---------------------------------------------------------------------------
# Frame preparation


def prepare_frames(frames: Sequence[Frame]) -> List[np.ndarray]:
    """Convert frames to grayscale arrays of one common size at native resolution.

    Empty frames are dropped. Frames of different sizes are centre-cropped to
    the smallest width and height in the burst; pixels are never resampled, so
    frame differences keep their native per-pixel magnitude.
    """
    grays = [to_gray_float(frame.image) for frame in frames if not frame.image.is_empty]
    if not grays:
        return []

    height = min(g.shape[0] for g in grays)
    width = min(g.shape[1] for g in grays)
    prepared = []
    for gray in grays:
        y = (gray.shape[0] - height) // 2
        x = (gray.shape[1] - width) // 2
        prepared.append(gray[y:y + height, x:x + width])
    return prepared


def sample_grid(gray: np.ndarray, max_side: int) -> np.ndarray:
    """Every k-th native pixel so the longer side is at most ``max_side``.

    Pixel values are kept as they are (no averaging), so frame differences
    measured on the sample match those of the full frames.
    """
    step = max(1, int(math.ceil(max(gray.shape[:2]) / float(max_side))))
    return np.asarray(gray[::step, ::step], dtype=np.float64)


# ---------------------------------------------------------------------------
# Motion


def motion_score(grays: Sequence[np.ndarray], settings: LivenessSettings = None) -> float:
    """Score natural micro-motion in [0, 1].

    ``grays`` must be at native resolution (or a ``sample_grid`` of it). The
    mean absolute difference of every consecutive pair (0-255 scale) is
    averaged and mapped through a piecewise-linear calibration that is 0 for
    frozen frames, rises through moderate motion and falls again for
    implausibly large changes. Small, very regular differences (a static
    reproduction with sensor noise) are additionally penalized.
    """
    if settings is None:
        settings = DEFAULT_LIVENESS
    if len(grays) < 2:
        return UNDECIDED

    diffs = np.array([np.mean(np.abs(np.subtract(b, a, dtype=np.float64)))
                      for a, b in zip(grays, grays[1:])])
    mean_diff = float(diffs.mean())
    std_diff = float(diffs.std())

    score = float(np.interp(mean_diff, settings.motion_diff_points, settings.motion_score_points))
    if mean_diff < settings.static_mean and std_diff < settings.static_std:
        score *= settings.static_penalty

    logger.debug(f"Motion mean_diff={mean_diff:.2f} std={std_diff:.2f} -> {score:.3f}")
    return score


# ---------------------------------------------------------------------------
# Texture


def lbp_entropy(gray: np.ndarray, settings: LivenessSettings = None) -> float:
    """Normalized Shannon entropy of the LBP code histogram in [0, 1].

    Skin shows many different local binary patterns; printed or displayed
    reproductions repeat a few.
    """
    if settings is None:
        settings = DEFAULT_LIVENESS

    image = np.round(np.clip(gray, 0, 255)).astype(np.uint8)
    codes = local_binary_pattern(image, settings.lbp_points, settings.lbp_radius, method="default")
    n_bins = 2 ** settings.lbp_points
    hist = np.bincount(codes.astype(np.int64).ravel(), minlength=n_bins).astype(np.float64)
    if hist.sum() == 0:
        return 0.0
    return float(entropy(hist, base=2) / settings.lbp_points)


def periodicity_score(gray: np.ndarray, settings: LivenessSettings = None) -> float:
    """Score the absence of periodic (moire / halftone / pixel grid) patterns in [0, 1].

    The peak-to-mean ratio of the FFT magnitude outside the low-frequency disc
    is mapped on a log scale: ``periodicity_ratio_low`` or less scores 1.0,
    ``periodicity_ratio_high`` or more scores 0.0. An image with no energy
    outside the disc (flat) scores 0.0.
    """
    if settings is None:
        settings = DEFAULT_LIVENESS

    h, w = gray.shape
    spectrum = np.abs(np.fft.fftshift(np.fft.fft2(gray - gray.mean())))
    yy, xx = np.ogrid[:h, :w]
    radius = settings.low_freq_fraction * min(h, w)
    outside = (yy - h // 2) ** 2 + (xx - w // 2) ** 2 > radius ** 2
    band = spectrum[outside]
    if band.size == 0 or float(band.mean()) < 1e-6:
        return 0.0

    ratio = float(band.max()) / float(band.mean())
    low = math.log(settings.periodicity_ratio_low)
    high = math.log(settings.periodicity_ratio_high)
    position = (math.log(max(ratio, 1.0)) - low) / (high - low)
    return float(1.0 - np.clip(position, 0.0, 1.0))


def gradient_irregularity(gray: np.ndarray, settings: LivenessSettings = None) -> float:
    """Coefficient of variation of the gradient magnitude, scaled to [0, 1]."""
    if settings is None:
        settings = DEFAULT_LIVENESS

    gx, gy = sobel_gradients(gray)
    magnitude = np.hypot(gx, gy)
    mean = float(magnitude.mean())
    if mean < 1e-9:
        return 0.0
    cv = float(magnitude.std()) / mean
    return float(np.clip(cv / settings.gradient_cv_target, 0.0, 1.0))


def compression_artifact_score(gray: np.ndarray, settings: LivenessSettings = None) -> float:
    """Score the absence of JPEG block artifacts in [0, 1].

    Compares the mean brightness step across ``compression_block_size`` block
    boundaries with the mean step inside blocks. A ratio of 1 (no grid) scores
    1.0, ``compression_ratio_high`` or more scores 0.0. Steps that only occur
    on block boundaries score 0.0, and so does a flat image. Images smaller
    than one block carry no grid and score 1.0.
    """
    if settings is None:
        settings = DEFAULT_LIVENESS

    block = settings.compression_block_size
    h, w = gray.shape
    dx = np.abs(np.diff(gray, axis=1))
    dy = np.abs(np.diff(gray, axis=0))
    col_edge = np.arange(w - 1) % block == block - 1
    row_edge = np.arange(h - 1) % block == block - 1

    boundary = np.concatenate([dx[:, col_edge].ravel(), dy[row_edge, :].ravel()])
    interior = np.concatenate([dx[:, ~col_edge].ravel(), dy[~row_edge, :].ravel()])
    if boundary.size == 0 or interior.size == 0:
        return 1.0

    boundary_mean = float(boundary.mean())
    interior_mean = float(interior.mean())
    if interior_mean < 1e-6:
        return 0.0

    ratio = boundary_mean / interior_mean
    position = (ratio - 1.0) / (settings.compression_ratio_high - 1.0)
    return float(1.0 - np.clip(position, 0.0, 1.0))


def texture_score(gray: np.ndarray, settings: LivenessSettings = None) -> float:
    """Weighted combination of LBP entropy, periodicity, gradient irregularity
    and absence of compression artifacts."""
    if settings is None:
        settings = DEFAULT_LIVENESS
    if gray.shape[0] < 3 or gray.shape[1] < 3:
        return UNDECIDED

    gray = np.asarray(gray, dtype=np.float64)
    lbp = lbp_entropy(gray, settings)
    periodic = periodicity_score(gray, settings)
    irregular = gradient_irregularity(gray, settings)
    compression = compression_artifact_score(gray, settings)
    score = (settings.weight_lbp * lbp
             + settings.weight_periodicity * periodic
             + settings.weight_gradient * irregular
             + settings.weight_compression * compression)
    logger.debug(
        f"Texture lbp={lbp:.3f} periodicity={periodic:.3f} gradient={irregular:.3f} "
        f"compression={compression:.3f} -> {score:.3f}"
    )
    return float(np.clip(score, 0.0, 1.0))


# ---------------------------------------------------------------------------
# Consistency


def frame_correlation(a: np.ndarray, b: np.ndarray) -> float:
    """Normalized cross-correlation of two equally sized frames.

    Falls back to ``1 - mean|a - b| / 255`` when either frame has no variance.
    """
    da = a - a.mean()
    db = b - b.mean()
    denom = math.sqrt(float((da * da).sum()) * float((db * db).sum()))
    if denom < 1e-9:
        return 1.0 - float(np.mean(np.abs(a - b))) / 255.0
    return float((da * db).sum() / denom)


def _calibrate_correlation(avg: float) -> float:
    # Near-identical frames are as suspicious as uncorrelated ones
    if avg > 0.99:
        n = np.clip((avg - 0.99) / 0.01, 0.0, 1.0)
        return 0.1 + (1.0 - n) * 0.2
    if avg > 0.95:
        n = np.clip((avg - 0.95) / 0.04, 0.0, 1.0)
        return 0.4 + n * 0.3
    if avg > 0.90:
        n = np.clip((avg - 0.90) / 0.05, 0.0, 1.0)
        return 0.8 - n * 0.2
    if avg > 0.85:
        n = np.clip((avg - 0.85) / 0.05, 0.0, 1.0)
        return 0.75 - n * 0.15
    return 0.6 + float(np.clip(avg / 0.85, 0.0, 1.0)) * 0.15


def patch_statistics(gray: np.ndarray, grid: int) -> np.ndarray:
    """(mean, std) of each cell of a ``grid`` x ``grid`` partition, row-major."""
    features = []
    for rows in np.array_split(np.asarray(gray, dtype=np.float64), grid, axis=0):
        for patch in np.array_split(rows, grid, axis=1):
            if patch.size == 0:
                features.extend((0.0, 0.0))
            else:
                features.extend((float(patch.mean()), float(patch.std())))
    return np.array(features)


def _feature_correlation(a: np.ndarray, b: np.ndarray) -> float:
    da = a - a.mean()
    db = b - b.mean()
    denom = math.sqrt(float((da * da).sum()) * float((db * db).sum()))
    if denom < 1e-4:
        return 1.0
    return float(np.clip((da * db).sum() / denom, -1.0, 1.0))


def texture_variation_score(grays: Sequence[np.ndarray], settings: LivenessSettings = None) -> float:
    """Score frame-to-frame variation of coarse texture features in [0, 1].

    A live finger changes slightly between frames (lighting, shadows) even when
    held still; a replayed photo has identical patch statistics in every frame.
    Consecutive feature vectors are correlated and the average is banded:
    near-identical, steady features score 0.2, clear variation scores 0.85.
    """
    if settings is None:
        settings = DEFAULT_LIVENESS
    if len(grays) < 2:
        return UNDECIDED

    features = [patch_statistics(g, settings.variation_grid) for g in grays]
    similarities = np.array([_feature_correlation(a, b) for a, b in zip(features, features[1:])])
    avg = float(similarities.mean())
    std = float(similarities.std())

    if avg > 0.99:
        score = 0.2 if std < 0.005 else 0.35
    elif avg > 0.97:
        score = 0.4 if std < 0.01 else 0.55
    elif avg > 0.94:
        score = 0.65
    elif avg > 0.90:
        score = 0.75
    elif avg > 0.85:
        score = 0.8
    else:
        score = 0.85

    logger.debug(f"Texture variation avg={avg:.4f} std={std:.4f} -> {score:.2f}")
    return score


def consistency_score(grays: Sequence[np.ndarray], settings: LivenessSettings = None) -> float:
    """Score plausible frame-to-frame correlation in [0, 1].

    Average pixel correlation of consecutive pairs goes through a non-monotonic
    calibration: near-perfect correlation (a frozen reproduction) scores low,
    moderately high correlation (a live finger moving slightly) scores highest.
    The result is blended with ``texture_variation_score`` by
    ``weight_texture_variation``.
    """
    if settings is None:
        settings = DEFAULT_LIVENESS
    if len(grays) < 2:
        return UNDECIDED

    correlations = np.array([frame_correlation(a, b) for a, b in zip(grays, grays[1:])])
    avg = float(correlations.mean())
    std = float(correlations.std())

    correlation = float(_calibrate_correlation(avg))
    if avg > 0.99 and std < 0.001:
        correlation *= 0.6
    elif 0.95 < avg < 0.99 and std > 0.01:
        correlation = min(1.0, correlation * 1.1)

    variation = texture_variation_score(grays, settings)
    weight = settings.weight_texture_variation
    score = (1.0 - weight) * correlation + weight * variation

    logger.debug(
        f"Consistency avg={avg:.4f} std={std:.4f} correlation={correlation:.3f} "
        f"variation={variation:.2f} -> {score:.3f}"
    )
    return float(np.clip(score, 0.0, 1.0))


# ---------------------------------------------------------------------------
# Detector


class LivenessDetector:
    """Combines motion, texture and consistency cues into a live/spoof decision."""

    def __init__(self, settings: Optional[LivenessSettings] = None) -> None:
        self.settings = settings or DEFAULT_LIVENESS

    def _safe(self, name: str, metric: Callable[[], float]) -> float:
        try:
            return metric()
        except Exception as e:
            logger.warning(f"{name} cue failed, reporting undecided: {type(e).__name__}: {e}")
            return UNDECIDED

    def evaluate(self, frames: Sequence[Frame]) -> LivenessResult:
        """Evaluate a burst of frames in capture order.

        Args:
            frames: Frames oldest first (e.g. ``FrameBuffer.snapshot()``)

        Returns:
            LivenessResult. With fewer than two usable frames the result is not
            live, has confidence 0.0, and motion/consistency are ``UNDECIDED``.
        """
        settings = self.settings
        grays = self._safe_prepare(frames)

        def _texture() -> float:
            return texture_score(downsample_to(grays[-1], settings.analysis_max_side), settings)

        if len(grays) < 2:
            texture = UNDECIDED
            if grays:
                texture = self._safe("texture", _texture)
            logger.info(f"Liveness UNDECIDED: {len(grays)} usable frame(s)")
            return LivenessResult.undecided(frame_count=len(grays), texture_score=texture)

        samples = [sample_grid(g, settings.sample_max_side) for g in grays]
        motion = self._safe("motion", lambda: motion_score(samples, settings))
        texture = self._safe("texture", _texture)
        consistency = self._safe("consistency", lambda: consistency_score(samples, settings))

        confidence = (settings.weight_motion * max(motion, 0.0)
                      + settings.weight_texture * max(texture, 0.0)
                      + settings.weight_consistency * max(consistency, 0.0))
        confidence = float(np.clip(confidence, 0.0, 1.0))
        is_live = confidence >= settings.threshold

        logger.info(
            f"Liveness {'LIVE' if is_live else 'SPOOF'} confidence={confidence:.3f} "
            f"motion={motion:.3f} texture={texture:.3f} consistency={consistency:.3f} "
            f"frames={len(grays)}"
        )
        return LivenessResult(
            motion_score=motion,
            texture_score=texture,
            consistency_score=consistency,
            is_live=is_live,
            confidence=confidence,
            frame_count=len(grays),
        )

    def _safe_prepare(self, frames: Sequence[Frame]) -> List[np.ndarray]:
        try:
            return prepare_frames(frames)
        except Exception as e:
            logger.warning(f"Frame preparation failed: {type(e).__name__}: {e}")
            return []


def evaluate_liveness(frames: Sequence[Frame], settings: LivenessSettings = None) -> LivenessResult:
    """Evaluate a burst with the given (or default) settings."""
    return LivenessDetector(settings).evaluate(frames)
