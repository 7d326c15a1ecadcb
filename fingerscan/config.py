"""Configuration file for fingerscan

This module contains all configurable parameters for the contactless capture pipeline.

Modify these values to tune the system behavior without changing the core code.
Every stage also accepts a settings dataclass, so callers can override any value
per instance with ``dataclasses.replace(DEFAULT_..., field=value)``.
"""

from __future__ import annotations
from dataclasses import dataclass, field
import math
from pathlib import Path
from typing import Optional, Tuple

from fingerscan.exceptions import ConfigurationError

# ============================================================================
# FILE PATHS AND EXTENSIONS
# ============================================================================

PACKAGE_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = PACKAGE_DIR.parent
IMAGE_EXTENSIONS = {".bmp", ".png", ".jpg", ".jpeg", ".tif", ".tiff"}  # Supported image formats

# ============================================================================
# LOGGING
# ============================================================================

LOG_DIR = PROJECT_ROOT / "logs"
LOG_MAX_BYTES: int = 10 * 1024 * 1024  # 10MB per file
LOG_BACKUP_COUNT: int = 5  # Keep 5 backup files
VERBOSE: bool = False  # Mirror log records to the console

# ============================================================================
# QUALITY ASSESSMENT
# ============================================================================

# Acceptance thresholds (a capture passes only if ALL of them are met)
MIN_BLUR_SCORE: float = 0.45
MIN_ILLUMINATION_SCORE: float = 0.5
MIN_COVERAGE_SCORE: float = 0.08
MIN_ORIENTATION_SCORE: float = 0.4
MIN_OVERALL_QUALITY: float = 0.55

# Composite weights (must sum to 1.0)
QUALITY_WEIGHT_BLUR: float = 0.40
QUALITY_WEIGHT_COVERAGE: float = 0.25
QUALITY_WEIGHT_ILLUMINATION: float = 0.20
QUALITY_WEIGHT_ORIENTATION: float = 0.15

# Blur / focus
BLUR_SAMPLE_SIZE: int = 300  # Longer side after downsampling (pixels)
# Laplacian variance -> score calibration (piecewise linear, saturating)
BLUR_VARIANCE_POINTS: Tuple[float, ...] = (0.0, 40.0, 80.0, 150.0, 300.0, 600.0)
BLUR_SCORE_POINTS: Tuple[float, ...] = (0.0, 0.3, 0.5, 0.7, 0.9, 1.0)

# Illumination
ILLUMINATION_DARK_MEAN: float = 0.2  # Below: linear fall-off to 0
ILLUMINATION_BRIGHT_MEAN: float = 0.8  # Above: linear fall-off to 0
ILLUMINATION_BAND_EDGE_SCORE: float = 0.6  # Mean-brightness score at the dark/bright limits
ILLUMINATION_TARGET_STD: float = 0.15  # Normalized std giving full spread credit
ILLUMINATION_MEAN_WEIGHT: float = 0.6
ILLUMINATION_SPREAD_WEIGHT: float = 0.4
ILLUMINATION_DARK_LEVEL: int = 10  # Histogram bins <= this count as clipped
ILLUMINATION_BRIGHT_LEVEL: int = 245  # Histogram bins >= this count as clipped
ILLUMINATION_MAX_CLIPPED: float = 0.5  # Clipped mass giving a zero score

# Coverage segmentation
SEGMENTATION_SAMPLE_SIZE: int = 400  # Longer side used for region segmentation
SEGMENTATION_BLOCK_SIZE: int = 16  # Block size for block-wise statistics
SEGMENTATION_EDGE_THRESHOLD: float = 0.08  # Normalized morphological gradient for an edge pixel
SEGMENTATION_MIN_EDGE_DENSITY: float = 0.15  # Edge fraction for a foreground block
SEGMENTATION_VARIANCE_THRESHOLD: float = 70.0  # Block variance for foreground (0-255 scale)

# Orientation
ORIENTATION_TOLERANCE_DEG: float = 15.0  # Deviation from vertical still scored 1.0
ORIENTATION_MIN_ELONGATION: float = 1.3  # Eigenvalue ratio needed to trust the region axis
ORIENTATION_MAX_FILL: float = 0.9  # Region filling more than this has no usable axis
ORIENTATION_NEUTRAL_SCORE: float = 0.5  # Score when no structure is measurable
ORIENTATION_EDGE_THRESHOLD: float = 0.1  # Normalized Sobel magnitude for the ridge fallback

# ============================================================================
# ENHANCEMENT
# ============================================================================

GUIDE_ASPECT_RATIO: float = 300.0 / 220.0  # Guide rectangle width / height
FALLBACK_CROP_FRACTION: float = 0.45  # Centered crop width when no guide is known

CLAHE_CLIP_LIMIT: float = 3.0
CLAHE_TILE_GRID: Tuple[int, int] = (8, 8)

BILATERAL_DIAMETER: int = 5
BILATERAL_SIGMA_COLOR: float = 20.0
BILATERAL_SIGMA_SPACE: float = 20.0

UNSHARP_SIGMA: float = 0.6
UNSHARP_AMOUNT: float = 0.6  # result = (1 + amount) * image - amount * blurred

EXPORT_SIZE: int = 500  # Longer side of the fixed interchange format (pixels)

# ============================================================================
# FEATURE EXTRACTION
# ============================================================================

ORIENTATION_BINS: int = 12  # Histogram bins over [0, 180) degrees
ORIENTATION_MIN_GRADIENT: float = 1.0  # Sobel magnitude below which pixels are skipped
ORIENTATION_MAGNITUDE_WEIGHTED: bool = True
ORIENTATION_SMOOTHING: Tuple[float, float, float] = (0.2, 0.6, 0.2)  # Circular 3-tap kernel
TEXTURE_GRID: int = 8  # Patches per side
FEATURE_NORMALIZE_SIZE: int = 500  # Longer side before extraction (None disables)

# ============================================================================
# MATCHING CONFIGURATION
# ============================================================================

# Orientation vs texture weighting (must sum to 1.0)
MATCH_ORIENTATION_WEIGHT: float = 0.6
MATCH_TEXTURE_WEIGHT: float = 0.4
MATCH_THRESHOLD: float = 0.7  # Closed bound: similarity >= threshold is a match

# ============================================================================
# FRAME BUFFER AND LIVENESS
# ============================================================================

FRAME_BUFFER_CAPACITY: int = 10
COLLECTION_WINDOW_SECONDS: float = 1.5

LIVENESS_THRESHOLD: float = 0.6
LIVENESS_WEIGHT_MOTION: float = 0.35
LIVENESS_WEIGHT_TEXTURE: float = 0.35
LIVENESS_WEIGHT_CONSISTENCY: float = 0.30
LIVENESS_ANALYSIS_MAX_SIDE: int = 640  # Texture frame is area-downsampled above this size
LIVENESS_SAMPLE_MAX_SIDE: int = 640  # Motion/consistency sample every k-th native pixel above this size

# Mean absolute frame difference -> motion score (0-255 scale)
MOTION_DIFF_POINTS: Tuple[float, ...] = (0.0, 2.0, 20.0, 40.0, 100.0, 150.0, 255.0)
MOTION_SCORE_POINTS: Tuple[float, ...] = (0.0, 0.1, 0.2, 0.3, 0.7, 0.7, 0.1)
MOTION_STATIC_MEAN: float = 10.0  # Mean diff below this ...
MOTION_STATIC_STD: float = 2.0  # ... with a std below this is a static reproduction
MOTION_STATIC_PENALTY: float = 0.5

# Texture analysis
TEXTURE_LBP_POINTS: int = 8
TEXTURE_LBP_RADIUS: float = 1.0
TEXTURE_WEIGHT_LBP: float = 0.35
TEXTURE_WEIGHT_PERIODICITY: float = 0.35
TEXTURE_WEIGHT_GRADIENT: float = 0.15
TEXTURE_WEIGHT_COMPRESSION: float = 0.15
PERIODICITY_LOW_FREQ_FRACTION: float = 1.0 / 16.0  # Radius of the masked low-frequency disc
PERIODICITY_RATIO_LOW: float = 20.0  # Peak/mean ratio still scored as natural
PERIODICITY_RATIO_HIGH: float = 250.0  # Peak/mean ratio scored as a print/screen pattern
GRADIENT_CV_TARGET: float = 0.6  # Gradient-magnitude variation giving full irregularity credit
COMPRESSION_BLOCK_SIZE: int = 8  # JPEG block grid
COMPRESSION_RATIO_HIGH: float = 1.5  # Boundary/interior step ratio scored as fully blocky

# Consistency analysis
CONSISTENCY_WEIGHT_TEXTURE_VARIATION: float = 0.25  # Share of the texture-variation term
CONSISTENCY_TEXTURE_GRID: int = 4  # Patches per side for per-frame texture features

# ============================================================================
# FINGER DETECTION
# ============================================================================

DETECTION_REGION_FRACTION: float = 0.4  # Centre region analysed for presence
DETECTION_THRESHOLD: float = 0.35
DETECTION_EDGE_THRESHOLD: float = 0.15
DETECTION_BOX_EXPANSION: float = 0.1


# ---------------------------------------------------------------------------
# Settings dataclasses


def _check_unit(errors: list, name: str, value: float) -> None:
    if not (0.0 <= value <= 1.0):
        errors.append(f"{name} must be in [0.0, 1.0] (got {value})")


def _check_weights(errors: list, name: str, *weights: float) -> None:
    total = sum(weights)
    if any(w < 0 for w in weights) or not math.isclose(total, 1.0, abs_tol=1e-6):
        errors.append(f"{name} must be non-negative and sum to 1.0 (got {total})")


def _check_breakpoints(errors: list, name: str, xs: Tuple[float, ...], ys: Tuple[float, ...]) -> None:
    if len(xs) != len(ys) or len(xs) < 2:
        errors.append(f"{name} needs matching breakpoint lists of length >= 2")
    elif any(b <= a for a, b in zip(xs, xs[1:])):
        errors.append(f"{name} breakpoints must be strictly increasing")
    elif any(not (0.0 <= y <= 1.0) for y in ys):
        errors.append(f"{name} scores must be in [0.0, 1.0]")


def _raise_if(errors: list, owner: str) -> None:
    if errors:
        raise ConfigurationError(f"Invalid {owner}:\n" + "\n".join(errors))


@dataclass(frozen=True)
class QualitySettings:
    """Thresholds, weights and calibration of the quality assessor."""
    min_blur: float = MIN_BLUR_SCORE
    min_illumination: float = MIN_ILLUMINATION_SCORE
    min_coverage: float = MIN_COVERAGE_SCORE
    min_orientation: float = MIN_ORIENTATION_SCORE
    min_overall: float = MIN_OVERALL_QUALITY
    weight_blur: float = QUALITY_WEIGHT_BLUR
    weight_coverage: float = QUALITY_WEIGHT_COVERAGE
    weight_illumination: float = QUALITY_WEIGHT_ILLUMINATION
    weight_orientation: float = QUALITY_WEIGHT_ORIENTATION
    blur_sample_size: int = BLUR_SAMPLE_SIZE
    blur_variance_points: Tuple[float, ...] = BLUR_VARIANCE_POINTS
    blur_score_points: Tuple[float, ...] = BLUR_SCORE_POINTS
    dark_mean: float = ILLUMINATION_DARK_MEAN
    bright_mean: float = ILLUMINATION_BRIGHT_MEAN
    band_edge_score: float = ILLUMINATION_BAND_EDGE_SCORE
    target_std: float = ILLUMINATION_TARGET_STD
    mean_weight: float = ILLUMINATION_MEAN_WEIGHT
    spread_weight: float = ILLUMINATION_SPREAD_WEIGHT
    dark_level: int = ILLUMINATION_DARK_LEVEL
    bright_level: int = ILLUMINATION_BRIGHT_LEVEL
    max_clipped_fraction: float = ILLUMINATION_MAX_CLIPPED
    segmentation_sample_size: int = SEGMENTATION_SAMPLE_SIZE
    block_size: int = SEGMENTATION_BLOCK_SIZE
    edge_threshold: float = SEGMENTATION_EDGE_THRESHOLD
    min_edge_density: float = SEGMENTATION_MIN_EDGE_DENSITY
    variance_threshold: float = SEGMENTATION_VARIANCE_THRESHOLD
    orientation_tolerance_deg: float = ORIENTATION_TOLERANCE_DEG
    min_elongation: float = ORIENTATION_MIN_ELONGATION
    max_fill: float = ORIENTATION_MAX_FILL
    neutral_orientation: float = ORIENTATION_NEUTRAL_SCORE
    orientation_edge_threshold: float = ORIENTATION_EDGE_THRESHOLD

    def __post_init__(self) -> None:
        """Validate thresholds and weights."""
        errors = []
        for name in ("min_blur", "min_illumination", "min_coverage", "min_orientation",
                     "min_overall", "dark_mean", "bright_mean", "band_edge_score", "max_clipped_fraction",
                     "edge_threshold", "min_edge_density", "max_fill", "neutral_orientation"):
            _check_unit(errors, name, getattr(self, name))
        _check_weights(errors, "quality weights", self.weight_blur, self.weight_coverage,
                       self.weight_illumination, self.weight_orientation)
        _check_weights(errors, "illumination weights", self.mean_weight, self.spread_weight)
        _check_breakpoints(errors, "blur calibration", self.blur_variance_points, self.blur_score_points)
        if not (0.0 < self.dark_mean < 0.5 < self.bright_mean < 1.0):
            errors.append(f"dark_mean and bright_mean must satisfy 0 < dark < 0.5 < bright < 1 (got {self.dark_mean}, {self.bright_mean})")
        if self.max_clipped_fraction <= 0:
            errors.append("max_clipped_fraction must be positive")
        if self.target_std <= 0:
            errors.append(f"target_std must be positive (got {self.target_std})")
        if self.blur_sample_size <= 0 or self.segmentation_sample_size <= 0:
            errors.append("sample sizes must be positive")
        if self.block_size < 2:
            errors.append(f"block_size must be >= 2 (got {self.block_size})")
        if not (0.0 <= self.orientation_tolerance_deg < 90.0):
            errors.append(f"orientation_tolerance_deg must be in [0, 90) (got {self.orientation_tolerance_deg})")
        if self.min_elongation < 1.0:
            errors.append(f"min_elongation must be >= 1.0 (got {self.min_elongation})")
        _raise_if(errors, "QualitySettings")


@dataclass(frozen=True)
class EnhancementSettings:
    """Parameters of the crop / CLAHE / bilateral / unsharp chain."""
    guide_aspect_ratio: float = GUIDE_ASPECT_RATIO
    fallback_crop_fraction: float = FALLBACK_CROP_FRACTION
    clahe_clip_limit: float = CLAHE_CLIP_LIMIT
    clahe_tile_grid: Tuple[int, int] = CLAHE_TILE_GRID
    bilateral_diameter: int = BILATERAL_DIAMETER
    bilateral_sigma_color: float = BILATERAL_SIGMA_COLOR
    bilateral_sigma_space: float = BILATERAL_SIGMA_SPACE
    unsharp_sigma: float = UNSHARP_SIGMA
    unsharp_amount: float = UNSHARP_AMOUNT
    export_size: int = EXPORT_SIZE

    def __post_init__(self) -> None:
        errors = []
        if self.guide_aspect_ratio <= 0:
            errors.append(f"guide_aspect_ratio must be positive (got {self.guide_aspect_ratio})")
        if not (0.0 < self.fallback_crop_fraction <= 1.0):
            errors.append(f"fallback_crop_fraction must be in (0, 1] (got {self.fallback_crop_fraction})")
        if self.clahe_clip_limit <= 0:
            errors.append(f"clahe_clip_limit must be positive (got {self.clahe_clip_limit})")
        if len(self.clahe_tile_grid) != 2 or min(self.clahe_tile_grid) < 1:
            errors.append(f"clahe_tile_grid must be two positive ints (got {self.clahe_tile_grid})")
        if self.bilateral_diameter < 1:
            errors.append(f"bilateral_diameter must be >= 1 (got {self.bilateral_diameter})")
        if self.unsharp_sigma <= 0 or self.unsharp_amount < 0:
            errors.append("unsharp_sigma must be positive and unsharp_amount non-negative")
        if self.export_size <= 0:
            errors.append(f"export_size must be positive (got {self.export_size})")
        _raise_if(errors, "EnhancementSettings")


@dataclass(frozen=True)
class FeatureSettings:
    """Layout of the feature vector."""
    orientation_bins: int = ORIENTATION_BINS
    min_gradient: float = ORIENTATION_MIN_GRADIENT
    magnitude_weighted: bool = ORIENTATION_MAGNITUDE_WEIGHTED
    smoothing: Tuple[float, ...] = ORIENTATION_SMOOTHING
    texture_grid: int = TEXTURE_GRID
    normalize_size: Optional[int] = FEATURE_NORMALIZE_SIZE

    def __post_init__(self) -> None:
        errors = []
        if self.orientation_bins < 2:
            errors.append(f"orientation_bins must be >= 2 (got {self.orientation_bins})")
        if self.min_gradient < 0:
            errors.append(f"min_gradient must be non-negative (got {self.min_gradient})")
        if self.smoothing and len(self.smoothing) != 3:
            errors.append(f"smoothing must be empty or a 3-tap kernel (got {self.smoothing})")
        if self.texture_grid < 1:
            errors.append(f"texture_grid must be >= 1 (got {self.texture_grid})")
        if self.normalize_size is not None and self.normalize_size <= 0:
            errors.append(f"normalize_size must be positive or None (got {self.normalize_size})")
        _raise_if(errors, "FeatureSettings")

    @property
    def texture_length(self) -> int:
        return self.texture_grid * self.texture_grid * 2


@dataclass(frozen=True)
class MatchSettings:
    """Weights and decision threshold of the matcher."""
    orientation_weight: float = MATCH_ORIENTATION_WEIGHT
    texture_weight: float = MATCH_TEXTURE_WEIGHT
    threshold: float = MATCH_THRESHOLD

    def __post_init__(self) -> None:
        errors = []
        _check_weights(errors, "match weights", self.orientation_weight, self.texture_weight)
        _check_unit(errors, "threshold", self.threshold)
        _raise_if(errors, "MatchSettings")


@dataclass(frozen=True)
class LivenessSettings:
    """Weights, threshold and calibration of the liveness detector."""
    threshold: float = LIVENESS_THRESHOLD
    weight_motion: float = LIVENESS_WEIGHT_MOTION
    weight_texture: float = LIVENESS_WEIGHT_TEXTURE
    weight_consistency: float = LIVENESS_WEIGHT_CONSISTENCY
    analysis_max_side: int = LIVENESS_ANALYSIS_MAX_SIDE
    sample_max_side: int = LIVENESS_SAMPLE_MAX_SIDE
    motion_diff_points: Tuple[float, ...] = MOTION_DIFF_POINTS
    motion_score_points: Tuple[float, ...] = MOTION_SCORE_POINTS
    static_mean: float = MOTION_STATIC_MEAN
    static_std: float = MOTION_STATIC_STD
    static_penalty: float = MOTION_STATIC_PENALTY
    lbp_points: int = TEXTURE_LBP_POINTS
    lbp_radius: float = TEXTURE_LBP_RADIUS
    weight_lbp: float = TEXTURE_WEIGHT_LBP
    weight_periodicity: float = TEXTURE_WEIGHT_PERIODICITY
    weight_gradient: float = TEXTURE_WEIGHT_GRADIENT
    weight_compression: float = TEXTURE_WEIGHT_COMPRESSION
    low_freq_fraction: float = PERIODICITY_LOW_FREQ_FRACTION
    periodicity_ratio_low: float = PERIODICITY_RATIO_LOW
    periodicity_ratio_high: float = PERIODICITY_RATIO_HIGH
    gradient_cv_target: float = GRADIENT_CV_TARGET
    compression_block_size: int = COMPRESSION_BLOCK_SIZE
    compression_ratio_high: float = COMPRESSION_RATIO_HIGH
    weight_texture_variation: float = CONSISTENCY_WEIGHT_TEXTURE_VARIATION
    variation_grid: int = CONSISTENCY_TEXTURE_GRID

    def __post_init__(self) -> None:
        errors = []
        _check_unit(errors, "threshold", self.threshold)
        _check_unit(errors, "static_penalty", self.static_penalty)
        _check_weights(errors, "liveness weights", self.weight_motion,
                       self.weight_texture, self.weight_consistency)
        _check_weights(errors, "texture weights", self.weight_lbp,
                       self.weight_periodicity, self.weight_gradient, self.weight_compression)
        _check_unit(errors, "weight_texture_variation", self.weight_texture_variation)
        _check_breakpoints(errors, "motion calibration", self.motion_diff_points, self.motion_score_points)
        if self.analysis_max_side < 16 or self.sample_max_side < 16:
            errors.append("analysis_max_side and sample_max_side must be >= 16")
        if self.lbp_points < 4 or self.lbp_radius <= 0:
            errors.append("lbp_points must be >= 4 and lbp_radius positive")
        if not (0.0 < self.low_freq_fraction < 0.5):
            errors.append(f"low_freq_fraction must be in (0, 0.5) (got {self.low_freq_fraction})")
        if not (1.0 <= self.periodicity_ratio_low < self.periodicity_ratio_high):
            errors.append("periodicity ratios must satisfy 1 <= low < high")
        if self.gradient_cv_target <= 0:
            errors.append(f"gradient_cv_target must be positive (got {self.gradient_cv_target})")
        if self.compression_block_size < 2 or self.compression_ratio_high <= 1.0:
            errors.append("compression_block_size must be >= 2 and compression_ratio_high > 1")
        if self.variation_grid < 1:
            errors.append(f"variation_grid must be >= 1 (got {self.variation_grid})")
        _raise_if(errors, "LivenessSettings")


@dataclass(frozen=True)
class DetectionSettings:
    """Finger presence detection used to start the collection window."""
    region_fraction: float = DETECTION_REGION_FRACTION
    threshold: float = DETECTION_THRESHOLD
    edge_threshold: float = DETECTION_EDGE_THRESHOLD
    box_expansion: float = DETECTION_BOX_EXPANSION

    def __post_init__(self) -> None:
        errors = []
        if not (0.0 < self.region_fraction <= 1.0):
            errors.append(f"region_fraction must be in (0, 1] (got {self.region_fraction})")
        _check_unit(errors, "threshold", self.threshold)
        _check_unit(errors, "edge_threshold", self.edge_threshold)
        if self.box_expansion < 0:
            errors.append(f"box_expansion must be non-negative (got {self.box_expansion})")
        _raise_if(errors, "DetectionSettings")


@dataclass(frozen=True)
class PipelineSettings:
    """Settings of every stage composed by the capture pipeline."""
    quality: QualitySettings = field(default_factory=QualitySettings)
    enhancement: EnhancementSettings = field(default_factory=EnhancementSettings)
    features: FeatureSettings = field(default_factory=FeatureSettings)
    matching: MatchSettings = field(default_factory=MatchSettings)
    liveness: LivenessSettings = field(default_factory=LivenessSettings)
    detection: DetectionSettings = field(default_factory=DetectionSettings)
    liveness_blocks_capture: bool = False  # Failed liveness warns unless True


# Default settings
DEFAULT_QUALITY = QualitySettings()
DEFAULT_ENHANCEMENT = EnhancementSettings()
DEFAULT_FEATURES = FeatureSettings()
DEFAULT_MATCHING = MatchSettings()
DEFAULT_LIVENESS = LivenessSettings()
DEFAULT_DETECTION = DetectionSettings()

# ============================================================================
# VALIDATION
# ============================================================================

def validate_config():
    """Validate configuration consistency."""
    errors = []

    if FRAME_BUFFER_CAPACITY < 2:
        errors.append(f"FRAME_BUFFER_CAPACITY must be >= 2 (got {FRAME_BUFFER_CAPACITY})")

    if COLLECTION_WINDOW_SECONDS <= 0:
        errors.append(f"COLLECTION_WINDOW_SECONDS must be positive (got {COLLECTION_WINDOW_SECONDS})")

    if LOG_MAX_BYTES <= 0 or LOG_BACKUP_COUNT < 0:
        errors.append("LOG_MAX_BYTES must be positive and LOG_BACKUP_COUNT non-negative")

    if errors:
        raise ConfigurationError("Configuration validation failed:\n" + "\n".join(errors))

# Run validation on import
validate_config()
