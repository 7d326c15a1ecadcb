"""Data structures for fingerscan

This module defines the core data classes shared by every stage of the pipeline
(quality, enhancement, extraction, matching, frames and liveness).
All results are immutable: a stage never mutates an input it did not create.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple
import numpy as np

from fingerscan.exceptions import InvalidImageError


# Sub-score reported when a metric could not be computed
UNDECIDED: float = -1.0


# ---------------------------------------------------------------------------
# Raster data


class RasterBuffer:
    """Immutable 2-D pixel grid with 1, 3 or 4 channels.

    ``uint8`` (and other integer) arrays hold 0-255 intensities, floating arrays hold
    normalized 0-1 intensities. Multi-channel data follows the OpenCV BGR(A) order.
    The array is copied on construction and flagged read-only, so two buffers never
    share memory and no stage can modify another stage's input.

    Args:
        pixels: Array of shape (H, W) or (H, W, C) with C in {1, 3, 4}

    Raises:
        InvalidImageError: If the array has the wrong rank, channel count or dtype,
            or contains non-finite values
    """

    __slots__ = ("_pixels",)

    def __init__(self, pixels) -> None:
        array = np.array(pixels, copy=True)
        if array.ndim == 3 and array.shape[2] == 1:
            array = array[:, :, 0]
        if array.ndim not in (2, 3):
            raise InvalidImageError(f"Raster must be 2-D or 3-D, got shape {array.shape}")
        if array.ndim == 3 and array.shape[2] not in (3, 4):
            raise InvalidImageError(f"Unsupported channel count: {array.shape[2]}")
        if array.dtype == np.bool_ or not np.issubdtype(array.dtype, np.number):
            raise InvalidImageError(f"Unsupported pixel dtype: {array.dtype}")
        if np.issubdtype(array.dtype, np.floating) and array.size and not np.all(np.isfinite(array)):
            raise InvalidImageError("Raster contains non-finite values")
        array.setflags(write=False)
        self._pixels = array

    @property
    def pixels(self) -> np.ndarray:
        """Read-only view of the pixel array."""
        return self._pixels

    @property
    def height(self) -> int:
        return int(self._pixels.shape[0])

    @property
    def width(self) -> int:
        return int(self._pixels.shape[1])

    @property
    def channels(self) -> int:
        return 1 if self._pixels.ndim == 2 else int(self._pixels.shape[2])

    @property
    def area(self) -> int:
        return self.width * self.height

    @property
    def is_empty(self) -> bool:
        return self.area == 0

    @property
    def is_normalized(self) -> bool:
        """True for floating rasters holding 0-1 intensities."""
        return bool(np.issubdtype(self._pixels.dtype, np.floating))

    @property
    def shape(self) -> Tuple[int, ...]:
        return tuple(self._pixels.shape)

    def __repr__(self) -> str:
        return (f"RasterBuffer(width={self.width}, height={self.height}, "
                f"channels={self.channels}, dtype={self._pixels.dtype})")

    def __eq__(self, other) -> bool:
        if not isinstance(other, RasterBuffer):
            return NotImplemented
        return (self._pixels.shape == other._pixels.shape
                and self._pixels.dtype == other._pixels.dtype
                and bool(np.array_equal(self._pixels, other._pixels)))

    __hash__ = None


@dataclass(frozen=True)
class Rect:
    """Axis-aligned integer rectangle (pixels)."""
    x: int
    y: int
    width: int
    height: int

    def __post_init__(self) -> None:
        if self.width < 0 or self.height < 0:
            raise ValueError(f"Rect size must be non-negative, got {self.width}x{self.height}")

    @property
    def area(self) -> int:
        return self.width * self.height

    @property
    def center(self) -> Tuple[float, float]:
        return (self.x + self.width / 2.0, self.y + self.height / 2.0)

    def clamp(self, width: int, height: int) -> "Rect":
        """Intersect with an image of the given size."""
        x0 = min(max(self.x, 0), width)
        y0 = min(max(self.y, 0), height)
        x1 = min(max(self.x + self.width, 0), width)
        y1 = min(max(self.y + self.height, 0), height)
        return Rect(x0, y0, x1 - x0, y1 - y0)

    def as_tuple(self) -> Tuple[int, int, int, int]:
        return (self.x, self.y, self.width, self.height)


@dataclass(frozen=True)
class GuideRegion:
    """On-screen guide rectangle and the size of the preview it was drawn on.

    Attributes:
        rect: Guide rectangle in preview coordinates
        preview_width: Width of the preview surface (pixels)
        preview_height: Height of the preview surface (pixels)
    """
    rect: Rect
    preview_width: int
    preview_height: int

    def __post_init__(self) -> None:
        if self.preview_width <= 0 or self.preview_height <= 0:
            raise ValueError(
                f"Preview size must be positive, got {self.preview_width}x{self.preview_height}"
            )


# ---------------------------------------------------------------------------
# Quality


QUALITY_MESSAGES: Dict[str, str] = {
    "blur": "Image too blurry",
    "illumination": "Low light",
    "coverage": "Partial finger detected",
    "orientation": "Finger misaligned",
    "overall": "Overall quality too low",
}


@dataclass(frozen=True)
class QualityResult:
    """Capture quality of a single raw frame.

    Attributes:
        blur_score: Focus / sharpness score [0.0, 1.0]
        illumination_score: Exposure score [0.0, 1.0]
        coverage_score: Fraction of the frame covered by the finger region [0.0, 1.0]
        orientation_score: Alignment of the finger with the vertical axis [0.0, 1.0]
        overall_score: Weighted composite [0.0, 1.0]
        passed: True only if the composite and every sub-score clear their thresholds
        failures: Names of the checks that failed
    """
    blur_score: float
    illumination_score: float
    coverage_score: float
    orientation_score: float
    overall_score: float
    passed: bool
    failures: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        """Validate score ranges."""
        for name in ("blur_score", "illumination_score", "coverage_score",
                     "orientation_score", "overall_score"):
            value = getattr(self, name)
            if value < 0.0 or value > 1.0:
                raise ValueError(f"{name} must be in [0.0, 1.0], got {value}")

    @property
    def reasons(self) -> Tuple[str, ...]:
        """Human readable message for each failed check."""
        return tuple(QUALITY_MESSAGES[name] for name in self.failures)

    @classmethod
    def from_scores(
        cls,
        blur: float,
        illumination: float,
        coverage: float,
        orientation: float,
        settings=None,
        overall: Optional[float] = None,
    ) -> "QualityResult":
        """Build a result from sub-scores, applying the all-of acceptance gate.

        Args:
            blur: Blur score
            illumination: Illumination score
            coverage: Coverage score
            orientation: Orientation score
            settings: QualitySettings (uses defaults if None)
            overall: Composite score (weighted from the sub-scores if None)

        Returns:
            QualityResult whose ``passed`` is False if any check fails
        """
        from fingerscan.config import DEFAULT_QUALITY

        if settings is None:
            settings = DEFAULT_QUALITY
        scores = {
            "blur": float(np.clip(blur, 0.0, 1.0)),
            "illumination": float(np.clip(illumination, 0.0, 1.0)),
            "coverage": float(np.clip(coverage, 0.0, 1.0)),
            "orientation": float(np.clip(orientation, 0.0, 1.0)),
        }
        if overall is None:
            overall = (settings.weight_blur * scores["blur"]
                       + settings.weight_coverage * scores["coverage"]
                       + settings.weight_illumination * scores["illumination"]
                       + settings.weight_orientation * scores["orientation"])
        overall = float(np.clip(overall, 0.0, 1.0))

        minimums = {
            "blur": settings.min_blur,
            "illumination": settings.min_illumination,
            "coverage": settings.min_coverage,
            "orientation": settings.min_orientation,
        }
        failures = [name for name, value in scores.items() if value < minimums[name]]
        if overall < settings.min_overall:
            failures.append("overall")

        return cls(
            blur_score=scores["blur"],
            illumination_score=scores["illumination"],
            coverage_score=scores["coverage"],
            orientation_score=scores["orientation"],
            overall_score=overall,
            passed=not failures,
            failures=tuple(failures),
        )


# ---------------------------------------------------------------------------
# Enhancement


@dataclass(frozen=True)
class EnhancementResult:
    """Output of the enhancement pipeline.

    Attributes:
        image: Enhanced grayscale crop, or the unmodified input when degraded
        crop: Rectangle of the input that was used
        degraded: True when enhancement failed and the input was passed through
        error: Failure message when degraded
    """
    image: RasterBuffer
    crop: Rect
    degraded: bool = False
    error: Optional[str] = None


# ---------------------------------------------------------------------------
# Features and matching


def _frozen_vector(values) -> np.ndarray:
    array = np.array(values, dtype=np.float64, copy=True).ravel()
    array.setflags(write=False)
    return array


@dataclass(frozen=True, eq=False)
class FeatureVector:
    """Compact similarity descriptor of an enhanced finger image.

    Both sub-vectors have unit Euclidean norm, or are all-zero for degenerate input.

    Attributes:
        orientation_histogram: Ridge orientation distribution over [0, 180) degrees
        texture_vector: Per-patch (mean, std) statistics in row-major patch order
    """
    orientation_histogram: np.ndarray
    texture_vector: np.ndarray

    def __post_init__(self) -> None:
        object.__setattr__(self, "orientation_histogram", _frozen_vector(self.orientation_histogram))
        object.__setattr__(self, "texture_vector", _frozen_vector(self.texture_vector))
        if np.any(self.orientation_histogram < 0):
            raise ValueError("Orientation histogram must be non-negative")

    def __eq__(self, other) -> bool:
        if not isinstance(other, FeatureVector):
            return NotImplemented
        return (np.array_equal(self.orientation_histogram, other.orientation_histogram)
                and np.array_equal(self.texture_vector, other.texture_vector))

    __hash__ = None


@dataclass(frozen=True)
class MatchResult:
    """Similarity decision between a probe and a reference.

    Attributes:
        similarity_score: Weighted cosine similarity [0.0, 1.0]
        is_match: similarity_score >= threshold
        confidence: Same value as similarity_score
        orientation_similarity: Cosine of the orientation histograms
        texture_similarity: Cosine of the texture vectors
    """
    similarity_score: float
    is_match: bool
    confidence: float
    orientation_similarity: float = 0.0
    texture_similarity: float = 0.0

    @classmethod
    def from_similarity(
        cls,
        similarity: float,
        threshold: float,
        orientation_similarity: float = 0.0,
        texture_similarity: float = 0.0,
    ) -> "MatchResult":
        """Apply the closed decision bound ``similarity >= threshold``."""
        similarity = float(np.clip(similarity, 0.0, 1.0))
        return cls(
            similarity_score=similarity,
            is_match=similarity >= threshold,
            confidence=similarity,
            orientation_similarity=float(orientation_similarity),
            texture_similarity=float(texture_similarity),
        )


@dataclass(frozen=True)
class IdentityMatch:
    """Best match of a probe against every reference of one identity."""
    identity: str
    best: MatchResult
    reference_count: int


# ---------------------------------------------------------------------------
# Frames and liveness


@dataclass(frozen=True)
class Frame:
    """Raster tagged with a monotonic capture timestamp (seconds)."""
    image: RasterBuffer
    timestamp: float


@dataclass(frozen=True)
class LivenessResult:
    """Live-versus-reproduction decision over a burst of frames.

    Sub-scores are in [0.0, 1.0], or ``UNDECIDED`` when they could not be computed.

    Attributes:
        motion_score: Natural micro-motion between frames
        texture_score: Skin-like (non periodic, non flat) texture of the last frame
        consistency_score: Plausible frame-to-frame correlation
        is_live: confidence >= liveness threshold
        confidence: Weighted combination [0.0, 1.0]
        frame_count: Number of frames analysed
    """
    motion_score: float
    texture_score: float
    consistency_score: float
    is_live: bool
    confidence: float
    frame_count: int = 0

    @classmethod
    def undecided(cls, frame_count: int = 0, texture_score: float = UNDECIDED) -> "LivenessResult":
        """Result for bursts too short to judge."""
        return cls(
            motion_score=UNDECIDED,
            texture_score=texture_score,
            consistency_score=UNDECIDED,
            is_live=False,
            confidence=0.0,
            frame_count=frame_count,
        )


# ---------------------------------------------------------------------------
# Detection and capture


@dataclass(frozen=True)
class FingerDetection:
    """Rule-based finger presence estimate for one preview frame."""
    detected: bool
    confidence: float
    bounding_box: Optional[Rect] = None
    skin_score: float = 0.0
    edge_score: float = 0.0
    shape_score: float = 0.0


@dataclass(frozen=True)
class CaptureOutcome:
    """Result of running a captured frame through the pipeline.

    Attributes:
        quality: Quality assessment of the raw frame
        enhancement: Enhanced crop, None when the quality gate failed
        liveness: Liveness decision, None when no frames were supplied
        accepted: True when the capture can be used
        warnings: Non-blocking problems (e.g. liveness failure in warn mode)
    """
    quality: QualityResult
    enhancement: Optional[EnhancementResult] = None
    liveness: Optional[LivenessResult] = None
    accepted: bool = False
    warnings: Tuple[str, ...] = field(default_factory=tuple)
