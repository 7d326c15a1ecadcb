"""Finger presence detection for fingerscan

Rule-based detector that decides whether a finger is held in the centre of a
preview frame. A positive detection starts the frame collection window used
for liveness analysis.

Heuristics (centre region only):
- Skin colour ratio in HSV space
- Ridge edge density
- Shape of the edge-dense region (aspect ratio and area)
"""

from __future__ import annotations
from typing import Optional, Tuple
import cv2
import numpy as np

from fingerscan.config import DEFAULT_DETECTION, DEFAULT_QUALITY, DetectionSettings
from fingerscan.logger import get_logger
from fingerscan.models import FingerDetection, RasterBuffer, Rect
from fingerscan.preprocessing import center_region, edge_density_segmentation, to_gray_float

logger = get_logger("detection")


# Skin ranges in OpenCV HSV units (H: 0-180, S/V: 0-255)
SKIN_RANGES: Tuple[Tuple[Tuple[int, int, int], Tuple[int, int, int]], ...] = (
    ((0, 51, 76), (25, 178, 255)),     # light tones: 0-50 deg, S 0.2-0.7, V 0.3-1.0
    ((75, 51, 51), (90, 153, 204)),    # darker tones: 150-180 deg, S 0.2-0.6, V 0.2-0.8
    ((5, 76, 102), (20, 153, 229)),    # medium tones: 10-40 deg, S 0.3-0.6, V 0.4-0.9
)


def skin_ratio(region: np.ndarray) -> float:
    """Fraction of BGR(A) pixels inside the skin colour ranges (0.0 for grayscale)."""
    if region.ndim != 3 or region.size == 0:
        return 0.0
    bgr = region[:, :, :3]
    if bgr.dtype != np.uint8:
        scale = 255.0 if np.issubdtype(bgr.dtype, np.floating) else 1.0
        bgr = np.clip(bgr * scale, 0, 255).astype(np.uint8)
    hsv = cv2.cvtColor(np.ascontiguousarray(bgr), cv2.COLOR_BGR2HSV)
    mask = np.zeros(hsv.shape[:2], dtype=np.uint8)
    for lower, upper in SKIN_RANGES:
        mask |= cv2.inRange(hsv, np.array(lower, np.uint8), np.array(upper, np.uint8))
    return float(np.count_nonzero(mask)) / float(mask.size)


def edge_density(gray: np.ndarray, threshold: float) -> float:
    """Fraction of pixels whose largest 4-neighbour brightness step exceeds ``threshold``."""
    if gray.shape[0] < 3 or gray.shape[1] < 3:
        return 0.0
    image = gray / 255.0
    centre = image[1:-1, 1:-1]
    steps = np.maximum.reduce([
        np.abs(centre - image[1:-1, :-2]),
        np.abs(centre - image[1:-1, 2:]),
        np.abs(centre - image[:-2, 1:-1]),
        np.abs(centre - image[2:, 1:-1]),
    ])
    return float(np.count_nonzero(steps > threshold)) / float(steps.size)


def _band(value: float, good: Tuple[float, float], fair: Tuple[float, float],
          scores: Tuple[float, float, float]) -> float:
    if good[0] <= value <= good[1]:
        return scores[0]
    if fair[0] <= value <= fair[1]:
        return scores[1]
    return scores[2]


def shape_score(region_mask: np.ndarray, image_area: int) -> float:
    """Score the edge-dense region as an upright finger (aspect and area banding)."""
    ys, xs = np.nonzero(region_mask)
    if ys.size == 0 or image_area == 0:
        return 0.0
    height = int(ys.max() - ys.min() + 1)
    width = int(xs.max() - xs.min() + 1)
    aspect = _band(height / float(width), (1.0, 2.5), (0.8, 3.0), (1.0, 0.7, 0.3))
    area = _band(height * width / float(image_area), (0.1, 0.4), (0.05, 0.5), (1.0, 0.7, 0.4))
    return float(np.clip(0.6 * aspect + 0.4 * area, 0.0, 1.0))


class FingerDetector:
    """Decides whether a finger is present in the centre of a frame."""

    def __init__(self, settings: Optional[DetectionSettings] = None) -> None:
        self.settings = settings or DEFAULT_DETECTION

    def detect(self, image: RasterBuffer) -> FingerDetection:
        """Detect a finger in the centre region of a frame.

        Args:
            image: Preview frame (BGR for skin analysis; grayscale scores no skin)

        Returns:
            FingerDetection with the combined confidence and, when detected, the
            centre region expanded by ``box_expansion`` and clamped to the frame
        """
        if image.is_empty:
            return FingerDetection(detected=False, confidence=0.0)

        settings = self.settings
        region, (x, y, rw, rh) = center_region(image.pixels, settings.region_fraction)
        gray = to_gray_float(RasterBuffer(region))

        skin = float(np.clip(skin_ratio(region) / 0.5, 0.0, 1.0))
        edges = float(np.clip(edge_density(gray, settings.edge_threshold) / 0.4, 0.0, 1.0))
        shape = shape_score(edge_density_segmentation(gray, DEFAULT_QUALITY), image.area)

        confidence = float(np.clip(0.4 * skin + 0.4 * edges + 0.2 * shape, 0.0, 1.0))
        detected = confidence >= settings.threshold

        box = None
        if detected:
            dx = int(rw * settings.box_expansion)
            dy = int(rh * settings.box_expansion)
            box = Rect(x - dx, y - dy, rw + 2 * dx, rh + 2 * dy).clamp(image.width, image.height)

        logger.debug(f"Finger detection skin={skin:.2f} edges={edges:.2f} shape={shape:.2f} -> {confidence:.2f}")
        return FingerDetection(
            detected=detected,
            confidence=confidence,
            bounding_box=box,
            skin_score=skin,
            edge_score=edges,
            shape_score=shape,
        )
