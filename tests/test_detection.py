"""Tests for the rule-based finger presence detector."""
from __future__ import annotations

import numpy as np

from fingerscan.detection import FingerDetector, edge_density, skin_ratio
from fingerscan.models import RasterBuffer, Rect
from tests.fakes import skin_finger_image


class TestCues:
    def test_skin_tone_detected(self):
        assert skin_ratio(skin_finger_image(40, 40)) == 1.0

    def test_grayscale_has_no_skin(self):
        assert skin_ratio(np.full((40, 40), 180, dtype=np.uint8)) == 0.0

    def test_blue_is_not_skin(self):
        blue = np.zeros((40, 40, 3), dtype=np.uint8)
        blue[:, :] = (220, 60, 30)
        assert skin_ratio(blue) == 0.0

    def test_edge_density_of_flat_image(self):
        assert edge_density(np.full((40, 40), 128.0), 0.15) == 0.0

    def test_edge_density_of_checkerboard(self):
        board = (np.indices((40, 40)).sum(axis=0) % 2) * 255.0
        assert edge_density(board, 0.15) == 1.0


class TestFingerDetector:
    def test_skin_frame_detected(self):
        result = FingerDetector().detect(RasterBuffer(skin_finger_image(480, 640)))
        assert result.detected
        assert result.confidence >= 0.35
        assert result.bounding_box == Rect(167, 125, 306, 230)

    def test_flat_grey_frame_not_detected(self, flat_image):
        result = FingerDetector().detect(flat_image)
        assert not result.detected
        assert result.bounding_box is None
        assert result.confidence == 0.0

    def test_empty_frame_not_detected(self, empty_image):
        assert not FingerDetector().detect(empty_image).detected

    def test_box_stays_inside_frame(self):
        image = RasterBuffer(skin_finger_image(100, 100))
        box = FingerDetector().detect(image).bounding_box
        assert box.x >= 0 and box.y >= 0
        assert box.x + box.width <= 100 and box.y + box.height <= 100
