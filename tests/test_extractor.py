"""Tests for orientation histogram and texture vector extraction."""
from __future__ import annotations

import numpy as np
import pytest

from fingerscan.config import FeatureSettings
from fingerscan.exceptions import ConfigurationError, ExtractionError
from fingerscan.extractor import FeatureExtractor, orientation_histogram, texture_vector
from fingerscan.models import RasterBuffer
from tests.fakes import ridge_pattern


RAW = FeatureSettings(normalize_size=None)


class TestOrientationHistogram:
    def test_vertical_ridges_peak_at_zero_degrees(self):
        gray = ridge_pattern(128, 128, angle_deg=0.0)
        assert int(np.argmax(orientation_histogram(gray, RAW))) == 0

    def test_horizontal_ridges_peak_at_ninety_degrees(self):
        gray = np.ascontiguousarray(ridge_pattern(128, 128).T)
        assert int(np.argmax(orientation_histogram(gray, RAW))) == 6

    def test_flat_image_gives_zero_vector(self):
        hist = orientation_histogram(np.full((64, 64), 200.0), RAW)
        assert hist.shape == (12,)
        assert not hist.any()


class TestTextureVector:
    def test_length_follows_grid(self):
        assert texture_vector(ridge_pattern(100, 100), RAW).shape == (128,)

    def test_black_image_gives_zero_vector(self):
        assert not texture_vector(np.zeros((64, 64)), RAW).any()

    def test_grid_larger_than_image(self):
        settings = FeatureSettings(texture_grid=8, normalize_size=None)
        vector = texture_vector(np.full((5, 5), 100.0), settings)
        assert np.linalg.norm(vector) == pytest.approx(1.0)


class TestFeatureExtractor:
    def test_sub_vectors_have_unit_norm(self, finger):
        vector = FeatureExtractor().extract(finger)
        assert np.linalg.norm(vector.orientation_histogram) == pytest.approx(1.0)
        assert np.linalg.norm(vector.texture_vector) == pytest.approx(1.0)
        assert np.all(vector.orientation_histogram >= 0)

    def test_resolution_normalized(self):
        small = RasterBuffer(np.round(ridge_pattern(240, 180, period=8.0)).astype(np.uint8))
        large = RasterBuffer(np.round(ridge_pattern(480, 360, period=16.0)).astype(np.uint8))
        a = FeatureExtractor().extract(small)
        b = FeatureExtractor().extract(large)
        assert float(np.dot(a.orientation_histogram, b.orientation_histogram)) > 0.95

    def test_zero_area_raises(self, empty_image):
        with pytest.raises(ExtractionError):
            FeatureExtractor().extract(empty_image)

    def test_black_image_gives_zero_vectors(self):
        vector = FeatureExtractor().extract(RasterBuffer(np.zeros((50, 50), dtype=np.uint8)))
        assert not vector.orientation_histogram.any()
        assert not vector.texture_vector.any()

    def test_invalid_settings_rejected(self):
        with pytest.raises(ConfigurationError):
            FeatureSettings(orientation_bins=1)
