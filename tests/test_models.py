"""Tests for the shared data model: rasters, rectangles and result types."""
from __future__ import annotations

import numpy as np
import pytest

from fingerscan.exceptions import InvalidImageError
from fingerscan.models import (
    UNDECIDED, FeatureVector, GuideRegion, LivenessResult, MatchResult,
    QualityResult, RasterBuffer, Rect
)


# ---------- RasterBuffer ----------

class TestRasterBuffer:
    def test_copies_input(self):
        source = np.zeros((4, 5), dtype=np.uint8)
        raster = RasterBuffer(source)
        source[0, 0] = 255
        assert raster.pixels[0, 0] == 0

    def test_pixels_are_read_only(self):
        raster = RasterBuffer(np.zeros((4, 5), dtype=np.uint8))
        with pytest.raises(ValueError):
            raster.pixels[0, 0] = 1

    def test_dimensions(self):
        raster = RasterBuffer(np.zeros((4, 5, 3), dtype=np.uint8))
        assert (raster.height, raster.width, raster.channels) == (4, 5, 3)
        assert raster.area == 20
        assert not raster.is_empty

    def test_single_channel_axis_is_squeezed(self):
        raster = RasterBuffer(np.zeros((4, 5, 1), dtype=np.uint8))
        assert raster.channels == 1
        assert raster.shape == (4, 5)

    def test_zero_area_is_empty(self):
        assert RasterBuffer(np.zeros((0, 7), dtype=np.uint8)).is_empty

    def test_float_raster_is_normalized(self):
        assert RasterBuffer(np.zeros((2, 2), dtype=np.float32)).is_normalized
        assert not RasterBuffer(np.zeros((2, 2), dtype=np.uint8)).is_normalized

    @pytest.mark.parametrize("pixels", [
        np.zeros((2, 2, 2), dtype=np.uint8),
        np.zeros((2, 2, 3, 1), dtype=np.uint8),
        np.zeros(5, dtype=np.uint8),
        np.zeros((2, 2), dtype=bool),
        np.array([[np.nan, 0.0]]),
    ])
    def test_rejects_invalid_arrays(self, pixels):
        with pytest.raises(InvalidImageError):
            RasterBuffer(pixels)

    def test_equality_compares_pixels(self):
        a = RasterBuffer(np.arange(6, dtype=np.uint8).reshape(2, 3))
        b = RasterBuffer(np.arange(6, dtype=np.uint8).reshape(2, 3))
        c = RasterBuffer(np.zeros((2, 3), dtype=np.uint8))
        assert a == b
        assert a != c


# ---------- Geometry ----------

class TestRect:
    def test_clamp_to_image(self):
        assert Rect(-10, -5, 50, 30).clamp(20, 20) == Rect(0, 0, 20, 20)

    def test_clamp_outside_is_empty(self):
        assert Rect(100, 100, 10, 10).clamp(20, 20).area == 0

    def test_negative_size_rejected(self):
        with pytest.raises(ValueError):
            Rect(0, 0, -1, 5)

    def test_guide_needs_positive_preview(self):
        with pytest.raises(ValueError):
            GuideRegion(Rect(0, 0, 10, 10), 0, 100)


# ---------- Results ----------

class TestQualityResult:
    def test_high_overall_with_low_coverage_fails(self):
        result = QualityResult.from_scores(0.95, 0.95, 0.02, 0.95, overall=0.9)
        assert not result.passed
        assert result.failures == ("coverage",)
        assert result.reasons == ("Partial finger detected",)

    def test_all_checks_clear(self):
        result = QualityResult.from_scores(0.9, 0.9, 0.5, 0.9)
        assert result.passed
        assert result.failures == ()

    def test_composite_uses_weights(self):
        result = QualityResult.from_scores(1.0, 0.0, 0.0, 0.0)
        assert result.overall_score == pytest.approx(0.40)
        assert "overall" in result.failures

    def test_scores_out_of_range_rejected(self):
        with pytest.raises(ValueError):
            QualityResult(1.5, 0.5, 0.5, 0.5, 0.5, False)


class TestMatchResult:
    def test_threshold_is_inclusive(self):
        assert MatchResult.from_similarity(0.700, 0.7).is_match
        assert not MatchResult.from_similarity(0.699, 0.7).is_match

    def test_confidence_equals_similarity(self):
        result = MatchResult.from_similarity(0.83, 0.7)
        assert result.confidence == result.similarity_score

    def test_similarity_is_clipped(self):
        assert MatchResult.from_similarity(-0.4, 0.7).similarity_score == 0.0


class TestFeatureVector:
    def test_vectors_are_read_only(self):
        vector = FeatureVector(np.ones(3), np.ones(4))
        with pytest.raises(ValueError):
            vector.texture_vector[0] = 0.0

    def test_negative_histogram_rejected(self):
        with pytest.raises(ValueError):
            FeatureVector(np.array([-1.0, 0.0]), np.zeros(2))

    def test_equality(self):
        assert FeatureVector([1.0, 0.0], [0.5]) == FeatureVector(np.array([1.0, 0.0]), [0.5])


class TestLivenessResult:
    def test_undecided(self):
        result = LivenessResult.undecided(frame_count=1)
        assert result.motion_score == UNDECIDED
        assert result.consistency_score == UNDECIDED
        assert not result.is_live
        assert result.confidence == 0.0
