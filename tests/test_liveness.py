"""Tests for liveness cues and the live/spoof decision."""
from __future__ import annotations

import numpy as np
import pytest

from fingerscan.config import LivenessSettings
from fingerscan.exceptions import ConfigurationError
from fingerscan.liveness import (
    LivenessDetector, compression_artifact_score, consistency_score, evaluate_liveness,
    lbp_entropy, motion_score, periodicity_score, prepare_frames, sample_grid,
    texture_score, texture_variation_score
)
from fingerscan.models import UNDECIDED, Frame, RasterBuffer
from tests.fakes import grating_image, noise_burst, noise_image


def _grays(frames):
    return prepare_frames(frames)


class TestMotion:
    def test_static_burst_scores_low(self, spoof_burst):
        assert motion_score(_grays(spoof_burst)) < 0.1

    def test_noisy_burst_in_moderate_band(self, live_burst):
        assert 0.3 <= motion_score(_grays(live_burst)) <= 0.7

    def test_single_frame_undecided(self, spoof_burst):
        assert motion_score(_grays(spoof_burst[:1])) == UNDECIDED


class TestTexture:
    def test_grating_scores_below_noise(self):
        grating = grating_image().astype(np.float64)
        noise = noise_image(seed=3).astype(np.float64)
        assert texture_score(grating) < texture_score(noise)

    def test_grating_is_periodic(self):
        assert periodicity_score(grating_image().astype(np.float64)) < 0.2

    def test_noise_is_not_periodic(self):
        assert periodicity_score(noise_image(seed=3).astype(np.float64)) > 0.8

    def test_flat_image_has_no_texture(self):
        flat = np.full((32, 32), 90.0)
        assert periodicity_score(flat) == 0.0
        assert lbp_entropy(flat) == 0.0

    def test_noise_uses_full_lbp_code_range(self):
        # 256 default codes; the 10 uniform codes would cap entropy near 0.42
        normalized = lbp_entropy(noise_image(seed=3).astype(np.float64))
        assert 0.7 < normalized <= 1.0

    def test_score_in_unit_range(self):
        score = texture_score(noise_image(seed=5).astype(np.float64))
        assert 0.0 <= score <= 1.0

    def test_tiny_image_undecided(self):
        assert texture_score(np.zeros((2, 2))) == UNDECIDED


class TestCompressionArtifacts:
    def test_noise_has_no_block_grid(self):
        assert compression_artifact_score(noise_image(seed=4, size=128).astype(np.float64)) > 0.8

    def test_constant_blocks_score_zero(self):
        rng = np.random.default_rng(2)
        blocks = rng.integers(40, 220, size=(8, 8)).astype(np.float64)
        blocky = np.kron(blocks, np.ones((8, 8)))
        assert compression_artifact_score(blocky) == 0.0

    def test_flat_image_scores_zero(self):
        assert compression_artifact_score(np.full((32, 32), 90.0)) == 0.0

    def test_image_smaller_than_a_block(self):
        assert compression_artifact_score(noise_image(seed=1, size=5).astype(np.float64)) == 1.0

    def test_grating_aligned_to_blocks_scores_below_noise(self):
        grating = grating_image().astype(np.float64)
        noise = noise_image(seed=3).astype(np.float64)
        assert compression_artifact_score(grating) < compression_artifact_score(noise)

    def test_block_size_setting(self):
        rng = np.random.default_rng(2)
        blocky = np.kron(rng.integers(40, 220, size=(4, 4)).astype(np.float64), np.ones((16, 16)))
        assert compression_artifact_score(blocky, LivenessSettings(compression_block_size=16)) == 0.0


class TestConsistency:
    def test_frozen_frames_score_low(self, spoof_burst):
        assert consistency_score(_grays(spoof_burst)) < 0.2

    def test_slightly_moving_frames_score_high(self):
        rng = np.random.default_rng(7)
        base = noise_image(seed=1).astype(np.float64)
        grays = [np.clip(base + rng.normal(0, 25, base.shape), 0, 255) for _ in range(4)]
        assert consistency_score(grays) > 0.5

    def test_frozen_texture_variation(self, spoof_burst):
        assert texture_variation_score(_grays(spoof_burst)) == pytest.approx(0.2)

    def test_texture_variation_needs_two_frames(self, spoof_burst):
        assert texture_variation_score(_grays(spoof_burst[:1])) == UNDECIDED

    def test_texture_variation_weight(self, spoof_burst):
        grays = _grays(spoof_burst)
        correlation_only = consistency_score(grays, LivenessSettings(weight_texture_variation=0.0))
        assert correlation_only == pytest.approx(0.06)
        assert consistency_score(grays) == pytest.approx(0.75 * 0.06 + 0.25 * 0.2)


class TestLivenessSettings:
    def test_texture_weights_must_sum_to_one(self):
        with pytest.raises(ConfigurationError):
            LivenessSettings(weight_compression=0.2)

    def test_variation_weight_in_unit_range(self):
        with pytest.raises(ConfigurationError):
            LivenessSettings(weight_texture_variation=1.5)

    def test_compression_ratio_above_one(self):
        with pytest.raises(ConfigurationError):
            LivenessSettings(compression_ratio_high=1.0)


class TestLivenessDetector:
    def test_static_burst_is_not_live(self, spoof_burst):
        result = LivenessDetector().evaluate(spoof_burst)
        assert result.motion_score < 0.1
        assert not result.is_live
        assert result.frame_count == len(spoof_burst)

    def test_noisy_burst_outscores_static_burst(self, live_burst, spoof_burst):
        detector = LivenessDetector()
        assert detector.evaluate(live_burst).confidence > detector.evaluate(spoof_burst).confidence

    def test_confidence_in_unit_range(self, live_burst):
        result = LivenessDetector().evaluate(live_burst)
        assert 0.0 <= result.confidence <= 1.0
        assert 0.3 <= result.motion_score <= 0.7

    def test_single_frame_is_undecided(self, live_burst):
        result = LivenessDetector().evaluate(live_burst[:1])
        assert not result.is_live
        assert result.confidence == 0.0
        assert result.motion_score == UNDECIDED
        assert result.consistency_score == UNDECIDED
        assert 0.0 <= result.texture_score <= 1.0

    def test_no_frames(self):
        result = LivenessDetector().evaluate([])
        assert result.frame_count == 0
        assert result.texture_score == UNDECIDED

    def test_empty_frames_are_ignored(self, live_burst):
        empty = Frame(RasterBuffer(np.zeros((0, 0), dtype=np.uint8)), 10.0)
        result = LivenessDetector().evaluate(list(live_burst) + [empty])
        assert result.frame_count == len(live_burst)

    def test_mixed_frame_sizes(self):
        frames = [
            Frame(RasterBuffer(noise_image(seed=1, size=64)), 0.0),
            Frame(RasterBuffer(noise_image(seed=2, size=80)), 0.1),
        ]
        result = LivenessDetector().evaluate(frames)
        assert result.frame_count == 2
        assert result.motion_score != UNDECIDED

    def test_module_helper_uses_given_settings(self, live_burst):
        strict = LivenessSettings(threshold=1.0)
        assert evaluate_liveness(live_burst) == LivenessDetector().evaluate(live_burst)
        assert not evaluate_liveness(live_burst, strict).is_live

    def test_motion_does_not_depend_on_resolution(self):
        rng = np.random.default_rng(11)
        large = [
            Frame(RasterBuffer((128 + rng.integers(-90, 91, size=(960, 1280))).astype(np.uint8)), i / 10.0)
            for i in range(5)
        ]
        small = LivenessDetector().evaluate(noise_burst(size=64))
        result = LivenessDetector().evaluate(large)
        assert 0.3 <= result.motion_score <= 0.7
        assert result.motion_score == pytest.approx(small.motion_score, abs=0.02)

    def test_frames_keep_native_resolution(self):
        frames = [Frame(RasterBuffer(np.full((1200, 1600), 100, dtype=np.uint8)), float(t)) for t in range(2)]
        grays = prepare_frames(frames)
        assert grays[0].shape == (1200, 1600)
        sample = sample_grid(grays[0], 640)
        assert max(sample.shape) <= 640
        assert np.all(sample == 100.0)
