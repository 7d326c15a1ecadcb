"""Tests for the capture pipeline, reference sources and the CLI."""
from __future__ import annotations

import json

import cv2
import pytest

from fingerscan.config import PipelineSettings
from fingerscan.exceptions import InvalidImageError, UnknownIdentityError
from fingerscan.pipeline import CapturePipeline, DirectoryReferenceSource, main
from tests.fakes import DictReferenceSource, finger_image, grating_image, skin_finger_image


@pytest.fixture()
def pipeline():
    return CapturePipeline()


@pytest.fixture()
def source(finger, rotated_finger):
    return DictReferenceSource({'alice': [finger], 'bob': [rotated_finger]})


class TestProcessCapture:
    def test_good_capture_without_frames(self, pipeline, finger):
        outcome = pipeline.process_capture(finger)
        assert outcome.accepted
        assert outcome.quality.passed
        assert outcome.enhancement is not None
        assert not outcome.enhancement.degraded
        assert outcome.liveness is None
        assert outcome.warnings == ()

    def test_failed_liveness_warns_by_default(self, pipeline, finger, spoof_burst):
        outcome = pipeline.process_capture(finger, frames=spoof_burst)
        assert outcome.accepted
        assert not outcome.liveness.is_live
        assert any("Liveness" in w for w in outcome.warnings)

    def test_failed_liveness_blocks_when_configured(self, finger, spoof_burst):
        strict = CapturePipeline(PipelineSettings(liveness_blocks_capture=True))
        outcome = strict.process_capture(finger, frames=spoof_burst)
        assert not outcome.accepted
        assert outcome.quality.passed

    def test_poor_quality_is_rejected(self, pipeline, flat_image):
        outcome = pipeline.process_capture(flat_image)
        assert not outcome.accepted
        assert outcome.enhancement is None
        assert outcome.warnings

    def test_zero_area_raises(self, pipeline, empty_image):
        with pytest.raises(InvalidImageError):
            pipeline.process_capture(empty_image)


class TestVerify:
    def test_same_finger_matches(self, pipeline, finger, source):
        result = pipeline.verify(finger, 'alice', source)
        assert result.identity == 'alice'
        assert result.reference_count == 1
        assert result.best.is_match
        assert result.best.similarity_score >= 0.95
        assert source.requested == ['alice']

    def test_unknown_identity_raises(self, pipeline, finger, source):
        with pytest.raises(UnknownIdentityError):
            pipeline.verify(finger, 'carol', source)

    def test_best_of_several_references(self, pipeline, finger, rotated_finger):
        source = DictReferenceSource({'alice': [rotated_finger, finger]})
        result = pipeline.verify(finger, 'alice', source)
        assert result.reference_count == 2
        assert result.best.is_match


class TestIdentify:
    def test_ranks_true_identity_first(self, pipeline, finger, source):
        results = pipeline.identify(finger, ['bob', 'alice'], source)
        assert [r.identity for r in results] == ['alice', 'bob']
        assert results[0].best.similarity_score > results[1].best.similarity_score

    def test_top_k_and_skipped_identities(self, pipeline, finger, source):
        results = pipeline.identify(finger, ['alice', 'carol', 'bob'], source, top_k=1)
        assert len(results) == 1
        assert results[0].identity == 'alice'
        assert 'carol' in source.requested

    def test_match_images_one_result_per_reference(self, pipeline, finger, rotated_finger):
        results = pipeline.match_images(finger, [finger, rotated_finger])
        assert len(results) == 2
        assert results[0].similarity_score > results[1].similarity_score


class TestDirectoryReferenceSource:
    def test_reads_identity_folders(self, tmp_path):
        (tmp_path / 'alice').mkdir()
        (tmp_path / 'bob').mkdir()
        cv2.imwrite(str(tmp_path / 'alice' / 'r1.png'), finger_image())
        cv2.imwrite(str(tmp_path / 'alice' / 'r2.png'), finger_image(angle_deg=10.0))
        (tmp_path / 'alice' / 'notes.txt').write_text("not an image")

        source = DirectoryReferenceSource(tmp_path)
        assert source.identities() == ['alice', 'bob']
        images = source.reference_images_for('alice')
        assert len(images) == 2
        assert images[0].shape == (480, 360)
        assert source.reference_images_for('bob') == []

    def test_missing_identity_and_root(self, tmp_path):
        assert DirectoryReferenceSource(tmp_path).reference_images_for('nobody') == []
        assert DirectoryReferenceSource(tmp_path / 'missing').identities() == []


class TestCommandLine:
    def _write(self, path, image):
        cv2.imwrite(str(path), image)
        return str(path)

    def _gallery(self, tmp_path):
        gallery = tmp_path / 'gallery'
        (gallery / 'alice').mkdir(parents=True)
        (gallery / 'bob').mkdir()
        self._write(gallery / 'alice' / 'ref.png', finger_image())
        self._write(gallery / 'bob' / 'ref.png', finger_image(angle_deg=60.0, period=11.0))
        return str(gallery)

    def test_quality(self, tmp_path, capsys):
        image = self._write(tmp_path / 'finger.png', finger_image())
        assert main(['quality', image]) == 0
        report = json.loads(capsys.readouterr().out)
        assert report['passed'] is True

    def test_enhance_writes_png(self, tmp_path, capsys):
        image = self._write(tmp_path / 'finger.png', finger_image())
        output = tmp_path / 'enhanced.png'
        assert main(['enhance', image, '-o', str(output), '--export-size', '250']) == 0
        report = json.loads(capsys.readouterr().out)
        assert output.exists()
        assert report['degraded'] is False
        assert max(cv2.imread(str(output), cv2.IMREAD_UNCHANGED).shape[:2]) == 250

    def test_features(self, tmp_path, capsys):
        image = self._write(tmp_path / 'finger.png', finger_image())
        assert main(['features', image]) == 0
        report = json.loads(capsys.readouterr().out)
        assert len(report['orientation_histogram']) == 12
        assert len(report['texture_vector']) == 128

    def test_match(self, tmp_path, capsys):
        probe = self._write(tmp_path / 'probe.png', finger_image())
        other = self._write(tmp_path / 'other.png', grating_image(size=200))
        assert main(['match', probe, probe, other]) == 0
        report = json.loads(capsys.readouterr().out)
        assert report['best']['is_match'] is True
        assert len(report['references']) == 2

    def test_detect(self, tmp_path, capsys):
        image = self._write(tmp_path / 'preview.png', skin_finger_image())
        assert main(['detect', image]) == 0
        assert json.loads(capsys.readouterr().out)['detected'] is True

    def test_verify_and_identify(self, tmp_path, capsys):
        gallery = self._gallery(tmp_path)
        probe = self._write(tmp_path / 'probe.png', finger_image())

        assert main(['verify', probe, 'alice', '--gallery', gallery]) == 0
        assert json.loads(capsys.readouterr().out)['is_match'] is True

        assert main(['identify', probe, '--gallery', gallery, '--top-k', '2']) == 0
        ranking = json.loads(capsys.readouterr().out)
        assert [r['identity'] for r in ranking] == ['alice', 'bob']

    def test_verify_unknown_identity(self, tmp_path, capsys):
        gallery = self._gallery(tmp_path)
        probe = self._write(tmp_path / 'probe.png', finger_image())
        assert main(['verify', probe, 'carol', '--gallery', gallery]) == 1
        assert "Error" in capsys.readouterr().out

    def test_no_command_prints_help(self, capsys):
        assert main([]) == 1
