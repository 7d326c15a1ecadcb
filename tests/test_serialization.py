"""Tests for result serialization."""
from __future__ import annotations

import json

import numpy as np
import pytest

from fingerscan.exceptions import InvalidFeatureVectorError
from fingerscan.extractor import FeatureExtractor
from fingerscan.models import FingerDetection, LivenessResult, MatchResult, Rect
from fingerscan.models_serialization import (
    capture_outcome_to_dict, detection_to_dict, feature_vector_from_dict,
    feature_vector_to_dict, liveness_result_to_dict, match_result_to_dict
)
from fingerscan.pipeline import CapturePipeline


def test_feature_vector_survives_json(finger):
    vector = FeatureExtractor().extract(finger)
    restored = feature_vector_from_dict(json.loads(json.dumps(feature_vector_to_dict(vector))))
    assert restored == vector


@pytest.mark.parametrize("data", [
    {'texture_vector': [1.0]},
    {'orientation_histogram': [1.0], 'texture_vector': "abc"},
    {'orientation_histogram': [-1.0, 0.5], 'texture_vector': [1.0]},
])
def test_invalid_feature_data_raises(data):
    with pytest.raises(InvalidFeatureVectorError):
        feature_vector_from_dict(data)


def test_match_result_dict():
    result = MatchResult.from_similarity(0.75, 0.7, 0.8, 0.675)
    data = match_result_to_dict(result)
    assert data['is_match'] is True
    assert data['confidence'] == pytest.approx(0.75)
    assert data['texture_similarity'] == pytest.approx(0.675)


def test_detection_dict_with_and_without_box():
    assert detection_to_dict(FingerDetection(False, 0.1))['bounding_box'] is None
    box = detection_to_dict(FingerDetection(True, 0.8, Rect(1, 2, 3, 4)))['bounding_box']
    assert box == {'x': 1, 'y': 2, 'width': 3, 'height': 4}


def test_liveness_dict_types():
    data = liveness_result_to_dict(LivenessResult(np.float64(0.5), 0.4, 0.3, np.bool_(True), 0.7, 5))
    assert isinstance(data['is_live'], bool)
    assert isinstance(data['motion_score'], float)
    json.dumps(data)


def test_capture_outcome_dict_is_json_ready(finger, spoof_burst, flat_image):
    pipeline = CapturePipeline()
    accepted = capture_outcome_to_dict(pipeline.process_capture(finger, frames=spoof_burst))
    rejected = capture_outcome_to_dict(pipeline.process_capture(flat_image))

    assert accepted['accepted'] is True
    assert accepted['enhancement']['crop'] is not None
    assert accepted['liveness']['frame_count'] == len(spoof_burst)
    assert rejected['enhancement'] is None
    assert rejected['liveness'] is None
    json.dumps(accepted)
    json.dumps(rejected)
