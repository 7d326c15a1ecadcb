"""Serialization of fingerscan results

Converts result dataclasses to plain, JSON-ready dictionaries (for the CLI, the
HTTP service and worker processes) and feature vectors back from them, so that
collaborators can store enrolled vectors in their own persistence layer.
"""

from __future__ import annotations
from typing import Any, Dict, Optional
import numpy as np

from fingerscan.exceptions import InvalidFeatureVectorError
from fingerscan.models import (
    CaptureOutcome, EnhancementResult, FeatureVector, FingerDetection,
    IdentityMatch, LivenessResult, MatchResult, QualityResult, Rect
)


def rect_to_dict(rect: Optional[Rect]) -> Optional[Dict[str, int]]:
    if rect is None:
        return None
    return {'x': rect.x, 'y': rect.y, 'width': rect.width, 'height': rect.height}


def quality_result_to_dict(result: QualityResult) -> Dict[str, Any]:
    return {
        'blur_score': float(result.blur_score),
        'illumination_score': float(result.illumination_score),
        'coverage_score': float(result.coverage_score),
        'orientation_score': float(result.orientation_score),
        'overall_score': float(result.overall_score),
        'passed': bool(result.passed),
        'failures': list(result.failures),
        'reasons': list(result.reasons),
    }


def enhancement_result_to_dict(result: EnhancementResult) -> Dict[str, Any]:
    """Metadata of an enhancement (the image itself is exported separately)."""
    return {
        'width': result.image.width,
        'height': result.image.height,
        'crop': rect_to_dict(result.crop),
        'degraded': bool(result.degraded),
        'error': result.error,
    }


def feature_vector_to_dict(vector: FeatureVector) -> Dict[str, Any]:
    return {
        'orientation_histogram': [float(v) for v in vector.orientation_histogram],
        'texture_vector': [float(v) for v in vector.texture_vector],
    }


def feature_vector_from_dict(data: Dict[str, Any]) -> FeatureVector:
    """Rebuild a FeatureVector from ``feature_vector_to_dict`` output.

    Raises:
        InvalidFeatureVectorError: If a field is missing or not numeric
    """
    try:
        orientation = np.asarray(data['orientation_histogram'], dtype=np.float64)
        texture = np.asarray(data['texture_vector'], dtype=np.float64)
        return FeatureVector(orientation_histogram=orientation, texture_vector=texture)
    except (KeyError, TypeError, ValueError) as e:
        raise InvalidFeatureVectorError(f"Invalid feature vector data: {e}") from e


def match_result_to_dict(result: MatchResult) -> Dict[str, Any]:
    return {
        'similarity_score': float(result.similarity_score),
        'is_match': bool(result.is_match),
        'confidence': float(result.confidence),
        'orientation_similarity': float(result.orientation_similarity),
        'texture_similarity': float(result.texture_similarity),
    }


def identity_match_to_dict(result: IdentityMatch) -> Dict[str, Any]:
    return {
        'identity': result.identity,
        'reference_count': int(result.reference_count),
        **match_result_to_dict(result.best),
    }


def liveness_result_to_dict(result: LivenessResult) -> Dict[str, Any]:
    return {
        'motion_score': float(result.motion_score),
        'texture_score': float(result.texture_score),
        'consistency_score': float(result.consistency_score),
        'is_live': bool(result.is_live),
        'confidence': float(result.confidence),
        'frame_count': int(result.frame_count),
    }


def detection_to_dict(result: FingerDetection) -> Dict[str, Any]:
    return {
        'detected': bool(result.detected),
        'confidence': float(result.confidence),
        'bounding_box': rect_to_dict(result.bounding_box),
        'skin_score': float(result.skin_score),
        'edge_score': float(result.edge_score),
        'shape_score': float(result.shape_score),
    }


def capture_outcome_to_dict(outcome: CaptureOutcome) -> Dict[str, Any]:
    return {
        'accepted': bool(outcome.accepted),
        'quality': quality_result_to_dict(outcome.quality),
        'enhancement': enhancement_result_to_dict(outcome.enhancement) if outcome.enhancement else None,
        'liveness': liveness_result_to_dict(outcome.liveness) if outcome.liveness else None,
        'warnings': list(outcome.warnings),
    }
