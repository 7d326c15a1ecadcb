"""
Analysis Worker Functions for the executor pool
Isolated worker functions for CPU-bound image analysis.

These functions run in separate processes via ProcessPoolExecutor (or in a
thread pool when USE_PROCESS_POOL is disabled). They take and return plain
picklable values: encoded image bytes in, result dicts out. Every function
returns {'success': bool, ..., 'error': Optional[str]} and never raises;
'invalid_input' tells the route whether the failure was caused by the request.
"""

from typing import Any, Dict, List, Optional


def _failure(e: Exception) -> Dict[str, Any]:
    from fingerscan.exceptions import (
        ExtractionError, FrameOrderError, InvalidFeatureVectorError, InvalidImageError
    )

    return {
        'success': False,
        'invalid_input': isinstance(
            e, (InvalidImageError, ExtractionError, InvalidFeatureVectorError, FrameOrderError)
        ),
        'error': f"{type(e).__name__}: {e}",
    }


def _guide_from_dict(guide: Optional[Dict[str, int]]):
    from fingerscan.models import GuideRegion, Rect

    if not guide:
        return None
    return GuideRegion(
        rect=Rect(guide['x'], guide['y'], guide['width'], guide['height']),
        preview_width=guide['preview_width'],
        preview_height=guide['preview_height'],
    )


def worker_assess_quality(image_bytes: bytes) -> Dict[str, Any]:
    """
    Assess the quality of an uploaded capture.

    Args:
        image_bytes: Encoded image (PNG, JPEG, ...)

    Returns:
        Dict with 'success', 'quality' (QualityResult dict) and 'error'
    """
    try:
        from fingerscan.models_serialization import quality_result_to_dict
        from fingerscan.preprocessing import decode_image
        from fingerscan.quality import QualityAssessor

        result = QualityAssessor().assess(decode_image(image_bytes))
        return {'success': True, 'quality': quality_result_to_dict(result), 'error': None}
    except Exception as e:
        return _failure(e)


def worker_enhance(
    image_bytes: bytes,
    guide: Optional[Dict[str, int]] = None,
    export_size: Optional[int] = None,
    crop: bool = True
) -> Dict[str, Any]:
    """
    Crop and enhance an uploaded capture.

    Args:
        image_bytes: Encoded image
        guide: Guide rectangle dict (x, y, width, height, preview_width, preview_height)
        export_size: Longer side of the exported image (no resize if None)
        crop: Crop to the guide / centred region before enhancing

    Returns:
        Dict with 'success', 'png' (bytes), 'enhancement' (metadata dict) and 'error'
    """
    try:
        from fingerscan.enhancement import ImageEnhancer, export_fixed_format
        from fingerscan.models_serialization import enhancement_result_to_dict
        from fingerscan.preprocessing import decode_image, encode_png

        image = decode_image(image_bytes)
        enhancer = ImageEnhancer()
        if crop:
            result = enhancer.enhance(image, _guide_from_dict(guide))
        else:
            result = enhancer.enhance_without_crop(image)
        output = result.image
        if export_size:
            output = export_fixed_format(output, export_size)
        return {
            'success': True,
            'png': encode_png(output),
            'enhancement': enhancement_result_to_dict(result),
            'error': None,
        }
    except Exception as e:
        return _failure(e)


def worker_extract_features(image_bytes: bytes, enhance: bool = True) -> Dict[str, Any]:
    """
    Extract the feature vector of an uploaded image.

    Returns:
        Dict with 'success', 'features' (FeatureVector dict) and 'error'
    """
    try:
        from fingerscan.models_serialization import feature_vector_to_dict
        from fingerscan.pipeline import CapturePipeline
        from fingerscan.preprocessing import decode_image

        vector = CapturePipeline().extract_features(decode_image(image_bytes), enhance=enhance)
        return {'success': True, 'features': feature_vector_to_dict(vector), 'error': None}
    except Exception as e:
        return _failure(e)


def worker_match(probe_bytes: bytes, reference_bytes: List[bytes], enhance: bool = True) -> Dict[str, Any]:
    """
    Match a probe against the references of one identity.

    Args:
        probe_bytes: Encoded probe image
        reference_bytes: Encoded reference images
        enhance: Enhance probe and references before extraction

    Returns:
        Dict with 'success', 'best' (MatchResult dict), 'references' (one dict
        per reference, in upload order) and 'error'
    """
    try:
        from fingerscan.models_serialization import match_result_to_dict
        from fingerscan.pipeline import CapturePipeline
        from fingerscan.preprocessing import decode_image

        pipeline = CapturePipeline()
        probe = pipeline.extract_features(decode_image(probe_bytes), enhance=enhance)
        vectors = [pipeline.extract_features(decode_image(data), enhance=enhance) for data in reference_bytes]
        results = pipeline.matcher.match_all(probe, vectors)
        best = pipeline.matcher.match_best(probe, vectors)
        return {
            'success': True,
            'best': match_result_to_dict(best),
            'references': [match_result_to_dict(r) for r in results],
            'error': None,
        }
    except Exception as e:
        return _failure(e)


def worker_liveness(frame_bytes: List[bytes], timestamps: List[float]) -> Dict[str, Any]:
    """
    Evaluate liveness over a burst of frames.

    Frames go through a FrameBuffer sized to the burst, so out-of-order
    timestamps are rejected as invalid input.

    Returns:
        Dict with 'success', 'liveness' (LivenessResult dict) and 'error'
    """
    try:
        from fingerscan.frames import FrameBuffer
        from fingerscan.liveness import LivenessDetector
        from fingerscan.models import Frame
        from fingerscan.models_serialization import liveness_result_to_dict
        from fingerscan.preprocessing import decode_image

        buffer = FrameBuffer(capacity=max(1, len(frame_bytes)))
        for data, timestamp in zip(frame_bytes, timestamps):
            buffer.push(Frame(decode_image(data), timestamp))

        result = LivenessDetector().evaluate(buffer.snapshot())
        return {'success': True, 'liveness': liveness_result_to_dict(result), 'error': None}
    except Exception as e:
        return _failure(e)


def worker_process_capture(
    image_bytes: bytes,
    frame_bytes: List[bytes],
    timestamps: List[float],
    guide: Optional[Dict[str, int]] = None,
    liveness_blocks_capture: bool = False
) -> Dict[str, Any]:
    """
    Run a capture through quality, enhancement and (if frames are given) liveness.

    Frames go through a FrameBuffer sized to the burst, as in worker_liveness.

    Returns:
        Dict with 'success', 'outcome' (CaptureOutcome dict), 'png' (enhanced
        crop, None when rejected by the quality gate) and 'error'
    """
    try:
        from fingerscan.config import PipelineSettings
        from fingerscan.frames import FrameBuffer
        from fingerscan.models import Frame
        from fingerscan.models_serialization import capture_outcome_to_dict
        from fingerscan.pipeline import CapturePipeline
        from fingerscan.preprocessing import decode_image, encode_png

        pipeline = CapturePipeline(PipelineSettings(liveness_blocks_capture=liveness_blocks_capture))
        frames = None
        if frame_bytes:
            buffer = FrameBuffer(capacity=len(frame_bytes))
            for data, timestamp in zip(frame_bytes, timestamps):
                buffer.push(Frame(decode_image(data), timestamp))
            frames = buffer.snapshot()
        outcome = pipeline.process_capture(decode_image(image_bytes), frames, _guide_from_dict(guide))
        png = encode_png(outcome.enhancement.image) if outcome.enhancement else None
        return {'success': True, 'outcome': capture_outcome_to_dict(outcome), 'png': png, 'error': None}
    except Exception as e:
        return _failure(e)


def worker_detect_finger(image_bytes: bytes) -> Dict[str, Any]:
    """
    Detect whether a finger is held in the centre of a preview frame.

    Returns:
        Dict with 'success', 'detection' (FingerDetection dict) and 'error'
    """
    try:
        from fingerscan.detection import FingerDetector
        from fingerscan.models_serialization import detection_to_dict
        from fingerscan.preprocessing import decode_image

        result = FingerDetector().detect(decode_image(image_bytes))
        return {'success': True, 'detection': detection_to_dict(result), 'error': None}
    except Exception as e:
        return _failure(e)
