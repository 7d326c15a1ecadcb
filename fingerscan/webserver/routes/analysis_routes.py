"""
Capture Analysis Routes
Finger detection, quality, enhancement, feature extraction, liveness and full
capture processing.
"""

from typing import List, Optional

from fastapi import APIRouter, File, Form, HTTPException, UploadFile
from fastapi.responses import Response

from .common import parse_guide, parse_timestamps, read_upload, run_worker
from ..config import DEFAULT_FPS, LIVENESS_BLOCKS_CAPTURE, MAX_FRAMES_PER_REQUEST
from ..worker import (
    worker_assess_quality, worker_detect_finger, worker_enhance,
    worker_extract_features, worker_liveness, worker_process_capture
)
from fingerscan.logger import log_analysis


router = APIRouter(tags=["Capture Analysis"])


@router.post("/quality")
async def assess_quality(image: UploadFile = File(...)):
    """
    Assess capture quality.

    Form Data:
        - image: Raw capture

    Returns:
        - QualityResult fields (sub-scores, overall_score, passed, failures, reasons)
    """
    content = await read_upload(image, "image")
    result = await run_worker("Quality assessment", worker_assess_quality, content)
    quality = result['quality']

    log_analysis(
        "QUALITY",
        "PASSED" if quality['passed'] else "FAILED",
        details={'overall': round(quality['overall_score'], 4), 'failures': quality['failures']}
    )
    return quality


@router.post("/enhance")
async def enhance(
    image: UploadFile = File(...),
    guide_x: Optional[int] = Form(None),
    guide_y: Optional[int] = Form(None),
    guide_width: Optional[int] = Form(None),
    guide_height: Optional[int] = Form(None),
    preview_width: Optional[int] = Form(None),
    preview_height: Optional[int] = Form(None),
    export_size: Optional[int] = Form(None),
    crop: bool = Form(True)
):
    """
    Crop and enhance a capture.

    Form Data:
        - image: Raw capture
        - guide_*/preview_*: Guide rectangle in preview coordinates (optional)
        - export_size: Longer side of the returned image (optional)
        - crop: Crop before enhancing (default true)

    Returns:
        PNG image; headers X-Crop (x,y,width,height) and X-Degraded (true/false)
    """
    guide = parse_guide(guide_x, guide_y, guide_width, guide_height, preview_width, preview_height)
    if export_size is not None and export_size <= 0:
        raise HTTPException(status_code=400, detail="export_size must be positive")

    content = await read_upload(image, "image")
    result = await run_worker("Enhancement", worker_enhance, content, guide, export_size, crop)
    meta = result['enhancement']
    crop_rect = meta['crop']

    log_analysis(
        "ENHANCE",
        "DEGRADED" if meta['degraded'] else "SUCCESS",
        details={'crop': f"{crop_rect['x']},{crop_rect['y']},{crop_rect['width']},{crop_rect['height']}"}
    )
    return Response(
        content=result['png'],
        media_type="image/png",
        headers={
            "X-Crop": f"{crop_rect['x']},{crop_rect['y']},{crop_rect['width']},{crop_rect['height']}",
            "X-Degraded": "true" if meta['degraded'] else "false",
        }
    )


@router.post("/features")
async def extract_features(
    image: UploadFile = File(...),
    enhance: bool = Form(True)
):
    """
    Extract the feature vector of an image.

    Form Data:
        - image: Finger image
        - enhance: Run the enhancement chain first (default true)

    Returns:
        - orientation_histogram, texture_vector
    """
    content = await read_upload(image, "image")
    result = await run_worker("Feature extraction", worker_extract_features, content, enhance)
    return result['features']


@router.post("/liveness")
async def liveness(
    frames: List[UploadFile] = File(...),
    timestamps: Optional[str] = Form(None),
    fps: float = Form(DEFAULT_FPS)
):
    """
    Evaluate liveness over a burst of frames.

    Form Data:
        - frames: Frames in capture order
        - timestamps: Comma-separated capture times in seconds (optional)
        - fps: Frame rate used when timestamps are omitted

    Returns:
        - LivenessResult fields (motion/texture/consistency scores, is_live, confidence)
    """
    if len(frames) > MAX_FRAMES_PER_REQUEST:
        raise HTTPException(
            status_code=400,
            detail=f"At most {MAX_FRAMES_PER_REQUEST} frames per request"
        )
    times = parse_timestamps(timestamps, len(frames), fps)
    contents = [await read_upload(frame, f"frames[{i}]") for i, frame in enumerate(frames)]

    result = await run_worker("Liveness", worker_liveness, contents, times)
    outcome = result['liveness']

    log_analysis(
        "LIVENESS",
        "LIVE" if outcome['is_live'] else "SPOOF",
        details={'confidence': round(outcome['confidence'], 4), 'frames': outcome['frame_count']}
    )
    return outcome


@router.post("/capture")
async def process_capture(
    image: UploadFile = File(...),
    frames: Optional[List[UploadFile]] = File(None),
    timestamps: Optional[str] = Form(None),
    fps: float = Form(DEFAULT_FPS),
    guide_x: Optional[int] = Form(None),
    guide_y: Optional[int] = Form(None),
    guide_width: Optional[int] = Form(None),
    guide_height: Optional[int] = Form(None),
    preview_width: Optional[int] = Form(None),
    preview_height: Optional[int] = Form(None)
):
    """
    Run a capture through the quality gate, enhancement and liveness.

    Form Data:
        - image: Chosen raw capture
        - frames: Burst collected before the capture (optional)
        - timestamps / fps: Frame timing (optional)
        - guide_*/preview_*: Guide rectangle (optional)

    Returns:
        - accepted, quality, enhancement, liveness, warnings
    """
    frames = frames or []
    if len(frames) > MAX_FRAMES_PER_REQUEST:
        raise HTTPException(
            status_code=400,
            detail=f"At most {MAX_FRAMES_PER_REQUEST} frames per request"
        )
    guide = parse_guide(guide_x, guide_y, guide_width, guide_height, preview_width, preview_height)
    times = parse_timestamps(timestamps, len(frames), fps)
    content = await read_upload(image, "image")
    contents = [await read_upload(frame, f"frames[{i}]") for i, frame in enumerate(frames)]

    result = await run_worker(
        "Capture processing", worker_process_capture,
        content, contents, times, guide, LIVENESS_BLOCKS_CAPTURE
    )
    outcome = result['outcome']

    log_analysis(
        "CAPTURE",
        "ACCEPTED" if outcome['accepted'] else "REJECTED",
        details={'quality': round(outcome['quality']['overall_score'], 4), 'warnings': len(outcome['warnings'])}
    )
    return outcome


@router.post("/detect")
async def detect_finger(image: UploadFile = File(...)):
    """
    Detect a finger in the centre of a preview frame.

    Form Data:
        - image: Preview frame (colour frames score skin tone)

    Returns:
        - detected, confidence, bounding_box, skin_score, edge_score, shape_score
    """
    content = await read_upload(image, "image")
    result = await run_worker("Finger detection", worker_detect_finger, content)
    return result['detection']
