"""
Matching Routes
Probe vs reference comparison. References are uploaded with each request;
the server stores nothing.
"""

from typing import List

from fastapi import APIRouter, File, Form, HTTPException, UploadFile
from pydantic import BaseModel

from .common import read_upload, run_worker
from ..config import MAX_REFERENCES_PER_REQUEST
from ..worker import worker_match
from fingerscan.logger import log_analysis


router = APIRouter(tags=["Matching"])


class MatchScore(BaseModel):
    similarity_score: float
    is_match: bool
    confidence: float
    orientation_similarity: float
    texture_similarity: float


class MatchResponse(BaseModel):
    best: MatchScore
    references: List[MatchScore]


@router.post("/match", response_model=MatchResponse)
async def match(
    probe: UploadFile = File(...),
    references: List[UploadFile] = File(...),
    enhance: bool = Form(True)
):
    """
    Match a probe against the reference images of one identity.

    Form Data:
        - probe: Probe image
        - references: Reference images of the claimed identity
        - enhance: Enhance images before extraction (default true)

    Returns:
        - best: MatchResult with the maximum similarity
        - references: MatchResult per reference, in upload order
    """
    if len(references) > MAX_REFERENCES_PER_REQUEST:
        raise HTTPException(
            status_code=400,
            detail=f"At most {MAX_REFERENCES_PER_REQUEST} references per request"
        )

    probe_content = await read_upload(probe, "probe")
    reference_contents = [
        await read_upload(reference, f"references[{i}]")
        for i, reference in enumerate(references)
    ]

    result = await run_worker("Matching", worker_match, probe_content, reference_contents, enhance)
    best = result['best']

    log_analysis(
        "MATCH",
        "MATCH" if best['is_match'] else "NO_MATCH",
        details={'score': round(best['similarity_score'], 4), 'references': len(reference_contents)}
    )
    return {
        "best": best,
        "references": result['references'],
    }
