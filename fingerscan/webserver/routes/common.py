"""
Shared Route Helpers
Executor dispatch, upload reading and form parsing used by every route module.
"""

import asyncio
from typing import Any, Callable, Dict, Optional

from fastapi import HTTPException, Request, UploadFile

from ..config import MAX_UPLOAD_BYTES
from fingerscan.logger import log_error


# Global reference to the executor pool (set by server.py)
executor = None


def set_executor(pool):
    """Set global executor pool reference."""
    global executor
    executor = pool


def get_client_ip(request: Request) -> str:
    """Extract the client IP address, honouring proxy headers."""
    forwarded = request.headers.get('X-Forwarded-For')
    if forwarded:
        return forwarded.split(',')[0].strip()

    real_ip = request.headers.get('X-Real-IP')
    if real_ip:
        return real_ip

    return request.client.host if request.client else "unknown"


async def read_upload(upload: UploadFile, field: str) -> bytes:
    """Read an uploaded file, enforcing the size limit."""
    content = await upload.read()
    if not content:
        raise HTTPException(status_code=400, detail=f"Empty upload: {field}")
    if len(content) > MAX_UPLOAD_BYTES:
        raise HTTPException(
            status_code=413,
            detail=f"Upload '{field}' exceeds {MAX_UPLOAD_BYTES} bytes"
        )
    return content


async def run_worker(operation: str, fn: Callable[..., Dict[str, Any]], *args) -> Dict[str, Any]:
    """
    Run a worker function in the executor pool.

    Args:
        operation: Operation name (used in error messages and logs)
        fn: Module-level worker function
        *args: Picklable worker arguments

    Returns:
        Worker result dict ('success' is True)

    Raises:
        HTTPException: 400 for invalid input, 500 for analysis failures
    """
    loop = asyncio.get_event_loop()
    result = await loop.run_in_executor(executor, fn, *args)

    if not result['success']:
        status = 400 if result.get('invalid_input') else 500
        if status == 500:
            log_error(RuntimeError(result['error']), context=operation)
        raise HTTPException(
            status_code=status,
            detail=f"{operation} failed: {result['error']}"
        )
    return result


def parse_guide(
    guide_x: Optional[int],
    guide_y: Optional[int],
    guide_width: Optional[int],
    guide_height: Optional[int],
    preview_width: Optional[int],
    preview_height: Optional[int]
) -> Optional[Dict[str, int]]:
    """Build the guide dict from optional form fields (all or none must be given)."""
    values = {
        'x': guide_x,
        'y': guide_y,
        'width': guide_width,
        'height': guide_height,
        'preview_width': preview_width,
        'preview_height': preview_height,
    }
    given = [v is not None for v in values.values()]
    if not any(given):
        return None
    if not all(given):
        raise HTTPException(
            status_code=400,
            detail="Guide requires guide_x, guide_y, guide_width, guide_height, preview_width and preview_height"
        )
    if values['width'] < 0 or values['height'] < 0 or values['preview_width'] <= 0 or values['preview_height'] <= 0:
        raise HTTPException(status_code=400, detail="Guide and preview sizes must be positive")
    return values


def parse_timestamps(raw: Optional[str], count: int, fps: float) -> list:
    """Parse comma-separated timestamps, or space frames evenly at ``fps``."""
    if not raw:
        if fps <= 0:
            raise HTTPException(status_code=400, detail="fps must be positive")
        return [i / fps for i in range(count)]
    try:
        timestamps = [float(t) for t in raw.split(",")]
    except ValueError:
        raise HTTPException(status_code=400, detail="timestamps must be comma-separated numbers")
    if len(timestamps) != count:
        raise HTTPException(
            status_code=400,
            detail=f"Got {len(timestamps)} timestamps for {count} frames"
        )
    return timestamps
