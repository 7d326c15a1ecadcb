"""
FastAPI WebServer - Main Application
Stateless fingerprint capture analysis server with a worker pool for image processing.
"""

from concurrent.futures import ProcessPoolExecutor, ThreadPoolExecutor
import time

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from .config import (
    HOST, PORT_HTTP, CORS_ORIGINS, CORS_ALLOW_CREDENTIALS,
    MAX_WORKERS, USE_PROCESS_POOL, VERBOSE
)
from .routes import analysis_router, match_router
from .routes import common
from fingerscan import __version__
from fingerscan.logger import log_startup, log_shutdown, log_access, get_logger


# Create FastAPI app
app = FastAPI(
    title="Fingerscan Server",
    version=__version__,
    description="Contactless fingerprint quality, enhancement, matching and liveness analysis"
)


# Global resources
executor = None

logger = get_logger("server")


def _create_executor():
    """Create the worker pool (processes by default, threads when disabled)."""
    if USE_PROCESS_POOL:
        pool = ProcessPoolExecutor(max_workers=MAX_WORKERS)
        logger.info(f"ProcessPoolExecutor initialized ({MAX_WORKERS} workers)")
    else:
        pool = ThreadPoolExecutor(max_workers=MAX_WORKERS)
        logger.info(f"ThreadPoolExecutor initialized ({MAX_WORKERS} workers)")
    return pool


@app.on_event("startup")
async def startup():
    """Initialize server resources on startup."""
    global executor

    logger.info("Starting fingerscan server...")

    executor = _create_executor()
    common.set_executor(executor)

    log_startup({
        'host': HOST,
        'port_http': PORT_HTTP,
        'max_workers': MAX_WORKERS,
        'process_pool': USE_PROCESS_POOL,
        'version': __version__
    })

    logger.info("=" * 70)
    logger.info("FINGERSCAN SERVER READY")
    logger.info("=" * 70)


@app.on_event("shutdown")
async def shutdown():
    """Cleanup resources on shutdown."""
    global executor

    logger.info("Shutting down fingerscan server...")

    log_shutdown()

    if executor:
        executor.shutdown(wait=True)
        executor = None
        common.set_executor(None)
        logger.info("Worker pool shut down")

    logger.info("Shutdown complete")


# Middleware for request logging
@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all HTTP requests."""
    start = time.time()

    ip = common.get_client_ip(request)

    response = await call_next(request)

    duration = (time.time() - start) * 1000

    log_access(
        ip=ip,
        method=request.method,
        endpoint=request.url.path,
        status_code=response.status_code,
        duration_ms=duration
    )

    return response


# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=CORS_ALLOW_CREDENTIALS,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Crop", "X-Degraded"],
)


# Include routers
app.include_router(analysis_router, prefix="/api")
app.include_router(match_router, prefix="/api")


# Health check endpoint
@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": __version__,
        "max_workers": MAX_WORKERS,
        "process_pool": USE_PROCESS_POOL,
        "pool_ready": executor is not None
    }


# Export app
__all__ = ['app']


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "fingerscan.webserver.server:app",
        host=HOST,
        port=PORT_HTTP,
        reload=False,
        log_level="info" if VERBOSE else "warning"
    )
