"""
Pipeline Logging System
Provides structured logging to separate files with automatic rotation.

Log Files:
- pipeline.log: Stage measurements and degradations (quality, enhancement, liveness, ...)
- analysis.log: Per-request analysis outcomes (quality, match, liveness results)
- access.log: HTTP requests (IP, endpoint, status, duration)
- error.log: Application errors and exceptions
"""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Dict, Any

from fingerscan.config import LOG_DIR, LOG_MAX_BYTES, LOG_BACKUP_COUNT, VERBOSE


# Log file paths
PIPELINE_LOG = LOG_DIR / "pipeline.log"
ANALYSIS_LOG = LOG_DIR / "analysis.log"
ACCESS_LOG = LOG_DIR / "access.log"
ERROR_LOG = LOG_DIR / "error.log"


# Log formats
DETAILED_FORMAT = '%(asctime)s [%(levelname)s] %(name)s: %(message)s'


def _create_rotating_handler(
    log_file: Path,
    max_bytes: int = LOG_MAX_BYTES,
    backup_count: int = LOG_BACKUP_COUNT,
    formatter_string: Optional[str] = None
) -> RotatingFileHandler:
    """
    Create a rotating file handler.

    Args:
        log_file: Path to the log file
        max_bytes: Max file size before rotation (default 10MB)
        backup_count: Number of backup files to keep (default 5)
        formatter_string: Log format string (default DETAILED_FORMAT)

    Returns:
        Configured RotatingFileHandler
    """
    log_file.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        log_file,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding='utf-8',
        delay=True
    )

    formatter = logging.Formatter(formatter_string or DETAILED_FORMAT)
    handler.setFormatter(formatter)

    return handler


def _get_logger(name: str, log_file: Path, level: int = logging.INFO) -> logging.Logger:
    """
    Get or create a logger with rotating file handler.

    Args:
        name: Logger name
        log_file: Path to log file
        level: Logging level (default INFO)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    # Avoid duplicate handlers
    if logger.handlers:
        return logger

    logger.setLevel(level)
    logger.propagate = False  # Don't propagate to root logger

    logger.addHandler(_create_rotating_handler(log_file))

    if VERBOSE:
        console = logging.StreamHandler()
        console.setFormatter(logging.Formatter(DETAILED_FORMAT))
        logger.addHandler(console)

    return logger


# Create specialized loggers
analysis_logger = _get_logger("fingerscan.analysis", ANALYSIS_LOG)
access_logger = _get_logger("fingerscan.access", ACCESS_LOG)
error_logger = _get_logger("fingerscan.error", ERROR_LOG, level=logging.ERROR)


# Convenience functions

def log_access(
    ip: str,
    method: str,
    endpoint: str,
    status_code: int,
    duration_ms: float
):
    """
    Log HTTP access.

    Args:
        ip: Client IP address
        method: HTTP method (GET, POST, etc.)
        endpoint: Request endpoint
        status_code: HTTP status code
        duration_ms: Request duration in milliseconds
    """
    access_logger.info(
        f"{ip} - {method} {endpoint} - {status_code} - {duration_ms:.2f}ms"
    )


def log_analysis(
    operation: str,
    result: str,
    details: Optional[Dict[str, Any]] = None
):
    """
    Log the outcome of an analysis.

    Args:
        operation: Operation type (QUALITY, ENHANCE, FEATURES, MATCH, LIVENESS)
        result: Operation result (PASSED, FAILED, MATCH, NO_MATCH, LIVE, SPOOF, ...)
        details: Additional details dict (scores, sizes, ...)
    """
    detail_str = ""
    if details:
        detail_parts = [f"{k}={v}" for k, v in details.items()]
        detail_str = f" - {', '.join(detail_parts)}"

    analysis_logger.info(f"{operation} {result}{detail_str}")


def log_error(
    error: Exception,
    context: Optional[str] = None,
    ip: Optional[str] = None
):
    """
    Log application error.

    Args:
        error: Exception object
        context: Context where error occurred (endpoint, function name, etc.)
        ip: Client IP address (optional)
    """
    context_info = f" in {context}" if context else ""
    ip_info = f" ip={ip}" if ip else ""

    error_logger.error(
        f"{type(error).__name__}: {str(error)}{context_info}{ip_info}",
        exc_info=True  # Include stack trace
    )


def log_startup(info: Dict[str, Any]):
    """
    Log server startup information.

    Args:
        info: Startup info dict (host, port, workers, ...)
    """
    access_logger.info("=" * 70)
    access_logger.info("FINGERSCAN SERVER STARTING")
    access_logger.info("=" * 70)

    for key, value in info.items():
        access_logger.info(f"{key}: {value}")

    access_logger.info("=" * 70)


def log_shutdown():
    """Log server shutdown."""
    access_logger.info("=" * 70)
    access_logger.info("FINGERSCAN SERVER SHUTTING DOWN")
    access_logger.info("=" * 70)


def get_logger(name: str) -> logging.Logger:
    """
    Get a pipeline logger (writes to pipeline.log).

    Args:
        name: Logger name, namespaced under ``fingerscan.``

    Returns:
        Logger instance
    """
    return _get_logger(f"fingerscan.{name}", PIPELINE_LOG)
