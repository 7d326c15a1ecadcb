"""WebServer Configuration

Centralized configuration for the fingerscan analysis server.
All settings can be adjusted here without modifying the source code.

"""

from typing import List

# ============================================================================
# SERVER CONFIGURATION
# ============================================================================

# Network
HOST = "0.0.0.0"
PORT_HTTP = 8080

# CORS
CORS_ORIGINS: List[str] = ["*"]  # Allow all origins (adjust for production)
CORS_ALLOW_CREDENTIALS = False

# Request limits
MAX_UPLOAD_BYTES = 20 * 1024 * 1024  # 20MB per uploaded image
MAX_FRAMES_PER_REQUEST = 30  # Liveness bursts larger than this are rejected
MAX_REFERENCES_PER_REQUEST = 20  # Reference images per match request

# ============================================================================
# PROCESS POOL
# ============================================================================

MAX_WORKERS = 4  # Worker processes for CPU-bound image analysis
USE_PROCESS_POOL = True  # False: run analyses in a thread pool (tests, small hosts)

# ============================================================================
# ANALYSIS DEFAULTS
# ============================================================================

DEFAULT_FPS = 10.0  # Frame rate assumed when liveness frames carry no timestamps
LIVENESS_BLOCKS_CAPTURE = False  # Failed liveness warns instead of rejecting

# ============================================================================
# LOGGING
# ============================================================================

VERBOSE = True  # uvicorn log level "info" instead of "warning"
