"""Routes package - API endpoint modules"""

from .analysis_routes import router as analysis_router
from .match_routes import router as match_router

__all__ = ['analysis_router', 'match_router']
