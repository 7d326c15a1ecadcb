"""
Webserver Package - Fingerprint Capture Analysis
FastAPI-based REST API exposing the capture pipeline, with a worker pool for image analysis.
"""

from .server import app

__all__ = ['app']
