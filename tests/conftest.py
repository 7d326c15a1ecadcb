"""Shared test fixtures for fingerscan tests.

Images are synthetic (see tests/fakes.py). The API client runs the server
with a thread pool so no worker processes are spawned.
"""
from __future__ import annotations

import numpy as np
import pytest
from fastapi.testclient import TestClient

from fingerscan.models import RasterBuffer
from tests.fakes import finger_image, noise_burst, static_burst


# ---------- Image fixtures ----------

@pytest.fixture()
def finger() -> RasterBuffer:
    """Well-lit, sharp, upright finger that passes the quality gate."""
    return RasterBuffer(finger_image())


@pytest.fixture()
def rotated_finger() -> RasterBuffer:
    """Same finger shape with ridges at 60 degrees."""
    return RasterBuffer(finger_image(angle_deg=60.0, period=11.0))


@pytest.fixture()
def flat_image() -> RasterBuffer:
    """Uniform grey frame: no focus, no finger."""
    return RasterBuffer(np.full((240, 320), 128, dtype=np.uint8))


@pytest.fixture()
def empty_image() -> RasterBuffer:
    return RasterBuffer(np.zeros((0, 0), dtype=np.uint8))


# ---------- Burst fixtures ----------

@pytest.fixture()
def live_burst():
    return noise_burst()


@pytest.fixture()
def spoof_burst():
    return static_burst()


# ---------- FastAPI test client ----------

@pytest.fixture()
def api_client(monkeypatch):
    """TestClient for the full server app, analyses run in a thread pool."""
    from fingerscan.webserver import server

    monkeypatch.setattr(server, "USE_PROCESS_POOL", False)

    with TestClient(server.app) as c:
        yield c
