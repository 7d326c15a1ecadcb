"""Tests for the HTTP service (runs the real app with a thread pool)."""
from __future__ import annotations

import cv2
import numpy as np

from tests.fakes import encode, finger_image, grating_image, noise_image, skin_finger_image


def _png(name: str, image: np.ndarray):
    return (name, encode(image), "image/png")


def _frames(images):
    return [("frames", _png(f"f{i}.png", image)) for i, image in enumerate(images)]


GUIDE = {
    'guide_x': "45", 'guide_y': "60", 'guide_width': "270", 'guide_height': "360",
    'preview_width': "360", 'preview_height': "480",
}


class TestHealth:
    def test_health(self, api_client):
        response = api_client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data['status'] == "healthy"
        assert data['pool_ready'] is True
        assert data['process_pool'] is False


class TestQualityEndpoint:
    def test_good_capture_passes(self, api_client):
        response = api_client.post("/api/quality", files={'image': _png("finger.png", finger_image())})
        assert response.status_code == 200
        data = response.json()
        assert data['passed'] is True
        assert data['failures'] == []

    def test_flat_capture_fails_with_reasons(self, api_client):
        flat = np.full((240, 320), 128, dtype=np.uint8)
        data = api_client.post("/api/quality", files={'image': _png("flat.png", flat)}).json()
        assert data['passed'] is False
        assert 'blur' in data['failures']
        assert data['reasons']

    def test_undecodable_upload_is_bad_request(self, api_client):
        response = api_client.post("/api/quality", files={'image': ("x.png", b"not an image", "image/png")})
        assert response.status_code == 400

    def test_empty_upload_is_bad_request(self, api_client):
        response = api_client.post("/api/quality", files={'image': ("x.png", b"", "image/png")})
        assert response.status_code == 400


class TestEnhanceEndpoint:
    def test_returns_png_with_crop_headers(self, api_client):
        response = api_client.post("/api/enhance", files={'image': _png("finger.png", finger_image())})
        assert response.status_code == 200
        assert response.headers['content-type'] == "image/png"
        assert response.headers['x-degraded'] == "false"
        x, y, w, h = (int(v) for v in response.headers['x-crop'].split(","))
        decoded = cv2.imdecode(np.frombuffer(response.content, np.uint8), cv2.IMREAD_UNCHANGED)
        assert decoded.shape == (h, w)

    def test_guide_and_export_size(self, api_client):
        data = dict(GUIDE, export_size="300")
        response = api_client.post("/api/enhance", data=data,
                                   files={'image': _png("finger.png", finger_image())})
        assert response.status_code == 200
        assert response.headers['x-crop'] == "45,60,270,360"
        decoded = cv2.imdecode(np.frombuffer(response.content, np.uint8), cv2.IMREAD_UNCHANGED)
        assert max(decoded.shape[:2]) == 300

    def test_partial_guide_is_bad_request(self, api_client):
        response = api_client.post("/api/enhance", data={'guide_x': "10"},
                                   files={'image': _png("finger.png", finger_image())})
        assert response.status_code == 400

    def test_non_positive_export_size_is_bad_request(self, api_client):
        response = api_client.post("/api/enhance", data={'export_size': "0"},
                                   files={'image': _png("finger.png", finger_image())})
        assert response.status_code == 400


class TestFeaturesEndpoint:
    def test_vector_lengths(self, api_client):
        data = api_client.post("/api/features", files={'image': _png("finger.png", finger_image())}).json()
        assert len(data['orientation_histogram']) == 12
        assert len(data['texture_vector']) == 128


class TestMatchEndpoint:
    def test_same_finger_matches(self, api_client):
        probe = finger_image()
        files = [
            ("probe", _png("probe.png", probe)),
            ("references", _png("r0.png", grating_image(size=200))),
            ("references", _png("r1.png", probe)),
        ]
        response = api_client.post("/api/match", files=files)
        assert response.status_code == 200
        data = response.json()
        assert data['best']['is_match'] is True
        assert data['best']['similarity_score'] >= 0.95
        assert len(data['references']) == 2
        assert data['references'][1]['similarity_score'] >= data['references'][0]['similarity_score']

    def test_references_are_required(self, api_client):
        response = api_client.post("/api/match", files={'probe': _png("probe.png", finger_image())})
        assert response.status_code == 422


class TestLivenessEndpoint:
    def test_static_burst_is_not_live(self, api_client):
        still = noise_image(seed=0)
        response = api_client.post("/api/liveness", files=_frames([still] * 5))
        assert response.status_code == 200
        data = response.json()
        assert data['is_live'] is False
        assert data['frame_count'] == 5
        assert data['motion_score'] < 0.1

    def test_explicit_timestamps(self, api_client):
        images = [noise_image(seed=i) for i in range(3)]
        response = api_client.post("/api/liveness", data={'timestamps': "0.0,0.1,0.2"}, files=_frames(images))
        assert response.status_code == 200
        assert response.json()['frame_count'] == 3

    def test_timestamp_count_mismatch(self, api_client):
        images = [noise_image(seed=i) for i in range(3)]
        response = api_client.post("/api/liveness", data={'timestamps': "0.0,0.1"}, files=_frames(images))
        assert response.status_code == 400

    def test_out_of_order_timestamps(self, api_client):
        images = [noise_image(seed=i) for i in range(3)]
        response = api_client.post("/api/liveness", data={'timestamps': "0.0,0.2,0.1"}, files=_frames(images))
        assert response.status_code == 400
        assert "FrameOrderError" in response.json()['detail']


class TestDetectEndpoint:
    def test_skin_frame(self, api_client):
        data = api_client.post("/api/detect", files={'image': _png("p.png", skin_finger_image())}).json()
        assert data['detected'] is True
        assert data['bounding_box'] == {'x': 167, 'y': 125, 'width': 306, 'height': 230}

    def test_grey_frame(self, api_client):
        grey = np.full((240, 320), 128, dtype=np.uint8)
        data = api_client.post("/api/detect", files={'image': _png("p.png", grey)}).json()
        assert data['detected'] is False
        assert data['bounding_box'] is None


class TestCaptureEndpoint:
    def test_accepted_with_liveness_warning(self, api_client):
        still = noise_image(seed=0)
        files = [("image", _png("capture.png", finger_image()))] + _frames([still] * 4)
        response = api_client.post("/api/capture", data=GUIDE, files=files)
        assert response.status_code == 200
        data = response.json()
        assert data['accepted'] is True
        assert data['liveness']['is_live'] is False
        assert data['enhancement']['crop'] == {'x': 45, 'y': 60, 'width': 270, 'height': 360}
        assert data['warnings']

    def test_without_frames(self, api_client):
        response = api_client.post("/api/capture", files={'image': _png("capture.png", finger_image())})
        assert response.status_code == 200
        data = response.json()
        assert data['accepted'] is True
        assert data['liveness'] is None

    def test_out_of_order_timestamps(self, api_client):
        images = [noise_image(seed=i) for i in range(3)]
        files = [("image", _png("capture.png", finger_image()))] + _frames(images)
        response = api_client.post("/api/capture", data={'timestamps': "0.3,0.2,0.1"}, files=files)
        assert response.status_code == 400
        assert "FrameOrderError" in response.json()['detail']

    def test_poor_capture_rejected(self, api_client):
        flat = np.full((240, 320), 128, dtype=np.uint8)
        data = api_client.post("/api/capture", files={'image': _png("flat.png", flat)}).json()
        assert data['accepted'] is False
        assert data['enhancement'] is None
