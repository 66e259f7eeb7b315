import random

import requests
from fastapi.testclient import TestClient
from starlette.datastructures import UploadFile as StarletteUploadFile

from src.api.app import create_app
from src.api.schemas import DetectionResult
from src.detection.client import DetectionClient
from src.detection.fallback import HeuristicFallback
from conftest import FakeSession, make_image


def upload(client, data, content_type="image/png", filename="photo.png", route="/upload"):
    return client.post(route, files={"image": (filename, data, content_type)})


def uploaded_files(settings):
    if not settings.upload_dir.exists():
        return []
    return list(settings.upload_dir.iterdir())


def test_health_check(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_missing_image(client):
    response = client.post("/upload", data={"note": "no file"})
    assert response.status_code == 400
    assert response.json() == {"error": "No image uploaded"}


def test_rejects_unsupported_type(client, settings):
    response = upload(client, b"GIF89a", content_type="image/gif", filename="a.gif")
    assert response.status_code == 400
    assert response.json() == {"error": "Please upload a valid image file (JPG, PNG, WEBP)"}
    assert uploaded_files(settings) == []


def test_rejects_large_files(client, settings):
    response = upload(client, b"\0" * (10 * 1024 * 1024 + 1))
    assert response.status_code == 413
    assert response.json() == {"error": "File size must be less than 10MB"}
    assert uploaded_files(settings) == []


def test_upload_with_fallback(client, settings):
    response = upload(client, make_image(320, 240))
    assert response.status_code == 200

    body = response.json()
    assert set(body) == {"fakePercentage", "processingTime", "boundingBoxes", "uploadedImage", "analyzedImage"}
    assert 15 <= body["fakePercentage"] <= 85
    assert isinstance(body["processingTime"], int) and body["processingTime"] >= 0
    assert 1 <= len(body["boundingBoxes"]) <= 2
    for box in body["boundingBoxes"]:
        assert box["isFake"] == (box["fakeProbability"] > 50)
        assert box["region"] == "Detected Region"
        assert box["coordinates"]["bottomRight"] == {"x": box["x"] + box["width"], "y": box["y"] + box["height"]}
    assert body["uploadedImage"].startswith("data:image/png;base64,")
    assert body["analyzedImage"].startswith("data:image/png;base64,")
    assert uploaded_files(settings) == []


def test_service_failure_is_transparent(make_client, settings):
    detector = DetectionClient(
        api_key="secret",
        session=FakeSession(error=requests.ConnectionError("service down")),
        fallback=HeuristicFallback(delay=0, rng=random.Random(11), sleep=lambda _: None),
    )
    response = upload(make_client(detector), make_image(), content_type="image/jpeg", filename="p.jpg")
    assert response.status_code == 200
    body = response.json()
    assert 15 <= body["fakePercentage"] <= 85
    assert body["uploadedImage"].startswith("data:image/jpeg;base64,")
    assert uploaded_files(settings) == []


def test_vendor_envelope(client, settings):
    response = upload(client, make_image(), route="/api/detect")
    assert response.status_code == 200

    body = response.json()
    assert body["image"].startswith("data:image/png;base64,")
    entry = body["result"]["data"][0]
    assert 0.15 <= entry["confidence"] <= 0.85
    for box in entry["bounding_boxes"]:
        (x1, y1), (x2, y2) = [(v["x"], v["y"]) for v in box["vertices"]]
        assert x2 > x1 and y2 > y1
        assert 0 <= box["is_deepfake"] < 1
    assert uploaded_files(settings) == []


class RecordingDetector:
    """Stand-in detector that checks the temp file exists while detection runs."""

    def __init__(self, settings, error=None):
        self.settings = settings
        self.error = error
        self.seen = []
        self.labels = []

    def detect(self, image_bytes, mime_type, labels=True):
        self.seen = uploaded_files(self.settings)
        self.labels.append(labels)
        if self.error is not None:
            raise self.error
        return DetectionResult(fake_percentage=42)


def test_temp_file_lives_only_for_the_request(make_client, settings):
    detector = RecordingDetector(settings)
    response = upload(make_client(detector), make_image())
    assert response.status_code == 200
    assert response.json()["fakePercentage"] == 42
    assert response.json()["analyzedImage"] is None
    assert len(detector.seen) == 1
    assert detector.seen[0].suffix == ".png"
    assert uploaded_files(settings) == []


def test_temp_file_removed_when_processing_fails(make_client, settings):
    detector = RecordingDetector(settings, error=RuntimeError("disk on fire"))
    response = upload(make_client(detector), make_image())
    assert response.status_code == 500
    assert response.json() == {"error": "Failed to process image"}
    assert len(detector.seen) == 1
    assert uploaded_files(settings) == []


def test_annotation_failure_everywhere(monkeypatch, client, settings):
    from src.inference import annotate

    def explode(*args, **kwargs):
        raise RuntimeError("annotator crashed")

    monkeypatch.setattr(annotate, "annotate_to_data_uri", explode)
    response = upload(client, make_image())
    assert response.status_code == 500
    assert response.json() == {"error": "Failed to process image"}
    assert uploaded_files(settings) == []


def test_labels_only_on_upload_route(make_client, settings):
    detector = RecordingDetector(settings)
    client = make_client(detector)
    upload(client, make_image())
    upload(client, make_image(), route="/api/detect")
    assert detector.labels == [True, False]


def test_oversized_pixel_count_gets_error_envelope(bomb_png, settings):
    client = TestClient(create_app(settings, detector=DetectionClient(
        api_key=None,
        fallback=HeuristicFallback(delay=0, rng=random.Random(5), sleep=lambda _: None),
    )), raise_server_exceptions=False)
    response = upload(client, bomb_png)
    assert response.status_code == 500
    assert response.json() == {"error": "Failed to process image"}
    assert uploaded_files(settings) == []


def test_declared_oversize_rejected_before_reading(monkeypatch, client, settings):
    reads = []
    original_read = StarletteUploadFile.read

    async def recording_read(self, size=-1):
        reads.append(size)
        return await original_read(self, size)

    monkeypatch.setattr(StarletteUploadFile, "read", recording_read)

    response = upload(client, b"\0" * (10 * 1024 * 1024 + 1))
    assert response.status_code == 413
    assert reads == []

    response = upload(client, make_image())
    assert response.status_code == 200
    assert reads == [10 * 1024 * 1024 + 1]
