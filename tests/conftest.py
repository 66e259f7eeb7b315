import io
import random

import pytest
import requests
from fastapi.testclient import TestClient
from PIL import Image

from src.api.app import create_app
from src.api.config import Settings
from src.detection.client import DetectionClient
from src.detection.fallback import HeuristicFallback


def make_image(width=200, height=160, color="white", fmt="PNG") -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format=fmt)
    return buffer.getvalue()


class FakeResponse:
    def __init__(self, payload=None, status_code=200):
        self.payload = payload
        self.status_code = status_code

    @property
    def ok(self):
        return self.status_code < 400

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        if isinstance(self.payload, Exception):
            raise self.payload
        return self.payload


class FakeSession:
    """Records calls to post() and answers with a canned response or error."""

    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def post(self, url, json=None, headers=None, timeout=None, **kwargs):
        self.calls.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        if self.error is not None:
            raise self.error
        return self.response


@pytest.fixture
def png_bytes():
    return make_image()


@pytest.fixture
def fallback():
    return HeuristicFallback(delay=0, rng=random.Random(7), sleep=lambda _: None)


@pytest.fixture
def settings(tmp_path):
    return Settings(upload_dir=tmp_path / "uploads", fallback_delay=0)


@pytest.fixture
def make_client(settings, fallback):
    def build(detector=None):
        detector = detector or DetectionClient(api_key=None, fallback=fallback, session=FakeSession())
        return TestClient(create_app(settings, detector=detector))

    return build


@pytest.fixture
def client(make_client):
    return make_client()


@pytest.fixture(scope="session")
def bomb_png():
    """A small PNG whose pixel count trips Pillow's decompression-bomb guard."""
    buffer = io.BytesIO()
    Image.new("1", (20000, 10000)).save(buffer, format="PNG")
    return buffer.getvalue()
