"""
FastAPI application for deepfake image inspection.

Endpoints:
    GET  /            -> Health check {"status": "ok"}
    POST /upload      -> Score + boxes + original and annotated images (camelCase)
    POST /api/detect  -> Same analysis in the detection vendor's response shape

Usage:
    uvicorn src.api.app:app --host 0.0.0.0 --port 5000
    python -m src.api.app
"""

import logging
import os
import tempfile
import time
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from fastapi import FastAPI, File, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from src.api.config import Settings, load_settings
from src.api.schemas import (
    DetectionResult,
    ErrorResponse,
    HealthResponse,
    Point,
    UploadResponse,
    VendorBox,
    VendorDetectResponse,
    VendorEntry,
    VendorResult,
)
from src.detection.client import DetectionClient
from src.detection.errors import ProcessingError, TooLarge, UploadRejected
from src.detection.fallback import HeuristicFallback
from src.detection.validator import MAX_UPLOAD_BYTES, same_image_type, sniff_content_type, validate_upload
from src.inference.annotate import to_data_uri

logger = logging.getLogger(__name__)

LOG_FORMAT = "[%(levelname)s] %(message)s"

_SUFFIXES = {
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
}


@contextmanager
def stored_upload(data: bytes, upload_dir: Path, content_type: Optional[str] = None):
    """
    Write `data` to a uniquely named file in `upload_dir` and yield its path.

    The file is removed when the block exits, however it exits.
    """
    upload_dir.mkdir(parents=True, exist_ok=True)
    fd, name = tempfile.mkstemp(dir=upload_dir, suffix=_SUFFIXES.get(content_type, ""))
    path = Path(name)
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
        yield path
    finally:
        path.unlink(missing_ok=True)


def upload_envelope(result: DetectionResult, uploaded_image: str) -> UploadResponse:
    return UploadResponse(
        fake_percentage=result.fake_percentage,
        processing_time=result.processing_time,
        bounding_boxes=result.bounding_boxes,
        uploaded_image=uploaded_image,
        analyzed_image=result.analyzed_image,
    )


def vendor_envelope(result: DetectionResult, uploaded_image: str) -> VendorDetectResponse:
    """Re-express a normalized result in the detection vendor's response shape."""
    boxes = [
        VendorBox(
            vertices=[
                Point(x=box.x, y=box.y),
                Point(x=box.x + box.width, y=box.y + box.height),
            ],
            is_deepfake=box.fake_probability / 100,
        )
        for box in result.bounding_boxes
    ]
    entry = VendorEntry(confidence=result.fake_percentage / 100, bounding_boxes=boxes)
    return VendorDetectResponse(result=VendorResult(data=[entry]), image=result.analyzed_image)


@dataclass(frozen=True)
class Envelope:
    """Response shape of an upload route and whether box labels are drawn."""

    name: str
    labels: bool
    build: Callable[[DetectionResult, str], BaseModel]


UPLOAD = Envelope("upload", labels=True, build=upload_envelope)
VENDOR = Envelope("vendor", labels=False, build=vendor_envelope)


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorResponse(error=message).model_dump())


def _analyze(detector: DetectionClient, path: Path, content_type: str, labels: bool) -> DetectionResult:
    image_bytes = path.read_bytes()
    return detector.detect(image_bytes, content_type, labels=labels)


async def process_upload(request: Request, image: Optional[UploadFile], envelope: Envelope):
    """
    Shared handler for both upload routes.

    validate -> store temp file -> detect (falls back internally) -> annotate
    -> build the envelope. The temp file never outlives the request.
    """
    started = time.perf_counter()
    if image is None:
        return error_response(400, "No image uploaded")

    # Declared size is checked before reading; the capped read catches bodies that under-declare
    validate_upload(image.content_type, image.size or 0)
    data = await image.read(MAX_UPLOAD_BYTES + 1)
    if len(data) > MAX_UPLOAD_BYTES:
        raise TooLarge()

    sniffed = sniff_content_type(data)
    if not same_image_type(image.content_type, sniffed):
        logger.warning("Declared type %s but content looks like %s", image.content_type, sniffed)

    settings: Settings = request.app.state.settings
    detector: DetectionClient = request.app.state.detector
    try:
        with stored_upload(data, settings.upload_dir, image.content_type) as path:
            result = await run_in_threadpool(_analyze, detector, path, image.content_type, envelope.labels)
    except Exception as exc:
        logger.exception("Upload error")
        raise ProcessingError() from exc

    elapsed_ms = int(round((time.perf_counter() - started) * 1000))
    result = result.model_copy(update={"processing_time": elapsed_ms})
    logger.info(
        "Analyzed %s: %d%% fake, %d regions, %d ms",
        image.filename, result.fake_percentage, len(result.bounding_boxes), elapsed_ms,
    )
    return envelope.build(result, to_data_uri(data, image.content_type))


def create_app(settings: Optional[Settings] = None, detector: Optional[DetectionClient] = None) -> FastAPI:
    settings = settings or load_settings()
    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)

    app = FastAPI(
        title="Deepfake Image Inspection API",
        description="Scores uploaded images for manipulation and marks suspected regions",
        version="1.0.0",
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.settings = settings
    app.state.detector = detector or DetectionClient(
        api_key=settings.api_key,
        api_url=settings.api_url,
        timeout=settings.timeout,
        fallback=HeuristicFallback(delay=settings.fallback_delay),
    )

    @app.exception_handler(UploadRejected)
    async def upload_rejected_handler(request: Request, exc: UploadRejected):
        return error_response(exc.status_code, str(exc))

    @app.exception_handler(ProcessingError)
    async def processing_error_handler(request: Request, exc: ProcessingError):
        return error_response(500, str(exc))

    @app.on_event("startup")
    async def startup_event():
        settings.upload_dir.mkdir(parents=True, exist_ok=True)
        mode = "detection service" if settings.api_key else "fallback analysis (no API_KEY)"
        logger.info("Using %s, uploads stored in %s", mode, settings.upload_dir)

    @app.get("/", response_model=HealthResponse)
    async def health_check():
        """Health check endpoint."""
        return HealthResponse(status="ok")

    @app.post(
        "/upload",
        response_model=UploadResponse,
        responses={400: {"model": ErrorResponse}, 413: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    )
    async def upload(request: Request, image: Optional[UploadFile] = File(None)):
        """
        Analyze an uploaded image.

        - **image**: JPEG, PNG or WEBP file, at most 10MB
        - Returns: fake percentage, processing time (ms), bounding boxes, the
          original image and the annotated image as data URIs
        """
        return await process_upload(request, image, UPLOAD)

    @app.post(
        "/api/detect",
        response_model=VendorDetectResponse,
        responses={400: {"model": ErrorResponse}, 413: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    )
    async def detect(request: Request, image: Optional[UploadFile] = File(None)):
        """Analyze an uploaded image and answer in the detection vendor's format."""
        return await process_upload(request, image, VENDOR)

    return app


app = create_app()


def main():
    import uvicorn

    settings = app.state.settings
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
