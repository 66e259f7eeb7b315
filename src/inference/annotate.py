"""
Image annotation for deepfake detection results.

Uses:
- PIL.Image.open() with RGB conversion to decode the upload
- OpenCV for drawing and PNG encoding (BGR convention while drawing)

Each bounding box is outlined with a 3 px border that runs from (x, y) to
(x + width, y + height) inclusive and grows inwards: red for regions
classified as fake, green otherwise.
"""

import base64
import io
import logging
from typing import Iterable, Optional

import cv2
import numpy as np
from PIL import Image

from src.api.schemas import BoundingBox
from src.detection.errors import AnnotationError

logger = logging.getLogger(__name__)

BOX_THICKNESS = 3
FAKE_COLOR_BGR = (0, 0, 255)       # pure red
AUTHENTIC_COLOR_BGR = (0, 255, 0)  # pure green
LABEL_FONT = cv2.FONT_HERSHEY_SIMPLEX
LABEL_SCALE = 0.5


def box_label(box: BoundingBox) -> str:
    return f"{'FAKE' if box.is_fake else 'AUTHENTIC'} {box.fake_probability}%"


def _draw_outline(image_bgr: np.ndarray, box: BoundingBox, color, thickness: int = BOX_THICKNESS):
    """Fill the four border strips of `box`. OpenCV clips anything off-image."""
    if box.width <= 0 or box.height <= 0:
        return
    x, y = box.x, box.y
    right = x + box.width
    bottom = y + box.height
    strips = [
        ((x, y), (right, y + thickness - 1)),             # top
        ((x, bottom - thickness + 1), (right, bottom)),   # bottom
        ((x, y), (x + thickness - 1, bottom)),            # left
        ((right - thickness + 1, y), (right, bottom)),    # right
    ]
    for pt1, pt2 in strips:
        cv2.rectangle(image_bgr, pt1, pt2, color, cv2.FILLED)


def _draw_label(image_bgr: np.ndarray, box: BoundingBox, color):
    label = box_label(box)
    (tw, th), baseline = cv2.getTextSize(label, LABEL_FONT, LABEL_SCALE, 1)
    top = box.y - th - baseline - 4
    # Label background ends one row above the box so the outline stays intact
    cv2.rectangle(image_bgr, (box.x, top), (box.x + tw, box.y - 1), color, cv2.FILLED)
    cv2.putText(
        image_bgr, label, (box.x, box.y - baseline - 2),
        LABEL_FONT, LABEL_SCALE, (0, 0, 0), 1,
    )


def draw_boxes(image_bgr: np.ndarray, boxes: Iterable[BoundingBox], labels: bool = False) -> np.ndarray:
    """
    Draw bounding box outlines (and optionally labels) on a copy of the image.

    Args:
        image_bgr: Image in BGR format (OpenCV convention)
        boxes: Bounding boxes in image pixel coordinates
        labels: Draw "FAKE 73%" / "AUTHENTIC 73%" above each box

    Returns:
        Annotated image in BGR format
    """
    if image_bgr.ndim != 3 or image_bgr.shape[2] != 3:
        raise AnnotationError(f"expected a 3-channel image, got shape {image_bgr.shape}")

    annotated = image_bgr.copy()
    for box in boxes:
        color = FAKE_COLOR_BGR if box.is_fake else AUTHENTIC_COLOR_BGR
        _draw_outline(annotated, box, color)
        if labels:
            _draw_label(annotated, box, color)
    return annotated


def annotate_image(image_bytes: bytes, boxes: Iterable[BoundingBox], labels: bool = False) -> Optional[bytes]:
    """
    Decode `image_bytes`, draw `boxes` and return the result as PNG bytes.

    Annotation is best-effort: any decode, draw or encode failure is logged
    and None is returned so the caller can answer without an annotated image.
    """
    try:
        pil_image = Image.open(io.BytesIO(image_bytes)).convert("RGB")
        image_bgr = cv2.cvtColor(np.array(pil_image), cv2.COLOR_RGB2BGR)
        annotated = draw_boxes(image_bgr, boxes, labels=labels)
        ok, encoded = cv2.imencode(".png", annotated)
        if not ok:
            raise AnnotationError("PNG encoding failed")
        return encoded.tobytes()
    except Exception:
        logger.exception("Error creating analyzed image")
        return None


def to_data_uri(data: bytes, mime_type: str) -> str:
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"


def annotate_to_data_uri(image_bytes: bytes, boxes: Iterable[BoundingBox], labels: bool = False) -> Optional[str]:
    """annotate_image() wrapped as a PNG data URI, or None if annotation failed."""
    png = annotate_image(image_bytes, boxes, labels=labels)
    if png is None:
        return None
    return to_data_uri(png, "image/png")
