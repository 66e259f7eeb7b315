"""
Client-side overlay rendering.

Draws the analysis boxes over the original image on a canvas (an RGB numpy
array the size of the image), the same way the browser client strokes them
on an HTML canvas: 3 px lines centred on the rectangle path, red for fake
regions and green for authentic ones.

The image is loaded lazily. Boxes can be set before the image is loaded;
drawing happens as soon as both are available and is repeated whenever
either of them changes.
"""

import base64
import io
from typing import Iterable, Optional, Union

import cv2
import numpy as np
import requests
from PIL import Image

from src.api.schemas import BoundingBox

LINE_WIDTH = 3
FAKE_COLOR = (239, 68, 68)        # #ef4444
AUTHENTIC_COLOR = (34, 197, 94)   # #22c55e
DOWNLOAD_TIMEOUT = 10.0


def load_image(source: str) -> Image.Image:
    """Open an image from a data URI, an http(s) URL or a local path."""
    if source.startswith("data:"):
        _, encoded = source.split(",", 1)
        return Image.open(io.BytesIO(base64.b64decode(encoded)))
    if source.startswith(("http://", "https://")):
        response = requests.get(source, timeout=DOWNLOAD_TIMEOUT)
        response.raise_for_status()
        return Image.open(io.BytesIO(response.content))
    return Image.open(source)


def as_box(box: Union[BoundingBox, dict]) -> BoundingBox:
    if isinstance(box, BoundingBox):
        return box
    return BoundingBox.model_validate(box)


def stroke_boxes(image_rgb: np.ndarray, boxes: Iterable[BoundingBox]) -> np.ndarray:
    canvas = image_rgb.copy()
    for box in boxes:
        color = FAKE_COLOR if box.is_fake else AUTHENTIC_COLOR
        cv2.rectangle(
            canvas,
            (box.x, box.y),
            (box.x + box.width, box.y + box.height),
            color,
            LINE_WIDTH,
        )
    return canvas


class OverlayRenderer:
    """
    Keeps an image source and a box list and redraws the canvas when either changes.

    Args:
        loader: Callable turning an image source into a PIL image (default: load_image)

    Usage:
        renderer = OverlayRenderer()
        renderer.set_image("photo.jpg")
        renderer.set_boxes(response["boundingBoxes"])   # nothing drawn yet
        canvas = renderer.load()                        # image decoded, boxes drawn
    """

    def __init__(self, loader=load_image):
        self.loader = loader
        self.source: Optional[str] = None
        self.image: Optional[np.ndarray] = None
        self.boxes: list[BoundingBox] = []
        self.canvas: Optional[np.ndarray] = None

    @property
    def loaded(self) -> bool:
        return self.image is not None

    def set_image(self, source: str):
        """Switch to a new image. The previous drawing is discarded until the new one loads."""
        if source == self.source:
            return
        self.source = source
        self.image = None
        self.canvas = None

    def set_boxes(self, boxes: Iterable[Union[BoundingBox, dict]]):
        self.boxes = [as_box(box) for box in boxes]
        self._redraw()

    def load(self) -> Optional[np.ndarray]:
        """Decode the current image source and draw. Returns the canvas."""
        if self.source is None:
            return None
        with self.loader(self.source) as pil_image:
            self.image = np.array(pil_image.convert("RGB"))
        self._redraw()
        return self.canvas

    def reset(self):
        self.source = None
        self.image = None
        self.boxes = []
        self.canvas = None

    def _redraw(self):
        if not self.loaded:
            return
        self.canvas = stroke_boxes(self.image, self.boxes)
