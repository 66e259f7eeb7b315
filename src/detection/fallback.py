"""
Heuristic fallback used when the external detector is unavailable.

This is not a detector. It produces a plausible-looking placeholder result
so the rest of the pipeline behaves the same with or without the service:
- an image-level score derived from the pixel count (larger images score
  as more authentic), clamped to [15, 85]
- 1 or 2 randomly placed boxes of 50-149 px, kept inside the image
- a fixed delay that mimics the latency of a remote call
"""

import io
import logging
import random
import time

from PIL import Image

from src.api.schemas import BoundingBox, DetectionResult
from src.detection.scores import round_half_up
from src.inference import annotate

logger = logging.getLogger(__name__)

BASELINE_SCORE = 50
REFERENCE_PIXELS = 1_000_000
PIXELS_PER_POINT = 100_000
MIN_SCORE, MAX_SCORE = 15, 85
MIN_BOX_SIDE, MAX_BOX_SIDE = 50, 150


def heuristic_score(width: int, height: int) -> int:
    raw = BASELINE_SCORE + (width * height - REFERENCE_PIXELS) / PIXELS_PER_POINT
    return min(MAX_SCORE, max(MIN_SCORE, round_half_up(raw)))


class HeuristicFallback:
    """
    Local stand-in for the detection service.

    Args:
        delay: Seconds to sleep before returning (default: 1.0)
        rng: random.Random instance, injectable for reproducible output
        sleep: Sleep function, injectable for tests
    """

    def __init__(self, delay: float = 1.0, rng: random.Random = None, sleep=time.sleep):
        self.delay = delay
        self.rng = rng or random.Random()
        self.sleep = sleep

    def random_boxes(self, width: int, height: int) -> list[BoundingBox]:
        boxes = []
        for _ in range(self.rng.randint(1, 2)):
            box_w = min(self.rng.randrange(MIN_BOX_SIDE, MAX_BOX_SIDE), width)
            box_h = min(self.rng.randrange(MIN_BOX_SIDE, MAX_BOX_SIDE), height)
            boxes.append(BoundingBox(
                x=self.rng.randint(0, width - box_w),
                y=self.rng.randint(0, height - box_h),
                width=box_w,
                height=box_h,
                fake_probability=self.rng.randrange(100),
            ))
        return boxes

    def generate(self, image_bytes: bytes, labels: bool = True) -> DetectionResult:
        """Produce a placeholder DetectionResult for `image_bytes` without any network call."""
        logger.info("Using fallback analysis")
        self.sleep(self.delay)

        with Image.open(io.BytesIO(image_bytes)) as image:
            width, height = image.size

        boxes = self.random_boxes(width, height)
        return DetectionResult(
            fake_percentage=heuristic_score(width, height),
            bounding_boxes=boxes,
            analyzed_image=annotate.annotate_to_data_uri(image_bytes, boxes, labels=labels),
        )
