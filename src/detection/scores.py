"""
Score extraction from the external detector's response.

The vendor does not guarantee the name of the image-level score field, so
the score is taken from the first extractor in SCORE_EXTRACTORS that finds
a value. Every extractor returns a fraction in [0, 1] or None.
"""

import math
from typing import Callable, Optional

Extractor = Callable[[dict], Optional[float]]


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves rounded up."""
    return int(math.floor(value + 0.5))


def to_percentage(fraction: Optional[float]) -> int:
    return round_half_up((fraction or 0) * 100)


def field(name: str) -> Extractor:
    """Extractor for an object-level field. A null value counts as 0."""

    def extract(entry: dict) -> Optional[float]:
        if name not in entry:
            return None
        return float(entry[name] or 0)

    extract.__name__ = f"field_{name}"
    return extract


def mean_box_score(entry: dict) -> Optional[float]:
    boxes = entry.get("bounding_boxes") or []
    if not boxes:
        return None
    return sum(float(box.get("is_deepfake") or 0) for box in boxes) / len(boxes)


SCORE_EXTRACTORS: tuple[Extractor, ...] = (
    field("confidence"),
    field("score"),
    field("probability"),
    field("is_deepfake"),
    mean_box_score,
)


def extract_fake_percentage(entry: Optional[dict]) -> int:
    """Overall fake percentage (0-100) for one response entry; 0 if nothing is found."""
    if not entry:
        return 0
    for extractor in SCORE_EXTRACTORS:
        fraction = extractor(entry)
        if fraction is not None:
            return to_percentage(fraction)
    return 0
