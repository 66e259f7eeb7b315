"""
Client for the external deepfake image detection service.

The service receives the image as a base64 data URI and answers with one
entry per input image:

    {"data": [{<score field>, "bounding_boxes": [
        {"vertices": [{"x": .., "y": ..}, {"x": .., "y": ..}], "is_deepfake": 0.87}
    ]}]}

Any failure talking to the service (no credential, network, auth, bad
payload) is handled here by switching to the local heuristic fallback, so
callers always get a DetectionResult.
"""

import base64
import logging
from typing import Optional

import requests
from pydantic import ValidationError

from src.api.schemas import BoundingBox, DetectionResult
from src.detection.errors import DetectionServiceError
from src.detection.fallback import HeuristicFallback
from src.detection.scores import extract_fake_percentage, round_half_up, to_percentage
from src.inference import annotate

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://ai.api.nvidia.com/v1/cv/hive/deepfake-image-detection"


def box_from_region(region: dict) -> BoundingBox:
    """Map a vendor region (top-left and bottom-right vertices) to a BoundingBox."""
    try:
        top_left, bottom_right = region["vertices"][0], region["vertices"][1]
        x1, y1 = float(top_left["x"]), float(top_left["y"])
        x2, y2 = float(bottom_right["x"]), float(bottom_right["y"])
        score = float(region.get("is_deepfake") or 0)
    except (KeyError, IndexError, TypeError, ValueError) as exc:
        raise DetectionServiceError(f"malformed region: {region!r}") from exc

    return BoundingBox(
        x=round_half_up(x1),
        y=round_half_up(y1),
        width=round_half_up(x2 - x1),
        height=round_half_up(y2 - y1),
        fake_probability=to_percentage(score),
    )


def parse_response(payload) -> tuple[int, list[BoundingBox]]:
    """Extract (fake percentage, boxes) from the first entry of a service response."""
    if not isinstance(payload, dict):
        raise DetectionServiceError("response is not a JSON object")
    entries = payload.get("data") or []
    first = entries[0] if entries else None
    if first is None:
        logger.info("No data in API response or empty data array")
        return 0, []
    if not isinstance(first, dict):
        raise DetectionServiceError("response entry is not a JSON object")

    boxes = [box_from_region(region) for region in first.get("bounding_boxes") or []]
    return extract_fake_percentage(first), boxes


class DetectionClient:
    """
    Sends images to the detection service and normalizes its answer.

    Args:
        api_key: Bearer credential. None selects the fallback for every call.
        api_url: Detection endpoint
        timeout: Optional request timeout in seconds (None = no timeout)
        fallback: HeuristicFallback used when the service cannot be used
        session: requests.Session (or compatible object) for HTTP calls
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_url: str = DEFAULT_API_URL,
        timeout: Optional[float] = None,
        fallback: Optional[HeuristicFallback] = None,
        session=None,
    ):
        self.api_key = api_key
        self.api_url = api_url
        self.timeout = timeout
        self.fallback = fallback or HeuristicFallback()
        self.session = session or requests.Session()

    def detect(self, image_bytes: bytes, mime_type: str, labels: bool = True) -> DetectionResult:
        if not self.api_key:
            logger.info("No API key found, using fallback analysis")
            return self.fallback.generate(image_bytes, labels=labels)

        try:
            return self._detect_remote(image_bytes, mime_type, labels)
        except Exception as exc:
            logger.warning("Detection service failed (%s), falling back to basic analysis", exc)
            return self.fallback.generate(image_bytes, labels=labels)

    def _detect_remote(self, image_bytes: bytes, mime_type: str, labels: bool) -> DetectionResult:
        payload = self._call_service(image_bytes, mime_type)
        try:
            fake_percentage, boxes = parse_response(payload)
            result = DetectionResult(fake_percentage=fake_percentage, bounding_boxes=boxes)
        except ValidationError as exc:
            raise DetectionServiceError(f"unexpected values in response: {exc}") from exc
        logger.info("Detection service score: %d%% (%d regions)", fake_percentage, len(boxes))

        analyzed = annotate.annotate_to_data_uri(image_bytes, boxes, labels=labels)
        return result.model_copy(update={"analyzed_image": analyzed})

    def _call_service(self, image_bytes: bytes, mime_type: str) -> dict:
        encoded = base64.b64encode(image_bytes).decode("ascii")
        body = {"input": [f"data:{mime_type or 'image/png'};base64,{encoded}"]}
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
            "Accept": "application/json",
        }
        try:
            response = self.session.post(self.api_url, json=body, headers=headers, timeout=self.timeout)
            response.raise_for_status()
            payload = response.json()
        except (requests.RequestException, ValueError) as exc:
            raise DetectionServiceError(str(exc)) from exc
        logger.debug("Detection service response: %s", payload)
        return payload
