"""
Command line client: upload an image, print the verdict, save the overlay.

Usage:
    python -m src.client.visualize \
        --input samples/portrait.jpg \
        --output out/portrait_overlay.png \
        --server http://localhost:5000
"""

import argparse
import mimetypes
import sys
from pathlib import Path

import cv2
import requests

from src.client.overlay import OverlayRenderer
from src.detection.errors import UploadRejected
from src.detection.validator import validate_upload

DEFAULT_SERVER = "http://localhost:5000"

# (exclusive lower bound, tier), highest first
SCORE_TIERS = [
    (80, "red"),
    (60, "orange"),
    (30, "yellow"),
]


class UploadFailed(Exception):
    def __init__(self, message: str = "Upload failed. Please try again."):
        super().__init__(message)


def score_tier(fake_percentage: int) -> str:
    """Display tier of an overall score: >80 red, >60 orange, >30 yellow, else green."""
    for bound, tier in SCORE_TIERS:
        if fake_percentage > bound:
            return tier
    return "green"


def guess_content_type(path: Path) -> str:
    content_type, _ = mimetypes.guess_type(path.name)
    return content_type or "application/octet-stream"


def upload_image(path: Path, server: str = DEFAULT_SERVER, session=None) -> dict:
    """Validate locally, POST the file to /upload and return the decoded JSON result."""
    content_type = guess_content_type(path)
    validate_upload(content_type, path.stat().st_size)

    session = session or requests.Session()
    with open(path, "rb") as fh:
        try:
            response = session.post(
                f"{server.rstrip('/')}/upload",
                files={"image": (path.name, fh, content_type)},
            )
        except requests.RequestException as exc:
            raise UploadFailed() from exc
    if not response.ok:
        raise UploadFailed()
    return response.json()


def main():
    parser = argparse.ArgumentParser(description="Deepfake Inspection - Upload & Visualize")
    parser.add_argument("--input", type=str, required=True, help="Path to input image")
    parser.add_argument("--output", type=str, required=True, help="Path to save the overlay image")
    parser.add_argument("--server", type=str, default=DEFAULT_SERVER, help=f"API base URL (default: {DEFAULT_SERVER})")
    args = parser.parse_args()

    input_path = Path(args.input)
    if not input_path.exists():
        print(f"[ERROR] Input file not found: {args.input}")
        sys.exit(1)

    try:
        result = upload_image(input_path, args.server)
    except (UploadRejected, UploadFailed) as exc:
        print(f"[ERROR] {exc}")
        sys.exit(1)

    score = result["fakePercentage"]
    print(f"[RESULT] Fake percentage: {score}% ({score_tier(score)})")
    print(f"[RESULT] Analysis time: {result['processingTime']}ms")
    for i, box in enumerate(result["boundingBoxes"]):
        verdict = "FAKE" if box["isFake"] else "AUTHENTIC"
        print(f"  [{i+1}] bbox=({box['x']},{box['y']}) {box['width']}x{box['height']} {verdict} {box['fakeProbability']}%")

    renderer = OverlayRenderer()
    renderer.set_image(str(input_path))
    renderer.set_boxes(result["boundingBoxes"])
    canvas = renderer.load()

    output_path = Path(args.output)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    cv2.imwrite(str(output_path), cv2.cvtColor(canvas, cv2.COLOR_RGB2BGR))
    print(f"[INFO] Overlay saved to: {output_path}")


if __name__ == "__main__":
    main()
