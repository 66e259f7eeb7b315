"""
Upload validation.

The check trusts the client-declared MIME type and size, the same contract
the browser applies before sending. `sniff_content_type` is available to
compare the declared type against what Pillow actually decodes.
"""

import io
from typing import Optional

from PIL import Image, UnidentifiedImageError

from src.detection.errors import InvalidFormat, TooLarge

ALLOWED_TYPES = frozenset({"image/jpeg", "image/jpg", "image/png", "image/webp"})
MAX_UPLOAD_BYTES = 10 * 1024 * 1024  # 10 MiB

_PIL_FORMATS = {
    "JPEG": "image/jpeg",
    "PNG": "image/png",
    "WEBP": "image/webp",
}


def validate_upload(content_type: Optional[str], size: int) -> None:
    """
    Reject uploads with an unsupported type or more than 10 MiB.

    The type is checked first, so an oversized file of the wrong type
    raises InvalidFormat.
    """
    if content_type not in ALLOWED_TYPES:
        raise InvalidFormat()
    if size > MAX_UPLOAD_BYTES:
        raise TooLarge()


def sniff_content_type(data: bytes) -> Optional[str]:
    """Return the MIME type Pillow detects in `data`, or None."""
    try:
        with Image.open(io.BytesIO(data)) as image:
            return _PIL_FORMATS.get(image.format)
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError):
        return None


def same_image_type(declared: Optional[str], sniffed: Optional[str]) -> bool:
    if declared == "image/jpg":
        declared = "image/jpeg"
    return declared == sniffed
