"""
Runtime configuration, read from environment variables (and a `.env` file).

    API_KEY            Detection service credential. Unset -> fallback analysis
    DETECTION_API_URL  Detection endpoint
    DETECTION_TIMEOUT  Request timeout in seconds (unset = no timeout)
    HOST / PORT        Bind address for `python -m src.api.app`
    UPLOAD_DIR         Directory for per-request temporary upload files
    FALLBACK_DELAY     Simulated latency of the fallback, seconds
    CORS_ORIGINS       Comma separated list of allowed origins
    LOG_LEVEL          Logging level name
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from src.detection.client import DEFAULT_API_URL


def _optional_float(value: Optional[str]) -> Optional[float]:
    if value is None or value.strip() == "":
        return None
    return float(value)


@dataclass
class Settings:
    api_key: Optional[str] = None
    api_url: str = DEFAULT_API_URL
    timeout: Optional[float] = None
    host: str = "0.0.0.0"
    port: int = 5000
    upload_dir: Path = Path("uploads")
    fallback_delay: float = 1.0
    cors_origins: list[str] = field(default_factory=lambda: ["*"])
    log_level: str = "INFO"


def load_settings(use_dotenv: bool = True) -> Settings:
    """Read settings from the environment, after loading `.env` unless `use_dotenv` is False."""
    if use_dotenv:
        load_dotenv()
    origins = os.getenv("CORS_ORIGINS", "*")
    return Settings(
        api_key=os.getenv("API_KEY") or None,
        api_url=os.getenv("DETECTION_API_URL", DEFAULT_API_URL),
        timeout=_optional_float(os.getenv("DETECTION_TIMEOUT")),
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "5000")),
        upload_dir=Path(os.getenv("UPLOAD_DIR", "uploads")),
        fallback_delay=float(os.getenv("FALLBACK_DELAY", "1.0")),
        cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
