"""
Configuration loaded from the environment
"""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value else default


def _env_float(name: str) -> Optional[float]:
    value = os.getenv(name)
    return float(value) if value else None


@dataclass
class Settings:
    """Runtime settings; every field can be overridden by keyword for tests"""
    public_dir: Path = field(default_factory=lambda: Path(os.getenv("PUBLIC_DIR", "public")))

    # Upload limits
    max_upload_bytes: int = field(default_factory=lambda: _env_int("MAX_UPLOAD_BYTES", 10 * 1024 * 1024))
    max_batch_files: int = field(default_factory=lambda: _env_int("MAX_BATCH_FILES", 10))
    max_image_dimension: int = field(default_factory=lambda: _env_int("MAX_IMAGE_DIMENSION", 8000))

    # Rate limiting (15 minutes, 100 requests per client)
    rate_limit_window_seconds: int = field(default_factory=lambda: _env_int("RATE_LIMIT_WINDOW_SECONDS", 15 * 60))
    rate_limit_max_requests: int = field(default_factory=lambda: _env_int("RATE_LIMIT_MAX_REQUESTS", 100))

    # Files older than 24 hours are swept
    retention_max_age_seconds: int = field(default_factory=lambda: _env_int("RETENTION_MAX_AGE_SECONDS", 24 * 60 * 60))

    # Converter backend: "imagemagick" or "pillow"
    converter_backend: str = field(default_factory=lambda: os.getenv("CONVERTER_BACKEND", "imagemagick"))
    imagemagick_binary: Optional[str] = field(default_factory=lambda: os.getenv("IMAGEMAGICK_BINARY"))
    imagemagick_identify: Optional[str] = field(default_factory=lambda: os.getenv("IMAGEMAGICK_IDENTIFY"))
    converter_timeout_seconds: Optional[float] = field(default_factory=lambda: _env_float("CONVERTER_TIMEOUT_SECONDS"))

    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))

    @property
    def upload_dir(self) -> Path:
        return Path(self.public_dir) / "uploads"

    @property
    def processed_dir(self) -> Path:
        return Path(self.public_dir) / "processed"

    def ensure_directories(self):
        self.upload_dir.mkdir(parents=True, exist_ok=True)
        self.processed_dir.mkdir(parents=True, exist_ok=True)
