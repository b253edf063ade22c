"""
Upload orchestration: rate limit, validation, storage and retention
"""
from dataclasses import dataclass
from typing import List, Optional, Union

from ..utils.cleanup import sweep_directories
from ..utils.filenames import sanitize_filename
from .config import Settings
from .errors import ErrorCode, Failure
from .logger import logger
from .models import UploadResponse
from .rate_limit import RateLimiter
from .validator import normalize_content_type, validate_upload


@dataclass
class IncomingFile:
    filename: str
    content_type: str
    data: bytes


class UploadService:
    def __init__(self, settings: Settings, rate_limiter: RateLimiter):
        self.settings = settings
        self.rate_limiter = rate_limiter

    def admit(self, client_key: str) -> Optional[Failure]:
        if not self.rate_limiter.allow(client_key):
            logger.warning(f"⚠️ Rate limit exceeded for {client_key}")
            return Failure(ErrorCode.RATE_LIMIT_EXCEEDED, "Rate limit exceeded")
        return None

    def store(self, parts: List[IncomingFile]) -> Union[UploadResponse, Failure]:
        """Validate and persist exactly one file, then sweep expired files"""
        self.settings.upload_dir.mkdir(parents=True, exist_ok=True)

        if len(parts) != 1:
            return Failure(ErrorCode.INVALID_FILE, "Exactly one file must be provided in the 'file' field")
        incoming = parts[0]

        failure = validate_upload(
            incoming.data, incoming.content_type, incoming.filename, self.settings.max_upload_bytes
        )
        if failure:
            logger.info(f"Rejected upload {incoming.filename!r}: {failure.code.value}")
            return failure

        filename = sanitize_filename(incoming.filename)
        filepath = self.settings.upload_dir / filename
        try:
            filepath.write_bytes(incoming.data)
            size = filepath.stat().st_size
        except OSError as e:
            logger.error(f"❌ Failed to write {filepath}: {e}")
            return Failure(ErrorCode.WRITE_ERROR, "File failed to write to disk")

        logger.info(f"✅ Stored upload {filename} ({size} bytes)")

        sweep_directories(
            [self.settings.upload_dir, self.settings.processed_dir],
            self.settings.retention_max_age_seconds,
        )

        return UploadResponse(
            filename=filename,
            url=f"/uploads/{filename}",
            size=size,
            type=normalize_content_type(incoming.content_type),
        )
