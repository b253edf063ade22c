"""
Upload validation: size, declared type, extension and magic number
"""
import os
from typing import Optional

from .errors import ErrorCode, Failure

MAX_FILE_SIZE = 10 * 1024 * 1024  # 10MB

ALLOWED_EXTENSIONS = {
    "image/jpeg": {".jpg", ".jpeg"},
    "image/png": {".png"},
    "image/webp": {".webp"},
}

SIGNATURES = {
    "image/jpeg": b"\xff\xd8\xff",
    "image/png": b"\x89PNG",
    "image/webp": b"RIFF",
}


def normalize_content_type(content_type: Optional[str]) -> str:
    """Strip parameters from a Content-Type header: image/png; charset=binary -> image/png"""
    return (content_type or "").split(";")[0].strip().lower()


def detect_image_type(data: bytes) -> Optional[str]:
    """Return the MIME type implied by the leading bytes, or None"""
    for mime_type, signature in SIGNATURES.items():
        if data[:len(signature)] == signature:
            return mime_type
    return None


def validate_upload(
    data: Optional[bytes],
    content_type: Optional[str],
    filename: Optional[str],
    max_bytes: int = MAX_FILE_SIZE,
) -> Optional[Failure]:
    """
    Check an uploaded buffer before it touches the disk.

    Returns None when the file is accepted, otherwise the Failure to report.
    The declared MIME type, the extension and the magic number must all
    agree; a signature mismatch is never corrected from the declared type.
    """
    if not data:
        return Failure(ErrorCode.INVALID_FILE, "No file provided or invalid file format")

    if len(data) > max_bytes:
        return Failure(
            ErrorCode.FILE_TOO_LARGE,
            f"File size exceeds maximum limit of {max_bytes // (1024 * 1024)}MB",
        )

    declared = normalize_content_type(content_type)
    extension = os.path.splitext(filename or "")[1].lower()
    type_error = Failure(
        ErrorCode.INVALID_FILE_TYPE,
        "Invalid file type. Only JPEG, PNG, and WebP files are allowed.",
    )

    if declared not in ALLOWED_EXTENSIONS:
        return type_error
    if extension not in ALLOWED_EXTENSIONS[declared]:
        return type_error
    if detect_image_type(data) != declared:
        return type_error

    return None
