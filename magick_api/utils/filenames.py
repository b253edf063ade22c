"""
Safe, collision-resistant names for stored files
"""
import re
import time
import uuid

_UNSAFE = re.compile(r"[^a-z0-9]")


def _split(original_name: str):
    # Strip directory components from either path flavour
    base = re.split(r"[\\/]", original_name or "")[-1]
    stem, dot, ext = base.rpartition(".")
    if not dot or not stem:
        # "name" or ".hidden": no usable extension
        return base, ""
    return stem, ext


def unique_token() -> str:
    """Millisecond timestamp plus a random component"""
    return f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}"


def safe_stem(original_name: str) -> str:
    stem, _ = _split(original_name)
    return _UNSAFE.sub("-", stem.lower()) or "file"


def safe_extension(original_name: str) -> str:
    _, ext = _split(original_name)
    ext = _UNSAFE.sub("", ext.lower())
    return f".{ext}" if ext else ""


def sanitize_filename(original_name: str) -> str:
    """
    Derive a filesystem-safe name from an untrusted upload name.

    "../My Photo.PNG" -> "my-photo-1718000000000-1a2b3c4d.png"
    """
    return f"{safe_stem(original_name)}-{unique_token()}{safe_extension(original_name)}"


def processed_filename(original_name: str, extension: str) -> str:
    """Output name for a converted file: processed-<unique>-<stem>.<ext>"""
    return f"processed-{unique_token()}-{safe_stem(original_name)}.{extension}"
