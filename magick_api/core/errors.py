"""
Error codes and the failure value passed between orchestration steps
"""
from dataclasses import dataclass
from enum import Enum


class ErrorCode(str, Enum):
    INVALID_FILE = "INVALID_FILE"
    FILE_TOO_LARGE = "FILE_TOO_LARGE"
    INVALID_FILE_TYPE = "INVALID_FILE_TYPE"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    WRITE_ERROR = "WRITE_ERROR"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    INVALID_DIMENSIONS = "INVALID_DIMENSIONS"
    DIMENSIONS_TOO_LARGE = "DIMENSIONS_TOO_LARGE"
    INVALID_CONFIG = "INVALID_CONFIG"
    FILE_NOT_FOUND = "FILE_NOT_FOUND"
    PROCESSING_FAILED = "PROCESSING_FAILED"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


STATUS_CODES = {
    ErrorCode.INVALID_FILE: 400,
    ErrorCode.FILE_TOO_LARGE: 400,
    ErrorCode.INVALID_FILE_TYPE: 400,
    ErrorCode.RATE_LIMIT_EXCEEDED: 429,
    ErrorCode.WRITE_ERROR: 500,
    ErrorCode.VALIDATION_FAILED: 400,
    ErrorCode.INVALID_DIMENSIONS: 400,
    ErrorCode.DIMENSIONS_TOO_LARGE: 400,
    ErrorCode.INVALID_CONFIG: 400,
    ErrorCode.FILE_NOT_FOUND: 404,
    ErrorCode.PROCESSING_FAILED: 500,
    ErrorCode.UNKNOWN_ERROR: 500,
}


@dataclass(frozen=True)
class Failure:
    """An expected, client-reportable failure"""
    code: ErrorCode
    message: str

    @property
    def status_code(self) -> int:
        return STATUS_CODES.get(self.code, 500)

    def to_dict(self) -> dict:
        return {"success": False, "error": self.message, "code": self.code.value}
