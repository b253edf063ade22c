"""
Pydantic models for API requests and responses
"""
from enum import Enum
from typing import Any, List

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator


class OutputFormat(str, Enum):
    PNG = "PNG"
    JPG = "JPG"
    WEBP = "WebP"

    @property
    def extension(self) -> str:
        return {"PNG": "png", "JPG": "jpg", "WebP": "webp"}[self.value]

    @property
    def pillow_format(self) -> str:
        return {"PNG": "PNG", "JPG": "JPEG", "WebP": "WEBP"}[self.value]


class ProcessingConfig(BaseModel):
    """Per-request processing options; accepts the web form's camelCase keys"""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    output_format: OutputFormat = Field(
        OutputFormat.PNG, validation_alias=AliasChoices("output_format", "outputFormat")
    )
    resize_enabled: bool = Field(
        False, validation_alias=AliasChoices("resize_enabled", "resizeEnabled", "resize")
    )
    target_width: int = Field(
        1920, validation_alias=AliasChoices("target_width", "targetWidth", "width")
    )
    target_height: int = Field(
        1080, validation_alias=AliasChoices("target_height", "targetHeight", "height")
    )
    maintain_aspect_ratio: bool = Field(
        True, validation_alias=AliasChoices("maintain_aspect_ratio", "maintainAspectRatio")
    )
    color_correction: bool = Field(
        False, validation_alias=AliasChoices("color_correction", "colorCorrection")
    )
    sharpen: bool = False
    watermark: bool = False
    watermark_text: str = Field(
        "", max_length=100, validation_alias=AliasChoices("watermark_text", "watermarkText")
    )
    quality: int = 80

    @model_validator(mode="before")
    @classmethod
    def flatten_dimensions(cls, data: Any) -> Any:
        # Older clients send {"dimensions": {"width": .., "height": ..}}
        if isinstance(data, dict) and isinstance(data.get("dimensions"), dict):
            data = dict(data)
            dimensions = data.pop("dimensions")
            data.setdefault("width", dimensions.get("width"))
            data.setdefault("height", dimensions.get("height"))
        return data

    @field_validator("output_format", mode="before")
    @classmethod
    def normalize_format(cls, value: Any) -> Any:
        if isinstance(value, str):
            lookup = {"png": "PNG", "jpg": "JPG", "jpeg": "JPG", "webp": "WebP"}
            return lookup.get(value.strip().lower(), value)
        return value

    @field_validator("quality", mode="before")
    @classmethod
    def clamp_quality(cls, value: Any) -> Any:
        try:
            return max(0, min(100, int(round(float(value)))))
        except (TypeError, ValueError):
            return value

    @model_validator(mode="after")
    def check_dimensions(self) -> "ProcessingConfig":
        if self.resize_enabled and (self.target_width <= 0 or self.target_height <= 0):
            raise ValueError("targetWidth and targetHeight must be positive when resize is enabled")
        return self


class ImageMetadata(BaseModel):
    width: int
    height: int
    size: int  # bytes
    format: str


class UploadResponse(BaseModel):
    success: bool = True
    filename: str  # sanitized name on disk
    url: str  # public path, /uploads/<filename>
    size: int
    type: str


class ProcessedFile(BaseModel):
    original: str
    processed: str
    url: str
    metadata: ImageMetadata
    processing_time_ms: int
    status: str = "complete"


class ProcessingResponse(BaseModel):
    success: bool = True
    files: List[ProcessedFile]
    processing_time_ms: int


class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    code: str
