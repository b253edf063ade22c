"""
Processing orchestration: stage inputs, run the converter, describe outputs
"""
import json
import time
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Union
from urllib.parse import urlparse

from pydantic import ValidationError

from ..utils.filenames import processed_filename, sanitize_filename
from .config import Settings
from .converter import ImageConverter
from .errors import ErrorCode, Failure
from .logger import logger
from .models import ImageMetadata, ProcessedFile, ProcessingConfig, ProcessingResponse
from .uploads import IncomingFile
from .validator import validate_upload


@dataclass
class ProcessingInput:
    original_name: str
    path: Path
    temporary: bool = False  # staged copy, removed once processed


def parse_config(raw: Optional[str]) -> Union[ProcessingConfig, Failure]:
    """Parse the JSON config form field; a missing field means defaults"""
    try:
        data = json.loads(raw) if raw else {}
        if not isinstance(data, dict):
            return Failure(ErrorCode.INVALID_CONFIG, "Config must be a JSON object")
        return ProcessingConfig.model_validate(data)
    except json.JSONDecodeError:
        return Failure(ErrorCode.INVALID_CONFIG, "Config is not valid JSON")
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ())) or "config"
        return Failure(ErrorCode.INVALID_CONFIG, f"Invalid config ({field}): {first.get('msg')}")


def parse_references(values: List[str]) -> List[str]:
    """Form values are single references or JSON lists of references"""
    references = []
    for value in values:
        value = value.strip()
        if not value:
            continue
        if value.startswith("["):
            try:
                items = json.loads(value)
            except json.JSONDecodeError:
                items = [value]
            references.extend(str(item) for item in items if item)
        else:
            references.append(value)
    return references


class ProcessingService:
    def __init__(self, settings: Settings, converter: ImageConverter):
        self.settings = settings
        self.converter = converter

    def run(self, uploads: List[IncomingFile], references: List[str],
            raw_config: Optional[str]) -> Union[ProcessingResponse, Failure]:
        """Process submitted files and/or previously uploaded references as one batch"""
        config = parse_config(raw_config)
        if isinstance(config, Failure):
            return config

        total = len(uploads) + len(references)
        if total == 0:
            return Failure(ErrorCode.INVALID_FILE, "No files provided")
        if total > self.settings.max_batch_files:
            return Failure(
                ErrorCode.INVALID_FILE,
                f"Too many files: at most {self.settings.max_batch_files} per request",
            )

        self.settings.ensure_directories()
        inputs: List[ProcessingInput] = []
        try:
            for reference in references:
                resolved = self.resolve_reference(reference)
                if isinstance(resolved, Failure):
                    return resolved
                inputs.append(resolved)

            for incoming in uploads:
                staged = self.stage(incoming)
                if isinstance(staged, Failure):
                    return staged
                inputs.append(staged)

            return self.process(inputs, config)
        finally:
            for item in inputs:
                self._discard(item)

    def resolve_reference(self, reference: str) -> Union[ProcessingInput, Failure]:
        """Map /uploads/<name>, a full URL or a bare name onto the upload directory"""
        name = urlparse(reference).path.replace("\\", "/").rstrip("/").split("/")[-1]
        upload_dir = self.settings.upload_dir.resolve()
        path = upload_dir / name

        if not name or name.startswith(".") or path.resolve().parent != upload_dir or not path.is_file():
            return Failure(ErrorCode.FILE_NOT_FOUND, f"Uploaded file not found: {reference}")
        return ProcessingInput(original_name=name, path=path)

    def stage(self, incoming: IncomingFile) -> Union[ProcessingInput, Failure]:
        """Validate a submitted file and write a temporary copy for the converter"""
        failure = validate_upload(
            incoming.data, incoming.content_type, incoming.filename, self.settings.max_upload_bytes
        )
        if failure:
            return failure

        path = self.settings.upload_dir / f"tmp-{sanitize_filename(incoming.filename)}"
        try:
            path.write_bytes(incoming.data)
        except OSError as e:
            logger.error(f"❌ Failed to stage {path}: {e}")
            return Failure(ErrorCode.WRITE_ERROR, "File failed to write to disk")
        return ProcessingInput(original_name=incoming.filename, path=path, temporary=True)

    def process(self, inputs: List[ProcessingInput], config: ProcessingConfig) -> Union[ProcessingResponse, Failure]:
        """
        Convert every input or none.

        The first converter failure aborts the batch: outputs already written
        are removed and a single PROCESSING_FAILED is returned. A converter
        that raises instead still has the batch's outputs removed. Temporary
        inputs are discarded right after their own conversion either way.
        """
        batch_started = time.monotonic()
        written: List[Path] = []
        files: List[ProcessedFile] = []

        for item in inputs:
            started = time.monotonic()
            output_name = processed_filename(item.original_name, config.output_format.extension)
            output_path = self.settings.processed_dir / output_name

            try:
                result = self.converter.convert(item.path, output_path, config)
                if result.ok:
                    written.append(output_path)
                    result = self.converter.identify(output_path)
            except Exception:
                for path in written + [output_path]:
                    path.unlink(missing_ok=True)
                raise
            finally:
                self._discard(item)

            if not result.ok:
                logger.error(f"❌ Processing failed for {item.original_name}: {result.error}")
                for path in written + [output_path]:
                    path.unlink(missing_ok=True)
                return Failure(ErrorCode.PROCESSING_FAILED, "Failed to process images")

            elapsed_ms = int((time.monotonic() - started) * 1000)
            logger.info(f"✅ Processed {item.original_name} -> {output_name} in {elapsed_ms}ms")
            files.append(ProcessedFile(
                original=item.original_name,
                processed=output_name,
                url=f"/processed/{output_name}",
                metadata=result.metadata,
                processing_time_ms=elapsed_ms,
            ))

        return ProcessingResponse(
            files=files,
            processing_time_ms=int((time.monotonic() - batch_started) * 1000),
        )

    def describe(self, incoming: IncomingFile) -> Union[ImageMetadata, Failure]:
        """Identify a submitted image without keeping it"""
        staged = self.stage(incoming)
        if isinstance(staged, Failure):
            return staged

        try:
            result = self.converter.identify(staged.path)
        finally:
            self._discard(staged)

        if not result.ok:
            logger.warning(f"⚠️ Metadata extraction failed for {incoming.filename}: {result.error}")
            return Failure(ErrorCode.VALIDATION_FAILED, "Failed to validate image")

        metadata = result.metadata
        if metadata.width <= 0 or metadata.height <= 0:
            return Failure(ErrorCode.INVALID_DIMENSIONS, "Invalid image dimensions")
        limit = self.settings.max_image_dimension
        if metadata.width > limit or metadata.height > limit:
            return Failure(ErrorCode.DIMENSIONS_TOO_LARGE, "Image dimensions too large")
        return metadata

    @staticmethod
    def _discard(item: ProcessingInput):
        if item.temporary:
            try:
                item.path.unlink(missing_ok=True)
            except OSError as e:
                logger.warning(f"⚠️ Could not remove temporary file {item.path}: {e}")
