import json

import pytest
from PIL import Image

from magick_api.core.converter import ConversionResult, ImageConverter, PillowConverter
from magick_api.core.errors import ErrorCode, Failure
from magick_api.core.processing import ProcessingService, parse_config, parse_references
from magick_api.core.uploads import IncomingFile


class FailingConverter(ImageConverter):
    """Converts the first `succeed` inputs with Pillow, then fails"""
    name = "failing"

    def __init__(self, succeed=0):
        self.succeed = succeed
        self.pillow = PillowConverter()
        self.calls = []

    def convert(self, input_path, output_path, options):
        self.calls.append(input_path)
        if len(self.calls) > self.succeed:
            return ConversionResult.failed("boom")
        return self.pillow.convert(input_path, output_path, options)

    def identify(self, path):
        return self.pillow.identify(path)


@pytest.fixture
def service(settings):
    settings.ensure_directories()
    return ProcessingService(settings, PillowConverter())


def store_upload(settings, name, data):
    path = settings.upload_dir / name
    path.write_bytes(data)
    return path


def test_parse_config_defaults_and_errors():
    assert parse_config(None).output_format.value == "PNG"
    assert parse_config("{not json").code == ErrorCode.INVALID_CONFIG
    assert parse_config("[1, 2]").code == ErrorCode.INVALID_CONFIG
    failure = parse_config(json.dumps({"resize": True, "width": 0, "height": 10}))
    assert failure.code == ErrorCode.INVALID_CONFIG


def test_parse_references():
    assert parse_references(["/uploads/a.png", '["/uploads/b.png", "c.png"]', " "]) == [
        "/uploads/a.png", "/uploads/b.png", "c.png",
    ]


def test_process_reference_to_jpg(service, settings, png_bytes):
    store_upload(settings, "cat-1-abc.png", png_bytes)
    config = json.dumps({"outputFormat": "JPG", "resize": True, "width": 100, "height": 100})

    result = service.run([], ["/uploads/cat-1-abc.png"], config)

    assert len(result.files) == 1
    processed = result.files[0]
    assert processed.url.endswith(".jpg")
    assert processed.url == f"/processed/{processed.processed}"
    assert processed.original == "cat-1-abc.png"
    assert processed.status == "complete"
    assert processed.metadata.format == "JPEG"
    assert (settings.processed_dir / processed.processed).exists()
    # References are not temporary copies
    assert (settings.upload_dir / "cat-1-abc.png").exists()


def test_submitted_files_are_staged_and_removed(service, settings, png_bytes, jpeg_bytes):
    uploads = [
        IncomingFile("one.png", "image/png", png_bytes),
        IncomingFile("two.jpg", "image/jpeg", jpeg_bytes),
    ]
    result = service.run(uploads, [], json.dumps({"outputFormat": "webp"}))

    assert [f.original for f in result.files] == ["one.png", "two.jpg"]
    assert all(f.processed.endswith(".webp") for f in result.files)
    assert list(settings.upload_dir.iterdir()) == []


def test_failure_aborts_batch_and_cleans_up(settings, png_bytes):
    settings.ensure_directories()
    converter = FailingConverter(succeed=1)
    service = ProcessingService(settings, converter)
    uploads = [IncomingFile(f"{i}.png", "image/png", png_bytes) for i in range(3)]

    result = service.run(uploads, [], None)

    assert isinstance(result, Failure)
    assert result.code == ErrorCode.PROCESSING_FAILED
    assert result.status_code == 500
    assert len(converter.calls) == 2
    assert list(settings.upload_dir.iterdir()) == []
    assert list(settings.processed_dir.iterdir()) == []


def test_missing_reference(service):
    result = service.run([], ["/uploads/ghost.png"], None)
    assert result.code == ErrorCode.FILE_NOT_FOUND
    assert result.status_code == 404


@pytest.mark.parametrize("reference", ["../secret.png", "/uploads/..", "/uploads/", "/etc/passwd"])
def test_reference_cannot_escape_upload_dir(service, settings, reference):
    (settings.public_dir / "secret.png").write_bytes(b"x")
    assert service.resolve_reference(reference).code == ErrorCode.FILE_NOT_FOUND


def test_invalid_submitted_file_is_rejected(service, settings):
    uploads = [IncomingFile("fake.png", "image/png", b"not an image at all")]
    result = service.run(uploads, [], None)
    assert result.code == ErrorCode.INVALID_FILE_TYPE
    assert list(settings.upload_dir.iterdir()) == []


def test_no_files(service):
    assert service.run([], [], None).code == ErrorCode.INVALID_FILE


def test_too_many_files(service, settings, png_bytes):
    uploads = [IncomingFile(f"{i}.png", "image/png", png_bytes) for i in range(settings.max_batch_files + 1)]
    assert service.run(uploads, [], None).code == ErrorCode.INVALID_FILE


def test_describe(service, settings, png_bytes):
    metadata = service.describe(IncomingFile("photo.png", "image/png", png_bytes))
    assert (metadata.width, metadata.height, metadata.format) == (64, 48, "PNG")
    assert metadata.size == len(png_bytes)
    assert list(settings.upload_dir.iterdir()) == []


def test_describe_rejects_huge_dimensions(settings, png_bytes):
    settings.ensure_directories()
    settings.max_image_dimension = 32
    service = ProcessingService(settings, PillowConverter())
    result = service.describe(IncomingFile("photo.png", "image/png", png_bytes))
    assert result.code == ErrorCode.DIMENSIONS_TOO_LARGE


def test_describe_unreadable_image(service):
    data = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64
    result = service.describe(IncomingFile("photo.png", "image/png", data))
    assert result.code == ErrorCode.VALIDATION_FAILED


def test_oversized_image_fails_batch_and_removes_earlier_outputs(service, settings, png_bytes, tiny_png_bytes,
                                                                monkeypatch):
    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 1000)
    uploads = [
        IncomingFile("small.png", "image/png", tiny_png_bytes),
        IncomingFile("huge.png", "image/png", png_bytes),
    ]

    result = service.run(uploads, [], None)

    assert result.code == ErrorCode.PROCESSING_FAILED
    assert list(settings.upload_dir.iterdir()) == []
    assert list(settings.processed_dir.iterdir()) == []


class RaisingConverter(FailingConverter):
    """Converts the first `succeed` inputs, then raises"""

    def convert(self, input_path, output_path, options):
        self.calls.append(input_path)
        if len(self.calls) > self.succeed:
            raise RuntimeError("converter crashed")
        return self.pillow.convert(input_path, output_path, options)


def test_converter_exception_still_removes_batch_outputs(settings, png_bytes):
    settings.ensure_directories()
    service = ProcessingService(settings, RaisingConverter(succeed=1))
    uploads = [IncomingFile(f"{i}.png", "image/png", png_bytes) for i in range(3)]

    with pytest.raises(RuntimeError):
        service.run(uploads, [], None)

    assert list(settings.upload_dir.iterdir()) == []
    assert list(settings.processed_dir.iterdir()) == []


def test_describe_oversized_image_is_a_validation_failure(service, png_bytes, monkeypatch):
    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 1000)
    result = service.describe(IncomingFile("photo.png", "image/png", png_bytes))
    assert result.code == ErrorCode.VALIDATION_FAILED
    assert result.status_code == 400
