import io

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from magick_api.core.api import create_app
from magick_api.core.config import Settings
from magick_api.core.converter import PillowConverter


def make_image(fmt: str, size=(64, 48), mode="RGB", color=(200, 80, 40)) -> bytes:
    image = Image.new(mode, size, color)
    buffer = io.BytesIO()
    image.save(buffer, format=fmt)
    return buffer.getvalue()


@pytest.fixture
def png_bytes():
    return make_image("PNG")


@pytest.fixture
def tiny_png_bytes():
    return make_image("PNG", size=(10, 10))


@pytest.fixture
def jpeg_bytes():
    return make_image("JPEG")


@pytest.fixture
def webp_bytes():
    return make_image("WEBP")


@pytest.fixture
def settings(tmp_path):
    return Settings(public_dir=tmp_path / "public", converter_backend="pillow", log_level="DEBUG")


@pytest.fixture
def client(settings):
    app = create_app(settings, converter=PillowConverter())
    with TestClient(app) as test_client:
        yield test_client
