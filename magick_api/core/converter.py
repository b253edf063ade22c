"""
Image conversion backends.

The API only talks to ImageConverter: convert() writes an output file for a
ProcessingConfig, identify() reads width/height/format. ImageMagickConverter
shells out to `magick`/`convert` and `identify`; PillowConverter does the
same work in-process.
"""
import shutil
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from PIL import Image, ImageDraw, ImageFilter, ImageFont, ImageOps

from .logger import logger
from .models import ImageMetadata, ProcessingConfig

WATERMARK_MARGIN = 10
WATERMARK_POINTSIZE = 24


@dataclass
class ConversionResult:
    ok: bool
    output_path: Optional[Path] = None
    metadata: Optional[ImageMetadata] = None
    error: Optional[str] = None

    @classmethod
    def failed(cls, error: str) -> "ConversionResult":
        return cls(ok=False, error=error)


class ImageConverter(ABC):
    name = "base"

    @abstractmethod
    def convert(self, input_path: Path, output_path: Path, options: ProcessingConfig) -> ConversionResult:
        ...

    @abstractmethod
    def identify(self, path: Path) -> ConversionResult:
        ...


class ImageMagickConverter(ImageConverter):
    name = "imagemagick"

    def __init__(self, binary: Optional[str] = None, identify_binary: Optional[str] = None,
                 timeout: Optional[float] = None):
        self.timeout = timeout
        self.convert_cmd, self.identify_cmd = self._toolchain(binary, identify_binary)

    @staticmethod
    def _toolchain(binary, identify_binary):
        # ImageMagick 7 ships a single `magick` binary; 6 has convert + identify
        if binary:
            convert_cmd = [binary]
        elif shutil.which("magick"):
            convert_cmd = ["magick"]
        else:
            convert_cmd = ["convert"]

        if identify_binary:
            identify_cmd = [identify_binary]
        elif convert_cmd[0].endswith("magick"):
            identify_cmd = [convert_cmd[0], "identify"]
        else:
            identify_cmd = ["identify"]
        return convert_cmd, identify_cmd

    def build_command(self, input_path: Path, output_path: Path, options: ProcessingConfig) -> List[str]:
        cmd = self.convert_cmd + [str(input_path)]

        if options.resize_enabled:
            geometry = f"{options.target_width}x{options.target_height}"
            if not options.maintain_aspect_ratio:
                geometry += "!"
            cmd += ["-resize", geometry]

        if options.color_correction:
            cmd += ["-auto-level", "-normalize"]

        if options.sharpen:
            cmd += ["-sharpen", "0x1"]

        if options.watermark and options.watermark_text:
            cmd += [
                "-gravity", "southeast",
                "-pointsize", str(WATERMARK_POINTSIZE),
                "-fill", "rgba(255,255,255,0.6)",
                "-annotate", f"+{WATERMARK_MARGIN}+{WATERMARK_MARGIN}",
                _escape_annotation(options.watermark_text),
            ]

        cmd += ["-quality", str(options.quality), str(output_path)]
        return cmd

    def _run(self, cmd: List[str]) -> subprocess.CompletedProcess:
        return subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout)

    def convert(self, input_path: Path, output_path: Path, options: ProcessingConfig) -> ConversionResult:
        cmd = self.build_command(input_path, output_path, options)
        logger.debug(f"Running: {' '.join(cmd)}")
        try:
            proc = self._run(cmd)
        except (OSError, subprocess.SubprocessError) as e:
            return ConversionResult.failed(f"Could not run {cmd[0]}: {e}")

        if proc.returncode != 0:
            return ConversionResult.failed(proc.stderr.strip() or f"{cmd[0]} exited with {proc.returncode}")
        if not output_path.exists():
            return ConversionResult.failed(f"{cmd[0]} did not write {output_path.name}")
        return ConversionResult(ok=True, output_path=output_path)

    def identify(self, path: Path) -> ConversionResult:
        cmd = self.identify_cmd + ["-ping", "-format", "%m|%w|%h\n", str(path)]
        try:
            proc = self._run(cmd)
        except (OSError, subprocess.SubprocessError) as e:
            return ConversionResult.failed(f"Could not run {cmd[0]}: {e}")

        if proc.returncode != 0 or not proc.stdout.strip():
            return ConversionResult.failed(proc.stderr.strip() or "identify returned no data")

        # Multi-frame images print one record per frame; the first is enough
        parts = proc.stdout.strip().splitlines()[0].split("|")
        try:
            fmt, width, height = parts[0].strip(), int(parts[1]), int(parts[2])
        except (IndexError, ValueError):
            return ConversionResult.failed(f"Unexpected identify output: {proc.stdout.strip()!r}")

        metadata = ImageMetadata(width=width, height=height, size=path.stat().st_size, format=fmt)
        return ConversionResult(ok=True, output_path=path, metadata=metadata)


def _escape_annotation(text: str) -> str:
    # -annotate reads a file for a leading "@" and expands "%" escapes
    return text.lstrip("@").replace("%", "%%")


class PillowConverter(ImageConverter):
    name = "pillow"

    def convert(self, input_path: Path, output_path: Path, options: ProcessingConfig) -> ConversionResult:
        try:
            with Image.open(input_path) as source:
                image = source.convert("RGBA") if source.mode not in ("RGB", "RGBA", "L") else source.copy()

            if options.resize_enabled:
                size = (options.target_width, options.target_height)
                if options.maintain_aspect_ratio:
                    image = ImageOps.contain(image, size, Image.Resampling.LANCZOS)
                else:
                    image = image.resize(size, Image.Resampling.LANCZOS)

            if options.color_correction:
                image = _autocontrast(image)

            if options.sharpen:
                image = image.filter(ImageFilter.SHARPEN)

            if options.watermark and options.watermark_text:
                image = _draw_watermark(image, options.watermark_text)

            save_format = options.output_format.pillow_format
            if save_format == "JPEG":
                # Convert RGBA to RGB for JPEG (no transparency support)
                if image.mode != "RGB":
                    image = image.convert("RGB")
                image.save(output_path, format=save_format, quality=options.quality, optimize=True)
            elif save_format == "WEBP":
                image.save(output_path, format=save_format, quality=options.quality)
            else:
                image.save(output_path, format=save_format)
        except (OSError, ValueError, Image.DecompressionBombError) as e:
            return ConversionResult.failed(f"Pillow could not convert {input_path.name}: {e}")

        return ConversionResult(ok=True, output_path=output_path)

    def identify(self, path: Path) -> ConversionResult:
        try:
            with Image.open(path) as image:
                width, height = image.size
                fmt = image.format or path.suffix.lstrip(".").upper()
        except (OSError, ValueError, Image.DecompressionBombError) as e:
            return ConversionResult.failed(f"Pillow could not read {path.name}: {e}")

        metadata = ImageMetadata(width=width, height=height, size=path.stat().st_size, format=fmt)
        return ConversionResult(ok=True, output_path=path, metadata=metadata)


def _autocontrast(image: Image.Image) -> Image.Image:
    if image.mode == "RGBA":
        alpha = image.getchannel("A")
        corrected = ImageOps.autocontrast(image.convert("RGB"))
        corrected.putalpha(alpha)
        return corrected
    return ImageOps.autocontrast(image)


def _draw_watermark(image: Image.Image, text: str) -> Image.Image:
    base = image.convert("RGBA")
    overlay = Image.new("RGBA", base.size, (0, 0, 0, 0))
    draw = ImageDraw.Draw(overlay)
    font = ImageFont.load_default()

    left, top, right, bottom = draw.textbbox((0, 0), text, font=font)
    x = max(0, base.width - (right - left) - WATERMARK_MARGIN)
    y = max(0, base.height - (bottom - top) - WATERMARK_MARGIN)
    draw.text((x, y), text, font=font, fill=(255, 255, 255, 153))

    watermarked = Image.alpha_composite(base, overlay)
    return watermarked if image.mode == "RGBA" else watermarked.convert(image.mode)


def build_converter(settings) -> ImageConverter:
    """Pick the backend named by settings.converter_backend"""
    backend = (settings.converter_backend or "imagemagick").lower()
    if backend == "pillow":
        return PillowConverter()
    if backend != "imagemagick":
        raise ValueError(f"Unknown converter backend: {settings.converter_backend}")
    return ImageMagickConverter(
        binary=settings.imagemagick_binary,
        identify_binary=settings.imagemagick_identify,
        timeout=settings.converter_timeout_seconds,
    )
