from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union
import io
import logging

from PIL import Image, ImageOps, UnidentifiedImageError

from . import probe
from .errors import CodecError
from .results import CompressionResult, Dimensions, compression_ratio, format_file_size
from .selector import select_settings
from .settings import BYTES_PER_MB, CompressionSettings, UploadOptions


log = logging.getLogger(__name__)

# Maps the decoder's format name to what we write back.
# Anything not listed is re-encoded as JPEG.
SOURCE_TO_OUTPUT = {
    "JPEG": "jpeg",
    "MPO": "jpeg",
    "PNG": "png",
    "WEBP": "webp",
}

FORMAT_TO_EXT = {
    "jpeg": ".jpg",
    "png": ".png",
    "webp": ".webp",
}

LOSSY_FORMATS = {"jpeg", "webp"}

# Size-target search. The output is allowed to stay above the target once
# these run out; dimension and quality caps are always honoured.
QUALITY_STEP = 5
MIN_QUALITY = 40
SHRINK_FACTOR = 0.85
MAX_ITERATIONS = 12


@dataclass(frozen=True)
class EncodedImage:
    data: bytes
    format: str
    dimensions: Dimensions

    @property
    def size(self) -> int:
        return len(self.data)


def encode(data: bytes, settings: CompressionSettings) -> EncodedImage:
    """
    Re-encode `data` so its long edge is at most settings.max_width_or_height.

    Aspect ratio is kept and nothing is cropped. The encoder then tries to
    get under settings.max_output_size_bytes by lowering quality and, when
    quality bottoms out, shrinking further. That target is best-effort.
    """
    try:
        with Image.open(io.BytesIO(data)) as src:
            src.load()
            source_format = (src.format or "").upper()

            # Orientation lives in EXIF, which we don't carry over.
            im = ImageOps.exif_transpose(src)
    except (UnidentifiedImageError, OSError, ValueError, SyntaxError, EOFError, Image.DecompressionBombError) as ex:
        raise CodecError(f"Could not decode image: {ex}") from ex

    out_format = SOURCE_TO_OUTPUT.get(source_format, "jpeg")

    im = _apply_resize(im, settings.max_width_or_height)

    if out_format == "jpeg":
        im = _to_jpeg_mode(im)

    try:
        out = _encode_to_target(im, settings, out_format)
    except (OSError, ValueError) as ex:
        raise CodecError(f"Could not encode image as {out_format}: {ex}") from ex

    return out


def _encode_to_target(im: Image.Image, s: CompressionSettings, out_format: str) -> EncodedImage:
    target = s.max_output_size_bytes
    quality = s.quality_percent
    lossy = out_format in LOSSY_FORMATS

    out = _save(im, out_format, quality)

    for _ in range(MAX_ITERATIONS):
        if len(out) <= target:
            break

        if lossy and quality > MIN_QUALITY:
            quality = max(MIN_QUALITY, quality - QUALITY_STEP)
        else:
            smaller = _shrink(im, SHRINK_FACTOR)
            if smaller is None:
                break
            im = smaller

        out = _save(im, out_format, quality)

    if len(out) > target:
        log.debug(
            "Target %s not reached, settled at %s",
            format_file_size(target),
            format_file_size(len(out)),
        )

    w, h = im.size
    return EncodedImage(data=out, format=out_format, dimensions=Dimensions(width=w, height=h))


def _save(im: Image.Image, out_format: str, quality: int) -> bytes:
    buf = io.BytesIO()
    im.save(buf, format=out_format.upper(), **_build_save_kwargs(out_format, quality))
    return buf.getvalue()


def _build_save_kwargs(out_format: str, quality: int) -> dict:
    kwargs: dict = {}

    if out_format == "jpeg":
        kwargs["quality"] = int(quality)
        kwargs["optimize"] = True
        kwargs["progressive"] = True

    elif out_format == "png":
        kwargs["compress_level"] = 9
        kwargs["optimize"] = True

    elif out_format == "webp":
        kwargs["quality"] = int(quality)
        kwargs["method"] = 4

    return kwargs


def _apply_resize(im: Image.Image, max_edge: int) -> Image.Image:
    """Fit inside a max_edge square. Never upscales."""
    w, h = im.size
    if w <= 0 or h <= 0:
        return im

    if max(w, h) <= max_edge:
        return im

    # Pin the long edge exactly; round the short one.
    if w >= h:
        new_w, new_h = max_edge, max(1, round(h * max_edge / w))
    else:
        new_w, new_h = max(1, round(w * max_edge / h)), max_edge

    return im.resize((new_w, new_h), Image.Resampling.LANCZOS)


def _shrink(im: Image.Image, factor: float) -> Optional[Image.Image]:
    w, h = im.size
    new_w = max(1, int(w * factor))
    new_h = max(1, int(h * factor))

    if (new_w, new_h) == (w, h):
        return None

    return im.resize((new_w, new_h), Image.Resampling.LANCZOS)


def _to_jpeg_mode(im: Image.Image) -> Image.Image:
    if _has_alpha(im):
        return _flatten_alpha(im, (255, 255, 255))
    if im.mode not in ("RGB", "L", "CMYK"):
        return im.convert("RGB")
    return im


def _flatten_alpha(im: Image.Image, background_rgb: tuple[int, int, int]) -> Image.Image:
    rgba = im.convert("RGBA")
    bg = Image.new("RGBA", rgba.size, background_rgb + (255,))
    comp = Image.alpha_composite(bg, rgba)
    return comp.convert("RGB")


def _has_alpha(im: Image.Image) -> bool:
    if im.mode in ("RGBA", "LA", "PA"):
        return True
    if im.mode == "P" and "transparency" in im.info:
        return True
    return False


def compress_image(
    data: bytes,
    file_name: str,
    options: Optional[UploadOptions] = None,
    source: Union[Path, str, None] = None,
) -> CompressionResult:
    """
    Run the whole pipeline for one image: probe, pick settings, encode, measure.

    A failed probe only costs the dimension override. A failed decode or
    encode raises CodecError.
    """
    options = options or UploadOptions()

    original_size = len(data)
    if original_size == 0:
        raise CodecError(f"{file_name}: file is empty")

    size_mb = original_size / BYTES_PER_MB
    log.info("Compressing image: %s, original size: %.2f MB", file_name, size_mb)

    dimensions = probe.try_probe_dimensions(data)

    settings = select_settings(
        size_mb,
        progressive=options.progressive,
        preset=options.preset,
        dimensions=dimensions,
    )
    if options.progressive:
        log.debug("Using progressive compression settings: %s", settings)
    else:
        log.debug("Using preset %s: %s", options.preset, settings)

    try:
        encoded = encode(data, settings)
    except CodecError as ex:
        raise CodecError(f"{file_name}: {ex}") from ex

    ratio = compression_ratio(original_size, encoded.size)

    log.info(
        "Compression complete: %s -> %s, saved %.1f%%",
        format_file_size(original_size),
        format_file_size(encoded.size),
        ratio,
    )

    return CompressionResult(
        compressed=encoded.data,
        source=source if source is not None else file_name,
        file_name=file_name,
        original_size=original_size,
        compressed_size=encoded.size,
        compression_ratio=ratio,
        dimensions=dimensions,
        settings=settings,
        format=encoded.format,
        output_dimensions=encoded.dimensions,
    )


def compress_file(path: Path, options: Optional[UploadOptions] = None) -> CompressionResult:
    path = Path(path)

    try:
        data = path.read_bytes()
    except OSError as ex:
        raise CodecError(f"{path.name}: could not read file: {ex}") from ex

    return compress_image(data, path.name, options, source=path)


def output_name(file_name: str, out_format: str, suffix: str = "") -> str:
    """photo.HEIC + jpeg -> photo.jpg"""
    stem = Path(file_name).stem or "image"
    return f"{stem}{suffix}{FORMAT_TO_EXT[out_format]}"
