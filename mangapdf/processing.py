"""Decoding and re-encoding of source images before they go into a PDF."""

from __future__ import annotations

import io
import logging
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor

from PIL import Image

from .models import CancelToken, Config, ConversionCancelled, ImageSource, ProcessedImage

logger = logging.getLogger(__name__)

_DECODABLE = ("JPEG", "PNG", "WEBP", "GIF", "BMP", "TIFF")
_PIL_ERRORS = (OSError, ValueError, SyntaxError, Image.DecompressionBombError)
_DIRECT_TYPES = {"image/jpeg": "JPG", "image/jpg": "JPG", "image/png": "PNG"}


class _ImageError(ValueError):
    pass


def _dimensions(data: bytes, name: str) -> tuple[float, float]:
    try:
        with Image.open(io.BytesIO(data), formats=_DECODABLE) as img:
            width, height = img.size
    except _PIL_ERRORS as exc:
        raise _ImageError(f"could not decode image config for {name}: {exc}") from exc
    return float(width), float(height)


def _decode(data: bytes, message: str) -> Image.Image:
    try:
        img = Image.open(io.BytesIO(data), formats=_DECODABLE)
        img.load()
    except _PIL_ERRORS as exc:
        raise _ImageError(f"{message}: {exc}") from exc
    return img


def _prepare_for_jpeg(img: Image.Image) -> Image.Image:
    if img.mode.startswith("I;16"):
        img = img.convert("I").point(lambda v: v * (1 / 256)).convert("L")
    if img.mode in ("RGB", "L", "CMYK"):
        return img
    if img.mode in ("RGBA", "LA", "PA", "RGBa", "La") or (
        img.mode == "P" and "transparency" in img.info
    ):
        rgba = img.convert("RGBA")
        backdrop = Image.new("RGBA", rgba.size, (0, 0, 0, 255))
        return Image.alpha_composite(backdrop, rgba).convert("RGB")
    return img.convert("RGB")


def _encode(img: Image.Image, image_type: str, quality: int, message: str) -> bytes:
    buffer = io.BytesIO()
    try:
        if image_type == "JPG":
            _prepare_for_jpeg(img).save(buffer, "JPEG", quality=quality)
        else:
            img.save(buffer, "PNG")
    except _PIL_ERRORS as exc:
        raise _ImageError(f"{message}: {exc}") from exc
    return buffer.getvalue()


def _cancelled(source: ImageSource) -> ProcessedImage:
    return ProcessedImage(
        index=source.index,
        original_filename=source.original_filename,
        error=ConversionCancelled(),
    )


def _convert(source: ImageSource, data: bytes, config: Config) -> ProcessedImage:
    name = source.original_filename
    content_type = source.content_type

    direct_type = _DIRECT_TYPES.get(content_type)
    if direct_type is not None:
        width, height = _dimensions(data, name)
        return ProcessedImage(source.index, name, None, data, width, height, direct_type)

    if content_type == "image/webp":
        img = _decode(data, f"could not decode webp image {name}")
        encoded = _encode(
            img, "JPG", config.jpeg_quality, f"could not re-encode webp {name} to jpg"
        )
        return ProcessedImage(
            source.index, name, None, encoded, float(img.width), float(img.height), "JPG"
        )

    logger.warning(
        "Potentially unsupported content type %r for %s, attempting to decode",
        content_type,
        name,
    )
    img = _decode(data, f"could not decode image (unknown content type {content_type}) {name}")
    detected = (img.format or "").lower()
    if detected == "png":
        image_type = "PNG"
    elif detected in ("jpeg", "webp"):
        image_type = "JPG"
    else:
        raise _ImageError(
            f"unsupported image format '{detected}' for {name} (content type: {content_type})"
        )
    encoded = _encode(
        img,
        image_type,
        config.jpeg_quality,
        f"could not re-encode {name} (originally {detected}) to {image_type.lower()}",
    )
    return ProcessedImage(
        source.index, name, None, encoded, float(img.width), float(img.height), image_type
    )


def process_single_image(
    source: ImageSource, config: Config, token: CancelToken | None = None
) -> ProcessedImage:
    """Turn one source into a ProcessedImage; failures are reported in its error field."""
    if token is not None and token.cancelled:
        source.close()
        return _cancelled(source)

    if source.reader is None:
        logger.warning("Image source %s has no reader", source.original_filename)
        return ProcessedImage(
            index=source.index,
            original_filename=source.original_filename,
            error=ValueError("image reader is nil"),
        )

    try:
        data = source.reader.read()
    except OSError as exc:
        return ProcessedImage(
            index=source.index,
            original_filename=source.original_filename,
            error=_ImageError(f"could not read image data for {source.original_filename}: {exc}"),
        )
    finally:
        source.close()

    try:
        result = _convert(source, data, config)
    except _ImageError as exc:
        return ProcessedImage(
            index=source.index, original_filename=source.original_filename, error=exc
        )
    logger.debug(
        "Processed %s as %s (%sx%s)",
        source.original_filename,
        result.image_type,
        result.width,
        result.height,
    )
    return result


def process_images_concurrently(
    sources: Iterable[ImageSource], config: Config, token: CancelToken | None = None
) -> list[ProcessedImage]:
    """Process sources on a thread pool; results come back in source order."""
    sources = list(sources)
    if not sources:
        return []
    token = token if token is not None else CancelToken()

    def work(source: ImageSource) -> ProcessedImage:
        if token.cancelled:
            source.close()
            return _cancelled(source)
        return process_single_image(source, config, token)

    with ThreadPoolExecutor(max_workers=max(1, config.num_workers)) as pool:
        futures = [pool.submit(work, source) for source in sources]
        results = [future.result() for future in futures]

    if token.cancelled:
        for result in results:
            if result.error is None:
                result.error = ConversionCancelled()
                result.data = None
    return results