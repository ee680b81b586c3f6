"""Assembling processed images into a PDF document, one image per page."""

from __future__ import annotations

import io
import logging
import zlib
from collections.abc import Iterable
from dataclasses import dataclass
from typing import BinaryIO

from PIL import Image

from .models import CancelToken, ConversionCancelled, ProcessedImage

logger = logging.getLogger(__name__)

_PIL_ERRORS = (OSError, ValueError, SyntaxError, Image.DecompressionBombError)
_JPEG_COLOR_SPACES = {"L": "/DeviceGray", "RGB": "/DeviceRGB", "CMYK": "/DeviceCMYK"}


class _PdfError(ValueError):
    pass


@dataclass
class _PdfImage:
    width: int
    height: int
    color_space: str
    filter: str
    stream: bytes
    extra: str = ""
    smask: _PdfImage | None = None


def _num(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return f"{value:.4f}".rstrip("0").rstrip(".")


def _embed_jpeg(data: bytes) -> _PdfImage:
    try:
        with Image.open(io.BytesIO(data), formats=("JPEG",)) as img:
            mode = img.mode
            width, height = img.size
    except _PIL_ERRORS as exc:
        raise _PdfError(f"not a valid JPEG image: {exc}") from exc
    color_space = _JPEG_COLOR_SPACES.get(mode)
    if color_space is None:
        raise _PdfError(f"unsupported JPEG colour mode {mode}")
    extra = " /Decode [1 0 1 0 1 0 1 0]" if mode == "CMYK" else ""
    return _PdfImage(width, height, color_space, "/DCTDecode", data, extra)


def _flatten_png(img: Image.Image) -> tuple[Image.Image, Image.Image | None]:
    if img.mode == "P":
        img = img.convert("RGBA" if "transparency" in img.info else "RGB")
    elif img.mode.startswith("I"):
        img = img.convert("I").point(lambda v: v * (1 / 256)).convert("L")
    elif img.mode == "1":
        img = img.convert("L")

    if img.mode in ("L", "RGB"):
        return img, None
    if img.mode in ("LA", "La"):
        img = img.convert("LA")
        return img.convert("L"), img.getchannel("A")
    if img.mode in ("RGBA", "RGBa", "PA"):
        img = img.convert("RGBA")
        return img.convert("RGB"), img.getchannel("A")
    return img.convert("RGB"), None


def _flate(img: Image.Image) -> _PdfImage:
    color_space = "/DeviceGray" if img.mode == "L" else "/DeviceRGB"
    return _PdfImage(
        img.width, img.height, color_space, "/FlateDecode", zlib.compress(img.tobytes())
    )


def _embed_png(data: bytes) -> _PdfImage:
    try:
        with Image.open(io.BytesIO(data), formats=("PNG",)) as img:
            img.load()
            color, alpha = _flatten_png(img)
    except _PIL_ERRORS as exc:
        raise _PdfError(f"not a valid PNG image: {exc}") from exc
    embedded = _flate(color)
    if alpha is not None:
        embedded.smask = _flate(alpha)
    return embedded


def _embed(data: bytes, image_type: str) -> _PdfImage:
    if image_type == "JPG":
        return _embed_jpeg(data)
    if image_type == "PNG":
        return _embed_png(data)
    raise _PdfError(f"unsupported image type {image_type!r}")


class _PdfDocument:
    """A minimal PDF writer holding one full-page image per page."""

    _CATALOG = 1
    _PAGES = 2

    def __init__(self) -> None:
        self._objects: list[bytes] = [b"", b""]
        self._pages: list[int] = []

    def _add(self, body: bytes) -> int:
        self._objects.append(body)
        return len(self._objects)

    def _add_stream(self, header: str, stream: bytes) -> int:
        return self._add(
            f"<< {header} /Length {len(stream)} >>\nstream\n".encode("ascii")
            + stream
            + b"\nendstream"
        )

    def _add_image(self, image: _PdfImage) -> int:
        smask = ""
        if image.smask is not None:
            smask = f" /SMask {self._add_image(image.smask)} 0 R"
        header = (
            f"/Type /XObject /Subtype /Image /Width {image.width} /Height {image.height}"
            f" /ColorSpace {image.color_space} /BitsPerComponent 8"
            f" /Filter {image.filter}{image.extra}{smask}"
        )
        return self._add_stream(header, image.stream)

    def add_page(self, width: float, height: float, image: _PdfImage) -> None:
        image_ref = self._add_image(image)
        name = f"Im{len(self._pages) + 1}"
        w, h = _num(width), _num(height)
        content = f"q {w} 0 0 {h} 0 0 cm /{name} Do Q".encode("ascii")
        content_ref = self._add_stream("", content)
        page = (
            f"<< /Type /Page /Parent {self._PAGES} 0 R /MediaBox [0 0 {w} {h}]"
            f" /Resources << /XObject << /{name} {image_ref} 0 R >> >>"
            f" /Contents {content_ref} 0 R >>"
        )
        self._pages.append(self._add(page.encode("ascii")))

    def render(self) -> bytes:
        kids = " ".join(f"{ref} 0 R" for ref in self._pages)
        self._objects[self._CATALOG - 1] = (
            f"<< /Type /Catalog /Pages {self._PAGES} 0 R >>".encode("ascii")
        )
        self._objects[self._PAGES - 1] = (
            f"<< /Type /Pages /Kids [{kids}] /Count {len(self._pages)} >>".encode("ascii")
        )

        output = bytearray(b"%PDF-1.4\n%\xe2\xe3\xcf\xd3\n")
        offsets = []
        for number, body in enumerate(self._objects, start=1):
            offsets.append(len(output))
            output += f"{number} 0 obj\n".encode("ascii") + body + b"\nendobj\n"

        xref_position = len(output)
        size = len(self._objects) + 1
        output += f"xref\n0 {size}\n0000000000 65535 f \n".encode("ascii")
        for offset in offsets:
            output += f"{offset:010d} 00000 n \n".encode("ascii")
        output += (
            f"trailer\n<< /Size {size} /Root {self._CATALOG} 0 R >>\n"
            f"startxref\n{xref_position}\n%%EOF\n"
        ).encode("ascii")
        return bytes(output)


def generate_pdf(
    processed: Iterable[ProcessedImage], out: BinaryIO, token: CancelToken | None = None
) -> bool:
    """Write a PDF with one page per usable image to ``out``.

    Images are placed in order of their index; those carrying an error or no
    data are skipped. Returns whether any page was written. Nothing is written
    when no image could be placed.
    """
    images = sorted(processed, key=lambda item: item.index)
    document = _PdfDocument()
    has_content = False

    for item in images:
        if token is not None:
            token.raise_if_cancelled()
        if item.error is not None:
            if isinstance(item.error, ConversionCancelled):
                logger.debug("Skipping %s after cancellation", item.original_filename)
            else:
                logger.warning(
                    "Skipping %s due to processing error: %s", item.original_filename, item.error
                )
            continue
        if item.data is None:
            logger.warning("No data for %s, skipping", item.original_filename)
            continue
        if item.width <= 0 or item.height <= 0:
            logger.warning(
                "Could not add page for %s: invalid size %sx%s",
                item.original_filename,
                item.width,
                item.height,
            )
            continue
        try:
            embedded = _embed(item.data, item.image_type)
        except _PdfError as exc:
            logger.warning("Could not register image %s: %s", item.original_filename, exc)
            continue
        document.add_page(item.width, item.height, embedded)
        has_content = True
        logger.debug("Added %s to PDF", item.original_filename)

    if token is not None:
        token.raise_if_cancelled()

    if has_content:
        out.write(document.render())
    elif images:
        logger.info("No content was added to the PDF (all images skipped or failed).")
    else:
        logger.info("No images processed and no content to add to PDF.")
    return has_content