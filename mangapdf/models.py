"""Core data types shared by the conversion pipeline."""

from __future__ import annotations

import os
import threading
from dataclasses import dataclass, field
from typing import BinaryIO


class ConversionCancelled(Exception):
    """Raised when a conversion is cancelled before it completes."""

    def __init__(self, message: str = "conversion cancelled") -> None:
        super().__init__(message)


class NoSupportedImagesError(Exception):
    """Raised when no supported image could be processed."""

    def __init__(self, message: str = "no supported images were successfully processed") -> None:
        super().__init__(message)


class UnsupportedContentTypeError(Exception):
    """Raised when a URL serves something other than an image."""

    def __init__(self, message: str = "unsupported content type from URL") -> None:
        super().__init__(message)


@dataclass
class Config:
    """Settings for a conversion run."""

    jpeg_quality: int = 90
    num_workers: int = field(default_factory=lambda: os.cpu_count() or 1)
    output_filename: str = "converted.pdf"


def default_config() -> Config:
    """Return a configuration with the default values."""
    return Config()


@dataclass
class ImageSource:
    """One image to convert: an open binary stream plus what is known about it."""

    original_filename: str
    reader: BinaryIO | None = None
    url: str = ""
    content_type: str = ""
    index: int = 0

    def close(self) -> None:
        """Close the underlying stream, if there is one."""
        if self.reader is not None:
            self.reader.close()


@dataclass
class ProcessedImage:
    """An image ready to be placed on a PDF page, or the error that stopped it."""

    index: int
    original_filename: str
    error: Exception | None = None
    data: bytes | None = None
    width: float = 0.0
    height: float = 0.0
    image_type: str = ""


class CancelToken:
    """A thread-safe flag used to cancel a running conversion."""

    def __init__(self) -> None:
        self._event = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        """Mark the operation as cancelled."""
        self._event.set()

    def raise_if_cancelled(self) -> None:
        """Raise ConversionCancelled if cancel() has been called."""
        if self._event.is_set():
            raise ConversionCancelled()


_CONTENT_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
}


def content_type_from_filename(filename: str) -> str:
    """Guess an image content type from a file extension; empty if unknown."""
    base = filename.rsplit("/", 1)[-1]
    dot = base.rfind(".")
    extension = base[dot:].lower() if dot >= 0 else ""
    return _CONTENT_TYPES.get(extension, "")