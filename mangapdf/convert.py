"""The entry point that turns a list of image sources into a PDF."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import BinaryIO

from .models import (
    CancelToken,
    Config,
    ConversionCancelled,
    ImageSource,
    NoSupportedImagesError,
)
from .pdfgen import generate_pdf
from .processing import process_images_concurrently

logger = logging.getLogger(__name__)


def _close_all(sources: Iterable[ImageSource]) -> None:
    for source in sources:
        source.close()


def convert_to_pdf(
    sources: Iterable[ImageSource],
    config: Config,
    out: BinaryIO,
    token: CancelToken | None = None,
) -> bool:
    """Convert the sources into a PDF written to ``out``.

    Returns True when content was written. Raises NoSupportedImagesError when
    no image could be used and ConversionCancelled when the token is cancelled.
    All source streams are closed.
    """
    sources = list(sources)
    token = token if token is not None else CancelToken()

    if token.cancelled:
        _close_all(sources)
        raise ConversionCancelled()

    if not sources:
        logger.info("No image sources provided for conversion.")
        raise NoSupportedImagesError()

    valid = []
    for source in sources:
        if source.reader is None and not source.url:
            logger.warning(
                "Skipping image source %s (index %d) with no reader and no URL",
                source.original_filename,
                source.index,
            )
            continue
        valid.append(source)

    if not valid:
        logger.info("No valid image sources after filtering.")
        _close_all(sources)
        raise NoSupportedImagesError()

    logger.info("Processing %d valid image sources", len(valid))
    processed = process_images_concurrently(valid, config, token)

    if token.cancelled:
        logger.info("Cancellation detected before PDF generation.")
        raise ConversionCancelled()

    content_added = generate_pdf(processed, out, token)

    if not content_added:
        if token.cancelled:
            raise ConversionCancelled()
        all_cancelled = all(
            isinstance(item.error, ConversionCancelled) for item in processed
        )
        if processed and all_cancelled:
            raise ConversionCancelled()
        raise NoSupportedImagesError()

    logger.info("PDF conversion completed")
    return content_added