"""HTTP handlers for the image-to-PDF conversion service."""

from __future__ import annotations

import io
import json
import logging
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from typing import Any, BinaryIO

from werkzeug.exceptions import HTTPException
from werkzeug.wrappers import Request, Response

from .convert import convert_to_pdf
from .fetch import fetch_image
from .models import (
    CancelToken,
    Config,
    ConversionCancelled,
    ImageSource,
    NoSupportedImagesError,
    UnsupportedContentTypeError,
    content_type_from_filename,
    default_config,
)

logger = logging.getLogger(__name__)

Converter = Callable[[list[ImageSource], Config, BinaryIO, CancelToken], bool]

_CONFIG_FIELDS = {
    "jpegquality": "jpeg_quality",
    "numworkers": "num_workers",
    "outputfilename": "output_filename",
}
_FETCH_ERRORS = (OSError, ValueError, UnsupportedContentTypeError, ConversionCancelled)


class ApiError(Exception):
    """An error that is answered with a JSON body and an HTTP status."""

    def __init__(self, message: str, details: Any = None, status: int = 400) -> None:
        super().__init__(message)
        self.message = message
        self.details = details
        self.status = status


def _json_response(payload: Any, status: int) -> Response:
    body = json.dumps(payload, separators=(",", ":")) + "\n"
    return Response(body, status=status, mimetype="application/json")


def _error_response(error: ApiError) -> Response:
    payload: dict[str, Any] = {"error": error.message}
    if error.details is not None:
        payload["details"] = error.details
    return _json_response(payload, error.status)


def _parse_config(text: str) -> Config:
    config = default_config()
    if not text:
        logger.debug("No 'config' provided, using default config")
        return config
    try:
        raw = json.loads(text)
    except json.JSONDecodeError as exc:
        logger.warning("Failed to parse 'config' JSON: %s", exc)
        raise ApiError("Invalid 'config' JSON", str(exc)) from exc
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ApiError("Invalid 'config' JSON", "config must be a JSON object")

    for key, value in raw.items():
        attr = _CONFIG_FIELDS.get(key.replace("_", "").lower())
        if attr is None or value is None:
            continue
        expected = str if attr == "output_filename" else int
        if isinstance(value, bool) or not isinstance(value, expected):
            kind = "a string" if expected is str else "an integer"
            raise ApiError("Invalid 'config' JSON", f"field {key!r} must be {kind}")
        setattr(config, attr, value)

    defaults = default_config()
    if not 1 <= config.jpeg_quality <= 100:
        logger.warning("Invalid JPEG quality %d in config, using default", config.jpeg_quality)
        config.jpeg_quality = defaults.jpeg_quality
    if config.num_workers <= 0:
        logger.warning("Invalid worker count %d in config, using default", config.num_workers)
        config.num_workers = defaults.num_workers
    logger.debug("Parsed config: %s", config)
    return config


def _parse_urls(text: str) -> list[str]:
    if not text:
        return []
    try:
        raw = json.loads(text)
    except json.JSONDecodeError as exc:
        logger.warning("Failed to parse 'image_urls' JSON: %s", exc)
        raise ApiError("Invalid 'image_urls' JSON", str(exc)) from exc
    if raw is None:
        return []
    if not isinstance(raw, list) or not all(isinstance(url, str) for url in raw):
        raise ApiError("Invalid 'image_urls' JSON", "image_urls must be a JSON array of strings")
    return raw


def _fetch_all(
    urls: list[str], first_index: int, token: CancelToken
) -> tuple[list[ImageSource], list[str]]:
    def fetch(item: tuple[int, str]) -> tuple[ImageSource | None, str | None]:
        index, url = item
        try:
            return fetch_image(url, index, token), None
        except _FETCH_ERRORS as exc:
            logger.warning("Failed to fetch image from %s: %s", url, exc)
            return None, f"Failed to fetch {url}: {exc}"

    with ThreadPoolExecutor(max_workers=len(urls)) as pool:
        results = list(pool.map(fetch, enumerate(urls, start=first_index)))

    fetched = [source for source, _ in results if source is not None]
    errors = [error for _, error in results if error is not None]
    return fetched, errors


def _output_filename(name: str) -> str:
    name = name or "converted.pdf"
    name = name.replace("/", "_").replace('"', "")
    if not name.lower().endswith(".pdf"):
        name += ".pdf"
    return name


def _form_data(request: Request) -> tuple[Any, Any]:
    if request.mimetype != "multipart/form-data":
        raise ApiError(
            "Failed to parse request data", "request Content-Type isn't multipart/form-data"
        )
    if not request.mimetype_params.get("boundary"):
        raise ApiError("Failed to parse request data", "no multipart boundary param in Content-Type")
    try:
        return request.form, request.files
    except HTTPException as exc:
        raise ApiError("Failed to parse request data", exc.description) from exc


def _convert_request(
    request: Request,
    converter: Converter,
    token: CancelToken,
    sources: list[ImageSource],
) -> Response:
    if request.method != "POST":
        raise ApiError("Invalid request method", "Only POST is allowed", 405)

    form, files = _form_data(request)
    config = _parse_config(form.get("config", ""))

    uploads = files.getlist("images")
    for upload in uploads:
        filename = upload.filename or ""
        content_type = upload.mimetype
        if not content_type or content_type == "application/octet-stream":
            content_type = content_type_from_filename(filename)
            logger.debug("Guessed content type %r for %s", content_type, filename)
        sources.append(
            ImageSource(
                original_filename=filename,
                reader=upload.stream,
                content_type=content_type,
                index=len(sources),
            )
        )

    urls = _parse_urls(form.get("image_urls", ""))
    if urls:
        fetched, url_errors = _fetch_all(urls, len(sources), token)
        if url_errors and not fetched and not uploads:
            logger.warning("All image URL fetches failed: %s", "; ".join(url_errors))
            raise ApiError(
                "Failed to fetch any images from URLs and no files uploaded.", url_errors, 422
            )
        if url_errors:
            logger.warning("Some image URL fetches failed: %s", "; ".join(url_errors))
        sources.extend(fetched)

    if not sources:
        raise ApiError("No images provided", "Please upload files or provide image URLs.")

    sources.sort(key=lambda source: source.index)
    logger.info("Starting PDF conversion of %d sources", len(sources))

    out = io.BytesIO()
    try:
        has_content = converter(list(sources), config, out, token)
    except ConversionCancelled as exc:
        raise ApiError(
            "PDF conversion timed out or was canceled by client", str(exc), 504
        ) from exc
    except NoSupportedImagesError as exc:
        raise ApiError("No images could be processed into the PDF", str(exc), 422) from exc
    except UnsupportedContentTypeError as exc:
        raise ApiError("Unsupported image content type from URL", str(exc), 422) from exc
    except Exception as exc:
        logger.error("PDF conversion failed: %s", exc)
        raise ApiError("Failed to convert images to PDF", str(exc), 500) from exc

    if not has_content:
        raise ApiError(
            "No content added to PDF",
            "All provided images might have been invalid, corrupted, or unsupported.",
            422,
        )

    filename = _output_filename(config.output_filename)
    pdf = out.getvalue()
    logger.info("Generated PDF %s (%d bytes)", filename, len(pdf))
    response = Response(pdf, status=200, mimetype="application/pdf")
    response.headers["Content-Disposition"] = f'attachment; filename="{filename}"'
    response.headers["Content-Length"] = str(len(pdf))
    return response


def handle_convert(
    request: Request,
    converter: Converter = convert_to_pdf,
    token: CancelToken | None = None,
) -> Response:
    """Answer a conversion request with a PDF or a JSON error."""
    if token is None:
        token = CancelToken()
    sources: list[ImageSource] = []
    try:
        return _convert_request(request, converter, token, sources)
    except ApiError as error:
        for source in sources:
            source.close()
        return _error_response(error)


def create_app(converter: Converter = convert_to_pdf) -> Callable[..., Any]:
    """Build the WSGI application serving /convert and /health."""

    def app(environ: dict[str, Any], start_response: Callable[..., Any]) -> Any:
        request = Request(environ)
        if request.path == "/convert":
            response = handle_convert(request, converter)
        elif request.path == "/health":
            response = _json_response({"status": "ok"}, 200)
        else:
            response = Response("404 page not found\n", status=404, mimetype="text/plain")
        return response(environ, start_response)

    return app