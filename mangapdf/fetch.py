"""Downloading images from URLs."""

from __future__ import annotations

import io
import logging
from urllib.parse import urlsplit

import httpx

from .models import CancelToken, ImageSource, UnsupportedContentTypeError

logger = logging.getLogger(__name__)


def _base_name(path: str) -> str:
    if not path:
        return "."
    stripped = path.rstrip("/")
    if not stripped:
        return "/"
    return stripped.rsplit("/", 1)[-1]


def _filename_for(url: str) -> str:
    parts = urlsplit(url)
    if parts.scheme or url.startswith("/"):
        return _base_name(parts.path)
    return _base_name(url)


def fetch_image(url: str, index: int, token: CancelToken | None = None) -> ImageSource:
    """Download an image and return it as an ImageSource holding the body."""
    logger.debug("Fetching image %s (index %d)", url, index)
    if token is not None:
        token.raise_if_cancelled()

    body = io.BytesIO()
    try:
        with httpx.Client(follow_redirects=True, timeout=None) as client:
            with client.stream("GET", url) as response:
                if response.status_code != 200:
                    raise OSError(
                        f"failed to fetch {url}: status "
                        f"{response.status_code} {response.reason_phrase}"
                    )
                content_type = response.headers.get("content-type", "")
                if not content_type.lower().startswith("image/"):
                    raise UnsupportedContentTypeError(
                        f"unsupported content type from URL: {content_type} from {url}"
                    )
                for chunk in response.iter_bytes():
                    if token is not None:
                        token.raise_if_cancelled()
                    body.write(chunk)
    except httpx.InvalidURL as exc:
        raise ValueError(f"failed to create request for {url}: {exc}") from exc
    except httpx.HTTPError as exc:
        raise OSError(f"failed to fetch {url}: {exc}") from exc

    if token is not None:
        token.raise_if_cancelled()
    body.seek(0)
    return ImageSource(
        original_filename=_filename_for(url),
        reader=body,
        url=url,
        content_type=content_type,
        index=index,
    )