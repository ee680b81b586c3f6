import io
import re

import pytest
from PIL import Image

from mangapdf.convert import convert_to_pdf
from mangapdf.models import (
    CancelToken,
    ConversionCancelled,
    ImageSource,
    NoSupportedImagesError,
    default_config,
)


def _image_bytes(fmt, width, height):
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), (30, 60, 90)).save(buffer, fmt)
    return buffer.getvalue()


def _source(name, content, content_type, index):
    data = content.encode() if isinstance(content, str) else content
    return ImageSource(
        original_filename=name,
        reader=io.BytesIO(data),
        content_type=content_type,
        index=index,
    )


def _media_boxes(pdf):
    return re.findall(rb"/MediaBox \[0 0 (\d+) (\d+)\]", pdf)


def test_no_sources():
    out = io.BytesIO()
    with pytest.raises(NoSupportedImagesError):
        convert_to_pdf([], default_config(), out)
    assert out.getvalue() == b""


def test_all_sources_error():
    out = io.BytesIO()
    sources = [
        _source("invalid1.txt", "not image", "text/plain", 0),
        _source("invalid2.txt", "not image", "text/plain", 1),
    ]
    with pytest.raises(NoSupportedImagesError):
        convert_to_pdf(sources, default_config(), out)
    assert out.getvalue() == b""
    assert all(source.reader.closed for source in sources)


def test_context_cancellation():
    token = CancelToken()
    token.cancel()
    out = io.BytesIO()
    sources = [_source("dummy.jpg", "dummy content for dummy.jpg", "image/jpeg", 0)]
    with pytest.raises(ConversionCancelled):
        convert_to_pdf(sources, default_config(), out, token)
    assert out.getvalue() == b""
    assert sources[0].reader.closed


def test_dummy_files_labelled_as_images():
    out = io.BytesIO()
    sources = [
        _source("test.jpg", "dummy jpg", "image/jpeg", 0),
        _source("test.png", "dummy png", "image/png", 1),
    ]
    with pytest.raises(NoSupportedImagesError):
        convert_to_pdf(sources, default_config(), out)
    assert out.getvalue() == b""


def test_source_without_reader_or_url_is_rejected():
    sources = [ImageSource(original_filename="nothing", index=0)]
    with pytest.raises(NoSupportedImagesError):
        convert_to_pdf(sources, default_config(), io.BytesIO())


def test_valid_images_produce_pdf_in_index_order():
    sources = [
        _source("b.png", _image_bytes("PNG", 20, 21), "image/png", 1),
        _source("c.webp", _image_bytes("WEBP", 30, 31), "image/webp", 2),
        _source("a.jpg", _image_bytes("JPEG", 10, 11), "image/jpeg", 0),
    ]
    out = io.BytesIO()
    assert convert_to_pdf(sources, default_config(), out) is True
    pdf = out.getvalue()
    assert pdf.startswith(b"%PDF-")
    assert _media_boxes(pdf) == [(b"10", b"11"), (b"20", b"21"), (b"30", b"31")]
    assert all(source.reader.closed for source in sources)


def test_bad_sources_are_skipped_when_others_succeed():
    sources = [
        _source("bad.txt", "this is not an image", "text/plain", 0),
        _source("good.jpg", _image_bytes("JPEG", 16, 9), "image/jpeg", 1),
    ]
    out = io.BytesIO()
    assert convert_to_pdf(sources, default_config(), out) is True
    assert _media_boxes(out.getvalue()) == [(b"16", b"9")]


def test_unknown_content_type_is_sniffed():
    sources = [_source("mystery", _image_bytes("PNG", 7, 5), "", 0)]
    out = io.BytesIO()
    assert convert_to_pdf(sources, default_config(), out) is True
    assert _media_boxes(out.getvalue()) == [(b"7", b"5")]


def test_single_worker_handles_many_sources():
    config = default_config()
    config.num_workers = 1
    sources = [
        _source(f"p{i}.jpg", _image_bytes("JPEG", 10 + i, 10), "image/jpeg", i) for i in range(5)
    ]
    out = io.BytesIO()
    assert convert_to_pdf(sources, config, out) is True
    widths = [int(width) for width, _ in _media_boxes(out.getvalue())]
    assert widths == [10, 11, 12, 13, 14]