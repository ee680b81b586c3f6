import io
import re

import pytest
from PIL import Image

from mangapdf.models import CancelToken, ConversionCancelled, ProcessedImage
from mangapdf.pdfgen import generate_pdf

PAGE_MARK = b"/Type /Page /Parent"


def _jpeg(width, height, color=(200, 10, 10)):
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, "JPEG")
    return buffer.getvalue()


def _png(width, height, mode="RGB"):
    buffer = io.BytesIO()
    fill = (10, 200, 10, 128) if mode == "RGBA" else (10, 200, 10)
    Image.new(mode, (width, height), fill).save(buffer, "PNG")
    return buffer.getvalue()


def _item(index, data, width, height, image_type, error=None):
    return ProcessedImage(
        index=index,
        original_filename=f"img{index}",
        error=error,
        data=data,
        width=float(width),
        height=float(height),
        image_type=image_type,
    )


def _media_boxes(pdf):
    return re.findall(rb"/MediaBox \[0 0 (\d+) (\d+)\]", pdf)


def test_single_jpeg_page():
    out = io.BytesIO()
    has_content = generate_pdf([_item(0, _jpeg(40, 30), 40, 30, "JPG")], out)
    pdf = out.getvalue()
    assert has_content is True
    assert pdf.startswith(b"%PDF-")
    assert pdf.rstrip().endswith(b"%%EOF")
    assert pdf.count(PAGE_MARK) == 1
    assert _media_boxes(pdf) == [(b"40", b"30")]


def test_jpeg_data_is_embedded_unchanged():
    data = _jpeg(12, 8)
    out = io.BytesIO()
    generate_pdf([_item(0, data, 12, 8, "JPG")], out)
    assert data in out.getvalue()


def test_pages_follow_index_order():
    items = [
        _item(2, _png(30, 31), 30, 31, "PNG"),
        _item(0, _jpeg(10, 11), 10, 11, "JPG"),
        _item(1, _jpeg(20, 21), 20, 21, "JPG"),
    ]
    out = io.BytesIO()
    assert generate_pdf(items, out) is True
    assert _media_boxes(out.getvalue()) == [(b"10", b"11"), (b"20", b"21"), (b"30", b"31")]


def test_errored_and_empty_items_are_skipped():
    items = [
        _item(0, None, 10, 10, "JPG", error=ValueError("bad")),
        _item(1, _jpeg(15, 16), 15, 16, "JPG"),
        _item(2, None, 10, 10, "JPG"),
        _item(3, None, 10, 10, "JPG", error=ConversionCancelled()),
    ]
    out = io.BytesIO()
    assert generate_pdf(items, out) is True
    assert _media_boxes(out.getvalue()) == [(b"15", b"16")]


def test_unregistrable_data_is_skipped():
    items = [
        _item(0, b"not a jpeg at all", 10, 10, "JPG"),
        _item(1, _png(9, 9), 9, 9, "JPG"),
        _item(2, _png(14, 13), 14, 13, "PNG"),
    ]
    out = io.BytesIO()
    assert generate_pdf(items, out) is True
    assert _media_boxes(out.getvalue()) == [(b"14", b"13")]


def test_no_usable_images_writes_nothing():
    out = io.BytesIO()
    items = [_item(0, b"garbage", 10, 10, "PNG"), _item(1, None, 5, 5, "JPG", ValueError("x"))]
    assert generate_pdf(items, out) is False
    assert out.getvalue() == b""


def test_empty_input_writes_nothing():
    out = io.BytesIO()
    assert generate_pdf([], out) is False
    assert out.getvalue() == b""


def test_png_with_alpha_gets_soft_mask():
    out = io.BytesIO()
    assert generate_pdf([_item(0, _png(8, 6, "RGBA"), 8, 6, "PNG")], out) is True
    assert b"/SMask" in out.getvalue()


def test_opaque_png_has_no_soft_mask():
    out = io.BytesIO()
    generate_pdf([_item(0, _png(8, 6), 8, 6, "PNG")], out)
    assert b"/SMask" not in out.getvalue()


def test_xref_offsets_point_at_objects():
    out = io.BytesIO()
    generate_pdf(
        [_item(0, _jpeg(10, 10), 10, 10, "JPG"), _item(1, _png(5, 5, "RGBA"), 5, 5, "PNG")],
        out,
    )
    pdf = out.getvalue()
    start = int(re.search(rb"startxref\n(\d+)\n", pdf).group(1))
    assert pdf[start:start + 4] == b"xref"
    entries = re.findall(rb"(\d{10}) 00000 n ", pdf[start:])
    assert entries
    for number, offset in enumerate(entries, start=1):
        position = int(offset)
        assert pdf[position:].startswith(f"{number} 0 obj".encode())


def test_cancelled_token_raises():
    token = CancelToken()
    token.cancel()
    out = io.BytesIO()
    with pytest.raises(ConversionCancelled):
        generate_pdf([_item(0, _jpeg(10, 10), 10, 10, "JPG")], out, token)
    assert out.getvalue() == b""


def test_input_list_is_not_reordered():
    items = [_item(1, _jpeg(10, 10), 10, 10, "JPG"), _item(0, _jpeg(12, 12), 12, 12, "JPG")]
    generate_pdf(items, io.BytesIO())
    assert [item.index for item in items] == [1, 0]