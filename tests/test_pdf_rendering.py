from __future__ import annotations

from io import BytesIO
from types import SimpleNamespace

import pytest
from PIL import Image
from pypdf.errors import PdfReadError

from spendlens.core.errors import UnreadableDocumentError
from spendlens.modules.extraction import documents
from spendlens.modules.extraction.documents import PdfPageRenderer, detect_upload_kind


class _FakeReader:
    pages: list = []

    def __init__(self, stream) -> None:
        self.stream = stream


def _page(*sizes: tuple[int, int], mode: str = "RGB") -> SimpleNamespace:
    return SimpleNamespace(
        images=[SimpleNamespace(image=Image.new(mode, size, "white")) for size in sizes]
    )


def test_each_page_yields_its_largest_image_as_jpeg(monkeypatch):
    reader = type(
        "Reader",
        (_FakeReader,),
        {"pages": [_page((40, 20), (300, 500)), _page(), _page((120, 80), mode="RGBA")]},
    )
    monkeypatch.setattr(documents, "PdfReader", reader)

    images = PdfPageRenderer().render_pages(b"%PDF-1.4")

    assert len(images) == 2
    assert all(img.startswith(b"\xff\xd8") for img in images)
    assert Image.open(BytesIO(images[0])).size == (300, 500)
    assert Image.open(BytesIO(images[1])).size == (120, 80)


def test_unreadable_pdf_raises(monkeypatch):
    def _broken(stream):
        raise PdfReadError("EOF marker not found")

    monkeypatch.setattr(documents, "PdfReader", _broken)

    with pytest.raises(UnreadableDocumentError):
        PdfPageRenderer().render_pages(b"%PDF-1.4 truncated")


@pytest.mark.parametrize(
    ("filename", "content_type", "body", "expected"),
    [
        ("scan.pdf", "application/pdf", b"%PDF-1.7\n", "pdf"),
        ("scan.bin", None, b"\xef\xbb\xbf%PDF-1.7\n", "pdf"),
        ("photo.jpg", "image/jpeg", b"\xff\xd8\xff\xe0....", "image"),
        ("photo", None, b"\x89PNG\r\n\x1a\n....", "image"),
        ("photo.heic", "image/heic", b"\x00\x00\x00\x18ftypheic", "image"),
        ("scan.pdf", "application/pdf", b"<html>not a pdf</html>", "bad_pdf"),
        ("notes.txt", "text/plain", b"hello", "unknown"),
    ],
)
def test_detect_upload_kind(filename, content_type, body, expected):
    assert detect_upload_kind(filename=filename, content_type=content_type, body=body) == expected
