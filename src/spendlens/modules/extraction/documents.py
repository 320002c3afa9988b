from __future__ import annotations

import logging
from io import BytesIO

from pypdf import PdfReader
from pypdf.errors import PdfReadError

from spendlens.core.errors import UnreadableDocumentError
from spendlens.core.logging import get_logger, log_event

logger = get_logger(__name__)


class DocumentRenderer:
    """Turns a multi-page document into one image per page."""

    def render_pages(self, body: bytes) -> list[bytes]:
        raise NotImplementedError


class PdfPageRenderer(DocumentRenderer):
    """
    Uses the largest embedded raster of each page (scanned receipts are one image
    per page). Pages with no raster content are skipped.
    """

    def __init__(self, *, jpeg_quality: int = 90) -> None:
        self.jpeg_quality = jpeg_quality

    def render_pages(self, body: bytes) -> list[bytes]:
        try:
            reader = PdfReader(BytesIO(body))
            pages = list(reader.pages)
        except (PdfReadError, ValueError, OSError) as e:
            raise UnreadableDocumentError(f"PDF could not be read: {e}") from e

        out: list[bytes] = []
        for idx, page in enumerate(pages):
            image = _largest_page_image(page)
            if image is None:
                log_event(logger, "documents.page.no_image", level=logging.WARNING, page=idx)
                continue
            if image.mode not in ("RGB", "L"):
                image = image.convert("RGB")
            buf = BytesIO()
            image.save(buf, format="JPEG", quality=self.jpeg_quality)
            out.append(buf.getvalue())
        log_event(logger, "documents.rendered", page_count=len(pages), image_count=len(out))
        return out


def _largest_page_image(page):
    try:
        page_images = list(page.images)
    except Exception:  # noqa: BLE001 - pypdf raises a wide range of errors on broken streams
        return None

    best_image = None
    best_area = 0
    for image_file in page_images:
        try:
            image = image_file.image
            area = image.width * image.height
        except Exception:  # noqa: BLE001
            continue
        if area > best_area:
            best_area = area
            best_image = image
    return best_image


def looks_like_pdf_bytes(body: bytes) -> bool:
    if not body:
        return False
    b = body.lstrip()
    if b.startswith(b"\xef\xbb\xbf"):
        b = b[3:].lstrip()
    return b.startswith(b"%PDF")


def looks_like_image_bytes(body: bytes) -> bool:
    if not body:
        return False
    b = body.lstrip()
    return (
        b.startswith(b"\x89PNG\r\n\x1a\n")
        or b.startswith(b"\xff\xd8\xff")
        or b.startswith((b"GIF87a", b"GIF89a"))
        or (len(b) >= 12 and b.startswith(b"RIFF") and b[8:12] == b"WEBP")
        or (len(b) >= 12 and b[4:8] == b"ftyp" and b[8:12] in {b"heic", b"heix", b"mif1"})
    )


def detect_upload_kind(*, filename: str, content_type: str | None, body: bytes) -> str:
    if looks_like_pdf_bytes(body):
        return "pdf"
    if looks_like_image_bytes(body):
        return "image"
    ct = (content_type or "").lower()
    if ct.startswith("image/"):
        return "image"
    if filename.lower().endswith(".pdf") or ct.endswith("/pdf"):
        # Claims to be a PDF but the bytes say otherwise.
        return "bad_pdf"
    return "unknown"
