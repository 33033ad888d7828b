# wassce_parser/utils/file_handler.py
import io
import logging
from typing import Callable, Iterable, List, Optional

import pdfplumber
from pdf2image import convert_from_bytes
from PIL import Image

from wassce_parser.errors import FileTooLarge, UnsupportedMediaType

logger = logging.getLogger("file_handler")

PDF_MEDIA_TYPE = "application/pdf"
IMAGE_MEDIA_TYPES = ("image/jpeg", "image/jpg", "image/png")

SizeCheck = Callable[[int], None]


def is_pdf(media_type: Optional[str]) -> bool:
    return (media_type or "").lower() == PDF_MEDIA_TYPE


def is_image(media_type: Optional[str]) -> bool:
    return (media_type or "").lower() in IMAGE_MEDIA_TYPES


def check_media_type(media_type: Optional[str], allowed: Iterable[str]) -> None:
    if (media_type or "").lower() not in {a.lower() for a in allowed}:
        raise UnsupportedMediaType(media_type)


def make_size_check(max_bytes: int) -> SizeCheck:
    """Size check to inject into the pipeline; raises FileTooLarge."""
    def check(size: int) -> None:
        if size > max_bytes:
            raise FileTooLarge(size, max_bytes)
    return check


def pdf_text_layer(pdf_bytes: bytes) -> str:
    """
    Extract the embedded text layer, page by page, joined in page order.
    Scanned PDFs come back empty.
    """
    pages: List[str] = []
    with pdfplumber.open(io.BytesIO(pdf_bytes)) as pdf:
        for page in pdf.pages:
            pages.append(page.extract_text() or "")
    logger.debug("PDF text layer: %d pages, %d chars", len(pages), sum(len(p) for p in pages))
    return "\n".join(pages).strip()


def pdf_bytes_to_images(pdf_bytes: bytes, dpi: int = 300, poppler_path: Optional[str] = None) -> List[Image.Image]:
    """
    Convert PDF bytes into a list of PIL.Image objects (RGB).
    On Windows, pass poppler_path from settings if poppler not on PATH.
    """
    try:
        pages = convert_from_bytes(pdf_bytes, dpi=dpi, poppler_path=poppler_path)
        return [p.convert("RGB") for p in pages]
    except Exception:
        logger.exception("pdf2image conversion failed")
        raise
