# wassce_parser/services/ocr.py
import asyncio
import io
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import List

import pytesseract
from PIL import Image, UnidentifiedImageError

from wassce_parser.config import settings
from wassce_parser.services.preprocess import preprocess_image

logger = logging.getLogger("services.ocr")

# Ensure pytesseract finds the tesseract exe if provided
if settings.TESSERACT_CMD:
    pytesseract.pytesseract.tesseract_cmd = settings.TESSERACT_CMD


# --------------------------
# Internal OCR runner
# --------------------------
def _ocr_sync(image: Image.Image) -> str:
    """Synchronous OCR of one page; preprocessing included."""
    processed = preprocess_image(image)
    # psm 6: a single uniform block, which suits the results table
    return pytesseract.image_to_string(processed, config="--psm 6") or ""


# --------------------------
# Threaded OCR wrapper
# --------------------------
_executor = ThreadPoolExecutor(max_workers=2)


async def run_ocr(image: Image.Image) -> str:
    """Run OCR in the thread pool so the event loop is not blocked."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(_executor, _ocr_sync, image)


async def ocr_pages(images: List[Image.Image]) -> str:
    texts = []
    for i, img in enumerate(images, start=1):
        text = await run_ocr(img)
        logger.debug("OCR page %d: %d chars", i, len(text))
        texts.append(text)
    return "\n".join(texts)


def load_image(content: bytes) -> Image.Image:
    try:
        return Image.open(io.BytesIO(content)).convert("RGB")
    except UnidentifiedImageError as e:
        raise ValueError("Unsupported or corrupted image") from e


async def ocr_image_bytes(content: bytes) -> str:
    """Plain text from an uploaded JPEG/PNG."""
    return await run_ocr(load_image(content))
