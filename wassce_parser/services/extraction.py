# wassce_parser/services/extraction.py
"""
ExtractionAdapter: results slip (image or PDF bytes) -> RawExtraction.

Two backends, tried in order and never in parallel:
1. the generative backend (vision prompt for images, text prompt over the
   PDF text layer)
2. OCR (images, scanned PDFs) or the PDF text layer, fed to the regex scanner

The caller sees one success or one ExtractionFailed carrying both diagnostics.
An empty subject list is a success.
"""
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from wassce_parser.config import settings
from wassce_parser.errors import ExtractionFailed, MalformedServiceResponse, UnsupportedMediaType
from wassce_parser.schemas import RawExtractedSubject, RawExtraction
from wassce_parser.services import heuristics, ocr
from wassce_parser.services.llm_client import GenerativeBackend, parse_json_object
from wassce_parser.utils import file_handler

logger = logging.getLogger("services.extraction")

_RESPONSE_SHAPE = """{
  "studentInfo": {
    "name": "string or null",
    "certificateType": "WASSCE or SSSCE or GBCE or null"
  },
  "courseOffered": "Science or Arts or Business or Technical or Agricultural or null",
  "extractedSubjects": [
    {
      "name": "subject name",
      "grade": "A1 or B2 or B3 or C4 or C5 or C6 or D7 or E8 or F9"
    }
  ]
}"""

VISION_PROMPT = f"""Analyze this WASSCE results image and extract the student information, course offered, and grades. Return ONLY a valid JSON object with this exact structure:

{_RESPONSE_SHAPE}

Look for the RESULTS section and extract subject names with their corresponding grades. Also look for the course/program offered (like Science, Arts, Business, etc.). Return ONLY the JSON object, no explanations or additional text."""

TEXT_PROMPT = """Extract student information, course offered, and grades from this WASSCE results document. Return ONLY a valid JSON object with this exact structure:

{shape}

Look for the course/program offered (like Science, Arts, Business, etc.) in the document. Document text:
{text}

Return ONLY the JSON object, no explanations or additional text."""

# text sent to the model is capped; the slip itself is short
MAX_PROMPT_TEXT = 15000

OcrImage = Callable[[bytes], Awaitable[str]]
TextLayer = Callable[[bytes], str]
OcrPdf = Callable[[bytes], Awaitable[str]]


def _opt_str(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip() and value.strip().lower() != "null":
        return value.strip()
    return None


def raw_extraction_from_reply(reply: str, source_text: str) -> RawExtraction:
    """
    Validate a generative reply of the documented shape.
    Raises MalformedServiceResponse when studentInfo or the subject array is missing.
    """
    parsed = parse_json_object(reply)
    student = parsed.get("studentInfo")
    subjects = parsed.get("extractedSubjects", parsed.get("subjects"))
    if not isinstance(student, dict) or not isinstance(subjects, list):
        raise MalformedServiceResponse("Invalid response structure: studentInfo/extractedSubjects missing")

    rows = []
    for item in subjects:
        if not isinstance(item, dict):
            continue
        name = _opt_str(item.get("name"))
        if not name:
            continue
        grade = item.get("grade")
        rows.append(RawExtractedSubject(name=name, grade="" if grade is None else str(grade).strip()))

    return RawExtraction(
        subjects=rows,
        student_name=_opt_str(student.get("name")),
        certificate_type=_opt_str(student.get("certificateType")),
        course_offered=_opt_str(parsed.get("courseOffered")),
        source_text=source_text,
    )


async def _ocr_pdf(content: bytes) -> str:
    images = file_handler.pdf_bytes_to_images(
        content, dpi=settings.PDF_RENDER_DPI, poppler_path=settings.POPPLER_PATH
    )
    return await ocr.ocr_pages(images)


class ExtractionAdapter:
    def __init__(
        self,
        backend: Optional[GenerativeBackend] = None,
        ocr_image: OcrImage = ocr.ocr_image_bytes,
        text_layer: TextLayer = file_handler.pdf_text_layer,
        ocr_pdf: OcrPdf = _ocr_pdf,
    ):
        self.backend = backend
        self._ocr_image = ocr_image
        self._text_layer = text_layer
        self._ocr_pdf = ocr_pdf

    async def extract(self, content: bytes, media_type: str) -> RawExtraction:
        if file_handler.is_pdf(media_type):
            return await self._extract_pdf(content)
        if file_handler.is_image(media_type):
            return await self._extract_image(content, media_type.lower())
        raise UnsupportedMediaType(media_type)

    # --- Images ---

    async def _extract_image(self, content: bytes, media_type: str) -> RawExtraction:
        primary_error = None
        if self.backend is not None:
            try:
                reply = await self.backend.generate(VISION_PROMPT, attachment=content, mime_type=media_type)
                result = raw_extraction_from_reply(reply, source_text="")
                result.source_text = (
                    f"Image processed by {self.backend.name} vision. "
                    f"Extracted {len(result.subjects)} subjects."
                )
                return result
            except Exception as e:
                primary_error = f"{type(e).__name__}: {e}"
                logger.warning("AI vision extraction failed, falling back to OCR: %s", primary_error)
        else:
            logger.info("No AI backend configured; using OCR")

        try:
            text = await self._ocr_image(content)
        except Exception as e:
            logger.exception("OCR fallback failed")
            raise ExtractionFailed(primary_error, f"{type(e).__name__}: {e}") from e
        return self._from_text(text)

    # --- PDFs ---

    async def _extract_pdf(self, content: bytes) -> RawExtraction:
        primary_error = None
        try:
            text = self._text_layer(content)
        except Exception as e:
            logger.exception("PDF text layer extraction failed")
            raise ExtractionFailed(None, f"Unreadable PDF: {type(e).__name__}: {e}") from e

        if self.backend is not None and text:
            try:
                prompt = TEXT_PROMPT.format(shape=_RESPONSE_SHAPE, text=text[:MAX_PROMPT_TEXT])
                reply = await self.backend.generate(prompt)
                return raw_extraction_from_reply(reply, source_text=text)
            except Exception as e:
                primary_error = f"{type(e).__name__}: {e}"
                logger.warning("AI text extraction failed, falling back to regex: %s", primary_error)
        elif not text:
            primary_error = "PDF has no text layer"

        if not text:
            # scanned PDF: rasterize and OCR
            try:
                text = await self._ocr_pdf(content)
            except Exception as e:
                logger.exception("OCR of scanned PDF failed")
                raise ExtractionFailed(primary_error, f"{type(e).__name__}: {e}") from e
        return self._from_text(text)

    @staticmethod
    def _from_text(text: str) -> RawExtraction:
        info: Dict[str, Optional[str]] = heuristics.extract_student_info(text)
        subjects = heuristics.extract_subjects(text)
        logger.info("Regex scanner found %d subjects", len(subjects))
        return RawExtraction(subjects=subjects, source_text=text or "", **info)
