# wassce_parser/routers/parse.py
import logging
import uuid
from functools import lru_cache
from typing import List

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile

from wassce_parser.config import settings
from wassce_parser.errors import FileTooLarge, UnsupportedMediaType
from wassce_parser.schemas import (
    GradeBandOut,
    ParseResponse,
    PercentageConversionRequest,
    PercentageConversionResponse,
)
from wassce_parser.services.catalog import SubjectCatalog, load_catalog_file
from wassce_parser.services.grades import convert_percentages, grade_scale
from wassce_parser.services.pipeline import DocumentPipeline, PipelineState, build_pipeline
from wassce_parser.utils.file_handler import check_media_type, make_size_check

logger = logging.getLogger("router.parse")
router = APIRouter()

# -------------------
# Dependencies
# -------------------


@lru_cache(maxsize=1)
def get_catalog() -> SubjectCatalog:
    if not settings.SUBJECT_CATALOG_PATH:
        raise HTTPException(status_code=503, detail="Subject catalog is not configured")
    try:
        return load_catalog_file(settings.SUBJECT_CATALOG_PATH)
    except (OSError, ValueError) as e:
        logger.exception("Failed to load subject catalog")
        raise HTTPException(status_code=503, detail=f"Subject catalog unavailable: {e}")


@lru_cache(maxsize=1)
def get_pipeline(catalog: SubjectCatalog = Depends(get_catalog)) -> DocumentPipeline:
    # one pipeline, and one LLM client, per loaded catalog
    return build_pipeline(catalog)


# -------------------
# Helpers
# -------------------

def _validate_upload(file: UploadFile, raw: bytes) -> None:
    try:
        check_media_type(file.content_type, settings.ALLOWED_MIME_TYPES)
        make_size_check(settings.max_file_bytes)(len(raw))
    except UnsupportedMediaType as e:
        raise HTTPException(status_code=415, detail=str(e))
    except FileTooLarge:
        raise HTTPException(status_code=413, detail=f"File too large. Max {settings.MAX_FILE_MB} MB allowed.")


# -------------------
# Endpoints
# -------------------

@router.post("/parse", response_model=ParseResponse)
async def parse_endpoint(
    file: UploadFile = File(...),
    pipeline: DocumentPipeline = Depends(get_pipeline),
) -> ParseResponse:
    raw = await file.read()
    _validate_upload(file, raw)

    result = await pipeline.run(raw, file.content_type)
    if result.state != PipelineState.DONE:
        logger.warning("Parse failed for %s: %s", file.filename, result.diagnostic)
        raise HTTPException(status_code=422, detail=result.diagnostic)

    backend = pipeline.extractor.backend
    warnings = []
    if not result.data.subjects and not result.data.invalid_grades:
        warnings.append("No subjects found in document")
    if result.data.needs_review:
        warnings.append(f"{result.data.needs_review} subjects need manual review")

    return ParseResponse.from_parsed(
        document_id=f"{uuid.uuid4()}_{file.filename}",
        data=result.data,
        metadata={
            "llm_provider": backend.name if backend is not None else "disabled",
            "ai_matching": pipeline.matcher.backend is not None,
            "warnings": warnings,
        },
    )


@router.get("/grades/scale", response_model=List[GradeBandOut])
def grade_scale_endpoint() -> List[GradeBandOut]:
    return [GradeBandOut(**band) for band in grade_scale()]


@router.post("/grades/convert", response_model=PercentageConversionResponse)
def convert_endpoint(body: PercentageConversionRequest) -> PercentageConversionResponse:
    return PercentageConversionResponse(grades=convert_percentages(body.percentages))
