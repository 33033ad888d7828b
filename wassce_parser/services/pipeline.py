# wassce_parser/services/pipeline.py
"""
Pipeline orchestrator: extraction -> matching -> assembly.

Each invocation gets its own PipelineRun, a small state machine:

    idle -> extracting -> extract_succeeded | extract_failed
    extract_succeeded -> matching -> match_succeeded | match_failed
    match_succeeded -> done

extract_failed and match_failed are terminal and carry a diagnostic. Nothing
is retried; the caller re-invokes with a new file. InvocationSequencer lets a
caller discard results of invocations that were superseded while in flight.
"""
import itertools
import logging
import threading
from enum import Enum
from typing import Dict, FrozenSet, List, Optional

from pydantic import BaseModel, field_validator

from wassce_parser.config import Settings, settings as default_settings
from wassce_parser.errors import ExtractionFailed, FileTooLarge, UnsupportedMediaType
from wassce_parser.schemas import (
    MatchedSubjectGrade,
    ParsedDocumentData,
    RawExtractedSubject,
    RawExtraction,
    StudentInfo,
    SubjectCatalogEntry,
)
from wassce_parser.services.catalog import SubjectCatalog
from wassce_parser.services.extraction import ExtractionAdapter
from wassce_parser.services.grades import normalize_grade
from wassce_parser.services.llm_client import build_backend
from wassce_parser.services.matcher import SubjectMatcher
from wassce_parser.utils.file_handler import SizeCheck, check_media_type, make_size_check

logger = logging.getLogger("services.pipeline")


class PipelineState(str, Enum):
    IDLE = "idle"
    EXTRACTING = "extracting"
    EXTRACT_SUCCEEDED = "extract_succeeded"
    EXTRACT_FAILED = "extract_failed"
    MATCHING = "matching"
    MATCH_SUCCEEDED = "match_succeeded"
    MATCH_FAILED = "match_failed"
    DONE = "done"


_TRANSITIONS: Dict[PipelineState, FrozenSet[PipelineState]] = {
    PipelineState.IDLE: frozenset({PipelineState.EXTRACTING}),
    PipelineState.EXTRACTING: frozenset({PipelineState.EXTRACT_SUCCEEDED, PipelineState.EXTRACT_FAILED}),
    PipelineState.EXTRACT_SUCCEEDED: frozenset({PipelineState.MATCHING}),
    PipelineState.MATCHING: frozenset({PipelineState.MATCH_SUCCEEDED, PipelineState.MATCH_FAILED}),
    PipelineState.MATCH_SUCCEEDED: frozenset({PipelineState.DONE}),
    PipelineState.EXTRACT_FAILED: frozenset(),
    PipelineState.MATCH_FAILED: frozenset(),
    PipelineState.DONE: frozenset(),
}

TERMINAL_STATES = frozenset(s for s, nxt in _TRANSITIONS.items() if not nxt)


class PipelineResult(BaseModel):
    sequence: int
    state: PipelineState
    data: Optional[ParsedDocumentData] = None
    diagnostic: str = ""

    @field_validator("state")
    @classmethod
    def _terminal_state(cls, v: PipelineState) -> PipelineState:
        if v not in TERMINAL_STATES:
            raise ValueError(f"Result state must be terminal, got {v.value}")
        return v

    @property
    def ok(self) -> bool:
        return self.state == PipelineState.DONE


class PipelineRun:
    """State for a single invocation. Never reused."""

    def __init__(self, sequence: int):
        self.sequence = sequence
        self.state = PipelineState.IDLE
        self.history: List[PipelineState] = [PipelineState.IDLE]

    def advance(self, new_state: PipelineState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal pipeline transition {self.state.value} -> {new_state.value}")
        logger.debug("run %d: %s -> %s", self.sequence, self.state.value, new_state.value)
        self.state = new_state
        self.history.append(new_state)

    def fail(self, new_state: PipelineState, diagnostic: str) -> PipelineResult:
        self.advance(new_state)
        return PipelineResult(sequence=self.sequence, state=self.state, diagnostic=diagnostic)


class InvocationSequencer:
    """
    Tags invocations with increasing sequence numbers and keeps only the
    result of the most recent one.
    """

    def __init__(self):
        self._counter = itertools.count(1)
        self._lock = threading.Lock()
        self._latest = 0
        self.current: Optional[PipelineResult] = None

    def next(self) -> int:
        with self._lock:
            self._latest = next(self._counter)
            return self._latest

    def apply(self, result: PipelineResult) -> bool:
        """Store the result if it is from the latest invocation; False if stale."""
        with self._lock:
            if result.sequence != self._latest:
                logger.info("Discarding stale result %d (latest is %d)", result.sequence, self._latest)
                return False
            self.current = result
            return True


def assemble(
    raw: RawExtraction,
    matches: List[Optional[SubjectCatalogEntry]],
    diagnostics: str,
) -> ParsedDocumentData:
    subjects: List[MatchedSubjectGrade] = []
    invalid: List[RawExtractedSubject] = []
    for extracted, entry in zip(raw.subjects, matches):
        grade = normalize_grade(extracted.grade)
        if grade is None:
            invalid.append(extracted)
            continue
        subjects.append(MatchedSubjectGrade(extracted_name=extracted.name, grade=grade, catalog_entry=entry))

    return ParsedDocumentData(
        subjects=subjects,
        student_info=StudentInfo(
            name=raw.student_name,
            certificate_type=raw.certificate_type,
            course_offered=raw.course_offered,
        ),
        diagnostics=diagnostics,
        invalid_grades=invalid,
    )


class DocumentPipeline:
    """Single public entry point: bytes + media type -> PipelineResult."""

    def __init__(
        self,
        extractor: ExtractionAdapter,
        matcher: SubjectMatcher,
        size_check: Optional[SizeCheck] = None,
        allowed_media_types: Optional[List[str]] = None,
    ):
        self.extractor = extractor
        self.matcher = matcher
        self.size_check = size_check
        self.allowed_media_types = allowed_media_types or default_settings.ALLOWED_MIME_TYPES

    async def run(self, content: bytes, media_type: str, sequence: int = 0) -> PipelineResult:
        """Run one invocation; tag it with a number from InvocationSequencer.next()."""
        run = PipelineRun(sequence)
        run.advance(PipelineState.EXTRACTING)

        try:
            check_media_type(media_type, self.allowed_media_types)
            if self.size_check is not None:
                self.size_check(len(content))
            raw = await self.extractor.extract(content, media_type)
        except (UnsupportedMediaType, FileTooLarge, ExtractionFailed) as e:
            logger.warning("Extraction failed (run %d): %s", run.sequence, e)
            return run.fail(PipelineState.EXTRACT_FAILED, str(e))
        run.advance(PipelineState.EXTRACT_SUCCEEDED)

        run.advance(PipelineState.MATCHING)
        try:
            matches = await self.matcher.match(raw.subjects)
            data = assemble(raw, matches, diagnostics=raw.source_text)
        except Exception as e:
            logger.exception("Matching failed (run %d)", run.sequence)
            return run.fail(PipelineState.MATCH_FAILED, f"Subject matching failed: {type(e).__name__}: {e}")
        run.advance(PipelineState.MATCH_SUCCEEDED)

        run.advance(PipelineState.DONE)
        logger.info(
            "Run %d done: %d subjects, %d unmatched, %d invalid grades",
            run.sequence, len(data.subjects), len(data.unmatched), len(data.invalid_grades),
        )
        return PipelineResult(sequence=run.sequence, state=run.state, data=data)


def build_pipeline(catalog: SubjectCatalog, cfg: Optional[Settings] = None) -> DocumentPipeline:
    cfg = cfg or default_settings
    backend = build_backend(cfg)
    return DocumentPipeline(
        extractor=ExtractionAdapter(backend=backend),
        matcher=SubjectMatcher(catalog, backend=backend if cfg.AI_MATCHING_ENABLED else None),
        size_check=make_size_check(cfg.max_file_bytes),
        allowed_media_types=cfg.ALLOWED_MIME_TYPES,
    )
