import asyncio

import pytest

from conftest import StubBackend, extraction_reply, match_reply
from wassce_parser.services.extraction import ExtractionAdapter
from wassce_parser.services.grades import GradeToken
from wassce_parser.services.matcher import SubjectMatcher
from wassce_parser.services.pipeline import (
    DocumentPipeline,
    InvocationSequencer,
    PipelineResult,
    PipelineRun,
    PipelineState,
)
from wassce_parser.utils.file_handler import make_size_check

PNG = b"\x89PNG\r\n\x1a\nfake"


def make_pipeline(catalog, backend=None, ocr_text="", size_check=None, match_backend=None):
    async def fake_ocr(content):
        if isinstance(ocr_text, Exception):
            raise ocr_text
        return ocr_text

    return DocumentPipeline(
        extractor=ExtractionAdapter(backend=backend, ocr_image=fake_ocr),
        matcher=SubjectMatcher(catalog, backend=match_backend),
        size_check=size_check,
    )


async def test_end_to_end(small_catalog):
    backend = StubBackend(
        extraction_reply(
            [{"name": "Mathematics", "grade": "A1"}, {"name": "Physics", "grade": "B2"}],
            name="Kojo Mensah",
        ),
        match_reply([("Physics", 10)]),
    )
    pipeline = make_pipeline(small_catalog, backend=backend, match_backend=backend)

    result = await pipeline.run(PNG, "image/png", sequence=1)

    assert result.ok
    assert result.state == PipelineState.DONE
    data = result.data
    assert data.core_grades == {1: GradeToken.A1}
    assert data.elective_grades == {"Physics": GradeToken.B2}
    assert data.student_info.name == "Kojo Mensah"
    assert data.unmatched == []
    assert data.needs_review == 0


async def test_fallback_chain_produces_usable_output(catalog):
    backend = StubBackend(ConnectionError("network error"))
    pipeline = make_pipeline(catalog, backend=backend, ocr_text="english b2 mathematics a1")

    result = await pipeline.run(PNG, "image/jpeg")

    assert result.ok
    assert [(s.extracted_name, s.grade) for s in result.data.subjects] == [
        ("English", GradeToken.B2),
        ("Mathematics", GradeToken.A1),
    ]
    assert result.data.core_grades == {2: GradeToken.B2, 1: GradeToken.A1}


async def test_unmatched_and_invalid_grades_surface_for_review(catalog):
    backend = StubBackend(extraction_reply([
        {"name": "Xylography", "grade": "B3"},
        {"name": "Physics", "grade": "absent"},
        {"name": "Mathematics (Elect)", "grade": "c4"},
    ]))
    pipeline = make_pipeline(catalog, backend=backend)

    result = await pipeline.run(PNG, "image/png")

    data = result.data
    assert [s.extracted_name for s in data.unmatched] == ["Xylography"]
    assert [(r.name, r.grade) for r in data.invalid_grades] == [("Physics", "absent")]
    assert data.elective_grades == {"Elective Maths": GradeToken.C4}
    assert data.core_grades == {}
    assert data.needs_review == 2


async def test_no_subjects_is_done(catalog):
    pipeline = make_pipeline(catalog, ocr_text="nothing legible")
    result = await pipeline.run(PNG, "image/png")
    assert result.state == PipelineState.DONE
    assert result.data.subjects == []


async def test_extraction_failure_is_terminal(catalog):
    backend = StubBackend(RuntimeError("quota exceeded"))
    pipeline = make_pipeline(catalog, backend=backend, ocr_text=OSError("tesseract missing"))

    result = await pipeline.run(PNG, "image/png", sequence=7)

    assert result.state == PipelineState.EXTRACT_FAILED
    assert result.data is None
    assert result.sequence == 7
    assert "quota exceeded" in result.diagnostic
    assert "tesseract missing" in result.diagnostic


async def test_size_check_injected(catalog):
    pipeline = make_pipeline(catalog, ocr_text="Physics A1", size_check=make_size_check(4))
    result = await pipeline.run(PNG, "image/png")
    assert result.state == PipelineState.EXTRACT_FAILED
    assert "too large" in result.diagnostic


async def test_unsupported_media_type(catalog):
    result = await make_pipeline(catalog).run(b"hello", "text/plain")
    assert result.state == PipelineState.EXTRACT_FAILED
    assert "text/plain" in result.diagnostic


async def test_matching_crash_is_match_failed(catalog):
    class BrokenMatcher(SubjectMatcher):
        async def match(self, subjects):
            raise KeyError("boom")

    async def fake_ocr(content):
        return "Physics A1"

    pipeline = DocumentPipeline(ExtractionAdapter(ocr_image=fake_ocr), BrokenMatcher(catalog))
    result = await pipeline.run(PNG, "image/png")

    assert result.state == PipelineState.MATCH_FAILED
    assert "KeyError" in result.diagnostic


def test_run_rejects_illegal_transitions():
    run = PipelineRun(1)
    with pytest.raises(RuntimeError):
        run.advance(PipelineState.MATCHING)
    run.advance(PipelineState.EXTRACTING)
    run.advance(PipelineState.EXTRACT_FAILED)
    with pytest.raises(RuntimeError):
        run.advance(PipelineState.MATCHING)
    assert run.history == [PipelineState.IDLE, PipelineState.EXTRACTING, PipelineState.EXTRACT_FAILED]


def test_sequencer_discards_stale_results():
    seq = InvocationSequencer()
    first = seq.next()
    second = seq.next()
    assert second > first

    newer = PipelineResult(sequence=second, state=PipelineState.DONE)
    older = PipelineResult(sequence=first, state=PipelineState.DONE)
    assert seq.apply(newer) is True
    assert seq.apply(older) is False
    assert seq.current is newer


async def test_slow_earlier_upload_does_not_overwrite_newer(catalog):
    release_first = asyncio.Event()

    async def ocr(content):
        if content == b"first":
            await release_first.wait()
            return "Physics F9"
        return "Physics A1"

    pipeline = DocumentPipeline(ExtractionAdapter(ocr_image=ocr), SubjectMatcher(catalog))
    seq = InvocationSequencer()

    async def upload(content):
        result = await pipeline.run(content, "image/png", sequence=seq.next())
        return seq.apply(result)

    first_task = asyncio.create_task(upload(b"first"))
    await asyncio.sleep(0)
    assert await upload(b"second") is True
    release_first.set()
    assert await first_task is False

    assert seq.current.data.subjects[0].grade == GradeToken.A1


def test_result_requires_terminal_state():
    with pytest.raises(ValueError):
        PipelineResult(sequence=1, state=PipelineState.MATCHING)
    assert not PipelineResult(sequence=1, state=PipelineState.MATCH_FAILED, diagnostic="x").ok
