"""Shared fixtures: a small reference catalog and a scriptable AI backend."""

import json
from typing import List, Optional

import pytest

from wassce_parser.services.catalog import SubjectCatalog

CORE_RECORDS = [
    {"id": 1, "name": "Mathematics", "subject_code": "Math", "type": 1},
    {"id": 2, "name": "English Language", "subject_code": "English", "type": 1},
    {"id": 3, "name": "Integrated Science", "subject_code": "Science", "type": 1},
    {"id": 4, "name": "Social Studies", "subject_code": "Social", "type": 1},
]

ELECTIVE_RECORDS = [
    {"id": 10, "name": "Physics", "subject_code": "Physics", "type": 2},
    {"id": 11, "name": "Elective Maths", "subject_code": "EMATH", "type": 2},
    {"id": 12, "name": "Further Mathematics", "subject_code": "FMATH", "type": 2},
    {"id": 13, "name": "Economics", "subject_code": "ECON", "type": 2},
    {"id": 14, "name": "Chemistry", "subject_code": "CHEM", "type": 2},
    # same elective listed twice by the reference API
    {"id": 15, "name": "Economics", "subject_code": "ECONS", "type": 2},
]


class StubBackend:
    """
    Stand-in for a generative service. Replies are consumed in order; an
    Exception instance in the list is raised instead of returned.
    """

    name = "stub"

    def __init__(self, *replies):
        self.replies = list(replies)
        self.calls: List[dict] = []

    async def generate(self, prompt: str, attachment: Optional[bytes] = None, mime_type: Optional[str] = None) -> str:
        self.calls.append({"prompt": prompt, "attachment": attachment, "mime_type": mime_type})
        if not self.replies:
            raise AssertionError("StubBackend called more times than scripted")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


def extraction_reply(subjects, name=None, certificate=None, course=None, fenced=True) -> str:
    body = json.dumps({
        "studentInfo": {"name": name, "certificateType": certificate},
        "courseOffered": course,
        "extractedSubjects": subjects,
    })
    return f"```json\n{body}\n```" if fenced else body


def match_reply(pairs) -> str:
    return json.dumps([{"name": n, "grade": "A1", "matchedSubjectId": i} for n, i in pairs])


@pytest.fixture
def catalog() -> SubjectCatalog:
    return SubjectCatalog.from_partitions(CORE_RECORDS, ELECTIVE_RECORDS)


@pytest.fixture
def small_catalog() -> SubjectCatalog:
    return SubjectCatalog.from_partitions(
        [{"id": 1, "name": "Mathematics", "subject_code": "Math"}],
        [{"id": 10, "name": "Physics", "subject_code": "Physics"}],
    )
