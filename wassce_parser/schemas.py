# wassce_parser/schemas.py
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from wassce_parser.services.grades import GradeToken

ELECTIVE_MARKER = "elect"


def has_elective_marker(name: str) -> bool:
    # also covers "(elect)"
    return ELECTIVE_MARKER in (name or "").lower()


class SubjectKind(str, Enum):
    CORE = "core"
    ELECTIVE = "elective"


class SubjectCatalogEntry(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: int
    name: str
    code: str = Field(default="", validation_alias=AliasChoices("code", "subject_code"))
    kind: SubjectKind = Field(validation_alias=AliasChoices("kind", "type"))

    @field_validator("kind", mode="before")
    @classmethod
    def _kind_from_type(cls, v: Any) -> Any:
        # reference data encodes kind as type=1 (core) / type=2 (elective)
        if v in (1, "1"):
            return SubjectKind.CORE
        if v in (2, "2"):
            return SubjectKind.ELECTIVE
        return v

    @field_validator("code", mode="before")
    @classmethod
    def _code_or_empty(cls, v: Any) -> Any:
        return "" if v is None else v


class RawExtractedSubject(BaseModel):
    name: str
    grade: str = ""


class RawExtraction(BaseModel):
    subjects: List[RawExtractedSubject] = Field(default_factory=list)
    student_name: Optional[str] = None
    certificate_type: Optional[str] = None
    course_offered: Optional[str] = None
    source_text: str = ""


class MatchedSubjectGrade(BaseModel):
    extracted_name: str
    grade: GradeToken
    catalog_entry: Optional[SubjectCatalogEntry] = None


class StudentInfo(BaseModel):
    name: Optional[str] = None
    certificate_type: Optional[str] = None
    course_offered: Optional[str] = None


class ParsedDocumentData(BaseModel):
    subjects: List[MatchedSubjectGrade] = Field(default_factory=list)
    student_info: StudentInfo = Field(default_factory=StudentInfo)
    diagnostics: str = ""
    # rows whose grade could not be placed in a band; need manual correction
    invalid_grades: List[RawExtractedSubject] = Field(default_factory=list)

    def _is_elective(self, subject: MatchedSubjectGrade) -> bool:
        if has_elective_marker(subject.extracted_name):
            return True
        return subject.catalog_entry.kind == SubjectKind.ELECTIVE

    @property
    def core_grades(self) -> Dict[int, GradeToken]:
        """Core grades keyed by catalog id."""
        return {
            s.catalog_entry.id: s.grade
            for s in self.subjects
            if s.catalog_entry is not None and not self._is_elective(s)
        }

    @property
    def elective_grades(self) -> Dict[str, GradeToken]:
        """Elective grades keyed by catalog name."""
        return {
            s.catalog_entry.name: s.grade
            for s in self.subjects
            if s.catalog_entry is not None and self._is_elective(s)
        }

    @property
    def unmatched(self) -> List[MatchedSubjectGrade]:
        return [s for s in self.subjects if s.catalog_entry is None]

    @property
    def needs_review(self) -> int:
        return len(self.unmatched) + len(self.invalid_grades)


# ---------------------------
# HTTP payloads
# ---------------------------

class ParseResponse(BaseModel):
    document_id: str
    data: ParsedDocumentData
    core_grades: Dict[int, GradeToken]
    elective_grades: Dict[str, GradeToken]
    unmatched: List[MatchedSubjectGrade]
    needs_review: int
    metadata: dict

    @classmethod
    def from_parsed(cls, document_id: str, data: ParsedDocumentData, metadata: dict) -> "ParseResponse":
        return cls(
            document_id=document_id,
            data=data,
            core_grades=data.core_grades,
            elective_grades=data.elective_grades,
            unmatched=data.unmatched,
            needs_review=data.needs_review,
            metadata=metadata,
        )


class GradeBandOut(BaseModel):
    grade: GradeToken
    min: int
    max: int
    description: str


class PercentageConversionRequest(BaseModel):
    percentages: List[Any]


class PercentageConversionResponse(BaseModel):
    grades: List[Optional[GradeToken]]
