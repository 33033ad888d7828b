# wassce_parser/services/heuristics.py
"""
Regex heuristics for results slips, used when the AI backend is unavailable
or fails.

This module:
- Scans text for <subject words><separator><grade token> pairs, any number per line
- Title-cases the subject and normalizes the grade through the WASSCE bands
- Sniffs student name, certificate type and course offered from labelled lines

Notes:
- Keep heuristics conservative (prefer an empty value over a wrong one).
- Pairs whose grade cannot be placed in a band are skipped.
"""

import re
from typing import Dict, List, Optional

from wassce_parser.schemas import RawExtractedSubject
from wassce_parser.services.grades import normalize_grade

# -------------------------
# Precompiled regex patterns
# -------------------------
_FIRST_WORD = r"[A-Za-z][A-Za-z&'()./]*"
# later words may be bracketed qualifiers such as "(Elect)"
_WORD = r"[A-Za-z(][A-Za-z&'()./]*"

SUBJECT_GRADE_PAT = re.compile(
    r"(?<![A-Za-z0-9(])"
    rf"(?P<subject>{_FIRST_WORD}(?:[ \t]+{_WORD})*?)"
    r"(?:[ \t]*[:|=\-][ \t]*|[ \t]+)"
    r"(?P<grade>[A-Fa-f][1-9]|\d{1,3}[ \t]?%|[1-9]\d{0,2})"
    r"(?![A-Za-z0-9%])"
)

CERTIFICATE_PAT = re.compile(r"\b(WASSCE|SSSCE|GBCE|NOVDEC)\b", re.I)
COURSE_PAT = re.compile(
    r"\b(?:course|programme|program)(?:\s+offered)?\s*[:\-]\s*([A-Za-z][A-Za-z &]{2,40})",
    re.I,
)
NAME_PATTERNS = [
    re.compile(r"\bcandidate'?s?\s*name\s*[:\-]\s*(.+)", re.I),
    re.compile(r"\bstudent\s*name\s*[:\-]\s*(.+)", re.I),
    re.compile(r"\bname\s+of\s+candidate\s*[:\-]\s*(.+)", re.I),
    re.compile(r"^\s*name\s*[:\-]\s*(.+)", re.I),
]

# first words that mark a header/metadata row rather than a subject
NOISE_WORDS = {
    "page", "of", "no", "index", "number", "year", "date", "serial", "exam",
    "examination", "candidate", "name", "school", "centre", "center", "total",
    "aggregate", "sex", "age", "dob", "series", "may", "june", "nov", "dec",
    "paper", "section", "grade", "grades", "subject", "subjects",
}


def lines_from_text(text: str) -> List[str]:
    return [ln.strip() for ln in (text or "").splitlines() if ln.strip()]


def _clean_subject(fragment: str) -> Optional[str]:
    subj = re.sub(r"\s+", " ", fragment).strip(" .:-|/")
    if len(subj) < 3:
        return None
    if subj.split(" ", 1)[0].lower().strip(".:") in NOISE_WORDS:
        return None
    return subj.title()


# -------------------------
# Subjects extraction
# -------------------------
def scan_line(line: str) -> List[Dict[str, str]]:
    """All subject/grade pairs on one line, grade already normalized."""
    pairs = []
    for m in SUBJECT_GRADE_PAT.finditer(line):
        subj = _clean_subject(m.group("subject"))
        grade = normalize_grade(m.group("grade").replace(" ", ""))
        if subj and grade is not None:
            pairs.append({"name": subj, "grade": grade.value})
    return pairs


def extract_subjects(text: str) -> List[RawExtractedSubject]:
    """
    Extract subject rows from OCR / text-layer output.
    De-duplicated by case-insensitive subject name; first occurrence wins.
    """
    rows: List[RawExtractedSubject] = []
    seen = set()
    for ln in lines_from_text(text):
        for pair in scan_line(ln):
            key = pair["name"].lower()
            if key in seen:
                continue
            seen.add(key)
            rows.append(RawExtractedSubject(**pair))
    return rows


# -------------------------
# Student info extraction
# -------------------------
def extract_student_name(lines: List[str]) -> Optional[str]:
    for ln in lines[:25]:
        for p in NAME_PATTERNS:
            m = p.search(ln)
            if m:
                name = m.group(1).strip(" .:-")
                if name:
                    return name
    return None


def extract_certificate_type(text: str) -> Optional[str]:
    m = CERTIFICATE_PAT.search(text or "")
    return m.group(1).upper() if m else None


def extract_course_offered(text: str) -> Optional[str]:
    m = COURSE_PAT.search(text or "")
    if not m:
        return None
    return re.sub(r"\s+", " ", m.group(1)).strip().title()


def extract_student_info(text: str) -> Dict[str, Optional[str]]:
    lines = lines_from_text(text)
    return {
        "student_name": extract_student_name(lines),
        "certificate_type": extract_certificate_type(text),
        "course_offered": extract_course_offered(text),
    }
