# wassce_parser/services/grades.py
"""
WASSCE grade bands and conversions.

- GradeToken: the nine bands A1 (best) .. F9 (fail), ordered by rank 1..9
- percentage_to_grade: integer percentage -> band, via a closed-interval table
- letter_or_numeric_to_grade: "a1".."f9" or "1".."9" -> band
- normalize_grade: any of the notations above, as found on a results slip

Lookups return None for input they cannot place; require_grade is the raising
variant for callers that want an exception.
"""

import re
from enum import Enum
from typing import Any, Dict, List, NamedTuple, Optional

from wassce_parser.errors import InvalidGradeToken


class GradeToken(str, Enum):
    A1 = "A1"
    B2 = "B2"
    B3 = "B3"
    C4 = "C4"
    C5 = "C5"
    C6 = "C6"
    D7 = "D7"
    E8 = "E8"
    F9 = "F9"

    @property
    def rank(self) -> int:
        return _RANKS[self]

    @property
    def description(self) -> str:
        return _BANDS_BY_GRADE[self].description

    @classmethod
    def from_rank(cls, rank: int) -> "GradeToken":
        return _BY_RANK[rank]

    def __lt__(self, other):
        if isinstance(other, GradeToken):
            return self.rank < other.rank
        return NotImplemented

    def __le__(self, other):
        if isinstance(other, GradeToken):
            return self.rank <= other.rank
        return NotImplemented

    def __gt__(self, other):
        if isinstance(other, GradeToken):
            return self.rank > other.rank
        return NotImplemented

    def __ge__(self, other):
        if isinstance(other, GradeToken):
            return self.rank >= other.rank
        return NotImplemented

    def __str__(self) -> str:
        return self.value


_RANKS: Dict[GradeToken, int] = {g: i for i, g in enumerate(GradeToken, start=1)}
_BY_RANK: Dict[int, GradeToken] = {i: g for g, i in _RANKS.items()}


class GradeBand(NamedTuple):
    grade: GradeToken
    min: int
    max: int
    description: str


# Closed intervals, best first. Must partition 0..100.
WASSCE_GRADE_SCALE: List[GradeBand] = [
    GradeBand(GradeToken.A1, 75, 100, "Excellent"),
    GradeBand(GradeToken.B2, 70, 74, "Very Good"),
    GradeBand(GradeToken.B3, 65, 69, "Good"),
    GradeBand(GradeToken.C4, 60, 64, "Credit"),
    GradeBand(GradeToken.C5, 55, 59, "Credit"),
    GradeBand(GradeToken.C6, 50, 54, "Credit"),
    GradeBand(GradeToken.D7, 45, 49, "Pass"),
    GradeBand(GradeToken.E8, 40, 44, "Pass"),
    GradeBand(GradeToken.F9, 0, 39, "Fail"),
]

_BANDS_BY_GRADE: Dict[GradeToken, GradeBand] = {b.grade: b for b in WASSCE_GRADE_SCALE}

LETTER_CODE_PAT = re.compile(r"^([A-Fa-f])\s?([1-9])$")
NUMERIC_CODE_PAT = re.compile(r"^[1-9]$")
PERCENT_PAT = re.compile(r"^(\d{1,3})\s*%$")
BARE_INT_PAT = re.compile(r"^[1-9]\d{1,2}$")


def is_valid_percentage(percentage: Any) -> bool:
    # bool is an int subclass; True is not a percentage
    return (
        isinstance(percentage, int)
        and not isinstance(percentage, bool)
        and 0 <= percentage <= 100
    )


def percentage_to_grade(percentage: Any) -> Optional[GradeToken]:
    """Map an integer percentage in [0, 100] to its band; None if invalid."""
    if not is_valid_percentage(percentage):
        return None
    for band in WASSCE_GRADE_SCALE:
        if band.min <= percentage <= band.max:
            return band.grade
    return None


def convert_percentages(percentages: List[Any]) -> List[Optional[GradeToken]]:
    return [percentage_to_grade(p) for p in percentages]


def letter_or_numeric_to_grade(token: Any) -> Optional[GradeToken]:
    """
    Accepts "A1".."F9" in any case, or a bare numeric code "1".."9"
    (1 -> A1 .. 9 -> F9). Letter codes must name a real band, so "A2" is
    unrecognized. Returns None when the token cannot be placed.
    """
    if isinstance(token, GradeToken):
        return token
    if token is None or isinstance(token, bool):
        return None
    text = str(token).strip()

    m = LETTER_CODE_PAT.match(text)
    if m:
        candidate = f"{m.group(1).upper()}{m.group(2)}"
        try:
            return GradeToken(candidate)
        except ValueError:
            return None

    if NUMERIC_CODE_PAT.match(text):
        return _BY_RANK[int(text)]

    return None


def normalize_grade(raw: Any) -> Optional[GradeToken]:
    """
    Normalize any grade notation found on a slip.

    Letter and single-digit codes win; after that "78%" or a bare 10..100 is
    read as a percentage.
    """
    grade = letter_or_numeric_to_grade(raw)
    if grade is not None:
        return grade
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return percentage_to_grade(raw) if raw >= 10 else None

    text = str(raw).strip()
    m = PERCENT_PAT.match(text)
    if m:
        return percentage_to_grade(int(m.group(1)))
    if BARE_INT_PAT.match(text):
        return percentage_to_grade(int(text))
    return None


def require_grade(raw: Any) -> GradeToken:
    grade = normalize_grade(raw)
    if grade is None:
        raise InvalidGradeToken(raw)
    return grade


def grade_scale() -> List[Dict[str, Any]]:
    return [
        {"grade": b.grade.value, "min": b.min, "max": b.max, "description": b.description}
        for b in WASSCE_GRADE_SCALE
    ]
