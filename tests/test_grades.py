import pytest

from wassce_parser.errors import InvalidGradeToken
from wassce_parser.services.grades import (
    WASSCE_GRADE_SCALE,
    GradeToken,
    convert_percentages,
    grade_scale,
    is_valid_percentage,
    letter_or_numeric_to_grade,
    normalize_grade,
    percentage_to_grade,
    require_grade,
)


def test_nine_tokens_ordered_by_rank():
    tokens = list(GradeToken)
    assert [t.value for t in tokens] == ["A1", "B2", "B3", "C4", "C5", "C6", "D7", "E8", "F9"]
    assert [t.rank for t in tokens] == list(range(1, 10))
    assert sorted(reversed(tokens)) == tokens
    assert GradeToken.A1 < GradeToken.F9
    assert GradeToken.C6 >= GradeToken.C4
    assert GradeToken.from_rank(7) is GradeToken.D7


def test_every_percentage_maps_to_exactly_one_band():
    for p in range(0, 101):
        containing = [b for b in WASSCE_GRADE_SCALE if b.min <= p <= b.max]
        assert len(containing) == 1, p
        assert percentage_to_grade(p) is containing[0].grade


def test_bands_cover_zero_to_hundred_without_gaps():
    bands = sorted(WASSCE_GRADE_SCALE, key=lambda b: b.min)
    assert bands[0].min == 0
    assert bands[-1].max == 100
    for lower, upper in zip(bands, bands[1:]):
        assert upper.min == lower.max + 1


@pytest.mark.parametrize("p,expected", [
    (100, GradeToken.A1), (75, GradeToken.A1), (74, GradeToken.B2), (70, GradeToken.B2),
    (69, GradeToken.B3), (60, GradeToken.C4), (55, GradeToken.C5), (54, GradeToken.C6),
    (45, GradeToken.D7), (44, GradeToken.E8), (40, GradeToken.E8), (39, GradeToken.F9), (0, GradeToken.F9),
])
def test_band_boundaries(p, expected):
    assert percentage_to_grade(p) is expected


@pytest.mark.parametrize("bad", [-1, 101, 72.5, "72", None, True])
def test_percentage_invalid_returns_none(bad):
    assert percentage_to_grade(bad) is None
    assert not is_valid_percentage(bad)


def test_letter_codes_case_insensitive():
    assert letter_or_numeric_to_grade("a1") is GradeToken.A1
    assert letter_or_numeric_to_grade("A1") is GradeToken.A1
    assert letter_or_numeric_to_grade(" c6 ") is GradeToken.C6


def test_numeric_codes_follow_rank():
    assert letter_or_numeric_to_grade("1") is letter_or_numeric_to_grade("A1")
    for rank, token in enumerate(GradeToken, start=1):
        assert letter_or_numeric_to_grade(str(rank)) is token


@pytest.mark.parametrize("bad", ["A2", "G1", "0", "10", "", "pass", None])
def test_unrecognized_codes(bad):
    assert letter_or_numeric_to_grade(bad) is None


def test_normalize_grade_reads_percentages():
    assert normalize_grade("78%") is GradeToken.A1
    assert normalize_grade("52 %") is GradeToken.C6
    assert normalize_grade("66") is GradeToken.B3
    assert normalize_grade(41) is GradeToken.E8
    # single digits stay numeric codes
    assert normalize_grade("5") is GradeToken.C5
    assert normalize_grade("b3") is GradeToken.B3
    assert normalize_grade("150%") is None
    assert normalize_grade("absent") is None


def test_require_grade_raises():
    assert require_grade("e8") is GradeToken.E8
    with pytest.raises(InvalidGradeToken):
        require_grade("X")


def test_scale_and_batch_conversion():
    scale = grade_scale()
    assert scale[0] == {"grade": "A1", "min": 75, "max": 100, "description": "Excellent"}
    assert GradeToken.F9.description == "Fail"
    assert convert_percentages([80, 50, -3]) == [GradeToken.A1, GradeToken.C6, None]
