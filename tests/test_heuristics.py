from wassce_parser.services.heuristics import (
    extract_certificate_type,
    extract_course_offered,
    extract_student_info,
    extract_subjects,
    scan_line,
)

SLIP_TEXT = """WEST AFRICAN EXAMINATIONS COUNCIL
WASSCE FOR SCHOOL CANDIDATES 2022
Candidate Name: Kojo Mensah
Index Number 0123456789
Programme: General Science
ENGLISH LANGUAGE B3 GOOD
MATHEMATICS (CORE) A1 EXCELLENT
INTEGRATED SCIENCE B2
SOCIAL STUDIES C4 CREDIT
MATHEMATICS (ELECT) B3
PHYSICS : C5
Chemistry - 72%
Page 1 of 2
"""


def _pairs(rows):
    return [(r.name, r.grade) for r in rows]


def test_two_pairs_on_one_line():
    assert scan_line("english b2 mathematics a1") == [
        {"name": "English", "grade": "B2"},
        {"name": "Mathematics", "grade": "A1"},
    ]


def test_slip_subjects_in_order():
    assert _pairs(extract_subjects(SLIP_TEXT)) == [
        ("English Language", "B3"),
        ("Mathematics (Core)", "A1"),
        ("Integrated Science", "B2"),
        ("Social Studies", "C4"),
        ("Mathematics (Elect)", "B3"),
        ("Physics", "C5"),
        ("Chemistry", "B2"),
    ]


def test_duplicates_keep_first_occurrence():
    rows = extract_subjects("Physics B2\nPHYSICS F9\nphysics 3")
    assert _pairs(rows) == [("Physics", "B2")]


def test_unplaceable_grades_are_skipped():
    assert extract_subjects("Biology X\nGeography G7") == []


def test_header_noise_ignored():
    assert extract_subjects("Page 1 of 2\nIndex Number 0123456789\nExamination Year 2019") == []


def test_empty_text():
    assert extract_subjects("") == []


def test_student_info():
    info = extract_student_info(SLIP_TEXT)
    assert info == {
        "student_name": "Kojo Mensah",
        "certificate_type": "WASSCE",
        "course_offered": "General Science",
    }


def test_student_info_absent():
    assert extract_certificate_type("no certificate here") is None
    assert extract_course_offered("English B2") is None
    assert extract_student_info("English B2")["student_name"] is None


def test_header_rows_with_bare_digits_are_not_subjects():
    assert _pairs(extract_subjects("Paper 2\nSection 3\nGrade 1\nBiology 2")) == [("Biology", "B2")]
