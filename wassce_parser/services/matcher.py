# wassce_parser/services/matcher.py
"""
SubjectMatcher: reconcile extracted subject names with the catalog.

Per subject, the first rule that produces a match wins:
1. manual core override (Mathematics, English, Science, Social Studies),
   never applied to names carrying an elective marker
2. one batched AI matching call for the whole document, when a backend is set
3. deterministic heuristic search (find_best_subject_match)

Rules 1 and 3 are pure functions of (name, catalog). Rule 2 failures are
logged and recovered by rule 3; they never reach the caller.
"""
import logging
import re
from typing import Callable, Dict, List, Optional, Sequence

from wassce_parser.errors import MalformedServiceResponse, MatchingTransportFailed
from wassce_parser.schemas import (
    RawExtractedSubject,
    SubjectCatalogEntry,
    SubjectKind,
    has_elective_marker,
)
from wassce_parser.services.catalog import SubjectCatalog
from wassce_parser.services.llm_client import GenerativeBackend, parse_json_array

logger = logging.getLogger("services.matcher")

# -------------------------
# Rule 1: manual core overrides
# -------------------------
# extracted fragment -> catalog lookup key for the core subject
CORE_SUBJECT_OVERRIDES: Dict[str, str] = {
    "mathematics": "math",
    "maths": "math",
    "math": "math",
    "english language": "english",
    "english": "english",
    "integrated science": "science",
    "science": "science",
    "social studies": "social",
    "social": "social",
}

# words that may surround a core fragment without changing the subject
CORE_FILLER_WORDS = {"core", "language", "studies", "general", "(core)"}

# electives that must never be treated as core
KNOWN_ELECTIVES = [
    "Elective Mathematics",
    "Mathematics (Elect)",
    "Elective Maths",
    "Mathematics Elective",
]

_PUNCT = re.compile(r"[^a-z0-9() ]+")


def _norm(name: str) -> str:
    return re.sub(r"\s+", " ", (name or "").lower()).strip()


def core_override(name: str, catalog: SubjectCatalog) -> Optional[SubjectCatalogEntry]:
    """
    Resolve common core subjects directly to their catalog entry.
    Fires only when the name is one of the fragments, optionally with filler
    such as "core" or "language"; "Computer Science" does not qualify.
    """
    if has_elective_marker(name):
        return None
    text = _PUNCT.sub(" ", _norm(name))
    for fragment in sorted(CORE_SUBJECT_OVERRIDES, key=len, reverse=True):
        m = re.search(rf"\b{re.escape(fragment)}\b", text)
        if not m:
            continue
        rest = (text[:m.start()] + " " + text[m.end():]).split()
        if all(w in CORE_FILLER_WORDS for w in rest):
            return catalog.find_core(CORE_SUBJECT_OVERRIDES[fragment])
        return None
    return None


# -------------------------
# Rule 3: deterministic heuristic
# -------------------------
def is_elective_name(name: str) -> bool:
    norm = _norm(name)
    return has_elective_marker(norm) or norm in {e.lower() for e in KNOWN_ELECTIVES}


def _contains_either(a: str, b: str) -> bool:
    # empty strings would match everything
    return bool(a) and bool(b) and (a in b or b in a)


def _ordered_search(norm: str, subjects: Sequence[SubjectCatalogEntry]) -> Optional[SubjectCatalogEntry]:
    checks: List[Callable[[SubjectCatalogEntry], bool]] = [
        lambda s: s.code.lower() == norm,
        lambda s: s.name.lower() == norm,
        lambda s: _contains_either(s.code.lower(), norm),
        lambda s: _contains_either(s.name.lower(), norm),
    ]
    for check in checks:
        hit = next((s for s in subjects if check(s)), None)
        if hit is not None:
            return hit

    # "Mathematics (Elect)" -> "Elective Maths" before any other math elective
    if "math" in norm and "elect" in norm:
        for check in (
            lambda s: s.name.lower() == "elective maths",
            lambda s: "elective" in s.name.lower() and "math" in s.name.lower(),
            lambda s: "elective" in s.code.lower() and "math" in s.code.lower(),
        ):
            hit = next((s for s in subjects if check(s)), None)
            if hit is not None:
                return hit

    for word in norm.split():
        if len(word) <= 3:
            continue
        hit = next((s for s in subjects if word in s.code.lower()), None)
        if hit is None:
            hit = next((s for s in subjects if word in s.name.lower()), None)
        if hit is not None:
            return hit
    return None


def find_best_subject_match(name: str, catalog: SubjectCatalog) -> Optional[SubjectCatalogEntry]:
    """
    Ordered heuristic search. Elective-looking names search the electives
    first and widen to the full catalog; other names search the full catalog.
    Returns None when nothing resembles the name.
    """
    norm = _norm(name)
    if not norm:
        return None
    if is_elective_name(norm):
        hit = _ordered_search(norm, catalog.electives)
        if hit is not None:
            return hit
    return _ordered_search(norm, catalog.entries)


# -------------------------
# Rule 2: batched AI matching
# -------------------------
MATCH_PROMPT = """I have extracted subjects and grades from a WASSCE results document. I need to match each extracted subject to the correct subject from our API database.

IMPORTANT: These subjects MUST be treated as CORE subjects:
- Mathematics (or Math) - BUT NOT "Mathematics (Elect)" or "Elective Mathematics"
- English (or English Language)
- Science (or Integrated Science)
- Social Studies (or Social)

IMPORTANT: These subjects MUST be treated as ELECTIVE subjects:
- Mathematics (Elect) or Elective Mathematics
- Any subject with "(Elect)" or "Elect" in the name
- All other subjects not listed as core

A subject containing "Elect" may only be matched to an Elective subject. A core subject may only be matched to a Core subject.

EXTRACTED SUBJECTS:
{extracted}

API SUBJECTS DATABASE:
{catalog}

For each extracted subject, find the best matching subject from the API database. Consider exact name matches first, then partial name matches, subject codes, common abbreviations (e.g. "Math" matches "Mathematics") and Ghanaian subject naming conventions.

Return ONLY a JSON array where each object has:
- "name": the original extracted subject name
- "grade": the original grade
- "matchedSubjectId": the ID of the best matching API subject (or null if no good match)

Return ONLY the JSON array, no explanations."""


def build_match_prompt(subjects: Sequence[RawExtractedSubject], catalog: SubjectCatalog) -> str:
    extracted = "\n".join(f"{s.name}: {s.grade}" for s in subjects)
    listing = "\n".join(
        f"{e.name} (ID: {e.id}, Code: {e.code}, Type: {'Core' if e.kind == SubjectKind.CORE else 'Elective'})"
        for e in catalog
    )
    return MATCH_PROMPT.format(extracted=extracted, catalog=listing)


class SubjectMatcher:
    def __init__(self, catalog: SubjectCatalog, backend: Optional[GenerativeBackend] = None):
        self.catalog = catalog
        self.backend = backend

    async def match(
        self, subjects: Sequence[RawExtractedSubject]
    ) -> List[Optional[SubjectCatalogEntry]]:
        """One catalog entry (or None) per input subject, in input order."""
        results: List[Optional[SubjectCatalogEntry]] = [
            core_override(s.name, self.catalog) for s in subjects
        ]

        pending = [s for s, hit in zip(subjects, results) if hit is None]
        ai_matches: Dict[str, SubjectCatalogEntry] = {}
        if pending and self.backend is not None:
            try:
                ai_matches = await self._ai_match(pending)
            except (MatchingTransportFailed, MalformedServiceResponse) as e:
                logger.warning("AI subject matching unavailable, using heuristics: %s", e)

        for i, s in enumerate(subjects):
            if results[i] is not None:
                continue
            hit = ai_matches.get(s.name.lower())
            if hit is None:
                hit = find_best_subject_match(s.name, self.catalog)
            if hit is None:
                logger.info("No catalog match for extracted subject %r", s.name)
            results[i] = hit
        return results

    async def _ai_match(self, subjects: Sequence[RawExtractedSubject]) -> Dict[str, SubjectCatalogEntry]:
        prompt = build_match_prompt(subjects, self.catalog)
        try:
            reply = await self.backend.generate(prompt)
        except MalformedServiceResponse:
            raise
        except Exception as e:
            raise MatchingTransportFailed(f"{type(e).__name__}: {e}") from e

        names = {s.name.lower() for s in subjects}
        matches: Dict[str, SubjectCatalogEntry] = {}
        for item in parse_json_array(reply):
            if not isinstance(item, dict) or not isinstance(item.get("name"), str):
                continue
            key = item["name"].strip().lower()
            if key not in names:
                logger.debug("Discarding AI match for unknown subject %r", item["name"])
                continue
            entry = self.catalog.get(item.get("matchedSubjectId"))
            if entry is None:
                continue
            if has_elective_marker(key) and entry.kind != SubjectKind.ELECTIVE:
                logger.debug("Rejecting core match %r for elective subject %r", entry.name, item["name"])
                continue
            matches.setdefault(key, entry)
        return matches
