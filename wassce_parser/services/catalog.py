# wassce_parser/services/catalog.py
"""
Canonical subject catalog.

Reference data arrives as two partitions (core, elective) of
{id, name, subject_code|code, type} records. The elective partition may list
the same subject under several codes, so electives are de-duplicated on
name or code before use.
"""
import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Union

from wassce_parser.schemas import SubjectCatalogEntry, SubjectKind

logger = logging.getLogger("services.catalog")

Record = Union[Mapping[str, Any], SubjectCatalogEntry]


def _to_entry(record: Record, kind: SubjectKind) -> SubjectCatalogEntry:
    if isinstance(record, SubjectCatalogEntry):
        return record.model_copy(update={"kind": kind})
    data = dict(record)
    data["kind"] = kind
    data.pop("type", None)
    return SubjectCatalogEntry.model_validate(data)


class SubjectCatalog:
    """Read-only view over the catalog entries, indexed by id."""

    def __init__(self, entries: Iterable[SubjectCatalogEntry]):
        self._entries: tuple = tuple(entries)
        self._by_id: Dict[int, SubjectCatalogEntry] = {}
        for e in self._entries:
            if e.id in self._by_id:
                raise ValueError(f"Duplicate subject id in catalog: {e.id}")
            self._by_id[e.id] = e

    @classmethod
    def from_partitions(
        cls,
        core_records: Sequence[Record],
        elective_records: Sequence[Record],
    ) -> "SubjectCatalog":
        core = [_to_entry(r, SubjectKind.CORE) for r in core_records]
        core_ids = {e.id for e in core}

        electives: List[SubjectCatalogEntry] = []
        seen_names, seen_codes = set(), set()
        for r in elective_records:
            e = _to_entry(r, SubjectKind.ELECTIVE)
            name_key = e.name.strip().lower()
            code_key = e.code.strip().lower()
            if e.id in core_ids or name_key in seen_names or (code_key and code_key in seen_codes):
                logger.debug("Dropping duplicate elective id=%s name=%r code=%r", e.id, e.name, e.code)
                continue
            seen_names.add(name_key)
            if code_key:
                seen_codes.add(code_key)
            electives.append(e)

        logger.info("Catalog built: %d core, %d elective", len(core), len(electives))
        return cls(core + electives)

    @property
    def entries(self) -> List[SubjectCatalogEntry]:
        return list(self._entries)

    @property
    def core(self) -> List[SubjectCatalogEntry]:
        return [e for e in self._entries if e.kind == SubjectKind.CORE]

    @property
    def electives(self) -> List[SubjectCatalogEntry]:
        return [e for e in self._entries if e.kind == SubjectKind.ELECTIVE]

    def get(self, subject_id: Any) -> Optional[SubjectCatalogEntry]:
        if isinstance(subject_id, str) and subject_id.strip().isdigit():
            subject_id = int(subject_id)
        if isinstance(subject_id, bool) or not isinstance(subject_id, int):
            return None
        return self._by_id.get(subject_id)

    def find_core(self, fragment: str) -> Optional[SubjectCatalogEntry]:
        """First core entry whose code or name contains the fragment."""
        frag = fragment.lower()
        for e in self.core:
            if frag in e.code.lower() or frag in e.name.lower():
                return e
        return None

    def __iter__(self) -> Iterator[SubjectCatalogEntry]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)


def load_catalog_file(path: Union[str, Path]) -> SubjectCatalog:
    """Load {"core": [...], "elective": [...]} reference data from disk."""
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ValueError(f"Catalog file {path} must contain a JSON object")
    return SubjectCatalog.from_partitions(raw.get("core") or [], raw.get("elective") or [])
