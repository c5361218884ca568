"""Boolean filter expressions pushed down to the record store.

Each node renders to an Airtable formula via ``to_formula()`` and can also be
evaluated against a plain field mapping (and record id) via ``matches()``,
which is what the in-memory store used in tests relies on.
"""

from dataclasses import dataclass
from typing import Any, Mapping, Tuple


def _field_ref(name: str) -> str:
    return "{" + name.replace("}", "\\}") + "}"


def quote(value: str) -> str:
    escaped = str(value).replace("\\", "\\\\").replace("'", "\\'")
    return f"'{escaped}'"


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, dict)):
        return not value
    return False


class Filter:
    def to_formula(self) -> str:
        raise NotImplementedError

    def matches(self, fields: Mapping[str, Any], record_id: str = "") -> bool:
        raise NotImplementedError

    def __str__(self) -> str:
        return self.to_formula()


@dataclass(frozen=True)
class Always(Filter):
    def to_formula(self) -> str:
        return "TRUE()"

    def matches(self, fields: Mapping[str, Any], record_id: str = "") -> bool:
        return True


@dataclass(frozen=True)
class IsBlank(Filter):
    field: str

    def to_formula(self) -> str:
        return f"{_field_ref(self.field)} = BLANK()"

    def matches(self, fields: Mapping[str, Any], record_id: str = "") -> bool:
        return _is_blank(fields.get(self.field))


@dataclass(frozen=True)
class Equals(Filter):
    field: str
    value: str

    def to_formula(self) -> str:
        return f"{_field_ref(self.field)} = {quote(self.value)}"

    def matches(self, fields: Mapping[str, Any], record_id: str = "") -> bool:
        value = fields.get(self.field)
        return value is not None and str(value) == self.value


@dataclass(frozen=True)
class EqualsIgnoreCase(Filter):
    field: str
    value: str

    def to_formula(self) -> str:
        return f"LOWER({_field_ref(self.field)}) = {quote(self.value.lower())}"

    def matches(self, fields: Mapping[str, Any], record_id: str = "") -> bool:
        value = fields.get(self.field)
        return value is not None and str(value).strip().lower() == self.value.strip().lower()


@dataclass(frozen=True)
class RecordIdIn(Filter):
    """Matches rows whose Airtable record id is one of ``record_ids``."""

    record_ids: Tuple[str, ...]

    def to_formula(self) -> str:
        if not self.record_ids:
            return "FALSE()"
        clauses = [f"RECORD_ID() = {quote(record_id)}" for record_id in self.record_ids]
        if len(clauses) == 1:
            return clauses[0]
        return "OR(" + ", ".join(clauses) + ")"

    def matches(self, fields: Mapping[str, Any], record_id: str = "") -> bool:
        return record_id in self.record_ids


@dataclass(frozen=True)
class Not(Filter):
    inner: Filter

    def to_formula(self) -> str:
        return f"NOT({self.inner.to_formula()})"

    def matches(self, fields: Mapping[str, Any], record_id: str = "") -> bool:
        return not self.inner.matches(fields, record_id)


class _Compound(Filter):
    keyword = ""

    def __init__(self, *clauses: Filter) -> None:
        if not clauses:
            raise ValueError(f"{self.keyword} requires at least one clause")
        self.clauses: Tuple[Filter, ...] = clauses

    def to_formula(self) -> str:
        if len(self.clauses) == 1:
            return self.clauses[0].to_formula()
        return f"{self.keyword}(" + ", ".join(clause.to_formula() for clause in self.clauses) + ")"

    def __eq__(self, other: object) -> bool:
        return type(self) is type(other) and self.clauses == other.clauses  # type: ignore[attr-defined]

    def __hash__(self) -> int:
        return hash((self.keyword, self.clauses))

    def __repr__(self) -> str:
        return f"{type(self).__name__}{self.clauses!r}"


class And(_Compound):
    keyword = "AND"

    def matches(self, fields: Mapping[str, Any], record_id: str = "") -> bool:
        return all(clause.matches(fields, record_id) for clause in self.clauses)


class Or(_Compound):
    keyword = "OR"

    def matches(self, fields: Mapping[str, Any], record_id: str = "") -> bool:
        return any(clause.matches(fields, record_id) for clause in self.clauses)
