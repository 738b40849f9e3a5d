"""
Query model and builder.

Queries compile to a parameterised SQL WHERE clause over the artifacts table.
Column names only ever come from the Field enum.
"""

from __future__ import annotations

import shlex
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Literal

from artindex.errors import QueryParseError


class Field(str, Enum):
    """Searchable artifact fields."""

    GROUP_ID = "group_id"
    ARTIFACT_ID = "artifact_id"
    VERSION = "version"
    CLASSIFIER = "classifier"
    EXTENSION = "extension"
    PACKAGING = "packaging"
    SHA1 = "sha1"
    FILE_NAME = "file_name"

    @classmethod
    def parse(cls, name: "Field | str") -> "Field":
        """Resolve a field from its value, enum name or short alias."""
        if isinstance(name, Field):
            return name
        key = name.strip().lower()
        for field in cls:
            if key in (field.value, field.name.lower()):
                return field
        alias = _ALIASES.get(key)
        if alias is None:
            raise QueryParseError(f"Unknown field: {name}")
        return alias


_ALIASES = {
    "g": Field.GROUP_ID,
    "groupid": Field.GROUP_ID,
    "a": Field.ARTIFACT_ID,
    "artifactid": Field.ARTIFACT_ID,
    "v": Field.VERSION,
    "c": Field.CLASSIFIER,
    "e": Field.EXTENSION,
    "p": Field.PACKAGING,
    "1": Field.SHA1,
    "n": Field.FILE_NAME,
}


class SearchType(str, Enum):
    """How query text is matched against a field."""

    EXACT = "exact"
    SCORED = "scored"


class Query(ABC):
    """An executable query."""

    @abstractmethod
    def to_sql(self) -> tuple[str, list[Any]]:
        """Compile to a WHERE clause and its parameters."""
        pass


@dataclass(frozen=True)
class MatchAllQuery(Query):
    """Matches every document."""

    def to_sql(self) -> tuple[str, list[Any]]:
        return "1=1", []


@dataclass(frozen=True)
class FieldQuery(Query):
    """
    One field matched against one term.

    EXACT compares for equality; SCORED matches a LIKE pattern built by the
    QueryBuilder, case-insensitively.
    """

    field: Field
    text: str
    search_type: SearchType = SearchType.EXACT

    def to_sql(self) -> tuple[str, list[Any]]:
        column = self.field.value
        if self.search_type is SearchType.EXACT:
            return f"{column} = ?", [self.text]
        return f"LOWER({column}) LIKE ? ESCAPE '\\'", [self.text]


@dataclass(frozen=True)
class BooleanQuery(Query):
    """Conjunction or disjunction of queries."""

    clauses: tuple[Query, ...]
    operator: Literal["AND", "OR"] = "AND"

    def to_sql(self) -> tuple[str, list[Any]]:
        if not self.clauses:
            return ("1=1" if self.operator == "AND" else "1=0"), []
        parts: list[str] = []
        params: list[Any] = []
        for clause in self.clauses:
            sql, clause_params = clause.to_sql()
            parts.append(f"({sql})")
            params.extend(clause_params)
        return f" {self.operator} ".join(parts), params


class QueryBuilder:
    """Compiles (field, text, search type) triples into queries."""

    def build(
        self,
        field: Field | str,
        text: str,
        search_type: SearchType = SearchType.SCORED,
    ) -> Query:
        """
        Build a query.

        Args:
            field: Field to match.
            text: Query text. EXACT uses it verbatim (trimmed); SCORED splits
                it into terms, each a prefix match with optional `*`/`?`
                wildcards, all of which must match.
            search_type: Match semantics.

        Raises:
            QueryParseError: Unknown field, empty text, unbalanced quotes or
                a term starting with a wildcard.
        """
        resolved = Field.parse(field)
        stripped = (text or "").strip()
        if not stripped:
            raise QueryParseError(f"Empty query text for field {resolved.value}")

        if SearchType(search_type) is SearchType.EXACT:
            if resolved is Field.SHA1:
                stripped = stripped.lower()
            return FieldQuery(resolved, stripped, SearchType.EXACT)

        try:
            terms = shlex.split(stripped)
        except ValueError as e:
            raise QueryParseError(f"Cannot parse query text {text!r}: {e}") from e

        clauses = [
            FieldQuery(resolved, self._like_pattern(term), SearchType.SCORED)
            for term in terms
            if term
        ]
        if not clauses:
            raise QueryParseError(f"Empty query text for field {resolved.value}")
        if len(clauses) == 1:
            return clauses[0]
        return BooleanQuery(tuple(clauses), "AND")

    @staticmethod
    def _like_pattern(term: str) -> str:
        if term[0] in "*?":
            raise QueryParseError(f"Leading wildcard not allowed: {term!r}")

        escaped = (
            term.lower()
            .replace("\\", "\\\\")
            .replace("%", "\\%")
            .replace("_", "\\_")
            .replace("*", "%")
            .replace("?", "_")
        )
        if not term.endswith("*"):
            escaped += "%"
        return escaped
