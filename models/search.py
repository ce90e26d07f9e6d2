"""
Unified search data model shared by every legal-information source.

All objects here are immutable dataclasses: a Query is fixed for the lifetime
of one dispatch, SearchOutcome values are produced once per source and read
once by the aggregator.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Union


class QueryValidationError(ValueError):
    """Raised for bad top-level input before any source is contacted."""


class SourceId(str, Enum):
    """The five government legal-data backends."""

    STATUTE = "statute"
    ORDINANCE = "ordinance"
    PRECEDENT = "precedent"
    ADMIN_RULE = "admin_rule"
    INTERPRETATION = "interpretation"

    @classmethod
    def all(cls) -> frozenset["SourceId"]:
        return frozenset(cls)

    @classmethod
    def parse(cls, name: str) -> frozenset["SourceId"]:
        """
        Resolve a user-facing source name (or alias) to a set of sources.

        "all" / "unified" expand to every source.

        Raises:
            QueryValidationError: If the name is unknown
        """
        key = (name or "").strip().lower()
        if key in ("all", "unified"):
            return cls.all()
        source = _SOURCE_ALIASES.get(key)
        if source is None:
            raise QueryValidationError(f"Unknown source: {name!r}")
        return frozenset({source})

    @classmethod
    def parse_many(cls, names: str) -> frozenset["SourceId"]:
        """Parse a comma separated list such as "statute,prec"."""
        sources: set[SourceId] = set()
        for part in (names or "").split(","):
            if part.strip():
                sources |= cls.parse(part)
        if not sources:
            raise QueryValidationError("At least one source must be selected")
        return frozenset(sources)


_SOURCE_ALIASES: dict[str, SourceId] = {
    "statute": SourceId.STATUTE,
    "law": SourceId.STATUTE,
    "nlic": SourceId.STATUTE,
    "ordinance": SourceId.ORDINANCE,
    "elis": SourceId.ORDINANCE,
    "precedent": SourceId.PRECEDENT,
    "prec": SourceId.PRECEDENT,
    "admin_rule": SourceId.ADMIN_RULE,
    "admrul": SourceId.ADMIN_RULE,
    "administrative": SourceId.ADMIN_RULE,
    "interpretation": SourceId.INTERPRETATION,
    "expc": SourceId.INTERPRETATION,
}


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    AUTH = "auth"
    NETWORK = "network"
    SERVER_ERROR = "server_error"
    CLIENT_ERROR = "client_error"
    PARSE_ERROR = "parse_error"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"


_DATE_RE = re.compile(r"^\d{8}$")


def parse_yyyymmdd(value: Any) -> date | None:
    """
    Parse an upstream date field.

    Upstream APIs send YYYYMMDD, sometimes with dots or dashes
    ("2024.01.15", "2024-01-15"). Anything else becomes None.
    """
    if value is None:
        return None
    digits = re.sub(r"[.\-/\s]", "", str(value))
    if not _DATE_RE.match(digits):
        return None
    try:
        return datetime.strptime(digits, "%Y%m%d").date()
    except ValueError:
        return None


def _as_tuple(value: Any) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return tuple(v.strip() for v in value.split(",") if v.strip())
    return tuple(str(v).strip() for v in value if str(v).strip())


@dataclass(frozen=True)
class FilterSet:
    """
    Optional restrictions applied to a search.

    Attributes:
        law_types: Law type names/codes pushed to backends that support them
        departments: Department names/codes pushed to backends
        date_from: Inclusive lower bound, YYYYMMDD
        date_to: Inclusive upper bound, YYYYMMDD
        statuses: Status filter (e.g. current/historical)
        min_score: Minimum relevance score (0.0-1.0), applied client-side
        regex: Treat the query text as a regular expression over titles
        title_only: Require the query text to appear in the title
        region: Local government name (ordinances only)
        court: Court name (precedents only)
        case_type: Case type (precedents only)
    """

    law_types: tuple[str, ...] = ()
    departments: tuple[str, ...] = ()
    date_from: str | None = None
    date_to: str | None = None
    statuses: tuple[str, ...] = ()
    min_score: float | None = None
    regex: bool = False
    title_only: bool = False
    region: str | None = None
    court: str | None = None
    case_type: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "FilterSet":
        """Build a FilterSet from a resolved preset (unknown keys are ignored)."""
        data = data or {}
        min_score = data.get("min_score")
        return cls(
            law_types=_as_tuple(data.get("law_types", data.get("law_type"))),
            departments=_as_tuple(data.get("departments", data.get("department"))),
            date_from=data.get("date_from", data.get("from")) or None,
            date_to=data.get("date_to", data.get("to")) or None,
            statuses=_as_tuple(data.get("statuses", data.get("status"))),
            min_score=float(min_score) if min_score is not None else None,
            regex=bool(data.get("regex", False)),
            title_only=bool(data.get("title_only", False)),
            region=data.get("region") or None,
            court=data.get("court") or None,
            case_type=data.get("case_type") or None,
        )

    @property
    def is_empty(self) -> bool:
        return self == FilterSet()

    def validate(self) -> None:
        for label, value in (("date_from", self.date_from), ("date_to", self.date_to)):
            if value is not None and parse_yyyymmdd(value) is None:
                raise QueryValidationError(f"{label} must be YYYYMMDD, got {value!r}")
        if self.date_from and self.date_to:
            if parse_yyyymmdd(self.date_from) > parse_yyyymmdd(self.date_to):
                raise QueryValidationError("date_from must not be after date_to")
        if self.min_score is not None and not 0.0 <= self.min_score <= 1.0:
            raise QueryValidationError("min_score must be between 0.0 and 1.0")

    def cache_fingerprint(self) -> str:
        """Stable, order-independent text form used in cache keys."""
        parts = [
            f"law_types={','.join(sorted(self.law_types))}",
            f"departments={','.join(sorted(self.departments))}",
            f"date_from={self.date_from or ''}",
            f"date_to={self.date_to or ''}",
            f"statuses={','.join(sorted(self.statuses))}",
            f"region={self.region or ''}",
            f"court={self.court or ''}",
            f"case_type={self.case_type or ''}",
        ]
        return "&".join(parts)


@dataclass(frozen=True)
class Query:
    text: str
    page: int = 1
    page_size: int = 20
    filters: FilterSet = field(default_factory=FilterSet)
    sources: frozenset[SourceId] = field(default_factory=SourceId.all)
    bypass_cache: bool = False

    def __post_init__(self):
        if not isinstance(self.sources, frozenset):
            object.__setattr__(self, "sources", frozenset(self.sources))

    @property
    def normalized_text(self) -> str:
        """Trimmed, whitespace-collapsed, lower-cased text used for cache keys."""
        return " ".join(self.text.split()).lower()

    def validate(self) -> None:
        """
        Reject queries that must never reach a backend.

        Raises:
            QueryValidationError: On empty text, bad paging, empty source set or bad filters
        """
        if not self.text or not self.text.strip():
            raise QueryValidationError("Search query cannot be empty")
        if self.page < 1:
            raise QueryValidationError("page must be >= 1")
        if self.page_size < 1:
            raise QueryValidationError("page_size must be >= 1")
        if not self.sources:
            raise QueryValidationError("At least one source must be selected")
        self.filters.validate()
        if self.filters.regex:
            try:
                re.compile(self.text)
            except re.error as e:
                raise QueryValidationError(f"Invalid regular expression: {e}") from e


@dataclass(frozen=True)
class ResultRecord:
    id: str
    title: str
    source_type: SourceId
    department: str = ""
    effective_date: date | None = None
    detail_url: str = ""
    relevance_score: float = 0.0
    metadata: dict[str, str] = field(default_factory=dict, compare=False, hash=False)

    @property
    def identity(self) -> tuple[SourceId, str]:
        return (self.source_type, self.id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "source_type": self.source_type.value,
            "department": self.department,
            "effective_date": (
                self.effective_date.strftime("%Y%m%d") if self.effective_date else None
            ),
            "detail_url": self.detail_url,
            "relevance_score": self.relevance_score,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ResultRecord":
        return cls(
            id=str(data["id"]),
            title=data.get("title", ""),
            source_type=SourceId(data["source_type"]),
            department=data.get("department", ""),
            effective_date=parse_yyyymmdd(data.get("effective_date")),
            detail_url=data.get("detail_url", ""),
            relevance_score=float(data.get("relevance_score", 0.0)),
            metadata=dict(data.get("metadata") or {}),
        )


@dataclass(frozen=True)
class SearchSuccess:
    records: tuple[ResultRecord, ...] = ()
    total_count: int = 0

    is_success = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "records": [r.to_dict() for r in self.records],
            "total_count": self.total_count,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SearchSuccess":
        return cls(
            records=tuple(ResultRecord.from_dict(r) for r in data.get("records", [])),
            total_count=int(data.get("total_count", 0)),
        )


@dataclass(frozen=True)
class SearchFailure:
    kind: ErrorKind
    message: str
    retriable: bool = False
    details: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    is_success = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "retriable": self.retriable,
            "details": dict(self.details),
        }


SearchOutcome = Union[SearchSuccess, SearchFailure]


@dataclass(frozen=True)
class DocumentDetail:
    """Full text of a single document returned by a detail lookup."""

    id: str
    title: str
    source_type: SourceId
    department: str = ""
    effective_date: date | None = None
    content: str = ""
    metadata: dict[str, str] = field(default_factory=dict, compare=False, hash=False)

    is_success = True


DetailOutcome = Union[DocumentDetail, SearchFailure]


@dataclass(frozen=True)
class AggregatedResult:
    """
    Merged, ranked view over every requested source.

    partial is True only when some sources succeeded and some failed. When all
    sources fail, records is empty and partial is False; callers check
    all_failed to tell that apart from a genuine zero-result search.
    """

    records: tuple[ResultRecord, ...]
    total_requested: int
    total_returned: int
    per_source_outcome: dict[SourceId, SearchOutcome]
    partial: bool

    @property
    def success_count(self) -> int:
        return sum(1 for o in self.per_source_outcome.values() if o.is_success)

    @property
    def failure_count(self) -> int:
        return sum(1 for o in self.per_source_outcome.values() if not o.is_success)

    @property
    def all_failed(self) -> bool:
        return bool(self.per_source_outcome) and self.success_count == 0

    def failures(self) -> dict[SourceId, SearchFailure]:
        return {
            source: outcome
            for source, outcome in self.per_source_outcome.items()
            if not outcome.is_success
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "records": [r.to_dict() for r in self.records],
            "total_requested": self.total_requested,
            "total_returned": self.total_returned,
            "partial": self.partial,
            "per_source_outcome": {
                source.value: (
                    {"status": "success", "total_count": outcome.total_count}
                    if outcome.is_success
                    else {"status": "failure", **outcome.to_dict()}
                )
                for source, outcome in sorted(
                    self.per_source_outcome.items(), key=lambda item: item[0].value
                )
            },
        }
