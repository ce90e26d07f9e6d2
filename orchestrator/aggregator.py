"""
ResultAggregator - merge per-source outcomes into one ranked result.

Aggregation is a pure function of its inputs: the same outcomes and filters
always produce the same AggregatedResult, regardless of which source
finished first.
"""

import re
from datetime import date

from models.search import (
    AggregatedResult,
    FilterSet,
    QueryValidationError,
    ResultRecord,
    SearchOutcome,
    SearchSuccess,
    SourceId,
    parse_yyyymmdd,
)
from utils.logger import get_logger

logger = get_logger(__name__)


def _sort_key(record: ResultRecord) -> tuple:
    # Newest first; records without a date sort after every dated one
    if record.effective_date is not None:
        date_key = (0, -record.effective_date.toordinal())
    else:
        date_key = (1, 0)
    return (-record.relevance_score, date_key, record.source_type.value, record.id)


class ResultAggregator:
    """
    Combines outcomes from every source.

    Steps, in order: collect records from successes, dedupe by
    (source_type, id) keeping the highest score, sort, apply client-side
    filters, then compute the summary counts.
    """

    def aggregate(
        self,
        outcomes: dict[SourceId, SearchOutcome],
        filters: FilterSet | None = None,
        query_text: str = "",
    ) -> AggregatedResult:
        """
        Args:
            outcomes: One outcome per requested source
            filters: Client-side filters (regex, title_only, min_score, dates)
            query_text: The original query text, used by regex/title_only

        Returns:
            AggregatedResult

        Raises:
            QueryValidationError: If filters.regex is set and query_text is not a valid pattern
        """
        filters = filters or FilterSet()

        best: dict[tuple[SourceId, str], ResultRecord] = {}
        total_requested = 0
        successes = 0
        for source in sorted(outcomes, key=lambda s: s.value):
            outcome = outcomes[source]
            if not isinstance(outcome, SearchSuccess):
                continue
            successes += 1
            total_requested += outcome.total_count
            for record in outcome.records:
                current = best.get(record.identity)
                if current is None or record.relevance_score > current.relevance_score:
                    best[record.identity] = record

        ordered = sorted(best.values(), key=_sort_key)
        matches = self._build_filter(filters, query_text)
        records = tuple(r for r in ordered if matches(r))

        failures = len(outcomes) - successes
        result = AggregatedResult(
            records=records,
            total_requested=total_requested,
            total_returned=len(records),
            per_source_outcome=dict(outcomes),
            partial=successes > 0 and failures > 0,
        )

        logger.debug(
            "Aggregated search results",
            extra={
                "extra_fields": {
                    "sources": len(outcomes),
                    "successes": successes,
                    "failures": failures,
                    "unique_records": len(best),
                    "returned": len(records),
                }
            },
        )
        return result

    @staticmethod
    def _build_filter(filters: FilterSet, query_text: str):
        pattern = None
        if filters.regex and query_text.strip():
            try:
                pattern = re.compile(query_text)
            except re.error as e:
                raise QueryValidationError(f"Invalid regular expression: {e}") from e

        needle = " ".join(query_text.split()).lower() if filters.title_only else ""
        date_from: date | None = parse_yyyymmdd(filters.date_from)
        date_to: date | None = parse_yyyymmdd(filters.date_to)
        min_score = filters.min_score
        statuses = set(filters.statuses)

        def matches(record: ResultRecord) -> bool:
            if pattern is not None and not pattern.search(record.title):
                return False
            if needle and needle not in record.title.lower():
                return False
            if min_score is not None and record.relevance_score < min_score:
                return False
            if statuses and record.metadata.get("status") not in statuses:
                return False
            if date_from or date_to:
                if record.effective_date is None:
                    return False
                if date_from and record.effective_date < date_from:
                    return False
                if date_to and record.effective_date > date_to:
                    return False
            return True

        return matches
