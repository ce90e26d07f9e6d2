"""
Models package for unified legal search objects.
"""

from .search import (
    AggregatedResult,
    DetailOutcome,
    DocumentDetail,
    ErrorKind,
    FilterSet,
    Query,
    QueryValidationError,
    ResultRecord,
    SearchFailure,
    SearchOutcome,
    SearchSuccess,
    SourceId,
)

__all__ = [
    "AggregatedResult",
    "DetailOutcome",
    "DocumentDetail",
    "ErrorKind",
    "FilterSet",
    "Query",
    "QueryValidationError",
    "ResultRecord",
    "SearchFailure",
    "SearchOutcome",
    "SearchSuccess",
    "SourceId",
]
