from datetime import date

import pytest

from models.search import (
    ErrorKind,
    FilterSet,
    QueryValidationError,
    ResultRecord,
    SearchFailure,
    SearchSuccess,
    SourceId,
)
from orchestrator.aggregator import ResultAggregator


def _record(record_id, score, source=SourceId.STATUTE, title=None, effective_date=None):
    return ResultRecord(
        id=record_id,
        title=title or f"개인정보 {record_id}",
        source_type=source,
        effective_date=effective_date,
        relevance_score=score,
    )


def _success(*records, total_count=None):
    return SearchSuccess(
        records=tuple(records),
        total_count=len(records) if total_count is None else total_count,
    )


TIMEOUT = SearchFailure(kind=ErrorKind.TIMEOUT, message="slow")
AUTH = SearchFailure(kind=ErrorKind.AUTH, message="API key not configured")


@pytest.fixture
def aggregator():
    return ResultAggregator()


def test_partial_result_scenario(aggregator):
    outcomes = {
        SourceId.STATUTE: _success(_record("a", 0.5), _record("b", 0.9), _record("c", 0.7)),
        SourceId.PRECEDENT: TIMEOUT,
    }

    result = aggregator.aggregate(outcomes)

    assert result.partial
    assert [r.relevance_score for r in result.records] == [0.9, 0.7, 0.5]
    assert result.total_returned == 3
    assert result.per_source_outcome[SourceId.PRECEDENT].kind == ErrorKind.TIMEOUT


def test_all_failed(aggregator):
    outcomes = {source: AUTH for source in SourceId}

    result = aggregator.aggregate(outcomes)

    assert result.records == ()
    assert not result.partial
    assert result.all_failed
    assert all(o.kind == ErrorKind.AUTH for o in result.per_source_outcome.values())


def test_all_success_is_not_partial(aggregator):
    result = aggregator.aggregate({SourceId.STATUTE: _success(), SourceId.PRECEDENT: _success()})

    assert not result.partial
    assert not result.all_failed
    assert result.records == ()


def test_dedup_keeps_highest_score(aggregator):
    outcomes = {
        SourceId.STATUTE: _success(_record("1", 0.4), _record("1", 0.8)),
        SourceId.ORDINANCE: _success(_record("1", 0.6)),
    }

    result = aggregator.aggregate(outcomes)

    assert len(result.records) == 1
    assert result.records[0].relevance_score == 0.8


def test_same_id_different_source_type_is_kept(aggregator):
    outcomes = {
        SourceId.STATUTE: _success(_record("42", 0.5, SourceId.STATUTE)),
        SourceId.PRECEDENT: _success(_record("42", 0.5, SourceId.PRECEDENT)),
    }

    result = aggregator.aggregate(outcomes)

    assert [r.source_type for r in result.records] == [SourceId.PRECEDENT, SourceId.STATUTE]


def test_total_requested_ignores_dedup_and_filters(aggregator):
    outcomes = {
        SourceId.STATUTE: _success(_record("1", 0.2), total_count=120),
        SourceId.PRECEDENT: _success(_record("2", 0.9, SourceId.PRECEDENT), total_count=30),
    }

    result = aggregator.aggregate(outcomes, FilterSet(min_score=0.5))

    assert result.total_requested == 150
    assert result.total_returned == 1


def test_tie_breaks(aggregator):
    newer = _record("b", 0.5, effective_date=date(2024, 1, 1))
    older = _record("a", 0.5, effective_date=date(2020, 1, 1))
    undated = _record("0", 0.5)
    other_source = _record("a", 0.5, SourceId.ADMIN_RULE, effective_date=date(2020, 1, 1))
    outcomes = {
        SourceId.STATUTE: _success(undated, older, newer),
        SourceId.ADMIN_RULE: _success(other_source),
    }

    result = aggregator.aggregate(outcomes)

    assert [(r.source_type, r.id) for r in result.records] == [
        (SourceId.STATUTE, "b"),
        (SourceId.ADMIN_RULE, "a"),
        (SourceId.STATUTE, "a"),
        (SourceId.STATUTE, "0"),
    ]


def test_idempotent(aggregator):
    outcomes = {
        SourceId.STATUTE: _success(_record("1", 0.3), _record("2", 0.3)),
        SourceId.INTERPRETATION: _success(_record("9", 0.7, SourceId.INTERPRETATION)),
        SourceId.ORDINANCE: TIMEOUT,
    }

    assert aggregator.aggregate(outcomes) == aggregator.aggregate(outcomes)


def test_input_order_does_not_matter(aggregator):
    a = {SourceId.STATUTE: _success(_record("1", 0.3)), SourceId.PRECEDENT: _success(_record("1", 0.3, SourceId.PRECEDENT))}
    b = dict(reversed(list(a.items())))

    assert aggregator.aggregate(a).records == aggregator.aggregate(b).records


class TestClientSideFilters:
    """Filters the aggregator applies after ranking."""

    def test_min_score(self, aggregator):
        outcomes = {SourceId.STATUTE: _success(_record("1", 0.2), _record("2", 0.6))}

        result = aggregator.aggregate(outcomes, FilterSet(min_score=0.5))

        assert [r.id for r in result.records] == ["2"]

    def test_regex_title(self, aggregator):
        outcomes = {
            SourceId.STATUTE: _success(
                _record("1", 0.5, title="개인정보 보호법"),
                _record("2", 0.5, title="개인정보 보호법 시행령"),
                _record("3", 0.5, title="정보통신망법"),
            )
        }

        result = aggregator.aggregate(outcomes, FilterSet(regex=True), query_text=r"보호법$")

        assert [r.id for r in result.records] == ["1"]

    def test_invalid_regex(self, aggregator):
        with pytest.raises(QueryValidationError):
            aggregator.aggregate({}, FilterSet(regex=True), query_text="(")

    def test_title_only(self, aggregator):
        outcomes = {
            SourceId.PRECEDENT: _success(
                _record("1", 0.5, SourceId.PRECEDENT, title="개인정보보호법위반"),
                _record("2", 0.5, SourceId.PRECEDENT, title="업무방해"),
            )
        }

        result = aggregator.aggregate(outcomes, FilterSet(title_only=True), query_text=" 개인정보 ")

        assert [r.id for r in result.records] == ["1"]

    def test_date_range_drops_undated(self, aggregator):
        outcomes = {
            SourceId.STATUTE: _success(
                _record("in", 0.5, effective_date=date(2022, 6, 1)),
                _record("early", 0.5, effective_date=date(2019, 1, 1)),
                _record("late", 0.5, effective_date=date(2024, 1, 1)),
                _record("none", 0.5),
            )
        }

        result = aggregator.aggregate(
            outcomes, FilterSet(date_from="20200101", date_to="20231231")
        )

        assert [r.id for r in result.records] == ["in"]

    def test_status(self, aggregator):
        current = ResultRecord(
            id="1", title="개인정보 보호법", source_type=SourceId.STATUTE, metadata={"status": "현행"}
        )
        repealed = ResultRecord(
            id="2", title="개인정보 보호법", source_type=SourceId.STATUTE, metadata={"status": "연혁"}
        )
        unknown = ResultRecord(id="3", title="개인정보 보호법", source_type=SourceId.STATUTE)
        outcomes = {SourceId.STATUTE: _success(current, repealed, unknown)}

        result = aggregator.aggregate(outcomes, FilterSet(statuses=("현행",)))

        assert [r.id for r in result.records] == ["1"]
        assert result.total_requested == 3

    def test_filtered_records_do_not_count_as_returned(self, aggregator):
        outcomes = {SourceId.STATUTE: _success(_record("1", 0.1)), SourceId.PRECEDENT: TIMEOUT}

        result = aggregator.aggregate(outcomes, FilterSet(min_score=0.9))

        assert result.records == ()
        assert result.total_returned == 0
        assert result.partial
