"""
End-to-end tests for LegalSearchOrchestrator with fake backends.
"""

import asyncio

import pytest

from config.config import Config
from models.search import (
    ErrorKind,
    FilterSet,
    Query,
    QueryValidationError,
    ResultRecord,
    SearchSuccess,
    SourceId,
)
from orchestrator.core import LegalSearchOrchestrator
from orchestrator.dispatcher import ParallelDispatcher


def _statute_hits():
    return SearchSuccess(
        records=tuple(
            ResultRecord(id=str(i), title=f"개인정보 {i}", source_type=SourceId.STATUTE, relevance_score=s)
            for i, s in enumerate([0.5, 0.9, 0.7])
        ),
        total_count=3,
    )


def test_personal_information_scenario(make_client):
    statute = make_client(SourceId.STATUTE, _statute_hits())
    precedent = make_client(SourceId.PRECEDENT, _statute_hits(), delay=5.0)
    dispatcher = ParallelDispatcher(
        {SourceId.STATUTE: statute, SourceId.PRECEDENT: precedent}, timeout_s=0.1
    )
    orchestrator = LegalSearchOrchestrator(dispatcher)

    query = Query(text="개인정보", sources={SourceId.STATUTE, SourceId.PRECEDENT})
    result = asyncio.run(orchestrator.search(query))

    assert result.partial
    assert len(result.records) == 3
    assert [r.relevance_score for r in result.records] == [0.9, 0.7, 0.5]
    assert result.per_source_outcome[SourceId.PRECEDENT].kind == ErrorKind.TIMEOUT


@pytest.mark.parametrize("text", ["", "   "])
def test_empty_query_is_rejected_before_dispatch(make_client, text):
    clients = {source: make_client(source, _statute_hits()) for source in SourceId}
    orchestrator = LegalSearchOrchestrator(ParallelDispatcher(clients))

    with pytest.raises(QueryValidationError):
        asyncio.run(orchestrator.search(Query(text=text)))
    with pytest.raises(QueryValidationError):
        orchestrator.search_sync(Query(text=text))

    assert all(client.calls == 0 for client in clients.values())


def test_invalid_regex_is_rejected_before_dispatch(make_client):
    client = make_client(SourceId.STATUTE, _statute_hits())
    orchestrator = LegalSearchOrchestrator(ParallelDispatcher({SourceId.STATUTE: client}))

    with pytest.raises(QueryValidationError):
        asyncio.run(orchestrator.search(Query(text="[", filters=FilterSet(regex=True))))

    assert client.calls == 0


def test_no_api_keys_means_all_auth_failures(tmp_path):
    config = Config(env_file=tmp_path / "missing.env")
    orchestrator = LegalSearchOrchestrator.from_config(config)

    result = orchestrator.search_sync(Query(text="민법"))
    orchestrator.close()

    assert result.records == ()
    assert not result.partial
    assert result.all_failed
    assert set(result.per_source_outcome) == set(SourceId)
    assert all(o.kind == ErrorKind.AUTH for o in result.per_source_outcome.values())


def test_from_config_wires_persistent_cache(monkeypatch, tmp_path):
    db_path = tmp_path / "cache.db"
    monkeypatch.setenv("LAW_CACHE_DB_PATH", str(db_path))
    monkeypatch.setenv("LAW_API_KEY", "test-oc")

    orchestrator = LegalSearchOrchestrator.from_config(Config(env_file=tmp_path / "missing.env"))

    assert orchestrator.cache is not None
    assert orchestrator.cache.enabled
    assert orchestrator.dispatcher.metrics is orchestrator.metrics
    assert all(c.is_configured for c in orchestrator.dispatcher.clients.values())
    orchestrator.close()


def test_search_sync_and_stats(make_client):
    dispatcher = ParallelDispatcher({SourceId.STATUTE: make_client(SourceId.STATUTE, _statute_hits())})
    orchestrator = LegalSearchOrchestrator(dispatcher)

    result = orchestrator.search_sync(Query(text="개인정보", sources={SourceId.STATUTE}))

    assert result.total_requested == 3
    assert "search:statute" in orchestrator.get_stats()["operations"]
