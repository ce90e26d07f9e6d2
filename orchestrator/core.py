"""
LegalSearchOrchestrator - business layer for unified legal search.

Key guarantees:
- CLI layer stays thin (no client imports there)
- QueryValidationError is the only exception raised by search(), and only
  before any source is contacted
- Per-source failures are reported in AggregatedResult, never raised
"""

import asyncio

import httpx

from api.factory import create_clients_from_config
from cache.response_cache import ResponseCache
from cache.storage import SqliteCacheStorage
from config.config import Config
from models.search import AggregatedResult, DetailOutcome, Query, SourceId
from orchestrator.aggregator import ResultAggregator
from orchestrator.dispatcher import ParallelDispatcher
from orchestrator.source_registry import SourceRegistry
from utils.logger import get_logger
from utils.metrics import SearchMetrics

logger = get_logger(__name__)


class LegalSearchOrchestrator:
    def __init__(
        self,
        dispatcher: ParallelDispatcher,
        aggregator: ResultAggregator | None = None,
        metrics: SearchMetrics | None = None,
    ):
        self.dispatcher = dispatcher
        self.aggregator = aggregator or ResultAggregator()
        self.metrics = metrics or dispatcher.metrics or SearchMetrics()
        if dispatcher.metrics is None:
            dispatcher.metrics = self.metrics

    @classmethod
    def from_config(
        cls,
        config: Config | None = None,
        registry: SourceRegistry | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> "LegalSearchOrchestrator":
        """
        Wire clients, cache, dispatcher and aggregator from configuration.

        Args:
            config: Loaded configuration (defaults to Config())
            registry: Source registry (defaults to config/source_registry.yaml)
            http_client: Optional shared AsyncClient for every source

        Returns:
            A ready orchestrator; call close() at process exit
        """
        config = config or Config()
        registry = registry or SourceRegistry.from_yaml()
        metrics = SearchMetrics()

        storage = SqliteCacheStorage(config.CACHE_DB_PATH) if config.CACHE_DB_PATH else None
        cache = ResponseCache(storage=storage, metrics=metrics, enabled=config.CACHE_ENABLED)

        clients = create_clients_from_config(config, registry, http_client=http_client)
        dispatcher = ParallelDispatcher.from_config(
            config, clients, cache=cache, registry=registry, metrics=metrics
        )

        logger.info(
            "Legal search orchestrator initialized",
            extra={
                "extra_fields": {
                    "cache_enabled": config.CACHE_ENABLED,
                    "persistent_cache": storage is not None,
                    "dispatch_timeout_s": config.DISPATCH_TIMEOUT_S,
                    "max_concurrent": config.MAX_CONCURRENT,
                }
            },
        )
        return cls(dispatcher, metrics=metrics)

    @property
    def cache(self) -> ResponseCache | None:
        return self.dispatcher.cache

    async def search(
        self, query: Query, cancel_event: asyncio.Event | None = None
    ) -> AggregatedResult:
        """
        Validate, fan out, and aggregate one query.

        Raises:
            QueryValidationError: For invalid queries, before any dispatch
        """
        query.validate()
        outcomes = await self.dispatcher.dispatch(query, cancel_event=cancel_event)
        return self.aggregator.aggregate(outcomes, query.filters, query.text)

    def search_sync(self, query: Query) -> AggregatedResult:
        """Blocking variant of search() for callers without an event loop."""
        query.validate()
        outcomes = self.dispatcher.dispatch_sync(query)
        return self.aggregator.aggregate(outcomes, query.filters, query.text)

    async def get_details(
        self,
        source: SourceId,
        ids: list[str],
        cancel_event: asyncio.Event | None = None,
    ) -> dict[str, DetailOutcome]:
        return await self.dispatcher.fetch_details(source, ids, cancel_event=cancel_event)

    def display_names(self) -> dict[SourceId, str]:
        return {
            source: client.endpoint.display_name
            for source, client in self.dispatcher.clients.items()
        }

    def get_stats(self) -> dict:
        return self.metrics.get_summary()

    async def aclose(self) -> None:
        await self.dispatcher.aclose()
        self.close()

    def close(self) -> None:
        """Flush and release the cache. Safe to call more than once."""
        if self.cache is not None:
            self.cache.close()
