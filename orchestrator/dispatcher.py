"""
ParallelDispatcher - concurrent fan-out of one query across legal sources.

Every requested source runs as its own asyncio task: retry policy around
the response cache around the backend client. The dispatcher always returns
exactly one outcome per requested source; problems become SearchFailure
values, never exceptions.
"""

import asyncio
import concurrent.futures
import contextlib
import time
import uuid
from dataclasses import dataclass

from api.base_client import BaseLegalClient
from cache.keys import make_cache_key
from cache.response_cache import ResponseCache
from config.config import Config
from models.search import (
    DetailOutcome,
    ErrorKind,
    Query,
    SearchFailure,
    SearchOutcome,
    SourceId,
)
from orchestrator.retry_policy import DEFAULT_BASE_DELAY_S, DEFAULT_MAX_ATTEMPTS, with_retry
from orchestrator.source_registry import SourceRegistry
from utils.logger import get_logger
from utils.metrics import SearchMetrics

logger = get_logger(__name__)

DEFAULT_DISPATCH_TIMEOUT_S = 30.0
DEFAULT_CACHE_TTL_S = 86400.0


@dataclass(frozen=True)
class SourcePolicy:
    """Retry and cache settings resolved for one source."""

    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    cache_ttl_s: float = DEFAULT_CACHE_TTL_S


class ParallelDispatcher:
    """
    Runs one search per source concurrently under a global deadline.

    Example usage:
        dispatcher = ParallelDispatcher(clients, cache=ResponseCache())
        outcomes = dispatcher.dispatch_sync(Query(text="개인정보"))
        for source, outcome in outcomes.items():
            print(source.value, outcome.is_success)
    """

    def __init__(
        self,
        clients: dict[SourceId, BaseLegalClient],
        cache: ResponseCache | None = None,
        *,
        timeout_s: float = DEFAULT_DISPATCH_TIMEOUT_S,
        max_concurrent: int | None = None,
        base_delay: float = DEFAULT_BASE_DELAY_S,
        policies: dict[SourceId, SourcePolicy] | None = None,
        metrics: SearchMetrics | None = None,
        sleep=asyncio.sleep,
    ):
        """
        Initialize the dispatcher.

        Args:
            clients: Client per source; a missing source yields an auth failure
            cache: Response cache shared by all sources (None disables caching)
            timeout_s: Global deadline for one dispatch
            max_concurrent: Cap on simultaneously running sources, None for unlimited
            base_delay: Retry backoff base in seconds
            policies: Per-source retry count and cache TTL
            metrics: Receives per-source latency and success counts
            sleep: Backoff sleep, injectable for tests
        """
        if max_concurrent is not None and max_concurrent < 1:
            raise ValueError("max_concurrent must be >= 1 or None")
        self.clients = dict(clients)
        self.cache = cache
        self.timeout_s = timeout_s
        self.max_concurrent = max_concurrent
        self.base_delay = base_delay
        self.policies = dict(policies or {})
        self.metrics = metrics
        self._sleep = sleep

    @classmethod
    def from_config(
        cls,
        config: Config,
        clients: dict[SourceId, BaseLegalClient],
        cache: ResponseCache | None = None,
        registry: SourceRegistry | None = None,
        metrics: SearchMetrics | None = None,
    ) -> "ParallelDispatcher":
        """Build a dispatcher with per-source retry and TTL resolved from config."""
        registry = registry or SourceRegistry.from_yaml()
        policies = {
            source: SourcePolicy(
                max_attempts=max(1, config.max_retries_for(source)),
                cache_ttl_s=config.cache_ttl_for(source, registry.get(source).cache_ttl_s),
            )
            for source in SourceId
        }
        return cls(
            clients,
            cache=cache,
            timeout_s=config.DISPATCH_TIMEOUT_S,
            max_concurrent=config.MAX_CONCURRENT,
            base_delay=config.RETRY_BASE_DELAY_S,
            policies=policies,
            metrics=metrics,
        )

    def policy_for(self, source: SourceId) -> SourcePolicy:
        return self.policies.get(source, SourcePolicy())

    def _timeout_failure(self, source: SourceId) -> SearchFailure:
        return SearchFailure(
            kind=ErrorKind.TIMEOUT,
            message=f"No response within {self.timeout_s}s",
            retriable=False,
            details={"source": source.value, "timeout_seconds": self.timeout_s},
        )

    def _exception_failure(self, source: SourceId, exception: BaseException) -> SearchFailure:
        return SearchFailure(
            kind=ErrorKind.CLIENT_ERROR,
            message=f"Unexpected error: {exception!s}",
            retriable=False,
            details={"source": source.value, "exception_type": type(exception).__name__},
        )

    def _record(self, name: str, start: float, success: bool) -> None:
        if self.metrics is not None:
            self.metrics.record_operation(name, (time.perf_counter() - start) * 1000, success)

    async def _fetch(self, source: SourceId, client: BaseLegalClient, query: Query) -> SearchOutcome:
        if self.cache is None:
            return await client.search(query)
        return await self.cache.get_or_fetch(
            make_cache_key(source, query),
            self.policy_for(source).cache_ttl_s,
            lambda: client.search(query),
            bypass=query.bypass_cache,
        )

    async def _run_source(
        self,
        source: SourceId,
        query: Query,
        cancel_event: asyncio.Event | None,
        semaphore: asyncio.Semaphore | None,
    ) -> SearchOutcome:
        start = time.perf_counter()
        client = self.clients.get(source)
        if client is None:
            return SearchFailure(
                kind=ErrorKind.AUTH,
                message="Source is not configured",
                retriable=False,
                details={"source": source.value},
            )

        try:
            async with semaphore or contextlib.nullcontext():
                outcome = await with_retry(
                    lambda: self._fetch(source, client, query),
                    max_attempts=self.policy_for(source).max_attempts,
                    base_delay=self.base_delay,
                    cancel_event=cancel_event,
                    sleep=self._sleep,
                    label=source.value,
                )
        except Exception as e:
            logger.error(
                f"Unexpected error searching {source.value}: {e}",
                extra={
                    "extra_fields": {
                        "source": source.value,
                        "error": str(e),
                        "error_type": type(e).__name__,
                    }
                },
            )
            outcome = self._exception_failure(source, e)

        self._record(f"search:{source.value}", start, outcome.is_success)
        return outcome

    async def dispatch(
        self, query: Query, cancel_event: asyncio.Event | None = None
    ) -> dict[SourceId, SearchOutcome]:
        """
        Search every source in query.sources concurrently.

        Args:
            query: Validated query
            cancel_event: Set by the caller to abandon in-flight work

        Returns:
            One outcome per requested source, keyed by SourceId
        """
        dispatch_id = str(uuid.uuid4())
        sources = sorted(query.sources, key=lambda s: s.value)
        semaphore = asyncio.Semaphore(self.max_concurrent) if self.max_concurrent else None

        logger.info(
            f"Dispatching search to {len(sources)} sources",
            extra={
                "extra_fields": {
                    "dispatch_id": dispatch_id,
                    "sources": [s.value for s in sources],
                    "timeout_s": self.timeout_s,
                    "max_concurrent": self.max_concurrent,
                }
            },
        )

        start = time.perf_counter()
        tasks = {
            source: asyncio.create_task(
                self._run_source(source, query, cancel_event, semaphore),
                name=f"search:{source.value}",
            )
            for source in sources
        }

        try:
            _, pending = await asyncio.wait(tasks.values(), timeout=self.timeout_s)
        finally:
            # Cancel stragglers and let them unwind before returning
            leftovers = [t for t in tasks.values() if not t.done()]
            for task in leftovers:
                task.cancel()
            if leftovers:
                await asyncio.gather(*leftovers, return_exceptions=True)

        outcomes: dict[SourceId, SearchOutcome] = {}
        for source, task in tasks.items():
            if task in pending or task.cancelled():
                logger.warning(
                    f"Timeout for {source.value}",
                    extra={"extra_fields": {"source": source.value, "timeout_s": self.timeout_s}},
                )
                self._record(f"search:{source.value}", start, False)
                outcomes[source] = self._timeout_failure(source)
            elif task.exception() is not None:
                outcomes[source] = self._exception_failure(source, task.exception())
            else:
                outcomes[source] = task.result()

        for source, outcome in outcomes.items():
            if outcome.is_success:
                continue
            log = logger.info if outcome.kind == ErrorKind.CANCELLED else logger.warning
            log(
                f"{source.value} failed: {outcome.message}",
                extra={
                    "extra_fields": {
                        "dispatch_id": dispatch_id,
                        "source": source.value,
                        "error_kind": outcome.kind.value,
                    }
                },
            )

        success_count = sum(1 for o in outcomes.values() if o.is_success)
        logger.info(
            f"Dispatch complete: {success_count} of {len(outcomes)} sources succeeded",
            extra={
                "extra_fields": {
                    "dispatch_id": dispatch_id,
                    "success_count": success_count,
                    "error_count": len(outcomes) - success_count,
                    "latency_ms": int((time.perf_counter() - start) * 1000),
                }
            },
        )
        return outcomes

    async def fetch_details(
        self,
        source: SourceId,
        ids: list[str],
        cancel_event: asyncio.Event | None = None,
    ) -> dict[str, DetailOutcome]:
        """
        Fetch full documents for several ids of one source concurrently.

        Uses the same concurrency cap, retry count and deadline as dispatch().
        Duplicate ids are fetched once.

        Returns:
            Outcome per id, in first-seen order
        """
        unique_ids = list(dict.fromkeys(str(i).strip() for i in ids))
        client = self.clients.get(source)
        if client is None:
            failure = SearchFailure(
                kind=ErrorKind.AUTH,
                message="Source is not configured",
                retriable=False,
                details={"source": source.value},
            )
            return {record_id: failure for record_id in unique_ids}

        semaphore = asyncio.Semaphore(self.max_concurrent) if self.max_concurrent else None

        async def fetch_one(record_id: str) -> DetailOutcome:
            start = time.perf_counter()
            async with semaphore or contextlib.nullcontext():
                outcome = await with_retry(
                    lambda: client.get_detail(record_id),
                    max_attempts=self.policy_for(source).max_attempts,
                    base_delay=self.base_delay,
                    cancel_event=cancel_event,
                    sleep=self._sleep,
                    label=source.value,
                )
            self._record(f"detail:{source.value}", start, outcome.is_success)
            return outcome

        tasks = {record_id: asyncio.create_task(fetch_one(record_id)) for record_id in unique_ids}
        if not tasks:
            return {}

        try:
            await asyncio.wait(tasks.values(), timeout=self.timeout_s)
        finally:
            leftovers = [t for t in tasks.values() if not t.done()]
            for task in leftovers:
                task.cancel()
            if leftovers:
                await asyncio.gather(*leftovers, return_exceptions=True)

        results: dict[str, DetailOutcome] = {}
        for record_id, task in tasks.items():
            if task.cancelled():
                results[record_id] = self._timeout_failure(source)
            elif task.exception() is not None:
                results[record_id] = self._exception_failure(source, task.exception())
            else:
                results[record_id] = task.result()
        return results

    async def aclose(self) -> None:
        """Close every client's HTTP connections."""
        await asyncio.gather(*(client.aclose() for client in self.clients.values()))

    async def _dispatch_and_release(self, query: Query) -> dict[SourceId, SearchOutcome]:
        # Owned HTTP clients are bound to this loop; release them before it closes
        try:
            return await self.dispatch(query)
        finally:
            await self.aclose()

    def dispatch_sync(self, query: Query) -> dict[SourceId, SearchOutcome]:
        """
        Synchronous wrapper for dispatch.

        Handles the case where an event loop is already running by
        executing in a separate thread with its own loop.
        """
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return asyncio.run(self._dispatch_and_release(query))

        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as executor:
            future = executor.submit(asyncio.run, self._dispatch_and_release(query))
            return future.result()
