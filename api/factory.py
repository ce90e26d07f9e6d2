"""Factory for building one backend client per source from configuration."""

import httpx

from config.config import Config
from models.search import SourceId
from orchestrator.source_registry import SourceRegistry
from utils.logger import get_logger

from .admin_rule_client import AdminRuleClient
from .base_client import BaseLegalClient
from .interpretation_client import InterpretationClient
from .ordinance_client import OrdinanceClient
from .precedent_client import PrecedentClient
from .statute_client import StatuteClient

logger = get_logger(__name__)

CLIENT_CLASSES: dict[SourceId, type[BaseLegalClient]] = {
    SourceId.STATUTE: StatuteClient,
    SourceId.ORDINANCE: OrdinanceClient,
    SourceId.PRECEDENT: PrecedentClient,
    SourceId.ADMIN_RULE: AdminRuleClient,
    SourceId.INTERPRETATION: InterpretationClient,
}


def create_client(
    source: SourceId,
    config: Config,
    registry: SourceRegistry,
    http_client: httpx.AsyncClient | None = None,
) -> BaseLegalClient:
    """
    Create the client for one source.

    A client is created even without an API key; its searches then fail
    with an auth error while other sources proceed.
    """
    settings = config.sources[source]
    client_cls = CLIENT_CLASSES[source]
    return client_cls(
        api_key=config.api_key_for(source),
        endpoint=registry.get(source),
        timeout_s=config.timeout_for(source),
        base_url=settings.base_url,
        detail_url=settings.detail_url,
        http_client=http_client,
    )


def create_clients_from_config(
    config: Config,
    registry: SourceRegistry | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> dict[SourceId, BaseLegalClient]:
    """
    Create clients for every source.

    Args:
        config: Loaded configuration
        registry: Source registry (defaults to config/source_registry.yaml)
        http_client: Optional shared AsyncClient for connection pooling

    Returns:
        Mapping of every SourceId to its client
    """
    registry = registry or SourceRegistry.from_yaml()
    clients = {source: create_client(source, config, registry, http_client) for source in SourceId}

    unconfigured = [s.value for s, c in clients.items() if not c.is_configured]
    if unconfigured:
        logger.warning(
            "Some sources have no API key and will fail with an auth error",
            extra={"extra_fields": {"unconfigured_sources": unconfigured}},
        )
    return clients
