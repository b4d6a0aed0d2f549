"""Builds the adapters for one store from its environment settings."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .cassandra_store import WideColumnAdapter
from .config import (
    CassandraSettings,
    ElasticSettings,
    GremlinSettings,
    MongoSettings,
    PostgresSettings,
    load_settings,
)
from .elastic_store import SearchAdapter
from .gremlin_store import GraphAdapter
from .mongo_store import DocumentAdapter
from .postgres_store import RelationalAdapter

if TYPE_CHECKING:
    from collections.abc import Mapping

    from .models import StoreKind
    from .protocols import StoreAdapter

logger: logging.Logger = logging.getLogger(__name__)


def build_adapters(kind: StoreKind, env: Mapping[str, str] | None = None) -> list[StoreAdapter]:
    """Connect the source and target of one store.

    Returns one adapter per PostgreSQL database pair, and a single adapter
    for every other store.

    Raises:
        ConfigurationError: If the store's settings are incomplete
        StoreConnectionError: If either side cannot be reached
    """
    settings = load_settings(kind, env)

    if isinstance(settings, PostgresSettings):
        adapters: list[StoreAdapter] = []
        try:
            for source_database, target_database in settings.database_pairs:
                adapters.append(RelationalAdapter.from_settings(settings, source_database, target_database))
        except Exception:
            for adapter in adapters:
                adapter.close()
            raise
        return adapters

    if isinstance(settings, CassandraSettings):
        return [WideColumnAdapter.from_settings(settings)]
    if isinstance(settings, GremlinSettings):
        return [GraphAdapter.from_settings(settings)]
    if isinstance(settings, ElasticSettings):
        return [SearchAdapter.from_settings(settings)]
    if isinstance(settings, MongoSettings):
        return [DocumentAdapter.from_settings(settings)]

    msg = f"No adapter for store {kind.value}"
    raise ValueError(msg)
