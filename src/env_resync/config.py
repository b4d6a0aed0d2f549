"""
Connection settings for every store, read from environment variables.

Variable names follow ``<PREFIX>_<SIDE>_<FIELD>`` where SIDE is SOURCE or
TARGET, e.g. ``PG_SOURCE_HOST`` or ``CASSANDRA_TARGET_PASSWORD``. Passwords
may instead come from the ``pass`` utility via ``<PREFIX>_<SIDE>_PASSWORD_PASS_PATH``.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Final, Literal

from . import utils
from .exceptions import ConfigurationError
from .models import StoreKind

if TYPE_CHECKING:
    from collections.abc import Mapping

logger: logging.Logger = logging.getLogger(__name__)

Side = Literal["SOURCE", "TARGET"]
_SIDES: Final[tuple[Side, Side]] = ("SOURCE", "TARGET")

_SSL_VALIDATE_ENV_VAR: Final[str] = "SSL_VALIDATE"
_TG_API_KEY_ENV_VAR: Final[str] = "TG_BOT_API_KEY"
_TG_CHAT_ID_ENV_VAR: Final[str] = "TG_BOT_CHAT_ID"

DEFAULT_BATCH_SIZE: Final[int] = 100
DEFAULT_FETCH_SIZE: Final[int] = 100
DEFAULT_ITERSIZE: Final[int] = 1000
DEFAULT_PAGE_SIZE: Final[int] = 10_000
DEFAULT_SCROLL: Final[str] = "1m"


@dataclass(frozen=True)
class Endpoint:
    """Where and how to reach one side (source or target) of a store."""

    host: str
    port: int | None = None
    username: str | None = None
    password: str | None = field(default=None, repr=False)
    api_key: str | None = field(default=None, repr=False)
    datacenter: str | None = None


@dataclass(frozen=True)
class CassandraSettings:
    source: Endpoint
    target: Endpoint
    ssl_validate: bool = True
    replication_factor: int = 1
    fetch_size: int = DEFAULT_FETCH_SIZE
    batch_size: int = DEFAULT_BATCH_SIZE


@dataclass(frozen=True)
class GremlinSettings:
    source: Endpoint
    target: Endpoint
    ssl_validate: bool = True
    traversal_source: str = "g"


@dataclass(frozen=True)
class PostgresSettings:
    source: Endpoint
    target: Endpoint
    source_databases: tuple[str, ...]
    target_databases: tuple[str, ...]
    ssl_validate: bool = True
    itersize: int = DEFAULT_ITERSIZE
    batch_size: int = DEFAULT_BATCH_SIZE

    @property
    def database_pairs(self) -> list[tuple[str, str]]:
        return list(zip(self.source_databases, self.target_databases, strict=True))


@dataclass(frozen=True)
class ElasticSettings:
    source: Endpoint
    target: Endpoint
    indices: tuple[str, ...]
    ssl_validate: bool = True
    page_size: int = DEFAULT_PAGE_SIZE
    scroll: str = DEFAULT_SCROLL


@dataclass(frozen=True)
class MongoSettings:
    source: Endpoint
    target: Endpoint
    databases: tuple[str, ...] = ()
    ssl_validate: bool = True


@dataclass(frozen=True)
class TelegramSettings:
    api_key: str = field(repr=False)
    chat_id: str


StoreSettings = CassandraSettings | GremlinSettings | PostgresSettings | ElasticSettings | MongoSettings


class _Reader:
    """Reads variables for one store and collects every missing one before failing."""

    def __init__(self, env: Mapping[str, str], store: str) -> None:
        self.env: Mapping[str, str] = env
        self.store: str = store
        self.missing: list[str] = []

    def required(self, name: str) -> str:
        value = self.env.get(name, "").strip()
        if not value:
            self.missing.append(name)
        return value

    def optional(self, name: str, default: str | None = None) -> str | None:
        value = self.env.get(name, "").strip()
        return value or default

    def integer(self, name: str, default: int | None = None) -> int | None:
        value = self.optional(name)
        if value is None:
            return default
        try:
            return int(value)
        except ValueError as e:
            msg = f"{name} must be an integer, got {value!r}"
            raise ConfigurationError(msg) from e

    def listing(self, name: str, *, required: bool = True) -> tuple[str, ...]:
        raw = self.required(name) if required else (self.optional(name) or "")
        return tuple(item.strip() for item in raw.split(",") if item.strip())

    def password(self, prefix: str, side: Side) -> str | None:
        """Password from the environment, falling back to a pass entry."""
        password = self.optional(f"{prefix}_{side}_PASSWORD")
        if password:
            return password
        pass_path = self.optional(f"{prefix}_{side}_PASSWORD_PASS_PATH")
        if pass_path:
            try:
                return utils.get_pass_value(pass_path)
            except (utils.PassError, ValueError) as e:
                msg = f"Could not read {self.store} {side.lower()} password from pass: {e}"
                raise ConfigurationError(msg) from e
        return None

    def check(self) -> None:
        if self.missing:
            msg = f"Missing {self.store} configuration: {', '.join(self.missing)}"
            raise ConfigurationError(msg)


def _ssl_validate(env: Mapping[str, str]) -> bool:
    return env.get(_SSL_VALIDATE_ENV_VAR, "true").strip().lower() != "false"


def _endpoint(reader: _Reader, prefix: str, side: Side, *, default_port: int | None = None) -> Endpoint:
    return Endpoint(
        host=reader.required(f"{prefix}_{side}_HOST"),
        port=reader.integer(f"{prefix}_{side}_PORT", default_port),
        username=reader.optional(f"{prefix}_{side}_USERNAME"),
        password=reader.password(prefix, side),
    )


def load_cassandra_settings(env: Mapping[str, str]) -> CassandraSettings:
    reader = _Reader(env, "Cassandra")
    endpoints = {
        side: Endpoint(
            host=reader.required(f"CASSANDRA_{side}_HOST"),
            port=reader.integer(f"CASSANDRA_{side}_PORT", 9042),
            username=reader.optional(f"CASSANDRA_{side}_USERNAME"),
            password=reader.password("CASSANDRA", side),
            datacenter=reader.optional(f"CASSANDRA_{side}_DATACENTER"),
        )
        for side in _SIDES
    }
    reader.check()
    return CassandraSettings(
        source=endpoints["SOURCE"],
        target=endpoints["TARGET"],
        ssl_validate=_ssl_validate(env),
        replication_factor=reader.integer("CASSANDRA_REPLICATION_FACTOR", 1) or 1,
        fetch_size=reader.integer("CASSANDRA_FETCH_SIZE", DEFAULT_FETCH_SIZE) or DEFAULT_FETCH_SIZE,
        batch_size=reader.integer("CASSANDRA_BATCH_SIZE", DEFAULT_BATCH_SIZE) or DEFAULT_BATCH_SIZE,
    )


def load_gremlin_settings(env: Mapping[str, str]) -> GremlinSettings:
    reader = _Reader(env, "Gremlin")
    endpoints = {side: _endpoint(reader, "GREMLIN", side) for side in _SIDES}
    reader.check()
    return GremlinSettings(
        source=endpoints["SOURCE"],
        target=endpoints["TARGET"],
        ssl_validate=_ssl_validate(env),
        traversal_source=reader.optional("GREMLIN_TRAVERSAL_SOURCE", "g") or "g",
    )


def load_postgres_settings(env: Mapping[str, str]) -> PostgresSettings:
    reader = _Reader(env, "PostgreSQL")
    endpoints = {side: _endpoint(reader, "PG", side, default_port=5432) for side in _SIDES}
    source_databases = reader.listing("PG_SOURCE_DATABASES")
    target_databases = reader.listing("PG_TARGET_DATABASES")
    reader.check()
    if len(source_databases) != len(target_databases):
        msg = (
            f"PG_SOURCE_DATABASES has {len(source_databases)} entries but "
            f"PG_TARGET_DATABASES has {len(target_databases)}; they are paired by position"
        )
        raise ConfigurationError(msg)
    return PostgresSettings(
        source=endpoints["SOURCE"],
        target=endpoints["TARGET"],
        source_databases=source_databases,
        target_databases=target_databases,
        ssl_validate=_ssl_validate(env),
        itersize=reader.integer("PG_ITERSIZE", DEFAULT_ITERSIZE) or DEFAULT_ITERSIZE,
        batch_size=reader.integer("PG_BATCH_SIZE", DEFAULT_BATCH_SIZE) or DEFAULT_BATCH_SIZE,
    )


def load_elastic_settings(env: Mapping[str, str]) -> ElasticSettings:
    reader = _Reader(env, "Elasticsearch")
    endpoints: dict[Side, Endpoint] = {}
    for side in _SIDES:
        # A cloud id is accepted in place of a host URL.
        host = reader.optional(f"ELASTIC_{side}_CLOUD_ID") or reader.required(f"ELASTIC_{side}_HOST")
        endpoints[side] = Endpoint(
            host=host,
            username=reader.optional(f"ELASTIC_{side}_USERNAME"),
            password=reader.password("ELASTIC", side),
            api_key=reader.optional(f"ELASTIC_{side}_API_KEY"),
        )
    indices = reader.listing("ELASTIC_INDICES")
    reader.check()
    return ElasticSettings(
        source=endpoints["SOURCE"],
        target=endpoints["TARGET"],
        indices=indices,
        ssl_validate=_ssl_validate(env),
        page_size=reader.integer("ELASTIC_PAGE_SIZE", DEFAULT_PAGE_SIZE) or DEFAULT_PAGE_SIZE,
        scroll=reader.optional("ELASTIC_SCROLL", DEFAULT_SCROLL) or DEFAULT_SCROLL,
    )


def load_mongo_settings(env: Mapping[str, str]) -> MongoSettings:
    reader = _Reader(env, "MongoDB")
    endpoints = {
        side: Endpoint(
            host=reader.required(f"MONGO_{side}_URI"),
            username=reader.optional(f"MONGO_{side}_USERNAME"),
            password=reader.password("MONGO", side),
        )
        for side in _SIDES
    }
    databases = reader.listing("MONGO_DATABASES", required=False)
    reader.check()
    return MongoSettings(
        source=endpoints["SOURCE"],
        target=endpoints["TARGET"],
        databases=databases,
        ssl_validate=_ssl_validate(env),
    )


_LOADERS: Final = {
    StoreKind.WIDE_COLUMN: load_cassandra_settings,
    StoreKind.GRAPH: load_gremlin_settings,
    StoreKind.RELATIONAL: load_postgres_settings,
    StoreKind.SEARCH: load_elastic_settings,
    StoreKind.DOCUMENT: load_mongo_settings,
}


def load_settings(kind: StoreKind, env: Mapping[str, str] | None = None) -> StoreSettings:
    """Load connection settings for one store.

    Raises:
        ConfigurationError: If required variables are missing or malformed
    """
    return _LOADERS[kind](os.environ if env is None else env)


def load_telegram_settings(env: Mapping[str, str] | None = None) -> TelegramSettings | None:
    """Return Telegram settings, or None when notifications are not configured."""
    env = os.environ if env is None else env
    api_key = env.get(_TG_API_KEY_ENV_VAR, "").strip()
    chat_id = env.get(_TG_CHAT_ID_ENV_VAR, "").strip()
    if not (api_key and chat_id):
        logger.debug("Telegram notifications disabled")
        return None
    return TelegramSettings(api_key=api_key, chat_id=chat_id)
