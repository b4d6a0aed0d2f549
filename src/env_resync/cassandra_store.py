"""
Wide-column store adapter for Cassandra.

Creation order is Keyspace -> User-defined Types -> Tables -> Data. Tables
with counter columns are loaded with increments, everything else with
unlogged insert batches.
"""

from __future__ import annotations

import logging
import re
import ssl
from itertools import batched
from typing import TYPE_CHECKING, Any, Final

from cassandra import AlreadyExists, InvalidRequest, Unavailable, WriteFailure, WriteTimeout
from cassandra.auth import PlainTextAuthProvider
from cassandra.cluster import Cluster, NoHostAvailable
from cassandra.metadata import protect_name
from cassandra.policies import DCAwareRoundRobinPolicy
from cassandra.query import BatchStatement, BatchType, SimpleStatement, dict_factory

from .config import DEFAULT_BATCH_SIZE, DEFAULT_FETCH_SIZE
from .exceptions import DataIntegrityError, SchemaConflictError, StoreConnectionError
from .models import (
    KeyspaceDefinition,
    ObjectKind,
    Row,
    SchemaObject,
    StoreKind,
    UserTypeDefinition,
    WideColumn,
    WideTableDefinition,
)

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

    from cassandra.cluster import Session

    from .config import CassandraSettings, Endpoint

# Module-wide logger
logger: logging.Logger = logging.getLogger(__name__)

SYSTEM_KEYSPACES: Final[frozenset[str]] = frozenset(
    {
        "system",
        "system_schema",
        "system_auth",
        "system_distributed",
        "system_traces",
        "system_virtual_schema",
        "system_views",
    }
)

RANK_KEYSPACE: Final[int] = 0
RANK_TYPE: Final[int] = 1
RANK_TABLE: Final[int] = 2

_WRITE_ERRORS: Final = (InvalidRequest, WriteTimeout, WriteFailure, Unavailable)


def connect(endpoint: Endpoint, *, ssl_validate: bool) -> tuple[Cluster, Session]:
    """Open a cluster connection and a session that returns rows as dicts."""
    ssl_context = ssl.create_default_context()
    if not ssl_validate:
        ssl_context.check_hostname = False
        ssl_context.verify_mode = ssl.CERT_NONE

    cluster_options: dict[str, Any] = {
        "contact_points": [endpoint.host],
        "port": endpoint.port or 9042,
        "ssl_context": ssl_context,
    }
    if endpoint.username:
        cluster_options["auth_provider"] = PlainTextAuthProvider(endpoint.username, endpoint.password)
    if endpoint.datacenter:
        cluster_options["load_balancing_policy"] = DCAwareRoundRobinPolicy(local_dc=endpoint.datacenter)

    cluster = Cluster(**cluster_options)
    try:
        session = cluster.connect()
    except NoHostAvailable as e:
        cluster.shutdown()
        msg = f"Cannot reach Cassandra at {endpoint.host}: {e}"
        raise StoreConnectionError(msg) from e
    session.row_factory = dict_factory
    return cluster, session


def _qualified(keyspace: str, name: str) -> str:
    return f"{protect_name(keyspace)}.{protect_name(name)}"


def order_user_types(types: dict[str, UserTypeDefinition]) -> list[str]:
    """Order type names so that a type used in another type's fields comes first."""
    ordered: list[str] = []
    visiting: set[str] = set()

    def references(name: str) -> list[str]:
        field_types = " ".join(types[name].field_types)
        return [
            other
            for other in sorted(types)
            if other != name and re.search(rf"\b{re.escape(other)}\b", field_types)
        ]

    def visit(name: str) -> None:
        if name in ordered or name in visiting:
            return
        visiting.add(name)
        for dependency in references(name):
            visit(dependency)
        visiting.discard(name)
        ordered.append(name)

    for type_name in sorted(types):
        visit(type_name)
    return ordered


def table_ddl(keyspace: str, table: str, definition: WideTableDefinition) -> str:
    """Render CREATE TABLE from system_schema column metadata.

    The primary key is ``((pk1, pk2), ck1, ck2)`` with the partition key
    parenthesised only when composite. CLUSTERING ORDER BY is emitted only
    when at least one clustering column is descending.
    """
    partition_keys = definition.partition_keys
    clustering = definition.clustering_columns
    key_names = set(definition.key_columns)
    others = sorted((c for c in definition.columns if c.name not in key_names), key=lambda c: c.name)
    by_name = {c.name: c for c in definition.columns}

    ordered = [by_name[name] for name in partition_keys] + clustering + others
    column_specs = [
        f"{protect_name(c.name)} {c.cql_type}{' static' if c.kind == 'static' else ''}" for c in ordered
    ]

    partition = ", ".join(protect_name(k) for k in partition_keys)
    if len(partition_keys) > 1:
        partition = f"({partition})"
    primary_key = ", ".join([partition, *(protect_name(c.name) for c in clustering)])

    ddl = f"CREATE TABLE {_qualified(keyspace, table)} ({', '.join(column_specs)}, PRIMARY KEY ({primary_key}))"
    if any(c.clustering_order.lower() == "desc" for c in clustering):
        order = ", ".join(
            f"{protect_name(c.name)} {'DESC' if c.clustering_order.lower() == 'desc' else 'ASC'}" for c in clustering
        )
        ddl += f" WITH CLUSTERING ORDER BY ({order})"
    return ddl


class WideColumnAdapter:
    """Replicates every non-system Cassandra keyspace from source to target."""

    kind: StoreKind = StoreKind.WIDE_COLUMN
    data_load_rank: int = RANK_TABLE

    def __init__(
        self,
        source: Session,
        target: Session,
        *,
        replication_factor: int = 1,
        fetch_size: int = DEFAULT_FETCH_SIZE,
        batch_size: int = DEFAULT_BATCH_SIZE,
        clusters: Iterable[Cluster] = (),
    ) -> None:
        self.name: str = self.kind.value
        self.source: Session = source
        self.target: Session = target
        self.replication_factor: int = replication_factor
        self.fetch_size: int = fetch_size
        self.batch_size: int = batch_size
        self._clusters: list[Cluster] = list(clusters)

    @classmethod
    def from_settings(cls, settings: CassandraSettings) -> WideColumnAdapter:
        source_cluster, source = connect(settings.source, ssl_validate=settings.ssl_validate)
        try:
            target_cluster, target = connect(settings.target, ssl_validate=settings.ssl_validate)
        except BaseException:
            source_cluster.shutdown()
            raise
        logger.info(f"Connected to Cassandra {settings.source.host} -> {settings.target.host}")
        return cls(
            source,
            target,
            replication_factor=settings.replication_factor,
            fetch_size=settings.fetch_size,
            batch_size=settings.batch_size,
            clusters=(source_cluster, target_cluster),
        )

    def _keyspaces(self, session: Session) -> dict[str, bool]:
        """Non-system keyspaces mapped to their durable_writes flag."""
        rows = session.execute("SELECT keyspace_name, durable_writes FROM system_schema.keyspaces")
        return {
            r["keyspace_name"]: r["durable_writes"]
            for r in sorted(rows, key=lambda r: r["keyspace_name"])
            if r["keyspace_name"] not in SYSTEM_KEYSPACES
        }

    def _user_types(self, session: Session, keyspace: str) -> dict[str, UserTypeDefinition]:
        rows = session.execute(
            "SELECT type_name, field_names, field_types FROM system_schema.types WHERE keyspace_name = %s",
            (keyspace,),
        )
        return {
            r["type_name"]: UserTypeDefinition(tuple(r["field_names"]), tuple(r["field_types"])) for r in rows
        }

    def _tables(self, session: Session, keyspace: str) -> list[str]:
        rows = session.execute(
            "SELECT table_name FROM system_schema.tables WHERE keyspace_name = %s", (keyspace,)
        )
        return sorted(r["table_name"] for r in rows)

    def _table_definition(self, keyspace: str, table: str) -> WideTableDefinition:
        rows = self.source.execute(
            "SELECT column_name, type, kind, position, clustering_order FROM system_schema.columns "
            "WHERE keyspace_name = %s AND table_name = %s",
            (keyspace, table),
        )
        return WideTableDefinition(
            tuple(
                WideColumn(
                    name=r["column_name"],
                    cql_type=r["type"],
                    kind=r["kind"],
                    position=r["position"],
                    clustering_order=r["clustering_order"] or "none",
                )
                for r in rows
            )
        )

    def clear(self) -> None:
        """Drop every non-system keyspace on the target."""
        for keyspace in self._keyspaces(self.target):
            self.target.execute(f"DROP KEYSPACE IF EXISTS {protect_name(keyspace)}")
            logger.debug(f"Dropped keyspace {keyspace}")

    def list_schema_objects(self) -> list[SchemaObject]:
        objects: list[SchemaObject] = []
        for keyspace, durable_writes in self._keyspaces(self.source).items():
            objects.append(
                SchemaObject(
                    ObjectKind.KEYSPACE,
                    keyspace,
                    keyspace,
                    KeyspaceDefinition(replication_factor=self.replication_factor, durable_writes=durable_writes),
                    RANK_KEYSPACE,
                )
            )
            types = self._user_types(self.source, keyspace)
            objects.extend(
                SchemaObject(ObjectKind.TYPE, keyspace, name, types[name], RANK_TYPE)
                for name in order_user_types(types)
            )
            objects.extend(
                SchemaObject(ObjectKind.TABLE, keyspace, table, self._table_definition(keyspace, table), RANK_TABLE)
                for table in self._tables(self.source, keyspace)
            )
        return sorted(objects, key=lambda o: o.dependency_rank)

    def create_object(self, obj: SchemaObject) -> None:
        definition = obj.definition
        if isinstance(definition, KeyspaceDefinition):
            statement = (
                f"CREATE KEYSPACE {protect_name(obj.name)} WITH replication = "
                f"{{'class': 'SimpleStrategy', 'replication_factor': {definition.replication_factor}}} "
                f"AND durable_writes = {'true' if definition.durable_writes else 'false'}"
            )
        elif isinstance(definition, UserTypeDefinition):
            fields = ", ".join(
                f"{protect_name(n)} {t}" for n, t in zip(definition.field_names, definition.field_types, strict=True)
            )
            statement = f"CREATE TYPE {_qualified(obj.namespace, obj.name)} ({fields})"
        elif isinstance(definition, WideTableDefinition):
            statement = table_ddl(obj.namespace, obj.name, definition)
        else:
            msg = f"Cassandra cannot create {obj.kind.value} {obj.qualified_name}"
            raise TypeError(msg)

        try:
            self.target.execute(statement)
        except AlreadyExists as e:
            msg = f"{obj.kind.value} {obj.qualified_name} already exists on target"
            raise SchemaConflictError(msg) from e

    def stream_rows(self, container: SchemaObject) -> Iterator[Row]:
        definition = container.definition
        assert isinstance(definition, WideTableDefinition)
        key = tuple(definition.key_columns)
        statement = SimpleStatement(
            f"SELECT * FROM {_qualified(container.namespace, container.name)}", fetch_size=self.fetch_size
        )
        # The driver fetches the next page as iteration crosses page boundaries.
        for record in self.source.execute(statement):
            yield Row(dict(record), key)

    def write_rows(self, container: SchemaObject, rows: Iterable[Row]) -> int:
        definition = container.definition
        assert isinstance(definition, WideTableDefinition)
        try:
            if definition.counter_columns:
                return self._apply_counters(container, definition, rows)
            return self._insert_batches(container, definition, rows)
        except _WRITE_ERRORS as e:
            msg = f"Write rejected for {container.qualified_name}: {e}"
            raise DataIntegrityError(msg) from e

    def _apply_counters(self, container: SchemaObject, definition: WideTableDefinition, rows: Iterable[Row]) -> int:
        """Replay counter values as increments, since counters cannot be inserted.

        Replaying onto a non-empty target adds to the existing counts.
        """
        table = _qualified(container.namespace, container.name)
        keys = definition.key_columns
        where = " AND ".join(f"{protect_name(k)} = ?" for k in keys)
        increments = ", ".join(f"{protect_name(c)} = {protect_name(c)} + ?" for c in definition.counter_columns)
        counter_update = self.target.prepare(f"UPDATE {table} SET {increments} WHERE {where}")

        value_update = None
        if definition.value_columns:
            assignments = ", ".join(f"{protect_name(c)} = ?" for c in definition.value_columns)
            value_update = self.target.prepare(f"UPDATE {table} SET {assignments} WHERE {where}")

        written = 0
        for row in rows:
            key_values = [row.values[k] for k in keys]
            deltas = [row.values.get(c) if row.values.get(c) is not None else 0 for c in definition.counter_columns]
            self.target.execute(counter_update, deltas + key_values)
            if value_update is not None:
                self.target.execute(value_update, [row.values.get(c) for c in definition.value_columns] + key_values)
            written += 1
        return written

    def _insert_batches(self, container: SchemaObject, definition: WideTableDefinition, rows: Iterable[Row]) -> int:
        columns = [c.name for c in definition.columns]
        insert = self.target.prepare(
            f"INSERT INTO {_qualified(container.namespace, container.name)} "
            f"({', '.join(protect_name(c) for c in columns)}) VALUES ({', '.join('?' for _ in columns)})"
        )
        written = 0
        for chunk in batched(rows, self.batch_size):
            batch = BatchStatement(batch_type=BatchType.UNLOGGED)
            for row in chunk:
                batch.add(insert, [row.values.get(c) for c in columns])
            self.target.execute(batch)
            written += len(chunk)
        return written

    def count(self, container: SchemaObject) -> tuple[int, int]:
        """Row counts via count(*), a point-in-time approximation under concurrent writes."""
        query = f"SELECT count(*) FROM {_qualified(container.namespace, container.name)}"
        source_count = int(self.source.execute(query).one()["count"])
        target_count = int(self.target.execute(query).one()["count"])
        return source_count, target_count

    def aggregate_counts(self) -> dict[str, tuple[int, int]]:
        return {
            f"{keyspace}/types": (
                len(self._user_types(self.source, keyspace)),
                len(self._user_types(self.target, keyspace)),
            )
            for keyspace in self._keyspaces(self.source)
        }

    def close(self) -> None:
        for cluster in self._clusters:
            cluster.shutdown()
        self._clusters.clear()
