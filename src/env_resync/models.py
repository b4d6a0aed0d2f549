"""Data models exchanged between store adapters and the orchestrator.

A SchemaObject carries an opaque, store-specific ``definition``. Each
definition class below belongs to exactly one adapter, which is the only
code that interprets it. The orchestrator only looks at ``holds_rows``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar


class StoreKind(str, Enum):
    """The five backend kinds. Values double as CLI names and report file stems."""

    WIDE_COLUMN = "cassandra"
    GRAPH = "gremlin"
    RELATIONAL = "postgres"
    SEARCH = "elastic"
    DOCUMENT = "mongo"


class ObjectKind(str, Enum):
    KEYSPACE = "keyspace"
    TYPE = "type"
    TABLE = "table"
    SEQUENCE = "sequence"
    INDEX = "index"
    CONSTRAINT = "constraint"
    FUNCTION = "function"
    TRIGGER = "trigger"
    COLLECTION = "collection"
    VERTEX_LABEL = "vertex_label"
    EDGE_LABEL = "edge_label"


# Wide-column definitions


@dataclass(frozen=True)
class KeyspaceDefinition:
    replication_factor: int = 1
    durable_writes: bool = True

    holds_rows: ClassVar[bool] = False


@dataclass(frozen=True)
class UserTypeDefinition:
    field_names: tuple[str, ...]
    field_types: tuple[str, ...]

    holds_rows: ClassVar[bool] = False


@dataclass(frozen=True)
class WideColumn:
    name: str
    cql_type: str
    kind: str  # partition_key, clustering, regular or static
    position: int = -1
    clustering_order: str = "none"

    @property
    def is_counter(self) -> bool:
        return "counter" in self.cql_type


@dataclass(frozen=True)
class WideTableDefinition:
    columns: tuple[WideColumn, ...]

    holds_rows: ClassVar[bool] = True

    def _ordered(self, kind: str) -> list[WideColumn]:
        return sorted((c for c in self.columns if c.kind == kind), key=lambda c: c.position)

    @property
    def partition_keys(self) -> list[str]:
        return [c.name for c in self._ordered("partition_key")]

    @property
    def clustering_columns(self) -> list[WideColumn]:
        return self._ordered("clustering")

    @property
    def key_columns(self) -> list[str]:
        return self.partition_keys + [c.name for c in self.clustering_columns]

    @property
    def counter_columns(self) -> list[str]:
        return [c.name for c in self.columns if c.is_counter]

    @property
    def value_columns(self) -> list[str]:
        """Non-key, non-counter columns."""
        keys = set(self.key_columns)
        return [c.name for c in self.columns if not c.is_counter and c.name not in keys]


# Relational definitions


@dataclass(frozen=True)
class EnumTypeDefinition:
    schema: str
    name: str
    values: tuple[str, ...]

    holds_rows: ClassVar[bool] = False


@dataclass(frozen=True)
class SequenceDefinition:
    schema: str
    name: str
    data_type: str
    start_value: int
    increment_by: int
    min_value: int
    max_value: int
    cache_size: int
    cycle: bool
    last_value: int | None = None

    holds_rows: ClassVar[bool] = False


@dataclass(frozen=True)
class RelationalColumn:
    name: str
    data_type: str
    not_null: bool = False
    default: str | None = None
    identity: str = ""  # "" (none), "a" (always) or "d" (by default)
    generated: str = ""  # "" or "s" (stored generated column)

    @property
    def is_json(self) -> bool:
        return self.data_type in ("json", "jsonb")


@dataclass(frozen=True)
class RelationalTableDefinition:
    schema: str
    name: str
    columns: tuple[RelationalColumn, ...]
    primary_key: tuple[str, ...] = ()

    holds_rows: ClassVar[bool] = True

    @property
    def insertable_columns(self) -> list[RelationalColumn]:
        return [c for c in self.columns if not c.generated]

    @property
    def has_identity(self) -> bool:
        return any(c.identity for c in self.columns)


@dataclass(frozen=True)
class DdlDefinition:
    """A creation statement reproduced verbatim from the source catalog.

    Used for indexes, constraints, functions and triggers, whose
    definitions the relational store renders itself.
    """

    schema: str
    statement: str
    foreign_key: bool = False
    table: str = ""  # set for constraints: statement is the body after ADD CONSTRAINT
    name: str = ""

    holds_rows: ClassVar[bool] = False


# Document-search, document and graph definitions


@dataclass(frozen=True)
class SearchIndexDefinition:
    settings: dict[str, Any]
    mappings: dict[str, Any]
    aliases: dict[str, Any] = field(default_factory=dict)

    holds_rows: ClassVar[bool] = True


@dataclass(frozen=True)
class CollectionDefinition:
    holds_rows: ClassVar[bool] = True


@dataclass(frozen=True)
class GraphElementDefinition:
    element: str  # "vertex" or "edge"

    holds_rows: ClassVar[bool] = True


Definition = (
    KeyspaceDefinition
    | UserTypeDefinition
    | WideTableDefinition
    | EnumTypeDefinition
    | SequenceDefinition
    | RelationalTableDefinition
    | DdlDefinition
    | SearchIndexDefinition
    | CollectionDefinition
    | GraphElementDefinition
)


@dataclass(frozen=True)
class SchemaObject:
    """A named structural entity discovered on the source."""

    kind: ObjectKind
    namespace: str
    name: str
    definition: Definition
    dependency_rank: int = 0

    @property
    def holds_rows(self) -> bool:
        return self.definition.holds_rows

    @property
    def qualified_name(self) -> str:
        return f"{self.namespace}/{self.name}"


@dataclass
class Row:
    """One record read from the source.

    ``key`` names the fields that form the store's identity key; writers
    must carry those values to the target unchanged.
    """

    values: dict[str, Any]
    key: tuple[str, ...] = ()

    @property
    def identity(self) -> tuple[Any, ...]:
        return tuple(self.values.get(k) for k in self.key)


@dataclass(frozen=True)
class ReconciliationEntry:
    namespace: str
    object_name: str
    source_count: int
    target_count: int

    @property
    def match(self) -> bool:
        return self.source_count == self.target_count
