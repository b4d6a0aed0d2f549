"""
Relational store adapter for PostgreSQL.

One adapter handles one (source database, target database) pair. Creation
order, by dependency rank:

    0 Enum types
    1 Sequences
    2 Tables (columns only, no constraints)
      -- data load --
    3 Indexes (unique and constraint-owned indexes come back with their constraints)
    4 Constraints other than foreign keys
    5 Foreign keys
    6 Functions
    7 Triggers

Loading data before any constraint exists means rows can be inserted in
any table order, including for self-referencing or mutually referencing
tables. clear() walks the same kinds in reverse.
"""

from __future__ import annotations

import json
import logging
import uuid
from itertools import batched
from typing import TYPE_CHECKING, Any, Final

import psycopg2
import psycopg2.errors
from psycopg2 import sql
from psycopg2.extras import RealDictCursor, execute_values

from .config import DEFAULT_BATCH_SIZE, DEFAULT_ITERSIZE
from .exceptions import DataIntegrityError, SchemaConflictError, StoreConnectionError
from .models import (
    DdlDefinition,
    EnumTypeDefinition,
    ObjectKind,
    RelationalColumn,
    RelationalTableDefinition,
    Row,
    SchemaObject,
    SequenceDefinition,
    StoreKind,
)

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

    from psycopg2.extensions import connection as Connection

    from .config import Endpoint, PostgresSettings

logger: logging.Logger = logging.getLogger(__name__)

SYSTEM_SCHEMAS: Final[tuple[str, ...]] = ("pg_catalog", "information_schema", "pg_toast")

RANK_TYPE: Final[int] = 0
RANK_SEQUENCE: Final[int] = 1
RANK_TABLE: Final[int] = 2
RANK_INDEX: Final[int] = 3
RANK_CONSTRAINT: Final[int] = 4
RANK_FOREIGN_KEY: Final[int] = 5
RANK_FUNCTION: Final[int] = 6
RANK_TRIGGER: Final[int] = 7

_CONFLICT_ERRORS: Final = (
    psycopg2.errors.DuplicateObject,
    psycopg2.errors.DuplicateTable,
    psycopg2.errors.DuplicateFunction,
)
_WRITE_ERRORS: Final = (psycopg2.IntegrityError, psycopg2.DataError)

ENUM_TYPES_QUERY: Final[str] = """
    SELECT n.nspname AS schema_name,
           t.typname AS type_name,
           array_agg(e.enumlabel ORDER BY e.enumsortorder) AS enum_values
    FROM pg_type t
      JOIN pg_enum e ON t.oid = e.enumtypid
      JOIN pg_namespace n ON t.typnamespace = n.oid
    WHERE n.nspname NOT IN %(excluded)s
    GROUP BY n.nspname, t.typname
    ORDER BY n.nspname, t.typname
"""

# Identity sequences belong to their column and are recreated with the table.
SEQUENCES_QUERY: Final[str] = """
    SELECT n.nspname AS schema_name,
           c.relname AS sequence_name,
           format_type(s.seqtypid, NULL) AS data_type,
           s.seqstart AS start_value,
           s.seqincrement AS increment_by,
           s.seqmin AS min_value,
           s.seqmax AS max_value,
           s.seqcache AS cache_size,
           s.seqcycle AS cycle,
           ps.last_value
    FROM pg_sequence s
      JOIN pg_class c ON s.seqrelid = c.oid
      JOIN pg_namespace n ON c.relnamespace = n.oid
      LEFT JOIN pg_sequences ps ON ps.schemaname = n.nspname AND ps.sequencename = c.relname
    WHERE n.nspname NOT IN %(excluded)s
      AND NOT EXISTS (SELECT 1 FROM pg_depend d WHERE d.objid = c.oid AND d.deptype = 'i')
    ORDER BY n.nspname, c.relname
"""

COLUMNS_QUERY: Final[str] = """
    SELECT n.nspname AS schema_name,
           c.relname AS table_name,
           a.attname AS column_name,
           format_type(a.atttypid, a.atttypmod) AS data_type,
           a.attnotnull AS not_null,
           pg_get_expr(d.adbin, d.adrelid) AS default_value,
           a.attidentity AS identity,
           a.attgenerated AS generated,
           COALESCE(a.attnum = ANY(pk.indkey), false) AS is_primary_key
    FROM pg_attribute a
      JOIN pg_class c ON a.attrelid = c.oid
      JOIN pg_namespace n ON c.relnamespace = n.oid
      LEFT JOIN pg_attrdef d ON a.attrelid = d.adrelid AND a.attnum = d.adnum
      LEFT JOIN pg_index pk ON pk.indrelid = c.oid AND pk.indisprimary
    WHERE a.attnum > 0
      AND NOT a.attisdropped
      AND c.relkind = 'r'
      AND n.nspname NOT IN %(excluded)s
    ORDER BY n.nspname, c.relname, a.attnum
"""

TABLES_QUERY: Final[str] = """
    SELECT n.nspname AS schema_name, c.relname AS table_name
    FROM pg_class c
      JOIN pg_namespace n ON c.relnamespace = n.oid
    WHERE c.relkind = 'r'
      AND n.nspname NOT IN %(excluded)s
    ORDER BY n.nspname, c.relname
"""

INDEXES_QUERY: Final[str] = """
    SELECT n.nspname AS schema_name, i.relname AS index_name, pg_get_indexdef(i.oid) AS definition
    FROM pg_index x
      JOIN pg_class i ON x.indexrelid = i.oid
      JOIN pg_class t ON x.indrelid = t.oid
      JOIN pg_namespace n ON i.relnamespace = n.oid
    WHERE t.relkind = 'r'
      AND NOT x.indisunique
      AND NOT EXISTS (SELECT 1 FROM pg_constraint c WHERE c.conindid = i.oid)
      AND n.nspname NOT IN %(excluded)s
    ORDER BY n.nspname, t.relname, i.relname
"""

# Foreign keys sort last so the keys they reference exist first.
# NOT NULL constraints ('n') travel with the column definitions.
CONSTRAINTS_QUERY: Final[str] = """
    SELECT n.nspname AS schema_name,
           cl.relname AS table_name,
           c.conname AS constraint_name,
           c.contype = 'f' AS foreign_key,
           pg_get_constraintdef(c.oid) AS definition
    FROM pg_constraint c
      JOIN pg_class cl ON c.conrelid = cl.oid
      JOIN pg_namespace n ON cl.relnamespace = n.oid
    WHERE n.nspname NOT IN %(excluded)s
      AND cl.relkind = 'r'
      AND c.contype <> 'n'
    ORDER BY c.contype = 'f', n.nspname, cl.relname, c.conname
"""

FUNCTIONS_QUERY: Final[str] = """
    SELECT n.nspname AS schema_name,
           p.proname AS function_name,
           pg_get_function_identity_arguments(p.oid) AS arguments,
           pg_get_functiondef(p.oid) AS definition
    FROM pg_proc p
      JOIN pg_namespace n ON p.pronamespace = n.oid
    WHERE n.nspname NOT IN %(excluded)s
      AND p.prokind IN ('f', 'p')
      AND NOT EXISTS (SELECT 1 FROM pg_depend d WHERE d.objid = p.oid AND d.deptype = 'e')
    ORDER BY n.nspname, p.proname
"""

TRIGGERS_QUERY: Final[str] = """
    SELECT n.nspname AS schema_name,
           c.relname AS table_name,
           t.tgname AS trigger_name,
           pg_get_triggerdef(t.oid) AS definition
    FROM pg_trigger t
      JOIN pg_class c ON t.tgrelid = c.oid
      JOIN pg_namespace n ON c.relnamespace = n.oid
    WHERE n.nspname NOT IN %(excluded)s
      AND NOT t.tgisinternal
    ORDER BY n.nspname, c.relname, t.tgname
"""

# Standalone user types: enums, domains, ranges and free composite types.
USER_TYPES_QUERY: Final[str] = """
    SELECT n.nspname AS schema_name, t.typname AS type_name
    FROM pg_type t
      JOIN pg_namespace n ON t.typnamespace = n.oid
    WHERE n.nspname NOT IN %(excluded)s
      AND t.typname NOT LIKE '\\_%%'
      AND (t.typtype IN ('e', 'd', 'r')
           OR (t.typtype = 'c' AND EXISTS (
                 SELECT 1 FROM pg_class k WHERE k.oid = t.typrelid AND k.relkind = 'c')))
      AND NOT EXISTS (SELECT 1 FROM pg_depend d WHERE d.objid = t.oid AND d.deptype = 'e')
"""

ALL_SEQUENCES_QUERY: Final[str] = """
    SELECT n.nspname AS schema_name, c.relname AS sequence_name
    FROM pg_sequence s
      JOIN pg_class c ON s.seqrelid = c.oid
      JOIN pg_namespace n ON c.relnamespace = n.oid
    WHERE n.nspname NOT IN %(excluded)s
"""

ALL_INDEXES_QUERY: Final[str] = """
    SELECT schemaname AS schema_name, indexname AS index_name
    FROM pg_indexes
    WHERE schemaname NOT IN %(excluded)s
"""

# Object-kind totals for the reconciliation report.
AGGREGATE_QUERIES: Final[dict[str, str]] = {
    "types": f"SELECT count(*) AS count FROM ({USER_TYPES_QUERY}) AS user_types",
    "sequences": f"SELECT count(*) AS count FROM ({ALL_SEQUENCES_QUERY}) AS sequences",
    "indexes": f"SELECT count(*) AS count FROM ({ALL_INDEXES_QUERY}) AS indexes",
    "constraints": f"SELECT count(*) AS count FROM ({CONSTRAINTS_QUERY}) AS constraints",
    "functions": f"SELECT count(*) AS count FROM ({FUNCTIONS_QUERY}) AS functions",
    "triggers": f"SELECT count(*) AS count FROM ({TRIGGERS_QUERY}) AS triggers",
}


def connect(endpoint: Endpoint, database: str, *, ssl_validate: bool) -> Connection:
    try:
        return psycopg2.connect(
            host=endpoint.host,
            port=endpoint.port or 5432,
            user=endpoint.username,
            password=endpoint.password,
            dbname=database,
            sslmode="verify-full" if ssl_validate else "require",
        )
    except psycopg2.OperationalError as e:
        msg = f"Cannot reach PostgreSQL database {database} at {endpoint.host}: {e}"
        raise StoreConnectionError(msg) from e


def _table(schema: str, name: str) -> sql.Composed:
    return sql.SQL("{}.{}").format(sql.Identifier(schema), sql.Identifier(name))


def _percent_safe(name: str) -> sql.Identifier:
    """Identifier for execute_values, which reads every % in the statement as a placeholder marker."""
    return sql.Identifier(name.replace("%", "%%"))


def column_ddl(column: RelationalColumn) -> sql.Composed:
    parts: list[sql.Composable] = [sql.Identifier(column.name), sql.SQL(column.data_type)]
    if column.identity:
        mode = "ALWAYS" if column.identity == "a" else "BY DEFAULT"
        parts.append(sql.SQL(f"GENERATED {mode} AS IDENTITY"))
    elif column.generated and column.default is not None:
        parts.append(sql.SQL("GENERATED ALWAYS AS ({}) STORED").format(sql.SQL(column.default)))
    elif column.default is not None:
        parts.append(sql.SQL("DEFAULT {}").format(sql.SQL(column.default)))
    if column.not_null:
        parts.append(sql.SQL("NOT NULL"))
    return sql.SQL(" ").join(parts)


def table_ddl(definition: RelationalTableDefinition) -> sql.Composed:
    """CREATE TABLE with columns, defaults and identities only; constraints come later."""
    return sql.SQL("CREATE TABLE {} ({})").format(
        _table(definition.schema, definition.name),
        sql.SQL(", ").join(column_ddl(c) for c in definition.columns),
    )


def enum_ddl(definition: EnumTypeDefinition) -> sql.Composed:
    return sql.SQL("CREATE TYPE {} AS ENUM ({})").format(
        _table(definition.schema, definition.name),
        sql.SQL(", ").join(sql.Literal(v) for v in definition.values),
    )


def sequence_ddl(definition: SequenceDefinition) -> list[sql.Composed]:
    statements = [
        sql.SQL(
            "CREATE SEQUENCE {} AS {} START WITH {} INCREMENT BY {} MINVALUE {} MAXVALUE {} CACHE {} {}"
        ).format(
            _table(definition.schema, definition.name),
            sql.SQL(definition.data_type),
            sql.Literal(definition.start_value),
            sql.Literal(definition.increment_by),
            sql.Literal(definition.min_value),
            sql.Literal(definition.max_value),
            sql.Literal(definition.cache_size),
            sql.SQL("CYCLE" if definition.cycle else "NO CYCLE"),
        )
    ]
    if definition.last_value is not None:
        statements.append(
            sql.SQL("SELECT setval(format('%I.%I', {}, {})::regclass, {})").format(
                sql.Literal(definition.schema), sql.Literal(definition.name), sql.Literal(definition.last_value)
            )
        )
    return statements


def constraint_ddl(definition: DdlDefinition) -> sql.Composed:
    return sql.SQL("ALTER TABLE {} ADD CONSTRAINT {} {}").format(
        _table(definition.schema, definition.table),
        sql.Identifier(definition.name),
        sql.SQL(definition.statement),
    )


def _to_parameter(column: RelationalColumn, value: Any) -> Any:  # noqa: ANN401
    # The driver decodes json/jsonb into Python objects; send them back as text.
    if column.is_json and value is not None:
        return json.dumps(value)
    return value


class RelationalAdapter:
    """Replicates one PostgreSQL database into another."""

    kind: StoreKind = StoreKind.RELATIONAL
    data_load_rank: int = RANK_TABLE

    def __init__(
        self,
        source: Connection,
        target: Connection,
        *,
        namespace: str,
        itersize: int = DEFAULT_ITERSIZE,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        self.namespace: str = namespace
        self.name: str = f"{self.kind.value}:{namespace}"
        self.source: Connection = source
        self.target: Connection = target
        self.itersize: int = itersize
        self.batch_size: int = batch_size
        self._schemas_ensured: set[str] = {"public"}

        self.source.set_session(readonly=True)
        self.target.autocommit = True

    @classmethod
    def from_settings(cls, settings: PostgresSettings, source_database: str, target_database: str) -> RelationalAdapter:
        source = connect(settings.source, source_database, ssl_validate=settings.ssl_validate)
        try:
            target = connect(settings.target, target_database, ssl_validate=settings.ssl_validate)
        except BaseException:
            source.close()
            raise
        logger.info(f"Connected to PostgreSQL {source_database} -> {target_database}")
        return cls(
            source,
            target,
            namespace=f"{source_database}|{target_database}",
            itersize=settings.itersize,
            batch_size=settings.batch_size,
        )

    def _fetch(self, conn: Connection, query: str | sql.Composable) -> list[dict[str, Any]]:
        # Only catalog queries take parameters; a composed statement must not be
        # %-interpolated, or a % inside an identifier breaks it.
        params = {"excluded": SYSTEM_SCHEMAS} if isinstance(query, str) and "%(excluded)s" in query else None
        with conn, conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(query, params)
            return [dict(r) for r in cur.fetchall()]

    def _execute(self, *statements: sql.Composable) -> None:
        # One round trip runs as one implicit transaction, so a failing
        # statement leaves none of the others behind.
        with self.target.cursor() as cur:
            cur.execute(sql.SQL("; ").join(statements))

    def clear(self) -> None:
        """Drop replica-managed objects on the target, dependents first.

        Every drop is guarded with IF EXISTS so a partially cleared target
        can be cleared again.
        """
        for r in self._fetch(self.target, TRIGGERS_QUERY):
            self._execute(
                sql.SQL("DROP TRIGGER IF EXISTS {} ON {}").format(
                    sql.Identifier(r["trigger_name"]), _table(r["schema_name"], r["table_name"])
                )
            )
        for r in self._fetch(self.target, FUNCTIONS_QUERY):
            self._execute(
                sql.SQL("DROP ROUTINE IF EXISTS {}({}) CASCADE").format(
                    _table(r["schema_name"], r["function_name"]), sql.SQL(r["arguments"])
                )
            )
        for r in self._fetch(self.target, CONSTRAINTS_QUERY)[::-1]:
            self._execute(
                sql.SQL("ALTER TABLE {} DROP CONSTRAINT IF EXISTS {}").format(
                    _table(r["schema_name"], r["table_name"]), sql.Identifier(r["constraint_name"])
                )
            )
        for r in self._fetch(self.target, TABLES_QUERY):
            self._execute(sql.SQL("DROP TABLE IF EXISTS {} CASCADE").format(_table(r["schema_name"], r["table_name"])))
        for r in self._fetch(self.target, USER_TYPES_QUERY):
            self._execute(sql.SQL("DROP TYPE IF EXISTS {} CASCADE").format(_table(r["schema_name"], r["type_name"])))
        for r in self._fetch(self.target, ALL_SEQUENCES_QUERY):
            self._execute(
                sql.SQL("DROP SEQUENCE IF EXISTS {} CASCADE").format(_table(r["schema_name"], r["sequence_name"]))
            )
        for r in self._fetch(self.target, ALL_INDEXES_QUERY):
            self._execute(sql.SQL("DROP INDEX IF EXISTS {}").format(_table(r["schema_name"], r["index_name"])))
        logger.debug(f"{self.name}: cleared target")

    def list_schema_objects(self) -> list[SchemaObject]:
        ns = self.namespace
        objects: list[SchemaObject] = [
            SchemaObject(
                ObjectKind.TYPE,
                ns,
                f"{r['schema_name']}.{r['type_name']}",
                EnumTypeDefinition(r["schema_name"], r["type_name"], tuple(r["enum_values"])),
                RANK_TYPE,
            )
            for r in self._fetch(self.source, ENUM_TYPES_QUERY)
        ]
        objects.extend(
            SchemaObject(
                ObjectKind.SEQUENCE,
                ns,
                f"{r['schema_name']}.{r['sequence_name']}",
                SequenceDefinition(
                    schema=r["schema_name"],
                    name=r["sequence_name"],
                    data_type=r["data_type"],
                    start_value=r["start_value"],
                    increment_by=r["increment_by"],
                    min_value=r["min_value"],
                    max_value=r["max_value"],
                    cache_size=r["cache_size"],
                    cycle=r["cycle"],
                    last_value=r["last_value"],
                ),
                RANK_SEQUENCE,
            )
            for r in self._fetch(self.source, SEQUENCES_QUERY)
        )
        objects.extend(self._tables())
        objects.extend(
            SchemaObject(
                ObjectKind.INDEX,
                ns,
                f"{r['schema_name']}.{r['index_name']}",
                DdlDefinition(r["schema_name"], r["definition"]),
                RANK_INDEX,
            )
            for r in self._fetch(self.source, INDEXES_QUERY)
        )
        objects.extend(
            SchemaObject(
                ObjectKind.CONSTRAINT,
                ns,
                f"{r['schema_name']}.{r['table_name']}.{r['constraint_name']}",
                DdlDefinition(
                    r["schema_name"],
                    r["definition"],
                    foreign_key=r["foreign_key"],
                    table=r["table_name"],
                    name=r["constraint_name"],
                ),
                RANK_FOREIGN_KEY if r["foreign_key"] else RANK_CONSTRAINT,
            )
            for r in self._fetch(self.source, CONSTRAINTS_QUERY)
        )
        objects.extend(
            SchemaObject(
                ObjectKind.FUNCTION,
                ns,
                f"{r['schema_name']}.{r['function_name']}({r['arguments']})",
                DdlDefinition(r["schema_name"], r["definition"]),
                RANK_FUNCTION,
            )
            for r in self._fetch(self.source, FUNCTIONS_QUERY)
        )
        objects.extend(
            SchemaObject(
                ObjectKind.TRIGGER,
                ns,
                f"{r['schema_name']}.{r['table_name']}.{r['trigger_name']}",
                DdlDefinition(r["schema_name"], r["definition"]),
                RANK_TRIGGER,
            )
            for r in self._fetch(self.source, TRIGGERS_QUERY)
        )
        return sorted(objects, key=lambda o: o.dependency_rank)

    def _tables(self) -> list[SchemaObject]:
        grouped: dict[tuple[str, str], list[dict[str, Any]]] = {}
        for r in self._fetch(self.source, COLUMNS_QUERY):
            grouped.setdefault((r["schema_name"], r["table_name"]), []).append(r)

        tables = []
        for (schema, table), rows in grouped.items():
            definition = RelationalTableDefinition(
                schema=schema,
                name=table,
                columns=tuple(
                    RelationalColumn(
                        name=r["column_name"],
                        data_type=r["data_type"],
                        not_null=r["not_null"],
                        default=r["default_value"],
                        identity=r["identity"] or "",
                        generated=r["generated"] or "",
                    )
                    for r in rows
                ),
                primary_key=tuple(r["column_name"] for r in rows if r["is_primary_key"]),
            )
            tables.append(SchemaObject(ObjectKind.TABLE, self.namespace, f"{schema}.{table}", definition, RANK_TABLE))
        return tables

    def create_object(self, obj: SchemaObject) -> None:
        definition = obj.definition
        if isinstance(definition, EnumTypeDefinition):
            statements = [enum_ddl(definition)]
        elif isinstance(definition, SequenceDefinition):
            statements = sequence_ddl(definition)
        elif isinstance(definition, RelationalTableDefinition):
            statements = [table_ddl(definition)]
        elif isinstance(definition, DdlDefinition):
            statements = [constraint_ddl(definition) if definition.table else sql.SQL(definition.statement)]
        else:
            msg = f"PostgreSQL cannot create {obj.kind.value} {obj.qualified_name}"
            raise TypeError(msg)

        if definition.schema not in self._schemas_ensured:
            statements.insert(0, sql.SQL("CREATE SCHEMA IF NOT EXISTS {}").format(sql.Identifier(definition.schema)))
            self._schemas_ensured.add(definition.schema)

        try:
            self._execute(*statements)
        except _CONFLICT_ERRORS as e:
            msg = f"{obj.kind.value} {obj.qualified_name} already exists on target"
            raise SchemaConflictError(msg) from e
        except _WRITE_ERRORS as e:
            # Constraints are validated against the loaded rows.
            msg = f"Could not create {obj.kind.value} {obj.qualified_name}: {e}"
            raise DataIntegrityError(msg) from e

    def stream_rows(self, container: SchemaObject) -> Iterator[Row]:
        definition = container.definition
        assert isinstance(definition, RelationalTableDefinition)
        query = sql.SQL("SELECT {} FROM {}").format(
            sql.SQL(", ").join(sql.Identifier(c.name) for c in definition.insertable_columns),
            _table(definition.schema, definition.name),
        )
        # A named cursor keeps the result set on the server and fetches itersize rows at a time.
        with self.source, self.source.cursor(name=f"resync_{uuid.uuid4().hex}", cursor_factory=RealDictCursor) as cur:
            cur.itersize = self.itersize
            cur.execute(query)
            for record in cur:
                yield Row(dict(record), definition.primary_key)

    def write_rows(self, container: SchemaObject, rows: Iterable[Row]) -> int:
        definition = container.definition
        assert isinstance(definition, RelationalTableDefinition)
        columns = definition.insertable_columns
        insert = sql.SQL("INSERT INTO {}.{} ({}) {}VALUES %s").format(
            _percent_safe(definition.schema),
            _percent_safe(definition.name),
            sql.SQL(", ").join(_percent_safe(c.name) for c in columns),
            sql.SQL("OVERRIDING SYSTEM VALUE " if definition.has_identity else ""),
        )

        written = 0
        try:
            with self.target.cursor() as cur:
                for chunk in batched(rows, self.batch_size):
                    values = [[_to_parameter(c, row.values.get(c.name)) for c in columns] for row in chunk]
                    execute_values(cur, insert, values, page_size=self.batch_size)
                    written += len(chunk)
                for column in definition.columns:
                    if column.identity:
                        cur.execute(self._identity_reset(definition, column))
        except _WRITE_ERRORS as e:
            msg = f"Write rejected for {container.qualified_name}: {e}"
            raise DataIntegrityError(msg) from e
        return written

    @staticmethod
    def _identity_reset(definition: RelationalTableDefinition, column: RelationalColumn) -> sql.Composed:
        """Move an identity sequence past the copied keys."""
        return sql.SQL(
            "SELECT setval(pg_get_serial_sequence(format('%I.%I', {}, {}), {}), "
            "COALESCE(MAX({}), 1), MAX({}) IS NOT NULL) FROM {}"
        ).format(
            sql.Literal(definition.schema),
            sql.Literal(definition.name),
            sql.Literal(column.name),
            sql.Identifier(column.name),
            sql.Identifier(column.name),
            _table(definition.schema, definition.name),
        )

    def count(self, container: SchemaObject) -> tuple[int, int]:
        definition = container.definition
        assert isinstance(definition, RelationalTableDefinition)
        query = sql.SQL("SELECT count(*) AS count FROM {}").format(_table(definition.schema, definition.name))
        source_count = self._fetch(self.source, query)[0]["count"]
        target_count = self._fetch(self.target, query)[0]["count"]
        return source_count, target_count

    def aggregate_counts(self) -> dict[str, tuple[int, int]]:
        return {
            f"{self.namespace}/{name}": (
                self._fetch(self.source, query)[0]["count"],
                self._fetch(self.target, query)[0]["count"],
            )
            for name, query in AGGREGATE_QUERIES.items()
        }

    def close(self) -> None:
        self.source.close()
        self.target.close()
