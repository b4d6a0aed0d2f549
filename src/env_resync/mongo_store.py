"""
Document store adapter for MongoDB.

Databases and collections are enumerated on the source. Documents keep
their ``_id``, so the target holds the same logical documents.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Final

from pymongo import MongoClient
from pymongo.errors import BulkWriteError, CollectionInvalid, PyMongoError

from .config import DEFAULT_BATCH_SIZE
from .exceptions import DataIntegrityError, SchemaConflictError, StoreConnectionError
from .models import CollectionDefinition, ObjectKind, Row, SchemaObject, StoreKind

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

    from .config import Endpoint, MongoSettings

logger: logging.Logger = logging.getLogger(__name__)

SYSTEM_DATABASES: Final[frozenset[str]] = frozenset({"admin", "local", "config"})


def connect(endpoint: Endpoint, *, ssl_validate: bool) -> MongoClient:
    options: dict[str, Any] = {"serverSelectionTimeoutMS": 30_000}
    if endpoint.username:
        options["username"] = endpoint.username
        options["password"] = endpoint.password
    if not ssl_validate:
        options["tlsAllowInvalidCertificates"] = True

    client: MongoClient = MongoClient(endpoint.host, **options)
    try:
        client.admin.command("ping")
    except PyMongoError as e:
        client.close()
        msg = f"Cannot connect to MongoDB: {e}"
        raise StoreConnectionError(msg) from e
    return client


class DocumentAdapter:
    """Replicates MongoDB databases collection by collection."""

    kind: StoreKind = StoreKind.DOCUMENT
    name: str = StoreKind.DOCUMENT.value
    data_load_rank: int = 0

    def __init__(
        self,
        source: MongoClient,
        target: MongoClient,
        *,
        databases: Iterable[str] = (),
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        self.source: MongoClient = source
        self.target: MongoClient = target
        self.allowed: tuple[str, ...] = tuple(databases)
        self.batch_size: int = batch_size

    @classmethod
    def from_settings(cls, settings: MongoSettings) -> DocumentAdapter:
        source = connect(settings.source, ssl_validate=settings.ssl_validate)
        try:
            target = connect(settings.target, ssl_validate=settings.ssl_validate)
        except BaseException:
            source.close()
            raise
        logger.info("Connected to MongoDB source and target")
        return cls(source, target, databases=settings.databases)

    def _databases(self, client: MongoClient) -> list[str]:
        names = [name for name in client.list_database_names() if name not in SYSTEM_DATABASES]
        if self.allowed:
            missing = set(self.allowed) - set(names)
            for name in sorted(missing):
                logger.warning(f"Database {name} is allow-listed but missing, skipping")
            names = [name for name in names if name in self.allowed]
        return names

    def clear(self) -> None:
        for name in self._databases(self.target):
            self.target.drop_database(name)
            logger.debug(f"Dropped target database {name}")

    def list_schema_objects(self) -> list[SchemaObject]:
        objects = []
        for database in self._databases(self.source):
            names = self.source[database].list_collection_names(filter={"type": "collection"})
            objects.extend(
                SchemaObject(ObjectKind.COLLECTION, database, name, CollectionDefinition())
                for name in sorted(names)
                if not name.startswith("system.")
            )
        return objects

    def create_object(self, obj: SchemaObject) -> None:
        try:
            self.target[obj.namespace].create_collection(obj.name)
        except CollectionInvalid as e:
            msg = f"Collection {obj.qualified_name} already exists on target"
            raise SchemaConflictError(msg) from e

    def stream_rows(self, container: SchemaObject) -> Iterator[Row]:
        cursor = self.source[container.namespace][container.name].find({}, batch_size=self.batch_size)
        try:
            for document in cursor:
                yield Row(document, ("_id",))
        finally:
            cursor.close()

    def write_rows(self, container: SchemaObject, rows: Iterable[Row]) -> int:
        """Insert every document of a collection in one bulk call. Empty collections are skipped."""
        documents = [row.values for row in rows]
        if not documents:
            return 0
        try:
            self.target[container.namespace][container.name].insert_many(documents)
        except BulkWriteError as e:
            msg = f"Write rejected for {container.qualified_name}: {e.details.get('writeErrors', [])[:1]}"
            raise DataIntegrityError(msg) from e
        return len(documents)

    def count(self, container: SchemaObject) -> tuple[int, int]:
        source_count = self.source[container.namespace][container.name].count_documents({})
        target_count = self.target[container.namespace][container.name].count_documents({})
        return source_count, target_count

    def aggregate_counts(self) -> dict[str, tuple[int, int]]:
        return {}

    def close(self) -> None:
        self.source.close()
        self.target.close()
