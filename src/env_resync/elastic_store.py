"""
Document-search store adapter for Elasticsearch.

Only allow-listed indices are replicated. Each index is recreated from its
source settings, mappings and aliases, then filled by a scroll over the
source. Documents are indexed one at a time under their source ``_id`` so
a repeated copy overwrites rather than duplicates.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Final

from elasticsearch import ApiError, BadRequestError, Elasticsearch, NotFoundError
from elasticsearch import ConnectionError as ElasticConnectionError

from .config import DEFAULT_PAGE_SIZE, DEFAULT_SCROLL
from .exceptions import DataIntegrityError, SchemaConflictError, StoreConnectionError
from .models import ObjectKind, Row, SchemaObject, SearchIndexDefinition, StoreKind

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

    from .config import ElasticSettings, Endpoint

logger: logging.Logger = logging.getLogger(__name__)

NAMESPACE: Final[str] = "indices"

# Assigned by the server on creation and rejected when supplied.
SERVER_ASSIGNED_SETTINGS: Final[tuple[str, ...]] = ("uuid", "provided_name", "creation_date", "version")


def connect(endpoint: Endpoint, *, ssl_validate: bool) -> Elasticsearch:
    options: dict[str, Any] = {"verify_certs": ssl_validate, "request_timeout": 60}
    if endpoint.host.startswith(("http://", "https://")):
        options["hosts"] = [endpoint.host]
    else:
        options["cloud_id"] = endpoint.host
    if endpoint.api_key:
        options["api_key"] = endpoint.api_key
    elif endpoint.username:
        options["basic_auth"] = (endpoint.username, endpoint.password or "")

    client = Elasticsearch(**options)
    try:
        client.info()
    except (ElasticConnectionError, ApiError) as e:
        client.close()
        msg = f"Cannot reach Elasticsearch at {endpoint.host}: {e}"
        raise StoreConnectionError(msg) from e
    return client


def portable_settings(settings: dict[str, Any]) -> dict[str, Any]:
    """Return index settings without the server-assigned, non-portable keys."""
    index_settings = {k: v for k, v in settings.get("index", {}).items() if k not in SERVER_ASSIGNED_SETTINGS}
    return {**settings, "index": index_settings}


class SearchAdapter:
    """Replicates allow-listed Elasticsearch indices."""

    kind: StoreKind = StoreKind.SEARCH
    name: str = StoreKind.SEARCH.value
    data_load_rank: int = 0

    def __init__(
        self,
        source: Elasticsearch,
        target: Elasticsearch,
        *,
        indices: Iterable[str],
        page_size: int = DEFAULT_PAGE_SIZE,
        scroll: str = DEFAULT_SCROLL,
    ) -> None:
        self.source: Elasticsearch = source
        self.target: Elasticsearch = target
        self.indices: tuple[str, ...] = tuple(indices)
        self.page_size: int = page_size
        self.scroll: str = scroll

    @classmethod
    def from_settings(cls, settings: ElasticSettings) -> SearchAdapter:
        source = connect(settings.source, ssl_validate=settings.ssl_validate)
        try:
            target = connect(settings.target, ssl_validate=settings.ssl_validate)
        except BaseException:
            source.close()
            raise
        logger.info("Connected to Elasticsearch source and target")
        return cls(source, target, indices=settings.indices, page_size=settings.page_size, scroll=settings.scroll)

    def clear(self) -> None:
        """Delete the allow-listed indices present on the target."""
        existing = {entry["index"] for entry in self.target.cat.indices(format="json")}
        for index in self.indices:
            if index in existing:
                self.target.indices.delete(index=index, ignore_unavailable=True)
                logger.debug(f"Deleted target index {index}")

    def list_schema_objects(self) -> list[SchemaObject]:
        objects = []
        for index in self.indices:
            try:
                response = self.source.indices.get(index=index)
            except NotFoundError:
                logger.warning(f"Index {index} is allow-listed but missing on the source, skipping")
                continue
            body = response[index]
            definition = SearchIndexDefinition(
                settings=portable_settings(body.get("settings", {})),
                mappings=body.get("mappings", {}),
                aliases=body.get("aliases", {}),
            )
            objects.append(SchemaObject(ObjectKind.INDEX, NAMESPACE, index, definition))
        return objects

    def create_object(self, obj: SchemaObject) -> None:
        definition = obj.definition
        assert isinstance(definition, SearchIndexDefinition)
        try:
            self.target.indices.create(
                index=obj.name,
                settings=definition.settings,
                mappings=definition.mappings,
                aliases=definition.aliases or None,
            )
        except BadRequestError as e:
            if e.error == "resource_already_exists_exception":
                msg = f"Index {obj.name} already exists on target"
                raise SchemaConflictError(msg) from e
            raise

    def stream_rows(self, container: SchemaObject) -> Iterator[Row]:
        """Scroll through every document of an index.

        Pages are pulled until the accumulated hits reach the total reported
        by the first response, or a page comes back empty.
        """
        response = self.source.search(
            index=container.name,
            scroll=self.scroll,
            size=self.page_size,
            track_total_hits=True,
            query={"match_all": {}},
        )
        scroll_id = response["_scroll_id"]
        total = response["hits"]["total"]["value"]
        seen = 0
        try:
            while True:
                hits = response["hits"]["hits"]
                if not hits:
                    break
                for hit in hits:
                    yield Row({"_id": hit["_id"], "_source": hit["_source"]}, ("_id",))
                seen += len(hits)
                if seen >= total:
                    break
                response = self.source.scroll(scroll_id=scroll_id, scroll=self.scroll)
                scroll_id = response["_scroll_id"]
        finally:
            if scroll_id:
                self.source.clear_scroll(scroll_id=scroll_id)
        logger.debug(f"Read {seen} of {total} documents from {container.name}")

    def write_rows(self, container: SchemaObject, rows: Iterable[Row]) -> int:
        written = 0
        try:
            for row in rows:
                self.target.index(index=container.name, id=row.values["_id"], document=row.values["_source"])
                written += 1
        except ApiError as e:
            msg = f"Write rejected for {container.qualified_name}: {e}"
            raise DataIntegrityError(msg) from e
        self.target.indices.refresh(index=container.name)
        return written

    def count(self, container: SchemaObject) -> tuple[int, int]:
        source_count = self.source.count(index=container.name)["count"]
        target_count = self.target.count(index=container.name)["count"]
        return source_count, target_count

    def aggregate_counts(self) -> dict[str, tuple[int, int]]:
        return {}

    def close(self) -> None:
        self.source.close()
        self.target.close()
