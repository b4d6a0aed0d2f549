"""
Graph store adapter for Gremlin servers speaking GraphSON 2.

The graph is schemaless, so the only "schema objects" are the vertex set
and the edge set. Vertices are copied before edges because an edge is
attached by looking up its endpoints by their preserved ids.
"""

from __future__ import annotations

import logging
import ssl
from typing import TYPE_CHECKING, Any, Final

from aiohttp import ClientError
from gremlin_python.driver import serializer
from gremlin_python.driver.aiohttp.transport import AiohttpTransport
from gremlin_python.driver.client import Client
from gremlin_python.driver.protocol import GremlinServerError

from .exceptions import DataIntegrityError, StoreConnectionError
from .models import GraphElementDefinition, ObjectKind, Row, SchemaObject, StoreKind

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

    from .config import Endpoint, GremlinSettings

logger: logging.Logger = logging.getLogger(__name__)

NAMESPACE: Final[str] = "g"

VERTICES: Final[SchemaObject] = SchemaObject(
    ObjectKind.VERTEX_LABEL, NAMESPACE, "vertices", GraphElementDefinition("vertex"), 0
)
EDGES: Final[SchemaObject] = SchemaObject(ObjectKind.EDGE_LABEL, NAMESPACE, "edges", GraphElementDefinition("edge"), 1)

_COUNT_QUERIES: Final[dict[str, str]] = {"vertex": "g.V().count()", "edge": "g.E().count()"}
_READ_QUERIES: Final[dict[str, str]] = {"vertex": "g.V()", "edge": "g.E()"}


def connect(endpoint: Endpoint, traversal_source: str, *, ssl_validate: bool) -> Client:
    ssl_context = ssl.create_default_context()
    if not ssl_validate:
        ssl_context.check_hostname = False
        ssl_context.verify_mode = ssl.CERT_NONE

    client = Client(
        endpoint.host,
        traversal_source,
        username=endpoint.username or "",
        password=endpoint.password or "",
        message_serializer=serializer.GraphSONSerializersV2d0(),
        transport_factory=lambda: AiohttpTransport(ssl_options=ssl_context),
    )
    try:
        client.submit("g.V().limit(0)").all().result()
    except (GremlinServerError, ClientError, OSError) as e:
        client.close()
        msg = f"Cannot reach Gremlin server at {endpoint.host}: {e}"
        raise StoreConnectionError(msg) from e
    return client


def property_values(vertex: dict[str, Any]) -> dict[str, Any]:
    """Unwrap vertex properties, which arrive as ``{key: [{"id": ..., "value": ...}]}``."""
    return {key: wrapped[0]["value"] for key, wrapped in vertex.get("properties", {}).items() if wrapped}


def _with_properties(query: str, properties: dict[str, Any], bindings: dict[str, Any]) -> str:
    for i, (key, value) in enumerate(properties.items()):
        query += f".property(k{i}, v{i})"
        bindings[f"k{i}"] = key
        bindings[f"v{i}"] = value
    return query


def add_vertex_query(vertex: dict[str, Any]) -> tuple[str, dict[str, Any]]:
    bindings: dict[str, Any] = {"vertex_label": vertex["label"], "vertex_id": vertex["id"]}
    query = _with_properties("g.addV(vertex_label).property('id', vertex_id)", property_values(vertex), bindings)
    return query, bindings


def add_edge_query(edge: dict[str, Any]) -> tuple[str, dict[str, Any]]:
    bindings: dict[str, Any] = {
        "out_id": edge["outV"],
        "in_id": edge["inV"],
        "edge_label": edge["label"],
        "edge_id": edge["id"],
    }
    query = _with_properties(
        "g.V(out_id).addE(edge_label).to(g.V(in_id)).property('id', edge_id)",
        dict(edge.get("properties", {})),
        bindings,
    )
    return query, bindings


class GraphAdapter:
    """Replicates a whole graph: every vertex, then every edge."""

    kind: StoreKind = StoreKind.GRAPH
    name: str = StoreKind.GRAPH.value
    data_load_rank: int = 1

    def __init__(self, source: Client, target: Client) -> None:
        self.source: Client = source
        self.target: Client = target
        self._counts: dict[str, tuple[int, int]] = {}

    @classmethod
    def from_settings(cls, settings: GremlinSettings) -> GraphAdapter:
        source = connect(settings.source, settings.traversal_source, ssl_validate=settings.ssl_validate)
        try:
            target = connect(settings.target, settings.traversal_source, ssl_validate=settings.ssl_validate)
        except BaseException:
            source.close()
            raise
        logger.info("Connected to Gremlin source and target")
        return cls(source, target)

    @staticmethod
    def _stream(client: Client, query: str) -> Iterator[Any]:
        """Yield results as the server sends each batch."""
        for batch in client.submit(query):
            yield from batch

    @staticmethod
    def _first(client: Client, query: str) -> Any:  # noqa: ANN401
        return client.submit(query).all().result()[0]

    def clear(self) -> None:
        """Drop every edge, then every vertex."""
        edge_ids = list(self._stream(self.target, "g.E().id()"))
        for edge_id in edge_ids:
            self.target.submit("g.E(edge_id).drop()", {"edge_id": edge_id}).all().result()
        vertex_ids = list(self._stream(self.target, "g.V().id()"))
        for vertex_id in vertex_ids:
            self.target.submit("g.V(vertex_id).drop()", {"vertex_id": vertex_id}).all().result()
        logger.debug(f"Dropped {len(edge_ids)} edges and {len(vertex_ids)} vertices")

    def list_schema_objects(self) -> list[SchemaObject]:
        return [VERTICES, EDGES]

    def create_object(self, obj: SchemaObject) -> None:
        """Nothing to create: labels come into existence with the first element that uses them."""
        logger.debug(f"{obj.qualified_name}: graph labels are implicit, nothing sent to the target")

    def stream_rows(self, container: SchemaObject) -> Iterator[Row]:
        definition = container.definition
        assert isinstance(definition, GraphElementDefinition)
        for element in self._stream(self.source, _READ_QUERIES[definition.element]):
            yield Row(element, ("id",))

    def write_rows(self, container: SchemaObject, rows: Iterable[Row]) -> int:
        definition = container.definition
        assert isinstance(definition, GraphElementDefinition)
        build = add_vertex_query if definition.element == "vertex" else add_edge_query
        written = 0
        for row in rows:
            query, bindings = build(row.values)
            try:
                self.target.submit(query, bindings).all().result()
            except GremlinServerError as e:
                msg = f"Write rejected for {definition.element} {row.values.get('id')}: {e}"
                raise DataIntegrityError(msg) from e
            written += 1
        return written

    def count(self, container: SchemaObject) -> tuple[int, int]:
        definition = container.definition
        assert isinstance(definition, GraphElementDefinition)
        query = _COUNT_QUERIES[definition.element]
        counts = (self._first(self.source, query), self._first(self.target, query))
        self._counts[container.qualified_name] = counts
        return counts

    def aggregate_counts(self) -> dict[str, tuple[int, int]]:
        """Vertex and edge totals, reusing counts already taken for the entries."""
        return {
            obj.qualified_name: self._counts.get(obj.qualified_name) or self.count(obj) for obj in (VERTICES, EDGES)
        }

    def close(self) -> None:
        self.source.close()
        self.target.close()
