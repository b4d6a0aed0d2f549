"""Protocols defining the contracts between the orchestrator and its collaborators.

The resync architecture separates concerns into three components:

1. StoreAdapter: Owns one store's source and target connections and knows
   that store's introspection, creation, transfer, clearing and counting.
2. ReconciliationReporter: Accumulates source/target counts into a report.
3. Orchestrator: Drives every adapter through the same fixed pipeline.

The orchestrator never branches on store kind. Everything store-specific
lives behind StoreAdapter.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from .models import Row, SchemaObject, StoreKind


class StoreAdapter(Protocol):
    """Protocol for one store's replication discipline.

    The orchestrator calls methods in a fixed order:
    1. clear() - Wipe every replica-managed object on the target
    2. list_schema_objects() - Introspect the source
    3. create_object() - For objects ranked at or below data_load_rank
    4. stream_rows() / write_rows() - For every object that holds rows
    5. create_object() - For objects ranked above data_load_rank
    6. count() / aggregate_counts() - Reconciliation
    7. close() - Always, success or failure

    Example implementations:
        - WideColumnAdapter: Cassandra keyspaces, types, tables, counters
        - RelationalAdapter: One PostgreSQL database pair
    """

    kind: StoreKind
    name: str
    data_load_rank: int

    def clear(self) -> None:
        """Drop every replica-managed object on the target.

        Must be a no-op on an already-empty target, and must remove
        dependent objects before the objects they depend on.
        """
        ...

    def list_schema_objects(self) -> list[SchemaObject]:
        """Return source schema objects ordered by dependency_rank.

        Built-in and system namespaces are excluded.
        """
        ...

    def create_object(self, obj: SchemaObject) -> None:
        """Issue the store-native creation call on the target.

        Raises:
            SchemaConflictError: If the object already exists on the target
        """
        ...

    def stream_rows(self, container: SchemaObject) -> Iterator[Row]:
        """Lazily read every row of a container from the source.

        The iterator is finite and not restartable; call again to re-read.
        """
        ...

    def write_rows(self, container: SchemaObject, rows: Iterable[Row]) -> int:
        """Write rows to the target, preserving each row's identity key.

        Returns:
            Number of rows written

        Raises:
            DataIntegrityError: If the target rejects a write
        """
        ...

    def count(self, container: SchemaObject) -> tuple[int, int]:
        """Return (source_count, target_count) for one container."""
        ...

    def aggregate_counts(self) -> dict[str, tuple[int, int]]:
        """Return store-specific aggregate (source, target) counts."""
        ...

    def close(self) -> None:
        """Release source and target connections."""
        ...


class NotificationSink(Protocol):
    """Receives one coarse outcome message per store and stage group."""

    def notify(self, message: str) -> None:
        """Deliver a message. Must never raise."""
        ...
