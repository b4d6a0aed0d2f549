"""Resync orchestrator that drives every store through one fixed pipeline.

The Orchestrator is generic over StoreAdapter and never branches on store
kind. For each selected store it:

Stage "connect":
    - Load the store's settings and build its adapters (one per database
      pair for the relational store, one otherwise)

Stage "clear":
    - target.clear(): idempotent wipe of every replica-managed object

Stage "copy":
    - list_schema_objects() on the source, ordered by dependency_rank
    - create_object() for every object ranked at or below data_load_rank
    - stream_rows() -> write_rows() for every object that holds rows
    - create_object() for every object ranked above data_load_rank
      (relational indexes, constraints, functions and triggers)

Stage "verify":
    - count() for every object that holds rows, aggregate_counts()
    - The report is written even when counting fails part way

Failure Isolation
-----------------
An error in connect, clear or copy aborts that store without verifying
it. An error in any store never prevents the next store from running.
Count mismatches are findings in the report, not errors.

Every adapter is closed after its store finishes, success or failure.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Literal

from .exceptions import ResyncError
from .models import StoreKind
from .reporter import ReconciliationReporter
from .stores import build_adapters

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable
    from pathlib import Path

    from .models import ReconciliationEntry, SchemaObject
    from .protocols import NotificationSink, StoreAdapter

logger = logging.getLogger(__name__)

Stage = Literal["connect", "clear", "copy", "verify"]

DEFAULT_ORDER: tuple[StoreKind, ...] = (
    StoreKind.WIDE_COLUMN,
    StoreKind.GRAPH,
    StoreKind.RELATIONAL,
    StoreKind.SEARCH,
    StoreKind.DOCUMENT,
)


class StageError(ResyncError):
    """Wraps the first error of a store pipeline with the stage it happened in."""

    def __init__(self, stage: Stage, cause: BaseException) -> None:
        super().__init__(f"{stage} failed: {cause}")
        self.stage: Stage = stage
        self.cause: BaseException = cause


@dataclass
class StoreOutcome:
    """Result of one store's pipeline."""

    kind: StoreKind
    success: bool = True
    failed_stage: Stage | None = None
    error: str | None = None
    entries: list[ReconciliationEntry] = field(default_factory=list)
    report_path: Path | None = None

    @property
    def mismatches(self) -> list[ReconciliationEntry]:
        return [e for e in self.entries if not e.match]


@dataclass
class RunResult:
    """Result of a run across all selected stores."""

    outcomes: dict[StoreKind, StoreOutcome] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return all(o.success for o in self.outcomes.values())

    @property
    def failures(self) -> list[StoreOutcome]:
        return [o for o in self.outcomes.values() if not o.success]

    @property
    def mismatches(self) -> list[ReconciliationEntry]:
        return [e for o in self.outcomes.values() for e in o.mismatches]


def copy_schema(adapter: StoreAdapter, objects: Iterable[SchemaObject], *, deferred: bool) -> int:
    """Create schema objects on the target in dependency order.

    Args:
        adapter: Store adapter
        objects: Source schema objects, already ordered by dependency_rank
        deferred: False for objects created before the data load, True for after

    Returns:
        Number of objects created
    """
    created = 0
    for obj in objects:
        if (obj.dependency_rank > adapter.data_load_rank) != deferred:
            continue
        adapter.create_object(obj)
        created += 1
        logger.debug(f"{adapter.name}: created {obj.kind.value} {obj.qualified_name}")
    return created


def copy_data(adapter: StoreAdapter, objects: Iterable[SchemaObject]) -> int:
    """Stream rows of every row-holding object from source to target."""
    total = 0
    for container in objects:
        if not container.holds_rows:
            continue
        written = adapter.write_rows(container, adapter.stream_rows(container))
        total += written
        logger.debug(f"{adapter.name}: copied {written} rows into {container.qualified_name}")
    return total


def replicate(adapter: StoreAdapter) -> list[SchemaObject]:
    """Run clear, schema copy and data copy for one adapter.

    Returns:
        The schema objects discovered on the source, for reconciliation

    Raises:
        StageError: Wrapping the first error, tagged "clear" or "copy"
    """
    try:
        adapter.clear()
        logger.info(f"{adapter.name}: cleared target")
    except Exception as e:
        raise StageError("clear", e) from e

    try:
        objects = adapter.list_schema_objects()
        created = copy_schema(adapter, objects, deferred=False)
        rows = copy_data(adapter, objects)
        created += copy_schema(adapter, objects, deferred=True)
    except Exception as e:
        raise StageError("copy", e) from e

    logger.info(f"{adapter.name}: copied {created} schema objects and {rows} rows")
    return objects


def reconcile(
    adapter: StoreAdapter, objects: Iterable[SchemaObject], reporter: ReconciliationReporter
) -> list[ReconciliationEntry]:
    """Count every row-holding object on both sides and record the result."""
    entries = [
        reporter.record(obj.namespace, obj.name, adapter.count(obj)) for obj in objects if obj.holds_rows
    ]
    for name, counts in adapter.aggregate_counts().items():
        reporter.record_aggregate(name, counts)
    logger.info(f"{adapter.name}: counted {len(entries)} objects")
    return entries


class Orchestrator:
    """Runs the clear, copy and verify pipeline for each selected store.

    Usage:
        orchestrator = Orchestrator(Path("out"), notifier=TelegramNotifier(...))
        result = orchestrator.run({StoreKind.RELATIONAL, StoreKind.DOCUMENT})

    Stores share no state. With parallel=True they run concurrently, as do
    the per-database units of a store; each unit stays sequential.
    """

    def __init__(
        self,
        output_dir: Path,
        *,
        notifier: NotificationSink | None = None,
        adapter_factory: Callable[[StoreKind], list[StoreAdapter]] = build_adapters,
        parallel: bool = False,
    ) -> None:
        self.output_dir: Path = output_dir
        self._notifier: NotificationSink | None = notifier
        self._adapter_factory: Callable[[StoreKind], list[StoreAdapter]] = adapter_factory
        self.parallel: bool = parallel

    def run(self, stores: Iterable[StoreKind] | None = None) -> RunResult:
        selected = set(DEFAULT_ORDER if stores is None else stores)
        kinds = [kind for kind in DEFAULT_ORDER if kind in selected]
        result = RunResult()

        logger.info(f"Starting resync of {', '.join(k.value for k in kinds)}")
        if self.parallel and len(kinds) > 1:
            with ThreadPoolExecutor(max_workers=len(kinds), thread_name_prefix="resync") as pool:
                for outcome in pool.map(self.run_store, kinds):
                    result.outcomes[outcome.kind] = outcome
        else:
            for kind in kinds:
                result.outcomes[kind] = self.run_store(kind)

        failed = [o.kind.value for o in result.failures]
        if failed:
            logger.error(f"Resync finished with failures in: {', '.join(failed)}")
        else:
            logger.info("Resync finished successfully")
        return result

    def run_store(self, kind: StoreKind) -> StoreOutcome:
        """Run one store's pipeline. Never raises."""
        outcome = StoreOutcome(kind)
        reporter = ReconciliationReporter(kind, self.output_dir)
        try:
            reporter.discard()
            adapters = self._adapter_factory(kind)
        except Exception as e:
            logger.exception(f"{kind.value}: could not connect")
            self._fail(outcome, "connect", e)
            return outcome

        try:
            self._copy_and_verify(adapters, outcome, reporter)
        finally:
            for adapter in adapters:
                try:
                    adapter.close()
                except Exception:
                    logger.exception(f"{adapter.name}: failed to release connections")
        return outcome

    def _copy_and_verify(
        self, adapters: list[StoreAdapter], outcome: StoreOutcome, reporter: ReconciliationReporter
    ) -> None:
        kind = outcome.kind
        try:
            discovered = self._map(replicate, adapters)
        except StageError as e:
            logger.exception(f"{kind.value}: {e.stage} failed")
            self._fail(outcome, e.stage, e.cause)
            return
        self._notify(f"{kind.value}: copied successfully")

        try:
            self._map(lambda pair: reconcile(pair[0], pair[1], reporter), list(zip(adapters, discovered)))
        except Exception as e:
            logger.exception(f"{kind.value}: verify failed")
            self._fail(outcome, "verify", e)
        else:
            mismatches = len(reporter.mismatches)
            self._notify(f"{kind.value}: verified ({mismatches} mismatches)")
        finally:
            outcome.entries = reporter.entries
            try:
                outcome.report_path = reporter.write()
            except OSError as e:
                logger.exception(f"{kind.value}: could not write reconciliation report")
                self._fail(outcome, "verify", e)

    def _map(self, fn: Callable, items: list) -> list:
        """Apply fn to every item, concurrently when parallel. Re-raises the first error."""
        if not self.parallel or len(items) < 2:
            return [fn(item) for item in items]
        with ThreadPoolExecutor(max_workers=len(items), thread_name_prefix="resync-unit") as pool:
            futures = [pool.submit(fn, item) for item in items]
            return [future.result() for future in futures]

    def _fail(self, outcome: StoreOutcome, stage: Stage, error: BaseException) -> None:
        outcome.success = False
        outcome.failed_stage = stage
        outcome.error = str(error)
        group = "verify" if stage == "verify" else "copy"
        self._notify(f"{outcome.kind.value}: {group} error: {error}")

    def _notify(self, message: str) -> None:
        if self._notifier is not None:
            self._notifier.notify(message)
