"""
Reconciliation report accumulation and persistence.
"""

from __future__ import annotations

import json
import logging
import threading
from typing import TYPE_CHECKING, Any

from .models import ReconciliationEntry

if TYPE_CHECKING:
    from pathlib import Path

    from .models import StoreKind

logger: logging.Logger = logging.getLogger(__name__)


class ReconciliationReporter:
    """Collects per-object source/target counts for one store and writes them as JSON.

    The report file is ``<output_dir>/<store>-counts.json`` and is
    overwritten on every run. Entries are immutable once recorded; recording
    the same object twice keeps the first entry.
    """

    def __init__(self, kind: StoreKind, output_dir: Path) -> None:
        self.kind: StoreKind = kind
        self.path: Path = output_dir / f"{kind.value}-counts.json"
        self._entries: dict[str, ReconciliationEntry] = {}
        self._aggregates: dict[str, tuple[int, int]] = {}
        self._lock: threading.Lock = threading.Lock()

    @property
    def entries(self) -> list[ReconciliationEntry]:
        with self._lock:
            return list(self._entries.values())

    @property
    def mismatches(self) -> list[ReconciliationEntry]:
        return [e for e in self.entries if not e.match]

    def record(self, namespace: str, object_name: str, counts: tuple[int, int]) -> ReconciliationEntry:
        """Record the (source, target) counts of one object."""
        entry = ReconciliationEntry(namespace, object_name, int(counts[0]), int(counts[1]))
        key = f"{namespace}/{object_name}"
        with self._lock:
            if key in self._entries:
                logger.debug(f"Ignoring duplicate reconciliation entry for {key}")
                return self._entries[key]
            self._entries[key] = entry

        if entry.match:
            logger.debug(f"{self.kind.value} {key}: {entry.source_count} == {entry.target_count}")
        else:
            logger.warning(
                f"{self.kind.value} {key}: count mismatch, source {entry.source_count}, target {entry.target_count}"
            )
        return entry

    def record_aggregate(self, name: str, counts: tuple[int, int]) -> None:
        with self._lock:
            self._aggregates[name] = (int(counts[0]), int(counts[1]))

    def to_dict(self) -> dict[str, Any]:
        with self._lock:
            objects = {
                key: {
                    "sourceCount": e.source_count,
                    "targetCount": e.target_count,
                    "match": e.match,
                }
                for key, e in self._entries.items()
            }
            aggregates = {
                name: {"sourceCount": source, "targetCount": target, "match": source == target}
                for name, (source, target) in self._aggregates.items()
            }
        return {"store": self.kind.value, "objects": objects, "aggregates": aggregates}

    def discard(self) -> None:
        """Remove the report of a previous run so it cannot pass for this one."""
        if self.path.exists():
            self.path.unlink()
            logger.debug(f"Removed stale {self.kind.value} reconciliation report {self.path}")

    def write(self) -> Path:
        """Persist the report, replacing any report from a previous run."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2)
        logger.info(f"Wrote {self.kind.value} reconciliation report to {self.path}")
        return self.path
