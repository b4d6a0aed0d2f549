"""
Tests for reconciliation report accumulation and persistence.
"""

import json
import logging
from pathlib import Path

import pytest

from env_resync.models import StoreKind
from env_resync.reporter import ReconciliationReporter


@pytest.mark.unit
class TestReconciliationReporter:
    def test_report_shape(self, tmp_path: Path) -> None:
        reporter = ReconciliationReporter(StoreKind.RELATIONAL, tmp_path)
        reporter.record("app|app_copy", "public.users", (10, 10))
        reporter.record("app|app_copy", "public.orders", (5, 4))
        reporter.record_aggregate("app|app_copy/sequences", (3, 3))

        path = reporter.write()

        assert path == tmp_path / "postgres-counts.json"
        report = json.loads(path.read_text())
        assert report == {
            "store": "postgres",
            "objects": {
                "app|app_copy/public.users": {"sourceCount": 10, "targetCount": 10, "match": True},
                "app|app_copy/public.orders": {"sourceCount": 5, "targetCount": 4, "match": False},
            },
            "aggregates": {
                "app|app_copy/sequences": {"sourceCount": 3, "targetCount": 3, "match": True},
            },
        }

    def test_entries_are_immutable_once_recorded(self, tmp_path: Path) -> None:
        reporter = ReconciliationReporter(StoreKind.DOCUMENT, tmp_path)
        first = reporter.record("shop", "orders", (2, 2))
        second = reporter.record("shop", "orders", (2, 0))

        assert second is first
        assert reporter.mismatches == []

    def test_mismatch_is_logged_as_warning(self, tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
        reporter = ReconciliationReporter(StoreKind.WIDE_COLUMN, tmp_path)

        with caplog.at_level(logging.WARNING):
            entry = reporter.record("metrics", "page_views", (3, 1))

        assert not entry.match
        assert "count mismatch" in caplog.text

    def test_write_overwrites_previous_report(self, tmp_path: Path) -> None:
        old = ReconciliationReporter(StoreKind.SEARCH, tmp_path)
        old.record("indices", "stale", (1, 1))
        old.write()

        new = ReconciliationReporter(StoreKind.SEARCH, tmp_path)
        new.record("indices", "fresh", (2, 2))
        new.write()

        report = json.loads((tmp_path / "elastic-counts.json").read_text())
        assert list(report["objects"]) == ["indices/fresh"]

    def test_write_creates_output_directory(self, tmp_path: Path) -> None:
        reporter = ReconciliationReporter(StoreKind.GRAPH, tmp_path / "nested" / "out")

        path = reporter.write()

        assert path.exists()
        assert json.loads(path.read_text())["objects"] == {}

    def test_discard_removes_previous_report(self, tmp_path: Path) -> None:
        ReconciliationReporter(StoreKind.DOCUMENT, tmp_path).write()
        reporter = ReconciliationReporter(StoreKind.DOCUMENT, tmp_path)

        reporter.discard()
        reporter.discard()

        assert not reporter.path.exists()
