"""
Pytest configuration shared by all tests.

Integration tests run the resync against live stores and must finish
without a WARNING from any ``env_resync`` logger: a count mismatch or a
skipped allow-list entry fails them. Unit tests log warnings freely.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, override

import pytest

if TYPE_CHECKING:
    from collections.abc import Generator

RESYNC_LOGGER = "env_resync"

_resync_warnings = pytest.StashKey[list[logging.LogRecord]]()


class ResyncWarningCollector(logging.Handler):
    """Keeps every WARNING-or-worse record emitted under the env_resync logger."""

    def __init__(self, records: list[logging.LogRecord]) -> None:
        super().__init__(level=logging.WARNING)
        self.records: list[logging.LogRecord] = records

    @override
    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(record)


@pytest.fixture(autouse=True)
def collect_resync_warnings(request: pytest.FixtureRequest) -> Generator[None]:
    """Attach a collector to the package logger for integration tests only."""
    if request.node.get_closest_marker("integration") is None:
        yield
        return

    records: list[logging.LogRecord] = []
    request.node.stash[_resync_warnings] = records
    handler = ResyncWarningCollector(records)
    package_logger = logging.getLogger(RESYNC_LOGGER)
    package_logger.addHandler(handler)
    try:
        yield
    finally:
        package_logger.removeHandler(handler)


@pytest.hookimpl(hookwrapper=True)
def pytest_runtest_makereport(item: pytest.Item, call: pytest.CallInfo[None]) -> Generator[None]:  # type: ignore[misc]
    """Turn a passing integration test into a failure when the resync logged warnings."""
    outcome = yield
    report = outcome.get_result()
    records = item.stash.get(_resync_warnings, [])
    if call.when != "call" or not report.passed or not records:
        return

    lines = "\n".join(f"  - {r.levelname} {r.name}: {r.getMessage()}" for r in records)
    report.outcome = "failed"
    report.longrepr = f"{len(records)} warning(s) from {RESYNC_LOGGER} during an integration test:\n{lines}"
