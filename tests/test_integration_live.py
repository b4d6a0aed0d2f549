"""
Integration tests against live source and target stores.

These tests WIPE the configured target stores. They only run when
RESYNC_INTEGRATION=1 is set and the store's variables (see config.py) are
present; otherwise each store's test is skipped.

Any logged warning, including a count mismatch, fails the test.
"""

import json
import os
from pathlib import Path

import pytest

from env_resync.config import load_settings
from env_resync.exceptions import ConfigurationError
from env_resync.models import StoreKind
from env_resync.orchestrator import Orchestrator


@pytest.fixture
def configured_store(request: pytest.FixtureRequest) -> StoreKind:
    """Skip unless integration runs are enabled and the store is configured."""
    kind: StoreKind = request.param
    if os.environ.get("RESYNC_INTEGRATION") != "1":
        pytest.skip("Set RESYNC_INTEGRATION=1 to run against live stores")
    try:
        load_settings(kind)
    except ConfigurationError as e:
        pytest.skip(str(e))
    return kind


@pytest.mark.integration
@pytest.mark.parametrize("configured_store", list(StoreKind), indirect=True, ids=[k.value for k in StoreKind])
def test_resync_reconciles(configured_store: StoreKind, tmp_path: Path) -> None:
    orchestrator = Orchestrator(tmp_path)

    result = orchestrator.run([configured_store])

    outcome = result.outcomes[configured_store]
    assert outcome.success, f"{outcome.failed_stage}: {outcome.error}"
    assert outcome.mismatches == []

    report = json.loads((tmp_path / f"{configured_store.value}-counts.json").read_text())
    assert all(entry["match"] for entry in report["objects"].values())
    assert all(entry["match"] for entry in report["aggregates"].values())


@pytest.mark.integration
@pytest.mark.parametrize("configured_store", list(StoreKind), indirect=True, ids=[k.value for k in StoreKind])
def test_second_run_is_identical(configured_store: StoreKind, tmp_path: Path) -> None:
    """Clearing before copying makes a repeated run land on the same counts."""
    first = Orchestrator(tmp_path / "first").run([configured_store]).outcomes[configured_store]
    second = Orchestrator(tmp_path / "second").run([configured_store]).outcomes[configured_store]

    assert first.success
    assert second.success
    assert [(e.namespace, e.object_name, e.target_count) for e in first.entries] == [
        (e.namespace, e.object_name, e.target_count) for e in second.entries
    ]
