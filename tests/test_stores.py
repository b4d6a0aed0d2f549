"""
Tests for building store adapters from the environment.
"""

from unittest.mock import Mock, patch

import pytest

from env_resync.exceptions import ConfigurationError, StoreConnectionError
from env_resync.models import StoreKind
from env_resync.stores import build_adapters

PG_ENV = {
    "PG_SOURCE_HOST": "pg-source",
    "PG_TARGET_HOST": "pg-target",
    "PG_SOURCE_DATABASES": "app,billing",
    "PG_TARGET_DATABASES": "app_stage,billing_stage",
}


@pytest.mark.unit
class TestBuildAdapters:
    def test_one_relational_adapter_per_database_pair(self) -> None:
        with patch("env_resync.stores.RelationalAdapter") as mock_adapter:
            adapters = build_adapters(StoreKind.RELATIONAL, PG_ENV)

        assert len(adapters) == 2
        pairs = [c.args[1:] for c in mock_adapter.from_settings.call_args_list]
        assert pairs == [("app", "app_stage"), ("billing", "billing_stage")]

    def test_built_adapters_are_closed_when_a_later_pair_fails(self) -> None:
        first = Mock()

        with (
            patch("env_resync.stores.RelationalAdapter") as mock_adapter,
            pytest.raises(StoreConnectionError),
        ):
            mock_adapter.from_settings.side_effect = [first, StoreConnectionError("billing unreachable")]
            build_adapters(StoreKind.RELATIONAL, PG_ENV)

        first.close.assert_called_once()

    def test_single_adapter_for_other_stores(self) -> None:
        env = {"MONGO_SOURCE_URI": "mongodb://s", "MONGO_TARGET_URI": "mongodb://t"}

        with patch("env_resync.stores.DocumentAdapter") as mock_adapter:
            adapters = build_adapters(StoreKind.DOCUMENT, env)

        assert adapters == [mock_adapter.from_settings.return_value]

    def test_configuration_errors_propagate(self) -> None:
        with pytest.raises(ConfigurationError):
            build_adapters(StoreKind.WIDE_COLUMN, {})
