"""
Tests for environment-based store configuration.
"""

from unittest.mock import patch

import pytest

from env_resync.config import (
    DEFAULT_PAGE_SIZE,
    load_postgres_settings,
    load_settings,
    load_telegram_settings,
)
from env_resync.exceptions import ConfigurationError
from env_resync.models import StoreKind
from env_resync.utils import InvalidPassPathError


def _sides(prefix: str, **extra: str) -> dict[str, str]:
    env = {
        f"{prefix}_SOURCE_HOST": "source.internal",
        f"{prefix}_TARGET_HOST": "target.internal",
    }
    env.update(extra)
    return env


@pytest.mark.unit
class TestStoreSettings:
    def test_cassandra_defaults(self) -> None:
        settings = load_settings(StoreKind.WIDE_COLUMN, _sides("CASSANDRA", CASSANDRA_SOURCE_DATACENTER="dc1"))

        assert settings.source.host == "source.internal"
        assert settings.source.port == 9042
        assert settings.source.datacenter == "dc1"
        assert settings.replication_factor == 1
        assert settings.ssl_validate is True

    def test_missing_variables_are_all_named(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            load_settings(StoreKind.GRAPH, {})

        assert "GREMLIN_SOURCE_HOST" in str(exc_info.value)
        assert "GREMLIN_TARGET_HOST" in str(exc_info.value)

    def test_ssl_validation_can_be_disabled(self) -> None:
        settings = load_settings(StoreKind.GRAPH, _sides("GREMLIN", SSL_VALIDATE="false"))

        assert settings.ssl_validate is False

    def test_non_integer_port_is_rejected(self) -> None:
        with pytest.raises(ConfigurationError, match="PG_SOURCE_PORT"):
            load_postgres_settings(
                _sides("PG", PG_SOURCE_PORT="five", PG_SOURCE_DATABASES="app", PG_TARGET_DATABASES="app")
            )

    def test_postgres_databases_are_paired_by_position(self) -> None:
        settings = load_postgres_settings(
            _sides("PG", PG_SOURCE_DATABASES="app, billing", PG_TARGET_DATABASES="app_stage,billing_stage")
        )

        assert settings.database_pairs == [("app", "app_stage"), ("billing", "billing_stage")]

    def test_postgres_database_lists_must_match_in_length(self) -> None:
        with pytest.raises(ConfigurationError, match="paired by position"):
            load_postgres_settings(_sides("PG", PG_SOURCE_DATABASES="a,b", PG_TARGET_DATABASES="a"))

    def test_elastic_accepts_cloud_id_instead_of_host(self) -> None:
        env = {
            "ELASTIC_SOURCE_CLOUD_ID": "source:abc",
            "ELASTIC_TARGET_HOST": "https://target:9200",
            "ELASTIC_TARGET_API_KEY": "key",
            "ELASTIC_INDICES": "products,orders",
        }

        settings = load_settings(StoreKind.SEARCH, env)

        assert settings.source.host == "source:abc"
        assert settings.target.api_key == "key"
        assert settings.indices == ("products", "orders")
        assert settings.page_size == DEFAULT_PAGE_SIZE

    def test_elastic_requires_index_allow_list(self) -> None:
        env = {"ELASTIC_SOURCE_HOST": "https://s", "ELASTIC_TARGET_HOST": "https://t"}

        with pytest.raises(ConfigurationError, match="ELASTIC_INDICES"):
            load_settings(StoreKind.SEARCH, env)

    def test_mongo_database_allow_list_is_optional(self) -> None:
        env = {"MONGO_SOURCE_URI": "mongodb://s", "MONGO_TARGET_URI": "mongodb://t"}

        settings = load_settings(StoreKind.DOCUMENT, env)

        assert settings.databases == ()


@pytest.mark.unit
class TestPasswords:
    def test_environment_password_wins_over_pass(self) -> None:
        env = _sides(
            "GREMLIN",
            GREMLIN_SOURCE_PASSWORD="from-env",
            GREMLIN_SOURCE_PASSWORD_PASS_PATH="stores/gremlin",
        )

        with patch("env_resync.config.utils.get_pass_value") as mock_pass:
            settings = load_settings(StoreKind.GRAPH, env)

        assert settings.source.password == "from-env"
        mock_pass.assert_not_called()

    def test_password_is_read_from_pass(self) -> None:
        env = _sides("GREMLIN", GREMLIN_TARGET_PASSWORD_PASS_PATH="stores/gremlin-target")

        with patch("env_resync.config.utils.get_pass_value", return_value="secret") as mock_pass:
            settings = load_settings(StoreKind.GRAPH, env)

        assert settings.target.password == "secret"
        mock_pass.assert_called_once_with("stores/gremlin-target")

    def test_pass_failure_becomes_configuration_error(self) -> None:
        env = _sides("GREMLIN", GREMLIN_TARGET_PASSWORD_PASS_PATH="missing/entry")

        with (
            patch("env_resync.config.utils.get_pass_value", side_effect=InvalidPassPathError("not found")),
            pytest.raises(ConfigurationError, match="pass"),
        ):
            load_settings(StoreKind.GRAPH, env)


@pytest.mark.unit
class TestTelegramSettings:
    def test_disabled_without_both_variables(self) -> None:
        assert load_telegram_settings({"TG_BOT_API_KEY": "key"}) is None

    def test_enabled_with_both_variables(self) -> None:
        settings = load_telegram_settings({"TG_BOT_API_KEY": "key", "TG_BOT_CHAT_ID": "42"})

        assert settings is not None
        assert settings.chat_id == "42"
