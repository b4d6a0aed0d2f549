"""
Tests for the MongoDB document adapter.
"""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
from pymongo.errors import BulkWriteError, CollectionInvalid, OperationFailure

from env_resync.config import Endpoint, MongoSettings
from env_resync.exceptions import DataIntegrityError, SchemaConflictError, StoreConnectionError
from env_resync.models import CollectionDefinition, ObjectKind, Row, SchemaObject
from env_resync.mongo_store import DocumentAdapter, connect

SETTINGS = MongoSettings(source=Endpoint("mongodb://source"), target=Endpoint("mongodb://target"))


def _collection(database: str = "shop", name: str = "orders") -> SchemaObject:
    return SchemaObject(ObjectKind.COLLECTION, database, name, CollectionDefinition())


@pytest.mark.unit
class TestDocumentAdapter:
    def test_collections_are_enumerated_on_the_source(self) -> None:
        source = MagicMock()
        target = MagicMock()
        source.list_database_names.return_value = ["admin", "config", "local", "shop", "crm"]
        source.__getitem__.return_value.list_collection_names.return_value = ["orders", "system.views", "carts"]
        adapter = DocumentAdapter(source, target)

        objects = adapter.list_schema_objects()

        assert [o.qualified_name for o in objects] == [
            "shop/carts",
            "shop/orders",
            "crm/carts",
            "crm/orders",
        ]
        target.list_database_names.assert_not_called()

    def test_allow_list_limits_databases(self, caplog: pytest.LogCaptureFixture) -> None:
        source = MagicMock()
        source.list_database_names.return_value = ["shop", "crm"]
        source.__getitem__.return_value.list_collection_names.return_value = ["c"]
        adapter = DocumentAdapter(source, MagicMock(), databases=["crm", "billing"])

        objects = adapter.list_schema_objects()

        assert [o.namespace for o in objects] == ["crm"]
        assert "billing is allow-listed but missing" in caplog.text

    def test_clear_drops_non_system_databases(self) -> None:
        target = MagicMock()
        target.list_database_names.return_value = ["admin", "local", "config", "shop", "crm"]
        adapter = DocumentAdapter(MagicMock(), target)

        adapter.clear()

        assert [c.args[0] for c in target.drop_database.call_args_list] == ["shop", "crm"]

    def test_clear_on_empty_target_is_noop(self) -> None:
        target = MagicMock()
        target.list_database_names.return_value = ["admin", "local", "config"]
        adapter = DocumentAdapter(MagicMock(), target)

        adapter.clear()
        adapter.clear()

        target.drop_database.assert_not_called()

    def test_existing_collection_is_a_schema_conflict(self) -> None:
        target = MagicMock()
        target.__getitem__.return_value.create_collection.side_effect = CollectionInvalid("exists")
        adapter = DocumentAdapter(MagicMock(), target)

        with pytest.raises(SchemaConflictError):
            adapter.create_object(_collection())

    def test_documents_keep_their_ids(self) -> None:
        target = MagicMock()
        collection = target.__getitem__.return_value.__getitem__.return_value
        adapter = DocumentAdapter(MagicMock(), target, batch_size=1000)
        rows = [Row({"_id": f"o{i}", "total": i}, ("_id",)) for i in range(3)]

        written = adapter.write_rows(_collection(), rows)

        assert written == 3
        collection.insert_many.assert_called_once_with(
            [{"_id": "o0", "total": 0}, {"_id": "o1", "total": 1}, {"_id": "o2", "total": 2}]
        )

    def test_one_bulk_insert_per_collection(self) -> None:
        target = MagicMock()
        collection = target.__getitem__.return_value.__getitem__.return_value
        adapter = DocumentAdapter(MagicMock(), target, batch_size=10)
        rows = (Row({"_id": i}, ("_id",)) for i in range(250))

        written = adapter.write_rows(_collection(), rows)

        assert written == 250
        collection.insert_many.assert_called_once()
        assert len(collection.insert_many.call_args.args[0]) == 250

    def test_empty_collection_skips_insert(self) -> None:
        target = MagicMock()
        collection = target.__getitem__.return_value.__getitem__.return_value
        adapter = DocumentAdapter(MagicMock(), target)

        assert adapter.write_rows(_collection(), []) == 0
        collection.insert_many.assert_not_called()

    def test_rejected_insert_is_a_data_integrity_error(self) -> None:
        target = MagicMock()
        collection = target.__getitem__.return_value.__getitem__.return_value
        collection.insert_many.side_effect = BulkWriteError({"writeErrors": [{"code": 11000}]})
        adapter = DocumentAdapter(MagicMock(), target)

        with pytest.raises(DataIntegrityError):
            adapter.write_rows(_collection(), [Row({"_id": 1}, ("_id",))])

    def test_stream_rows_closes_cursor(self) -> None:
        source = MagicMock()
        cursor = source.__getitem__.return_value.__getitem__.return_value.find.return_value
        cursor.__iter__.return_value = iter([{"_id": 1}, {"_id": 2}])
        adapter = DocumentAdapter(source, MagicMock())

        rows = list(adapter.stream_rows(_collection()))

        assert [r.identity for r in rows] == [(1,), (2,)]
        cursor.close.assert_called_once()

    def test_count_documents_on_both_sides(self) -> None:
        source = MagicMock()
        target = MagicMock()
        source.__getitem__.return_value.__getitem__.return_value.count_documents.return_value = 7
        target.__getitem__.return_value.__getitem__.return_value.count_documents.return_value = 7
        adapter = DocumentAdapter(source, target)

        assert adapter.count(_collection()) == (7, 7)


@pytest.mark.unit
class TestConnect:
    def test_authentication_failure_is_a_connection_error(self) -> None:
        client = MagicMock()
        client.admin.command.side_effect = OperationFailure("Authentication failed.", code=18)

        with (
            patch("env_resync.mongo_store.MongoClient", return_value=client),
            pytest.raises(StoreConnectionError, match="Authentication failed"),
        ):
            connect(Endpoint("mongodb://source"), ssl_validate=True)

        client.close.assert_called_once()

    def test_both_clients_are_closed_when_the_target_rejects_login(self) -> None:
        source = MagicMock()
        target = MagicMock()
        target.admin.command.side_effect = OperationFailure("Authentication failed.", code=18)

        with (
            patch("env_resync.mongo_store.MongoClient", side_effect=[source, target]),
            pytest.raises(StoreConnectionError),
        ):
            DocumentAdapter.from_settings(SETTINGS)

        source.close.assert_called_once()
        target.close.assert_called_once()

    def test_source_is_closed_on_any_target_error(self) -> None:
        source = MagicMock()

        with (
            patch("env_resync.mongo_store.MongoClient", side_effect=[source, RuntimeError("boom")]),
            pytest.raises(RuntimeError),
        ):
            DocumentAdapter.from_settings(SETTINGS)

        source.close.assert_called_once()
