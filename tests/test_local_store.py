"""
tests/test_local_store.py -- Unit tests for storage/local.py (LocalStore).

Uses an in-memory SQLite database so no files are written.
"""

from __future__ import annotations

import pytest

from storage.errors import StorageError
from storage.local import LocalStore


def test_get_missing_key_returns_none(local_store):
    assert local_store.get_item("nope") is None


def test_set_then_get_returns_decoded_json(local_store):
    local_store.set_item("k", {"a": [1, 2], "b": None})
    assert local_store.get_item("k") == {"a": [1, 2], "b": None}


def test_last_write_wins(local_store):
    local_store.set_item("k", 1)
    local_store.set_item("k", 2)
    assert local_store.get_item("k") == 2


def test_remove_item(local_store):
    local_store.set_item("k", "v")
    local_store.remove_item("k")
    assert local_store.get_item("k") is None


def test_remove_absent_key_is_noop(local_store):
    local_store.remove_item("never-set")


def test_unserializable_value_raises_storage_error(local_store):
    with pytest.raises(StorageError):
        local_store.set_item("k", object())


def test_corrupt_value_raises_storage_error(local_store):
    local_store._conn.execute(
        "INSERT INTO local_storage (key, value, updated_at) VALUES ('bad', '{not json', 0)"
    )
    with pytest.raises(StorageError):
        local_store.get_item("bad")


def test_closed_store_raises_storage_error():
    store = LocalStore(":memory:")
    store.close()
    with pytest.raises(StorageError):
        store.get_item("k")
    with pytest.raises(StorageError):
        store.set_item("k", 1)
    with pytest.raises(StorageError):
        store.remove_item("k")


def test_values_survive_reopen(tmp_path):
    path = tmp_path / "local.db"
    store = LocalStore(path)
    store.set_item("last_activity", 1700000000.5)
    store.close()

    reopened = LocalStore(path)
    assert reopened.get_item("last_activity") == 1700000000.5
    reopened.close()
