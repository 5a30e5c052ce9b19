"""Tests for the JSON-file key/value store."""

import json

from pantry_scanner.adapters.file_key_value_store import FileKeyValueStore


def test_file_store_round_trip(tmp_path) -> None:
    store = FileKeyValueStore.create(str(tmp_path / "nested" / "state.json"))

    assert store.get_item("pendingScan") is None
    store.set_item("pendingScan", '{"step": "reviewing"}')
    store.set_item("other", "value")

    reopened = FileKeyValueStore.create(str(tmp_path / "nested" / "state.json"))
    assert reopened.get_item("pendingScan") == '{"step": "reviewing"}'

    reopened.remove_item("pendingScan")
    assert json.loads((tmp_path / "nested" / "state.json").read_text()) == {
        "other": "value"
    }
    assert not (tmp_path / "nested" / "state.json.tmp").exists()


def test_file_store_ignores_corrupt_file(tmp_path) -> None:
    path = tmp_path / "state.json"
    path.write_text("{oops", encoding="utf-8")
    store = FileKeyValueStore.create(str(path))

    assert store.get_item("pendingScan") is None
    store.set_item("pendingScan", "fresh")
    assert store.get_item("pendingScan") == "fresh"


def test_file_store_ignores_undecodable_file(tmp_path) -> None:
    path = tmp_path / "state.json"
    path.write_bytes(b"\xff\xfe\x00garbage")
    store = FileKeyValueStore.create(str(path))

    assert store.get_item("pendingScan") is None
    store.remove_item("pendingScan")
    store.set_item("pendingScan", "fresh")

    assert json.loads(path.read_text(encoding="utf-8")) == {"pendingScan": "fresh"}
