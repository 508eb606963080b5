"""Tests for KeyValueStore: JSON persistence and best-effort failure handling."""

import pytest

from companion_chat.models import ChatTurn
from companion_chat.storage import STORAGE_KEYS, KeyValueStore


def test_set_then_get(store):
    assert store.set("appSettings", {"theme": "dark"}) is True
    assert store.get("appSettings") == {"theme": "dark"}


def test_values_survive_new_instance(store):
    store.set("characters", [{"id": "c1", "name": "小雪"}])
    again = KeyValueStore(store.base_path)
    assert again.get("characters") == [{"id": "c1", "name": "小雪"}]


def test_missing_key_returns_default(store):
    assert store.get("nothing") is None
    assert store.get("nothing", []) == []


def test_unicode_written_unescaped(store):
    store.set("greeting", "你好")
    raw = (store.base_path / "kv" / "greeting.json").read_text(encoding="utf-8")
    assert "你好" in raw


def test_corrupt_file_returns_default(store):
    (store.base_path / "kv" / "broken.json").write_text("{not json", encoding="utf-8")
    assert store.get("broken", {"fallback": True}) == {"fallback": True}


def test_unserialisable_value_returns_false(store):
    assert store.set("bad", {"value": object()}) is False
    assert store.get("bad") is None


@pytest.mark.parametrize("key", ["../escape", "a/b", "", ".hidden"])
def test_invalid_key_rejected(store, key):
    with pytest.raises(ValueError):
        store.get(key)


def test_delete(store):
    store.set("conversations", [])
    assert store.delete("conversations") is True
    assert store.delete("conversations") is False
    assert store.get("conversations") is None


def test_keys(store):
    store.set("b", 1)
    store.set("a", 2)
    assert store.keys() == ["a", "b"]


def test_export_data_covers_application_keys(store):
    store.set(STORAGE_KEYS["global_prompts"], [])
    exported = store.export_data()
    assert set(exported) == set(STORAGE_KEYS.values())
    assert exported["globalPrompts"] == []
    assert exported["aiComplianceStats"] is None


def test_models_round_trip(store):
    turns = [ChatTurn(role="user", content="你好")]
    assert store.set_models("turns", turns) is True
    assert store.get_models("turns", ChatTurn) == turns


def test_get_models_skips_invalid_entries(store):
    store.set("turns", [{"role": "user", "content": "ok"}, {"role": "robot"}])
    assert [t.content for t in store.get_models("turns", ChatTurn)] == ["ok"]


def test_get_models_non_list(store):
    store.set("turns", {"role": "user"})
    assert store.get_models("turns", ChatTurn) == []
    assert store.get_models("missing", ChatTurn) == []
