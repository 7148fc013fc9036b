"""Tests for council/store.py."""

from pathlib import Path

import pytest

from council.store import QUESTION_AT_START_KEY, USER_QUESTION_KEY, JsonFileStore, KeyValueStore, MemoryStore


@pytest.fixture(params=["memory", "file"])
def any_store(request, tmp_path: Path):
    if request.param == "memory":
        return MemoryStore()
    return JsonFileStore(tmp_path / "state" / "state.json")


def test_get_missing_key(any_store):
    assert any_store.get(USER_QUESTION_KEY) is None


def test_set_get_remove(any_store):
    any_store.set(QUESTION_AT_START_KEY, "I can't sleep")
    assert any_store.get(QUESTION_AT_START_KEY) == "I can't sleep"
    any_store.remove(QUESTION_AT_START_KEY)
    assert any_store.get(QUESTION_AT_START_KEY) is None


def test_remove_missing_key_is_noop(any_store):
    any_store.remove(USER_QUESTION_KEY)


def test_file_store_survives_new_instance(tmp_path: Path):
    path = tmp_path / "state.json"
    JsonFileStore(path).set(USER_QUESTION_KEY, "half typed")
    assert JsonFileStore(path).get(USER_QUESTION_KEY) == "half typed"


def test_file_store_ignores_corrupt_file(tmp_path: Path):
    path = tmp_path / "state.json"
    path.write_text("{not json", encoding="utf-8")
    store = JsonFileStore(path)
    assert store.get(USER_QUESTION_KEY) is None
    store.set(USER_QUESTION_KEY, "fresh")
    assert store.get(USER_QUESTION_KEY) == "fresh"


def test_file_store_ignores_non_string_values(tmp_path: Path):
    path = tmp_path / "state.json"
    path.write_text('{"multiAI_userQuestion": 12, "multiAI_questionAtStart": "kept"}', encoding="utf-8")
    store = JsonFileStore(path)
    assert store.get(USER_QUESTION_KEY) is None
    assert store.get(QUESTION_AT_START_KEY) == "kept"


def test_file_store_write_failure_is_logged(tmp_path: Path):
    blocker = tmp_path / "blocker"
    blocker.write_text("x", encoding="utf-8")
    store = JsonFileStore(blocker / "state.json")
    store.set(USER_QUESTION_KEY, "lost")
    assert store.get(USER_QUESTION_KEY) is None


def test_stores_satisfy_key_value_protocol(any_store):
    assert isinstance(any_store, KeyValueStore)
