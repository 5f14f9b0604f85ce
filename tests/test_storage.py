import json

import pytest

from field import compile_source, generate_field
from storage import FunctionStore


@pytest.fixture
def store(tmp_path):
    return FunctionStore(str(tmp_path / "saved" / "functions.json"))


def test_missing_file_is_an_empty_store(store):
    assert store.names() == []


def test_save_and_load_record(store):
    record = store.save("  swirl ", "def get_velocity(x, y):\n    return (\n        x,\n        y,\n    )\n")
    assert record['name'] == "swirl"
    assert set(record) == {'name', 'code', 'savedAt'}
    loaded = store.load("swirl")
    assert loaded == record


def test_saving_the_same_name_overwrites(store):
    store.save("a", "first")
    store.save("a", "second")
    assert store.names() == ["a"]
    assert store.load("a")['code'] == "second"


def test_names_are_sorted_and_delete_removes(store):
    for name in ("b", "c", "a"):
        store.save(name, "code")
    assert store.names() == ["a", "b", "c"]
    assert store.delete("b") is True
    assert store.delete("b") is False
    assert store.names() == ["a", "c"]


def test_unknown_name_raises_key_error(store):
    with pytest.raises(KeyError):
        store.load("nope")


@pytest.mark.parametrize("name, code", [("", "code"), ("   ", "code"), ("name", ""), ("name", None)])
def test_empty_name_or_code_is_rejected(store, name, code):
    with pytest.raises(ValueError):
        store.save(name, code)


def test_latest_returns_the_newest_record(store):
    with pytest.raises(KeyError):
        store.latest()
    store.save("old", "code")
    with open(store.path) as f:
        data = json.load(f)
    data['old']['savedAt'] = "2000-01-01T00:00:00+00:00"
    with open(store.path, 'w') as f:
        json.dump(data, f)
    store.save("new", "code")
    assert store.latest() == "new"


def test_malformed_file_is_reported(tmp_path):
    path = tmp_path / "functions.json"
    path.write_text("{not json")
    with pytest.raises(json.JSONDecodeError):
        FunctionStore(str(path)).names()

    path.write_text("[1, 2, 3]")
    with pytest.raises(ValueError):
        FunctionStore(str(path)).names()


def test_reloaded_record_compiles_to_the_same_field(store):
    field = generate_field(31337, "function")
    store.save("keeper", field.source)

    reopened = FunctionStore(store.path)
    rebuilt = compile_source(reopened.load("keeper")['code'])
    assert rebuilt.source == field.source
    assert (rebuilt.expr_x, rebuilt.expr_y) == (field.expr_x, field.expr_y)
