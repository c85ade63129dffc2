from __future__ import annotations

import json
from pathlib import Path

import pytest

from lightdb.crypto import CryptoBox
from lightdb.errors import DecryptionError, InvalidKeyError, InvalidValueError, MissingEncryptionKeyError
from lightdb.file_store import AtomicFileStore
from lightdb.tree import MISSING, DocumentTree, Shape, deep_equal, shape_of, to_plain

KEY = "0123456789abcdef0123456789abcdef"


def test_set_get_roundtrip():
    tree = DocumentTree()
    for key, value in [("a", 1), ("b.c", "x"), ("d.e.f", [1, {"g": None}]), ("h", {"i": 2.5})]:
        assert tree.set(key, value) is True
        assert tree.get(key) == value
        assert tree.has(key)


def test_missing_path_is_absent_not_an_error():
    tree = DocumentTree()
    tree.set("a.b", 1)
    assert tree.get("a.c") is None
    assert tree.get("a.c", default="fallback") == "fallback"
    assert tree.lookup("x.y.z") is MISSING
    assert tree.lookup("a.b.c") is MISSING
    assert not tree.has("a.b.c")


def test_null_value_is_present():
    tree = DocumentTree()
    tree.set("a", None)
    assert tree.has("a")
    assert tree.get("a", default="d") is None


def test_sequences_are_indexable():
    tree = DocumentTree()
    tree.set("users", [{"name": "ann"}, {"name": "bob"}])
    assert tree.get("users.1.name") == "bob"
    assert not tree.has("users.2")


def test_invalid_keys_raise():
    tree = DocumentTree()
    for key in ["", ".a", "a.", "a..b"]:
        with pytest.raises(InvalidKeyError):
            tree.get(key)
        with pytest.raises(InvalidKeyError):
            tree.set(key, 1)


def test_copy_on_write_keeps_earlier_views_intact():
    tree = DocumentTree()
    tree.set("a.b", 1)
    captured = tree.get("a")
    tree.set("a.c", 2)
    assert captured == {"b": 1}
    assert tree.get("a") == {"b": 1, "c": 2}

    nested = tree.get("a")
    tree.remove("a.b")
    assert nested == {"b": 1, "c": 2}
    assert tree.get("a") == {"c": 2}


def test_set_replaces_scalar_ancestor_with_mapping():
    tree = DocumentTree()
    tree.set("a", 5)
    tree.set("a.b", 1)
    assert tree.get("a") == {"b": 1}


def test_set_copies_caller_values():
    tree = DocumentTree()
    value = {"items": [1, 2]}
    tree.set("v", value)
    value["items"].append(3)
    assert tree.get("v") == {"items": [1, 2]}


def test_identical_set_is_noop(tmp_path: Path):
    store = AtomicFileStore(tmp_path / "db.json")
    tree = DocumentTree(store)
    assert tree.set("a.b", {"x": [1, 2]}) is True
    store.flush(5)
    writes = store.physical_writes

    assert tree.set("a.b", {"x": [1, 2]}) is False
    store.flush(5)
    assert store.physical_writes == writes
    store.close()


def test_noop_check_respects_json_types():
    tree = DocumentTree()
    tree.set("a", 1)
    assert tree.set("a", True) is True
    assert tree.get("a") is True
    assert tree.set("a", 1.0) is True
    assert isinstance(tree.get("a"), float)


def test_remove():
    tree = DocumentTree()
    tree.set("a.b", 1)
    tree.set("a.c", 2)
    assert tree.remove("a.b") is True
    assert tree.get("a.b") is None
    assert not tree.has("a.b")
    assert tree.get("a") == {"c": 2}
    assert tree.remove("never.there") is True


def test_remove_inside_sequence_element():
    tree = DocumentTree()
    tree.set("list", [{"k": 1, "j": 2}])
    before = tree.get("list")
    assert tree.remove("list.0.k") is True
    assert tree.get("list") == [{"j": 2}]
    assert before == [{"k": 1, "j": 2}]


def test_add_and_subtract():
    tree = DocumentTree()
    assert tree.add_or_subtract("n", 5) == 5
    assert tree.add_or_subtract("n", 2.5) == 7.5
    assert tree.add_or_subtract("n", 1, subtract=True) == 6.5
    assert tree.get("n") == 6.5


@pytest.mark.parametrize("delta", ["1", None, True, float("inf"), float("nan")])
def test_add_rejects_bad_delta(delta):
    with pytest.raises(InvalidValueError):
        DocumentTree().add_or_subtract("n", delta)


def test_add_rejects_non_numeric_existing():
    tree = DocumentTree()
    tree.set("s", "text")
    with pytest.raises(InvalidValueError):
        tree.add_or_subtract("s", 1)


def test_push_and_remove_from_array():
    tree = DocumentTree()
    tree.push_into_array("list", "x")
    tree.push_into_array("list", {"y": 1})
    tree.push_into_array("list", "x")
    assert tree.get("list") == ["x", {"y": 1}, "x"]
    assert tree.get("list")[-1] == "x"

    before = tree.get("list")
    tree.remove_from_array("list", "x")
    assert tree.get("list") == [{"y": 1}]
    assert before == ["x", {"y": 1}, "x"]

    tree.remove_from_array("list", {"y": 1})
    assert tree.get("list") == []


def test_array_ops_require_sequence():
    tree = DocumentTree()
    tree.set("n", 1)
    with pytest.raises(InvalidValueError):
        tree.push_into_array("n", 2)
    with pytest.raises(InvalidValueError):
        tree.remove_from_array("n", 2)


def test_snapshot_is_independent():
    tree = DocumentTree()
    tree.set("a.b", [1, 2])
    snap = tree.to_snapshot()
    snap["a"]["b"].append(3)
    assert tree.get("a.b") == [1, 2]


@pytest.mark.parametrize("value", [object(), {1: "x"}, float("nan"), {"s": {1, 2}}])
def test_unsupported_values_are_rejected(value):
    with pytest.raises(InvalidValueError):
        DocumentTree().set("k", value)


def test_cycles_are_rejected():
    cyclic: dict = {}
    cyclic["self"] = cyclic
    with pytest.raises(InvalidValueError):
        DocumentTree().set("k", cyclic)


def test_shared_subvalues_are_not_cycles():
    shared = [1]
    assert to_plain({"a": shared, "b": shared}) == {"a": [1], "b": [1]}


def test_shapes_and_equality():
    assert shape_of({}) is Shape.MAPPING
    assert shape_of((1,)) is Shape.SEQUENCE
    assert shape_of("abc") is Shape.SCALAR
    assert deep_equal({"a": [1, {"b": None}]}, {"a": [1, {"b": None}]})
    assert not deep_equal([1], [True])
    assert not deep_equal({"a": 1}, {"a": 1, "b": 2})


def test_encryption_requires_key():
    tree = DocumentTree()
    with pytest.raises(MissingEncryptionKeyError):
        tree.set("secret", "v", encrypt=True)
    assert not tree.has("secret")
    with pytest.raises(MissingEncryptionKeyError):
        tree.get("secret", decrypt=True)


def test_encrypted_values():
    tree = DocumentTree(crypto=CryptoBox(KEY))
    tree.set("secret", "v", encrypt=True)
    raw = tree.get("secret")
    assert raw != "v"
    assert len(raw.split(":")) == 2
    assert tree.get("secret", decrypt=True) == "v"

    with pytest.raises(InvalidValueError):
        tree.set("n", 5, encrypt=True)

    tree.set("plain", "not a token")
    with pytest.raises(DecryptionError):
        tree.get("plain", decrypt=True)
    with pytest.raises(DecryptionError):
        tree.get("missing", decrypt=True)


def test_auto_save_persists_full_document(tmp_path: Path):
    store = AtomicFileStore(tmp_path / "db.json")
    tree = DocumentTree(store, tab_size=4)
    tree.set("a.b", 1)
    tree.push_into_array("l", 2)
    tree.flush(5)
    text = (tmp_path / "db.json").read_text()
    assert json.loads(text) == {"a": {"b": 1}, "l": [2]}
    assert '\n    "a"' in text
    store.close()


def test_manual_save_when_auto_save_disabled(tmp_path: Path):
    store = AtomicFileStore(tmp_path / "db.json")
    tree = DocumentTree(store, auto_save=False)
    tree.set("a", 1)
    assert tree.pending_save is None
    assert not (tmp_path / "db.json").exists()
    tree.save().result(5)
    assert json.loads((tmp_path / "db.json").read_text()) == {"a": 1}
    store.close()


@pytest.mark.parametrize("value", ["\ud800", {"k\udc80": 1}, ["ok", "\udfff"]])
def test_unencodable_strings_are_rejected_before_mutation(tmp_path: Path, value):
    store = AtomicFileStore(tmp_path / "db.json")
    tree = DocumentTree(store)
    tree.set("ok", 1)

    with pytest.raises(InvalidValueError):
        tree.set("bad", value)
    assert not tree.has("bad")

    tree.set("later", 2)
    tree.flush(5)
    assert json.loads((tmp_path / "db.json").read_text()) == {"ok": 1, "later": 2}
    store.close()


def test_unencodable_key_is_invalid():
    with pytest.raises(InvalidKeyError):
        DocumentTree().set("a.\ud800", 1)


@pytest.mark.parametrize("flag", ["false", 1, None])
def test_encrypt_and_decrypt_flags_must_be_bool(flag):
    tree = DocumentTree(crypto=CryptoBox(KEY))
    with pytest.raises(InvalidValueError):
        tree.set("s", "v", encrypt=flag)
    assert not tree.has("s")

    tree.set("s", "v", encrypt=True)
    with pytest.raises(InvalidValueError):
        tree.get("s", decrypt=flag)


def test_encrypting_an_equal_plaintext_value_rewrites_it():
    tree = DocumentTree(crypto=CryptoBox(KEY))
    tree.set("k", "v")
    assert tree.set("k", "v", encrypt=True) is True
    assert tree.get("k") != "v"
    assert tree.get("k", decrypt=True) == "v"
