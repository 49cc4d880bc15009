import json
import os
import stat
import threading
import time

import pytest

from backend.app.store import (
    ANONYMOUS_USER,
    MissingFieldsError,
    ProgressStore,
    RecordNotFoundError,
    StorageError,
    resolve_user,
)


def test_load_without_file_is_empty(store):
    assert not store.path.exists()
    assert store.load() == {}


def test_load_malformed_file_is_empty(store):
    store.path.parent.mkdir(parents=True)
    store.path.write_text("{not json", "utf-8")
    assert store.load() == {}


def test_load_non_object_is_empty(store):
    store.path.parent.mkdir(parents=True)
    store.path.write_text("[1, 2]", "utf-8")
    assert store.load() == {}


def test_save_creates_directory_and_indents(store):
    assert store.save({"alice": {"603": {"mediaType": "movie", "timestamp": 1, "lastUpdated": 2}}}) is True
    text = store.path.read_text("utf-8")
    assert text.startswith('{\n  "alice"')
    assert json.loads(text)["alice"]["603"]["mediaType"] == "movie"
    assert [p.name for p in store.path.parent.iterdir()] == ["progress.json"]


def test_save_failure_returns_false(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("", "utf-8")
    store = ProgressStore(blocker / "progress.json")
    assert store.save({}) is False


def test_upsert_then_get(store):
    before = int(time.time() * 1000)
    saved = store.upsert("alice", "603", "movie", 1700000000000)
    got = store.get("alice", "603")
    assert got == saved
    assert got["mediaType"] == "movie"
    assert got["timestamp"] == 1700000000000
    assert got["lastUpdated"] >= before
    assert "episode" not in got


def test_upsert_keeps_episode(store):
    store.upsert("alice", "1399", "tv", 42, {"season": 1, "episode": 3})
    assert store.get("alice", "1399")["episode"] == {"season": 1, "episode": 3}


def test_upsert_overwrites_and_ignores_other_users(store):
    store.upsert("alice", "603", "movie", 1)
    store.upsert("bob", "603", "movie", 2)
    store.upsert("alice", "603", "movie", 3)
    assert store.get("alice", "603")["timestamp"] == 3
    assert store.get("bob", "603")["timestamp"] == 2


@pytest.mark.parametrize("item_id, media_type, timestamp", [
    (None, "movie", 1),
    ("", "movie", 1),
    ("603", None, 1),
    ("603", "", 1),
    ("603", "movie", None),
])
def test_upsert_missing_fields(store, item_id, media_type, timestamp):
    with pytest.raises(MissingFieldsError):
        store.upsert("alice", item_id, media_type, timestamp)
    assert not store.path.exists()


def test_upsert_zero_timestamp_is_valid(store):
    assert store.upsert("alice", "603", "movie", 0)["timestamp"] == 0


def test_get_missing(store):
    assert store.get("alice", "603") is None
    store.upsert("alice", "603", "movie", 1)
    assert store.get("alice", "27205") is None


def test_get_all(store):
    assert store.get_all("alice") == {}
    store.upsert("alice", "603", "movie", 1)
    store.upsert("alice", "27205", "movie", 2)
    assert set(store.get_all("alice")) == {"603", "27205"}


def test_delete(store):
    store.upsert("alice", "603", "movie", 1)
    store.delete("alice", "603")
    assert store.get("alice", "603") is None
    assert store.load() == {"alice": {}}


def test_delete_missing_does_not_write(store):
    with pytest.raises(RecordNotFoundError):
        store.delete("alice", "603")
    assert not store.path.exists()

    store.upsert("bob", "603", "movie", 1)
    with pytest.raises(RecordNotFoundError):
        store.delete("alice", "603")
    with pytest.raises(RecordNotFoundError):
        store.delete("bob", "27205")


def test_mutation_raises_when_save_fails(store, monkeypatch):
    monkeypatch.setattr(store, "save", lambda document: False)
    with pytest.raises(StorageError):
        store.upsert("alice", "603", "movie", 1)


def test_concurrent_upserts_same_user(store):
    ids = [str(i) for i in range(20)]
    threads = [threading.Thread(target=store.upsert, args=("alice", i, "tv", 10, 1)) for i in ids]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert set(store.get_all("alice")) == set(ids)


def test_resolve_user():
    assert resolve_user(None) == ANONYMOUS_USER
    assert resolve_user("") == ANONYMOUS_USER
    assert resolve_user("alice") == "alice"


def test_load_drops_non_object_users_and_records(store):
    store.path.parent.mkdir(parents=True)
    store.path.write_text(json.dumps({
        "alice": 5,
        "bob": {"603": {"mediaType": "movie", "timestamp": 1, "lastUpdated": 2}, "27205": "junk"},
    }), "utf-8")
    assert store.load() == {"bob": {"603": {"mediaType": "movie", "timestamp": 1, "lastUpdated": 2}}}
    assert store.get("alice", "603") is None
    assert store.get("bob", "27205") is None
    with pytest.raises(RecordNotFoundError):
        store.delete("alice", "603")
    assert store.upsert("alice", "603", "movie", 1)["mediaType"] == "movie"
    assert set(store.load()) == {"alice", "bob"}


def test_load_directory_is_empty(tmp_path):
    store = ProgressStore(tmp_path)
    assert store.load() == {}


def test_save_follows_umask(store):
    umask = os.umask(0)
    os.umask(umask)
    store.save({})
    assert stat.S_IMODE(store.path.stat().st_mode) == 0o666 & ~umask


def test_save_never_raises_when_cleanup_fails(store, monkeypatch):
    def boom(*args, **kwargs):
        raise OSError("disk gone")

    monkeypatch.setattr(os, "replace", boom)
    monkeypatch.setattr(os, "unlink", boom)
    assert store.save({}) is False


def test_upsert_episode_null_is_kept(store):
    assert store.upsert("alice", "603", "movie", 1, None)["episode"] is None
    assert "episode" in store.get("alice", "603")
    assert "episode" not in store.upsert("alice", "27205", "movie", 1)
