"""Tests for history store module."""

import pytest
import threading
from pathlib import Path

from src.history.exceptions import FileNotTrackedError, StoreError, UserContextError
from src.history.models import CollectionKind, HistoryEventType
from src.history.store import HistoryStore

USER = "user@example.com"
OTHER = "other@example.com"
FP1 = "0x" + "1" * 64
FP2 = "0x" + "2" * 64
FP3 = "0x" + "3" * 64


@pytest.fixture
def store(tmp_path):
    with HistoryStore(tmp_path / "history.db") as s:
        s.ensure_user(USER)
        yield s


class TestHistoryStoreFiles:
    """Tests for tracked file operations."""

    def test_create_store(self, tmp_path):
        db_path = tmp_path / "history.db"
        store = HistoryStore(db_path)
        assert db_path.exists()
        store.close()

    def test_requires_user(self, store):
        with pytest.raises(UserContextError):
            store.get_file_by_path("", Path("/w/a.txt"))
        with pytest.raises(UserContextError):
            store.upsert_file(None, Path("/w/a.txt"), FP1)

    def test_closed_store_raises(self, tmp_path):
        store = HistoryStore(tmp_path / "history.db")
        store.close()
        with pytest.raises(StoreError):
            store.get_files(USER)

    def test_upsert_creates_file(self, store):
        tracked = store.upsert_file(USER, Path("/w/a.txt"), FP1, timestamp=1000)

        assert tracked.id > 0
        assert tracked.path == Path("/w/a.txt")
        assert tracked.fingerprint == FP1
        assert tracked.submitted is False
        assert tracked.created_at == 1000
        assert store.get_file_by_path(USER, Path("/w/a.txt")) == tracked

    def test_upsert_updates_same_path(self, store):
        first = store.upsert_file(USER, Path("/w/a.txt"), FP1, timestamp=1000)
        second = store.upsert_file(USER, Path("/w/a.txt"), FP2, timestamp=2000)

        assert second.id == first.id
        assert second.fingerprint == FP2
        assert second.updated_at == 2000
        assert len(store.get_files(USER)) == 1

    def test_upsert_moves_row_with_same_fingerprint(self, store):
        first = store.upsert_file(USER, Path("/w/a.txt"), FP1)
        moved = store.upsert_file(USER, Path("/w/b.txt"), FP1)

        assert moved.id == first.id
        assert moved.path == Path("/w/b.txt")
        assert store.get_file_by_path(USER, Path("/w/a.txt")) is None
        assert len(store.get_files(USER)) == 1

    def test_upsert_takes_fingerprint_from_other_row(self, store):
        a = store.upsert_file(USER, Path("/w/a.txt"), FP1)
        b = store.upsert_file(USER, Path("/w/b.txt"), FP2)

        updated = store.upsert_file(USER, Path("/w/b.txt"), FP1)

        assert updated.id == b.id
        assert updated.fingerprint == FP1
        assert store.get_file_by_id(USER, a.id).fingerprint is None
        assert store.get_file_by_fingerprint(USER, FP1).id == b.id

    def test_submitted_flag_reset_on_new_fingerprint(self, store):
        store.upsert_file(USER, Path("/w/a.txt"), FP1)
        assert store.mark_submitted(USER, FP1) == 1
        assert store.get_file_by_path(USER, Path("/w/a.txt")).submitted is True

        store.upsert_file(USER, Path("/w/a.txt"), FP1)
        assert store.get_file_by_path(USER, Path("/w/a.txt")).submitted is True

        store.upsert_file(USER, Path("/w/a.txt"), FP2)
        assert store.get_file_by_path(USER, Path("/w/a.txt")).submitted is False

    def test_get_submitted_file_by_fingerprint(self, store):
        store.upsert_file(USER, Path("/w/a.txt"), FP1)
        assert store.get_submitted_file_by_fingerprint(USER, FP1) is None

        store.mark_submitted(USER, FP1)
        assert store.get_submitted_file_by_fingerprint(USER, FP1).path == Path("/w/a.txt")

    def test_files_scoped_by_user(self, store):
        store.upsert_file(USER, Path("/w/a.txt"), FP1)
        store.upsert_file(OTHER, Path("/w/a.txt"), FP1)

        assert len(store.get_files(USER)) == 1
        assert len(store.get_files(OTHER)) == 1
        assert store.get_file_by_path(OTHER, Path("/w/a.txt")).user_email == OTHER

    def test_update_file_path(self, store):
        tracked = store.upsert_file(USER, Path("/w/a.txt"), FP1)
        store.update_file_path(USER, tracked.id, Path("/w/renamed.txt"), timestamp=5000)

        moved = store.get_file_by_id(USER, tracked.id)
        assert moved.path == Path("/w/renamed.txt")
        assert moved.updated_at == 5000

    def test_update_file_path_unknown(self, store):
        with pytest.raises(FileNotTrackedError):
            store.update_file_path(USER, 999, Path("/w/x.txt"))

    def test_update_file_path_onto_tracked_path(self, store):
        source = store.upsert_file(USER, Path("/w/a.txt.tmp"), FP1)
        store.upsert_file(USER, Path("/w/a.txt"), FP2)

        with pytest.raises(StoreError):
            store.update_file_path(USER, source.id, Path("/w/a.txt"))

        assert store.get_file_by_id(USER, source.id).path == Path("/w/a.txt.tmp")


class TestHistoryStoreHistory:
    """Tests for history operations."""

    def test_insert_history(self, store):
        tracked = store.upsert_file(USER, Path("/w/a.txt"), FP1)

        assert store.insert_history(USER, tracked.id, Path("/w/a.txt"), FP1, HistoryEventType.ADD, 1000) is True

        entries = store.get_history_for_file(USER, tracked.id)
        assert len(entries) == 1
        assert entries[0].event_type == HistoryEventType.ADD
        assert entries[0].fingerprint == FP1

    def test_insert_history_idempotent(self, store):
        tracked = store.upsert_file(USER, Path("/w/a.txt"), FP1)
        store.insert_history(USER, tracked.id, Path("/w/a.txt"), FP1, HistoryEventType.ADD, 1000)

        assert store.insert_history(USER, tracked.id, Path("/w/a.txt"), FP1, HistoryEventType.CHANGE, 2000) is False
        assert len(store.get_history_for_file(USER, tracked.id)) == 1

    def test_rename_entries_not_deduplicated(self, store):
        tracked = store.upsert_file(USER, Path("/w/a.txt"), FP1)
        store.insert_history(USER, tracked.id, Path("/w/a.txt"), FP1, HistoryEventType.ADD, 1000)

        assert store.insert_history(USER, tracked.id, Path("/w/b.txt"), FP1, HistoryEventType.RENAME, 2000) is True
        assert store.insert_history(USER, tracked.id, Path("/w/c.txt"), FP1, HistoryEventType.RENAME, 3000) is True

        entries = store.get_history_for_file(USER, tracked.id)
        assert [e.event_type for e in entries] == [
            HistoryEventType.ADD, HistoryEventType.RENAME, HistoryEventType.RENAME,
        ]

    def test_previous_fingerprint(self, store):
        tracked = store.upsert_file(USER, Path("/w/a.txt"), FP1)
        store.insert_history(USER, tracked.id, Path("/w/a.txt"), FP1, HistoryEventType.ADD, 1000)
        store.insert_history(USER, tracked.id, Path("/w/a.txt"), FP2, HistoryEventType.CHANGE, 2000)
        store.insert_history(USER, tracked.id, Path("/w/a.txt"), FP3, HistoryEventType.CHANGE, 3000)

        assert store.get_previous_fingerprint(USER, tracked.id, FP3) == FP2

    def test_previous_fingerprint_same_millisecond_uses_insert_order(self, store):
        tracked = store.upsert_file(USER, Path("/w/a.txt"), FP1)
        store.insert_history(USER, tracked.id, Path("/w/a.txt"), FP1, HistoryEventType.ADD, 1000)
        store.insert_history(USER, tracked.id, Path("/w/a.txt"), FP2, HistoryEventType.CHANGE, 1000)
        store.insert_history(USER, tracked.id, Path("/w/a.txt"), FP3, HistoryEventType.CHANGE, 1000)

        assert store.get_previous_fingerprint(USER, tracked.id, FP3) == FP2

    def test_previous_fingerprint_none_for_new_file(self, store):
        tracked = store.upsert_file(USER, Path("/w/a.txt"), FP1)
        store.insert_history(USER, tracked.id, Path("/w/a.txt"), FP1, HistoryEventType.ADD, 1000)

        assert store.get_previous_fingerprint(USER, tracked.id, FP1) is None

    def test_history_for_folders(self, store):
        a = store.upsert_file(USER, Path("/w/a.txt"), FP1)
        b = store.upsert_file(USER, Path("/w/sub/b.txt"), FP2)
        c = store.upsert_file(USER, Path("/w2/c.txt"), FP3)
        store.insert_history(USER, a.id, Path("/w/a.txt"), FP1, HistoryEventType.ADD, 1000)
        store.insert_history(USER, b.id, Path("/w/sub/b.txt"), FP2, HistoryEventType.ADD, 2000)
        store.insert_history(USER, c.id, Path("/w2/c.txt"), FP3, HistoryEventType.ADD, 3000)

        entries = store.get_history_for_folders(USER, [Path("/w")])

        assert [e.path for e in entries] == [Path("/w/sub/b.txt"), Path("/w/a.txt")]
        assert store.count_history_for_folders(USER, [Path("/w")]) == 2
        assert store.count_history_for_folders(USER, [Path("/w"), Path("/w2")]) == 3

    def test_history_for_folders_pagination(self, store):
        tracked = store.upsert_file(USER, Path("/w/a.txt"), FP1)
        for i, fp in enumerate([FP1, FP2, FP3]):
            store.insert_history(USER, tracked.id, Path("/w/a.txt"), fp, HistoryEventType.CHANGE, 1000 + i)

        page1 = store.get_history_for_folders(USER, [Path("/w")], limit=2, offset=0)
        page2 = store.get_history_for_folders(USER, [Path("/w")], limit=2, offset=2)

        assert [e.fingerprint for e in page1] == [FP3, FP2]
        assert [e.fingerprint for e in page2] == [FP1]

    def test_history_for_folders_escapes_wildcards(self, store):
        tracked = store.upsert_file(USER, Path("/w_x/a.txt"), FP1)
        other = store.upsert_file(USER, Path("/wax/b.txt"), FP2)
        store.insert_history(USER, tracked.id, Path("/w_x/a.txt"), FP1, HistoryEventType.ADD, 1000)
        store.insert_history(USER, other.id, Path("/wax/b.txt"), FP2, HistoryEventType.ADD, 1000)

        assert store.count_history_for_folders(USER, [Path("/w_x")]) == 1

    def test_history_for_no_folders(self, store):
        assert store.get_history_for_folders(USER, []) == []
        assert store.count_history_for_folders(USER, []) == 0


class TestHistoryStoreFolders:
    """Tests for watched folder operations."""

    def test_add_and_list_watched_folders(self, store):
        store.add_watched_folder(USER, CollectionKind.PROJECT, "p1", Path("/w"))
        store.add_watched_folder(USER, CollectionKind.MARK, "m1", Path("/m"))
        store.add_watched_folder(USER, CollectionKind.PROJECT, "p1", Path("/w"))

        folders = store.get_watched_folders(USER)

        assert len(folders) == 2
        assert store.get_folders_for_collection(USER, CollectionKind.PROJECT, "p1") == [Path("/w")]

    def test_remove_watched_folder(self, store):
        store.add_watched_folder(USER, CollectionKind.PROJECT, "p1", Path("/w"))

        assert store.remove_watched_folder(USER, CollectionKind.PROJECT, "p1", Path("/w")) is True
        assert store.remove_watched_folder(USER, CollectionKind.PROJECT, "p1", Path("/w")) is False
        assert store.get_watched_folders(USER) == []

    def test_remove_folders_for_collection(self, store):
        store.add_watched_folder(USER, CollectionKind.PROJECT, "p1", Path("/w"))
        store.add_watched_folder(USER, CollectionKind.PROJECT, "p1", Path("/x"))
        store.add_watched_folder(USER, CollectionKind.PROJECT, "p2", Path("/y"))

        assert store.remove_folders_for_collection(USER, CollectionKind.PROJECT, "p1") == 2
        assert len(store.get_watched_folders(USER)) == 1

    def test_find_collection_longest_prefix(self, store):
        store.add_watched_folder(USER, CollectionKind.PROJECT, "outer", Path("/w"))
        store.add_watched_folder(USER, CollectionKind.MARK, "inner", Path("/w/art"))

        assert store.find_collection_for_path(USER, Path("/w/art/pic.png")).collection_id == "inner"
        assert store.find_collection_for_path(USER, Path("/w/doc.txt")).collection_id == "outer"
        assert store.find_collection_for_path(USER, Path("/w2/doc.txt")) is None


class TestHistoryStoreUsers:
    """Tests for user, token and config operations."""

    def test_token_roundtrip(self, store):
        assert store.get_token(USER) is None
        store.set_token(USER, "tok")
        assert store.get_token(USER) == "tok"
        store.clear_token(USER)
        assert store.get_token(USER) is None

    def test_set_token_creates_user(self, store):
        store.set_token(OTHER, "tok2")
        assert store.get_token(OTHER) == "tok2"

    def test_config(self, store):
        assert store.get_config(USER, "theme") is None
        store.set_config(USER, "theme", "dark")
        store.set_config(USER, "theme", "light")
        store.set_config(USER, "lang", "en")

        assert store.get_config(USER, "theme") == "light"
        assert store.get_all_config(USER) == {"theme": "light", "lang": "en"}

        store.delete_config(USER, "theme")
        assert store.get_config(USER, "theme") is None

    def test_reset_user(self, store):
        tracked = store.upsert_file(USER, Path("/w/a.txt"), FP1)
        store.insert_history(USER, tracked.id, Path("/w/a.txt"), FP1, HistoryEventType.ADD, 1000)
        store.add_watched_folder(USER, CollectionKind.PROJECT, "p1", Path("/w"))
        store.set_config(USER, "k", "v")
        store.set_token(USER, "tok")
        store.upsert_file(OTHER, Path("/w/a.txt"), FP1)

        assert store.reset_user(USER) == 1

        assert store.get_files(USER) == []
        assert store.get_history_for_file(USER, tracked.id) == []
        assert store.get_watched_folders(USER) == []
        assert store.get_config(USER, "k") is None
        assert store.get_token(USER) is None
        assert len(store.get_files(OTHER)) == 1

    def test_concurrent_writes(self, store):
        errors = []

        def writer(i):
            try:
                store.upsert_file(USER, Path(f"/w/f{i}.txt"), "0x" + f"{i:064x}")
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=writer, args=(i,)) for i in range(20)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert len(store.get_files(USER)) == 20
