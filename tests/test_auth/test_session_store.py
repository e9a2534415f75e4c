"""Tests for the persistent session store."""

from __future__ import annotations

import json
import os
import stat
import threading
from pathlib import Path

import pytest

from desklogin.auth.session_store import SessionStore
from desklogin.exceptions import StorageError
from desklogin.models import Session, UserProfile


class TestLoad:
    def test_missing_file_is_empty_session(self, session_store: SessionStore) -> None:
        session = session_store.load()
        assert session == Session()
        assert not session.is_authenticated
        assert session.refresh_token is None

    def test_corrupt_file_is_empty_session(self, session_store: SessionStore) -> None:
        session_store.path.write_text("{not json")
        assert session_store.load() == Session()

    def test_wrong_shape_is_empty_session(self, session_store: SessionStore) -> None:
        session_store.path.write_text(json.dumps({"profile": "ada"}))
        assert session_store.load() == Session()

    def test_null_fields_fall_back_to_defaults(self, session_store: SessionStore) -> None:
        session_store.path.write_text(
            json.dumps({"profile": {"id": "1", "email": None, "name": None}, "refresh_token": None})
        )
        session = session_store.load()
        assert session.profile.id == "1"
        assert session.profile.email == ""
        assert session.profile.display_name == ""


class TestSave:
    def test_round_trip(self, session_store: SessionStore, ada: UserProfile) -> None:
        session_store.save(Session(profile=ada, refresh_token="rt-1"))

        loaded = SessionStore(session_store.path).load()
        assert loaded.profile == ada
        assert loaded.refresh_token == "rt-1"

    def test_file_uses_wire_field_names(
        self, session_store: SessionStore, ada: UserProfile
    ) -> None:
        session_store.save(Session(profile=ada, refresh_token="rt-1"))

        data = json.loads(session_store.path.read_text())
        assert data["refresh_token"] == "rt-1"
        assert data["profile"]["name"] == "Ada Lovelace"
        assert data["profile"]["picture"] == "https://example.com/ada.png"

    def test_file_permissions(self, session_store: SessionStore, ada: UserProfile) -> None:
        session_store.save(Session(profile=ada, refresh_token="secret"))
        mode = stat.S_IMODE(os.stat(session_store.path).st_mode)
        assert mode == 0o600

    def test_no_temp_files_left(self, session_store: SessionStore, ada: UserProfile) -> None:
        session_store.save(Session(profile=ada))
        session_store.save(Session())
        assert [p.name for p in session_store.path.parent.iterdir()] == ["session.json"]

    def test_creates_parent_directories(self, tmp_path: Path) -> None:
        store = SessionStore(tmp_path / "nested" / "dir" / "session.json")
        store.save(Session())
        assert store.path.is_file()

    def test_write_failure_raises_storage_error(self, tmp_path: Path) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("a file, not a directory")
        store = SessionStore(blocker / "session.json")

        with pytest.raises(StorageError, match="Cannot write session file"):
            store.save(Session())


class TestReplace:
    def test_replace_updates_memory_and_disk(
        self, session_store: SessionStore, ada: UserProfile
    ) -> None:
        session_store.replace(Session(profile=ada, refresh_token="rt"))

        with session_store.locked() as session:
            assert session.profile == ada
        assert SessionStore(session_store.path).load().refresh_token == "rt"

    def test_strict_failure_leaves_memory_untouched(
        self, tmp_path: Path, ada: UserProfile
    ) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("x")
        store = SessionStore(blocker / "session.json")

        with pytest.raises(StorageError):
            store.replace(Session(profile=ada))

        assert not store.snapshot().is_authenticated

    def test_lenient_failure_still_updates_memory(
        self, tmp_path: Path, ada: UserProfile
    ) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("x")
        store = SessionStore(blocker / "session.json")
        with store.locked() as session:
            session.profile = ada

        store.replace(Session(), strict=False)

        assert store.snapshot() == Session()

    def test_snapshot_is_a_copy(self, signed_in_store: SessionStore) -> None:
        snapshot = signed_in_store.snapshot()
        snapshot.profile.email = "changed@example.com"
        assert signed_in_store.snapshot().profile.email == "ada@example.com"

    def test_replace_stores_a_copy(self, session_store: SessionStore, ada: UserProfile) -> None:
        session = Session(profile=ada)
        session_store.replace(session)
        session.profile.email = "changed@example.com"
        assert session_store.snapshot().profile.email == "ada@example.com"


class TestLocking:
    def test_loads_lazily_from_disk(self, signed_in_store: SessionStore) -> None:
        fresh = SessionStore(signed_in_store.path)
        with fresh.locked() as session:
            assert session.profile.email == "ada@example.com"
            assert session.refresh_token == "stored-refresh-token"

    def test_lock_is_reentrant(self, session_store: SessionStore) -> None:
        with session_store.locked():
            session_store.replace(Session())
            with session_store.locked() as session:
                assert session == Session()

    def test_locked_excludes_other_threads(self, session_store: SessionStore) -> None:
        entered = threading.Event()
        seen: list[bool] = []

        def other() -> None:
            with session_store.locked():
                seen.append(True)
            entered.set()

        with session_store.locked():
            t = threading.Thread(target=other)
            t.start()
            assert not entered.wait(0.1)
            assert seen == []
        t.join(timeout=2)
        assert seen == [True]
