"""
Document store tests.

Verifies:
- init seeds, migrates and leaves current documents alone
- Username rules and duplicate detection on create
- Failed mutations persist nothing
- Delete cascades to marks, reviews and lockouts
- Revision-checked writes reject stale writers
- Import/export and settings validation
"""

import fcntl
import json
import threading

import pytest

from rrsa.services.document_backends import FileDocumentBackend, MemoryDocumentBackend
from rrsa.services.document_store import DocumentStore, dumps
from rrsa.services.schema_migrator import CURRENT_SCHEMA_VERSION, build_seed
from rrsa.validation import (
    ConcurrentWriteError,
    ConflictError,
    NotFoundError,
    SchemaError,
    ValidationError,
)


def single_user_document(now):
    """Current-schema document with one official, alice, in league X."""
    doc = build_seed(now)
    doc["settings"]["leagues"] = ["X"]
    doc["settings"]["default_league"] = "X"
    doc["users"] = [{
        "id": "usr_alice",
        "username": "alice",
        "password": "pw",
        "display_name": "Alice",
        "global_role": "OFFICIAL",
        "league_roles": {"X": {"role": "OFFICIAL", "department": "Refs"}},
        "active": True,
    }]
    doc["attendance_events"] = []
    doc["performance_reviews"] = []
    return doc


@pytest.fixture
def alice_store(clock):
    backend = MemoryDocumentBackend(dumps(single_user_document(clock())))
    store = DocumentStore(backend, clock=clock)
    store.init()
    return store


# =============================================================================
# LIFECYCLE
# =============================================================================


class TestLifecycle:
    def test_init_seeds_empty_backend(self, backend, clock):
        store = DocumentStore(backend, clock=clock)
        assert store.init() is True
        assert store.ready
        assert store.snapshot() == build_seed(clock())

    def test_init_on_current_document_writes_nothing(self, clock):
        backend = MemoryDocumentBackend(dumps(build_seed(clock())))
        store = DocumentStore(backend, clock=clock)
        assert store.init() is False
        assert backend.writes == 0

    def test_reads_before_init_fail(self, backend, clock):
        store = DocumentStore(backend, clock=clock)
        with pytest.raises(RuntimeError):
            store.list_users()

    def test_teardown_stops_access(self, store):
        store.teardown()
        assert not store.ready
        with pytest.raises(RuntimeError):
            store.snapshot()

    def test_queries_return_copies(self, store):
        users = store.list_users()
        users[0]["username"] = "hijacked"
        users.clear()
        assert store.get_user("mrv") is not None
        assert len(store.list_users()) > 0

    def test_file_backend_round_trips(self, tmp_path, clock):
        path = tmp_path / "doc.json"
        store = DocumentStore(FileDocumentBackend(str(path)), clock=clock)
        store.init()
        store.append_audit("mrv", "note", "hello")

        reopened = DocumentStore(FileDocumentBackend(str(path)), clock=clock)
        assert reopened.init() is False
        assert reopened.list_audit(1)[0]["details"] == "hello"
        assert json.loads(path.read_text(encoding="utf-8"))["schema_version"] == CURRENT_SCHEMA_VERSION

    def test_stale_write_from_another_instance_is_rejected(self, tmp_path):
        path = tmp_path / "doc.json"
        first = FileDocumentBackend(str(path))
        second = FileDocumentBackend(str(path))
        base = first.write("base", None)

        second.write("second-change", base)
        with pytest.raises(ConcurrentWriteError):
            first.write("first-change", base)
        assert path.read_text(encoding="utf-8") == "second-change"

    def test_file_writers_wait_on_the_shared_lock(self, tmp_path):
        path = tmp_path / "doc.json"
        backend = FileDocumentBackend(str(path))
        base = backend.write("base", None)
        outcome = {}

        def write_from_base():
            try:
                outcome["revision"] = backend.write("late-change", base)
            except ConcurrentWriteError:
                outcome["conflict"] = True

        # Another worker process holds the lock and commits while we wait
        with open(backend.lock_path, "a") as lock_fh:
            fcntl.flock(lock_fh.fileno(), fcntl.LOCK_EX)
            worker = threading.Thread(target=write_from_base)
            worker.start()
            worker.join(timeout=0.3)
            assert worker.is_alive()
            path.write_text("other-worker-change", encoding="utf-8")
            fcntl.flock(lock_fh.fileno(), fcntl.LOCK_UN)
        worker.join(timeout=5)

        assert outcome == {"conflict": True}
        assert path.read_text(encoding="utf-8") == "other-worker-change"


# =============================================================================
# USERS
# =============================================================================


class TestCreateUser:
    def test_alice_bob_scenario(self, alice_store):
        with pytest.raises(ConflictError):
            alice_store.create_user("alice", "pw", "Alice Again", "OFFICIAL", "X", "OFFICIAL", "Refs")
        with pytest.raises(ValidationError):
            alice_store.create_user("Bob", "pw", "Bob", "OFFICIAL", "X", "OFFICIAL", "Refs")

        bob = alice_store.create_user("bob", "pw", "Bob", "OFFICIAL", "X", "OFFICIAL", "Refs")
        assert bob["username"] == "bob"
        assert bob["league_roles"] == {"X": {"role": "OFFICIAL", "department": "Refs"}}
        assert len(alice_store.list_users()) == 2

    @pytest.mark.parametrize("username", ["ab", "bad name", "dash-name", "  "])
    def test_bad_usernames_rejected(self, store, username):
        with pytest.raises(ValidationError):
            store.create_user(username, "pw")

    def test_duplicate_check_ignores_case_and_whitespace(self, store):
        with pytest.raises(ConflictError):
            store.create_user("  ref_ava ", "pw")

    def test_unknown_roles_rejected(self, store):
        with pytest.raises(ValidationError):
            store.create_user("new_ref", "pw", global_role="KING")
        with pytest.raises(ValidationError):
            store.create_user("new_ref", "pw", league_role="COACH")

    def test_unknown_league_rejected(self, store, backend):
        writes = backend.writes
        with pytest.raises(ValidationError):
            store.create_user("new_ref", "pw", league="NOPE")
        assert store.get_user("new_ref") is None
        assert backend.writes == writes

    def test_defaults_to_default_league(self, store):
        user = store.create_user("new_ref", "pw")
        assert list(user["league_roles"]) == ["RRFL"]
        assert user["global_role"] == "OFFICIAL"
        assert user["active"] is True

    def test_audit_written_with_user(self, store):
        store.create_user("new_ref", "pw", audit=("mrv", "user_create", "Created @new_ref."))
        entry = store.list_audit(1)[0]
        assert entry["action"] == "user_create"
        assert entry["actor"] == "mrv"


class TestUpdateUser:
    def test_username_is_immutable(self, store):
        user = store.get_user("ref_ava")
        user["username"] = "ref_eve"
        with pytest.raises(ValidationError):
            store.update_user(user)
        assert store.get_user("ref_ava") is not None

    def test_unknown_id_not_found(self, store):
        user = store.get_user("ref_ava")
        user["id"] = "usr_missing"
        with pytest.raises(NotFoundError):
            store.update_user(user)

    def test_update_replaces_record(self, store):
        user = store.get_user("ref_ava")
        user["display_name"] = "Ava R."
        user["active"] = False
        store.update_user(user)
        saved = store.get_user("ref_ava")
        assert saved["display_name"] == "Ava R."
        assert saved["active"] is False

    def test_league_role_grant_and_remove(self, store):
        store.set_league_role("ref_ava", "RRBL", "HEAD_OF_REFEREES", "Refs")
        assert store.get_user("ref_ava")["league_roles"]["RRBL"]["role"] == "HEAD_OF_REFEREES"
        store.set_league_role("ref_ava", "RRBL", None)
        assert "RRBL" not in store.get_user("ref_ava")["league_roles"]

    def test_password_and_active_setters(self, store):
        store.set_user_password("ref_ava", "new-secret-1")
        store.set_user_active("ref_ava", False)
        user = store.get_user("ref_ava")
        assert user["password"] == "new-secret-1"
        assert user["active"] is False


class TestDeleteUser:
    def test_delete_cascades(self, store):
        store.transaction(lambda doc: doc["lockouts"].update({"ref_ava": {"count": 2, "locked_until": None}}))
        assert any(m["username"] == "ref_ava" for e in store.list_attendance() for m in e["marks"])
        assert any(r["subject_username"] == "ref_ava" for r in store.list_performance())

        store.delete_user("ref_ava")

        assert store.get_user("ref_ava") is None
        assert not any(m["username"] == "ref_ava" for e in store.list_attendance() for m in e["marks"])
        assert not any(r["subject_username"] == "ref_ava" for r in store.list_performance())
        assert "ref_ava" not in store.snapshot()["lockouts"]

    def test_delete_unknown_user_touches_nothing(self, store, backend):
        before = store.snapshot()
        writes = backend.writes
        with pytest.raises(NotFoundError):
            store.delete_user("nobody")
        assert store.snapshot() == before
        assert backend.writes == writes


# =============================================================================
# TRANSACTIONS
# =============================================================================


class TestTransaction:
    def test_exception_persists_nothing(self, store, backend):
        before = store.snapshot()
        writes = backend.writes

        def _explode(doc):
            doc["users"].clear()
            doc["settings"]["leagues"] = []
            raise ValidationError("boom")

        with pytest.raises(ValidationError):
            store.transaction(_explode)
        assert store.snapshot() == before
        assert backend.writes == writes

    def test_unchanged_document_is_not_written(self, store, backend):
        writes = backend.writes
        store.transaction(lambda doc: len(doc["users"]))
        assert backend.writes == writes

    def test_change_bumps_updated_at(self, store, clock):
        clock.advance(minutes=5)
        store.append_audit("mrv", "note", "later")
        assert store.snapshot()["meta"]["updated_at"] == "2026-10-19T12:05:00Z"

    def test_stale_writer_is_rejected(self, store, backend):
        _, revision = backend.read()
        store.append_audit("mrv", "note", "first writer")
        with pytest.raises(ConcurrentWriteError):
            backend.write(dumps(build_seed(store.now())), revision)
        assert store.list_audit(1)[0]["details"] == "first writer"

    def test_concurrent_write_is_a_conflict(self):
        assert issubclass(ConcurrentWriteError, ConflictError)


# =============================================================================
# RECORDS AND AUDIT
# =============================================================================


class TestRecords:
    def test_mark_replaces_existing_mark(self, store):
        event = store.list_attendance("RRFL")[0]
        store.mark_attendance(event["id"], {"username": "ref_ava", "status": "Late"})
        marks = store.get_attendance_event(event["id"])["marks"]
        assert [m["status"] for m in marks if m["username"] == "ref_ava"] == ["Late"]

    def test_mark_unknown_event(self, store):
        with pytest.raises(NotFoundError):
            store.mark_attendance("att_missing", {"username": "ref_ava", "status": "Late"})

    def test_league_filters(self, store):
        assert store.list_attendance("RRBL") == []
        assert len(store.list_performance("RRFL")) == 1

    def test_audit_is_newest_first(self, store):
        store.append_audit("mrv", "one", "")
        store.append_audit("mrv", "two", "")
        assert [a["action"] for a in store.list_audit(2)] == ["two", "one"]


# =============================================================================
# SETTINGS
# =============================================================================


class TestSettings:
    def test_merge_auth_policy(self, store):
        settings = store.update_settings({"auth_policy": {"lock_minutes": 20}})
        assert settings["auth_policy"]["lock_minutes"] == 20
        assert settings["auth_policy"]["max_failed_attempts"] == 5

    def test_default_league_follows_league_list(self, store):
        settings = store.update_settings({"leagues": ["RRBL", "RRHL"]})
        assert settings["default_league"] == "RRBL"

    @pytest.mark.parametrize("changes", [
        {"performance_threshold": 11},
        {"performance_threshold": "high"},
        {"leagues": []},
        {"leagues": ["A", "A"]},
        {"default_league": "NOPE"},
        {"auth_policy": {"max_failed_attempts": 0}},
        {"colour": "blue"},
    ])
    def test_invalid_settings_rejected(self, store, changes):
        before = store.get_settings()
        with pytest.raises(ValidationError):
            store.update_settings(changes)
        assert store.get_settings() == before


# =============================================================================
# IMPORT / EXPORT / RESET
# =============================================================================


class TestImportExport:
    def test_export_import_replaces_document(self, store):
        exported = store.export_document()
        store.create_user("extra_ref", "pw")
        counts = store.import_document(exported)
        assert counts["users"] == len(exported["users"])
        assert store.get_user("extra_ref") is None

    @pytest.mark.parametrize("incoming", [
        None,
        [],
        {"users": []},
        {"schema_version": CURRENT_SCHEMA_VERSION - 1, "users": [], "attendance_events": [], "performance_reviews": []},
        {"schema_version": CURRENT_SCHEMA_VERSION, "users": {}, "attendance_events": [], "performance_reviews": []},
        {"schema_version": CURRENT_SCHEMA_VERSION, "users": [], "performance_reviews": []},
    ])
    def test_bad_imports_rejected(self, store, incoming):
        before = store.snapshot()
        with pytest.raises(SchemaError):
            store.import_document(incoming)
        assert store.snapshot() == before

    def test_import_fills_optional_sections(self, store):
        store.import_document({
            "schema_version": CURRENT_SCHEMA_VERSION,
            "users": [],
            "attendance_events": [],
            "performance_reviews": [],
        })
        doc = store.snapshot()
        assert doc["invites"] == []
        assert doc["lockouts"] == {}
        assert doc["settings"]["default_league"] == "RRFL"

    def test_reset_restores_seed(self, store):
        store.create_user("extra_ref", "pw")
        store.reset(actor="mrv")
        assert store.get_user("extra_ref") is None
        audit = store.list_audit()
        assert audit[0]["action"] == "reset"
        assert audit[0]["actor"] == "mrv"
