"""
Session and login tests.

Verifies:
- Login check order: locked, unknown, disabled, wrong password, success
- Failures are persisted even though the login raises
- Absolute and idle timeouts
- Tokens decode back to the same session and reject junk
"""

from datetime import timedelta

import pytest

from rrsa.services.lockout_policy import LockoutPolicy
from rrsa.services.schema_migrator import SEED_PASSWORD
from rrsa.services.session_service import (
    AccountDisabledError,
    InvalidCredentialsError,
    LockedError,
    Session,
    SessionExpiredError,
    SessionManager,
    decode_token,
    encode_token,
)
from rrsa.validation import ValidationError


# =============================================================================
# LOGIN
# =============================================================================


class TestLogin:
    def test_success_issues_session_and_audits(self, store, clock):
        session = SessionManager(store).login("  Ref_Ava ", SEED_PASSWORD)
        assert session.username == "ref_ava"
        assert session.created_at == clock()
        assert session.last_active_at == clock()
        entry = store.list_audit(1)[0]
        assert (entry["actor"], entry["action"]) == ("ref_ava", "login")

    def test_wrong_password_is_recorded(self, store):
        with pytest.raises(InvalidCredentialsError):
            SessionManager(store).login("ref_ava", "nope")
        assert LockoutPolicy(store).status("ref_ava").count == 1

    def test_unknown_user_is_recorded(self, store):
        with pytest.raises(InvalidCredentialsError):
            SessionManager(store).login("ghost", "nope")
        assert LockoutPolicy(store).status("ghost").count == 1

    def test_disabled_account_records_nothing(self, store, backend):
        store.set_user_active("ref_ava", False)
        writes = backend.writes
        with pytest.raises(AccountDisabledError):
            SessionManager(store).login("ref_ava", SEED_PASSWORD)
        assert backend.writes == writes

    def test_fifth_failure_raises_locked(self, store):
        manager = SessionManager(store)
        for _ in range(4):
            with pytest.raises(InvalidCredentialsError):
                manager.login("ref_ava", "nope")
        with pytest.raises(LockedError) as excinfo:
            manager.login("ref_ava", "nope")
        assert excinfo.value.locked_until == "2026-10-19T12:10:00Z"

    def test_locked_user_cannot_login_with_right_password(self, store):
        manager = SessionManager(store)
        for _ in range(5):
            with pytest.raises((InvalidCredentialsError, LockedError)):
                manager.login("ref_ava", "nope")
        with pytest.raises(LockedError):
            manager.login("ref_ava", SEED_PASSWORD)

    def test_success_clears_failures(self, store):
        manager = SessionManager(store)
        for _ in range(3):
            with pytest.raises(InvalidCredentialsError):
                manager.login("ref_ava", "nope")
        manager.login("ref_ava", SEED_PASSWORD)
        assert LockoutPolicy(store).status("ref_ava").count == 0

    def test_login_after_lock_lapses(self, store, clock):
        manager = SessionManager(store)
        for _ in range(5):
            with pytest.raises((InvalidCredentialsError, LockedError)):
                manager.login("ref_ava", "nope")
        clock.advance(minutes=11)
        assert manager.login("ref_ava", SEED_PASSWORD).username == "ref_ava"


# =============================================================================
# VALIDITY
# =============================================================================


class TestValidity:
    def test_absolute_timeout(self, store, clock):
        manager = SessionManager(store)
        session = Session(
            username="ref_ava",
            created_at=clock() - timedelta(hours=13),
            last_active_at=clock() - timedelta(minutes=1),
        )
        assert manager.is_valid(session) is False

    def test_idle_timeout(self, store, clock):
        manager = SessionManager(store)
        session = Session(
            username="ref_ava",
            created_at=clock() - timedelta(minutes=1),
            last_active_at=clock() - timedelta(minutes=31),
        )
        assert manager.is_valid(session) is False

    def test_touch_keeps_session_alive(self, store, clock):
        manager = SessionManager(store)
        session = manager.login("ref_ava", SEED_PASSWORD)
        for _ in range(4):
            clock.advance(minutes=25)
            assert manager.is_valid(session)
            session = manager.touch(session)
        assert session.created_at < session.last_active_at
        assert manager.is_valid(session)

    def test_deactivated_user_invalidates_session(self, store):
        manager = SessionManager(store)
        session = manager.login("ref_ava", SEED_PASSWORD)
        store.set_user_active("ref_ava", False)
        assert manager.is_valid(session) is False
        assert manager.current_user(session) is None

    def test_deleted_user_invalidates_session(self, store):
        manager = SessionManager(store)
        session = manager.login("ref_ava", SEED_PASSWORD)
        store.delete_user("ref_ava")
        assert manager.is_valid(session) is False

    def test_none_is_not_valid(self, store):
        assert SessionManager(store).is_valid(None) is False

    def test_logout_is_audited(self, store):
        manager = SessionManager(store)
        manager.logout(manager.login("ref_ava", SEED_PASSWORD))
        entry = store.list_audit(1)[0]
        assert (entry["action"], entry["details"]) == ("logout", "User logged out.")

    def test_validate_password_uses_policy(self, store):
        manager = SessionManager(store)
        manager.validate_password("abcdefg1")
        for weak in ["short1", "abcdefgh", "12345678"]:
            with pytest.raises(ValidationError):
                manager.validate_password(weak)


# =============================================================================
# TOKENS
# =============================================================================


class TestTokens:
    def test_token_round_trip(self, store):
        session = SessionManager(store).login("ref_ava", SEED_PASSWORD)
        assert decode_token(encode_token(session)) == session

    @pytest.mark.parametrize("token", ["", "not-a-token", "e30", None])
    def test_junk_tokens_rejected(self, token):
        with pytest.raises(SessionExpiredError):
            decode_token(token)

    def test_authenticate_touches(self, store, clock):
        manager = SessionManager(store)
        token = encode_token(manager.login("ref_ava", SEED_PASSWORD))
        clock.advance(minutes=10)
        session, user = manager.authenticate(token)
        assert user["username"] == "ref_ava"
        assert session.last_active_at == clock()

    def test_authenticate_expired(self, store, clock):
        manager = SessionManager(store)
        token = encode_token(manager.login("ref_ava", SEED_PASSWORD))
        clock.advance(minutes=31)
        with pytest.raises(SessionExpiredError):
            manager.authenticate(token)
