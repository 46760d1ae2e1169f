# Overview: Service-layer operations for sessions; login, validity, activity and logout.

"""
Session Management

Sessions are held by the caller, never by the store. Validity is derived
from the session timestamps and the current user record on every check.

TIMEOUTS (settings.auth_policy):
- absolute_timeout_hours: measured from created_at
- idle_timeout_minutes: measured from last_active_at

touch() is called per observed activity, not on a timer, so a session with
no activity for the idle window expires even inside the absolute window.

NOTE: Passwords are compared as plain strings and the bearer token is the
session itself, base64-encoded. A hostile client can forge one.
"""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Optional

from .document_store import find_user, make_audit_entry
from .lockout_policy import apply_failure, apply_success, status_of
from .schema_migrator import DEFAULT_AUTH_POLICY
from ..time_utils import parse_iso_datetime, to_utc_z
from ..validation import normalize_username, validate_password_strength


class AuthError(Exception):
    """Login or session failure."""


class InvalidCredentialsError(AuthError):
    """Unknown username or wrong password."""

    def __init__(self, message: str = "Invalid username or password."):
        super().__init__(message)


class AccountDisabledError(AuthError):
    """The account exists but is inactive."""

    def __init__(self, message: str = "Account is disabled."):
        super().__init__(message)


class LockedError(AuthError):
    """Too many failed logins; carries the unlock timestamp."""

    def __init__(self, locked_until: Optional[str]):
        self.locked_until = locked_until
        super().__init__(f"Too many failed attempts. Locked until {locked_until}.")


class SessionExpiredError(AuthError):
    """Token is malformed, expired, or its user is gone or disabled."""

    def __init__(self, message: str = "Session expired. Please log in again."):
        super().__init__(message)


@dataclass(frozen=True)
class Session:
    username: str
    created_at: datetime
    last_active_at: datetime

    def to_dict(self):
        return {
            "username": self.username,
            "created_at": to_utc_z(self.created_at),
            "last_active_at": to_utc_z(self.last_active_at),
        }


def encode_token(session: Session) -> str:
    payload = json.dumps(session.to_dict(), separators=(",", ":")).encode("utf-8")
    return base64.urlsafe_b64encode(payload).decode("ascii").rstrip("=")


def decode_token(token: str) -> Session:
    """Raises SessionExpiredError for anything that is not a well-formed session."""
    try:
        raw = str(token or "").strip()
        padded = raw + "=" * (-len(raw) % 4)
        data = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")))
        created_at = parse_iso_datetime(data["created_at"])
        last_active_at = parse_iso_datetime(data["last_active_at"])
        username = normalize_username(data["username"])
    except (binascii.Error, KeyError, TypeError, ValueError):
        raise SessionExpiredError("Invalid session token.")
    if not username or created_at is None or last_active_at is None:
        raise SessionExpiredError("Invalid session token.")
    return Session(username=username, created_at=created_at, last_active_at=last_active_at)


def session_timeouts(settings: dict) -> tuple[timedelta, timedelta]:
    """(absolute, idle) windows from the auth policy."""
    policy = settings.get("auth_policy") or {}
    hours = float(policy.get("absolute_timeout_hours") or DEFAULT_AUTH_POLICY["absolute_timeout_hours"])
    minutes = float(policy.get("idle_timeout_minutes") or DEFAULT_AUTH_POLICY["idle_timeout_minutes"])
    return timedelta(hours=hours), timedelta(minutes=minutes)


class SessionManager:
    """Issues, validates and expires caller-held sessions against a DocumentStore."""

    def __init__(self, store):
        self.store = store

    def login(self, username: str, password: str) -> Session:
        """
        Authenticate and issue a session.

        Checks run in order and stop at the first hit:
        1. locked username -> LockedError
        2. unknown username -> failure recorded, InvalidCredentialsError
        3. inactive user -> AccountDisabledError (no failure recorded)
        4. wrong password -> failure recorded; LockedError if that imposed a
           lock, else InvalidCredentialsError
        5. success -> lockout cleared, `login` audit entry, new session
        """
        uname = normalize_username(username)
        now = self.store.now()
        stamp = to_utc_z(now)

        def _attempt(doc):
            lockouts = doc["lockouts"]
            status = status_of(lockouts, uname, now)
            if status.locked:
                return ("locked", status.locked_until)

            user = find_user(doc, uname)
            if user is None:
                apply_failure(lockouts, uname, doc["settings"], now)
                return ("invalid", None)

            if not user.get("active", True):
                return ("disabled", None)

            if str(user.get("password") or "") != str(password or ""):
                after = apply_failure(lockouts, uname, doc["settings"], now)
                if after.locked:
                    return ("locked", after.locked_until)
                return ("invalid", None)

            apply_success(lockouts, uname)
            doc["audit_log"].insert(0, make_audit_entry(uname, "login", "User logged in.", stamp))
            return ("ok", None)

        outcome, locked_until = self.store.transaction(_attempt)

        if outcome == "locked":
            raise LockedError(locked_until)
        if outcome == "disabled":
            raise AccountDisabledError()
        if outcome == "invalid":
            raise InvalidCredentialsError()
        return Session(username=uname, created_at=now, last_active_at=now)

    def is_valid(self, session: Optional[Session]) -> bool:
        if session is None:
            return False
        now = self.store.now()
        absolute, idle = session_timeouts(self.store.get_settings())
        if now - session.created_at > absolute:
            return False
        if now - session.last_active_at > idle:
            return False
        user = self.store.get_user(session.username)
        return bool(user and user.get("active", True))

    def touch(self, session: Session) -> Session:
        return replace(session, last_active_at=self.store.now())

    def logout(self, session: Session) -> None:
        self.store.append_audit(session.username, "logout", "User logged out.")

    def validate_password(self, password: str) -> None:
        """Check a new password against the configured auth policy (ValidationError)."""
        validate_password_strength(password, self.store.get_settings().get("auth_policy") or {})

    def current_user(self, session: Optional[Session]) -> Optional[dict]:
        if not self.is_valid(session):
            return None
        return self.store.get_user(session.username)

    def authenticate(self, token: str) -> tuple[Session, dict]:
        """
        Bearer token -> (touched session, user).

        Raises SessionExpiredError when the token is bad or the session is no
        longer valid.
        """
        session = decode_token(token)
        user = self.current_user(session)
        if user is None:
            raise SessionExpiredError()
        return self.touch(session), user
