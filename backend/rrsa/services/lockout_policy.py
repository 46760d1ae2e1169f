"""
Login Lockout Policy

WHY: Slow down password guessing against a username.

STATES (per lowercase username, stored under document["lockouts"]):
- Clear: no record
- Accumulating: 1 <= count < max_failed_attempts
- Locked: locked_until in the future; count is reset to 0 when the lock is imposed

Thresholds come from settings.auth_policy (max_failed_attempts, lock_minutes).
A lapsed lock is left in storage until the next failure, success or clear;
status queries never write.

The apply_* functions mutate a lockouts mapping in place so the login flow
can run them inside its own document transaction.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from .schema_migrator import DEFAULT_AUTH_POLICY
from ..time_utils import minutes_after, parse_iso_datetime, to_utc_z
from ..validation import NotFoundError, normalize_username


@dataclass(frozen=True)
class LockoutStatus:
    locked: bool
    locked_until: Optional[str]
    count: int

    def to_dict(self):
        return {"locked": self.locked, "locked_until": self.locked_until, "count": self.count}


def policy_limits(settings: dict) -> tuple[int, int]:
    """(max_failed_attempts, lock_minutes) with the defaults filled in."""
    policy = settings.get("auth_policy") or {}
    max_failed = int(policy.get("max_failed_attempts") or DEFAULT_AUTH_POLICY["max_failed_attempts"])
    lock_minutes = int(policy.get("lock_minutes") or DEFAULT_AUTH_POLICY["lock_minutes"])
    return max(1, max_failed), max(1, lock_minutes)


def _is_active_lock(locked_until: Optional[str], now: datetime) -> bool:
    try:
        until = parse_iso_datetime(locked_until)
    except (TypeError, ValueError):
        return False
    return until is not None and until > now


def status_of(lockouts: dict, username: str, now: datetime) -> LockoutStatus:
    rec = lockouts.get(normalize_username(username))
    if not rec:
        return LockoutStatus(locked=False, locked_until=None, count=0)
    locked_until = rec.get("locked_until")
    return LockoutStatus(
        locked=_is_active_lock(locked_until, now),
        locked_until=locked_until,
        count=int(rec.get("count") or 0),
    )


def apply_failure(lockouts: dict, username: str, settings: dict, now: datetime) -> LockoutStatus:
    """
    Count one failed login. Reaching the maximum imposes a lock and resets count to 0.
    """
    uname = normalize_username(username)
    max_failed, lock_minutes = policy_limits(settings)

    rec = lockouts.get(uname) or {"count": 0, "locked_until": None, "last_failed_at": None}
    rec["count"] = int(rec.get("count") or 0) + 1
    rec["last_failed_at"] = to_utc_z(now)

    if rec["count"] >= max_failed:
        rec["locked_until"] = to_utc_z(minutes_after(now, lock_minutes))
        rec["count"] = 0

    lockouts[uname] = rec
    return status_of(lockouts, uname, now)


def apply_success(lockouts: dict, username: str) -> bool:
    """Back to Clear. Returns True if a record was removed."""
    return lockouts.pop(normalize_username(username), None) is not None


class LockoutPolicy:
    """Lockout operations bound to a DocumentStore."""

    def __init__(self, store):
        self.store = store

    def status(self, username: str) -> LockoutStatus:
        doc = self.store.snapshot()
        return status_of(doc["lockouts"], username, self.store.now())

    def is_locked(self, username: str) -> bool:
        return self.status(username).locked

    def record_failure(self, username: str) -> LockoutStatus:
        now = self.store.now()

        def _fail(doc):
            return apply_failure(doc["lockouts"], username, doc["settings"], now)

        return self.store.transaction(_fail)

    def record_success(self, username: str) -> bool:
        return self.store.transaction(lambda doc: apply_success(doc["lockouts"], username))

    def clear(self, username: str) -> bool:
        return self.record_success(username)

    def clear_lockout(self, username: str, *, actor: str) -> bool:
        """
        Admin unlock. Removes the record and audits it as `lockout_clear`.

        Raises NotFoundError for a username with no account and no record.
        """
        uname = normalize_username(username)

        def _clear(doc):
            known = any(u.get("username") == uname for u in doc["users"])
            if not known and uname not in doc["lockouts"]:
                raise NotFoundError("User not found.")
            return apply_success(doc["lockouts"], uname)

        return self.store.transaction(_clear, audit=(actor, "lockout_clear", f"Cleared lockout for {uname}."))

    def list_statuses(self) -> dict[str, LockoutStatus]:
        """Every stored record, lapsed locks included."""
        doc = self.store.snapshot()
        now = self.store.now()
        return {uname: status_of(doc["lockouts"], uname, now) for uname in sorted(doc["lockouts"])}
