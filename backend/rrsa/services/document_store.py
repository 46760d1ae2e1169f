# Overview: The single persisted document and every read/mutate/write operation on it.

"""
Document Store

One JSON document holds the whole association: settings, users, invites,
lockouts, audit history, attendance events and performance reviews.

Every operation goes through transaction(): read the whole document, apply a
mutation to a private copy, write the whole document back. An exception in
the mutation persists nothing. The write carries the revision of the read,
so a concurrent writer surfaces as ConcurrentWriteError instead of a lost
update. There is no retry.

Query methods return freshly parsed copies; callers may mutate them freely.
"""

from __future__ import annotations

import copy
import json
import logging
from typing import Any, Callable, Optional

from .document_backends import DocumentBackend
from .schema_migrator import (
    CURRENT_SCHEMA_VERSION,
    DEFAULT_DEPARTMENT,
    build_seed,
    default_settings,
    load_or_init,
    new_id,
)
from ..permissions import parse_global_role, parse_league_role
from ..time_utils import Clock, to_utc_z, utcnow
from ..validation import (
    ConflictError,
    NotFoundError,
    SchemaError,
    ValidationError,
    normalize_username,
    require_int,
    require_number,
    validate_username,
)


logger = logging.getLogger(__name__)


REQUIRED_ARRAY_FIELDS = ("users", "attendance_events", "performance_reviews")

# (actor, action, details)
AuditNote = tuple[str, str, str]


def dumps(doc: dict) -> str:
    return json.dumps(doc, ensure_ascii=False, separators=(",", ":"))


def make_audit_entry(actor: str, action: str, details: str, at: str) -> dict:
    return {
        "id": new_id("aud"),
        "at": at,
        "actor": str(actor or "system"),
        "action": str(action),
        "details": str(details or ""),
    }


def find_user(doc: dict, username: Any) -> Optional[dict]:
    uname = normalize_username(username)
    for user in doc["users"]:
        if user.get("username") == uname:
            return user
    return None


def validate_settings(settings: dict) -> dict:
    """
    Check a full settings block. Returns the normalized block.

    Raises ValidationError on the first problem found.
    """
    threshold = require_number(settings.get("performance_threshold"), "performance_threshold", low=1, high=10)

    raw_leagues = settings.get("leagues")
    if not isinstance(raw_leagues, list):
        raise ValidationError("leagues must be a list")
    leagues = [str(lg).strip() for lg in raw_leagues]
    if not leagues or any(not lg for lg in leagues):
        raise ValidationError("leagues must be a non-empty list of names")
    if len(set(leagues)) != len(leagues):
        raise ValidationError("leagues must not repeat")

    default_league = str(settings.get("default_league") or "").strip()
    if default_league not in leagues:
        raise ValidationError("default_league must be one of leagues")

    policy = settings.get("auth_policy")
    if not isinstance(policy, dict):
        raise ValidationError("auth_policy must be an object")

    return {
        "performance_threshold": threshold,
        "leagues": leagues,
        "default_league": default_league,
        "auth_policy": {
            "min_length": require_int(policy.get("min_length"), "min_length", minimum=6),
            "require_letter": bool(policy.get("require_letter")),
            "require_number": bool(policy.get("require_number")),
            "max_failed_attempts": require_int(policy.get("max_failed_attempts"), "max_failed_attempts", minimum=1),
            "lock_minutes": require_int(policy.get("lock_minutes"), "lock_minutes", minimum=1),
            "idle_timeout_minutes": require_int(policy.get("idle_timeout_minutes"), "idle_timeout_minutes", minimum=1),
            "absolute_timeout_hours": require_int(policy.get("absolute_timeout_hours"), "absolute_timeout_hours", minimum=1),
        },
    }


class DocumentStore:
    """Owns the persisted document. Constructed once per app and passed to every service."""

    def __init__(self, backend: DocumentBackend, clock: Clock = utcnow):
        self.backend = backend
        self.clock = clock
        self._ready = False

    # -- lifecycle --

    def init(self) -> bool:
        """
        Load or seed the document, migrating it when needed.

        Returns True when something was written back.
        """
        text, revision = self.backend.read()
        doc, changed = load_or_init(text, self.now())
        if changed:
            self.backend.write(dumps(doc), revision)
        self._ready = True
        return changed

    def teardown(self) -> None:
        self._ready = False

    @property
    def ready(self) -> bool:
        return self._ready

    def now(self):
        return self.clock()

    def stamp(self) -> str:
        return to_utc_z(self.now())

    # -- core --

    def _read(self) -> tuple[dict, Optional[str]]:
        if not self._ready:
            raise RuntimeError("Document store is not initialized")
        text, revision = self.backend.read()
        if text is None:
            raise RuntimeError("Document store is empty; run init() or reset()")
        return json.loads(text), revision

    def snapshot(self) -> dict:
        doc, _ = self._read()
        return doc

    def transaction(self, mutate: Callable[[dict], Any], *, audit: Optional[AuditNote] = None) -> Any:
        """
        Apply `mutate` to a fresh copy of the document and persist it.

        `mutate` receives the whole document and may return a result, which is
        handed back to the caller. If it raises, nothing is written. If it
        leaves the document unchanged (and no audit is requested), nothing is
        written either. `audit` appends one audit entry in the same write.
        """
        doc, revision = self._read()
        original = copy.deepcopy(doc)

        result = mutate(doc)

        if audit is not None:
            actor, action, details = audit
            doc["audit_log"].insert(0, make_audit_entry(actor, action, details, self.stamp()))

        if doc != original:
            doc.setdefault("meta", {})["updated_at"] = self.stamp()
            self.backend.write(dumps(doc), revision)

        return copy.deepcopy(result)

    # -- users --

    def list_users(self) -> list[dict]:
        return self.snapshot()["users"]

    def get_user(self, username: Any) -> Optional[dict]:
        return find_user(self.snapshot(), username)

    def get_user_by_id(self, user_id: str) -> Optional[dict]:
        for user in self.snapshot()["users"]:
            if user.get("id") == user_id:
                return user
        return None

    def create_user(
        self,
        username: str,
        password: str,
        display_name: Optional[str] = None,
        global_role: str = "OFFICIAL",
        league: Optional[str] = None,
        league_role: str = "OFFICIAL",
        department: Optional[str] = None,
        *,
        audit: Optional[AuditNote] = None,
    ) -> dict:
        uname = validate_username(username)

        parsed_global = parse_global_role(global_role or "OFFICIAL")
        if parsed_global is None:
            raise ValidationError(f"Unknown global role: {global_role}")
        parsed_league = parse_league_role(league_role or "OFFICIAL")
        if parsed_league is None:
            raise ValidationError(f"Unknown league role: {league_role}")

        def _create(doc):
            if find_user(doc, uname) is not None:
                raise ConflictError("Username already exists.")
            scope = str(league or doc["settings"].get("default_league") or "").strip()
            if scope not in doc["settings"].get("leagues", []):
                raise ValidationError(f"Unknown league: {scope}")
            user = {
                "id": new_id("usr"),
                "username": uname,
                "password": str(password or ""),
                "display_name": str(display_name or uname).strip() or uname,
                "global_role": parsed_global.value,
                "league_roles": {
                    scope: {
                        "role": parsed_league.value,
                        "department": str(department or DEFAULT_DEPARTMENT),
                    }
                },
                "active": True,
            }
            doc["users"].append(user)
            return user

        return self.transaction(_create, audit=audit)

    def update_user(self, user: dict, *, audit: Optional[AuditNote] = None) -> dict:
        """
        Replace a user record wholesale. Callers merge fields before calling.

        id and username are immutable; a changed username is rejected.
        """
        if not isinstance(user, dict) or not user.get("id"):
            raise ValidationError("User record with an id is required")
        if parse_global_role(user.get("global_role")) is None:
            raise ValidationError(f"Unknown global role: {user.get('global_role')}")
        league_roles = user.get("league_roles") or {}
        if not isinstance(league_roles, dict):
            raise ValidationError("league_roles must be an object")
        for entry in league_roles.values():
            if not isinstance(entry, dict) or parse_league_role(entry.get("role")) is None:
                raise ValidationError("Each league role needs a known role")

        def _update(doc):
            for idx, existing in enumerate(doc["users"]):
                if existing.get("id") == user["id"]:
                    if normalize_username(user.get("username")) != existing["username"]:
                        raise ValidationError("Username cannot be changed.")
                    replacement = copy.deepcopy(user)
                    replacement["username"] = existing["username"]
                    replacement["active"] = bool(replacement.get("active", True))
                    doc["users"][idx] = replacement
                    return replacement
            raise NotFoundError("User not found")

        return self.transaction(_update, audit=audit)

    def delete_user(self, username: Any, *, audit: Optional[AuditNote] = None) -> dict:
        """
        Remove a user and everything that points at them by username:
        attendance marks, reviews about them, and their lockout record.
        """
        uname = normalize_username(username)

        def _delete(doc):
            user = find_user(doc, uname)
            if user is None:
                raise NotFoundError("User not found.")
            doc["users"] = [u for u in doc["users"] if u is not user]
            for event in doc["attendance_events"]:
                event["marks"] = [
                    m for m in event.get("marks") or []
                    if normalize_username(m.get("username")) != uname
                ]
            doc["performance_reviews"] = [
                r for r in doc["performance_reviews"]
                if normalize_username(r.get("subject_username")) != uname
            ]
            doc["lockouts"].pop(uname, None)
            return user

        removed = self.transaction(_delete, audit=audit)
        logger.info("Deleted user %s with cascading records", uname)
        return removed

    def _mutate_user(self, username: Any, change: Callable[[dict], None], audit: Optional[AuditNote]) -> dict:
        def _apply(doc):
            user = find_user(doc, username)
            if user is None:
                raise NotFoundError("User not found.")
            change(user)
            return user

        return self.transaction(_apply, audit=audit)

    def set_user_password(self, username: Any, password: str, *, audit: Optional[AuditNote] = None) -> dict:
        def _change(user):
            user["password"] = str(password or "")

        return self._mutate_user(username, _change, audit)

    def set_user_active(self, username: Any, active: bool, *, audit: Optional[AuditNote] = None) -> dict:
        def _change(user):
            user["active"] = bool(active)

        return self._mutate_user(username, _change, audit)

    def set_league_role(
        self,
        username: Any,
        league: str,
        role: Optional[str],
        department: Optional[str] = None,
        *,
        audit: Optional[AuditNote] = None,
    ) -> dict:
        """Grant, change or (role=None) remove a user's role in one league."""
        scope = str(league or "").strip()
        if not scope:
            raise ValidationError("League is required")
        parsed = None
        if role is not None:
            parsed = parse_league_role(role)
            if parsed is None:
                raise ValidationError(f"Unknown league role: {role}")

        def _change(user):
            roles = user.setdefault("league_roles", {})
            if parsed is None:
                roles.pop(scope, None)
                return
            current = roles.get(scope) or {}
            roles[scope] = {
                "role": parsed.value,
                "department": str(department or current.get("department") or DEFAULT_DEPARTMENT),
            }

        return self._mutate_user(username, _change, audit)

    # -- records --

    def add_attendance_event(self, event: dict, *, audit: Optional[AuditNote] = None) -> dict:
        def _add(doc):
            doc["attendance_events"].insert(0, event)
            return event

        return self.transaction(_add, audit=audit)

    def get_attendance_event(self, event_id: str) -> Optional[dict]:
        for event in self.snapshot()["attendance_events"]:
            if event.get("id") == event_id:
                return event
        return None

    def mark_attendance(self, event_id: str, mark: dict, *, audit: Optional[AuditNote] = None) -> dict:
        """Record a mark on an event, replacing any earlier mark for the same username."""
        uname = normalize_username(mark.get("username"))

        def _mark(doc):
            for event in doc["attendance_events"]:
                if event.get("id") == event_id:
                    marks = [
                        m for m in event.get("marks") or []
                        if normalize_username(m.get("username")) != uname
                    ]
                    marks.append(mark)
                    event["marks"] = marks
                    return event
            raise NotFoundError("Attendance event not found.")

        return self.transaction(_mark, audit=audit)

    def list_attendance(self, league: Optional[str] = None) -> list[dict]:
        events = self.snapshot()["attendance_events"]
        if league is None:
            return events
        return [e for e in events if e.get("league") == league]

    def add_performance_review(self, review: dict, *, audit: Optional[AuditNote] = None) -> dict:
        def _add(doc):
            doc["performance_reviews"].insert(0, review)
            return review

        return self.transaction(_add, audit=audit)

    def list_performance(self, league: Optional[str] = None) -> list[dict]:
        reviews = self.snapshot()["performance_reviews"]
        if league is None:
            return reviews
        return [r for r in reviews if r.get("league") == league]

    # -- audit --

    def append_audit(self, actor: str, action: str, details: str = "") -> dict:
        def _append(doc):
            entry = make_audit_entry(actor, action, details, self.stamp())
            doc["audit_log"].insert(0, entry)
            return entry

        return self.transaction(_append)

    def list_audit(self, limit: Optional[int] = None) -> list[dict]:
        entries = self.snapshot()["audit_log"]
        return entries if limit is None else entries[:limit]

    # -- invites --

    def list_invites(self) -> list[dict]:
        return self.snapshot()["invites"]

    # -- settings --

    def get_settings(self) -> dict:
        return self.snapshot()["settings"]

    def list_leagues(self) -> list[str]:
        return list(self.get_settings().get("leagues") or [])

    def update_settings(self, changes: dict, *, audit: Optional[AuditNote] = None) -> dict:
        """
        Merge `changes` into settings and validate the result.

        auth_policy is merged key by key. If the league list changes and no
        default_league is given, the default falls back to the first league.
        """
        if not isinstance(changes, dict):
            raise ValidationError("Settings changes must be an object")
        allowed = set(default_settings())
        unknown = sorted(set(changes) - allowed)
        if unknown:
            raise ValidationError(f"Unknown settings: {', '.join(unknown)}")

        def _update(doc):
            merged = copy.deepcopy(doc["settings"])
            for key, value in changes.items():
                if key == "auth_policy":
                    if not isinstance(value, dict):
                        raise ValidationError("auth_policy must be an object")
                    merged.setdefault("auth_policy", {}).update(value)
                else:
                    merged[key] = value
            if "default_league" not in changes and isinstance(merged.get("leagues"), list):
                leagues = [str(lg).strip() for lg in merged["leagues"]]
                if leagues and merged.get("default_league") not in leagues:
                    merged["default_league"] = leagues[0]
            doc["settings"] = validate_settings(merged)
            return doc["settings"]

        return self.transaction(_update, audit=audit)

    # -- whole document --

    def export_document(self) -> dict:
        return self.snapshot()

    def import_document(self, incoming: Any, *, audit: Optional[AuditNote] = None) -> dict:
        """
        Replace the whole document with `incoming`. No merge.

        The schema version must match exactly and the required arrays must be
        present. Missing optional sections get empty defaults.
        """
        if not isinstance(incoming, dict):
            raise SchemaError("Invalid document: expected a JSON object.")
        if "schema_version" not in incoming:
            raise SchemaError("Missing schema_version.")
        if incoming.get("schema_version") != CURRENT_SCHEMA_VERSION:
            raise SchemaError(f"Unsupported schema_version. Expected {CURRENT_SCHEMA_VERSION}.")
        for field in REQUIRED_ARRAY_FIELDS:
            if not isinstance(incoming.get(field), list):
                raise SchemaError(f"Invalid document: {field} must be a list.")

        replacement = copy.deepcopy(incoming)
        replacement["settings"] = {**default_settings(), **(replacement.get("settings") or {})}
        if not isinstance(replacement.get("meta"), dict):
            replacement["meta"] = {}
        replacement["meta"].setdefault("created_at", self.stamp())
        for field in ("invites", "audit_log"):
            if not isinstance(replacement.get(field), list):
                replacement[field] = []
        if not isinstance(replacement.get("lockouts"), dict):
            replacement["lockouts"] = {}

        def _replace(doc):
            doc.clear()
            doc.update(replacement)
            return {
                "users": len(doc["users"]),
                "attendance_events": len(doc["attendance_events"]),
                "performance_reviews": len(doc["performance_reviews"]),
            }

        counts = self.transaction(_replace, audit=audit)
        logger.info("Imported document: %s", counts)
        return counts

    def reset(self, *, actor: str = "system") -> dict:
        """Throw away the current document and write a fresh seed."""
        _, revision = self.backend.read()
        seed = build_seed(self.now())
        seed["audit_log"].insert(0, make_audit_entry(actor, "reset", "Database reset to seed.", self.stamp()))
        self.backend.write(dumps(seed), revision)
        self._ready = True
        logger.warning("Document reset to seed by %s", actor)
        return copy.deepcopy(seed)
