"""
Schema Migrator

Brings whatever is in storage up to the current document schema, or replaces
it with the starter seed.

LOAD RULES:
- Nothing stored, unparseable JSON, or a non-object payload -> fresh seed
- No users at all (missing or empty list) -> fresh seed, never migrated
- Current version -> returned untouched (changed=False)
- Any other version -> migrated forward, one "migrate" audit entry prepended
- A migration that blows up on a damaged document -> fresh seed (logged)

Older documents come from the browser-era layout (camelCase keys,
`_meta.version` 1-12, sections named attendance/performance/audit and
auth.fails for lockouts). Everything is rewritten to snake_case.
"""

from __future__ import annotations

import copy
import json
import logging
import secrets
from datetime import datetime, timezone
from typing import Any

from ..permissions import (
    DEFAULT_GLOBAL_ROLE,
    DEFAULT_LEAGUE_ROLE,
    parse_global_role,
    parse_league_role,
)
from ..time_utils import to_utc_z
from ..validation import ValidationError, normalize_username, require_int, require_number


logger = logging.getLogger(__name__)


CURRENT_SCHEMA_VERSION = 13

DEFAULT_LEAGUES = ("RRSA", "RRFL", "RRBL", "RRHL")
DEFAULT_LEAGUE = "RRFL"
DEFAULT_PERFORMANCE_THRESHOLD = 6.5
DEFAULT_DEPARTMENT = "Officials"

DEFAULT_AUTH_POLICY = {
    "min_length": 8,
    "require_letter": True,
    "require_number": True,
    "max_failed_attempts": 5,
    "lock_minutes": 10,
    "idle_timeout_minutes": 30,
    "absolute_timeout_hours": 12,
}

# Legacy camelCase -> current key
_AUTH_POLICY_KEYS = {
    "minLen": "min_length",
    "requireLetter": "require_letter",
    "requireNumber": "require_number",
    "maxFailedAttempts": "max_failed_attempts",
    "lockMinutes": "lock_minutes",
    "idleTimeoutMinutes": "idle_timeout_minutes",
    "absoluteTimeoutHours": "absolute_timeout_hours",
}

_POLICY_MINIMUMS = {"min_length": 6}

SCORE_KEYS = ("rule_knowledge", "communication", "fairness", "consistency", "professionalism")
_LEGACY_SCORE_KEYS = {"ruleKnowledge": "rule_knowledge"}

SEED_PASSWORD = "rrsa"

# (username, display_name, global_role, league_roles)
SEED_USERS = (
    ("mrv", "M.R.VR", "EXEC_COMMISSIONER", {}),
    ("vp_pox", "VP Pox", "EXEC_EVP", {}),
    ("shark", "CAO Shark", "EXEC_CAO", {}),
    ("will", "DAO Will", "EXEC_DAO", {}),
    ("head_media", "Head of RRSA Media", "HEAD_RRSA_MEDIA", {}),
    ("media_team", "RRSA Media Team", "MEDIA_TEAM", {}),
    ("rrfl_mgr", "RRFL League Manager", "OFFICIAL",
     {"RRFL": {"role": "LEAGUE_MANAGER", "department": "League"}}),
    ("head_refs", "Head of Referees", "OFFICIAL",
     {"RRFL": {"role": "HEAD_OF_REFEREES", "department": "League"}}),
    ("ref_ava", "Ref Ava", "OFFICIAL",
     {"RRFL": {"role": "OFFICIAL", "department": "Officials"}}),
)


def new_id(prefix: str) -> str:
    """Opaque record id, e.g. usr_3f9a0c1d2e4b."""
    return f"{prefix}_{secrets.token_hex(6)}"


def default_settings() -> dict:
    return {
        "performance_threshold": DEFAULT_PERFORMANCE_THRESHOLD,
        "leagues": list(DEFAULT_LEAGUES),
        "default_league": DEFAULT_LEAGUE,
        "auth_policy": dict(DEFAULT_AUTH_POLICY),
    }


def seed_user_id(username: str) -> str:
    return f"usr_{username}"


def build_seed(now: datetime) -> dict:
    """
    Build the starter document.

    Deterministic for a given `now`: ids derive from usernames and every
    timestamp is `now`, so two seeds built at the same instant are equal.
    """
    stamp = to_utc_z(now)

    users = [
        {
            "id": seed_user_id(username),
            "username": username,
            "password": SEED_PASSWORD,
            "display_name": display_name,
            "global_role": global_role,
            "league_roles": copy.deepcopy(league_roles),
            "active": True,
        }
        for username, display_name, global_role, league_roles in SEED_USERS
    ]

    return {
        "schema_version": CURRENT_SCHEMA_VERSION,
        "meta": {"created_at": stamp, "updated_at": stamp},
        "settings": default_settings(),
        "users": users,
        "invites": [],
        "audit_log": [
            {
                "id": "aud_seed",
                "at": stamp,
                "actor": "system",
                "action": "seed",
                "details": f"Initial seed applied (v{CURRENT_SCHEMA_VERSION}).",
            }
        ],
        "lockouts": {},
        "attendance_events": [
            {
                "id": "att_seed",
                "event_type": "Game",
                "league": "RRFL",
                "event_name": "RRFL Week 1 - Match A",
                "event_date": "2026-01-25",
                "created_at": stamp,
                "created_by": "mrv",
                "marks": [
                    {
                        "user_id": seed_user_id("ref_ava"),
                        "username": "ref_ava",
                        "status": "Present",
                        "timestamp": stamp,
                        "note": "",
                    }
                ],
            }
        ],
        "performance_reviews": [
            {
                "id": "perf_seed",
                "league": "RRFL",
                "subject_username": "ref_ava",
                "event_ref": "RRFL Week 1 - Match A",
                "created_at": stamp,
                "created_by": "head_refs",
                "scores": {
                    "rule_knowledge": 8,
                    "communication": 7,
                    "fairness": 8,
                    "consistency": 7,
                    "professionalism": 8,
                },
                "comments": "Solid calls. Improve whistle cadence & comms.",
            }
        ],
    }


def document_version(doc: dict) -> int:
    """Read the schema version from either layout. Missing or junk reads as 1."""
    raw = doc.get("schema_version")
    if raw is None:
        meta = doc.get("_meta")
        raw = meta.get("version") if isinstance(meta, dict) else None
    try:
        return int(raw) if raw is not None else 1
    except (TypeError, ValueError):
        return 1


def has_users(doc: dict) -> bool:
    users = doc.get("users")
    return isinstance(users, list) and len(users) > 0


def load_or_init(raw: Any, now: datetime) -> tuple[dict, bool]:
    """
    Turn whatever storage returned into a current document.

    `raw` may be None, JSON text/bytes, or an already-parsed object.
    Returns (document, changed); changed=False means the caller has nothing
    to write back.
    """
    if raw is None:
        logger.info("No stored document; seeding schema v%s", CURRENT_SCHEMA_VERSION)
        return build_seed(now), True

    doc = raw
    if isinstance(raw, (str, bytes, bytearray)):
        try:
            doc = json.loads(raw)
        except ValueError:
            logger.warning("Stored document is not valid JSON; replacing with seed")
            return build_seed(now), True

    if not isinstance(doc, dict):
        logger.warning("Stored document is not an object; replacing with seed")
        return build_seed(now), True

    if not has_users(doc):
        logger.warning("Stored document has no users; replacing with seed")
        return build_seed(now), True

    version = document_version(doc)
    if version == CURRENT_SCHEMA_VERSION:
        return doc, False

    try:
        migrated = migrate(doc, now)
    except (AttributeError, KeyError, TypeError, ValueError):
        logger.warning("Migration from v%s failed; replacing with seed", version, exc_info=True)
        return build_seed(now), True

    if not has_users(migrated):
        logger.warning("No usable users survived migration; replacing with seed")
        return build_seed(now), True

    logger.info("Migrated stored document v%s -> v%s", version, CURRENT_SCHEMA_VERSION)
    return migrated, True


def migrate(doc: dict, now: datetime) -> dict:
    """
    Rewrite a document of any prior version into the current layout.

    Does not check for an empty user list; load_or_init handles that first.
    """
    old = copy.deepcopy(doc)
    from_version = document_version(old)
    stamp = to_utc_z(now)

    settings = _migrate_settings(old.get("settings"))
    default_league = settings["default_league"]

    legacy_meta = _as_dict(old.get("meta")) or _as_dict(old.get("_meta"))
    created_at = _pick(legacy_meta, "created_at", "createdAt") or stamp

    audit_log = [_migrate_audit(a) for a in _as_list(_pick(old, "audit_log", "audit")) if isinstance(a, dict)]
    audit_log.insert(0, {
        "id": new_id("aud"),
        "at": stamp,
        "actor": "system",
        "action": "migrate",
        "details": f"Migrated v{from_version} → v{CURRENT_SCHEMA_VERSION} schema.",
    })

    return {
        "schema_version": CURRENT_SCHEMA_VERSION,
        "meta": {"created_at": created_at, "updated_at": stamp},
        "settings": settings,
        "users": _migrate_users(_as_list(old.get("users")), default_league),
        "invites": [_migrate_invite(i, default_league) for i in _as_list(old.get("invites")) if isinstance(i, dict)],
        "audit_log": audit_log,
        "lockouts": _migrate_lockouts(old),
        "attendance_events": [
            _migrate_attendance_event(e)
            for e in _as_list(_pick(old, "attendance_events", "attendance"))
            if isinstance(e, dict)
        ],
        "performance_reviews": [
            _migrate_review(r)
            for r in _as_list(_pick(old, "performance_reviews", "performance"))
            if isinstance(r, dict)
        ],
    }


# -- helpers --

def _pick(d: dict, *keys, default=None):
    for key in keys:
        if key in d and d[key] is not None:
            return d[key]
    return default


def _as_list(value) -> list:
    return value if isinstance(value, list) else []


def _as_dict(value) -> dict:
    return value if isinstance(value, dict) else {}


def _migrate_settings(raw) -> dict:
    raw = _as_dict(raw)
    settings = default_settings()

    threshold = _pick(raw, "performance_threshold", "performanceThreshold")
    if threshold is not None:
        try:
            settings["performance_threshold"] = require_number(threshold, "performance_threshold", low=1, high=10)
        except ValidationError:
            logger.warning("Dropping invalid legacy performance_threshold %r", threshold)

    leagues = list(dict.fromkeys(str(lg).strip() for lg in _as_list(raw.get("leagues")) if str(lg).strip()))
    if leagues:
        settings["leagues"] = leagues

    default_league = str(_pick(raw, "default_league", "defaultLeague", default=DEFAULT_LEAGUE))
    if default_league not in settings["leagues"]:
        default_league = settings["leagues"][0]
    settings["default_league"] = default_league

    policy = _as_dict(_pick(raw, "auth_policy", "authPolicy"))
    for key, value in policy.items():
        target = _AUTH_POLICY_KEYS.get(key, key)
        if target not in DEFAULT_AUTH_POLICY or value is None:
            continue
        if isinstance(DEFAULT_AUTH_POLICY[target], bool):
            settings["auth_policy"][target] = value is not False
            continue
        try:
            settings["auth_policy"][target] = require_int(value, target, minimum=_POLICY_MINIMUMS.get(target, 1))
        except ValidationError:
            logger.warning("Dropping invalid legacy auth policy %s=%r", target, value)

    return settings


def _migrate_users(raw_users: list, default_league: str) -> list:
    """Migrate each user, dropping blank usernames and case-folded duplicates (first wins)."""
    users, seen = [], set()
    for raw in raw_users:
        if not isinstance(raw, dict):
            continue
        user = _migrate_user(raw, default_league)
        if not user["username"]:
            logger.warning("Dropping legacy user with a blank username")
            continue
        if user["username"] in seen:
            logger.warning("Dropping duplicate legacy user %r", user["username"])
            continue
        seen.add(user["username"])
        users.append(user)
    return users


def _migrate_user(raw: dict, default_league: str) -> dict:
    username = normalize_username(raw.get("username"))
    legacy_role = raw.get("role")

    # An exec/media legacy role is promoted; anything else falls back to OFFICIAL
    global_role = parse_global_role(_pick(raw, "global_role", "globalRole") or legacy_role) or DEFAULT_GLOBAL_ROLE

    league_roles = {}
    for league, entry in _as_dict(_pick(raw, "league_roles", "leagueRoles")).items():
        entry = _as_dict(entry)
        league_roles[str(league)] = {
            "role": (parse_league_role(entry.get("role")) or DEFAULT_LEAGUE_ROLE).value,
            "department": str(_pick(entry, "department", "dept", default=DEFAULT_DEPARTMENT)),
        }

    if not league_roles:
        league = str(raw.get("league") or default_league)
        league_roles[league] = {
            "role": (parse_league_role(legacy_role) or DEFAULT_LEAGUE_ROLE).value,
            "department": str(_pick(raw, "department", "dept", default=DEFAULT_DEPARTMENT)),
        }

    return {
        "id": str(raw.get("id") or seed_user_id(username)),
        "username": username,
        "password": str(raw.get("password") or ""),
        "display_name": str(_pick(raw, "display_name", "displayName", default=username)),
        "global_role": global_role.value,
        "league_roles": league_roles,
        "active": raw.get("active") is not False,
    }


def _migrate_invite(raw: dict, default_league: str) -> dict:
    max_uses = max(1, int(_pick(raw, "max_uses", "maxUses", default=1)))
    uses = min(max(0, int(raw.get("uses") or 0)), max_uses)
    return {
        "id": str(raw.get("id") or new_id("inv")),
        "code": str(raw.get("code") or "").strip().upper(),
        "league": str(raw.get("league") or default_league),
        "league_role": (parse_league_role(_pick(raw, "league_role", "leagueRole")) or DEFAULT_LEAGUE_ROLE).value,
        "department": str(_pick(raw, "department", "dept", default=DEFAULT_DEPARTMENT)),
        "created_by": str(_pick(raw, "created_by", "createdBy", default="")),
        "created_at": _pick(raw, "created_at", "createdAt"),
        "expires_at": _pick(raw, "expires_at", "expiresAt"),
        "max_uses": max_uses,
        "uses": uses,
        "active": raw.get("active") is not False and uses < max_uses,
        "note": str(raw.get("note") or ""),
    }


def _migrate_audit(raw: dict) -> dict:
    return {
        "id": str(raw.get("id") or new_id("aud")),
        "at": _pick(raw, "at", "timestamp"),
        "actor": str(raw.get("actor") or "system"),
        "action": str(raw.get("action") or ""),
        "details": str(raw.get("details") or ""),
    }


def _migrate_lockouts(old: dict) -> dict:
    source = old.get("lockouts")
    if not isinstance(source, dict):
        source = _as_dict(_as_dict(old.get("auth")).get("fails"))

    lockouts = {}
    for username, rec in source.items():
        rec = _as_dict(rec)
        locked_until = rec.get("locked_until")
        if locked_until is None:
            millis = rec.get("lockedUntilMs") or 0
            if millis:
                locked_until = to_utc_z(datetime.fromtimestamp(float(millis) / 1000, tz=timezone.utc))
        lockouts[normalize_username(username)] = {
            "count": int(rec.get("count") or 0),
            "locked_until": locked_until,
            "last_failed_at": _pick(rec, "last_failed_at", "lastAtISO"),
        }
    return lockouts


def _migrate_attendance_event(raw: dict) -> dict:
    marks = []
    for mark in _as_list(raw.get("marks")):
        if not isinstance(mark, dict):
            continue
        marks.append({
            "user_id": _pick(mark, "user_id", "userId"),
            "username": normalize_username(mark.get("username")),
            "status": str(mark.get("status") or "Present"),
            "timestamp": mark.get("timestamp"),
            "note": str(mark.get("note") or ""),
        })
    return {
        "id": str(raw.get("id") or new_id("att")),
        "event_type": str(_pick(raw, "event_type", "eventType", default="Game")),
        "league": str(raw.get("league") or ""),
        "event_name": str(_pick(raw, "event_name", "eventName", default="")),
        "event_date": _pick(raw, "event_date", "eventDate"),
        "created_at": _pick(raw, "created_at", "createdAt"),
        "created_by": str(_pick(raw, "created_by", "createdBy", default="")),
        "marks": marks,
    }


def _migrate_review(raw: dict) -> dict:
    scores = {}
    for key, value in _as_dict(raw.get("scores")).items():
        scores[_LEGACY_SCORE_KEYS.get(key, key)] = value
    return {
        "id": str(raw.get("id") or new_id("perf")),
        "league": str(raw.get("league") or ""),
        "subject_username": normalize_username(_pick(raw, "subject_username", "subjectUsername")),
        "event_ref": str(_pick(raw, "event_ref", "eventRef", default="")),
        "created_at": _pick(raw, "created_at", "createdAt"),
        "created_by": str(_pick(raw, "created_by", "createdBy", default="")),
        "scores": {key: scores.get(key) for key in SCORE_KEYS},
        "comments": str(raw.get("comments") or ""),
    }
