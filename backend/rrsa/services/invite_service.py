"""
Invite Service

Scoped onboarding codes. An invite creates a new OFFICIAL user holding the
invite's league role, once per successful redemption, up to max_uses.

STATES:
- Active: active, uses < max_uses, not past expires_at
- Exhausted: uses == max_uses (active forced false on the final redemption)
- Revoked: explicit revoke; never undone
- Expired: derived from expires_at at redemption time; nothing sweeps
  expired invites, so listings keep showing them as active
"""

from __future__ import annotations

import math
import secrets
import string
from typing import Any, Optional

from .document_store import find_user, make_audit_entry
from .schema_migrator import DEFAULT_DEPARTMENT, new_id
from ..permissions import LeagueRole, parse_league_role
from ..time_utils import end_of_day_z, is_past, parse_iso_datetime, to_utc_z
from ..validation import (
    ConflictError,
    NotFoundError,
    ValidationError,
    validate_password_strength,
    validate_username,
)


INVITE_PREFIX = "RRSA-"
INVITE_BODY_LENGTH = 8
_CODE_ALPHABET = string.ascii_uppercase + string.digits


class InviteError(Exception):
    """Invite exists but cannot be redeemed."""


class InactiveError(InviteError):
    """Invite was revoked or has no uses left."""


class ExpiredError(InviteError):
    """Invite is past its expires_at."""


def normalize_code(code: Any) -> str:
    return str(code or "").strip().upper()


def generate_code() -> str:
    body = "".join(secrets.choice(_CODE_ALPHABET) for _ in range(INVITE_BODY_LENGTH))
    return f"{INVITE_PREFIX}{body}"


def find_invite(doc: dict, code: Any) -> Optional[dict]:
    wanted = normalize_code(code)
    for invite in doc["invites"]:
        if normalize_code(invite.get("code")) == wanted:
            return invite
    return None


def invite_status(invite: dict, now) -> str:
    """Derived state label: active, exhausted, revoked or expired."""
    if int(invite.get("uses") or 0) >= int(invite.get("max_uses") or 1):
        return "exhausted"
    if not invite.get("active"):
        return "revoked"
    if is_past(invite.get("expires_at"), now):
        return "expired"
    return "active"


def _coerce_max_uses(value: Any) -> int:
    """Floor to a whole number, minimum 1. Junk reads as 1."""
    if value is None or isinstance(value, bool):
        return 1
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 1
    if not math.isfinite(number):
        return 1
    return max(1, math.floor(number))


def _coerce_expiry(value: Any) -> Optional[str]:
    """Accept None, a YYYY-MM-DD date (end of that day) or a full ISO timestamp."""
    if value is None or str(value).strip() == "":
        return None
    raw = str(value).strip()
    try:
        if len(raw) == 10:
            return end_of_day_z(raw)
        return to_utc_z(parse_iso_datetime(raw))
    except ValueError:
        raise ValidationError("expires_at must be a date (YYYY-MM-DD) or ISO timestamp")


class InviteService:
    """Issue, redeem and revoke invites against a DocumentStore."""

    def __init__(self, store):
        self.store = store

    def create_invite(
        self,
        created_by: str,
        league: Optional[str] = None,
        league_role: str = "OFFICIAL",
        department: Optional[str] = None,
        max_uses: Any = 1,
        expires_at: Any = None,
        note: str = "",
    ) -> dict:
        role = parse_league_role(league_role or LeagueRole.OFFICIAL.value)
        if role is None:
            raise ValidationError(f"Unknown league role: {league_role}")
        expiry = _coerce_expiry(expires_at)
        uses_cap = _coerce_max_uses(max_uses)
        stamp = self.store.stamp()

        def _create(doc):
            scope = str(league or doc["settings"].get("default_league") or "").strip()
            if scope not in doc["settings"].get("leagues", []):
                raise ValidationError(f"Unknown league: {scope}")

            code = generate_code()
            while find_invite(doc, code) is not None:
                code = generate_code()

            invite = {
                "id": new_id("inv"),
                "code": code,
                "league": scope,
                "league_role": role.value,
                "department": str(department or DEFAULT_DEPARTMENT),
                "created_by": str(created_by or "system"),
                "created_at": stamp,
                "expires_at": expiry,
                "max_uses": uses_cap,
                "uses": 0,
                "active": True,
                "note": str(note or "").strip(),
            }
            doc["invites"].insert(0, invite)
            doc["audit_log"].insert(0, make_audit_entry(
                created_by, "invite_create",
                f"Created invite {invite['code']} for {invite['league']} {invite['league_role']} (max {uses_cap}).",
                stamp,
            ))
            return invite

        return self.store.transaction(_create)

    def list_invites(self) -> list[dict]:
        now = self.store.now()
        invites = self.store.list_invites()
        for invite in invites:
            invite["status"] = invite_status(invite, now)
        return invites

    def get_invite(self, code: Any) -> dict:
        invite = find_invite(self.store.snapshot(), code)
        if invite is None:
            raise NotFoundError("Invite not found.")
        invite["status"] = invite_status(invite, self.store.now())
        return invite

    def redeem(self, code: Any, username: str, password: str, display_name: Optional[str] = None) -> dict:
        """
        Create a user from an invite.

        Raises, in this order: NotFoundError (unknown code), InactiveError
        (revoked or used up), ExpiredError, ValidationError (bad username),
        ConflictError (username taken), ValidationError (password fails the
        auth policy). Nothing is written on failure.
        """
        now = self.store.now()

        def _redeem(doc):
            invite = find_invite(doc, code)
            if invite is None:
                raise NotFoundError("Invalid invite code.")
            if not invite.get("active"):
                raise InactiveError("Invite is inactive or revoked.")
            if is_past(invite.get("expires_at"), now):
                raise ExpiredError("Invite has expired.")
            if int(invite.get("uses") or 0) >= int(invite.get("max_uses") or 1):
                raise InactiveError("Invite has no remaining uses.")

            uname = validate_username(username)
            if find_user(doc, uname) is not None:
                raise ConflictError("Username already exists.")
            validate_password_strength(password, doc["settings"].get("auth_policy") or {})

            user = {
                "id": new_id("usr"),
                "username": uname,
                "password": str(password or ""),
                "display_name": str(display_name or uname).strip() or uname,
                "global_role": "OFFICIAL",
                "league_roles": {
                    invite["league"]: {
                        "role": invite.get("league_role") or LeagueRole.OFFICIAL.value,
                        "department": invite.get("department") or DEFAULT_DEPARTMENT,
                    }
                },
                "active": True,
            }
            doc["users"].append(user)

            invite["uses"] = int(invite.get("uses") or 0) + 1
            if invite["uses"] >= int(invite.get("max_uses") or 1):
                invite["active"] = False

            doc["audit_log"].insert(0, make_audit_entry(
                uname, "invite_redeem", f"Redeemed invite {invite['code']}.", to_utc_z(now),
            ))
            return user

        return self.store.transaction(_redeem)

    def revoke(self, code: Any, *, actor: str = "system") -> dict:
        """Deactivate an invite regardless of its use count. Irreversible."""

        def _revoke(doc):
            invite = find_invite(doc, code)
            if invite is None:
                raise NotFoundError("Invite not found.")
            invite["active"] = False
            return invite

        return self.store.transaction(
            _revoke, audit=(actor, "invite_revoke", f"Revoked invite {normalize_code(code)}."),
        )
