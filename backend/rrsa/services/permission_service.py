# Overview: Capability resolution for a user, optionally scoped to one league.

"""
Permission Resolution

A user's capabilities are the union of:
- the fixed set for their global role, and
- when a league scope is given, the fixed set for their role in that league
  (OFFICIAL when they hold no role there).

Global capabilities are never lost by adding a scope. Executives see every
league's records regardless of membership.

Resolution is pure. Only require_capability touches storage, and only to
audit a denial (grants are not logged).
"""

from __future__ import annotations

from typing import Optional

from ..permissions import (
    Capability,
    DEFAULT_GLOBAL_ROLE,
    DEFAULT_LEAGUE_ROLE,
    EXECUTIVE_ROLES,
    GLOBAL_ROLE_CAPABILITIES,
    LEAGUE_ROLE_CAPABILITIES,
    label_global,
    label_league,
    parse_capability,
    parse_global_role,
    parse_league_role,
)


class PermissionDeniedError(Exception):
    """Raised when user lacks required capability."""

    def __init__(self, capability, league: Optional[str] = None):
        self.capability = capability
        self.league = league
        code = getattr(capability, "value", capability)
        scope = f" in {league}" if league else ""
        super().__init__(f"Missing capability {code}{scope}")


def global_capabilities(user: dict) -> frozenset:
    role = parse_global_role(user.get("global_role")) or DEFAULT_GLOBAL_ROLE
    return GLOBAL_ROLE_CAPABILITIES[role]


def league_role_of(user: dict, league: str):
    """The user's LeagueRole in `league`; OFFICIAL when absent or unrecognized."""
    entry = (user.get("league_roles") or {}).get(league) or {}
    return parse_league_role(entry.get("role")) or DEFAULT_LEAGUE_ROLE


def league_capabilities(user: dict, league: str) -> frozenset:
    return LEAGUE_ROLE_CAPABILITIES[league_role_of(user, league)]


def resolve_capabilities(user: Optional[dict], league: Optional[str] = None) -> frozenset:
    """
    Capability set for `user`, scoped to `league` when given.

    A missing user resolves to the empty set.
    """
    if not user:
        return frozenset()
    caps = global_capabilities(user)
    if league:
        caps = caps | league_capabilities(user, league)
    return caps


def has_capability(user: Optional[dict], capability, league: Optional[str] = None) -> bool:
    cap = capability if isinstance(capability, Capability) else parse_capability(capability)
    if cap is None:
        return False
    return cap in resolve_capabilities(user, league)


def is_executive(user: Optional[dict]) -> bool:
    if not user:
        return False
    return parse_global_role(user.get("global_role")) in EXECUTIVE_ROLES


def visible_leagues(user: Optional[dict], settings: dict) -> list[str]:
    """
    Leagues whose roster and records the user may look at.

    Executives see every configured league. Everyone else sees the leagues
    they hold a role in, or the default league when they hold none.
    """
    leagues = list(settings.get("leagues") or [])
    if not user:
        return []
    if is_executive(user):
        return leagues
    mine = [lg for lg in (user.get("league_roles") or {}) if lg]
    if mine:
        return mine
    default = settings.get("default_league")
    return [default] if default else []


def can_view_league_records(user: Optional[dict], league: str) -> bool:
    """Full-roster visibility in one league."""
    if is_executive(user):
        return True
    return has_capability(user, Capability.VIEW_ALL_RECORDS, league)


def require_capability(
    user: Optional[dict],
    capability,
    league: Optional[str] = None,
    *,
    store=None,
    resource: Optional[str] = None,
) -> None:
    """
    Raise PermissionDeniedError unless the user holds the capability.

    When a store is given, the denial is written to the audit log as
    `permission_denied`.
    """
    if has_capability(user, capability, league):
        return

    if store is not None:
        code = getattr(capability, "value", capability)
        actor = (user or {}).get("username") or "anonymous"
        where = f" on {resource}" if resource else ""
        scope = f" in {league}" if league else ""
        store.append_audit(actor, "permission_denied", f"Missing {code}{scope}{where}.")

    raise PermissionDeniedError(capability, league)


def describe_user(user: dict) -> dict:
    """Role labels and resolved capability codes for display."""
    leagues = {}
    for league, entry in (user.get("league_roles") or {}).items():
        leagues[league] = {
            "role": entry.get("role"),
            "role_label": label_league(entry.get("role")),
            "department": entry.get("department"),
            "capabilities": sorted(c.value for c in resolve_capabilities(user, league)),
        }
    return {
        "username": user.get("username"),
        "global_role": user.get("global_role"),
        "global_role_label": label_global(user.get("global_role")),
        "is_executive": is_executive(user),
        "capabilities": sorted(c.value for c in resolve_capabilities(user)),
        "leagues": leagues,
    }
