# Overview: Utility functions for role/capability lookups and validation.

from .definitions import CAPABILITY_DEFINITIONS, Capability
from .roles import GlobalRole, LeagueRole, GLOBAL_ROLE_LABELS, LEAGUE_ROLE_LABELS


def get_all_capability_codes():
    """Get list of all capability codes."""
    return [definition[0].value for definition in CAPABILITY_DEFINITIONS]


def get_capabilities_by_category(category):
    """Get all capabilities in a category."""
    return [definition for definition in CAPABILITY_DEFINITIONS if definition[3] == category]


def get_capability_definition(code):
    """Get full definition for a capability code."""
    for cap, name, description, category in CAPABILITY_DEFINITIONS:
        if cap.value == code:
            return {
                "code": cap.value,
                "name": name,
                "description": description,
                "category": category,
            }
    return None


def parse_capability(code) -> Capability | None:
    if isinstance(code, Capability):
        return code
    try:
        return Capability(str(code))
    except ValueError:
        return None


def parse_global_role(value) -> GlobalRole | None:
    """Map a stored string onto GlobalRole; unknown strings return None."""
    if isinstance(value, GlobalRole):
        return value
    try:
        return GlobalRole(str(value))
    except ValueError:
        return None


def parse_league_role(value) -> LeagueRole | None:
    if isinstance(value, LeagueRole):
        return value
    try:
        return LeagueRole(str(value))
    except ValueError:
        return None


def label_global(role) -> str:
    parsed = parse_global_role(role)
    return GLOBAL_ROLE_LABELS[parsed] if parsed else str(role)


def label_league(role) -> str:
    parsed = parse_league_role(role)
    return LEAGUE_ROLE_LABELS[parsed] if parsed else str(role)
