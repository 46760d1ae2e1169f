# Overview: Capability and role tables.
# Re-exports all public APIs for short imports.

from .categories import CapabilityCategory
from .definitions import (
    Capability,
    CAPABILITY_DEFINITIONS,
    DASHBOARD_CAPABILITIES,
    USER_CAPABILITIES,
    ATTENDANCE_CAPABILITIES,
    PERFORMANCE_CAPABILITIES,
    RECORD_CAPABILITIES,
    SYSTEM_CAPABILITIES,
)
from .roles import (
    GlobalRole,
    LeagueRole,
    DEFAULT_GLOBAL_ROLE,
    DEFAULT_LEAGUE_ROLE,
    EXECUTIVE_ROLES,
    RESERVED_CAPABILITIES,
    GLOBAL_ROLE_CAPABILITIES,
    LEAGUE_ROLE_CAPABILITIES,
    GLOBAL_ROLE_LABELS,
    LEAGUE_ROLE_LABELS,
)
from .helpers import (
    get_all_capability_codes,
    get_capabilities_by_category,
    get_capability_definition,
    parse_capability,
    parse_global_role,
    parse_league_role,
    label_global,
    label_league,
)

__all__ = [
    "CapabilityCategory",
    "Capability",
    "CAPABILITY_DEFINITIONS",
    "DASHBOARD_CAPABILITIES",
    "USER_CAPABILITIES",
    "ATTENDANCE_CAPABILITIES",
    "PERFORMANCE_CAPABILITIES",
    "RECORD_CAPABILITIES",
    "SYSTEM_CAPABILITIES",
    "GlobalRole",
    "LeagueRole",
    "DEFAULT_GLOBAL_ROLE",
    "DEFAULT_LEAGUE_ROLE",
    "EXECUTIVE_ROLES",
    "RESERVED_CAPABILITIES",
    "GLOBAL_ROLE_CAPABILITIES",
    "LEAGUE_ROLE_CAPABILITIES",
    "GLOBAL_ROLE_LABELS",
    "LEAGUE_ROLE_LABELS",
    "get_all_capability_codes",
    "get_capabilities_by_category",
    "get_capability_definition",
    "parse_capability",
    "parse_global_role",
    "parse_league_role",
    "label_global",
    "label_league",
]
