# Overview: Global and league roles, and the static role -> capability tables.

"""
Role tables

Every role maps to a fixed capability set. Nothing is inferred from role names.
Both tables are keyed by enum member and checked for completeness at import,
so adding a role without deciding its capabilities fails loudly.

- Commissioner holds every capability.
- The other three executives hold everything except full user management
  and document import, which stay with the commissioner.
- Media roles and the baseline official are read-only / reporting roles.
- League roles only apply inside the league they are granted for.
"""

from enum import Enum

from .definitions import Capability


class GlobalRole(str, Enum):
    EXEC_COMMISSIONER = "EXEC_COMMISSIONER"
    EXEC_EVP = "EXEC_EVP"
    EXEC_CAO = "EXEC_CAO"
    EXEC_DAO = "EXEC_DAO"
    HEAD_RRSA_MEDIA = "HEAD_RRSA_MEDIA"
    MEDIA_TEAM = "MEDIA_TEAM"
    OFFICIAL = "OFFICIAL"


class LeagueRole(str, Enum):
    LEAGUE_MANAGER = "LEAGUE_MANAGER"
    ASSIST_LEAGUE_MANAGER = "ASSIST_LEAGUE_MANAGER"
    HEAD_OF_REFEREES = "HEAD_OF_REFEREES"
    LEAGUE_MEDIA_MANAGER = "LEAGUE_MEDIA_MANAGER"
    OFFICIAL = "OFFICIAL"


DEFAULT_GLOBAL_ROLE = GlobalRole.OFFICIAL
DEFAULT_LEAGUE_ROLE = LeagueRole.OFFICIAL

EXECUTIVE_ROLES = frozenset({
    GlobalRole.EXEC_COMMISSIONER,
    GlobalRole.EXEC_EVP,
    GlobalRole.EXEC_CAO,
    GlobalRole.EXEC_DAO,
})

# Reserved to the commissioner
RESERVED_CAPABILITIES = frozenset({
    Capability.MANAGE_USERS_FULL,
    Capability.IMPORT_DB_JSON,
})

_ALL = frozenset(Capability)
_EXECUTIVE = _ALL - RESERVED_CAPABILITIES


GLOBAL_ROLE_CAPABILITIES = {
    GlobalRole.EXEC_COMMISSIONER: _ALL,
    GlobalRole.EXEC_EVP: _EXECUTIVE,
    GlobalRole.EXEC_CAO: _EXECUTIVE,
    GlobalRole.EXEC_DAO: _EXECUTIVE,
    GlobalRole.HEAD_RRSA_MEDIA: frozenset({
        Capability.VIEW_MANAGER_DASH,
        Capability.VIEW_ALL_RECORDS,
        Capability.EXPORT_CSV,
    }),
    GlobalRole.MEDIA_TEAM: frozenset({
        Capability.VIEW_MANAGER_DASH,
        Capability.VIEW_ALL_RECORDS,
    }),
    GlobalRole.OFFICIAL: frozenset({
        Capability.VIEW_OFFICIAL_DASH,
    }),
}


_LEAGUE_MANAGEMENT = frozenset({
    Capability.VIEW_MANAGER_DASH,
    Capability.MANAGE_USERS,
    Capability.CREATE_ATTENDANCE_EVENTS,
    Capability.GRADE_ATTENDANCE,
    Capability.CREATE_PERFORMANCE_REVIEWS,
    Capability.VIEW_ALL_RECORDS,
    Capability.EXPORT_CSV,
})

LEAGUE_ROLE_CAPABILITIES = {
    LeagueRole.LEAGUE_MANAGER: _LEAGUE_MANAGEMENT,
    LeagueRole.ASSIST_LEAGUE_MANAGER: _LEAGUE_MANAGEMENT,
    LeagueRole.HEAD_OF_REFEREES: _LEAGUE_MANAGEMENT - {Capability.MANAGE_USERS},
    LeagueRole.LEAGUE_MEDIA_MANAGER: frozenset({
        Capability.VIEW_MANAGER_DASH,
        Capability.VIEW_ALL_RECORDS,
    }),
    LeagueRole.OFFICIAL: frozenset({
        Capability.VIEW_OFFICIAL_DASH,
    }),
}


GLOBAL_ROLE_LABELS = {
    GlobalRole.EXEC_COMMISSIONER: "Commissioner of the RRSA (CEO)",
    GlobalRole.EXEC_EVP: "Executive Vice President",
    GlobalRole.EXEC_CAO: "Chief Administrative Officer",
    GlobalRole.EXEC_DAO: "Director of Association Operations",
    GlobalRole.HEAD_RRSA_MEDIA: "Head of RRSA Media",
    GlobalRole.MEDIA_TEAM: "Sports Association Media Team",
    GlobalRole.OFFICIAL: "Official (baseline)",
}

LEAGUE_ROLE_LABELS = {
    LeagueRole.LEAGUE_MANAGER: "League Manager",
    LeagueRole.ASSIST_LEAGUE_MANAGER: "Assistant League Manager",
    LeagueRole.HEAD_OF_REFEREES: "Head of Referees",
    LeagueRole.LEAGUE_MEDIA_MANAGER: "League Media Manager",
    LeagueRole.OFFICIAL: "Official (Ref/Umpire/Judge/Staff)",
}


def _check_exhaustive(enum_cls, *tables) -> None:
    for table in tables:
        missing = [member.value for member in enum_cls if member not in table]
        if missing:
            raise RuntimeError(
                f"{enum_cls.__name__} table is missing entries for: {', '.join(missing)}"
            )


_check_exhaustive(GlobalRole, GLOBAL_ROLE_CAPABILITIES, GLOBAL_ROLE_LABELS)
_check_exhaustive(LeagueRole, LEAGUE_ROLE_CAPABILITIES, LEAGUE_ROLE_LABELS)
