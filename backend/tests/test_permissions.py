"""
Permission resolution tests.

Verifies:
- Role tables are complete and the commissioner holds everything
- Adding a league scope never removes global capabilities
- League roles only apply inside their league
- Denials are audited, grants are not
"""

import pytest

from rrsa.permissions import (
    Capability,
    CapabilityCategory,
    GlobalRole,
    LeagueRole,
    GLOBAL_ROLE_CAPABILITIES,
    LEAGUE_ROLE_CAPABILITIES,
    RESERVED_CAPABILITIES,
    get_all_capability_codes,
    get_capabilities_by_category,
    get_capability_definition,
    label_global,
    label_league,
    parse_capability,
    parse_global_role,
)
from rrsa.services import permission_service
from rrsa.services.permission_service import PermissionDeniedError


LEAGUES = ["RRSA", "RRFL", "RRBL", "RRHL"]
SETTINGS = {"leagues": LEAGUES, "default_league": "RRFL"}


def make_user(global_role="OFFICIAL", **league_roles):
    return {
        "username": "someone",
        "global_role": global_role,
        "league_roles": {lg: {"role": role, "department": "Officials"} for lg, role in league_roles.items()},
        "active": True,
    }


# =============================================================================
# TABLES
# =============================================================================


class TestRoleTables:
    def test_every_role_has_an_entry(self):
        assert set(GLOBAL_ROLE_CAPABILITIES) == set(GlobalRole)
        assert set(LEAGUE_ROLE_CAPABILITIES) == set(LeagueRole)

    def test_commissioner_holds_everything(self):
        assert GLOBAL_ROLE_CAPABILITIES[GlobalRole.EXEC_COMMISSIONER] == frozenset(Capability)

    def test_reserved_capabilities_stay_with_commissioner(self):
        for role, caps in GLOBAL_ROLE_CAPABILITIES.items():
            if role != GlobalRole.EXEC_COMMISSIONER:
                assert not (caps & RESERVED_CAPABILITIES), role

    def test_head_of_referees_cannot_manage_users(self):
        caps = LEAGUE_ROLE_CAPABILITIES[LeagueRole.HEAD_OF_REFEREES]
        assert Capability.MANAGE_USERS not in caps
        assert Capability.CREATE_PERFORMANCE_REVIEWS in caps

    def test_definitions_cover_every_capability(self):
        assert sorted(get_all_capability_codes()) == sorted(c.value for c in Capability)
        assert get_capability_definition("VIEW_AUDIT")["category"] == CapabilityCategory.SYSTEM
        assert get_capability_definition("NOPE") is None
        assert get_capabilities_by_category(CapabilityCategory.USERS)

    def test_parsers_and_labels(self):
        assert parse_capability("EXPORT_CSV") is Capability.EXPORT_CSV
        assert parse_capability(Capability.EXPORT_CSV) is Capability.EXPORT_CSV
        assert parse_capability("export_csv") is None
        assert parse_global_role("MEDIA_TEAM") is GlobalRole.MEDIA_TEAM
        assert parse_global_role(None) is None
        assert label_global("EXEC_EVP") == "Executive Vice President"
        assert label_league("CUSTOM") == "CUSTOM"


# =============================================================================
# RESOLUTION
# =============================================================================


class TestResolution:
    @pytest.mark.parametrize("global_role", list(GlobalRole))
    @pytest.mark.parametrize("league_role", list(LeagueRole))
    def test_scope_never_drops_global_capabilities(self, global_role, league_role):
        user = make_user(global_role.value, RRFL=league_role.value)
        unscoped = permission_service.resolve_capabilities(user)
        for league in LEAGUES + ["UNKNOWN"]:
            assert unscoped <= permission_service.resolve_capabilities(user, league)

    def test_league_role_only_applies_in_its_league(self):
        user = make_user(RRFL="LEAGUE_MANAGER")
        assert permission_service.has_capability(user, Capability.CREATE_ATTENDANCE_EVENTS, "RRFL")
        assert not permission_service.has_capability(user, Capability.CREATE_ATTENDANCE_EVENTS, "RRBL")
        assert not permission_service.has_capability(user, Capability.CREATE_ATTENDANCE_EVENTS)

    def test_unknown_roles_fall_back_to_official(self):
        user = make_user("WIZARD", RRFL="WIZARD")
        assert permission_service.resolve_capabilities(user, "RRFL") == frozenset({Capability.VIEW_OFFICIAL_DASH})

    def test_missing_user_has_nothing(self):
        assert permission_service.resolve_capabilities(None, "RRFL") == frozenset()
        assert not permission_service.has_capability(None, Capability.VIEW_OFFICIAL_DASH)

    def test_unknown_capability_is_never_held(self):
        user = make_user("EXEC_COMMISSIONER")
        assert not permission_service.has_capability(user, "FLY")


class TestVisibility:
    def test_executives_see_every_league(self):
        user = make_user("EXEC_DAO")
        assert permission_service.visible_leagues(user, SETTINGS) == LEAGUES
        assert permission_service.can_view_league_records(user, "RRHL")

    def test_members_see_their_leagues(self):
        user = make_user(RRBL="OFFICIAL", RRHL="LEAGUE_MEDIA_MANAGER")
        assert permission_service.visible_leagues(user, SETTINGS) == ["RRBL", "RRHL"]
        assert permission_service.can_view_league_records(user, "RRHL")
        assert not permission_service.can_view_league_records(user, "RRBL")

    def test_users_without_leagues_see_default(self):
        assert permission_service.visible_leagues(make_user("MEDIA_TEAM"), SETTINGS) == ["RRFL"]

    def test_media_team_views_records_everywhere_by_capability(self):
        assert permission_service.can_view_league_records(make_user("MEDIA_TEAM"), "RRBL")


# =============================================================================
# ENFORCEMENT
# =============================================================================


class TestRequireCapability:
    def test_denial_is_audited(self, store):
        user = store.get_user("ref_ava")
        with pytest.raises(PermissionDeniedError) as excinfo:
            permission_service.require_capability(
                user, Capability.VIEW_AUDIT, "RRFL", store=store, resource="/api/admin/audit",
            )
        assert excinfo.value.capability == Capability.VIEW_AUDIT
        assert excinfo.value.league == "RRFL"

        entry = store.list_audit(1)[0]
        assert entry["action"] == "permission_denied"
        assert entry["actor"] == "ref_ava"
        assert "VIEW_AUDIT" in entry["details"]

    def test_grant_is_not_audited(self, store, backend):
        writes = backend.writes
        permission_service.require_capability(store.get_user("mrv"), Capability.VIEW_AUDIT, store=store)
        assert backend.writes == writes

    def test_describe_user(self, store):
        described = permission_service.describe_user(store.get_user("rrfl_mgr"))
        assert described["leagues"]["RRFL"]["role_label"] == "League Manager"
        assert "MANAGE_USERS" in described["leagues"]["RRFL"]["capabilities"]
