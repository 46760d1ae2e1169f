# Overview: All capability definitions organized by category.
# Each definition is: (capability, name, description, category)

from enum import Enum

from .categories import CapabilityCategory


class Capability(str, Enum):
    """Atomic permission flags. Closed set: adding one means revisiting every role table."""
    VIEW_EXEC_DASH = "VIEW_EXEC_DASH"
    VIEW_MANAGER_DASH = "VIEW_MANAGER_DASH"
    VIEW_OFFICIAL_DASH = "VIEW_OFFICIAL_DASH"

    MANAGE_USERS = "MANAGE_USERS"
    MANAGE_USERS_FULL = "MANAGE_USERS_FULL"

    CREATE_ATTENDANCE_EVENTS = "CREATE_ATTENDANCE_EVENTS"
    GRADE_ATTENDANCE = "GRADE_ATTENDANCE"

    CREATE_PERFORMANCE_REVIEWS = "CREATE_PERFORMANCE_REVIEWS"
    VIEW_ALL_RECORDS = "VIEW_ALL_RECORDS"

    VIEW_AUDIT = "VIEW_AUDIT"
    EXPORT_CSV = "EXPORT_CSV"
    CONFIGURE_SYSTEM = "CONFIGURE_SYSTEM"

    EXPORT_DB_JSON = "EXPORT_DB_JSON"
    IMPORT_DB_JSON = "IMPORT_DB_JSON"


# -- DASHBOARDS --

DASHBOARD_CAPABILITIES = [
    (
        Capability.VIEW_EXEC_DASH,
        "View Executive Dashboard",
        "Association-wide overview across every league",
        CapabilityCategory.DASHBOARDS,
    ),
    (
        Capability.VIEW_MANAGER_DASH,
        "View Manager Dashboard",
        "League roster, attendance and performance overview",
        CapabilityCategory.DASHBOARDS,
    ),
    (
        Capability.VIEW_OFFICIAL_DASH,
        "View Official Dashboard",
        "An official's own attendance and reviews",
        CapabilityCategory.DASHBOARDS,
    ),
]


# -- USERS --

USER_CAPABILITIES = [
    (
        Capability.MANAGE_USERS,
        "Manage League Users",
        "Edit league roles and toggle active status within a league",
        CapabilityCategory.USERS,
    ),
    (
        Capability.MANAGE_USERS_FULL,
        "Manage All Users",
        "Create and delete users, reset passwords, issue invites",
        CapabilityCategory.USERS,
    ),
]


# -- ATTENDANCE --

ATTENDANCE_CAPABILITIES = [
    (
        Capability.CREATE_ATTENDANCE_EVENTS,
        "Create Attendance Events",
        "Create games, trainings and meetings that take attendance",
        CapabilityCategory.ATTENDANCE,
    ),
    (
        Capability.GRADE_ATTENDANCE,
        "Grade Attendance",
        "Mark officials Present, Late, Excused or No-Show",
        CapabilityCategory.ATTENDANCE,
    ),
]


# -- PERFORMANCE --

PERFORMANCE_CAPABILITIES = [
    (
        Capability.CREATE_PERFORMANCE_REVIEWS,
        "Create Performance Reviews",
        "Score an official's performance for an event",
        CapabilityCategory.PERFORMANCE,
    ),
]


# -- RECORDS --

RECORD_CAPABILITIES = [
    (
        Capability.VIEW_ALL_RECORDS,
        "View All Records",
        "See the full roster and every official's records in a league",
        CapabilityCategory.RECORDS,
    ),
    (
        Capability.EXPORT_CSV,
        "Export CSV",
        "Download attendance and performance records as CSV",
        CapabilityCategory.RECORDS,
    ),
]


# -- SYSTEM --

SYSTEM_CAPABILITIES = [
    (
        Capability.VIEW_AUDIT,
        "View Audit Log",
        "Read the append-only audit history",
        CapabilityCategory.SYSTEM,
    ),
    (
        Capability.CONFIGURE_SYSTEM,
        "Configure System",
        "Change thresholds, leagues and the auth policy",
        CapabilityCategory.SYSTEM,
    ),
    (
        Capability.EXPORT_DB_JSON,
        "Export Document",
        "Download a full snapshot of the persisted document",
        CapabilityCategory.SYSTEM,
    ),
    (
        Capability.IMPORT_DB_JSON,
        "Import Document",
        "Overwrite the persisted document with a validated snapshot",
        CapabilityCategory.SYSTEM,
    ),
]


# Combined list of all capabilities (preserves declaration ordering)
CAPABILITY_DEFINITIONS = (
    DASHBOARD_CAPABILITIES
    + USER_CAPABILITIES
    + ATTENDANCE_CAPABILITIES
    + PERFORMANCE_CAPABILITIES
    + RECORD_CAPABILITIES
    + SYSTEM_CAPABILITIES
)
