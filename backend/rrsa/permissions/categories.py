# Overview: Capability category constants for grouping related capabilities.


class CapabilityCategory:
    """Capability categories for organization and UI display."""
    DASHBOARDS = "DASHBOARDS"
    USERS = "USERS"
    ATTENDANCE = "ATTENDANCE"
    PERFORMANCE = "PERFORMANCE"
    RECORDS = "RECORDS"
    SYSTEM = "SYSTEM"
