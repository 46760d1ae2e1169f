# Overview: Service-layer operations for reporting; league summaries and CSV exports.

from __future__ import annotations

import csv
import io
from typing import Optional

from .attendance_service import attendance_stats
from .performance_service import average_for_user, flagged_officials, review_average
from .schema_migrator import SCORE_KEYS
from ..validation import normalize_username


ATTENDANCE_CSV_COLUMNS = [
    "event_name", "league", "event_type", "event_date", "created_at", "created_by",
    "subject_username", "status", "timestamp", "note",
]

PERFORMANCE_CSV_COLUMNS = [
    "subject_username", "league", "event_ref", "created_at", "created_by",
    *SCORE_KEYS, "average", "comments",
]


def _write_csv(columns: list[str], rows) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(columns)
    for row in rows:
        writer.writerow(["" if value is None else value for value in row])
    return buffer.getvalue()


def attendance_csv(store, league: str, username: Optional[str] = None) -> str:
    """One row per mark in `league`, optionally only one official's marks."""
    wanted = normalize_username(username) if username else None
    rows = []
    for event in store.list_attendance(league):
        for mark in event.get("marks") or []:
            if wanted and normalize_username(mark.get("username")) != wanted:
                continue
            rows.append([
                event.get("event_name"),
                event.get("league"),
                event.get("event_type"),
                event.get("event_date"),
                event.get("created_at"),
                event.get("created_by"),
                mark.get("username"),
                mark.get("status"),
                mark.get("timestamp"),
                mark.get("note"),
            ])
    return _write_csv(ATTENDANCE_CSV_COLUMNS, rows)


def performance_csv(store, league: str, username: Optional[str] = None) -> str:
    wanted = normalize_username(username) if username else None
    rows = []
    for review in store.list_performance(league):
        if wanted and normalize_username(review.get("subject_username")) != wanted:
            continue
        scores = review.get("scores") or {}
        rows.append([
            review.get("subject_username"),
            review.get("league"),
            review.get("event_ref"),
            review.get("created_at"),
            review.get("created_by"),
            *[scores.get(key) for key in SCORE_KEYS],
            round(review_average(review), 1),
            review.get("comments"),
        ])
    return _write_csv(PERFORMANCE_CSV_COLUMNS, rows)


def league_summary(store, league: str) -> dict:
    """Roster of a league with each member's attendance and review figures."""
    roster = []
    for user in store.list_users():
        entry = (user.get("league_roles") or {}).get(league)
        if entry is None:
            continue
        roster.append({
            "username": user["username"],
            "display_name": user.get("display_name"),
            "role": entry.get("role"),
            "department": entry.get("department"),
            "active": user.get("active", True),
            "attendance": attendance_stats(store, user["username"], league),
            "performance": average_for_user(store, user["username"], league),
        })
    return {
        "league": league,
        "threshold": store.get_settings().get("performance_threshold"),
        "roster": roster,
        "flagged": flagged_officials(store, league),
        "events": len(store.list_attendance(league)),
        "reviews": len(store.list_performance(league)),
    }
