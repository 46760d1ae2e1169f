# Overview: Service-layer operations for attendance events, marks and per-official statistics.

from __future__ import annotations

from typing import Optional

from .schema_migrator import new_id
from ..validation import NotFoundError, ValidationError, normalize_username


ATTENDANCE_STATUSES = ("Present", "Late", "Excused", "No-Show")
ATTENDED_STATUSES = ("Present", "Late", "Excused")
EVENT_TYPES = ("Game", "Training", "Meeting", "Other")


def normalize_status(status) -> str:
    """Unknown statuses are recorded as Present."""
    value = str(status or "").strip()
    return value if value in ATTENDANCE_STATUSES else "Present"


def create_event(
    store,
    *,
    league: str,
    event_name: str,
    event_date: str = "",
    event_type: str = "Game",
    created_by: str,
) -> dict:
    if league not in store.list_leagues():
        raise ValidationError(f"Unknown league: {league}")
    name = str(event_name or "").strip() or "Untitled Event"
    kind = str(event_type or "Game").strip()
    if kind not in EVENT_TYPES:
        raise ValidationError(f"event_type must be one of: {', '.join(EVENT_TYPES)}")

    event = {
        "id": new_id("att"),
        "event_type": kind,
        "league": league,
        "event_name": name,
        "event_date": str(event_date or ""),
        "created_at": store.stamp(),
        "created_by": created_by,
        "marks": [],
    }
    return store.add_attendance_event(
        event, audit=(created_by, "attendance_create", f'Created {kind} "{name}" in {league}.'),
    )


def mark_attendance(
    store,
    event_id: str,
    username: str,
    status: str,
    *,
    note: str = "",
    actor: str,
) -> dict:
    """Mark one official on an event; an existing mark for them is replaced."""
    subject = store.get_user(username)
    if subject is None:
        raise NotFoundError("User not found.")
    event = store.get_attendance_event(event_id)
    if event is None:
        raise NotFoundError("Attendance event not found.")

    final_status = normalize_status(status)
    mark = {
        "user_id": subject["id"],
        "username": subject["username"],
        "status": final_status,
        "timestamp": store.stamp(),
        "note": str(note or "").strip(),
    }
    return store.mark_attendance(
        event_id, mark,
        audit=(actor, "attendance_mark",
               f'Marked {subject["username"]} as {final_status} for "{event["event_name"]}".'),
    )


def user_history(store, username: str, league: Optional[str] = None) -> list[dict]:
    uname = normalize_username(username)
    rows = []
    for event in store.list_attendance(league):
        for mark in event.get("marks") or []:
            if normalize_username(mark.get("username")) != uname:
                continue
            rows.append({
                "event_id": event["id"],
                "event_name": event.get("event_name"),
                "league": event.get("league"),
                "event_type": event.get("event_type"),
                "event_date": event.get("event_date"),
                "status": mark.get("status"),
                "timestamp": mark.get("timestamp"),
                "note": mark.get("note"),
            })
            break
    return rows


def attendance_stats(store, username: str, league: Optional[str] = None) -> dict:
    """
    Counts per status for one official, optionally within one league.

    attended = Present + Late + Excused. pct is attended/total as a
    percentage rounded to 0.1, or None when there are no marks.
    """
    counts = {status: 0 for status in ATTENDANCE_STATUSES}
    history = user_history(store, username, league)
    for row in history:
        status = normalize_status(row["status"])
        counts[status] += 1

    total = len(history)
    attended = sum(counts[s] for s in ATTENDED_STATUSES)
    pct = round(attended / total * 100, 1) if total else None
    return {**counts, "total": total, "attended": attended, "pct": pct}
