# Overview: Service-layer operations for performance reviews, averages and threshold flags.

from __future__ import annotations

from typing import Optional

from .schema_migrator import SCORE_KEYS, new_id
from .permission_service import league_role_of
from ..permissions import LeagueRole
from ..validation import NotFoundError, ValidationError, normalize_username, validate_score


def create_review(
    store,
    *,
    league: str,
    subject_username: str,
    scores: dict,
    created_by: str,
    event_ref: str = "General",
    comments: str = "",
) -> dict:
    """Every score is required and must be a whole number from 1 to 10."""
    if league not in store.list_leagues():
        raise ValidationError(f"Unknown league: {league}")
    subject = store.get_user(subject_username)
    if subject is None:
        raise NotFoundError("User not found.")
    if not isinstance(scores, dict):
        raise ValidationError("scores must be an object")

    review = {
        "id": new_id("perf"),
        "league": league,
        "subject_username": subject["username"],
        "event_ref": str(event_ref or "General").strip() or "General",
        "created_at": store.stamp(),
        "created_by": created_by,
        "scores": {key: validate_score(scores.get(key), key) for key in SCORE_KEYS},
        "comments": str(comments or "").strip(),
    }
    return store.add_performance_review(
        review,
        audit=(created_by, "performance_create",
               f"Reviewed {review['subject_username']} ({review['event_ref']})."),
    )


def review_average(review: dict) -> float:
    scores = review.get("scores") or {}
    return sum(float(scores.get(key) or 0) for key in SCORE_KEYS) / len(SCORE_KEYS)


def reviews_for_user(store, username: str, league: Optional[str] = None) -> list[dict]:
    uname = normalize_username(username)
    return [
        r for r in store.list_performance(league)
        if normalize_username(r.get("subject_username")) == uname
    ]


def average_for_user(store, username: str, league: Optional[str] = None) -> dict:
    """
    Per-category means (rounded to 0.1) and the overall mean of those.

    An official with no reviews has count 0 and avg None.
    """
    reviews = reviews_for_user(store, username, league)
    if not reviews:
        return {"avg": None, "per_category": {key: None for key in SCORE_KEYS}, "count": 0}

    per_category = {}
    for key in SCORE_KEYS:
        total = sum(float((r.get("scores") or {}).get(key) or 0) for r in reviews)
        per_category[key] = round(total / len(reviews), 1)

    overall = sum(per_category.values()) / len(SCORE_KEYS)
    return {"avg": round(overall, 1), "per_category": per_category, "count": len(reviews)}


def flagged_officials(store, league: str) -> list[dict]:
    """Active league officials whose average in `league` is below the threshold, lowest first."""
    settings = store.get_settings()
    threshold = float(settings.get("performance_threshold") or 0)

    flagged = []
    for user in store.list_users():
        if not user.get("active", True) or league not in (user.get("league_roles") or {}):
            continue
        if league_role_of(user, league) != LeagueRole.OFFICIAL:
            continue
        stats = average_for_user(store, user["username"], league)
        if stats["count"] and stats["avg"] < threshold:
            flagged.append({
                "username": user["username"],
                "display_name": user.get("display_name"),
                "league": league,
                "stats": stats,
            })

    flagged.sort(key=lambda row: row["stats"]["avg"])
    return flagged
