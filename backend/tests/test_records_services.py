"""
Attendance, performance and reporting service tests.

Verifies:
- Events and marks are validated and audited
- Attendance percentages count Present, Late and Excused
- Review scores are whole numbers 1-10 and averages round to 0.1
- Officials below the threshold are flagged, lowest first
- CSV exports carry a header row and one row per record
"""

import csv
import io

import pytest

from rrsa.services import attendance_service, performance_service, reporting_service
from rrsa.validation import NotFoundError, ValidationError


SCORES = {"rule_knowledge": 5, "communication": 5, "fairness": 6, "consistency": 5, "professionalism": 6}


def add_official(store, username, league="RRFL"):
    return store.create_user(username, "pw", league=league)


class TestAttendance:
    def test_create_event_is_audited(self, store):
        event = attendance_service.create_event(
            store, league="RRBL", event_name="  Week 2 ", event_date="2026-10-20",
            event_type="Training", created_by="rrfl_mgr",
        )
        assert event["event_name"] == "Week 2"
        assert event["marks"] == []
        assert store.list_attendance("RRBL")[0]["id"] == event["id"]
        assert store.list_audit(1)[0]["action"] == "attendance_create"

    def test_blank_name_and_bad_inputs(self, store):
        event = attendance_service.create_event(store, league="RRFL", event_name="", created_by="mrv")
        assert event["event_name"] == "Untitled Event"
        with pytest.raises(ValidationError):
            attendance_service.create_event(store, league="NOPE", event_name="x", created_by="mrv")
        with pytest.raises(ValidationError):
            attendance_service.create_event(store, league="RRFL", event_name="x", event_type="Party", created_by="mrv")

    def test_mark_and_stats(self, store):
        add_official(store, "ref_bo")
        stats_before = attendance_service.attendance_stats(store, "ref_bo", "RRFL")
        assert stats_before["total"] == 0
        assert stats_before["pct"] is None

        statuses = ["Present", "Late", "No-Show", "Excused"]
        for i, status in enumerate(statuses):
            event = attendance_service.create_event(store, league="RRFL", event_name=f"G{i}", created_by="mrv")
            attendance_service.mark_attendance(store, event["id"], "ref_bo", status, actor="head_refs")

        stats = attendance_service.attendance_stats(store, "ref_bo", "RRFL")
        assert stats["total"] == 4
        assert stats["attended"] == 3
        assert stats["No-Show"] == 1
        assert stats["pct"] == 75.0
        assert store.list_audit(1)[0]["action"] == "attendance_mark"

    def test_unknown_status_is_present(self, store):
        event = store.list_attendance("RRFL")[0]
        updated = attendance_service.mark_attendance(store, event["id"], "ref_ava", "Asleep", actor="mrv")
        assert [m["status"] for m in updated["marks"]] == ["Present"]

    def test_mark_unknowns(self, store):
        event = store.list_attendance("RRFL")[0]
        with pytest.raises(NotFoundError):
            attendance_service.mark_attendance(store, event["id"], "ghost", "Present", actor="mrv")
        with pytest.raises(NotFoundError):
            attendance_service.mark_attendance(store, "att_missing", "ref_ava", "Present", actor="mrv")

    def test_history_is_per_league(self, store):
        assert len(attendance_service.user_history(store, "ref_ava", "RRFL")) == 1
        assert attendance_service.user_history(store, "ref_ava", "RRBL") == []


class TestPerformance:
    def test_create_review(self, store):
        review = performance_service.create_review(
            store, league="RRFL", subject_username="REF_AVA", scores=SCORES, created_by="head_refs",
        )
        assert review["subject_username"] == "ref_ava"
        assert review["event_ref"] == "General"
        assert store.list_audit(1)[0]["action"] == "performance_create"

    @pytest.mark.parametrize("bad", [0, 11, 7.5, "great", None])
    def test_bad_scores_rejected(self, store, bad):
        scores = dict(SCORES, fairness=bad)
        with pytest.raises(ValidationError):
            performance_service.create_review(
                store, league="RRFL", subject_username="ref_ava", scores=scores, created_by="head_refs",
            )

    def test_unknown_subject(self, store):
        with pytest.raises(NotFoundError):
            performance_service.create_review(
                store, league="RRFL", subject_username="ghost", scores=SCORES, created_by="head_refs",
            )

    def test_averages(self, store):
        seed_stats = performance_service.average_for_user(store, "ref_ava", "RRFL")
        assert seed_stats["count"] == 1
        assert seed_stats["avg"] == 7.6
        assert performance_service.average_for_user(store, "ref_ava", "RRBL")["avg"] is None

    def test_flagged_officials(self, store):
        add_official(store, "ref_low")
        add_official(store, "ref_lower")
        add_official(store, "ref_away")
        performance_service.create_review(
            store, league="RRFL", subject_username="ref_low", scores=SCORES, created_by="head_refs",
        )
        performance_service.create_review(
            store, league="RRFL", subject_username="ref_lower",
            scores={key: 2 for key in SCORES}, created_by="head_refs",
        )
        performance_service.create_review(
            store, league="RRFL", subject_username="ref_away", scores=SCORES, created_by="head_refs",
        )
        store.set_user_active("ref_away", False)
        # head_refs holds a league role above OFFICIAL and is never flagged
        performance_service.create_review(
            store, league="RRFL", subject_username="head_refs", scores=SCORES, created_by="mrv",
        )

        flagged = performance_service.flagged_officials(store, "RRFL")
        assert [row["username"] for row in flagged] == ["ref_lower", "ref_low"]


class TestReporting:
    def test_attendance_csv(self, store):
        text = reporting_service.attendance_csv(store, "RRFL")
        rows = list(csv.reader(io.StringIO(text)))
        assert rows[0] == reporting_service.ATTENDANCE_CSV_COLUMNS
        assert len(rows) == 2
        assert rows[1][6:8] == ["ref_ava", "Present"]
        assert len(list(csv.reader(io.StringIO(reporting_service.attendance_csv(store, "RRFL", "mrv"))))) == 1

    def test_performance_csv(self, store):
        rows = list(csv.reader(io.StringIO(reporting_service.performance_csv(store, "RRFL"))))
        assert rows[0][-2:] == ["average", "comments"]
        assert rows[1][0] == "ref_ava"
        assert rows[1][-2] == "7.6"

    def test_league_summary(self, store):
        summary = reporting_service.league_summary(store, "RRFL")
        assert summary["events"] == 1
        assert summary["reviews"] == 1
        assert {row["username"] for row in summary["roster"]} == {"rrfl_mgr", "head_refs", "ref_ava"}
        assert summary["flagged"] == []
