"""
Promotion pipeline — per-student rank reports and the club-wide readiness batch.

Functions:
  - rank_report(rules, student): state + colors + readiness for one student.
  - club_promotion_report(club_id): readiness across a club (needs an app context).
  - run_promotion_reports(app): nightly job, snapshots every club into promotion_reports.
"""

from __future__ import annotations

import json
import logging

from db_stores import ClubStoreDB, StudentRecord, StudentStoreDB
from rank_ledger import (
    compute_rank_state,
    is_promotion_ready,
    next_belt,
    next_stripe_color,
    stripe_colors,
)
from rank_rules import ConfigurationError, RankRules, UnknownBeltError
from trend_analyzer import utc_now

logger = logging.getLogger(__name__)


def rank_report(rules: RankRules, student: StudentRecord) -> dict:
    """Everything a dashboard needs to draw one student's belt and stripe bar."""
    state = compute_rank_state(rules, student.total_points, student.belt_id)
    return {
        "student_id": student.id,
        "name": student.name,
        "belt_id": student.belt_id,
        "next_belt_id": next_belt(rules, student.belt_id),
        "state": state.to_dict(),
        "stripe_colors": stripe_colors(rules),
        "next_stripe_color": next_stripe_color(rules, state),
        "grading_requirement": rules.grading_requirement,
        "requirement_satisfied": student.is_ready_for_grading,
        "promotion_ready": is_promotion_ready(rules, state, student.is_ready_for_grading),
        "last_promotion_date": (
            student.last_promotion_date.isoformat() if student.last_promotion_date else None
        ),
        "version": student.version,
    }


def club_promotion_report(club_id: int) -> dict:
    """Readiness of every student in a club.

    A student whose belt is no longer in the club's sequence is listed under
    ``errors`` instead of aborting the whole report.
    """
    club = ClubStoreDB(club_id)
    rules = club.load_rules()

    students = []
    errors = []
    for student_id in club.student_ids():
        student = StudentStoreDB(student_id).load()
        try:
            students.append(rank_report(rules, student))
        except (UnknownBeltError, ConfigurationError) as e:
            logger.warning("promotion report: club %s student %s skipped: %s", club_id, student_id, e)
            errors.append({"student_id": student_id, "error": str(e)})

    ready = [s for s in students if s["promotion_ready"]]
    awaiting = [
        s for s in students
        if s["state"]["is_maxed"] and not s["promotion_ready"]
    ]
    return {
        "club_id": club_id,
        "student_count": len(students),
        "maxed_count": len(ready) + len(awaiting),
        "ready_count": len(ready),
        "ready": ready,
        "awaiting_requirement": awaiting,
        "errors": errors,
    }


def run_promotion_reports(app) -> dict:
    """Snapshot promotion readiness for every club; upserts one row per club per day."""
    with app.app_context():
        from database import get_db
        db = get_db()

        today = utc_now().date().isoformat()
        now = utc_now().isoformat()
        club_ids = [r["id"] for r in db.execute("SELECT id FROM clubs ORDER BY id").fetchall()]

        summary = {"date": today, "clubs": 0, "ready": 0, "failed_clubs": []}
        for club_id in club_ids:
            try:
                report = club_promotion_report(club_id)
            except ConfigurationError as e:
                logger.error("promotion report: club %s has unusable rules: %s", club_id, e)
                summary["failed_clubs"].append(club_id)
                continue

            detail = json.dumps([
                {"student_id": s["student_id"], "belt_id": s["belt_id"], "next_belt_id": s["next_belt_id"]}
                for s in report["ready"]
            ])
            db.execute(
                "INSERT INTO promotion_reports (club_id, report_date, ready_count, maxed_count, "
                "student_count, detail, created_at) VALUES (?, ?, ?, ?, ?, ?, ?) "
                "ON CONFLICT(club_id, report_date) DO UPDATE SET ready_count = ?, "
                "maxed_count = ?, student_count = ?, detail = ?, created_at = ?",
                (
                    club_id, today, report["ready_count"], report["maxed_count"],
                    report["student_count"], detail, now,
                    report["ready_count"], report["maxed_count"], report["student_count"],
                    detail, now,
                ),
            )
            summary["clubs"] += 1
            summary["ready"] += report["ready_count"]

        db.commit()
        logger.info(
            "promotion report %s: %d club(s), %d student(s) ready",
            today, summary["clubs"], summary["ready"],
        )
        return summary
