"""Student rank, stripe overrides, class sessions, promotion and skill trends."""

from __future__ import annotations

import logging

from flask import Blueprint, current_app, jsonify, request

from audit import log_event
from database import get_db
from db_stores import ClubStoreDB, PerformanceLogDB, StudentStoreDB
from extensions import get_trend_analyzer, limiter
from helpers import BadRequest, json_body, rank_errors_as_json, require_int
from promotion_pipeline import rank_report
from rank_ledger import (
    apply_session,
    compute_rank_state,
    estimate_completion_date,
    expected_points_per_class,
    is_promotion_ready,
    lifetime_progress,
    promote,
    recompute_points_from_stripes,
    session_points,
    time_in_belt,
)
from rank_rules import PromotionError
from trend_analyzer import PerformanceRecord, parse_timestamp, utc_now

bp = Blueprint("students", __name__)

logger = logging.getLogger(__name__)


def _load(student_id: int):
    store = StudentStoreDB(student_id)
    student = store.load()
    rules = ClubStoreDB(student.club_id).load_rules()
    return store, student, rules


def _expected_version(data: dict, current: int) -> int:
    """Client-supplied row version for an optimistic write, else the one just read."""
    if "version" in data:
        return require_int(data, "version", minimum=1)
    return current


@bp.route("/api/clubs/<int:club_id>/students", methods=["POST"])
@limiter.limit("60 per minute")
@rank_errors_as_json
def api_create_student(club_id):
    data = json_body()
    name = (data.get("name") or "").strip()
    if not name:
        raise BadRequest("'name' is required")
    belt_id = data.get("belt_id")
    if not belt_id:
        belt_id = ClubStoreDB(club_id).load_rules().belt_sequence[0]
    total_points = require_int(data, "total_points", minimum=0) if "total_points" in data else 0
    last_promotion = data.get("last_promotion_date")

    store = StudentStoreDB.create(
        club_id,
        name,
        str(belt_id),
        total_points=total_points,
        last_promotion_date=parse_timestamp(last_promotion) if last_promotion else None,
    )
    _, student, rules = _load(store.student_id)
    return jsonify(rank_report(rules, student)), 201


@bp.route("/api/students/<int:student_id>/rank")
@rank_errors_as_json
def api_rank(student_id):
    _, student, rules = _load(student_id)
    return jsonify(rank_report(rules, student))


@bp.route("/api/students/<int:student_id>/stripes", methods=["PUT"])
@limiter.limit("60 per minute")
@rank_errors_as_json
def api_override_stripes(student_id):
    """Administrative stripe edit; the point total is recomputed to match."""
    data = json_body()
    store, student, rules = _load(student_id)
    stripes = require_int(data, "stripes", minimum=0)
    belt_id = str(data.get("belt_id") or student.belt_id)

    new_total = recompute_points_from_stripes(rules, belt_id, stripes)
    store.set_rank(
        new_total,
        _expected_version(data, student.version),
        belt_id=belt_id if belt_id != student.belt_id else None,
    )
    log_event(
        "stripes_override",
        club_id=student.club_id,
        student_id=student_id,
        detail=(
            f"belt={student.belt_id}->{belt_id} points={student.total_points}->{new_total} "
            f"stripes={stripes}"
        ),
    )
    _, student, rules = _load(student_id)
    return jsonify(rank_report(rules, student))


@bp.route("/api/students/<int:student_id>/sessions", methods=["POST"])
@limiter.limit("120 per minute")
@rank_errors_as_json
def api_record_session(student_id):
    """Log one class (skill scores plus optional bonus/homework) and add its points."""
    data = json_body()
    store, student, rules = _load(student_id)

    scores = data.get("scores")
    if not isinstance(scores, dict):
        raise BadRequest("'scores' must be an object of skill id -> score")
    lo, hi = current_app.config.get("SCORE_MIN", 0), current_app.config.get("SCORE_MAX", 2)
    for skill_id, score in scores.items():
        if score is None:
            continue
        if isinstance(score, bool) or not isinstance(score, int) or not lo <= score <= hi:
            raise BadRequest(f"score for '{skill_id}' must be an integer in [{lo}, {hi}] or null")

    bonus = require_int(data, "bonus_points", minimum=0) if "bonus_points" in data else 0
    homework = require_int(data, "homework_points", minimum=0) if "homework_points" in data else 0
    when = parse_timestamp(data["date"]) if data.get("date") else utc_now()

    points = session_points(rules, scores.values(), bonus_points=bonus, homework_points=homework)
    outcome = apply_session(rules, student.total_points, student.belt_id, points)

    # Nothing entered for this student: the class is not logged
    if points == 0 and all(s is None for s in scores.values()):
        return jsonify({**outcome.to_dict(), "recorded": False}), 200

    store.set_rank(outcome.points_after, _expected_version(data, student.version), commit=False)
    PerformanceLogDB(student_id).append(
        PerformanceRecord(
            date=when,
            scores=scores,
            bonus_points=bonus,
            note=str(data.get("note") or ""),
            coach_name=str(data.get("coach_name") or ""),
        ),
        homework_points=homework,
        commit=False,
    )
    get_db().commit()

    if outcome.new_stripes:
        logger.info(
            "student %s earned %d stripe(s) on %s", student_id, outcome.new_stripes, student.belt_id
        )
    return jsonify({**outcome.to_dict(), "recorded": True}), 201


@bp.route("/api/students/<int:student_id>/grading-requirement", methods=["PUT"])
@rank_errors_as_json
def api_grading_requirement(student_id):
    data = json_body()
    satisfied = data.get("satisfied")
    if not isinstance(satisfied, bool):
        raise BadRequest("'satisfied' must be true or false")
    store, student, _ = _load(student_id)
    store.set_ready_for_grading(satisfied)
    log_event(
        "grading_requirement",
        club_id=student.club_id,
        student_id=student_id,
        detail=f"satisfied={satisfied}",
    )
    _, student, rules = _load(student_id)
    return jsonify(rank_report(rules, student))


@bp.route("/api/students/<int:student_id>/promote", methods=["POST"])
@limiter.limit("30 per minute")
@rank_errors_as_json
def api_promote(student_id):
    data = request.get_json(silent=True) or {}
    store, student, rules = _load(student_id)

    state = compute_rank_state(rules, student.total_points, student.belt_id)
    if not is_promotion_ready(rules, state, student.is_ready_for_grading):
        if state.is_maxed:
            raise PromotionError(f"{rules.grading_requirement} has not been signed off yet")
        raise PromotionError(
            f"{state.stripes_displayed}/{rules.stripes_per_belt} stripes earned; not ready for grading"
        )

    promotion = promote(rules, student.belt_id, utc_now())
    store.apply_promotion(promotion, _expected_version(data, student.version))
    log_event(
        "promotion",
        club_id=student.club_id,
        student_id=student_id,
        detail=f"{promotion.from_belt_id}->{promotion.to_belt_id}",
    )
    _, student, rules = _load(student_id)
    return jsonify(rank_report(rules, student))


@bp.route("/api/students/<int:student_id>/trends")
@rank_errors_as_json
def api_trends(student_id):
    """Skill trends over the classes since the student's last promotion."""
    _, student, _ = _load(student_id)
    max_entries = request.args.get("max_entries", type=int)
    if max_entries is not None and max_entries <= 0:
        raise BadRequest("'max_entries' must be positive")

    analyzer = get_trend_analyzer()
    history = PerformanceLogDB(student_id).history()
    summary = analyzer.analyze(
        history,
        ClubStoreDB(student.club_id).active_skill_ids(),
        last_promotion_date=student.last_promotion_date,
        max_entries=max_entries,
    )
    payload = summary.to_dict()
    payload["student_id"] = student_id
    payload["since"] = (
        student.last_promotion_date.isoformat() if student.last_promotion_date else None
    )
    return jsonify(payload)


@bp.route("/api/students/<int:student_id>/lifetime-progress")
@rank_errors_as_json
def api_lifetime_progress(student_id):
    """Cumulative progress toward the final belt and a projected finish date."""
    _, student, rules = _load(student_id)
    classes_per_week = request.args.get("classes_per_week", 2, type=int)
    if classes_per_week < 0:
        raise BadRequest("'classes_per_week' must be a non-negative integer")

    club = ClubStoreDB(student.club_id)
    progress = lifetime_progress(rules, student.belt_id, student.total_points)
    per_class = expected_points_per_class(
        rules, len(club.active_skill_ids()), current_app.config.get("SCORE_MAX", 2)
    )
    now = utc_now()
    today = now.date()
    estimated = estimate_completion_date(progress.points_remaining, per_class, classes_per_week, today)
    baseline = estimate_completion_date(
        progress.points_remaining, per_class, max(1, classes_per_week - 1), today
    )
    names = {b.id: b.name for b in club.belts()}

    payload = progress.to_dict()
    payload.update({
        "student_id": student_id,
        "target_belt_name": names.get(progress.target_belt_id, progress.target_belt_id),
        "points_per_class": round(per_class, 2),
        "classes_per_week": classes_per_week,
        "estimated_date": estimated.isoformat(),
        "baseline_date": baseline.isoformat(),
        "years_saved": round(abs((baseline - estimated).days) / 365, 1),
        "time_in_belt": None,
    })
    if student.last_promotion_date:
        months, weeks = time_in_belt(student.last_promotion_date, now)
        payload["time_in_belt"] = {"months": months, "weeks": weeks}
    return jsonify(payload)
