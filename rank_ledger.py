"""
Rank Ledger — point totals to belt/stripe state.

Pure functions over a club's RankRules and a student's (total_points, belt_id).
Nothing here touches the database; stores and blueprints call in and persist
whatever they decide to keep.
"""

from __future__ import annotations

from dataclasses import dataclass, asdict
from datetime import date, datetime, timedelta
from typing import Iterable, Optional

from rank_rules import (
    DEFAULT_STRIPE_COLOR,
    ConfigurationError,
    PromotionError,
    RankRules,
    UnknownBeltError,
)


@dataclass(frozen=True)
class StudentRankState:
    total_points: int
    belt_id: str
    points_per_stripe: int
    stripes_per_belt: int
    stripes_earned: int
    stripes_displayed: int
    is_maxed: bool
    points_toward_next_stripe: int
    progress_fraction: float

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class SessionOutcome:
    points_before: int
    points_after: int
    session_points: int
    new_stripes: int
    state: StudentRankState

    def to_dict(self) -> dict:
        return {
            "points_before": self.points_before,
            "points_after": self.points_after,
            "session_points": self.session_points,
            "new_stripes": self.new_stripes,
            "state": self.state.to_dict(),
        }


@dataclass(frozen=True)
class Promotion:
    from_belt_id: str
    to_belt_id: str
    total_points: int
    promoted_at: datetime


def effective_points_per_stripe(rules: RankRules, belt_id: str) -> int:
    """Points needed for one stripe on ``belt_id``.

    The per-belt override wins only while advanced mode is on and the belt has
    an entry; every other case falls back to the club default.
    """
    points = rules.points_per_stripe_default
    if rules.use_custom_points_per_belt and belt_id in rules.points_per_stripe_override:
        points = rules.points_per_stripe_override[belt_id]
    if isinstance(points, bool) or not isinstance(points, int) or points <= 0:
        raise ConfigurationError(
            f"points per stripe for belt {belt_id!r} must be a positive integer, got {points!r}"
        )
    return points


def compute_rank_state(rules: RankRules, total_points: int, belt_id: str) -> StudentRankState:
    """Derive the full stripe/progress state for a student.

    A student sitting exactly on the maximum is reported as maxed with a full
    progress bar, never as an empty bar on the next stripe.
    """
    if not rules.has_belt(belt_id):
        raise UnknownBeltError(belt_id)
    _check_points(total_points)

    pps = effective_points_per_stripe(rules, belt_id)
    max_stripes = rules.stripes_per_belt
    if isinstance(max_stripes, bool) or not isinstance(max_stripes, int) or max_stripes <= 0:
        raise ConfigurationError(f"stripes per belt must be a positive integer, got {max_stripes!r}")

    earned = total_points // pps
    is_maxed = earned >= max_stripes
    toward_next = pps if is_maxed else total_points % pps

    return StudentRankState(
        total_points=total_points,
        belt_id=belt_id,
        points_per_stripe=pps,
        stripes_per_belt=max_stripes,
        stripes_earned=earned,
        stripes_displayed=min(earned, max_stripes),
        is_maxed=is_maxed,
        points_toward_next_stripe=toward_next,
        progress_fraction=1.0 if is_maxed else toward_next / pps,
    )


def stripe_color(rules: RankRules, index: int) -> str:
    """Color token for stripe slot ``index`` (0-based)."""
    if not 0 <= index < rules.stripes_per_belt:
        raise IndexError(
            f"stripe index {index} out of range for {rules.stripes_per_belt} stripes per belt"
        )
    if rules.use_color_coded_stripes and index < len(rules.stripe_colors):
        color = rules.stripe_colors[index]
        if color:
            return color
    return DEFAULT_STRIPE_COLOR


def stripe_colors(rules: RankRules) -> list[str]:
    return [stripe_color(rules, i) for i in range(rules.stripes_per_belt)]


def next_stripe_color(rules: RankRules, state: StudentRankState) -> str:
    """Color of the stripe currently being worked toward (the last slot once maxed)."""
    return stripe_color(rules, min(state.stripes_displayed, rules.stripes_per_belt - 1))


def is_promotion_ready(
    rules: RankRules, state: StudentRankState, requirement_satisfied: bool
) -> bool:
    if not state.is_maxed:
        return False
    return rules.grading_requirement is None or bool(requirement_satisfied)


def recompute_points_from_stripes(rules: RankRules, belt_id: str, new_stripe_count: int) -> int:
    """Point total matching an administrator's manual stripe count.

    Stripes are the unit of truth at edit time, so the same count maps to a
    different total whenever the belt's rate differs.
    """
    if not rules.has_belt(belt_id):
        raise UnknownBeltError(belt_id)
    if isinstance(new_stripe_count, bool) or not isinstance(new_stripe_count, int):
        raise ValueError(f"stripe count must be an integer, got {new_stripe_count!r}")
    if new_stripe_count < 0:
        raise ValueError(f"stripe count must be non-negative, got {new_stripe_count}")
    return new_stripe_count * effective_points_per_stripe(rules, belt_id)


# ── Class sessions ───────────────────────────────────────────────────


def class_points(scores: Iterable[Optional[int]]) -> int:
    """Raw sum of the scores entered for a class (unentered skills are None)."""
    return sum(s for s in scores if s is not None)


def session_points(
    rules: RankRules,
    scores: Iterable[Optional[int]],
    bonus_points: int = 0,
    homework_points: int = 0,
) -> int:
    """Points a single class adds toward stripes.

    Coach bonus and homework count only when the club has them switched on.
    There is no upper cap on either.
    """
    total = class_points(scores)
    if rules.coach_bonus_enabled:
        total += max(0, bonus_points)
    if rules.homework_bonus_enabled:
        total += max(0, homework_points)
    return total


def apply_session(
    rules: RankRules, total_points: int, belt_id: str, points: int
) -> SessionOutcome:
    """Add a session's points and report how many stripes it earned."""
    before = compute_rank_state(rules, total_points, belt_id)
    if points < 0:
        raise ValueError(f"session points must be non-negative, got {points}")
    after = compute_rank_state(rules, total_points + points, belt_id)
    return SessionOutcome(
        points_before=total_points,
        points_after=after.total_points,
        session_points=points,
        new_stripes=after.stripes_earned - before.stripes_earned,
        state=after,
    )


# ── Promotion ────────────────────────────────────────────────────────


def next_belt(rules: RankRules, belt_id: str) -> Optional[str]:
    """The belt after ``belt_id`` in the progression, or None at the top."""
    idx = rules.belt_index(belt_id)
    if idx + 1 < len(rules.belt_sequence):
        return rules.belt_sequence[idx + 1]
    return None


def promote(rules: RankRules, belt_id: str, when: datetime) -> Promotion:
    """Move to the next belt. Points restart from zero on the new belt."""
    target = next_belt(rules, belt_id)
    if target is None:
        raise PromotionError(f"{belt_id!r} is the highest belt; nothing to promote to")
    return Promotion(from_belt_id=belt_id, to_belt_id=target, total_points=0, promoted_at=when)


# ── Lifetime progress ────────────────────────────────────────────────

EXPECTED_SCORE_RATE = 0.85  # most classes score green or yellow
HOMEWORK_POINTS_PER_CLASS = 1.0
COACH_BONUS_PER_CLASS = 0.5
NO_PROGRESS_HORIZON_YEARS = 10
DAYS_PER_MONTH = 30.44


@dataclass(frozen=True)
class LifetimeProgress:
    target_belt_id: str
    total_points_needed: int
    banked_points: int
    lifetime_points: int
    points_remaining: int
    percent_complete: float

    def to_dict(self) -> dict:
        return asdict(self)


def lifetime_progress(rules: RankRules, belt_id: str, total_points: int) -> LifetimeProgress:
    """Cumulative progress toward the final belt in the sequence.

    Every belt below the final one costs a full set of stripes at its own rate.
    The running total restarts at each promotion, so completed belts are
    counted as banked points.
    """
    current = rules.belt_index(belt_id)
    _check_points(total_points)

    target = len(rules.belt_sequence) - 1
    needed = 0
    banked = 0
    for i, belt in enumerate(rules.belt_sequence[:target]):
        belt_total = rules.stripes_per_belt * effective_points_per_stripe(rules, belt)
        needed += belt_total
        if i < current:
            banked += belt_total

    lifetime = banked + total_points
    percent = lifetime / needed * 100 if needed > 0 else 100.0
    return LifetimeProgress(
        target_belt_id=rules.belt_sequence[target],
        total_points_needed=needed,
        banked_points=banked,
        lifetime_points=lifetime,
        points_remaining=max(0, needed - lifetime),
        percent_complete=min(100.0, max(0.0, percent)),
    )


def expected_points_per_class(
    rules: RankRules, active_skill_count: int, score_max: int = 2
) -> float:
    """Realistic points for one class, used to project a finish date."""
    points = max(1, active_skill_count) * score_max * EXPECTED_SCORE_RATE
    if rules.homework_bonus_enabled:
        points += HOMEWORK_POINTS_PER_CLASS
    if rules.coach_bonus_enabled:
        points += COACH_BONUS_PER_CLASS
    return points


def estimate_completion_date(
    points_remaining: int, points_per_class: float, classes_per_week: float, today: date
) -> date:
    if points_remaining <= 0:
        return today
    per_week = classes_per_week * points_per_class
    if per_week <= 0:
        try:
            return today.replace(year=today.year + NO_PROGRESS_HORIZON_YEARS)
        except ValueError:  # 29 February
            return today.replace(year=today.year + NO_PROGRESS_HORIZON_YEARS, day=28)
    return today + timedelta(days=points_remaining / per_week * 7)


def time_in_belt(since: datetime, now: datetime) -> tuple[int, int]:
    """Whole (months, weeks) spent on the current belt."""
    days = max(0.0, (now - since).total_seconds() / 86400)
    months = int(days // DAYS_PER_MONTH)
    weeks = int((days % DAYS_PER_MONTH) // 7)
    return months, weeks


def _check_points(total_points) -> None:
    if isinstance(total_points, bool) or not isinstance(total_points, int):
        raise ValueError(f"total points must be an integer, got {total_points!r}")
    if total_points < 0:
        raise ValueError(f"total points must be non-negative, got {total_points}")
