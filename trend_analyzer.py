"""
Trend Analyzer — per-skill averages and trend direction from class scores.

Works on the append-only performance log of a single student. Only classes
recorded since the last promotion count, so a new belt starts with a clean
trend line.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Iterable, Mapping, Optional, Sequence

logger = logging.getLogger(__name__)

IMPROVING = "improving"
DECLINING = "declining"
STABLE = "stable"
NO_DATA = "no-data"


@dataclass(frozen=True)
class PerformanceRecord:
    date: datetime
    scores: Optional[Mapping[str, Any]]
    bonus_points: int = 0
    note: str = ""
    coach_name: str = ""

    def __post_init__(self):
        object.__setattr__(self, "date", parse_timestamp(self.date))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PerformanceRecord:
        """Build a record from a JSON dict. Raises ValueError on an unusable date."""
        return cls(
            date=data.get("date"),
            scores=data.get("scores"),
            bonus_points=int(data.get("bonus_points") or data.get("bonusPoints") or 0),
            note=data.get("note") or "",
            coach_name=data.get("coach_name") or data.get("coachName") or "",
        )

    def to_dict(self) -> dict:
        return {
            "date": self.date.isoformat(),
            "scores": dict(self.scores) if isinstance(self.scores, Mapping) else None,
            "bonus_points": self.bonus_points,
            "note": self.note,
            "coach_name": self.coach_name,
        }


@dataclass(frozen=True)
class SkillTrend:
    skill_id: str
    average_score: float
    trend_direction: str
    has_data: bool
    reason: str
    samples: int = 0

    def to_dict(self) -> dict:
        return {
            "skill_id": self.skill_id,
            "average_score": round(self.average_score, 2),
            "trend_direction": self.trend_direction,
            "has_data": self.has_data,
            "reason": self.reason,
            "samples": self.samples,
        }


@dataclass
class TrendSummary:
    skills: dict[str, SkillTrend] = field(default_factory=dict)
    window_size: int = 0
    skipped_records: int = 0

    @property
    def has_any_data(self) -> bool:
        return any(s.has_data for s in self.skills.values())

    def to_dict(self) -> dict:
        return {
            "skills": [s.to_dict() for s in self.skills.values()],
            "window_size": self.window_size,
            "skipped_records": self.skipped_records,
            "has_any_data": self.has_any_data,
        }


def utc_now() -> datetime:
    """Current time as naive UTC, the form every stored timestamp uses."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO date/datetime (or pass a datetime through) as naive UTC."""
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime(value.year, value.month, value.day)
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            raise ValueError(f"Invalid timestamp: {value!r}") from None
    else:
        raise ValueError(f"Invalid timestamp: {value!r}")

    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


class TrendAnalyzer:
    """Rolling per-skill averages and trend direction over a bounded window."""

    DEFAULT_MAX_ENTRIES = 8  # roughly the last two months of weekly classes
    EPSILON = 0.1  # half-means closer than this read as "stable"
    MIN_SCORES_FOR_TREND = 2

    def __init__(
        self,
        score_min: int = 0,
        score_max: int = 2,
        epsilon: float = EPSILON,
        max_entries: int = DEFAULT_MAX_ENTRIES,
    ):
        if score_min > score_max:
            raise ValueError("score_min must not exceed score_max")
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")
        self.score_min = score_min
        self.score_max = score_max
        self.epsilon = epsilon
        self.max_entries = max_entries

    # --- Windowing ---

    def windowed_history(
        self,
        history: Iterable[PerformanceRecord],
        last_promotion_date: Optional[datetime] = None,
        max_entries: Optional[int] = None,
    ) -> list[PerformanceRecord]:
        """Records strictly after the last promotion, oldest first, at most ``max_entries``."""
        limit = self.max_entries if max_entries is None else max_entries
        if limit <= 0:
            return []

        records = list(history)
        if last_promotion_date is not None:
            cutoff = parse_timestamp(last_promotion_date)
            records = [r for r in records if r.date > cutoff]
        records.sort(key=lambda r: r.date)
        return records[-limit:]

    # --- Per-skill statistics ---

    def _valid_score(self, value: Any) -> bool:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return False
        if isinstance(value, float) and math.isnan(value):
            return False
        return self.score_min <= value <= self.score_max

    def _skill_scores(self, window: Sequence[PerformanceRecord], skill_id: str) -> list[float]:
        """Valid scores for one skill in window order."""
        scores: list[float] = []
        for record in window:
            if not isinstance(record.scores, Mapping):
                continue
            value = record.scores.get(skill_id)
            if value is not None and self._valid_score(value):
                scores.append(value)
        return scores

    def skill_average(
        self, window: Sequence[PerformanceRecord], skill_id: str
    ) -> tuple[float, bool]:
        """Average score for a skill; (0.0, False) when no class recorded it."""
        scores = self._skill_scores(window, skill_id)
        if not scores:
            return 0.0, False
        return sum(scores) / len(scores), True

    def trend_direction(self, scores: Sequence[float]) -> tuple[str, str]:
        """Compare the mean of the older half of ``scores`` with the newer half.

        On odd lengths the older half takes the extra element.
        """
        n = len(scores)
        if n == 0:
            return NO_DATA, "No data recorded"
        if n < self.MIN_SCORES_FOR_TREND:
            return NO_DATA, "Not enough data (need at least 2 classes) to calculate trend."

        split = math.ceil(n / 2)
        past = scores[:split]
        recent = scores[split:]
        past_avg = sum(past) / len(past)
        recent_avg = sum(recent) / len(recent)

        if recent_avg > past_avg + self.epsilon:
            return IMPROVING, f"Improving: Recent avg ({recent_avg:.1f}) > Past avg ({past_avg:.1f})"
        if recent_avg < past_avg - self.epsilon:
            return DECLINING, f"Declining: Recent avg ({recent_avg:.1f}) < Past avg ({past_avg:.1f})"
        return STABLE, f"Stable: Recent avg ({recent_avg:.1f}) ≈ Past avg ({past_avg:.1f})"

    # --- Aggregate ---

    def summarize(
        self, active_skills: Iterable[str], window: Sequence[PerformanceRecord]
    ) -> TrendSummary:
        """Average and direction for every active skill over an already-windowed history."""
        window = list(window)
        skills = list(active_skills)
        summary = TrendSummary(window_size=len(window))

        for skill_id in skills:
            average, has_data = self.skill_average(window, skill_id)
            scores = self._skill_scores(window, skill_id) if has_data else []
            direction, reason = self.trend_direction(scores)
            summary.skills[skill_id] = SkillTrend(
                skill_id=skill_id,
                average_score=average,
                trend_direction=direction,
                has_data=has_data,
                reason=reason,
                samples=len(scores),
            )

        summary.skipped_records = sum(1 for r in window if self._is_malformed(r, skills))
        if summary.skipped_records:
            logger.warning(
                "Skipped %d malformed performance record(s) in a window of %d",
                summary.skipped_records, len(window),
            )
        return summary

    def _is_malformed(self, record: PerformanceRecord, skills: Sequence[str]) -> bool:
        if not isinstance(record.scores, Mapping):
            return True
        return any(
            record.scores.get(s) is not None and not self._valid_score(record.scores[s])
            for s in skills
        )

    def analyze(
        self,
        history: Iterable[PerformanceRecord],
        active_skills: Iterable[str],
        last_promotion_date: Optional[datetime] = None,
        max_entries: Optional[int] = None,
    ) -> TrendSummary:
        window = self.windowed_history(history, last_promotion_date, max_entries)
        return self.summarize(active_skills, window)


def parse_history(raw_records: Iterable[Mapping[str, Any]]) -> tuple[list[PerformanceRecord], int]:
    """Build records from JSON dicts, skipping any without a usable date."""
    records: list[PerformanceRecord] = []
    skipped = 0
    for raw in raw_records:
        try:
            records.append(PerformanceRecord.from_dict(raw))
        except (ValueError, TypeError, AttributeError):
            skipped += 1
    return records, skipped


_default = TrendAnalyzer()


def windowed_history(history, last_promotion_date=None, max_entries=TrendAnalyzer.DEFAULT_MAX_ENTRIES):
    return _default.windowed_history(history, last_promotion_date, max_entries)


def skill_average(window, skill_id):
    return _default.skill_average(window, skill_id)


def trend_direction(scores):
    return _default.trend_direction(scores)


def summarize(active_skills, window):
    return _default.summarize(active_skills, window)
