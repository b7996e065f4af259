"""Tests for the trend analyzer: windowing, per-skill averages and trend direction."""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone

import pytest

from trend_analyzer import (
    DECLINING,
    IMPROVING,
    NO_DATA,
    STABLE,
    PerformanceRecord,
    TrendAnalyzer,
    parse_history,
    parse_timestamp,
    skill_average,
    summarize,
    trend_direction,
    windowed_history,
)

START = datetime(2026, 2, 1, 18, 0)


def _history(*score_maps) -> list[PerformanceRecord]:
    """One record per class, a week apart, oldest first."""
    return [
        PerformanceRecord(date=START + timedelta(weeks=i), scores=scores)
        for i, scores in enumerate(score_maps)
    ]


class TestTrendDirection:
    def test_flat_scores_are_stable(self):
        direction, reason = trend_direction([1, 1, 1, 1])
        assert direction == STABLE
        assert reason.startswith("Stable")

    def test_rising_scores_are_improving(self):
        direction, reason = trend_direction([0, 0, 2, 2])
        assert direction == IMPROVING
        assert "Recent avg (2.0) > Past avg (0.0)" in reason

    def test_falling_scores_are_declining(self):
        assert trend_direction([2, 2, 0, 0])[0] == DECLINING

    def test_single_score_has_no_trend(self):
        direction, reason = trend_direction([1])
        assert direction == NO_DATA
        assert "need at least 2" in reason

    def test_no_scores(self):
        assert trend_direction([]) == (NO_DATA, "No data recorded")

    def test_odd_length_older_half_takes_middle(self):
        # older = [0, 0], newer = [2]; the middle element belongs to the older half
        assert trend_direction([0, 0, 2])[0] == IMPROVING
        # older = [2, 1], newer = [1]: 1.0 < 1.5 - 0.1
        assert trend_direction([2, 1, 1])[0] == DECLINING

    def test_difference_within_epsilon_is_stable(self):
        analyzer = TrendAnalyzer(epsilon=0.5)
        assert analyzer.trend_direction([1, 1, 1, 2, 1, 1])[0] == STABLE


class TestWindowedHistory:
    def test_only_records_after_promotion(self):
        history = _history({"focus": 1}, {"focus": 2}, {"focus": 0})
        window = windowed_history(history, last_promotion_date=history[0].date)
        assert [r.date for r in window] == [history[1].date, history[2].date]

    def test_sorted_oldest_first(self):
        history = _history({"focus": 0}, {"focus": 1}, {"focus": 2})
        window = windowed_history(list(reversed(history)))
        assert [r.scores["focus"] for r in window] == [0, 1, 2]

    def test_keeps_most_recent_entries(self):
        history = _history(*({"focus": i % 3} for i in range(12)))
        window = windowed_history(history)
        assert len(window) == 8
        assert window[0].date == history[4].date
        assert window[-1].date == history[-1].date

    def test_explicit_max_entries(self):
        history = _history({"focus": 0}, {"focus": 1}, {"focus": 2})
        assert len(windowed_history(history, max_entries=2)) == 2
        assert windowed_history(history, max_entries=0) == []

    def test_promotion_date_as_string(self):
        history = _history({"focus": 1}, {"focus": 2})
        window = windowed_history(history, last_promotion_date="2026-02-03")
        assert len(window) == 1

    def test_aware_record_dates(self):
        history = [
            PerformanceRecord(
                date=datetime(2026, 2, 1, 18, tzinfo=timezone.utc) + timedelta(weeks=i),
                scores={"focus": i},
            )
            for i in range(3)
        ]
        window = windowed_history(history, last_promotion_date="2026-02-03")
        assert [r.scores["focus"] for r in window] == [1, 2]
        assert all(r.date.tzinfo is None for r in window)

    def test_mixed_aware_and_naive_dates(self):
        tokyo = timezone(timedelta(hours=9))
        history = [
            PerformanceRecord(date=datetime(2026, 2, 8, 18, 0), scores={"focus": 2}),
            # 2026-02-01 09:00 UTC
            PerformanceRecord(date=datetime(2026, 2, 1, 18, 0, tzinfo=tokyo), scores={"focus": 0}),
            PerformanceRecord(date="2026-02-05T12:00:00Z", scores={"focus": 1}),
        ]
        window = windowed_history(history, last_promotion_date=datetime(2026, 2, 1, 8, 0))
        assert [r.scores["focus"] for r in window] == [0, 1, 2]
        assert window[0].date == datetime(2026, 2, 1, 9, 0)

    def test_record_rejects_unusable_date(self):
        with pytest.raises(ValueError):
            PerformanceRecord(date="soon", scores={})


class TestSkillAverage:
    def test_average_of_recorded_scores(self):
        window = _history({"focus": 2}, {"focus": 1}, {"effort": 2})
        assert skill_average(window, "focus") == (1.5, True)

    def test_no_data(self):
        window = _history({"effort": 2})
        assert skill_average(window, "focus") == (0.0, False)

    def test_invalid_scores_ignored(self):
        window = _history({"focus": 2}, {"focus": 7}, {"focus": "high"}, {"focus": True})
        assert skill_average(window, "focus") == (2.0, True)


class TestSummarize:
    def test_one_entry_per_active_skill(self):
        window = _history(
            {"focus": 0, "effort": 1},
            {"focus": 0, "effort": 1},
            {"focus": 2, "effort": 1},
            {"focus": 2, "effort": 1},
        )
        summary = summarize(["focus", "effort", "discipline"], window)
        assert list(summary.skills) == ["focus", "effort", "discipline"]
        assert summary.skills["focus"].trend_direction == IMPROVING
        assert summary.skills["focus"].average_score == 1.0
        assert summary.skills["effort"].trend_direction == STABLE
        assert summary.skills["discipline"].has_data is False
        assert summary.skills["discipline"].trend_direction == NO_DATA
        assert summary.window_size == 4
        assert summary.has_any_data

    def test_inactive_skills_not_reported(self):
        summary = summarize(["focus"], _history({"focus": 1, "sparring": 2}))
        assert "sparring" not in summary.skills

    def test_empty_window(self):
        summary = summarize(["focus"], [])
        assert summary.has_any_data is False
        assert summary.to_dict()["skills"][0]["reason"] == "No data recorded"

    def test_malformed_records_skipped_and_counted(self, caplog):
        window = [
            PerformanceRecord(date=START, scores=None),
            PerformanceRecord(date=START + timedelta(days=1), scores={"focus": 9}),
            PerformanceRecord(date=START + timedelta(days=2), scores={"focus": 2}),
            PerformanceRecord(date=START + timedelta(days=3), scores={"focus": 2}),
        ]
        with caplog.at_level(logging.WARNING, logger="trend_analyzer"):
            summary = summarize(["focus"], window)
        assert summary.skipped_records == 2
        assert summary.skills["focus"].samples == 2
        assert summary.skills["focus"].trend_direction == STABLE
        assert "malformed" in caplog.text

    def test_built_from_the_public_statistics(self):
        class LenientAnalyzer(TrendAnalyzer):
            def trend_direction(self, scores):
                return STABLE, f"{len(scores)} scores"

            def skill_average(self, window, skill_id):
                return 1.5, True

        summary = LenientAnalyzer().summarize(["focus"], _history({"focus": 0}, {"focus": 2}))
        assert summary.skills["focus"].trend_direction == STABLE
        assert summary.skills["focus"].reason == "2 scores"
        assert summary.skills["focus"].average_score == 1.5

    def test_analyze_windows_then_summarizes(self):
        history = _history({"focus": 2}, {"focus": 0}, {"focus": 0}, {"focus": 2}, {"focus": 2})
        summary = TrendAnalyzer().analyze(history, ["focus"], last_promotion_date=history[0].date)
        assert summary.window_size == 4
        assert summary.skills["focus"].trend_direction == IMPROVING


class TestAnalyzerConfig:
    def test_custom_score_range(self):
        analyzer = TrendAnalyzer(score_min=1, score_max=5)
        window = _history({"focus": 5}, {"focus": 0})
        assert analyzer.skill_average(window, "focus") == (5.0, True)

    def test_rejects_inverted_range(self):
        with pytest.raises(ValueError):
            TrendAnalyzer(score_min=3, score_max=1)

    def test_rejects_empty_window(self):
        with pytest.raises(ValueError):
            TrendAnalyzer(max_entries=0)


class TestParsing:
    def test_parse_timestamp_variants(self):
        assert parse_timestamp("2026-02-01T18:00:00") == START
        assert parse_timestamp("2026-02-01T18:00:00Z") == START
        assert parse_timestamp(date(2026, 2, 1)) == datetime(2026, 2, 1)
        aware = datetime(2026, 2, 1, 19, 0, tzinfo=timezone(timedelta(hours=1)))
        assert parse_timestamp(aware) == START

    @pytest.mark.parametrize("value", [None, "", "yesterday", 42])
    def test_parse_timestamp_rejects(self, value):
        with pytest.raises(ValueError):
            parse_timestamp(value)

    def test_parse_history_skips_undated(self):
        records, skipped = parse_history([
            {"date": "2026-02-01T18:00:00", "scores": {"focus": 2}, "bonusPoints": 3, "coachName": "Kim"},
            {"date": "not a date", "scores": {"focus": 1}},
            {"scores": {"focus": 1}},
        ])
        assert skipped == 2
        assert records[0].bonus_points == 3
        assert records[0].coach_name == "Kim"
        assert records[0].to_dict()["date"] == "2026-02-01T18:00:00"
