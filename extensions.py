"""
Shared Flask extensions and the per-app trend analyzer.

Kept out of app.py so blueprints can import them without a circular import.
"""

from __future__ import annotations

from flask import current_app
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

from trend_analyzer import TrendAnalyzer

limiter = Limiter(key_func=get_remote_address, default_limits=["200 per hour"])


def get_trend_analyzer() -> TrendAnalyzer:
    """TrendAnalyzer built from the app's trend settings, created once per app."""
    analyzer = current_app.extensions.get("trend_analyzer")
    if analyzer is None:
        cfg = current_app.config
        analyzer = TrendAnalyzer(
            score_min=cfg.get("SCORE_MIN", 0),
            score_max=cfg.get("SCORE_MAX", 2),
            epsilon=cfg.get("TREND_EPSILON", TrendAnalyzer.EPSILON),
            max_entries=cfg.get("TREND_WINDOW_SIZE", TrendAnalyzer.DEFAULT_MAX_ENTRIES),
        )
        current_app.extensions["trend_analyzer"] = analyzer
    return analyzer
