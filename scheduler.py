"""
Scheduler — registers the nightly promotion readiness report.

Jobs:
  - Promotion readiness snapshot (daily, PROMOTION_REPORT_HOUR)
"""

from __future__ import annotations


def init_scheduler(app):
    """Start a background scheduler for periodic jobs.

    Uses APScheduler if available. Returns the scheduler instance or None.
    """
    if not app.config.get("FEATURE_FLAGS", {}).get("promotion_report_job", False):
        app.logger.info("Promotion report job disabled by feature flag.")
        return None

    try:
        from apscheduler.schedulers.background import BackgroundScheduler
    except ImportError:
        app.logger.info("APScheduler not installed — scheduling disabled.")
        return None

    from promotion_pipeline import run_promotion_reports

    scheduler = BackgroundScheduler(daemon=True)
    scheduler.add_job(
        func=run_promotion_reports,
        args=[app],
        trigger="cron",
        hour=app.config.get("PROMOTION_REPORT_HOUR", 3),
        id="promotion_reports",
        replace_existing=True,
    )
    scheduler.start()
    app.logger.info("Scheduler started: promotion_reports")
    return scheduler
