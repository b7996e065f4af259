"""
Audit logging — records administrative edits to rank data.

Stripe overrides, promotions and rule replacements are written to both the
audit_log table and structured logging.
"""

from __future__ import annotations

import logging
import sqlite3

from flask import has_request_context, request

from database import get_db
from trend_analyzer import utc_now

logger = logging.getLogger(__name__)


def log_event(
    action: str,
    club_id: int | None = None,
    student_id: int | None = None,
    detail: str = "",
) -> None:
    """Insert an audit log entry and emit a structured log line."""
    ip = (request.remote_addr or "") if has_request_context() else ""
    ua = request.headers.get("User-Agent", "") if has_request_context() else ""
    now = utc_now().isoformat()

    try:
        db = get_db()
        db.execute(
            "INSERT INTO audit_log (club_id, student_id, action, detail, ip_address, user_agent, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?)",
            (club_id, student_id, action, detail, ip, ua, now),
        )
        db.commit()
    except sqlite3.Error:
        # The edit itself already committed; a lost audit row must not fail the request.
        logger.exception("audit: failed to persist %s for student_id=%s", action, student_id)

    logger.info(
        "audit: %s club_id=%s student_id=%s detail=%s ip=%s",
        action, club_id, student_id, detail, ip,
    )
