"""
SQLite database layer for the dojo rank engine.

Uses raw sqlite3 with WAL mode and parameterized queries.
A schema_version table handles migrations.
"""

from __future__ import annotations

import fcntl
import sqlite3
from datetime import datetime
from pathlib import Path

from flask import current_app, g

DEFAULT_DB_PATH = Path(__file__).parent / "dojo.db"


SCHEMA = """
-- Migration tracking
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER NOT NULL,
    applied_at TEXT NOT NULL
);

-- Clubs and their rank rules (rules are replaced wholesale, never patched)
CREATE TABLE IF NOT EXISTS clubs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    belt_system TEXT NOT NULL DEFAULT 'custom',
    stripes_per_belt INTEGER NOT NULL DEFAULT 4,
    points_per_stripe INTEGER NOT NULL DEFAULT 64,
    use_custom_points_per_belt INTEGER NOT NULL DEFAULT 0,
    points_per_belt TEXT NOT NULL DEFAULT '{}',
    use_color_coded_stripes INTEGER NOT NULL DEFAULT 0,
    stripe_colors TEXT NOT NULL DEFAULT '[]',
    grading_requirement TEXT,
    coach_bonus INTEGER NOT NULL DEFAULT 0,
    homework_bonus INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL DEFAULT '',
    updated_at TEXT NOT NULL DEFAULT ''
);

CREATE TABLE IF NOT EXISTS club_belts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    club_id INTEGER NOT NULL REFERENCES clubs(id) ON DELETE CASCADE,
    belt_id TEXT NOT NULL,
    name TEXT NOT NULL DEFAULT '',
    color1 TEXT NOT NULL DEFAULT '#FFFFFF',
    color2 TEXT,
    position INTEGER NOT NULL,
    UNIQUE(club_id, belt_id)
);
CREATE INDEX IF NOT EXISTS idx_club_belts_club ON club_belts(club_id, position);

CREATE TABLE IF NOT EXISTS club_skills (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    club_id INTEGER NOT NULL REFERENCES clubs(id) ON DELETE CASCADE,
    skill_id TEXT NOT NULL,
    name TEXT NOT NULL DEFAULT '',
    is_active INTEGER NOT NULL DEFAULT 1,
    position INTEGER NOT NULL DEFAULT 0,
    UNIQUE(club_id, skill_id)
);

-- Students
CREATE TABLE IF NOT EXISTS students (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    club_id INTEGER NOT NULL REFERENCES clubs(id) ON DELETE CASCADE,
    name TEXT NOT NULL,
    belt_id TEXT NOT NULL,
    total_points INTEGER NOT NULL DEFAULT 0,
    last_promotion_date TEXT,
    is_ready_for_grading INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL DEFAULT '',
    updated_at TEXT NOT NULL DEFAULT ''
);
CREATE INDEX IF NOT EXISTS idx_students_club ON students(club_id);

-- Append-only class performance log
CREATE TABLE IF NOT EXISTS performance_records (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    student_id INTEGER NOT NULL REFERENCES students(id) ON DELETE CASCADE,
    recorded_at TEXT NOT NULL,
    scores TEXT NOT NULL DEFAULT '{}',
    bonus_points INTEGER NOT NULL DEFAULT 0,
    homework_points INTEGER NOT NULL DEFAULT 0,
    note TEXT NOT NULL DEFAULT '',
    coach_name TEXT NOT NULL DEFAULT ''
);
CREATE INDEX IF NOT EXISTS idx_performance_student_date ON performance_records(student_id, recorded_at);

-- Audit log
CREATE TABLE IF NOT EXISTS audit_log (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    club_id INTEGER,
    student_id INTEGER,
    action TEXT NOT NULL,
    detail TEXT NOT NULL DEFAULT '',
    ip_address TEXT NOT NULL DEFAULT '',
    user_agent TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_audit_student ON audit_log(student_id);

-- Nightly promotion readiness snapshots
CREATE TABLE IF NOT EXISTS promotion_reports (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    club_id INTEGER NOT NULL REFERENCES clubs(id) ON DELETE CASCADE,
    report_date TEXT NOT NULL,
    ready_count INTEGER NOT NULL DEFAULT 0,
    maxed_count INTEGER NOT NULL DEFAULT 0,
    student_count INTEGER NOT NULL DEFAULT 0,
    detail TEXT NOT NULL DEFAULT '[]',
    created_at TEXT NOT NULL,
    UNIQUE(club_id, report_date)
);
"""


# Versioned migrations: (version, sql)
MIGRATIONS: list[tuple[int, str]] = [
    (1, """
        -- Optimistic concurrency for point/belt writes
        ALTER TABLE students ADD COLUMN version INTEGER NOT NULL DEFAULT 1;
    """),
]


def get_db():
    """Return a DB connection from Flask g, creating if needed."""
    if "db" not in g:
        db_path = current_app.config.get("DATABASE", str(DEFAULT_DB_PATH))
        g.db = sqlite3.connect(db_path)
        g.db.row_factory = sqlite3.Row
        g.db.execute("PRAGMA journal_mode=WAL")
        g.db.execute("PRAGMA foreign_keys=ON")
    return g.db


def close_db(e=None) -> None:
    """Teardown handler — close DB connection."""
    db = g.pop("db", None)
    if db is not None:
        db.close()


def init_db() -> None:
    """Execute schema DDL to create all tables."""
    db = get_db()
    db.executescript(SCHEMA)
    db.commit()


def run_migrations() -> None:
    """Apply any unapplied versioned migrations.

    Uses file-based locking to prevent race conditions when multiple
    Gunicorn workers start simultaneously.
    """
    db_path = current_app.config.get("DATABASE", str(DEFAULT_DB_PATH))
    lock_file = None

    if db_path != ":memory:":
        lock_path = Path(db_path).with_suffix(".migration.lock")
        try:
            lock_file = open(lock_path, "w")
            fcntl.flock(lock_file, fcntl.LOCK_EX)
        except OSError:
            lock_file = None

    try:
        db = get_db()
        applied = {
            row["version"]
            for row in db.execute("SELECT version FROM schema_version").fetchall()
        }
        for version, sql in MIGRATIONS:
            if version not in applied:
                try:
                    db.executescript(sql)
                except sqlite3.OperationalError as e:
                    if "duplicate column" not in str(e).lower():
                        raise
                db.execute(
                    "INSERT INTO schema_version (version, applied_at) VALUES (?, ?)",
                    (version, datetime.now().isoformat()),
                )
                db.commit()
    finally:
        if lock_file:
            fcntl.flock(lock_file, fcntl.LOCK_UN)
            lock_file.close()


def init_app(app) -> None:
    """Register teardown and auto-init on first request."""
    app.teardown_appcontext(close_db)

    @app.before_request
    def _ensure_db():
        if not getattr(app, "_db_initialized", False):
            init_db()
            run_migrations()
            app._db_initialized = True
