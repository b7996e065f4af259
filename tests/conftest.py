"""
Test fixtures for the dojo rank engine.

Provides app, client and db fixtures with file-based SQLite, plus a seeded
club (three belts, 4 stripes x 64 points, a "Poomsae" grading requirement)
and two students.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))


CLUB_ID = 1
WHITE_STUDENT_ID = 1
YELLOW_STUDENT_ID = 2
LAST_PROMOTION = "2026-01-01T10:00:00"


@pytest.fixture
def rules():
    from rank_rules import RankRules
    return RankRules(
        belt_sequence=("white", "yellow", "green"),
        stripes_per_belt=4,
        points_per_stripe_default=64,
    )


@pytest.fixture
def app(tmp_path):
    """Create app with file-based SQLite and a seeded club."""
    from app import create_app

    db_file = str(tmp_path / "test.db")
    app = create_app({
        "TESTING": True,
        "DATABASE": db_file,
        "SECRET_KEY": "test-secret-key",
    })

    with app.app_context():
        from database import init_db, run_migrations, get_db

        init_db()
        run_migrations()
        app._db_initialized = True

        db = get_db()
        db.execute(
            "INSERT INTO clubs (id, name, belt_system, stripes_per_belt, points_per_stripe, "
            "grading_requirement, coach_bonus, homework_bonus, created_at, updated_at) "
            "VALUES (1, 'Test Dojang', 'custom', 4, 64, 'Poomsae', 1, 0, '2026-01-01', '2026-01-01')"
        )
        for pos, (belt_id, name, color) in enumerate([
            ("white", "White", "#FFFFFF"),
            ("yellow", "Yellow", "#FFD700"),
            ("green", "Green", "#008000"),
        ]):
            db.execute(
                "INSERT INTO club_belts (club_id, belt_id, name, color1, position) VALUES (1, ?, ?, ?, ?)",
                (belt_id, name, color, pos),
            )
        for pos, (skill_id, active) in enumerate([("focus", 1), ("effort", 1), ("discipline", 1), ("sparring", 0)]):
            db.execute(
                "INSERT INTO club_skills (club_id, skill_id, name, is_active, position) VALUES (1, ?, ?, ?, ?)",
                (skill_id, skill_id.title(), active, pos),
            )
        db.execute(
            "INSERT INTO students (id, club_id, name, belt_id, total_points, last_promotion_date, "
            "created_at, updated_at) VALUES (1, 1, 'Min-jun', 'white', 100, ?, '2026-01-01', '2026-01-01')",
            (LAST_PROMOTION,),
        )
        db.execute(
            "INSERT INTO students (id, club_id, name, belt_id, total_points, last_promotion_date, "
            "created_at, updated_at) VALUES (2, 1, 'Sofia', 'yellow', 256, ?, '2026-01-01', '2026-01-01')",
            (LAST_PROMOTION,),
        )
        db.commit()

        yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def db(app):
    """Direct database access for store tests."""
    with app.app_context():
        from database import get_db
        yield get_db()
