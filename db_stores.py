"""
DB-backed stores for clubs, students and the class performance log.

These are the persistence collaborators of the rank engine: they load the
inputs (rules, point totals, history) and save the outcomes, while every
derived value is recomputed on read by rank_ledger / trend_analyzer.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

from database import get_db
from rank_ledger import Promotion
from rank_rules import Belt, ConfigurationError, RankRules
from trend_analyzer import PerformanceRecord, parse_timestamp, utc_now


class NotFoundError(LookupError):
    """Requested club or student does not exist."""


class StaleWriteError(RuntimeError):
    """The student row changed since it was read (optimistic version check failed)."""


@dataclass(frozen=True)
class Skill:
    id: str
    name: str
    is_active: bool = True

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "is_active": self.is_active}


@dataclass(frozen=True)
class StudentRecord:
    id: int
    club_id: int
    name: str
    belt_id: str
    total_points: int
    last_promotion_date: Optional[datetime]
    is_ready_for_grading: bool
    version: int

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "club_id": self.club_id,
            "name": self.name,
            "belt_id": self.belt_id,
            "total_points": self.total_points,
            "last_promotion_date": (
                self.last_promotion_date.isoformat() if self.last_promotion_date else None
            ),
            "is_ready_for_grading": self.is_ready_for_grading,
            "version": self.version,
        }


# ── Clubs ────────────────────────────────────────────────────────────


class ClubStoreDB:
    """A club's rank rules, belt metadata and skill list."""

    def __init__(self, club_id: int):
        self.club_id = club_id

    def _row(self):
        db = get_db()
        row = db.execute("SELECT * FROM clubs WHERE id = ?", (self.club_id,)).fetchone()
        if row is None:
            raise NotFoundError(f"Club {self.club_id} not found")
        return row

    @staticmethod
    def create(
        name: str,
        rules: RankRules,
        belts: Optional[Iterable[Belt]] = None,
        skills: Optional[Iterable[Skill]] = None,
        belt_system: str = "custom",
    ) -> ClubStoreDB:
        rules.validate()
        db = get_db()
        now = utc_now().isoformat()
        cur = db.execute(
            "INSERT INTO clubs (name, belt_system, created_at, updated_at) VALUES (?, ?, ?, ?)",
            (name, belt_system, now, now),
        )
        store = ClubStoreDB(cur.lastrowid)
        store.replace_rules(rules, belts=belts, commit=False)
        if skills is not None:
            store.set_skills(skills, commit=False)
        db.commit()
        return store

    @property
    def name(self) -> str:
        return self._row()["name"]

    def load_rules(self) -> RankRules:
        """Rebuild the club's RankRules; ConfigurationError if the stored config is unusable."""
        row = self._row()
        db = get_db()
        belt_rows = db.execute(
            "SELECT belt_id FROM club_belts WHERE club_id = ? ORDER BY position",
            (self.club_id,),
        ).fetchall()
        try:
            overrides = json.loads(row["points_per_belt"] or "{}")
            colors = json.loads(row["stripe_colors"] or "[]")
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Club {self.club_id} has corrupt rank rules: {e}") from e

        rules = RankRules(
            belt_sequence=tuple(r["belt_id"] for r in belt_rows),
            stripes_per_belt=row["stripes_per_belt"],
            points_per_stripe_default=row["points_per_stripe"],
            use_custom_points_per_belt=bool(row["use_custom_points_per_belt"]),
            points_per_stripe_override=overrides,
            use_color_coded_stripes=bool(row["use_color_coded_stripes"]),
            stripe_colors=tuple(colors),
            grading_requirement=row["grading_requirement"],
            coach_bonus_enabled=bool(row["coach_bonus"]),
            homework_bonus_enabled=bool(row["homework_bonus"]),
        )
        return rules.validate()

    def replace_rules(
        self, rules: RankRules, belts: Optional[Iterable[Belt]] = None, commit: bool = True
    ) -> None:
        """Full replace of the club's rules. Belt names/colors are kept when ids survive."""
        rules.validate()
        self._row()
        db = get_db()

        orphaned = db.execute(
            "SELECT DISTINCT belt_id FROM students WHERE club_id = ?", (self.club_id,)
        ).fetchall()
        missing = sorted(r["belt_id"] for r in orphaned if not rules.has_belt(r["belt_id"]))
        if missing:
            raise ConfigurationError(
                f"belt sequence drops belts still held by students: {', '.join(missing)}"
            )

        known = {b.id: b for b in self.belts()}
        if belts is not None:
            known.update({b.id: b for b in belts})

        db.execute(
            "UPDATE clubs SET stripes_per_belt=?, points_per_stripe=?, "
            "use_custom_points_per_belt=?, points_per_belt=?, use_color_coded_stripes=?, "
            "stripe_colors=?, grading_requirement=?, coach_bonus=?, homework_bonus=?, "
            "updated_at=? WHERE id=?",
            (
                rules.stripes_per_belt,
                rules.points_per_stripe_default,
                int(rules.use_custom_points_per_belt),
                json.dumps(dict(rules.points_per_stripe_override)),
                int(rules.use_color_coded_stripes),
                json.dumps(list(rules.stripe_colors)),
                rules.grading_requirement,
                int(rules.coach_bonus_enabled),
                int(rules.homework_bonus_enabled),
                utc_now().isoformat(),
                self.club_id,
            ),
        )
        db.execute("DELETE FROM club_belts WHERE club_id = ?", (self.club_id,))
        for position, belt_id in enumerate(rules.belt_sequence):
            belt = known.get(belt_id) or Belt(belt_id, belt_id, "#FFFFFF")
            db.execute(
                "INSERT INTO club_belts (club_id, belt_id, name, color1, color2, position) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (self.club_id, belt_id, belt.name, belt.color1, belt.color2, position),
            )
        if commit:
            db.commit()

    def belts(self) -> list[Belt]:
        db = get_db()
        rows = db.execute(
            "SELECT belt_id, name, color1, color2 FROM club_belts WHERE club_id = ? ORDER BY position",
            (self.club_id,),
        ).fetchall()
        return [Belt(r["belt_id"], r["name"], r["color1"], r["color2"]) for r in rows]

    def skills(self) -> list[Skill]:
        db = get_db()
        rows = db.execute(
            "SELECT skill_id, name, is_active FROM club_skills WHERE club_id = ? ORDER BY position",
            (self.club_id,),
        ).fetchall()
        return [Skill(r["skill_id"], r["name"], bool(r["is_active"])) for r in rows]

    def active_skill_ids(self) -> list[str]:
        return [s.id for s in self.skills() if s.is_active]

    def set_skills(self, skills: Iterable[Skill], commit: bool = True) -> None:
        db = get_db()
        db.execute("DELETE FROM club_skills WHERE club_id = ?", (self.club_id,))
        for position, s in enumerate(skills):
            db.execute(
                "INSERT INTO club_skills (club_id, skill_id, name, is_active, position) "
                "VALUES (?, ?, ?, ?, ?)",
                (self.club_id, s.id, s.name, int(s.is_active), position),
            )
        if commit:
            db.commit()

    def student_ids(self) -> list[int]:
        db = get_db()
        rows = db.execute(
            "SELECT id FROM students WHERE club_id = ? ORDER BY id", (self.club_id,)
        ).fetchall()
        return [r["id"] for r in rows]


# ── Students ─────────────────────────────────────────────────────────


class StudentStoreDB:
    """Point total, belt and promotion bookkeeping for one student."""

    def __init__(self, student_id: int):
        self.student_id = student_id

    @staticmethod
    def create(
        club_id: int,
        name: str,
        belt_id: str,
        total_points: int = 0,
        last_promotion_date: Optional[datetime] = None,
    ) -> StudentStoreDB:
        rules = ClubStoreDB(club_id).load_rules()
        rules.belt_index(belt_id)
        if total_points < 0:
            raise ValueError("total points must be non-negative")
        db = get_db()
        now = utc_now()
        cur = db.execute(
            "INSERT INTO students (club_id, name, belt_id, total_points, last_promotion_date, "
            "created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?, ?)",
            (
                club_id, name, belt_id, total_points,
                (last_promotion_date or now).isoformat(),
                now.isoformat(), now.isoformat(),
            ),
        )
        db.commit()
        return StudentStoreDB(cur.lastrowid)

    def load(self) -> StudentRecord:
        db = get_db()
        r = db.execute("SELECT * FROM students WHERE id = ?", (self.student_id,)).fetchone()
        if r is None:
            raise NotFoundError(f"Student {self.student_id} not found")
        return StudentRecord(
            id=r["id"],
            club_id=r["club_id"],
            name=r["name"],
            belt_id=r["belt_id"],
            total_points=r["total_points"],
            last_promotion_date=(
                parse_timestamp(r["last_promotion_date"]) if r["last_promotion_date"] else None
            ),
            is_ready_for_grading=bool(r["is_ready_for_grading"]),
            version=r["version"],
        )

    def _versioned_update(
        self, sets: str, params: tuple, expected_version: int, commit: bool = True
    ) -> int:
        """Apply ``sets`` only if the row is still at ``expected_version``; return the new version."""
        db = get_db()
        cur = db.execute(
            f"UPDATE students SET {sets}, version = version + 1, updated_at = ? "
            "WHERE id = ? AND version = ?",
            (*params, utc_now().isoformat(), self.student_id, expected_version),
        )
        if cur.rowcount == 0:
            db.rollback()
            self.load()  # NotFoundError if the row is gone
            raise StaleWriteError(
                f"Student {self.student_id} was modified concurrently (expected version {expected_version})"
            )
        if commit:
            db.commit()
        return expected_version + 1

    def set_rank(
        self,
        total_points: int,
        expected_version: int,
        belt_id: Optional[str] = None,
        commit: bool = True,
    ) -> int:
        """Write a new point total (and optionally belt); returns the new row version."""
        if total_points < 0:
            raise ValueError("total points must be non-negative")
        if belt_id is None:
            return self._versioned_update(
                "total_points = ?", (total_points,), expected_version, commit=commit
            )
        return self._versioned_update(
            "total_points = ?, belt_id = ?", (total_points, belt_id), expected_version, commit=commit
        )

    def set_ready_for_grading(self, ready: bool) -> None:
        db = get_db()
        cur = db.execute(
            "UPDATE students SET is_ready_for_grading = ?, updated_at = ? WHERE id = ?",
            (int(bool(ready)), utc_now().isoformat(), self.student_id),
        )
        if cur.rowcount == 0:
            raise NotFoundError(f"Student {self.student_id} not found")
        db.commit()

    def apply_promotion(self, promotion: Promotion, expected_version: int) -> int:
        return self._versioned_update(
            "belt_id = ?, total_points = ?, last_promotion_date = ?, is_ready_for_grading = 0",
            (promotion.to_belt_id, promotion.total_points, promotion.promoted_at.isoformat()),
            expected_version,
        )


# ── Performance log ──────────────────────────────────────────────────


class PerformanceLogDB:
    """Append-only log of per-class skill scores for one student."""

    def __init__(self, student_id: int):
        self.student_id = student_id

    def append(
        self, record: PerformanceRecord, homework_points: int = 0, commit: bool = True
    ) -> int:
        db = get_db()
        cur = db.execute(
            "INSERT INTO performance_records (student_id, recorded_at, scores, bonus_points, "
            "homework_points, note, coach_name) VALUES (?, ?, ?, ?, ?, ?, ?)",
            (
                self.student_id,
                record.date.isoformat(),
                json.dumps(dict(record.scores or {})),
                record.bonus_points,
                homework_points,
                record.note,
                record.coach_name,
            ),
        )
        if commit:
            db.commit()
        return cur.lastrowid

    def history(self) -> list[PerformanceRecord]:
        """All records, oldest first. A row with unreadable scores keeps ``scores=None``."""
        db = get_db()
        rows = db.execute(
            "SELECT recorded_at, scores, bonus_points, note, coach_name FROM performance_records "
            "WHERE student_id = ? ORDER BY recorded_at, id",
            (self.student_id,),
        ).fetchall()
        records = []
        for r in rows:
            try:
                scores = json.loads(r["scores"])
            except (json.JSONDecodeError, TypeError):
                scores = None
            records.append(PerformanceRecord(
                date=parse_timestamp(r["recorded_at"]),
                scores=scores if isinstance(scores, dict) else None,
                bonus_points=r["bonus_points"],
                note=r["note"],
                coach_name=r["coach_name"],
            ))
        return records

    def count(self) -> int:
        db = get_db()
        row = db.execute(
            "SELECT COUNT(*) AS c FROM performance_records WHERE student_id = ?",
            (self.student_id,),
        ).fetchone()
        return row["c"]
