"""Club rank rules: presets, creation, full-replace editing and readiness reports."""

from __future__ import annotations

import dataclasses

from flask import Blueprint, jsonify

from audit import log_event
from database import get_db
from db_stores import ClubStoreDB, Skill
from extensions import limiter
from helpers import BadRequest, json_body, rank_errors_as_json
from promotion_pipeline import club_promotion_report
from rank_ledger import stripe_colors
from rank_rules import (
    BELT_PRESETS,
    Belt,
    RankRules,
    rules_from_preset,
    seed_points_per_belt,
)

bp = Blueprint("clubs", __name__)


def _parse_belts(raw) -> list[Belt] | None:
    if raw is None:
        return None
    if not isinstance(raw, list):
        raise BadRequest("'belts' must be a list")
    belts = []
    for b in raw:
        if not isinstance(b, dict) or not b.get("id"):
            raise BadRequest("each belt needs an 'id'")
        belts.append(Belt(
            id=str(b["id"]),
            name=b.get("name") or str(b["id"]),
            color1=b.get("color1") or "#FFFFFF",
            color2=b.get("color2"),
        ))
    return belts


def _parse_skills(raw) -> list[Skill] | None:
    if raw is None:
        return None
    if not isinstance(raw, list):
        raise BadRequest("'skills' must be a list")
    skills = []
    for s in raw:
        if not isinstance(s, dict) or not s.get("id"):
            raise BadRequest("each skill needs an 'id'")
        skills.append(Skill(
            id=str(s["id"]),
            name=s.get("name") or str(s["id"]),
            is_active=bool(s.get("is_active", s.get("isActive", True))),
        ))
    return skills


def _with_seeded_overrides(rules: RankRules) -> RankRules:
    """Advanced mode switched on with an empty map starts from the seeded per-belt ladder."""
    if rules.use_custom_points_per_belt and not rules.points_per_stripe_override:
        seeded = seed_points_per_belt(rules.belt_sequence, rules.points_per_stripe_default)
        return dataclasses.replace(rules, points_per_stripe_override=seeded).validate()
    return rules


def _club_payload(store: ClubStoreDB) -> dict:
    rules = store.load_rules()
    return {
        "club_id": store.club_id,
        "name": store.name,
        "rules": rules.to_dict(),
        "belts": [b.to_dict() for b in store.belts()],
        "skills": [s.to_dict() for s in store.skills()],
        "stripe_colors": stripe_colors(rules),
    }


@bp.route("/api/belt-presets")
def api_belt_presets():
    return jsonify({
        "presets": {
            system: [b.to_dict() for b in belts]
            for system, belts in BELT_PRESETS.items()
        }
    })


@bp.route("/api/clubs", methods=["POST"])
@limiter.limit("10 per minute")
@rank_errors_as_json
def api_create_club():
    data = json_body()
    name = (data.get("name") or "").strip()
    if not name:
        raise BadRequest("'name' is required")

    system = data.get("belt_system", "custom")
    belts = _parse_belts(data.get("belts"))
    if "rules" in data:
        rules = RankRules.from_dict(data["rules"])
    elif system in BELT_PRESETS:
        rules = rules_from_preset(system)
    else:
        raise BadRequest("either 'rules' or a known 'belt_system' is required")
    if belts is None and system in BELT_PRESETS:
        belts = BELT_PRESETS[system]

    store = ClubStoreDB.create(
        name,
        _with_seeded_overrides(rules),
        belts=belts,
        skills=_parse_skills(data.get("skills")),
        belt_system=system,
    )
    log_event("club_created", club_id=store.club_id, detail=f"system={system}")
    return jsonify(_club_payload(store)), 201


@bp.route("/api/clubs/<int:club_id>/rules")
@rank_errors_as_json
def api_get_rules(club_id):
    return jsonify(_club_payload(ClubStoreDB(club_id)))


@bp.route("/api/clubs/<int:club_id>/rules", methods=["PUT"])
@limiter.limit("30 per minute")
@rank_errors_as_json
def api_replace_rules(club_id):
    data = json_body()
    store = ClubStoreDB(club_id)
    rules = _with_seeded_overrides(RankRules.from_dict(data.get("rules", data)))
    belts = _parse_belts(data.get("belts"))
    skills = _parse_skills(data.get("skills"))

    store.replace_rules(rules, belts=belts, commit=False)
    if skills is not None:
        store.set_skills(skills, commit=False)
    get_db().commit()

    log_event(
        "rules_replaced",
        club_id=club_id,
        detail=(
            f"belts={len(rules.belt_sequence)} stripes={rules.stripes_per_belt} "
            f"pps={rules.points_per_stripe_default} custom={rules.use_custom_points_per_belt}"
        ),
    )
    return jsonify(_club_payload(store))


@bp.route("/api/clubs/<int:club_id>/promotion-report")
@rank_errors_as_json
def api_promotion_report(club_id):
    return jsonify(club_promotion_report(club_id))
