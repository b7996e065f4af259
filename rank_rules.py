"""
Rank rules — club-level belt/stripe configuration shared by the ledger and the stores.

A RankRules instance is immutable. Editing a club's rules means building a new
instance and replacing the stored one wholesale.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping, Optional

DEFAULT_STRIPES_PER_BELT = 4
DEFAULT_POINTS_PER_STRIPE = 64
DEFAULT_STRIPE_COLOR = "#FFFFFF"
CUSTOM_POINTS_STEP = 16


# ── Errors ───────────────────────────────────────────────────────────


class RankError(Exception):
    """Base class for rank progression errors."""


class ConfigurationError(RankError, ValueError):
    """The club's rank rules are unusable as configured."""


class UnknownBeltError(RankError, KeyError):
    """A belt id that is not part of the configured belt sequence."""

    def __init__(self, belt_id: str):
        super().__init__(belt_id)
        self.belt_id = belt_id

    def __str__(self) -> str:
        return f"Unknown belt: {self.belt_id!r}"


class PromotionError(RankError):
    """A promotion that cannot be carried out (not ready, or already at the top belt)."""


# ── Belts ────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Belt:
    id: str
    name: str
    color1: str
    color2: Optional[str] = None  # two-tone "stripe" belts

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "color1": self.color1, "color2": self.color2}


BELT_PRESETS: dict[str, list[Belt]] = {
    "wt": [
        Belt("wt-1", "White Belt", "#FFFFFF"),
        Belt("wt-2", "White/Yellow Stripe", "#FFFFFF", "#FFD700"),
        Belt("wt-3", "Yellow Belt", "#FFD700"),
        Belt("wt-4", "Yellow/Green Stripe", "#FFD700", "#008000"),
        Belt("wt-5", "Green Belt", "#008000"),
        Belt("wt-6", "Green/Blue Stripe", "#008000", "#0000FF"),
        Belt("wt-7", "Blue Belt", "#0000FF"),
        Belt("wt-8", "Blue/Red Stripe", "#0000FF", "#FF0000"),
        Belt("wt-9", "Red Belt", "#FF0000"),
        Belt("wt-10", "Red/Black Stripe", "#FF0000", "#000000"),
        Belt("wt-11", "Black Belt", "#000000"),
    ],
    "itf": [
        Belt("itf-1", "White", "#FFFFFF"),
        Belt("itf-2", "Yellow", "#FFD700"),
        Belt("itf-3", "Orange", "#FFA500"),
        Belt("itf-4", "Green", "#008000"),
        Belt("itf-5", "Blue", "#0000FF"),
        Belt("itf-6", "Purple", "#800080"),
        Belt("itf-7", "Brown", "#A52A2A"),
        Belt("itf-8", "Red", "#FF0000"),
        Belt("itf-9", "Black", "#000000"),
    ],
    "karate": [
        Belt("k-1", "White", "#FFFFFF"),
        Belt("k-2", "Yellow", "#FFD700"),
        Belt("k-3", "Orange", "#FFA500"),
        Belt("k-4", "Green", "#008000"),
        Belt("k-5", "Blue", "#0000FF"),
        Belt("k-6", "Purple", "#800080"),
        Belt("k-7", "Brown (3rd Kyu)", "#A52A2A"),
        Belt("k-8", "Brown (2nd Kyu)", "#A52A2A"),
        Belt("k-9", "Brown (1st Kyu)", "#A52A2A"),
        Belt("k-10", "Black", "#000000"),
    ],
    "bjj": [
        Belt("bjj-1", "White", "#FFFFFF"),
        Belt("bjj-2", "Blue", "#0000FF"),
        Belt("bjj-3", "Purple", "#800080"),
        Belt("bjj-4", "Brown", "#A52A2A"),
        Belt("bjj-5", "Black", "#000000"),
        Belt("bjj-6", "Red", "#FF0000"),
    ],
    "judo": [
        Belt("j-1", "White", "#FFFFFF"),
        Belt("j-2", "Yellow", "#FFD700"),
        Belt("j-3", "Orange", "#FFA500"),
        Belt("j-4", "Green", "#008000"),
        Belt("j-5", "Blue", "#0000FF"),
        Belt("j-6", "Brown", "#A52A2A"),
        Belt("j-7", "Black", "#000000"),
    ],
}


# ── Rules ────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class RankRules:
    """Belt/stripe rules for one club.

    ``points_per_stripe_override`` is only consulted while
    ``use_custom_points_per_belt`` (the advanced rule mode) is on.
    """

    belt_sequence: tuple[str, ...]
    stripes_per_belt: int = DEFAULT_STRIPES_PER_BELT
    points_per_stripe_default: int = DEFAULT_POINTS_PER_STRIPE
    use_custom_points_per_belt: bool = False
    points_per_stripe_override: Mapping[str, int] = field(default_factory=dict)
    use_color_coded_stripes: bool = False
    stripe_colors: tuple[str, ...] = ()
    grading_requirement: Optional[str] = None
    coach_bonus_enabled: bool = False
    homework_bonus_enabled: bool = False

    def __post_init__(self):
        # Normalise containers so equal configs compare equal and nothing aliases caller state.
        object.__setattr__(self, "belt_sequence", tuple(self.belt_sequence))
        object.__setattr__(self, "stripe_colors", tuple(self.stripe_colors or ()))
        object.__setattr__(
            self,
            "points_per_stripe_override",
            MappingProxyType(dict(self.points_per_stripe_override or {})),
        )
        if self.grading_requirement is not None and not self.grading_requirement.strip():
            object.__setattr__(self, "grading_requirement", None)

    def __hash__(self) -> int:
        return hash((
            self.belt_sequence,
            self.stripes_per_belt,
            self.points_per_stripe_default,
            self.use_custom_points_per_belt,
            tuple(sorted(self.points_per_stripe_override.items())),
            self.use_color_coded_stripes,
            self.stripe_colors,
            self.grading_requirement,
            self.coach_bonus_enabled,
            self.homework_bonus_enabled,
        ))

    def has_belt(self, belt_id: str) -> bool:
        return belt_id in self.belt_sequence

    def belt_index(self, belt_id: str) -> int:
        """Position of ``belt_id`` in the progression, or UnknownBeltError."""
        try:
            return self.belt_sequence.index(belt_id)
        except ValueError:
            raise UnknownBeltError(belt_id) from None

    def validate(self) -> RankRules:
        """Raise ConfigurationError for any unusable setting; return self for chaining."""
        errors: list[str] = []

        if not self.belt_sequence:
            errors.append("belt sequence must contain at least one belt")
        if len(set(self.belt_sequence)) != len(self.belt_sequence):
            errors.append("belt ids must be unique")
        if not _is_int(self.stripes_per_belt) or self.stripes_per_belt <= 0:
            errors.append("stripes per belt must be a positive integer")
        if not _is_int(self.points_per_stripe_default) or self.points_per_stripe_default <= 0:
            errors.append("default points per stripe must be a positive integer")

        for belt_id, points in self.points_per_stripe_override.items():
            if belt_id not in self.belt_sequence:
                errors.append(f"points override for unknown belt {belt_id!r}")
            elif not _is_int(points) or points <= 0:
                errors.append(f"points per stripe for belt {belt_id!r} must be a positive integer")

        if (
            self.use_color_coded_stripes
            and self.stripe_colors
            and _is_int(self.stripes_per_belt)
            and len(self.stripe_colors) != self.stripes_per_belt
        ):
            errors.append(
                f"expected {self.stripes_per_belt} stripe colors, got {len(self.stripe_colors)}"
            )

        if errors:
            raise ConfigurationError("; ".join(errors))
        return self

    # --- Serialisation ---

    def to_dict(self) -> dict:
        return {
            "belt_sequence": list(self.belt_sequence),
            "stripes_per_belt": self.stripes_per_belt,
            "points_per_stripe_default": self.points_per_stripe_default,
            "use_custom_points_per_belt": self.use_custom_points_per_belt,
            "points_per_stripe_override": dict(self.points_per_stripe_override),
            "use_color_coded_stripes": self.use_color_coded_stripes,
            "stripe_colors": list(self.stripe_colors),
            "grading_requirement": self.grading_requirement,
            "coach_bonus_enabled": self.coach_bonus_enabled,
            "homework_bonus_enabled": self.homework_bonus_enabled,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> RankRules:
        """Build and validate rules from a JSON payload.

        Accepts the snake_case keys produced by ``to_dict`` as well as the
        camelCase keys used by the club setup wizard (``stripesPerBelt``,
        ``pointsPerBelt``, ``gradingRequirementName`` ...).
        """
        if not isinstance(data, Mapping):
            raise ConfigurationError("rank rules must be a JSON object")

        def pick(*keys, default=None):
            for k in keys:
                if k in data and data[k] is not None:
                    return data[k]
            return default

        belt_sequence = pick("belt_sequence", "beltSequence")
        if belt_sequence is None and "belts" in data:
            belt_sequence = _belt_ids(data["belts"])
        if not isinstance(belt_sequence, (list, tuple)):
            raise ConfigurationError("belt_sequence must be a list of belt ids")

        requirement = pick("grading_requirement", "gradingRequirementName")
        if pick("gradingRequirementEnabled", default=True) is False:
            requirement = None

        colors = pick("stripe_colors", "stripeColors", default=[])
        overrides = pick("points_per_stripe_override", "pointsPerBelt", default={})
        if not isinstance(colors, (list, tuple)):
            raise ConfigurationError("stripe_colors must be a list")
        if not isinstance(overrides, Mapping):
            raise ConfigurationError("points_per_stripe_override must be an object")

        try:
            rules = cls(
                belt_sequence=tuple(str(b) for b in belt_sequence),
                stripes_per_belt=_coerce_int(
                    pick("stripes_per_belt", "stripesPerBelt", default=DEFAULT_STRIPES_PER_BELT)
                ),
                points_per_stripe_default=_coerce_int(
                    pick("points_per_stripe_default", "pointsPerStripe",
                         default=DEFAULT_POINTS_PER_STRIPE)
                ),
                use_custom_points_per_belt=bool(
                    pick("use_custom_points_per_belt", "useCustomPointsPerBelt", default=False)
                ),
                points_per_stripe_override={str(k): _coerce_int(v) for k, v in overrides.items()},
                use_color_coded_stripes=bool(
                    pick("use_color_coded_stripes", "useColorCodedStripes", default=False)
                ),
                stripe_colors=tuple(str(c) for c in colors),
                grading_requirement=str(requirement) if requirement is not None else None,
                coach_bonus_enabled=bool(pick("coach_bonus_enabled", "coachBonus", default=False)),
                homework_bonus_enabled=bool(
                    pick("homework_bonus_enabled", "homeworkBonus", default=False)
                ),
            )
        except (TypeError, ValueError) as e:
            if isinstance(e, ConfigurationError):
                raise
            raise ConfigurationError(f"invalid rank rules: {e}") from e
        return rules.validate()


def _belt_ids(belts: Any) -> list:
    if not isinstance(belts, (list, tuple)):
        raise ConfigurationError("belts must be a list")
    ids = []
    for b in belts:
        if isinstance(b, Mapping):
            if not b.get("id"):
                raise ConfigurationError("each belt needs an 'id'")
            b = b["id"]
        ids.append(b)
    return ids


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _coerce_int(value: Any) -> int:
    if isinstance(value, bool):
        raise ConfigurationError("expected an integer, got a boolean")
    if isinstance(value, float) and not value.is_integer():
        raise ConfigurationError(f"expected a whole number, got {value}")
    return int(value)


def seed_points_per_belt(
    belt_sequence, base: int = DEFAULT_POINTS_PER_STRIPE, step: int = CUSTOM_POINTS_STEP
) -> dict[str, int]:
    """Initial per-belt override map when a club first switches on advanced mode.

    Each belt costs ``step`` more points per stripe than the one before it.
    """
    return {belt_id: base + i * step for i, belt_id in enumerate(belt_sequence)}


def rules_from_preset(system: str, **overrides: Any) -> RankRules:
    """Rules for one of the standard belt systems in BELT_PRESETS."""
    try:
        belts = BELT_PRESETS[system]
    except KeyError:
        raise ConfigurationError(f"Unknown belt system: {system!r}") from None
    return RankRules(belt_sequence=tuple(b.id for b in belts), **overrides).validate()
