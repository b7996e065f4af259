"""Tests for club rank rules: validation, payload parsing and belt presets."""

from __future__ import annotations

import pytest

from rank_rules import (
    BELT_PRESETS,
    ConfigurationError,
    RankRules,
    UnknownBeltError,
    rules_from_preset,
    seed_points_per_belt,
)


class TestValidate:
    def test_valid_rules_return_self(self, rules):
        assert rules.validate() is rules

    def test_empty_sequence(self):
        with pytest.raises(ConfigurationError, match="at least one belt"):
            RankRules(belt_sequence=()).validate()

    def test_duplicate_belts(self):
        with pytest.raises(ConfigurationError, match="unique"):
            RankRules(belt_sequence=("white", "white")).validate()

    @pytest.mark.parametrize("stripes", [0, -2, True])
    def test_bad_stripes_per_belt(self, stripes):
        with pytest.raises(ConfigurationError, match="stripes per belt"):
            RankRules(belt_sequence=("white",), stripes_per_belt=stripes).validate()

    def test_bad_default_points(self):
        with pytest.raises(ConfigurationError, match="default points"):
            RankRules(belt_sequence=("white",), points_per_stripe_default=0).validate()

    def test_override_for_unknown_belt(self):
        with pytest.raises(ConfigurationError, match="unknown belt 'black'"):
            RankRules(belt_sequence=("white",), points_per_stripe_override={"black": 80}).validate()

    def test_color_count_must_match_stripes(self):
        rules = RankRules(
            belt_sequence=("white",),
            stripes_per_belt=4,
            use_color_coded_stripes=True,
            stripe_colors=("#111111", "#222222"),
        )
        with pytest.raises(ConfigurationError, match="expected 4 stripe colors, got 2"):
            rules.validate()

    def test_all_problems_reported_together(self):
        with pytest.raises(ConfigurationError) as exc:
            RankRules(belt_sequence=(), stripes_per_belt=0, points_per_stripe_default=0).validate()
        message = str(exc.value)
        assert "at least one belt" in message
        assert "stripes per belt" in message
        assert "default points" in message

    def test_configuration_error_is_value_error(self):
        assert issubclass(ConfigurationError, ValueError)


class TestBeltIndex:
    def test_known_belt(self, rules):
        assert rules.belt_index("yellow") == 1
        assert rules.has_belt("green")

    def test_unknown_belt(self, rules):
        with pytest.raises(UnknownBeltError) as exc:
            rules.belt_index("purple")
        assert exc.value.belt_id == "purple"
        assert str(exc.value) == "Unknown belt: 'purple'"


class TestFromDict:
    def test_round_trip_through_dict(self):
        rules = RankRules(
            belt_sequence=("white", "yellow"),
            stripes_per_belt=2,
            points_per_stripe_default=30,
            use_custom_points_per_belt=True,
            points_per_stripe_override={"yellow": 40},
            use_color_coded_stripes=True,
            stripe_colors=("#FF0000", "#00FF00"),
            grading_requirement="Form 1",
            coach_bonus_enabled=True,
        )
        assert RankRules.from_dict(rules.to_dict()) == rules

    def test_camel_case_wizard_payload(self):
        rules = RankRules.from_dict({
            "belts": [{"id": "w", "name": "White"}, {"id": "y", "name": "Yellow"}],
            "stripesPerBelt": 3,
            "pointsPerStripe": 50,
            "useCustomPointsPerBelt": True,
            "pointsPerBelt": {"y": 70},
            "gradingRequirementName": "Kata",
            "homeworkBonus": True,
        })
        assert rules.belt_sequence == ("w", "y")
        assert rules.stripes_per_belt == 3
        assert rules.points_per_stripe_default == 50
        assert rules.points_per_stripe_override == {"y": 70}
        assert rules.grading_requirement == "Kata"
        assert rules.homework_bonus_enabled is True
        assert rules.coach_bonus_enabled is False

    def test_disabled_requirement_is_dropped(self):
        rules = RankRules.from_dict({
            "belt_sequence": ["white"],
            "gradingRequirementEnabled": False,
            "gradingRequirementName": "Kata",
        })
        assert rules.grading_requirement is None

    def test_defaults_applied(self):
        rules = RankRules.from_dict({"belt_sequence": ["white"]})
        assert rules.stripes_per_belt == 4
        assert rules.points_per_stripe_default == 64

    @pytest.mark.parametrize("payload", [
        [],
        {"belt_sequence": "white"},
        {"belt_sequence": ["white"], "stripes_per_belt": "many"},
        {"belt_sequence": ["white"], "stripes_per_belt": 2.5},
        {"belt_sequence": ["white"], "stripe_colors": "#FFF"},
        {"belt_sequence": ["white"], "points_per_stripe_override": [1, 2]},
    ])
    def test_rejects_malformed_payload(self, payload):
        with pytest.raises(ConfigurationError):
            RankRules.from_dict(payload)


    def test_belt_without_id_rejected(self):
        with pytest.raises(ConfigurationError, match="each belt needs an 'id'"):
            RankRules.from_dict({"belts": [{"name": "White"}]})

    def test_belts_must_be_a_list(self):
        with pytest.raises(ConfigurationError):
            RankRules.from_dict({"belts": "white,yellow"})


class TestImmutability:
    def test_override_map_is_read_only(self):
        rules = RankRules(belt_sequence=("white",), points_per_stripe_override={"white": 80})
        before = hash(rules)
        with pytest.raises(TypeError):
            rules.points_per_stripe_override["white"] = 0
        assert hash(rules) == before

    def test_caller_dict_not_aliased(self):
        overrides = {"white": 80}
        rules = RankRules(belt_sequence=("white",), points_per_stripe_override=overrides)
        overrides["white"] = 0
        assert rules.points_per_stripe_override["white"] == 80

    def test_to_dict_returns_plain_copy(self):
        rules = RankRules(belt_sequence=("white",), points_per_stripe_override={"white": 80})
        data = rules.to_dict()
        data["points_per_stripe_override"]["white"] = 1
        assert type(data["points_per_stripe_override"]) is dict
        assert rules.points_per_stripe_override["white"] == 80

class TestPresets:
    def test_known_systems(self):
        assert set(BELT_PRESETS) == {"wt", "itf", "karate", "bjj", "judo"}

    def test_rules_from_preset(self):
        rules = rules_from_preset("itf", grading_requirement="Pattern")
        assert rules.belt_sequence[0] == "itf-1"
        assert rules.belt_sequence[-1] == "itf-9"
        assert rules.grading_requirement == "Pattern"

    def test_two_tone_belts_carry_second_color(self):
        wt = {b.id: b for b in BELT_PRESETS["wt"]}
        assert wt["wt-2"].color2 == "#FFD700"
        assert wt["wt-3"].color2 is None

    def test_unknown_system(self):
        with pytest.raises(ConfigurationError):
            rules_from_preset("sumo")


class TestSeedPointsPerBelt:
    def test_each_belt_costs_more(self):
        assert seed_points_per_belt(["a", "b", "c"]) == {"a": 64, "b": 80, "c": 96}

    def test_custom_base(self):
        assert seed_points_per_belt(["a", "b"], base=10, step=5) == {"a": 10, "b": 15}
