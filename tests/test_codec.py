"""Tests for rule tree serialization."""

import json

import pytest

from audience_builder.rules.catalogue import ConditionOperator
from audience_builder.rules.codec import decode_rules, encode_rules, rules_to_dict
from audience_builder.rules.conditions import GroupOperator, SegmentRuleGroup
from audience_builder.rules.errors import RuleDecodeError
from audience_builder.rules.evaluator import SegmentEvaluator


class TestEncoding:
    """Tests for encoding rule trees."""

    def test_plain_data_shape(self, vip_rules: SegmentRuleGroup) -> None:
        """Test the stored structure of a rule tree."""
        data = rules_to_dict(vip_rules)
        assert data["operator"] == "AND"
        assert data["conditions"][0] == {
            "id": vip_rules.conditions[0].id,
            "field": "lifecycle_stage",
            "operator": "equals",
            "value": "customer",
            "value2": None,
        }
        assert data["groups"][0]["operator"] == "OR"
        assert data["groups"][0]["groups"] == []

    def test_json_is_plain_data(self, vip_rules: SegmentRuleGroup) -> None:
        """Test that the JSON text matches the plain-data form."""
        assert json.loads(encode_rules(vip_rules)) == rules_to_dict(vip_rules)
        assert "\n" in encode_rules(vip_rules, indent=2)

    def test_round_trip(self, vip_rules: SegmentRuleGroup) -> None:
        """Test that decoding restores ids, values and structure."""
        assert decode_rules(encode_rules(vip_rules)) == vip_rules
        assert decode_rules(rules_to_dict(vip_rules)) == vip_rules

    def test_round_trip_keeps_value_types(self) -> None:
        """Test numeric, list and boolean values survive storage."""
        group = decode_rules(
            {
                "operator": "AND",
                "conditions": [
                    {"field": "lead_score", "operator": "between", "value": 10, "value2": 20.5},
                    {"field": "status", "operator": "in", "value": ["active", "bounced"]},
                ],
            }
        )
        restored = decode_rules(encode_rules(group))
        assert restored.conditions[0].value == 10
        assert restored.conditions[0].value2 == 20.5
        assert restored.conditions[1].value == ["active", "bounced"]


class TestDecoding:
    """Tests for decoding stored rule trees."""

    def test_missing_ids_are_generated(self) -> None:
        """Test data written before ids were stored."""
        group = decode_rules(
            '{"operator": "OR", "conditions": [{"field": "email", "operator": "contains",'
            ' "value": "@example.com"}]}'
        )
        assert group.operator == GroupOperator.OR
        assert group.id
        assert group.conditions[0].id
        assert group.groups == ()

    def test_lowercase_group_operator(self) -> None:
        """Test that group operators are case-insensitive."""
        assert decode_rules({"operator": "or"}).operator == GroupOperator.OR

    @pytest.mark.parametrize(
        "stored, expected",
        [
            ("exists", ConditionOperator.IS_NOT_EMPTY),
            ("not_exists", ConditionOperator.IS_EMPTY),
            ("array_contains", ConditionOperator.CONTAINS),
            ("array_contains_all", ConditionOperator.CONTAINS_ALL),
        ],
    )
    def test_legacy_operator_names(self, stored: str, expected: ConditionOperator) -> None:
        """Test that older operator names are normalized."""
        group = decode_rules({"conditions": [{"field": "tags", "operator": stored}]})
        assert group.conditions[0].operator == expected

    def test_unknown_operator_is_kept(self) -> None:
        """Test that unknown operators load and never match."""
        group = decode_rules(
            {"conditions": [{"field": "email", "operator": "sounds_like", "value": "ana"}]}
        )
        condition = group.conditions[0]
        assert condition.operator == "sounds_like"
        assert not condition.is_known_operator
        assert SegmentEvaluator().evaluate(group, {"email": "ana"}) is False
        assert rules_to_dict(group)["conditions"][0]["operator"] == "sounds_like"

    def test_bytes_input(self, vip_rules: SegmentRuleGroup) -> None:
        """Test decoding raw bytes."""
        assert decode_rules(encode_rules(vip_rules).encode()) == vip_rules

    @pytest.mark.parametrize(
        "data",
        [
            "not json",
            '{"operator": "XOR"}',
            {"operator": "XOR"},
            {"conditions": [{"operator": "equals"}]},
            {"groups": "nope"},
        ],
    )
    def test_invalid_input(self, data) -> None:
        """Test that malformed trees raise a decode error."""
        with pytest.raises(RuleDecodeError):
            decode_rules(data)

    def test_unsupported_type(self) -> None:
        """Test that non-JSON inputs are rejected."""
        with pytest.raises(RuleDecodeError, match="int"):
            decode_rules(42)

    def test_decode_error_is_value_error(self) -> None:
        """Test that callers can catch the builtin ValueError."""
        with pytest.raises(ValueError):
            decode_rules("[]")
