"""Segment rule engine: catalogue, rule trees, editing and evaluation."""

from audience_builder.rules.catalogue import (
    DEFAULT_CATALOGUE,
    NO_VALUE_OPERATORS,
    OPERATORS_BY_TYPE,
    ConditionOperator,
    FieldCatalogue,
    FieldDefinition,
    FieldType,
)
from audience_builder.rules.codec import decode_rules, encode_rules, rules_to_dict
from audience_builder.rules.conditions import GroupOperator, SegmentCondition, SegmentRuleGroup
from audience_builder.rules.errors import RuleDecodeError, RuleEngineError, RuleIndexError
from audience_builder.rules.evaluator import SegmentEvaluator
from audience_builder.rules.validation import RuleIssue, validate_tree

__all__ = [
    "DEFAULT_CATALOGUE",
    "NO_VALUE_OPERATORS",
    "OPERATORS_BY_TYPE",
    "ConditionOperator",
    "FieldCatalogue",
    "FieldDefinition",
    "FieldType",
    "GroupOperator",
    "SegmentCondition",
    "SegmentRuleGroup",
    "SegmentEvaluator",
    "RuleDecodeError",
    "RuleEngineError",
    "RuleIndexError",
    "RuleIssue",
    "decode_rules",
    "encode_rules",
    "rules_to_dict",
    "validate_tree",
]
