"""Plain-data and JSON encoding for rule trees."""

from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from audience_builder.rules.conditions import SegmentRuleGroup
from audience_builder.rules.errors import RuleDecodeError


def rules_to_dict(group: SegmentRuleGroup) -> dict[str, Any]:
    """Encode a rule tree as JSON-compatible plain data."""
    return group.model_dump(mode="json")


def encode_rules(group: SegmentRuleGroup, *, indent: int | None = None) -> str:
    """Encode a rule tree as a JSON string."""
    return group.model_dump_json(indent=indent)


def decode_rules(data: str | bytes | Mapping[str, Any]) -> SegmentRuleGroup:
    """
    Rebuild a rule tree from JSON text or plain data.

    Args:
        data: JSON document, or the mapping produced by rules_to_dict.

    Returns:
        The decoded root group.

    Raises:
        RuleDecodeError: If the input is not a valid rule tree.
    """
    try:
        if isinstance(data, (str, bytes)):
            return SegmentRuleGroup.model_validate_json(data)
        if isinstance(data, Mapping):
            return SegmentRuleGroup.model_validate(dict(data))
    except ValidationError as e:
        raise RuleDecodeError(f"Invalid rule tree: {e}") from e

    raise RuleDecodeError(f"Cannot decode rule tree from {type(data).__name__}")
