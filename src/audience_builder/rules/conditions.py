"""Rule tree nodes: conditions and AND/OR groups."""

from datetime import date
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator

from audience_builder.rules.catalogue import ConditionOperator, LEGACY_OPERATOR_ALIASES

ConditionValue = bool | int | float | str | list[str] | None


def new_id() -> str:
    """Fresh opaque node id."""
    return str(uuid4())


class GroupOperator(str, Enum):
    """How a group combines the results of its children."""

    AND = "AND"
    OR = "OR"

    @property
    def opposite(self) -> "GroupOperator":
        return GroupOperator.OR if self is GroupOperator.AND else GroupOperator.AND


class SegmentCondition(BaseModel):
    """A leaf test of one contact field."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id, description="Stable node id")
    field: str = Field(description="Catalogue field key")
    operator: ConditionOperator | str = Field(union_mode="left_to_right")
    value: ConditionValue = Field(default="", description="Value to compare against")
    value2: ConditionValue = Field(
        default=None, description="Upper bound for the between operator"
    )

    @field_validator("operator", mode="before")
    @classmethod
    def _normalize_operator(cls, value: Any) -> Any:
        # Unknown names stay plain strings so stored trees still load
        if isinstance(value, str) and not isinstance(value, ConditionOperator):
            return LEGACY_OPERATOR_ALIASES.get(value, value)
        return value

    @field_validator("value", "value2", mode="before")
    @classmethod
    def _plain_values(cls, value: Any) -> Any:
        # YAML reads unquoted dates as date objects
        if isinstance(value, date):
            return value.isoformat()
        if isinstance(value, (list, tuple)):
            return [item.isoformat() if isinstance(item, date) else str(item) for item in value]
        return value

    @property
    def is_known_operator(self) -> bool:
        return isinstance(self.operator, ConditionOperator)


class SegmentRuleGroup(BaseModel):
    """A group of conditions and sub-groups combined with AND/OR logic."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id, description="Stable node id")
    operator: GroupOperator = Field(default=GroupOperator.AND)
    conditions: tuple[SegmentCondition, ...] = Field(default_factory=tuple)
    groups: tuple["SegmentRuleGroup", ...] = Field(default_factory=tuple)

    @field_validator("operator", mode="before")
    @classmethod
    def _upper_operator(cls, value: Any) -> Any:
        if isinstance(value, str) and not isinstance(value, GroupOperator):
            return value.upper()
        return value

    @property
    def is_vacuous(self) -> bool:
        """True when the group has no conditions and no sub-groups."""
        return not self.conditions and not self.groups

    def walk(self):
        """Yield (path, group) for this group and every descendant, depth first."""
        stack: list[tuple[tuple[int, ...], SegmentRuleGroup]] = [((), self)]
        while stack:
            path, group = stack.pop()
            yield path, group
            for index in reversed(range(len(group.groups))):
                stack.append((path + (index,), group.groups[index]))


SegmentRuleGroup.model_rebuild()
