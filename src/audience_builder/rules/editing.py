"""Structural edits of rule trees.

Every operation takes a node and returns a new node; inputs are never
mutated. Operations act on a single group level. To edit a descendant,
use update_at_path, which rebuilds each ancestor on the path and keeps the
ids of every existing node. Only newly created nodes receive fresh ids.
"""

from collections.abc import Callable, Sequence
from typing import Any

from audience_builder.rules.catalogue import (
    DAY_COUNT_OPERATORS,
    DEFAULT_CATALOGUE,
    LIST_VALUE_OPERATORS,
    ConditionOperator,
    FieldCatalogue,
    FieldType,
)
from audience_builder.rules.conditions import (
    ConditionValue,
    GroupOperator,
    SegmentCondition,
    SegmentRuleGroup,
    new_id,
)
from audience_builder.rules.errors import InvalidOperatorError, RuleIndexError


def _check_index(kind: str, index: int, size: int) -> None:
    if index < 0 or index >= size:
        raise RuleIndexError(kind, index, size)


# === Node creation ===


def create_condition(catalogue: FieldCatalogue = DEFAULT_CATALOGUE) -> SegmentCondition:
    """New condition on the catalogue's first field with its default operator."""
    field = catalogue.first_field
    return SegmentCondition(
        id=new_id(),
        field=field.key,
        operator=catalogue.default_operator(field.key),
        value="",
    )


def create_group(
    operator: GroupOperator = GroupOperator.AND,
    catalogue: FieldCatalogue = DEFAULT_CATALOGUE,
) -> SegmentRuleGroup:
    """New group holding one default condition and no sub-groups."""
    return SegmentRuleGroup(
        id=new_id(),
        operator=operator,
        conditions=(create_condition(catalogue),),
        groups=(),
    )


def new_rule_tree(catalogue: FieldCatalogue = DEFAULT_CATALOGUE) -> SegmentRuleGroup:
    """Root group for a fresh segment definition."""
    return create_group(GroupOperator.AND, catalogue)


# === Group-level edits ===


def add_condition(
    group: SegmentRuleGroup, catalogue: FieldCatalogue = DEFAULT_CATALOGUE
) -> SegmentRuleGroup:
    return group.model_copy(
        update={"conditions": (*group.conditions, create_condition(catalogue))}
    )


def add_sub_group(
    group: SegmentRuleGroup, catalogue: FieldCatalogue = DEFAULT_CATALOGUE
) -> SegmentRuleGroup:
    """Append a sub-group using the opposite operator of its parent."""
    sub_group = create_group(group.operator.opposite, catalogue)
    return group.model_copy(update={"groups": (*group.groups, sub_group)})


def remove_condition(group: SegmentRuleGroup, index: int) -> SegmentRuleGroup:
    _check_index("condition", index, len(group.conditions))
    conditions = tuple(c for i, c in enumerate(group.conditions) if i != index)
    return group.model_copy(update={"conditions": conditions})


def remove_sub_group(group: SegmentRuleGroup, index: int) -> SegmentRuleGroup:
    _check_index("group", index, len(group.groups))
    groups = tuple(g for i, g in enumerate(group.groups) if i != index)
    return group.model_copy(update={"groups": groups})


def can_remove_condition(group: SegmentRuleGroup) -> bool:
    """Whether removing a condition keeps the group non-empty."""
    return len(group.conditions) > 1 or len(group.groups) > 0


def can_remove_sub_group(group: SegmentRuleGroup) -> bool:
    """Whether removing a sub-group keeps the group non-empty."""
    return len(group.groups) > 1 or len(group.conditions) > 0


def update_condition(
    group: SegmentRuleGroup, index: int, condition: SegmentCondition
) -> SegmentRuleGroup:
    _check_index("condition", index, len(group.conditions))
    conditions = list(group.conditions)
    conditions[index] = condition
    return group.model_copy(update={"conditions": tuple(conditions)})


def update_sub_group(
    group: SegmentRuleGroup, index: int, sub_group: SegmentRuleGroup
) -> SegmentRuleGroup:
    _check_index("group", index, len(group.groups))
    groups = list(group.groups)
    groups[index] = sub_group
    return group.model_copy(update={"groups": tuple(groups)})


def toggle_operator(group: SegmentRuleGroup) -> SegmentRuleGroup:
    """Flip AND/OR for this group only."""
    return group.model_copy(update={"operator": group.operator.opposite})


# === Condition edits ===


def change_condition_field(
    condition: SegmentCondition,
    field_key: str,
    catalogue: FieldCatalogue = DEFAULT_CATALOGUE,
) -> SegmentCondition:
    """Point a condition at another field, resetting operator and values."""
    return condition.model_copy(
        update={
            "field": field_key,
            "operator": catalogue.default_operator(field_key),
            "value": "",
            "value2": None,
        }
    )


def change_condition_operator(
    condition: SegmentCondition,
    operator: ConditionOperator | str,
    catalogue: FieldCatalogue = DEFAULT_CATALOGUE,
) -> SegmentCondition:
    """
    Switch a condition's operator and clear its values.

    Raises:
        InvalidOperatorError: If the operator is not allowed for the field.
    """
    try:
        operator = ConditionOperator(operator)
    except ValueError:
        raise InvalidOperatorError(str(operator), condition.field) from None
    canonical = catalogue.canonical_operator(condition.field, operator)
    if canonical is None:
        raise InvalidOperatorError(operator.value, condition.field)

    return condition.model_copy(update={"operator": canonical, "value": "", "value2": None})


def _coerce_number(raw: Any) -> int | float | str:
    if isinstance(raw, bool):
        return ""
    if isinstance(raw, (int, float)):
        return raw
    text = str(raw).strip() if raw is not None else ""
    if not text:
        return ""
    try:
        number = float(text)
    except ValueError:
        return ""
    return int(number) if number.is_integer() else number


def _coerce_list(raw: Any) -> list[str]:
    if raw is None or raw == "":
        return []
    if isinstance(raw, str):
        return [part.strip() for part in raw.split(",") if part.strip()]
    if isinstance(raw, (list, tuple, set, frozenset)):
        return [str(item) for item in raw]
    return [str(raw)]


def coerce_value(
    condition: SegmentCondition,
    raw: Any,
    catalogue: FieldCatalogue = DEFAULT_CATALOGUE,
) -> ConditionValue:
    """Convert editor input to the value type the condition expects."""
    if condition.operator in LIST_VALUE_OPERATORS:
        return _coerce_list(raw)
    if (
        catalogue.field_type(condition.field) == FieldType.NUMBER
        or condition.operator in DAY_COUNT_OPERATORS
    ):
        return _coerce_number(raw)
    if raw is None:
        return ""
    return str(raw)


def set_condition_value(
    condition: SegmentCondition,
    raw: Any,
    catalogue: FieldCatalogue = DEFAULT_CATALOGUE,
) -> SegmentCondition:
    return condition.model_copy(update={"value": coerce_value(condition, raw, catalogue)})


def set_condition_value2(
    condition: SegmentCondition,
    raw: Any,
    catalogue: FieldCatalogue = DEFAULT_CATALOGUE,
) -> SegmentCondition:
    """Set the upper bound of a between condition; blank input clears it."""
    value2 = coerce_value(condition, raw, catalogue)
    return condition.model_copy(update={"value2": None if value2 == "" else value2})


def toggle_option(condition: SegmentCondition, option: str) -> SegmentCondition:
    """Add or remove one choice of a multi-select (in / not_in) condition."""
    selected = list(condition.value) if isinstance(condition.value, list) else []
    if option in selected:
        selected = [item for item in selected if item != option]
    else:
        selected.append(option)
    return condition.model_copy(update={"value": selected})


# === Path addressing ===


def get_at_path(root: SegmentRuleGroup, path: Sequence[int]) -> SegmentRuleGroup:
    """Group reached by following sub-group indexes from the root."""
    group = root
    for index in path:
        _check_index("group", index, len(group.groups))
        group = group.groups[index]
    return group


def update_at_path(
    root: SegmentRuleGroup,
    path: Sequence[int],
    edit: Callable[[SegmentRuleGroup], SegmentRuleGroup],
) -> SegmentRuleGroup:
    """
    Apply an edit to the group at path and rebuild its ancestors.

    Args:
        root: Root of the tree.
        path: Sub-group indexes from the root; empty edits the root itself.
        edit: Group-level operation, e.g. ``add_condition``.

    Returns:
        New root. Untouched siblings are shared with the old tree.
    """
    if not path:
        return edit(root)

    index, rest = path[0], path[1:]
    _check_index("group", index, len(root.groups))
    return update_sub_group(root, index, update_at_path(root.groups[index], rest, edit))
