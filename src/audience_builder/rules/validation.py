"""Static checks of rule trees against a field catalogue."""

from enum import Enum

from pydantic import BaseModel, Field

from audience_builder.rules.catalogue import (
    DEFAULT_CATALOGUE,
    FieldCatalogue,
    requires_second_value,
    requires_value,
)
from audience_builder.rules.conditions import GroupOperator, SegmentRuleGroup


class IssueSeverity(str, Enum):
    """How serious a rule issue is."""

    ERROR = "error"
    WARNING = "warning"


class RuleIssue(BaseModel):
    """A problem found in a rule tree."""

    path: tuple[int, ...] = Field(description="Sub-group indexes from the root")
    node_id: str
    severity: IssueSeverity
    message: str

    def __str__(self) -> str:
        location = "root" if not self.path else "root/" + "/".join(str(i) for i in self.path)
        return f"[{self.severity.value}] {location}: {self.message}"


def validate_tree(
    root: SegmentRuleGroup, catalogue: FieldCatalogue = DEFAULT_CATALOGUE
) -> list[RuleIssue]:
    """
    Report problems in a rule tree without raising.

    Errors make a condition always false when evaluated. Warnings flag
    trees that evaluate but probably do not say what the author meant.

    Args:
        root: Root group to check.
        catalogue: Catalogue the tree is meant for.

    Returns:
        Issues in depth-first order; empty if the tree is clean.
    """
    issues: list[RuleIssue] = []
    seen_ids: set[str] = set()

    def report(path, node_id, severity, message):
        issues.append(
            RuleIssue(path=path, node_id=node_id, severity=severity, message=message)
        )

    def check_id(path, node_id):
        if node_id in seen_ids:
            report(path, node_id, IssueSeverity.ERROR, f"Duplicate node id '{node_id}'")
        seen_ids.add(node_id)

    for path, group in root.walk():
        check_id(path, group.id)

        if group.is_vacuous:
            outcome = "every" if group.operator is GroupOperator.AND else "no"
            report(
                path,
                group.id,
                IssueSeverity.WARNING,
                f"Empty {group.operator.value} group matches {outcome} contact",
            )

        for condition in group.conditions:
            check_id(path, condition.id)

            if catalogue.field(condition.field) is None:
                report(
                    path,
                    condition.id,
                    IssueSeverity.WARNING,
                    f"Unknown field '{condition.field}' is treated as text",
                )

            if not condition.is_known_operator:
                report(
                    path,
                    condition.id,
                    IssueSeverity.ERROR,
                    f"Unknown operator '{condition.operator}'",
                )
                continue

            operator = condition.operator.value
            if catalogue.canonical_operator(condition.field, condition.operator) is None:
                field_type = catalogue.field_type(condition.field).value
                report(
                    path,
                    condition.id,
                    IssueSeverity.ERROR,
                    f"Operator '{operator}' is not valid for {field_type} field "
                    f"'{condition.field}'",
                )
                continue

            if requires_value(condition.operator) and condition.value in ("", None, []):
                report(
                    path,
                    condition.id,
                    IssueSeverity.WARNING,
                    f"'{condition.field} {operator}' has no value",
                )

            if requires_second_value(condition.operator) and condition.value2 in ("", None):
                report(
                    path,
                    condition.id,
                    IssueSeverity.WARNING,
                    f"'{condition.field} between' has no upper bound",
                )

    return issues
