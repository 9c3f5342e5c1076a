"""Evaluate segment rule trees against contact records."""

import logging
import math
from collections.abc import Callable, Iterable, Mapping
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from itertools import chain
from typing import Any, TypeVar

from audience_builder.rules.catalogue import (
    DEFAULT_CATALOGUE,
    ConditionOperator,
    FieldCatalogue,
    FieldType,
)
from audience_builder.rules.conditions import GroupOperator, SegmentCondition, SegmentRuleGroup

logger = logging.getLogger(__name__)

R = TypeVar("R")

Clock = Callable[[], datetime]

_COLLECTION_TYPES = (list, tuple, set, frozenset)

_EMPTY_BY_TYPE: dict[FieldType, Any] = {
    FieldType.STRING: "",
    FieldType.SELECT: "",
    FieldType.DATE: "",
    FieldType.NUMBER: 0,
    FieldType.ARRAY: [],
    FieldType.BOOLEAN: False,
}


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def resolve_field(record: Any, key: str) -> Any:
    """
    Read a field from a contact record.

    The full key is tried first, then a dotted path into nested mappings
    (e.g. ``cashback_info.current_balance``). Objects are read by attribute.

    Returns:
        The stored value, or None if it is absent.
    """
    value = _lookup(record, key)
    if value is not None or "." not in key:
        return value

    current = record
    for part in key.split("."):
        current = _lookup(current, part)
        if current is None:
            return None
    return current


def _lookup(container: Any, key: str) -> Any:
    if isinstance(container, Mapping):
        return container.get(key)
    if container is None or isinstance(container, (str, bytes, int, float, bool)):
        return None
    return getattr(container, key, None)


def is_empty_value(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value == ""
    if isinstance(value, (*_COLLECTION_TYPES, dict)):
        return len(value) == 0
    return False


def to_number(value: Any) -> float | None:
    """Numeric view of a value, or None if it has none."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float, Decimal)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return None if math.isnan(number) else number


def to_datetime(value: Any) -> datetime | None:
    """Timezone-aware datetime from a datetime, date or ISO 8601 string."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def as_text(value: Any) -> str:
    """Text form used for equality and membership tests."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _as_list(value: Any) -> list[Any]:
    if isinstance(value, _COLLECTION_TYPES):
        return list(value)
    if value is None or value == "":
        return []
    return [value]


class SegmentEvaluator:
    """Match contact records against rule trees.

    The evaluator holds only configuration (catalogue and clock). Evaluation
    never raises for malformed data: unknown fields, unknown operators and
    values that cannot be coerced all make the affected condition false.
    """

    def __init__(
        self,
        catalogue: FieldCatalogue | None = None,
        now: datetime | Clock | None = None,
    ) -> None:
        """
        Initialize the evaluator.

        Args:
            catalogue: Field catalogue; defaults to the contact catalogue.
            now: Fixed reference time or a clock callable for relative date
                operators. Defaults to the current UTC time.
        """
        self.catalogue = catalogue or DEFAULT_CATALOGUE
        if now is None:
            self._clock: Clock = _utc_now
        elif isinstance(now, datetime):
            fixed = to_datetime(now)
            self._clock = lambda: fixed
        else:
            self._clock = now

    def now(self) -> datetime:
        current = to_datetime(self._clock())
        return current if current is not None else _utc_now()

    # === Groups ===

    def evaluate(self, group: SegmentRuleGroup, record: Any) -> bool:
        """
        Check if a record matches a rule group.

        Args:
            group: Root of the rule tree.
            record: Contact record (mapping or object).

        Returns:
            True if the record belongs to the audience.
        """
        return self._matches_group(group, record, self.now())

    def filter(self, group: SegmentRuleGroup, records: Iterable[R]) -> list[R]:
        """Records matching the group, in input order."""
        now = self.now()
        return [record for record in records if self._matches_group(group, record, now)]

    def count(self, group: SegmentRuleGroup, records: Iterable[Any]) -> int:
        now = self.now()
        return sum(1 for record in records if self._matches_group(group, record, now))

    def _matches_group(self, group: SegmentRuleGroup, record: Any, now: datetime) -> bool:
        results = chain(
            (self._matches_condition(c, record, now) for c in group.conditions),
            (self._matches_group(g, record, now) for g in group.groups),
        )

        # all() of nothing is True and any() of nothing is False
        if group.operator == GroupOperator.AND:
            return all(results)
        return any(results)

    # === Conditions ===

    def evaluate_condition(self, condition: SegmentCondition, record: Any) -> bool:
        """Check a single condition against a record."""
        return self._matches_condition(condition, record, self.now())

    def _matches_condition(
        self, condition: SegmentCondition, record: Any, now: datetime
    ) -> bool:
        if not condition.is_known_operator:
            logger.debug(f"Unknown operator '{condition.operator}' in condition {condition.id}")
            return False

        field_type = self.catalogue.field_type(condition.field)
        operator = self.catalogue.canonical_operator(condition.field, condition.operator)
        if operator is None:
            logger.debug(
                f"Operator '{condition.operator.value}' not valid for "
                f"{field_type.value} field '{condition.field}'"
            )
            return False

        raw = resolve_field(record, condition.field)
        try:
            return self._apply(condition, operator, field_type, raw, now)
        except (TypeError, ValueError, OverflowError) as e:
            logger.debug(f"Condition {condition.id} on '{condition.field}' did not evaluate: {e}")
            return False

    def _apply(
        self,
        condition: SegmentCondition,
        operator: ConditionOperator,
        field_type: FieldType,
        raw: Any,
        now: datetime,
    ) -> bool:
        expected = condition.value
        actual = raw if raw is not None else _EMPTY_BY_TYPE[field_type]

        match operator:
            # Presence
            case ConditionOperator.IS_EMPTY:
                return is_empty_value(raw)

            case ConditionOperator.IS_NOT_EMPTY:
                return not is_empty_value(raw)

            # Flags
            case ConditionOperator.IS_TRUE:
                return raw is True or (isinstance(raw, str) and raw.lower() == "true")

            case ConditionOperator.IS_FALSE:
                return raw is None or raw is False or (
                    isinstance(raw, str) and raw.lower() == "false"
                )

            # Equality
            case ConditionOperator.EQUALS:
                return self._equals(field_type, actual, expected)

            case ConditionOperator.NOT_EQUALS:
                return not self._equals(field_type, actual, expected)

            # Text and collections
            case ConditionOperator.CONTAINS:
                return self._contains(field_type, actual, expected)

            case ConditionOperator.NOT_CONTAINS:
                return not self._contains(field_type, actual, expected)

            case ConditionOperator.STARTS_WITH:
                return as_text(actual).lower().startswith(as_text(expected).lower())

            case ConditionOperator.ENDS_WITH:
                return as_text(actual).lower().endswith(as_text(expected).lower())

            case ConditionOperator.CONTAINS_ALL:
                elements = {as_text(item).lower() for item in _as_list(actual)}
                return all(as_text(item).lower() in elements for item in _as_list(expected))

            case ConditionOperator.IN:
                return as_text(actual) in {as_text(item) for item in _as_list(expected)}

            case ConditionOperator.NOT_IN:
                return as_text(actual) not in {as_text(item) for item in _as_list(expected)}

            # Ordering
            case ConditionOperator.GREATER_THAN | ConditionOperator.AFTER:
                return self._compare(field_type, actual, expected, lambda a, b: a > b)

            case ConditionOperator.LESS_THAN | ConditionOperator.BEFORE:
                return self._compare(field_type, actual, expected, lambda a, b: a < b)

            case ConditionOperator.GREATER_OR_EQUAL:
                return self._compare(field_type, actual, expected, lambda a, b: a >= b)

            case ConditionOperator.LESS_OR_EQUAL:
                return self._compare(field_type, actual, expected, lambda a, b: a <= b)

            case ConditionOperator.BETWEEN:
                return self._between(field_type, actual, expected, condition.value2)

            # Dates
            case ConditionOperator.ON:
                actual_date = to_datetime(actual)
                expected_date = to_datetime(expected)
                if actual_date is None or expected_date is None:
                    return False
                return (
                    actual_date.astimezone(timezone.utc).date()
                    == expected_date.astimezone(timezone.utc).date()
                )

            case ConditionOperator.IN_LAST_DAYS | ConditionOperator.NOT_IN_LAST_DAYS:
                moment = to_datetime(actual)
                days = to_number(expected)
                if moment is None or days is None:
                    return False
                cutoff = now - timedelta(days=days)
                if operator == ConditionOperator.IN_LAST_DAYS:
                    return moment >= cutoff
                return moment < cutoff

            case _:
                return False

    def _ordering_key(self, field_type: FieldType, value: Any) -> float | datetime | None:
        if field_type == FieldType.DATE:
            return to_datetime(value)
        return to_number(value)

    def _equals(self, field_type: FieldType, actual: Any, expected: Any) -> bool:
        if field_type == FieldType.NUMBER:
            left, right = to_number(actual), to_number(expected)
            if left is not None and right is not None:
                return left == right
        return as_text(actual) == as_text(expected)

    def _contains(self, field_type: FieldType, actual: Any, expected: Any) -> bool:
        needle = as_text(expected).lower()
        if field_type == FieldType.ARRAY or isinstance(actual, _COLLECTION_TYPES):
            return any(as_text(item).lower() == needle for item in _as_list(actual))
        return needle in as_text(actual).lower()

    def _compare(
        self,
        field_type: FieldType,
        actual: Any,
        expected: Any,
        check: Callable[[Any, Any], bool],
    ) -> bool:
        left = self._ordering_key(field_type, actual)
        right = self._ordering_key(field_type, expected)
        if left is None or right is None:
            return False
        return check(left, right)

    def _between(self, field_type: FieldType, actual: Any, low: Any, high: Any) -> bool:
        value = self._ordering_key(field_type, actual)
        lower = self._ordering_key(field_type, low)
        if value is None or lower is None:
            return False
        if high is None or high == "":
            return lower <= value
        upper = self._ordering_key(field_type, high)
        if upper is None:
            return False
        return lower <= value <= upper


_default_evaluator = SegmentEvaluator()


def evaluate(group: SegmentRuleGroup, record: Any) -> bool:
    """Match a record against a rule tree using the default catalogue."""
    return _default_evaluator.evaluate(group, record)


def evaluate_condition(condition: SegmentCondition, record: Any) -> bool:
    return _default_evaluator.evaluate_condition(condition, record)


def filter_records(group: SegmentRuleGroup, records: Iterable[R]) -> list[R]:
    return _default_evaluator.filter(group, records)
