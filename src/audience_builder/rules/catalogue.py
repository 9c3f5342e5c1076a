"""Field catalogue and operator grammar for segment rules."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class FieldType(str, Enum):
    """Declared type of a contact field."""

    STRING = "string"
    NUMBER = "number"
    DATE = "date"
    BOOLEAN = "boolean"
    SELECT = "select"
    ARRAY = "array"


class ConditionOperator(str, Enum):
    """Comparisons a condition can apply to a field value."""

    # Text / generic
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"

    # Ordering
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    GREATER_OR_EQUAL = "greater_or_equal"
    LESS_OR_EQUAL = "less_or_equal"
    BETWEEN = "between"

    # Dates
    BEFORE = "before"
    AFTER = "after"
    ON = "on"
    IN_LAST_DAYS = "in_last_days"
    NOT_IN_LAST_DAYS = "not_in_last_days"

    # Collections
    CONTAINS_ALL = "contains_all"
    IN = "in"
    NOT_IN = "not_in"

    # Flags and presence
    IS_TRUE = "is_true"
    IS_FALSE = "is_false"
    IS_EMPTY = "is_empty"
    IS_NOT_EMPTY = "is_not_empty"


OPERATORS_BY_TYPE: dict[FieldType, tuple[ConditionOperator, ...]] = {
    FieldType.STRING: (
        ConditionOperator.EQUALS,
        ConditionOperator.NOT_EQUALS,
        ConditionOperator.CONTAINS,
        ConditionOperator.NOT_CONTAINS,
        ConditionOperator.STARTS_WITH,
        ConditionOperator.ENDS_WITH,
        ConditionOperator.IS_EMPTY,
        ConditionOperator.IS_NOT_EMPTY,
    ),
    FieldType.NUMBER: (
        ConditionOperator.EQUALS,
        ConditionOperator.NOT_EQUALS,
        ConditionOperator.GREATER_THAN,
        ConditionOperator.LESS_THAN,
        ConditionOperator.GREATER_OR_EQUAL,
        ConditionOperator.LESS_OR_EQUAL,
        ConditionOperator.BETWEEN,
        ConditionOperator.IS_EMPTY,
        ConditionOperator.IS_NOT_EMPTY,
    ),
    FieldType.DATE: (
        ConditionOperator.BEFORE,
        ConditionOperator.AFTER,
        ConditionOperator.ON,
        ConditionOperator.BETWEEN,
        ConditionOperator.IN_LAST_DAYS,
        ConditionOperator.NOT_IN_LAST_DAYS,
        ConditionOperator.IS_EMPTY,
        ConditionOperator.IS_NOT_EMPTY,
    ),
    FieldType.BOOLEAN: (
        ConditionOperator.IS_TRUE,
        ConditionOperator.IS_FALSE,
    ),
    FieldType.SELECT: (
        ConditionOperator.EQUALS,
        ConditionOperator.NOT_EQUALS,
        ConditionOperator.IN,
        ConditionOperator.NOT_IN,
        ConditionOperator.IS_EMPTY,
        ConditionOperator.IS_NOT_EMPTY,
    ),
    FieldType.ARRAY: (
        ConditionOperator.CONTAINS,
        ConditionOperator.NOT_CONTAINS,
        ConditionOperator.CONTAINS_ALL,
        ConditionOperator.IS_EMPTY,
        ConditionOperator.IS_NOT_EMPTY,
    ),
}

NO_VALUE_OPERATORS: frozenset[ConditionOperator] = frozenset(
    {
        ConditionOperator.IS_EMPTY,
        ConditionOperator.IS_NOT_EMPTY,
        ConditionOperator.IS_TRUE,
        ConditionOperator.IS_FALSE,
    }
)

# Operators whose value is a list of strings
LIST_VALUE_OPERATORS: frozenset[ConditionOperator] = frozenset(
    {
        ConditionOperator.IN,
        ConditionOperator.NOT_IN,
        ConditionOperator.CONTAINS_ALL,
    }
)

# Operators whose value is a day count regardless of field type
DAY_COUNT_OPERATORS: frozenset[ConditionOperator] = frozenset(
    {
        ConditionOperator.IN_LAST_DAYS,
        ConditionOperator.NOT_IN_LAST_DAYS,
    }
)

# Names written by older versions of the segment editor
LEGACY_OPERATOR_ALIASES: dict[str, ConditionOperator] = {
    "exists": ConditionOperator.IS_NOT_EMPTY,
    "not_exists": ConditionOperator.IS_EMPTY,
    "array_contains": ConditionOperator.CONTAINS,
    "array_not_contains": ConditionOperator.NOT_CONTAINS,
    "array_contains_all": ConditionOperator.CONTAINS_ALL,
    "array_is_empty": ConditionOperator.IS_EMPTY,
    "array_is_not_empty": ConditionOperator.IS_NOT_EMPTY,
}

# Numeric ordering names accepted on date fields
DATE_OPERATOR_ALIASES: dict[ConditionOperator, ConditionOperator] = {
    ConditionOperator.GREATER_THAN: ConditionOperator.AFTER,
    ConditionOperator.LESS_THAN: ConditionOperator.BEFORE,
}


def requires_value(operator: ConditionOperator | str) -> bool:
    """Whether the operator takes a value input."""
    return operator not in NO_VALUE_OPERATORS


def requires_second_value(operator: ConditionOperator | str) -> bool:
    """Whether the operator takes a second (upper bound) value."""
    return operator == ConditionOperator.BETWEEN


class FieldOption(BaseModel):
    """One choice of a select field."""

    model_config = ConfigDict(frozen=True)

    value: str
    label: str


class FieldDefinition(BaseModel):
    """A contact field that segment conditions can test."""

    model_config = ConfigDict(frozen=True)

    key: str = Field(min_length=1, description="Record key, dotted for nested values")
    label: str = Field(description="Display name")
    type: FieldType
    group: str = Field(default="General", description="Category for grouping in editors")
    options: tuple[FieldOption, ...] | None = Field(
        default=None, description="Choices, only for select fields"
    )
    description: str | None = None

    @model_validator(mode="after")
    def _check_options(self) -> "FieldDefinition":
        if self.type == FieldType.SELECT and not self.options:
            raise ValueError(f"Select field '{self.key}' needs at least one option")
        if self.type != FieldType.SELECT and self.options is not None:
            raise ValueError(f"Only select fields take options (field '{self.key}')")
        return self


class FieldCatalogue(BaseModel):
    """Immutable set of field definitions and per-type operator lists.

    The catalogue is passed explicitly to the evaluator and the editing
    operations. Field order matters: the first field is the default for new
    conditions, and the first operator of a type is the default whenever a
    condition switches to a field of that type.
    """

    model_config = ConfigDict(frozen=True)

    fields: tuple[FieldDefinition, ...]
    operators_by_type: dict[FieldType, tuple[ConditionOperator, ...]] = Field(
        default_factory=lambda: dict(OPERATORS_BY_TYPE)
    )

    @model_validator(mode="after")
    def _check_catalogue(self) -> "FieldCatalogue":
        if not self.fields:
            raise ValueError("A catalogue needs at least one field")

        seen: set[str] = set()
        for definition in self.fields:
            if definition.key in seen:
                raise ValueError(f"Duplicate field key '{definition.key}'")
            seen.add(definition.key)

        for field_type in FieldType:
            if not self.operators_by_type.get(field_type):
                raise ValueError(f"No operators defined for type '{field_type.value}'")
        return self

    @property
    def first_field(self) -> FieldDefinition:
        return self.fields[0]

    def field(self, key: str) -> FieldDefinition | None:
        """Look up a field by key, or None if the catalogue does not define it."""
        for definition in self.fields:
            if definition.key == key:
                return definition
        return None

    def field_type(self, key: str) -> FieldType:
        """Declared type of a field; unknown fields are treated as strings."""
        definition = self.field(key)
        return definition.type if definition else FieldType.STRING

    def operators_for_type(self, field_type: FieldType) -> tuple[ConditionOperator, ...]:
        return self.operators_by_type[field_type]

    def operators_for_field(self, key: str) -> tuple[ConditionOperator, ...]:
        return self.operators_for_type(self.field_type(key))

    def default_operator(self, key: str) -> ConditionOperator:
        return self.operators_for_field(key)[0]

    def canonical_operator(
        self, key: str, operator: ConditionOperator
    ) -> ConditionOperator | None:
        """
        Operator as the field's type names it, or None if the type does not allow it.

        Date fields accept greater_than and less_than as after and before.
        """
        field_type = self.field_type(key)
        if field_type == FieldType.DATE:
            operator = DATE_OPERATOR_ALIASES.get(operator, operator)
        if operator in self.operators_for_type(field_type):
            return operator
        return None

    def grouped(self) -> dict[str, list[FieldDefinition]]:
        """Fields by category, both in catalogue order."""
        groups: dict[str, list[FieldDefinition]] = {}
        for definition in self.fields:
            groups.setdefault(definition.group, []).append(definition)
        return groups


def _options(*pairs: tuple[str, str]) -> tuple[FieldOption, ...]:
    return tuple(FieldOption(value=value, label=label) for value, label in pairs)


CONTACT_FIELDS: tuple[FieldDefinition, ...] = (
    # Basic data
    FieldDefinition(key="full_name", label="Full name", type=FieldType.STRING, group="Basic"),
    FieldDefinition(key="email", label="E-mail", type=FieldType.STRING, group="Basic"),
    FieldDefinition(key="phone", label="Phone", type=FieldType.STRING, group="Basic"),
    FieldDefinition(key="first_name", label="First name", type=FieldType.STRING, group="Basic"),
    FieldDefinition(key="last_name", label="Last name", type=FieldType.STRING, group="Basic"),
    FieldDefinition(key="source", label="Source", type=FieldType.STRING, group="Basic"),
    # Classification
    FieldDefinition(
        key="lifecycle_stage",
        label="Lifecycle stage",
        type=FieldType.SELECT,
        group="Classification",
        options=_options(
            ("customer", "Customer"),
            ("subscriber", "Subscriber"),
            ("lead", "Lead"),
        ),
    ),
    FieldDefinition(
        key="status",
        label="Contact status",
        type=FieldType.SELECT,
        group="Classification",
        options=_options(
            ("active", "Active"),
            ("inactive", "Inactive"),
            ("bounced", "Bounced"),
            ("unsubscribed", "Unsubscribed"),
            ("complained", "Complained"),
        ),
    ),
    FieldDefinition(key="lead_score", label="Lead score", type=FieldType.NUMBER, group="Classification"),
    # Tags
    FieldDefinition(key="tags", label="Tags", type=FieldType.ARRAY, group="Tags"),
    # Cashback
    FieldDefinition(
        key="cashback_info.current_balance",
        label="Cashback balance",
        type=FieldType.NUMBER,
        group="Cashback",
    ),
    FieldDefinition(
        key="cashback_info.lifetime_earned",
        label="Lifetime cashback earned",
        type=FieldType.NUMBER,
        group="Cashback",
    ),
    FieldDefinition(
        key="cashback_info.expiry_date",
        label="Cashback expiry date",
        type=FieldType.DATE,
        group="Cashback",
    ),
    FieldDefinition(
        key="cashback_info.last_transaction_date",
        label="Last cashback transaction",
        type=FieldType.DATE,
        group="Cashback",
    ),
    # Opt-in
    FieldDefinition(key="opt_in_email", label="Accepts e-mail", type=FieldType.BOOLEAN, group="Opt-in"),
    FieldDefinition(key="opt_in_sms", label="Accepts SMS", type=FieldType.BOOLEAN, group="Opt-in"),
    # Dates
    FieldDefinition(key="created_at", label="Created at", type=FieldType.DATE, group="Dates"),
    FieldDefinition(key="updated_at", label="Last updated", type=FieldType.DATE, group="Dates"),
    # Custom fields
    FieldDefinition(
        key="custom_fields.last_purchase_date",
        label="Last purchase date",
        type=FieldType.DATE,
        group="Custom",
    ),
    FieldDefinition(
        key="custom_fields.purchase_frequency",
        label="Purchase frequency (days)",
        type=FieldType.NUMBER,
        group="Custom",
    ),
    FieldDefinition(
        key="custom_fields.product_category",
        label="Product category",
        type=FieldType.STRING,
        group="Custom",
    ),
    FieldDefinition(
        key="custom_fields.referral_code",
        label="Referral code",
        type=FieldType.STRING,
        group="Custom",
    ),
)

DEFAULT_CATALOGUE = FieldCatalogue(fields=CONTACT_FIELDS)


def field_definition(
    key: str, catalogue: FieldCatalogue = DEFAULT_CATALOGUE
) -> FieldDefinition | None:
    """Look up a field definition in a catalogue."""
    return catalogue.field(key)


def operators_for_type(
    field_type: FieldType, catalogue: FieldCatalogue = DEFAULT_CATALOGUE
) -> tuple[ConditionOperator, ...]:
    """Allowed operators for a field type, in display order."""
    return catalogue.operators_for_type(field_type)
