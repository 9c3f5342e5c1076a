"""Error classes for the segment rule engine."""


class RuleEngineError(Exception):
    """Base class for rule engine errors."""


class RuleIndexError(RuleEngineError, IndexError):
    """Raised when an editing operation addresses a node that does not exist."""

    def __init__(self, kind: str, index: int, size: int) -> None:
        super().__init__(f"{kind} index {index} out of range (size {size})")
        self.kind = kind
        self.index = index
        self.size = size


class InvalidOperatorError(RuleEngineError, ValueError):
    """Raised when an operator is not allowed for a field's type."""

    def __init__(self, operator: str, field: str) -> None:
        super().__init__(f"Operator '{operator}' is not valid for field '{field}'")
        self.operator = operator
        self.field = field


class RuleDecodeError(RuleEngineError, ValueError):
    """Raised when serialized rules cannot be decoded into a rule tree."""


class SegmentTypeError(RuleEngineError, TypeError):
    """Raised when an operation does not apply to a segment's type."""
