"""
Domain enums for the badge rule model and the canvas editor.

These enums are the closed vocabularies shared by the rule tree, the field
registry, the canvas translator and the API schemas.
"""

from enum import Enum


class Operator(str, Enum):
    """
    Comparison operators for condition leaves.
    Wire values are camelCase, matching the persisted ruleJson.
    """

    EQ = "eq"  # Equal
    NEQ = "neq"  # Not equal
    GT = "gt"  # Greater than
    GTE = "gte"  # Greater than or equal
    LT = "lt"  # Less than
    LTE = "lte"  # Less than or equal
    IN = "in"  # In list
    NOT_IN = "notIn"  # Not in list
    CONTAINS = "contains"  # String/array contains
    STARTS_WITH = "startsWith"  # String starts with
    ENDS_WITH = "endsWith"  # String ends with
    BETWEEN = "between"  # Inclusive range of two bounds
    IS_EMPTY = "isEmpty"  # Missing, null or empty
    IS_NOT_EMPTY = "isNotEmpty"  # Present and non-empty


# Spellings written by older canvas builds, normalized on input.
OPERATOR_ALIASES: dict[str, Operator] = {
    "ne": Operator.NEQ,
    "not_in": Operator.NOT_IN,
    "starts_with": Operator.STARTS_WITH,
    "ends_with": Operator.ENDS_WITH,
    "is_empty": Operator.IS_EMPTY,
    "is_not_empty": Operator.IS_NOT_EMPTY,
}


class ValueShape(str, Enum):
    """Shape of the literal an operator expects."""

    SINGLE = "single"
    RANGE = "range"
    LIST = "list"
    NONE = "none"


OPERATOR_VALUE_SHAPES: dict[Operator, ValueShape] = {
    Operator.EQ: ValueShape.SINGLE,
    Operator.NEQ: ValueShape.SINGLE,
    Operator.GT: ValueShape.SINGLE,
    Operator.GTE: ValueShape.SINGLE,
    Operator.LT: ValueShape.SINGLE,
    Operator.LTE: ValueShape.SINGLE,
    Operator.CONTAINS: ValueShape.SINGLE,
    Operator.STARTS_WITH: ValueShape.SINGLE,
    Operator.ENDS_WITH: ValueShape.SINGLE,
    Operator.IN: ValueShape.LIST,
    Operator.NOT_IN: ValueShape.LIST,
    Operator.BETWEEN: ValueShape.RANGE,
    Operator.IS_EMPTY: ValueShape.NONE,
    Operator.IS_NOT_EMPTY: ValueShape.NONE,
}


class LogicOperator(str, Enum):
    """Boolean combinator of a group node."""

    AND = "AND"
    OR = "OR"


class FieldType(str, Enum):
    """
    Scalar types of event payload fields.
    Supplied by the field registry and used to check operator compatibility.
    """

    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    ARRAY = "array"


class CanvasNodeKind(str, Enum):
    """Kinds of node the visual editor can place on the canvas."""

    CONDITION = "condition"
    COMBINER = "combiner"
    ACTION = "action"


# Node type names used by the first editor release.
CANVAS_KIND_ALIASES: dict[str, CanvasNodeKind] = {
    "logic": CanvasNodeKind.COMBINER,
    "badge": CanvasNodeKind.ACTION,
}


class ActionType(str, Enum):
    """Post-match effects attached at the rule root."""

    GRANT_BADGE = "grant_badge"
    GRANT_BENEFIT = "grant_benefit"


class ValidationCode(str, Enum):
    """Reason codes reported by rule tree validation."""

    EMPTY_GROUP = "EMPTY_GROUP"
    DEPTH_EXCEEDED = "DEPTH_EXCEEDED"
    TOO_MANY_CONDITIONS = "TOO_MANY_CONDITIONS"
    INVALID_FIELD = "INVALID_FIELD"
    UNKNOWN_FIELD = "UNKNOWN_FIELD"
    INACTIVE_FIELD = "INACTIVE_FIELD"
    OPERATOR_MISMATCH = "OPERATOR_MISMATCH"
    INVALID_VALUE = "INVALID_VALUE"
    VALUE_TYPE_MISMATCH = "VALUE_TYPE_MISMATCH"


class GraphIssueCode(str, Enum):
    """Problems the canvas can contain that a rule tree cannot represent."""

    NO_ACTION = "NO_ACTION"
    DISCONNECTED_NODE = "DISCONNECTED_NODE"
    CYCLE_DETECTED = "CYCLE_DETECTED"
    DANGLING_EDGE = "DANGLING_EDGE"
    MULTIPLE_ROOTS = "MULTIPLE_ROOTS"
    INVALID_CONNECTION = "INVALID_CONNECTION"
    INVALID_NODE_DATA = "INVALID_NODE_DATA"
    EMPTY_COMBINER = "EMPTY_COMBINER"
    DEPTH_EXCEEDED = "DEPTH_EXCEEDED"
    VALIDATION = "VALIDATION"
