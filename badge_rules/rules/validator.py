"""
Rule Tree Validation.

Validates that a rule tree is structurally correct and semantically valid:
- Groups are never empty
- Nesting stays under the configured depth ceiling
- The number of conditions stays under the configured bound
- Referenced fields exist, are active, and accept the operator used
- Literal values have the shape and type the operator and field expect

Checks run depth-first, left to right, and stop at the first violation, so the
reported error for a given malformed tree is always the same one.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from badge_rules.core.config import settings
from badge_rules.core.errors import ValidationError
from badge_rules.domain.enums import (
    OPERATOR_VALUE_SHAPES,
    FieldType,
    Operator,
    ValidationCode,
    ValueShape,
)
from badge_rules.rules.field_registry import FieldRegistry
from badge_rules.rules.tree import Condition, Group, RuleNode, count_conditions

logger = logging.getLogger(__name__)

_SCALAR_TYPES = (str, int, float, bool)
_STRING_ONLY_OPERATORS = {Operator.STARTS_WITH, Operator.ENDS_WITH}


@dataclass(frozen=True)
class _Limits:
    max_depth: int
    max_conditions: int
    max_list_values: int
    allow_unknown_fields: bool


def check_rule(
    node: RuleNode,
    registry: FieldRegistry | None = None,
    *,
    max_depth: int | None = None,
    max_conditions: int | None = None,
    max_list_values: int | None = None,
    allow_unknown_fields: bool | None = None,
) -> ValidationError | None:
    """
    Return the first violation in a rule tree, or None when it is valid.

    This never raises for a well-typed tree: the error is returned so callers
    can surface it as a form error.

    Args:
        node: Root of the rule tree (a bare condition is a valid root)
        registry: Field-type registry; when None, field/operator compatibility
                  and value types are not checked, only structure and shapes
        max_depth: Depth ceiling (defaults to settings.rules_max_depth)
        max_conditions: Leaf count ceiling (defaults to settings.rules_max_conditions)
        max_list_values: Max `in`/`notIn` list length (defaults to settings)
        allow_unknown_fields: If True, fields missing from the registry skip
                              type checks with a warning instead of failing

    Returns:
        The first ValidationError found, depth-first and left to right

    Example:
        >>> check_rule(Group(LogicOperator.AND, ()))
        ValidationError('Group cannot be empty at $')
    """
    limits = _Limits(
        max_depth=max_depth if max_depth is not None else settings.rules_max_depth,
        max_conditions=(
            max_conditions if max_conditions is not None else settings.rules_max_conditions
        ),
        max_list_values=(
            max_list_values if max_list_values is not None else settings.rules_max_list_values
        ),
        allow_unknown_fields=(
            allow_unknown_fields
            if allow_unknown_fields is not None
            else settings.rules_allow_unknown_fields
        ),
    )

    if not isinstance(node, (Condition, Group)):
        raise TypeError(f"Expected Condition or Group, got {type(node).__name__}")

    total = count_conditions(node)
    if total > limits.max_conditions:
        return ValidationError(
            f"Rule has {total} conditions, maximum is {limits.max_conditions}",
            code=ValidationCode.TOO_MANY_CONDITIONS.value,
            details={"count": total, "max_conditions": limits.max_conditions},
        )

    return _check_node(node, registry, limits, path="$", level=1)


def validate_rule(node: RuleNode, registry: FieldRegistry | None = None, **limits: Any) -> None:
    """
    Validate a rule tree, raising its first violation.

    Accepts the same keyword limits as `check_rule`.

    Raises:
        ValidationError: If any validation check fails, with detailed context
    """
    error = check_rule(node, registry, **limits)
    if error is not None:
        raise error


def _check_node(
    node: RuleNode, registry: FieldRegistry | None, limits: _Limits, path: str, level: int
) -> ValidationError | None:
    if level > limits.max_depth:
        return ValidationError(
            f"Rule tree exceeds maximum depth of {limits.max_depth} at {path}",
            code=ValidationCode.DEPTH_EXCEEDED.value,
            path=path,
            details={"max_depth": limits.max_depth},
        )

    if isinstance(node, Group):
        if not node.children:
            return ValidationError(
                f"Group cannot be empty at {path}",
                code=ValidationCode.EMPTY_GROUP.value,
                path=path,
                details={"operator": node.operator.value},
            )
        for i, child in enumerate(node.children):
            error = _check_node(child, registry, limits, f"{path}.children[{i}]", level + 1)
            if error is not None:
                return error
        return None

    if isinstance(node, Condition):
        return _check_condition(node, registry, limits, path)

    raise TypeError(f"Expected Condition or Group at {path}, got {type(node).__name__}")


def _check_condition(
    node: Condition, registry: FieldRegistry | None, limits: _Limits, path: str
) -> ValidationError | None:
    """
    Validate a leaf condition.

    Checks:
    1. Field is a non-empty string
    2. Field exists in the registry
    3. Field is active
    4. Operator is allowed for the field's type
    5. Value shape matches the operator
    6. Value type matches the field type
    """
    if not isinstance(node.field, str) or not node.field.strip():
        return ValidationError(
            f"Condition field must be a non-empty string at {path}",
            code=ValidationCode.INVALID_FIELD.value,
            path=path,
            details={"field": node.field},
        )

    field_type: FieldType | None = None
    if registry is not None:
        definition = registry.get(node.field)
        if definition is None:
            if not limits.allow_unknown_fields:
                return ValidationError(
                    f"Unknown field '{node.field}' at {path}",
                    code=ValidationCode.UNKNOWN_FIELD.value,
                    path=path,
                    details={"field": node.field},
                )
            logger.warning(
                "Unknown field '%s' at %s - skipping type validation", node.field, path
            )
        else:
            if not definition.is_active:
                return ValidationError(
                    f"Field '{node.field}' is not active at {path}",
                    code=ValidationCode.INACTIVE_FIELD.value,
                    path=path,
                    details={"field": node.field},
                )
            allowed = definition.operators
            if node.operator not in allowed:
                return ValidationError(
                    f"Operator '{node.operator.value}' not allowed for "
                    f"{definition.field_type.value} field '{node.field}' at {path}",
                    code=ValidationCode.OPERATOR_MISMATCH.value,
                    path=path,
                    details={
                        "field": node.field,
                        "field_type": definition.field_type.value,
                        "operator": node.operator.value,
                        "allowed_operators": sorted(op.value for op in allowed),
                    },
                )
            field_type = definition.field_type

    error = _check_value_shape(node, limits, path, field_type)
    if error is not None:
        return error

    if field_type is not None:
        return _check_value_types(node, field_type, path)
    return None


def _invalid_value(node: Condition, path: str, reason: str) -> ValidationError:
    return ValidationError(
        f"Operator '{node.operator.value}' {reason} for field '{node.field}' at {path}",
        code=ValidationCode.INVALID_VALUE.value,
        path=path,
        details={
            "field": node.field,
            "operator": node.operator.value,
            "value": list(node.value) if isinstance(node.value, tuple) else node.value,
        },
    )


def _is_scalar(value: Any) -> bool:
    return isinstance(value, _SCALAR_TYPES)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _as_instant(value: str) -> datetime | None:
    """Parse an ISO 8601 timestamp; naive values are read as UTC."""
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _check_value_shape(
    node: Condition, limits: _Limits, path: str, field_type: FieldType | None
) -> ValidationError | None:
    shape = OPERATOR_VALUE_SHAPES[node.operator]
    value = node.value

    if shape is ValueShape.NONE:
        if value is not None:
            return _invalid_value(node, path, "does not take a value")
        return None

    if shape is ValueShape.SINGLE:
        if value is None:
            return _invalid_value(node, path, "requires a value")
        if isinstance(value, (list, tuple, dict)):
            return _invalid_value(node, path, "does not accept lists or objects")
        if not _is_scalar(value):
            return _invalid_value(node, path, "requires a string, number or boolean")
        if node.operator in _STRING_ONLY_OPERATORS and not isinstance(value, str):
            return _invalid_value(node, path, "requires a string value")
        if (
            node.operator is Operator.CONTAINS
            and field_type is not FieldType.ARRAY
            and not isinstance(value, str)
        ):
            return _invalid_value(node, path, "requires a string value")
        return None

    if shape is ValueShape.LIST:
        if not isinstance(value, (list, tuple)):
            return _invalid_value(node, path, "requires a list")
        if len(value) == 0:
            return _invalid_value(node, path, "requires at least one value")
        if len(value) > limits.max_list_values:
            return _invalid_value(
                node, path, f"accepts at most {limits.max_list_values} values"
            )
        if not all(_is_scalar(item) for item in value):
            return _invalid_value(node, path, "requires a list of strings, numbers or booleans")
        return None

    # ValueShape.RANGE
    if not isinstance(value, (list, tuple)) or len(value) != 2:
        return _invalid_value(node, path, "requires exactly 2 values")
    lower, upper = value
    if _is_number(lower) and _is_number(upper):
        pass
    elif isinstance(lower, str) and isinstance(upper, str):
        lower_at, upper_at = _as_instant(lower), _as_instant(upper)
        if lower_at is not None and upper_at is not None:
            lower, upper = lower_at, upper_at
    else:
        return _invalid_value(node, path, "requires two numbers or two date strings")
    if lower > upper:
        return _invalid_value(node, path, "requires lower bound <= upper bound")
    return None


def _check_value_types(node: Condition, field_type: FieldType, path: str) -> ValidationError | None:
    if node.value is None:
        return None

    if isinstance(node.value, (list, tuple)):
        values = list(node.value)
    else:
        values = [node.value]

    for value in values:
        if not _matches_type(value, field_type):
            return ValidationError(
                f"Field '{node.field}' expects {field_type.value.upper()} value at {path}",
                code=ValidationCode.VALUE_TYPE_MISMATCH.value,
                path=path,
                details={
                    "field": node.field,
                    "expected_type": field_type.value,
                    "actual_type": type(value).__name__,
                    "value": value,
                },
            )
    return None


def _matches_type(value: Any, field_type: FieldType) -> bool:
    if field_type is FieldType.STRING:
        return isinstance(value, str)
    if field_type is FieldType.NUMBER:
        return _is_number(value)
    if field_type is FieldType.BOOLEAN:
        return isinstance(value, bool)
    if field_type is FieldType.DATE:
        if not isinstance(value, str):
            return False
        try:
            datetime.fromisoformat(value)
        except ValueError:
            return False
        return True
    # FieldType.ARRAY: `contains` probes for one element of any scalar type
    return _is_scalar(value)
