"""
JSON encoding of rule trees.

Wire shape (persisted and round-tripped verbatim):

    Condition: {"type": "condition", "field": str, "operator": str, "value": any}
    Group:     {"type": "group", "operator": "AND" | "OR", "children": [node, ...]}

`deserialize` rejects unknown `type` discriminants and missing required keys
with a ParseError that names the JSON path; it never fills in defaults.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

from badge_rules.core.errors import ParseError
from badge_rules.domain.enums import (
    OPERATOR_ALIASES,
    OPERATOR_VALUE_SHAPES,
    LogicOperator,
    Operator,
    ValueShape,
)
from badge_rules.rules.canonicalizer import to_canonical_json_string
from badge_rules.rules.tree import Condition, Group, RuleNode

NODE_TYPE_CONDITION = "condition"
NODE_TYPE_GROUP = "group"

# Far above any sane depth ceiling; keeps parsing clear of the interpreter's
# recursion limit for hostile payloads.
_MAX_PARSE_DEPTH = 256


def serialize(node: RuleNode) -> dict[str, Any]:
    """Encode a rule tree as plain JSON-compatible data."""
    if isinstance(node, Condition):
        value = list(node.value) if isinstance(node.value, tuple) else node.value
        return {
            "type": NODE_TYPE_CONDITION,
            "field": node.field,
            "operator": node.operator.value,
            "value": value,
        }
    if isinstance(node, Group):
        return {
            "type": NODE_TYPE_GROUP,
            "operator": node.operator.value,
            "children": [serialize(child) for child in node.children],
        }
    raise TypeError(f"Expected Condition or Group, got {type(node).__name__}")


def dumps_rule(node: RuleNode) -> str:
    """Canonical JSON text of a rule tree (sorted keys, compact separators)."""
    return to_canonical_json_string(serialize(node))


def deserialize(data: Mapping[str, Any] | str | bytes) -> RuleNode:
    """
    Decode a rule tree from JSON text or already-parsed JSON data.

    Args:
        data: JSON text, or the dict produced by `json.loads`

    Returns:
        The decoded Condition or Group

    Raises:
        ParseError: On invalid JSON text, a non-object node, an unknown node
                    type or operator, or a missing required key
    """
    if isinstance(data, (str, bytes, bytearray)):
        try:
            data = json.loads(data)
        except json.JSONDecodeError as e:
            raise ParseError(
                f"Rule JSON is not valid JSON: {e.msg} (line {e.lineno}, column {e.colno})",
                details={"line": e.lineno, "column": e.colno},
            ) from e
        except UnicodeDecodeError as e:
            raise ParseError(
                f"Rule JSON is not valid UTF-8: {e.reason} at byte {e.start}",
                details={"position": e.start},
            ) from e
    return _parse_node(data, "$", 0)


def loads_rule(text: str | bytes) -> RuleNode:
    """Alias of `deserialize` for JSON text."""
    return deserialize(text)


def parse_operator(raw: Any, path: str = "$") -> Operator:
    """Read a condition operator, accepting legacy snake_case spellings."""
    if not isinstance(raw, str):
        raise ParseError(f"'operator' must be a string at {path}", path=path)
    try:
        return Operator(raw)
    except ValueError:
        pass
    alias = OPERATOR_ALIASES.get(raw)
    if alias is None:
        raise ParseError(
            f"Unknown operator '{raw}' at {path}",
            path=path,
            details={"allowed": [op.value for op in Operator]},
        )
    return alias


def parse_logic_operator(raw: Any, path: str = "$") -> LogicOperator:
    """Read a group operator ("AND"/"OR", any case)."""
    if not isinstance(raw, str):
        raise ParseError(f"'operator' must be a string at {path}", path=path)
    try:
        return LogicOperator(raw.upper())
    except ValueError as e:
        raise ParseError(
            f"Unknown group operator '{raw}' at {path}: must be AND or OR", path=path
        ) from e


def _parse_node(obj: Any, path: str, level: int) -> RuleNode:
    if level >= _MAX_PARSE_DEPTH:
        raise ParseError(f"Rule JSON nests deeper than {_MAX_PARSE_DEPTH} levels at {path}", path)

    if not isinstance(obj, Mapping):
        raise ParseError(
            f"Rule node must be an object at {path}",
            path=path,
            details={"type": type(obj).__name__},
        )

    if "type" not in obj:
        raise ParseError(f"Rule node missing 'type' at {path}", path=path)

    node_type = obj["type"]
    if node_type == NODE_TYPE_CONDITION:
        return _parse_condition(obj, path)
    if node_type == NODE_TYPE_GROUP:
        return _parse_group(obj, path, level)

    raise ParseError(
        f"Unknown node type '{node_type}' at {path}: must be 'condition' or 'group'",
        path=path,
        details={"node_type": node_type},
    )


def _parse_condition(obj: Mapping[str, Any], path: str) -> Condition:
    for key in ("field", "operator"):
        if key not in obj:
            raise ParseError(f"Condition missing '{key}' at {path}", path=path)

    field_name = obj["field"]
    if not isinstance(field_name, str):
        raise ParseError(
            f"Condition 'field' must be a string at {path}",
            path=path,
            details={"type": type(field_name).__name__},
        )

    operator = parse_operator(obj["operator"], path)

    # Only the value-less operators may omit `value`.
    if "value" not in obj and OPERATOR_VALUE_SHAPES[operator] is not ValueShape.NONE:
        raise ParseError(
            f"Condition missing 'value' for operator '{operator.value}' at {path}", path=path
        )

    return Condition(field=field_name, operator=operator, value=obj.get("value"))


def _parse_group(obj: Mapping[str, Any], path: str, level: int) -> Group:
    for key in ("operator", "children"):
        if key not in obj:
            raise ParseError(f"Group missing '{key}' at {path}", path=path)

    operator = parse_logic_operator(obj["operator"], path)

    children = obj["children"]
    if not isinstance(children, list):
        raise ParseError(
            f"Group 'children' must be a list at {path}",
            path=path,
            details={"type": type(children).__name__},
        )

    return Group(
        operator=operator,
        children=tuple(
            _parse_node(child, f"{path}.children[{i}]", level + 1)
            for i, child in enumerate(children)
        ),
    )
