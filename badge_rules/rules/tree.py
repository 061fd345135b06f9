"""
Rule tree model.

A rule is a boolean expression tree: `Condition` leaves combined by
`Group` nodes whose operator is AND or OR. `RuleNode` is the closed union of
the two; every traversal in this package dispatches on exactly these types.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any, Union

from badge_rules.domain.enums import LogicOperator, Operator


@dataclass(frozen=True)
class Condition:
    """Leaf predicate comparing one event field against a literal."""

    field: str
    operator: Operator
    value: Any = None

    def __post_init__(self) -> None:
        # List and range values are stored as tuples however they were built.
        if isinstance(self.value, list):
            object.__setattr__(self, "value", tuple(self.value))


@dataclass(frozen=True)
class Group:
    """Internal node combining its children with AND/OR."""

    operator: LogicOperator
    children: tuple[RuleNode, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        # Accept any sequence, store an immutable one.
        if not isinstance(self.children, tuple):
            object.__setattr__(self, "children", tuple(self.children))


RuleNode = Union[Condition, Group]


def depth(node: RuleNode) -> int:
    """
    Nesting depth of a tree.

    A bare condition has depth 1. A group has depth one more than its
    deepest child; a group without children counts as depth 1.
    """
    if isinstance(node, Condition):
        return 1
    if not node.children:
        return 1
    return 1 + max(depth(child) for child in node.children)


def count_conditions(node: RuleNode) -> int:
    """Number of condition leaves reachable from `node`."""
    if isinstance(node, Condition):
        return 1
    return sum(count_conditions(child) for child in node.children)


def iter_conditions(node: RuleNode, path: str = "$") -> Iterator[tuple[str, Condition]]:
    """Yield `(path, condition)` pairs depth-first, left to right."""
    if isinstance(node, Condition):
        yield path, node
        return
    for i, child in enumerate(node.children):
        yield from iter_conditions(child, f"{path}.children[{i}]")


def build_nested_rule(
    levels: int,
    breadth: int = 2,
    *,
    field_prefix: str = "field",
    operator: Operator = Operator.GTE,
) -> RuleNode:
    """
    Build a uniform tree of `levels` group layers over condition leaves.

    Group operators alternate by remaining level (even -> AND, odd -> OR).
    The result has depth `levels + 1` and `breadth ** levels` conditions,
    which makes it a convenient fixture for size and depth checks.

    Example:
        >>> tree = build_nested_rule(3, breadth=2)
        >>> depth(tree), count_conditions(tree)
        (4, 8)
    """
    if levels < 0:
        raise ValueError("levels must be >= 0")
    if breadth < 1:
        raise ValueError("breadth must be >= 1")
    return _build_nested_node(levels, breadth, 0, field_prefix, operator)


def _build_nested_node(
    levels: int, breadth: int, position: int, field_prefix: str, operator: Operator
) -> RuleNode:
    if levels == 0:
        return Condition(
            field=f"{field_prefix}_L{position}",
            operator=operator,
            value=(position + 1) * 100,
        )

    logic = LogicOperator.AND if levels % 2 == 0 else LogicOperator.OR
    children = tuple(
        _build_nested_node(levels - 1, breadth, position * breadth + i, field_prefix, operator)
        for i in range(breadth)
    )
    return Group(operator=logic, children=children)
