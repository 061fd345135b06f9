"""
Rule tree model for badge grant rules.

This package provides the canonical representation of a rule condition:
a tree of condition leaves combined by AND/OR groups.

Key Components:
- tree: Condition/Group node types and structural queries (depth, leaf count)
- validator: Structural and field/operator/value validation
- serializer: JSON encoding and strict decoding
- field_registry: Field-type registry used to check operator compatibility
- canonicalizer: Deterministic JSON text

Design Principles:
- Determinism: the same tree always serializes to the same bytes
- Strictness: unknown shapes are rejected, never defaulted
- First error wins: validation reports the first violation, depth-first
"""

from badge_rules.rules.field_registry import FieldDefinition, FieldRegistry
from badge_rules.rules.serializer import deserialize, dumps_rule, loads_rule, serialize
from badge_rules.rules.tree import (
    Condition,
    Group,
    RuleNode,
    build_nested_rule,
    count_conditions,
    depth,
    iter_conditions,
)
from badge_rules.rules.validator import check_rule, validate_rule

__all__ = [
    "Condition",
    "Group",
    "RuleNode",
    "FieldDefinition",
    "FieldRegistry",
    "build_nested_rule",
    "check_rule",
    "count_conditions",
    "depth",
    "deserialize",
    "dumps_rule",
    "iter_conditions",
    "loads_rule",
    "serialize",
    "validate_rule",
]
