"""
Canvas graph support for the visual rule editor.

Key Components:
- graph: Canvas node/edge types, graph issues, node payload parsers
- connection: Which edges the editor may draw
- translator: Canvas graph -> rule tree, collecting every structural issue
- layout: Rule tree -> canvas graph with deterministic ids and positions
"""

from badge_rules.canvas.connection import (
    ConnectionCheck,
    acceptable_source_kinds,
    acceptable_target_kinds,
    is_valid_connection,
    validate_connection,
)
from badge_rules.canvas.graph import (
    CanvasEdge,
    CanvasGraph,
    CanvasNode,
    GraphIssue,
    Position,
    RuleAction,
)
from badge_rules.canvas.layout import rule_to_canvas
from badge_rules.canvas.translator import CanvasConversion, canvas_to_rule

__all__ = [
    "CanvasConversion",
    "CanvasEdge",
    "CanvasGraph",
    "CanvasNode",
    "ConnectionCheck",
    "GraphIssue",
    "Position",
    "RuleAction",
    "acceptable_source_kinds",
    "acceptable_target_kinds",
    "canvas_to_rule",
    "is_valid_connection",
    "rule_to_canvas",
    "validate_connection",
]
