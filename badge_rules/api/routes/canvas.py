"""
Canvas editor endpoints.

- to-rule: reduce an edited canvas graph to the rule tree that gets saved
- from-rule: expand a saved rule tree back into an editable graph
- connections/validate: check one edge while the user is dragging it
"""

from __future__ import annotations

import logging

from fastapi import APIRouter

from badge_rules.api.schemas.canvas import (
    CanvasGraphPayload,
    CanvasToRuleResponse,
    ConnectionValidateRequest,
    ConnectionValidateResponse,
    RuleToCanvasRequest,
)
from badge_rules.canvas.connection import acceptable_target_kinds, validate_connection
from badge_rules.canvas.graph import CanvasGraph, action_from_dict
from badge_rules.canvas.layout import rule_to_canvas
from badge_rules.canvas.translator import canvas_to_rule, layout_from_dict, layout_to_dict
from badge_rules.core.dependencies import Registry
from badge_rules.rules.serializer import deserialize, dumps_rule, serialize
from badge_rules.rules.tree import count_conditions, depth

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/canvas", tags=["canvas"])


@router.post("/to-rule", response_model=CanvasToRuleResponse, response_model_by_alias=True)
def canvas_graph_to_rule(payload: CanvasGraphPayload, registry: Registry) -> CanvasToRuleResponse:
    """
    Reduce a canvas graph to a rule tree.

    Answers 422 with every structural issue when the graph cannot be reduced.
    """
    graph = CanvasGraph.from_dict(payload.model_dump())
    conversion = canvas_to_rule(graph, registry)
    return CanvasToRuleResponse(
        rule_json=serialize(conversion.rule),
        canonical_json=dumps_rule(conversion.rule),
        depth=depth(conversion.rule),
        condition_count=count_conditions(conversion.rule),
        actions=[action.to_dict() for action in conversion.actions],
        layout=layout_to_dict(conversion.layout),
    )


@router.post("/from-rule")
def rule_to_canvas_graph(payload: RuleToCanvasRequest) -> dict:
    """Expand a rule tree (and its actions) into a canvas graph."""
    tree = deserialize(payload.rule_json)
    actions = [action_from_dict(action) for action in payload.actions]
    graph = rule_to_canvas(tree, actions, layout=layout_from_dict(payload.layout))
    return graph.to_dict()


@router.post(
    "/connections/validate",
    response_model=ConnectionValidateResponse,
    response_model_by_alias=True,
)
def validate_canvas_connection(payload: ConnectionValidateRequest) -> ConnectionValidateResponse:
    graph = CanvasGraph.from_dict({"nodes": payload.nodes, "edges": payload.edges})
    check = validate_connection(payload.source, payload.target, graph)

    source_node = graph.node_map().get(payload.source or "")
    targets = acceptable_target_kinds(source_node.kind) if source_node is not None else []
    return ConnectionValidateResponse(
        valid=check.valid,
        reason=check.reason,
        acceptable_target_kinds=[kind.value for kind in targets],
    )
