"""
Canvas graph types.

The visual editor works on a free-form directed graph: condition, combiner and
action nodes joined by edges that run from a child's output handle to a
parent's input handle. This module holds that intermediate representation,
its JSON reading/writing, and the per-node payload parsers shared by the
translator and the layout.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from badge_rules.core.errors import ParseError
from badge_rules.domain.enums import (
    CANVAS_KIND_ALIASES,
    ActionType,
    CanvasNodeKind,
    GraphIssueCode,
    LogicOperator,
)
from badge_rules.rules.serializer import parse_logic_operator, parse_operator
from badge_rules.rules.tree import Condition


@dataclass(frozen=True)
class Position:
    x: float = 0.0
    y: float = 0.0

    def to_dict(self) -> dict[str, float]:
        return {"x": self.x, "y": self.y}


@dataclass
class CanvasNode:
    id: str
    kind: CanvasNodeKind
    position: Position = field(default_factory=Position)
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "position": self.position.to_dict(),
            "data": dict(self.data),
        }


@dataclass
class CanvasEdge:
    id: str
    source: str
    target: str
    target_handle: str | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"id": self.id, "source": self.source, "target": self.target}
        if self.target_handle is not None:
            result["targetHandle"] = self.target_handle
        return result


@dataclass
class CanvasGraph:
    """Nodes and edges as authored; edge order is creation order."""

    nodes: list[CanvasNode] = field(default_factory=list)
    edges: list[CanvasEdge] = field(default_factory=list)

    def node_map(self) -> dict[str, CanvasNode]:
        return {node.id: node for node in self.nodes}

    def to_dict(self) -> dict[str, Any]:
        return {
            "nodes": [node.to_dict() for node in self.nodes],
            "edges": [edge.to_dict() for edge in self.edges],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> CanvasGraph:
        """
        Read a canvas graph from editor JSON.

        Node kind is taken from `kind`, falling back to the editor's `type`
        key; the older `logic`/`badge` names are accepted. Node payloads are
        not interpreted here.

        Raises:
            ParseError: If the graph shape itself is malformed
        """
        if not isinstance(data, Mapping):
            raise ParseError("Canvas graph must be an object")

        raw_nodes = data.get("nodes", [])
        raw_edges = data.get("edges", [])
        if not isinstance(raw_nodes, list):
            raise ParseError("Canvas 'nodes' must be a list", path="$.nodes")
        if not isinstance(raw_edges, list):
            raise ParseError("Canvas 'edges' must be a list", path="$.edges")

        nodes: list[CanvasNode] = []
        seen: set[str] = set()
        for i, raw in enumerate(raw_nodes):
            node = _parse_canvas_node(raw, f"$.nodes[{i}]")
            if node.id in seen:
                raise ParseError(
                    f"Duplicate node id '{node.id}' at $.nodes[{i}]", path=f"$.nodes[{i}]"
                )
            seen.add(node.id)
            nodes.append(node)

        edges = [_parse_canvas_edge(raw, f"$.edges[{i}]") for i, raw in enumerate(raw_edges)]
        return cls(nodes=nodes, edges=edges)


def parse_node_kind(raw: Any, path: str = "$") -> CanvasNodeKind:
    if isinstance(raw, str):
        try:
            return CanvasNodeKind(raw)
        except ValueError:
            alias = CANVAS_KIND_ALIASES.get(raw)
            if alias is not None:
                return alias
    raise ParseError(
        f"Unknown canvas node kind '{raw}' at {path}",
        path=path,
        details={"allowed": [kind.value for kind in CanvasNodeKind]},
    )


def _parse_canvas_node(raw: Any, path: str) -> CanvasNode:
    if not isinstance(raw, Mapping):
        raise ParseError(f"Canvas node must be an object at {path}", path=path)

    node_id = raw.get("id")
    if not isinstance(node_id, str) or not node_id:
        raise ParseError(f"Canvas node missing 'id' at {path}", path=path)

    kind = parse_node_kind(raw.get("kind", raw.get("type")), path)

    position = Position()
    raw_position = raw.get("position")
    if raw_position is not None:
        if not isinstance(raw_position, Mapping):
            raise ParseError(f"Canvas node 'position' must be an object at {path}", path=path)
        try:
            position = Position(float(raw_position.get("x", 0)), float(raw_position.get("y", 0)))
        except (TypeError, ValueError) as e:
            raise ParseError(f"Canvas node position is not numeric at {path}", path=path) from e

    data = raw.get("data") or {}
    if not isinstance(data, Mapping):
        raise ParseError(f"Canvas node 'data' must be an object at {path}", path=path)

    return CanvasNode(id=node_id, kind=kind, position=position, data=dict(data))


def _parse_canvas_edge(raw: Any, path: str) -> CanvasEdge:
    if not isinstance(raw, Mapping):
        raise ParseError(f"Canvas edge must be an object at {path}", path=path)

    source = raw.get("source")
    target = raw.get("target")
    if not isinstance(source, str) or not source:
        raise ParseError(f"Canvas edge missing 'source' at {path}", path=path)
    if not isinstance(target, str) or not target:
        raise ParseError(f"Canvas edge missing 'target' at {path}", path=path)

    edge_id = raw.get("id") or f"e-{source}-{target}"
    target_handle = raw.get("targetHandle")
    return CanvasEdge(
        id=str(edge_id),
        source=source,
        target=target,
        target_handle=str(target_handle) if target_handle is not None else None,
    )


# ============================================================================
# Graph issues
# ============================================================================


@dataclass(frozen=True)
class GraphIssue:
    """One structural problem found while reducing a canvas graph."""

    code: GraphIssueCode
    message: str
    node_ids: tuple[str, ...] = ()
    edge_id: str | None = None
    details: Mapping[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "code": self.code.value,
            "message": self.message,
            "nodeIds": list(self.node_ids),
        }
        if self.edge_id is not None:
            result["edgeId"] = self.edge_id
        if self.details:
            result["details"] = dict(self.details)
        return result


# ============================================================================
# Node payloads
# ============================================================================


@dataclass(frozen=True)
class RuleAction:
    """Effect applied when the rule's condition tree evaluates true."""

    action_type: ActionType
    target_id: str
    name: str = ""
    quantity: int = 1

    def to_node_data(self) -> dict[str, Any]:
        if self.action_type is ActionType.GRANT_BADGE:
            id_key, name_key = "badgeId", "badgeName"
        else:
            id_key, name_key = "benefitId", "benefitName"
        return {
            "actionType": self.action_type.value,
            id_key: self.target_id,
            name_key: self.name,
            "quantity": self.quantity,
        }

    def to_dict(self) -> dict[str, Any]:
        data = self.to_node_data()
        data["type"] = data.pop("actionType")
        return data


def condition_from_node_data(data: Mapping[str, Any]) -> Condition:
    """
    Build a Condition from a condition node's payload.

    Raises:
        ParseError: If field or operator is missing or the operator is unknown
    """
    field_name = data.get("field")
    if not isinstance(field_name, str) or not field_name.strip():
        raise ParseError("Condition node has no field selected")
    if "operator" not in data:
        raise ParseError("Condition node has no operator selected")
    operator = parse_operator(data["operator"])
    return Condition(field=field_name, operator=operator, value=data.get("value"))


def condition_to_node_data(node: Condition) -> dict[str, Any]:
    value = list(node.value) if isinstance(node.value, tuple) else node.value
    return {"field": node.field, "operator": node.operator.value, "value": value}


def logic_from_node_data(data: Mapping[str, Any]) -> LogicOperator:
    """Combiner payload: `operator`, or `logicType` from the older editor."""
    raw = data.get("operator", data.get("logicType"))
    if raw is None:
        raise ParseError("Combiner node has no logic operator selected")
    return parse_logic_operator(raw)


def action_from_node_data(data: Mapping[str, Any]) -> RuleAction | None:
    """
    Build a RuleAction from an action node's payload.

    An empty payload is an action placeholder that grants nothing yet and
    yields None.

    Raises:
        ParseError: If the payload is partially filled or inconsistent
    """
    if not data:
        return None

    raw_type = data.get("actionType")
    if raw_type is None:
        if "badgeId" in data:
            raw_type = ActionType.GRANT_BADGE.value
        elif "benefitId" in data:
            raw_type = ActionType.GRANT_BENEFIT.value
        else:
            raise ParseError("Action node has no action type")

    try:
        action_type = ActionType(raw_type)
    except ValueError as e:
        raise ParseError(f"Unknown action type '{raw_type}'") from e

    if action_type is ActionType.GRANT_BADGE:
        target_id, name = data.get("badgeId"), data.get("badgeName")
    else:
        target_id, name = data.get("benefitId"), data.get("benefitName")

    if target_id is None or str(target_id).strip() == "":
        raise ParseError(f"Action '{action_type.value}' must specify a target id")

    quantity = data.get("quantity", 1)
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise ParseError("Action quantity must be an integer greater than 0")

    return RuleAction(
        action_type=action_type,
        target_id=str(target_id),
        name=str(name or ""),
        quantity=quantity,
    )


def action_from_dict(data: Mapping[str, Any]) -> RuleAction:
    """Read an action in API form (`{"type": "grant_badge", "badgeId": ...}`)."""
    if not isinstance(data, Mapping) or not data:
        raise ParseError("Action must be a non-empty object")
    payload = dict(data)
    if "type" in payload:
        payload["actionType"] = payload.pop("type")
    action = action_from_node_data(payload)
    if action is None:
        raise ParseError("Action must be a non-empty object")
    return action
