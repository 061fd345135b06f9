"""
Canvas graph to rule tree translation.

The canvas is a free-form directed graph; the rule tree is what gets
persisted. Reduction runs in phases and every phase reports into one issue
list, so a single failed save lists everything wrong with the canvas:

1. Index nodes and edges, reporting edges that point at missing nodes
2. Check connection kinds and fan-out (a node may feed only one combiner)
3. Detect directed cycles over the whole graph
4. Locate the action nodes and the single root that feeds them
5. Reduce backwards from the root, bounded by the depth ceiling
6. Report nodes the reduction never reached
7. Run the rule tree validator over the result

Multi-input combiners keep their inputs in edge creation order, so the
produced children order is stable for a given graph.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, NoReturn

from badge_rules.canvas.graph import (
    CanvasEdge,
    CanvasGraph,
    CanvasNode,
    GraphIssue,
    Position,
    RuleAction,
    action_from_node_data,
    condition_from_node_data,
    logic_from_node_data,
)
from badge_rules.canvas.connection import kinds_can_connect
from badge_rules.core.config import settings
from badge_rules.core.errors import GraphConversionError, ParseError
from badge_rules.core.observability import metrics
from badge_rules.domain.enums import CanvasNodeKind, GraphIssueCode
from badge_rules.rules.field_registry import FieldRegistry
from badge_rules.rules.serializer import serialize
from badge_rules.rules.tree import Group, RuleNode
from badge_rules.rules.validator import check_rule

logger = logging.getLogger(__name__)

_WHITE, _GRAY, _BLACK = 0, 1, 2


@dataclass(frozen=True)
class CanvasConversion:
    """Result of a successful canvas reduction."""

    rule: RuleNode
    actions: tuple[RuleAction, ...] = ()
    layout: Mapping[str, Position] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "ruleJson": serialize(self.rule),
            "actions": [action.to_dict() for action in self.actions],
            "layout": layout_to_dict(self.layout),
        }


def layout_to_dict(layout: Mapping[str, Position]) -> dict[str, Any]:
    return {
        "nodes": [{"id": node_id, "position": pos.to_dict()} for node_id, pos in layout.items()]
    }


def layout_from_dict(data: Mapping[str, Any] | None) -> dict[str, Position]:
    """Read a saved layout (`{"nodes": [{"id", "position": {x, y}}]}`)."""
    if not data:
        return {}
    result: dict[str, Position] = {}
    for entry in data.get("nodes", []):
        if not isinstance(entry, Mapping) or not isinstance(entry.get("id"), str):
            continue
        pos = entry.get("position") or {}
        try:
            result[entry["id"]] = Position(float(pos.get("x", 0)), float(pos.get("y", 0)))
        except (TypeError, ValueError, AttributeError) as e:
            raise ParseError(
                f"Saved layout position for node '{entry['id']}' is not numeric"
            ) from e
    return result


@dataclass
class _GraphIndex:
    nodes: dict[str, CanvasNode]
    incoming: dict[str, list[CanvasEdge]]
    outgoing: dict[str, list[CanvasEdge]]


class _Reduction:
    """Mutable state for one canvas reduction."""

    def __init__(self, graph: CanvasGraph, max_depth: int) -> None:
        self.graph = graph
        self.max_depth = max_depth
        self.issues: list[GraphIssue] = []
        self.visited: set[str] = set()
        self.path_to_node: dict[str, str] = {}
        self.index = self._build_index()

    def report(
        self,
        code: GraphIssueCode,
        message: str,
        node_ids: tuple[str, ...] = (),
        edge_id: str | None = None,
        details: Mapping[str, Any] | None = None,
    ) -> None:
        self.issues.append(GraphIssue(code, message, node_ids, edge_id, details))

    # ------------------------------------------------------------------
    # Phase 1: index
    # ------------------------------------------------------------------

    def _build_index(self) -> _GraphIndex:
        nodes = self.graph.node_map()
        incoming: dict[str, list[CanvasEdge]] = {node_id: [] for node_id in nodes}
        outgoing: dict[str, list[CanvasEdge]] = {node_id: [] for node_id in nodes}
        linked: set[tuple[str, str]] = set()

        for edge in self.graph.edges:
            missing = tuple(ref for ref in (edge.source, edge.target) if ref not in nodes)
            if missing:
                self.report(
                    GraphIssueCode.DANGLING_EDGE,
                    f"Edge '{edge.id}' references missing node(s): {', '.join(missing)}",
                    node_ids=missing,
                    edge_id=edge.id,
                )
                continue
            # Repeated links between the same two nodes count once.
            if (edge.source, edge.target) in linked:
                continue
            linked.add((edge.source, edge.target))
            incoming[edge.target].append(edge)
            outgoing[edge.source].append(edge)

        return _GraphIndex(nodes=nodes, incoming=incoming, outgoing=outgoing)

    # ------------------------------------------------------------------
    # Phase 2: connection kinds and fan-out
    # ------------------------------------------------------------------

    def check_connections(self) -> None:
        nodes = self.index.nodes
        for source_id, edges in self.index.outgoing.items():
            source = nodes[source_id]
            for edge in edges:
                target = nodes[edge.target]
                if edge.source == edge.target:
                    # Self-loops are reported by cycle detection.
                    continue
                if not kinds_can_connect(source.kind, target.kind):
                    self.report(
                        GraphIssueCode.INVALID_CONNECTION,
                        f"A {source.kind.value} node cannot connect to a {target.kind.value} node",
                        node_ids=(source.id, target.id),
                        edge_id=edge.id,
                    )

            parents = [
                edge.target
                for edge in edges
                if nodes[edge.target].kind is not CanvasNodeKind.ACTION
                and edge.target != source_id
            ]
            if len(parents) > 1:
                self.report(
                    GraphIssueCode.INVALID_CONNECTION,
                    f"Node '{source_id}' feeds more than one combiner",
                    node_ids=(source_id, *parents),
                )

    # ------------------------------------------------------------------
    # Phase 3: cycles
    # ------------------------------------------------------------------

    def detect_cycles(self) -> None:
        color = {node_id: _WHITE for node_id in self.index.nodes}
        reported: set[frozenset[str]] = set()

        for start in self.index.nodes:
            if color[start] != _WHITE:
                continue
            color[start] = _GRAY
            stack: list[tuple[str, int]] = [(start, 0)]
            while stack:
                node_id, edge_pos = stack[-1]
                out = self.index.outgoing[node_id]
                if edge_pos >= len(out):
                    color[node_id] = _BLACK
                    stack.pop()
                    continue
                stack[-1] = (node_id, edge_pos + 1)
                nxt = out[edge_pos].target
                if color[nxt] == _WHITE:
                    color[nxt] = _GRAY
                    stack.append((nxt, 0))
                elif color[nxt] == _GRAY:
                    on_stack = [entry[0] for entry in stack]
                    cycle = tuple(on_stack[on_stack.index(nxt) :])
                    key = frozenset(cycle)
                    if key not in reported:
                        reported.add(key)
                        self.report(
                            GraphIssueCode.CYCLE_DETECTED,
                            f"Cycle detected through: {' -> '.join(cycle + (nxt,))}",
                            node_ids=cycle,
                        )

    # ------------------------------------------------------------------
    # Phase 4: actions and root
    # ------------------------------------------------------------------

    def collect_actions(self) -> tuple[list[RuleAction], list[str]]:
        actions: list[RuleAction] = []
        roots: list[str] = []
        action_nodes = [n for n in self.graph.nodes if n.kind is CanvasNodeKind.ACTION]

        if not action_nodes:
            self.report(GraphIssueCode.NO_ACTION, "No action configured: add an action node")
            return actions, roots

        for node in action_nodes:
            self.visited.add(node.id)
            try:
                action = action_from_node_data(node.data)
            except ParseError as e:
                self.report(GraphIssueCode.INVALID_NODE_DATA, e.message, node_ids=(node.id,))
            else:
                if action is not None:
                    actions.append(action)

            inputs = [
                edge.source
                for edge in self.index.incoming[node.id]
                if self.index.nodes[edge.source].kind is not CanvasNodeKind.ACTION
            ]
            if not inputs:
                self.report(
                    GraphIssueCode.DISCONNECTED_NODE,
                    f"Action node '{node.id}' has no input",
                    node_ids=(node.id,),
                )
                continue
            if len(inputs) > 1:
                self.report(
                    GraphIssueCode.MULTIPLE_ROOTS,
                    f"Action node '{node.id}' has {len(inputs)} inputs; combine them first",
                    node_ids=(node.id, *inputs),
                )
            for source_id in inputs:
                if source_id not in roots:
                    roots.append(source_id)

        if len(roots) > 1 and not any(
            issue.code is GraphIssueCode.MULTIPLE_ROOTS for issue in self.issues
        ):
            self.report(
                GraphIssueCode.MULTIPLE_ROOTS,
                "Action nodes are fed by different roots",
                node_ids=tuple(roots),
            )
        return actions, roots

    # ------------------------------------------------------------------
    # Phase 5: backward reduction
    # ------------------------------------------------------------------

    def reduce(self, node_id: str, path: str, level: int, on_path: set[str]) -> RuleNode | None:
        if level > self.max_depth:
            self.report(
                GraphIssueCode.DEPTH_EXCEEDED,
                f"Rule nests deeper than {self.max_depth} levels at node '{node_id}'",
                node_ids=(node_id,),
                details={"max_depth": self.max_depth},
            )
            self._mark_reachable(node_id)
            return None

        # Already reported by cycle detection.
        if node_id in on_path:
            return None

        node = self.index.nodes[node_id]
        self.visited.add(node_id)
        self.path_to_node[path] = node_id

        if node.kind is CanvasNodeKind.CONDITION:
            try:
                return condition_from_node_data(node.data)
            except ParseError as e:
                self.report(GraphIssueCode.INVALID_NODE_DATA, e.message, node_ids=(node_id,))
                return None

        if node.kind is not CanvasNodeKind.COMBINER:
            # Action used as an input: reported as an invalid connection.
            return None

        operator = None
        try:
            operator = logic_from_node_data(node.data)
        except ParseError as e:
            self.report(GraphIssueCode.INVALID_NODE_DATA, e.message, node_ids=(node_id,))

        inputs = [
            edge.source
            for edge in self.index.incoming[node_id]
            if self.index.nodes[edge.source].kind is not CanvasNodeKind.ACTION
        ]
        if not inputs:
            self.report(
                GraphIssueCode.EMPTY_COMBINER,
                f"Combiner node '{node_id}' has no inputs",
                node_ids=(node_id,),
            )
            return None

        on_path.add(node_id)
        children: list[RuleNode | None] = [
            self.reduce(source_id, f"{path}.children[{i}]", level + 1, on_path)
            for i, source_id in enumerate(inputs)
        ]
        on_path.discard(node_id)

        if operator is None or any(child is None for child in children):
            return None
        return Group(operator=operator, children=tuple(children))

    def _mark_reachable(self, node_id: str) -> None:
        """Mark everything feeding `node_id` as visited without reducing it."""
        stack = [node_id]
        while stack:
            current = stack.pop()
            if current in self.visited:
                continue
            self.visited.add(current)
            stack.extend(edge.source for edge in self.index.incoming[current])

    # ------------------------------------------------------------------
    # Phase 6: reachability
    # ------------------------------------------------------------------

    def report_unreached(self) -> None:
        for node in self.graph.nodes:
            if node.id not in self.visited:
                self.report(
                    GraphIssueCode.DISCONNECTED_NODE,
                    f"{node.kind.value.capitalize()} node '{node.id}' is not connected to the rule",
                    node_ids=(node.id,),
                )


def canvas_to_rule(
    graph: CanvasGraph,
    registry: FieldRegistry | None = None,
    *,
    max_depth: int | None = None,
    **limits: Any,
) -> CanvasConversion:
    """
    Reduce a canvas graph to a rule tree.

    Args:
        graph: Canvas graph as authored in the editor
        registry: Field registry for the final validation pass
        max_depth: Depth ceiling (defaults to settings.rules_max_depth)
        **limits: Other validator limits, passed to `check_rule`

    Returns:
        CanvasConversion with the rule tree, its actions, and node positions

    Raises:
        GraphConversionError: Carrying every structural issue found, or the
                              first validation failure of the reduced tree
    """
    depth_ceiling = max_depth if max_depth is not None else settings.rules_max_depth
    state = _Reduction(graph, depth_ceiling)

    state.check_connections()
    state.detect_cycles()
    actions, roots = state.collect_actions()

    rule: RuleNode | None = None
    for i, root_id in enumerate(roots):
        reduced = state.reduce(root_id, "$", 1, set())
        if i == 0:
            rule = reduced

    state.report_unreached()

    if state.issues:
        _fail(state.issues)

    if rule is None:
        # Unreachable with an empty issue list; kept as a hard guard.
        _fail([GraphIssue(GraphIssueCode.NO_ACTION, "Canvas produced no rule")])

    error = check_rule(rule, registry, max_depth=depth_ceiling, **limits)
    if error is not None:
        node_id = state.path_to_node.get(error.path)
        _fail(
            [
                GraphIssue(
                    GraphIssueCode.VALIDATION,
                    error.message,
                    node_ids=(node_id,) if node_id else (),
                    details={"code": error.code, "path": error.path},
                )
            ]
        )

    metrics.canvas_conversions_total.labels(result="success").inc()
    logger.info(
        "Reduced canvas graph to rule tree: %d nodes, %d edges, %d actions",
        len(graph.nodes),
        len(graph.edges),
        len(actions),
    )
    return CanvasConversion(
        rule=rule,
        actions=tuple(actions),
        layout={node.id: node.position for node in graph.nodes},
    )


def _fail(issues: list[GraphIssue]) -> NoReturn:
    metrics.canvas_conversions_total.labels(result="error").inc()
    for issue in issues:
        metrics.graph_issues_total.labels(code=issue.code.value).inc()
    logger.info(
        "Canvas graph rejected with %d issue(s): %s",
        len(issues),
        ", ".join(sorted({issue.code.value for issue in issues})),
    )
    raise GraphConversionError(issues)
