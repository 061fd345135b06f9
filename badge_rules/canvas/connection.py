"""
Connection rules for the canvas editor.

Edges run from a child's output to a parent's input:
- condition -> combiner | action
- combiner  -> combiner | action
- action    -> (nothing, actions are terminal)

A connection is also refused when it would close a cycle.
"""

from collections.abc import Iterable
from dataclasses import dataclass

from badge_rules.canvas.graph import CanvasEdge, CanvasGraph
from badge_rules.domain.enums import CanvasNodeKind

_ALLOWED_TARGETS: dict[CanvasNodeKind, tuple[CanvasNodeKind, ...]] = {
    CanvasNodeKind.CONDITION: (CanvasNodeKind.COMBINER, CanvasNodeKind.ACTION),
    CanvasNodeKind.COMBINER: (CanvasNodeKind.COMBINER, CanvasNodeKind.ACTION),
    CanvasNodeKind.ACTION: (),
}


@dataclass(frozen=True)
class ConnectionCheck:
    valid: bool
    reason: str | None = None


def acceptable_target_kinds(kind: CanvasNodeKind) -> list[CanvasNodeKind]:
    """Node kinds a node of `kind` may feed into."""
    return list(_ALLOWED_TARGETS[kind])


def acceptable_source_kinds(kind: CanvasNodeKind) -> list[CanvasNodeKind]:
    """Node kinds that may feed into a node of `kind`."""
    return [source for source, targets in _ALLOWED_TARGETS.items() if kind in targets]


def kinds_can_connect(source: CanvasNodeKind, target: CanvasNodeKind) -> bool:
    return target in _ALLOWED_TARGETS[source]


def would_create_cycle(source: str, target: str, edges: Iterable[CanvasEdge]) -> bool:
    """True if adding source -> target closes a directed cycle."""
    if source == target:
        return True

    outgoing: dict[str, list[str]] = {}
    for edge in edges:
        outgoing.setdefault(edge.source, []).append(edge.target)

    # The new edge closes a cycle iff `source` is already reachable from `target`.
    stack = [target]
    seen = {target}
    while stack:
        current = stack.pop()
        for nxt in outgoing.get(current, ()):
            if nxt == source:
                return True
            if nxt not in seen:
                seen.add(nxt)
                stack.append(nxt)
    return False


def validate_connection(
    source: str | None, target: str | None, graph: CanvasGraph
) -> ConnectionCheck:
    """
    Decide whether the editor may draw an edge from `source` to `target`.

    Args:
        source: Id of the node the edge starts from
        target: Id of the node the edge ends at
        graph: Current canvas graph

    Returns:
        ConnectionCheck with a human-readable reason when refused
    """
    if not source or not target:
        return ConnectionCheck(False, "Connection is incomplete")

    if source == target:
        return ConnectionCheck(False, "A node cannot connect to itself")

    nodes = graph.node_map()
    source_node = nodes.get(source)
    target_node = nodes.get(target)
    if source_node is None or target_node is None:
        missing = source if source_node is None else target
        return ConnectionCheck(False, f"Unknown node '{missing}'")

    if source_node.kind is CanvasNodeKind.ACTION:
        return ConnectionCheck(
            False, "Action nodes are terminal and cannot have outgoing connections"
        )

    if target_node.kind is CanvasNodeKind.CONDITION:
        return ConnectionCheck(False, "Condition nodes cannot take inputs")

    if not kinds_can_connect(source_node.kind, target_node.kind):
        return ConnectionCheck(
            False,
            f"A {source_node.kind.value} node cannot connect to a {target_node.kind.value} node",
        )

    if any(edge.source == source and edge.target == target for edge in graph.edges):
        return ConnectionCheck(False, "These nodes are already connected")

    if target_node.kind is not CanvasNodeKind.ACTION and any(
        edge.source == source and nodes.get(edge.target) is not None
        and nodes[edge.target].kind is not CanvasNodeKind.ACTION
        for edge in graph.edges
    ):
        return ConnectionCheck(False, "A node can feed only one combiner")

    if would_create_cycle(source, target, graph.edges):
        return ConnectionCheck(False, "Connection would create a cycle")

    return ConnectionCheck(True)


def is_valid_connection(source: str | None, target: str | None, graph: CanvasGraph) -> bool:
    return validate_connection(source, target, graph).valid
