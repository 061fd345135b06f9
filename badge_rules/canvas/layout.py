"""
Rule tree to canvas graph layout.

Lays a rule tree out left to right: leaves on the left in a single column of
evenly spaced slots, each combiner one column to the right of its deepest
child and vertically centred on its children, the root in the rightmost tree
column and the action nodes one column beyond it.

Node ids are deterministic per call (`condition-1`, `combiner-2`, ...), so
laying out the same tree twice yields the same graph. Positions from a saved
layout override computed ones by node id.
"""

from collections.abc import Mapping, Sequence

from badge_rules.canvas.graph import (
    CanvasEdge,
    CanvasGraph,
    CanvasNode,
    Position,
    RuleAction,
    condition_to_node_data,
)
from badge_rules.core.config import settings
from badge_rules.domain.enums import CanvasNodeKind
from badge_rules.rules.tree import Condition, Group, RuleNode, depth


class _Layout:
    def __init__(
        self,
        tree_depth: int,
        origin_x: float,
        origin_y: float,
        spacing_x: float,
        spacing_y: float,
    ) -> None:
        self.tree_depth = tree_depth
        self.origin_x = origin_x
        self.origin_y = origin_y
        self.spacing_x = spacing_x
        self.spacing_y = spacing_y
        self.nodes: list[CanvasNode] = []
        self.edges: list[CanvasEdge] = []
        self._counter = 0
        self._slot = 0

    def next_id(self, kind: CanvasNodeKind) -> str:
        self._counter += 1
        return f"{kind.value}-{self._counter}"

    def next_slot_y(self) -> float:
        y = self.origin_y + self._slot * self.spacing_y
        self._slot += 1
        return y

    def column_x(self, level: int) -> float:
        return self.origin_x + (self.tree_depth - 1 - level) * self.spacing_x

    def place(self, node: RuleNode, level: int) -> CanvasNode:
        if isinstance(node, Condition):
            canvas_node = CanvasNode(
                id=self.next_id(CanvasNodeKind.CONDITION),
                kind=CanvasNodeKind.CONDITION,
                position=Position(self.column_x(level), self.next_slot_y()),
                data=condition_to_node_data(node),
            )
            self.nodes.append(canvas_node)
            return canvas_node

        if not isinstance(node, Group):
            raise TypeError(f"Expected Condition or Group, got {type(node).__name__}")

        # Appended before its children so node order reads root-first.
        canvas_node = CanvasNode(
            id=self.next_id(CanvasNodeKind.COMBINER),
            kind=CanvasNodeKind.COMBINER,
            data={"operator": node.operator.value},
        )
        self.nodes.append(canvas_node)

        child_ys: list[float] = []
        for i, child in enumerate(node.children):
            placed = self.place(child, level + 1)
            child_ys.append(placed.position.y)
            self.edges.append(
                CanvasEdge(
                    id=f"e-{placed.id}-{canvas_node.id}",
                    source=placed.id,
                    target=canvas_node.id,
                    target_handle=f"input-{i + 1}",
                )
            )

        y = sum(child_ys) / len(child_ys) if child_ys else self.next_slot_y()
        canvas_node.position = Position(self.column_x(level), y)
        return canvas_node


def rule_to_canvas(
    rule: RuleNode,
    actions: Sequence[RuleAction] = (),
    *,
    layout: Mapping[str, Position] | None = None,
    origin_x: float | None = None,
    origin_y: float | None = None,
    spacing_x: float | None = None,
    spacing_y: float | None = None,
) -> CanvasGraph:
    """
    Expand a rule tree into an editable canvas graph.

    Args:
        rule: Root of the rule tree
        actions: Actions to attach to the root; when empty a single
                 unconfigured action node is added so the graph is complete
        layout: Saved node positions keyed by node id
        origin_x/origin_y/spacing_x/spacing_y: Grid geometry, defaulting to
            the CANVAS_* settings

    Returns:
        CanvasGraph with one node per tree node plus the action nodes, and
        one edge per parent/child link plus one per action
    """
    grid = _Layout(
        tree_depth=depth(rule),
        origin_x=settings.canvas_origin_x if origin_x is None else origin_x,
        origin_y=settings.canvas_origin_y if origin_y is None else origin_y,
        spacing_x=settings.canvas_spacing_x if spacing_x is None else spacing_x,
        spacing_y=settings.canvas_spacing_y if spacing_y is None else spacing_y,
    )
    root = grid.place(rule, 0)

    action_x = grid.origin_x + grid.tree_depth * grid.spacing_x
    payloads = [action.to_node_data() for action in actions] or [{}]
    for i, data in enumerate(payloads):
        action_node = CanvasNode(
            id=grid.next_id(CanvasNodeKind.ACTION),
            kind=CanvasNodeKind.ACTION,
            position=Position(action_x, root.position.y + i * grid.spacing_y),
            data=data,
        )
        grid.nodes.append(action_node)
        grid.edges.append(
            CanvasEdge(
                id=f"e-{root.id}-{action_node.id}",
                source=root.id,
                target=action_node.id,
            )
        )

    if layout:
        for node in grid.nodes:
            saved = layout.get(node.id)
            if saved is not None:
                node.position = saved

    return CanvasGraph(nodes=grid.nodes, edges=grid.edges)
