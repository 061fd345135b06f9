"""
Unit tests for canvas graph -> rule tree reduction.

Tests cover:
- Single condition and nested combiner graphs
- Children order following edge creation order
- Every structural issue code, and that issues are reported together
- Cycle safety (reduction terminates and reports the cycle)
- Validation failures of the reduced tree
- Actions and layout returned alongside the tree
"""

import pytest

from badge_rules.canvas.graph import CanvasGraph
from badge_rules.canvas.translator import canvas_to_rule
from badge_rules.core.errors import GraphConversionError
from badge_rules.domain.enums import ActionType, GraphIssueCode, LogicOperator, Operator
from badge_rules.rules.serializer import serialize
from badge_rules.rules.tree import Condition, Group, count_conditions, depth


@pytest.fixture
def b(canvas_builders):
    return canvas_builders


def _graph(nodes, edges):
    return CanvasGraph.from_dict({"nodes": nodes, "edges": edges})


def _issue_codes(exc_info) -> set[str]:
    return set(exc_info.value.codes)


class TestReduction:
    def test_single_condition(self, b, registry):
        graph = _graph(
            [b["condition"]("c1", "order.amount", "gte", 100), b["action"]("a1")],
            [b["edge"]("c1", "a1")],
        )
        result = canvas_to_rule(graph, registry)
        assert result.rule == Condition("order.amount", Operator.GTE, 100)
        assert depth(result.rule) == 1
        assert count_conditions(result.rule) == 1

    def test_combiner_children_follow_edge_order(self, b, registry):
        graph = _graph(
            [
                b["condition"]("c1", "order.amount", "gt", 1),
                b["condition"]("c2", "user.level", "gte", 2),
                b["combiner"]("l1", "OR"),
                b["action"]("a1"),
            ],
            [b["edge"]("c2", "l1"), b["edge"]("c1", "l1"), b["edge"]("l1", "a1")],
        )
        result = canvas_to_rule(graph, registry)
        assert result.rule == Group(
            LogicOperator.OR,
            (
                Condition("user.level", Operator.GTE, 2),
                Condition("order.amount", Operator.GT, 1),
            ),
        )

    def test_nested_combiners(self, b, registry):
        graph = _graph(
            [
                b["condition"]("c1", "user.level", "gte", 3),
                b["condition"]("c2", "order.amount", "gt", 100),
                b["condition"]("c3", "user.tags", "contains", "vip"),
                b["combiner"]("and", "AND"),
                b["combiner"]("or", "OR"),
                b["action"]("a1"),
            ],
            [
                b["edge"]("c1", "and"),
                b["edge"]("c2", "and"),
                b["edge"]("and", "or"),
                b["edge"]("c3", "or"),
                b["edge"]("or", "a1"),
            ],
        )
        result = canvas_to_rule(graph, registry)
        assert depth(result.rule) == 3
        assert serialize(result.rule)["children"][0]["operator"] == "AND"

    def test_actions_and_layout_are_returned(self, b, registry):
        graph = _graph(
            [b["condition"]("c1"), b["action"]("a1", "badge-7", 2), b["action"]("a2", "badge-8")],
            [b["edge"]("c1", "a1"), b["edge"]("c1", "a2")],
        )
        graph.nodes[0].data["label"] = "ignored"
        result = canvas_to_rule(graph, registry)
        assert [a.target_id for a in result.actions] == ["badge-7", "badge-8"]
        assert result.actions[0].action_type is ActionType.GRANT_BADGE
        assert result.actions[0].quantity == 2
        assert set(result.layout) == {"c1", "a1", "a2"}

    def test_legacy_node_kinds_and_operators(self, registry):
        graph = CanvasGraph.from_dict(
            {
                "nodes": [
                    {
                        "id": "c1",
                        "type": "condition",
                        "data": {"field": "order.status", "operator": "not_in", "value": ["x"]},
                    },
                    {"id": "l1", "type": "logic", "data": {"logicType": "and"}},
                    {"id": "b1", "type": "badge", "data": {"badgeId": "b-1", "badgeName": "B"}},
                ],
                "edges": [
                    {"id": "e1", "source": "c1", "target": "l1"},
                    {"id": "e2", "source": "l1", "target": "b1"},
                ],
            }
        )
        result = canvas_to_rule(graph, registry)
        assert result.rule == Group(
            LogicOperator.AND, (Condition("order.status", Operator.NOT_IN, ["x"]),)
        )
        assert result.actions[0].target_id == "b-1"

    def test_unconfigured_action_placeholder(self, b, registry):
        graph = _graph(
            [b["condition"]("c1"), {"id": "a1", "kind": "action", "data": {}}],
            [b["edge"]("c1", "a1")],
        )
        result = canvas_to_rule(graph, registry)
        assert result.actions == ()

    def test_to_dict(self, b, registry):
        graph = _graph([b["condition"]("c1"), b["action"]("a1")], [b["edge"]("c1", "a1")])
        data = canvas_to_rule(graph, registry).to_dict()
        assert data["ruleJson"]["type"] == "condition"
        assert data["actions"][0]["type"] == "grant_badge"
        assert data["layout"]["nodes"][0]["id"] == "c1"


class TestStructuralIssues:
    def test_no_action(self, b, registry):
        with pytest.raises(GraphConversionError) as exc_info:
            canvas_to_rule(_graph([b["condition"]("c1")], []), registry)
        assert GraphIssueCode.NO_ACTION.value in _issue_codes(exc_info)

    def test_empty_graph(self):
        with pytest.raises(GraphConversionError) as exc_info:
            canvas_to_rule(CanvasGraph())
        assert _issue_codes(exc_info) == {GraphIssueCode.NO_ACTION.value}

    def test_disconnected_condition(self, b, registry):
        graph = _graph(
            [b["condition"]("c1"), b["condition"]("c2"), b["action"]("a1")],
            [b["edge"]("c1", "a1")],
        )
        with pytest.raises(GraphConversionError) as exc_info:
            canvas_to_rule(graph, registry)
        issues = exc_info.value.issues
        assert [i.code for i in issues] == [GraphIssueCode.DISCONNECTED_NODE]
        assert issues[0].node_ids == ("c2",)

    def test_action_without_input(self, b, registry):
        graph = _graph([b["condition"]("c1"), b["action"]("a1")], [])
        with pytest.raises(GraphConversionError) as exc_info:
            canvas_to_rule(graph, registry)
        assert _issue_codes(exc_info) == {GraphIssueCode.DISCONNECTED_NODE.value}
        assert {i.node_ids for i in exc_info.value.issues} == {("a1",), ("c1",)}

    def test_dangling_edge(self, b, registry):
        graph = _graph(
            [b["condition"]("c1"), b["action"]("a1")],
            [b["edge"]("c1", "a1"), b["edge"]("ghost", "a1", "e-ghost")],
        )
        with pytest.raises(GraphConversionError) as exc_info:
            canvas_to_rule(graph, registry)
        issue = exc_info.value.issues[0]
        assert issue.code is GraphIssueCode.DANGLING_EDGE
        assert issue.edge_id == "e-ghost"
        assert issue.node_ids == ("ghost",)

    def test_two_inputs_into_one_action(self, b, registry):
        graph = _graph(
            [b["condition"]("c1"), b["condition"]("c2"), b["action"]("a1")],
            [b["edge"]("c1", "a1"), b["edge"]("c2", "a1")],
        )
        with pytest.raises(GraphConversionError) as exc_info:
            canvas_to_rule(graph, registry)
        assert _issue_codes(exc_info) == {GraphIssueCode.MULTIPLE_ROOTS.value}

    def test_actions_fed_by_different_roots(self, b, registry):
        graph = _graph(
            [b["condition"]("c1"), b["condition"]("c2"), b["action"]("a1"), b["action"]("a2")],
            [b["edge"]("c1", "a1"), b["edge"]("c2", "a2")],
        )
        with pytest.raises(GraphConversionError) as exc_info:
            canvas_to_rule(graph, registry)
        assert _issue_codes(exc_info) == {GraphIssueCode.MULTIPLE_ROOTS.value}

    def test_condition_as_target_is_invalid_connection(self, b, registry):
        graph = _graph(
            [b["condition"]("c1"), b["condition"]("c2"), b["action"]("a1")],
            [b["edge"]("c1", "c2"), b["edge"]("c2", "a1")],
        )
        with pytest.raises(GraphConversionError) as exc_info:
            canvas_to_rule(graph, registry)
        assert GraphIssueCode.INVALID_CONNECTION.value in _issue_codes(exc_info)

    def test_fan_out_into_two_combiners(self, b, registry):
        graph = _graph(
            [
                b["condition"]("c1"),
                b["condition"]("c2"),
                b["combiner"]("l1"),
                b["combiner"]("l2"),
                b["combiner"]("root", "OR"),
                b["action"]("a1"),
            ],
            [
                b["edge"]("c1", "l1"),
                b["edge"]("c1", "l2"),
                b["edge"]("c2", "l2"),
                b["edge"]("l1", "root"),
                b["edge"]("l2", "root"),
                b["edge"]("root", "a1"),
            ],
        )
        with pytest.raises(GraphConversionError) as exc_info:
            canvas_to_rule(graph, registry)
        issues = exc_info.value.issues
        assert [i.code for i in issues] == [GraphIssueCode.INVALID_CONNECTION]
        assert issues[0].node_ids == ("c1", "l1", "l2")

    def test_repeated_edge_into_action_counts_once(self, b, registry):
        graph = _graph(
            [b["condition"]("c1"), b["action"]("a1")],
            [b["edge"]("c1", "a1", "e1"), b["edge"]("c1", "a1", "e2")],
        )
        result = canvas_to_rule(graph, registry)
        assert result.rule == Condition("order.amount", Operator.GTE, 100)

    def test_repeated_edge_into_combiner_counts_once(self, b, registry):
        graph = _graph(
            [
                b["condition"]("c1", "order.amount", "gt", 1),
                b["condition"]("c2", "user.level", "gte", 2),
                b["combiner"]("l1"),
                b["action"]("a1"),
            ],
            [
                b["edge"]("c1", "l1", "e1"),
                b["edge"]("c1", "l1", "e2"),
                b["edge"]("c2", "l1"),
                b["edge"]("l1", "a1"),
            ],
        )
        result = canvas_to_rule(graph, registry)
        assert result.rule == Group(
            LogicOperator.AND,
            (
                Condition("order.amount", Operator.GT, 1),
                Condition("user.level", Operator.GTE, 2),
            ),
        )

    def test_empty_combiner(self, b, registry):
        graph = _graph([b["combiner"]("l1"), b["action"]("a1")], [b["edge"]("l1", "a1")])
        with pytest.raises(GraphConversionError) as exc_info:
            canvas_to_rule(graph, registry)
        assert _issue_codes(exc_info) == {GraphIssueCode.EMPTY_COMBINER.value}

    @pytest.mark.parametrize(
        "node",
        [
            {"id": "c1", "kind": "condition", "data": {"operator": "eq", "value": 1}},
            {"id": "c1", "kind": "condition", "data": {"field": "order.amount"}},
            {"id": "c1", "kind": "condition", "data": {"field": "x", "operator": "like"}},
        ],
    )
    def test_invalid_condition_data(self, b, registry, node):
        graph = _graph([node, b["action"]("a1")], [b["edge"]("c1", "a1")])
        with pytest.raises(GraphConversionError) as exc_info:
            canvas_to_rule(graph, registry)
        assert _issue_codes(exc_info) == {GraphIssueCode.INVALID_NODE_DATA.value}

    def test_invalid_action_data(self, b, registry):
        bad_action = {"id": "a1", "kind": "action", "data": {"badgeId": "b-1", "quantity": 0}}
        graph = _graph([b["condition"]("c1"), bad_action], [b["edge"]("c1", "a1")])
        with pytest.raises(GraphConversionError) as exc_info:
            canvas_to_rule(graph, registry)
        assert _issue_codes(exc_info) == {GraphIssueCode.INVALID_NODE_DATA.value}

    def test_depth_ceiling(self, b, registry):
        nodes = [b["condition"]("c0"), b["action"]("a1")]
        edges = []
        previous = "c0"
        for i in range(1, 5):
            nodes.append(b["combiner"](f"l{i}"))
            edges.append(b["edge"](previous, f"l{i}"))
            previous = f"l{i}"
        edges.append(b["edge"](previous, "a1"))

        with pytest.raises(GraphConversionError) as exc_info:
            canvas_to_rule(_graph(nodes, edges), registry, max_depth=3)
        assert _issue_codes(exc_info) == {GraphIssueCode.DEPTH_EXCEEDED.value}

        assert depth(canvas_to_rule(_graph(nodes, edges), registry, max_depth=5).rule) == 5

    def test_all_issues_are_reported_together(self, b, registry):
        graph = _graph(
            [
                b["condition"]("c1"),
                b["condition"]("stray"),
                b["combiner"]("empty"),
                b["action"]("a1"),
            ],
            [b["edge"]("c1", "a1"), b["edge"]("c1", "nowhere")],
        )
        with pytest.raises(GraphConversionError) as exc_info:
            canvas_to_rule(graph, registry)
        assert _issue_codes(exc_info) == {
            GraphIssueCode.DANGLING_EDGE.value,
            GraphIssueCode.DISCONNECTED_NODE.value,
        }
        assert len(exc_info.value.issues) == 3
        assert exc_info.value.details["issues"][0]["code"] == "DANGLING_EDGE"


class TestCycles:
    def test_combiner_feeding_back_into_its_ancestor(self, b, registry):
        graph = _graph(
            [
                b["condition"]("c1"),
                b["combiner"]("l1"),
                b["combiner"]("l2"),
                b["action"]("a1"),
            ],
            [
                b["edge"]("c1", "l2"),
                b["edge"]("l2", "l1"),
                b["edge"]("l1", "a1"),
                b["edge"]("l1", "l2"),
            ],
        )
        with pytest.raises(GraphConversionError) as exc_info:
            canvas_to_rule(graph, registry)
        cycles = [i for i in exc_info.value.issues if i.code is GraphIssueCode.CYCLE_DETECTED]
        assert len(cycles) == 1
        assert set(cycles[0].node_ids) == {"l1", "l2"}

    def test_self_loop(self, b, registry):
        graph = _graph(
            [b["condition"]("c1"), b["combiner"]("l1"), b["action"]("a1")],
            [b["edge"]("c1", "l1"), b["edge"]("l1", "l1"), b["edge"]("l1", "a1")],
        )
        with pytest.raises(GraphConversionError) as exc_info:
            canvas_to_rule(graph, registry)
        assert _issue_codes(exc_info) == {GraphIssueCode.CYCLE_DETECTED.value}

    def test_cycle_detached_from_root(self, b, registry):
        graph = _graph(
            [
                b["condition"]("c1"),
                b["combiner"]("x"),
                b["combiner"]("y"),
                b["action"]("a1"),
            ],
            [b["edge"]("c1", "a1"), b["edge"]("x", "y"), b["edge"]("y", "x")],
        )
        with pytest.raises(GraphConversionError) as exc_info:
            canvas_to_rule(graph, registry)
        assert _issue_codes(exc_info) == {
            GraphIssueCode.CYCLE_DETECTED.value,
            GraphIssueCode.DISCONNECTED_NODE.value,
        }


class TestValidationOfReducedTree:
    def test_operator_mismatch_bubbles_up_with_node_id(self, b, registry):
        graph = _graph(
            [
                b["condition"]("c1", "order.amount", "gt", 1),
                b["condition"]("c2", "order.amount", "contains", "1"),
                b["combiner"]("l1"),
                b["action"]("a1"),
            ],
            [b["edge"]("c1", "l1"), b["edge"]("c2", "l1"), b["edge"]("l1", "a1")],
        )
        with pytest.raises(GraphConversionError) as exc_info:
            canvas_to_rule(graph, registry)
        (issue,) = exc_info.value.issues
        assert issue.code is GraphIssueCode.VALIDATION
        assert issue.details["code"] == "OPERATOR_MISMATCH"
        assert issue.details["path"] == "$.children[1]"
        assert issue.node_ids == ("c2",)

    def test_without_registry_only_structure_is_checked(self, b):
        graph = _graph(
            [b["condition"]("c1", "anything", "eq", "x"), b["action"]("a1")],
            [b["edge"]("c1", "a1")],
        )
        assert canvas_to_rule(graph).rule == Condition("anything", Operator.EQ, "x")
