"""
Unit tests for the canvas editor endpoints.

Tests cover:
- POST /canvas/to-rule (reduction, issue reporting)
- POST /canvas/from-rule (layout, saved positions, round trip)
- POST /canvas/connections/validate
"""

import pytest


@pytest.fixture
def two_condition_graph(canvas_builders):
    b = canvas_builders
    return {
        "nodes": [
            b["condition"]("c1", "user.level", "gte", 3),
            b["condition"]("c2", "order.amount", "gt", 100),
            b["combiner"]("l1", "AND"),
            b["action"]("a1", "badge-gold", 2),
        ],
        "edges": [b["edge"]("c1", "l1"), b["edge"]("c2", "l1"), b["edge"]("l1", "a1")],
    }


class TestCanvasToRule:
    """Tests for POST /api/v1/canvas/to-rule."""

    def test_reduces_graph(self, client, two_condition_graph):
        response = client.post("/api/v1/canvas/to-rule", json=two_condition_graph)

        assert response.status_code == 200
        data = response.json()
        assert data["ruleJson"] == {
            "type": "group",
            "operator": "AND",
            "children": [
                {"type": "condition", "field": "user.level", "operator": "gte", "value": 3},
                {"type": "condition", "field": "order.amount", "operator": "gt", "value": 100},
            ],
        }
        assert data["depth"] == 2
        assert data["conditionCount"] == 2
        assert data["actions"] == [
            {"type": "grant_badge", "badgeId": "badge-gold", "badgeName": "Badge", "quantity": 2}
        ]
        assert {n["id"] for n in data["layout"]["nodes"]} == {"c1", "c2", "l1", "a1"}

    def test_reports_all_issues(self, client, canvas_builders):
        b = canvas_builders
        graph = {
            "nodes": [
                b["condition"]("c1"),
                b["combiner"]("l1"),
                b["combiner"]("l2"),
            ],
            "edges": [b["edge"]("c1", "l1"), b["edge"]("l1", "ghost")],
        }
        response = client.post("/api/v1/canvas/to-rule", json=graph)

        assert response.status_code == 422
        body = response.json()
        assert body["error"] == "GraphConversionError"
        codes = {issue["code"] for issue in body["details"]["issues"]}
        assert {"DANGLING_EDGE", "NO_ACTION"} <= codes

    def test_field_problems_point_at_the_node(self, client, canvas_builders):
        b = canvas_builders
        graph = {
            "nodes": [b["condition"]("c1", "user.tags", "gt", 5), b["action"]("a1")],
            "edges": [b["edge"]("c1", "a1")],
        }
        response = client.post("/api/v1/canvas/to-rule", json=graph)

        assert response.status_code == 422
        (issue,) = response.json()["details"]["issues"]
        assert issue["code"] == "VALIDATION"
        assert issue["nodeIds"] == ["c1"]
        assert issue["details"]["code"] == "OPERATOR_MISMATCH"

    def test_accepts_editor_type_key_and_legacy_kinds(self, client):
        graph = {
            "nodes": [
                {
                    "id": "c1",
                    "type": "condition",
                    "data": {"field": "order.amount", "operator": "gte", "value": 1},
                },
                {"id": "b1", "type": "badge", "data": {"badgeId": "b-1", "quantity": 1}},
            ],
            "edges": [{"source": "c1", "target": "b1"}],
        }
        response = client.post("/api/v1/canvas/to-rule", json=graph)

        assert response.status_code == 200
        assert response.json()["actions"][0]["badgeId"] == "b-1"

    def test_malformed_graph_is_bad_request(self, client):
        response = client.post(
            "/api/v1/canvas/to-rule",
            json={"nodes": [{"id": "x", "kind": "spaceship"}], "edges": []},
        )
        assert response.status_code == 400
        assert response.json()["error"] == "ParseError"


class TestRuleToCanvas:
    """Tests for POST /api/v1/canvas/from-rule."""

    RULE = {
        "type": "group",
        "operator": "OR",
        "children": [
            {"type": "condition", "field": "user.level", "operator": "gte", "value": 3},
            {"type": "condition", "field": "user.tags", "operator": "contains", "value": "vip"},
        ],
    }

    def test_expands_rule_with_actions(self, client):
        actions = [{"type": "grant_benefit", "benefitId": "coupon-1", "quantity": 1}]
        response = client.post(
            "/api/v1/canvas/from-rule", json={"ruleJson": self.RULE, "actions": actions}
        )

        assert response.status_code == 200
        graph = response.json()
        kinds = [n["kind"] for n in graph["nodes"]]
        assert kinds.count("condition") == 2
        assert kinds.count("combiner") == 1
        assert kinds.count("action") == 1
        action = next(n for n in graph["nodes"] if n["kind"] == "action")
        assert action["data"]["benefitId"] == "coupon-1"
        assert len(graph["edges"]) == 3

    def test_saved_layout_is_applied(self, client):
        layout = {"nodes": [{"id": "combiner-1", "position": {"x": 7, "y": 9}}]}
        graph = client.post(
            "/api/v1/canvas/from-rule", json={"ruleJson": self.RULE, "layout": layout}
        ).json()

        root = next(n for n in graph["nodes"] if n["id"] == "combiner-1")
        assert root["position"] == {"x": 7.0, "y": 9.0}

    def test_round_trip_through_both_endpoints(self, client):
        graph = client.post("/api/v1/canvas/from-rule", json={"ruleJson": self.RULE}).json()
        # the placeholder action has to be filled in before the graph is saveable
        for node in graph["nodes"]:
            if node["kind"] == "action":
                node["data"] = {"actionType": "grant_badge", "badgeId": "vip", "quantity": 1}

        result = client.post("/api/v1/canvas/to-rule", json=graph).json()
        assert result["ruleJson"] == self.RULE

    def test_bad_rule_is_bad_request(self, client):
        response = client.post("/api/v1/canvas/from-rule", json={"ruleJson": {"type": "x"}})
        assert response.status_code == 400


class TestConnectionValidate:
    """Tests for POST /api/v1/canvas/connections/validate."""

    def test_allowed_connection(self, client, two_condition_graph, canvas_builders):
        graph = dict(two_condition_graph)
        graph["nodes"] = [*graph["nodes"], canvas_builders["condition"]("c3")]
        response = client.post(
            "/api/v1/canvas/connections/validate", json={"source": "c3", "target": "l1", **graph}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["valid"] is True
        assert data["reason"] is None
        assert data["acceptableTargetKinds"] == ["combiner", "action"]

    def test_refused_connection(self, client, two_condition_graph):
        body = {"source": "a1", "target": "l1", **two_condition_graph}
        data = client.post("/api/v1/canvas/connections/validate", json=body).json()

        assert data["valid"] is False
        assert data["reason"] == "Action nodes are terminal and cannot have outgoing connections"
        assert data["acceptableTargetKinds"] == []

    def test_incomplete_connection(self, client):
        data = client.post("/api/v1/canvas/connections/validate", json={"source": "c1"}).json()
        assert data == {
            "valid": False,
            "reason": "Connection is incomplete",
            "acceptableTargetKinds": [],
        }
