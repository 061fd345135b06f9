"""
Pytest configuration and shared fixtures.

Provides:
- anyio backend selection for async tests
- Field registry with the preset fields
- Sample rule trees (single condition, nested groups)
- Canvas graph builders
- FastAPI TestClient whose rule storage talks to an httpx.MockTransport
"""

from __future__ import annotations

import json
import os
import sys
from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any

ROOT = Path(__file__).resolve().parents[1]

if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("METRICS_TOKEN", "test-metrics-token")
os.environ.setdefault("RULE_STORAGE_BASE_URL", "http://rule-storage.test/api")

import httpx  # noqa: E402 (import after env setup)
import pytest  # noqa: E402 (import after env setup)
from fastapi.testclient import TestClient  # noqa: E402 (import after env setup)

from badge_rules.core.dependencies import get_field_registry, get_rule_storage  # noqa: E402
from badge_rules.domain.enums import LogicOperator, Operator  # noqa: E402
from badge_rules.main import create_app  # noqa: E402
from badge_rules.rules.field_registry import FieldRegistry  # noqa: E402
from badge_rules.rules.tree import Condition, Group  # noqa: E402
from badge_rules.services.rule_storage import RuleStorageClient  # noqa: E402


@pytest.fixture
def anyio_backend():
    return "asyncio"


# ============================================================================
# Rule fixtures
# ============================================================================


@pytest.fixture
def registry() -> FieldRegistry:
    return FieldRegistry.with_presets()


@pytest.fixture
def single_condition() -> Condition:
    return Condition("order.amount", Operator.GTE, 100)


@pytest.fixture
def nested_rule() -> Group:
    """(user.level >= 3 AND order.amount > 100) OR user.tags contains 'vip'"""
    return Group(
        LogicOperator.OR,
        (
            Group(
                LogicOperator.AND,
                (
                    Condition("user.level", Operator.GTE, 3),
                    Condition("order.amount", Operator.GT, 100),
                ),
            ),
            Condition("user.tags", Operator.CONTAINS, "vip"),
        ),
    )


# ============================================================================
# Canvas builders
# ============================================================================


def condition_node(
    node_id: str, field: str = "order.amount", operator: str = "gte", value: Any = 100
):
    return {
        "id": node_id,
        "kind": "condition",
        "position": {"x": 0, "y": 0},
        "data": {"field": field, "operator": operator, "value": value},
    }


def combiner_node(node_id: str, operator: str = "AND"):
    return {
        "id": node_id,
        "kind": "combiner",
        "position": {"x": 0, "y": 0},
        "data": {"operator": operator},
    }


def action_node(node_id: str, badge_id: str = "badge-1", quantity: int = 1):
    return {
        "id": node_id,
        "kind": "action",
        "position": {"x": 0, "y": 0},
        "data": {
            "actionType": "grant_badge",
            "badgeId": badge_id,
            "badgeName": "Badge",
            "quantity": quantity,
        },
    }


def edge(source: str, target: str, edge_id: str | None = None) -> dict[str, Any]:
    return {"id": edge_id or f"e-{source}-{target}", "source": source, "target": target}


@pytest.fixture
def canvas_builders() -> dict[str, Callable[..., dict[str, Any]]]:
    return {
        "condition": condition_node,
        "combiner": combiner_node,
        "action": action_node,
        "edge": edge,
    }


# ============================================================================
# API fixtures
# ============================================================================


class StorageStub:
    """
    In-memory stand-in for the rule persistence API, served via MockTransport.

    Records every request; answers with the {success, data} envelope.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.rules: dict[str, dict[str, Any]] = {}
        self.next_id = 1
        self.fail_with: tuple[int, dict[str, Any]] | None = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_with is not None:
            status_code, body = self.fail_with
            return httpx.Response(status_code, json=body)

        path = request.url.path
        if request.method == "POST" and path.endswith("/admin/rules"):
            rule_id = str(self.next_id)
            self.next_id += 1
            self.rules[rule_id] = {"id": rule_id, **json.loads(request.content)}
            return httpx.Response(200, json={"success": True, "data": self.rules[rule_id]})

        rule_id = path.rsplit("/", 1)[-1]
        if rule_id not in self.rules:
            body = {"success": False, "error": f"Rule {rule_id} not found"}
            return httpx.Response(404, json=body)

        if request.method == "PUT":
            self.rules[rule_id].update(json.loads(request.content))
        return httpx.Response(200, json={"success": True, "data": self.rules[rule_id]})

    def client(self) -> RuleStorageClient:
        return RuleStorageClient(
            base_url="http://rule-storage.test/api",
            token="storage-token",
            transport=httpx.MockTransport(self.handler),
        )


@pytest.fixture
def storage_stub() -> StorageStub:
    return StorageStub()


@pytest.fixture
def client(storage_stub: StorageStub, registry: FieldRegistry) -> Generator[TestClient]:
    app = create_app()

    async def _storage():
        async with storage_stub.client() as storage:
            yield storage

    app.dependency_overrides[get_field_registry] = lambda: registry
    app.dependency_overrides[get_rule_storage] = _storage

    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client

    app.dependency_overrides.clear()
