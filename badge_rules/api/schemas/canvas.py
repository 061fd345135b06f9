from __future__ import annotations

from typing import Any

from pydantic import Field

from badge_rules.api.schemas.rule import CamelModel


class CanvasGraphPayload(CamelModel):
    """Canvas graph as the editor sends it; nodes and edges are read by CanvasGraph."""

    nodes: list[dict[str, Any]] = Field(default_factory=list)
    edges: list[dict[str, Any]] = Field(default_factory=list)


class CanvasToRuleResponse(CamelModel):
    rule_json: dict[str, Any]
    canonical_json: str
    depth: int
    condition_count: int
    actions: list[dict[str, Any]]
    layout: dict[str, Any]


class RuleToCanvasRequest(CamelModel):
    rule_json: dict[str, Any]
    actions: list[dict[str, Any]] = Field(default_factory=list)
    layout: dict[str, Any] | None = None


class ConnectionValidateRequest(CamelModel):
    source: str | None = None
    target: str | None = None
    nodes: list[dict[str, Any]] = Field(default_factory=list)
    edges: list[dict[str, Any]] = Field(default_factory=list)


class ConnectionValidateResponse(CamelModel):
    valid: bool
    reason: str | None = None
    acceptable_target_kinds: list[str] = Field(default_factory=list)
