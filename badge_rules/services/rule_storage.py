"""
Client for the rule persistence API.

Rules are validated and normalized here before anything leaves the process:
`ruleJson` is decoded into a rule tree, validated against the field
registry, and re-serialized so the stored JSON always uses canonical
operator names. The persistence API wraps every answer in an envelope:

    {"success": true, "data": {...}}
    {"success": false, "error": "...", "code": "..."}
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from badge_rules.api.schemas.rule import RuleEnvelope, RuleUpdate
from badge_rules.core.config import settings
from badge_rules.core.errors import NotFoundError, RuleStorageError
from badge_rules.rules.field_registry import FieldRegistry
from badge_rules.rules.serializer import deserialize, serialize
from badge_rules.rules.validator import validate_rule

logger = logging.getLogger(__name__)

RULES_PATH = "/admin/rules"


def build_rule_payload(
    rule: RuleEnvelope | RuleUpdate, registry: FieldRegistry | None = None
) -> dict[str, Any]:
    """
    Validate a rule and produce the JSON body for the persistence API.

    Raises:
        ParseError: If ruleJson is not a rule tree
        ValidationError: If the tree violates a structural or field rule
    """
    payload = rule.model_dump(by_alias=True, exclude_none=True, mode="json")
    if rule.rule_json is not None:
        tree = deserialize(rule.rule_json)
        validate_rule(tree, registry)
        payload["ruleJson"] = serialize(tree)
    return payload


class RuleStorageClient:
    """
    Async client for rule create/update/read on the persistence API.

    Usage:
        async with RuleStorageClient() as client:
            stored = await client.get_rule("42")
    """

    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {"Accept": "application/json"}
        auth_token = token if token is not None else settings.rule_storage_token
        if auth_token:
            headers["Authorization"] = f"Bearer {auth_token}"

        self._client = httpx.AsyncClient(
            base_url=(base_url or settings.rule_storage_base_url).rstrip("/"),
            headers=headers,
            timeout=httpx.Timeout(
                timeout if timeout is not None else settings.rule_storage_timeout_seconds
            ),
            transport=transport,
        )

    async def __aenter__(self) -> RuleStorageClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def create_rule(
        self, rule: RuleEnvelope, registry: FieldRegistry | None = None
    ) -> dict[str, Any]:
        payload = build_rule_payload(rule, registry)
        data = await self._request("POST", RULES_PATH, json=payload)
        logger.info("Created rule %s for event type %s", rule.rule_code, rule.event_type)
        return data

    async def update_rule(
        self, rule_id: str, update: RuleUpdate, registry: FieldRegistry | None = None
    ) -> dict[str, Any]:
        payload = build_rule_payload(update, registry)
        data = await self._request("PUT", f"{RULES_PATH}/{rule_id}", json=payload)
        logger.info("Updated rule %s", rule_id)
        return data

    async def get_rule(self, rule_id: str) -> dict[str, Any]:
        return await self._request("GET", f"{RULES_PATH}/{rule_id}")

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.error("Rule storage request failed: %s %s: %s", method, path, e)
            raise RuleStorageError(
                f"Rule storage is unreachable: {type(e).__name__}",
                details={"method": method, "path": path},
            ) from e

        try:
            body = response.json()
        except ValueError:
            body = None

        if response.status_code == 404:
            raise NotFoundError(
                _envelope_message(body) or f"Rule not found: {path}",
                details={"path": path},
            )

        if response.is_error or not isinstance(body, dict):
            logger.error(
                "Rule storage returned an error: %s %s -> %d", method, path, response.status_code
            )
            raise RuleStorageError(
                _envelope_message(body) or f"Rule storage returned HTTP {response.status_code}",
                details={"method": method, "path": path, "status_code": response.status_code},
            )

        if not body.get("success", False):
            raise RuleStorageError(
                _envelope_message(body) or "Rule storage rejected the request",
                details={"method": method, "path": path, "code": body.get("code")},
            )

        data = body.get("data")
        return data if isinstance(data, dict) else {"data": data}


def _envelope_message(body: Any) -> str | None:
    if not isinstance(body, dict):
        return None
    message = body.get("error") or body.get("message")
    return str(message) if message else None
