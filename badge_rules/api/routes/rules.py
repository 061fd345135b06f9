from __future__ import annotations

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Path, status

from badge_rules.api.schemas.rule import (
    RuleEnvelope,
    RuleUpdate,
    RuleViolation,
    ValidateRuleRequest,
    ValidateRuleResponse,
)
from badge_rules.core.dependencies import Registry, RuleStorage
from badge_rules.core.observability import metrics
from badge_rules.rules.canonicalizer import checksum
from badge_rules.rules.serializer import deserialize, dumps_rule, serialize
from badge_rules.rules.tree import count_conditions, depth
from badge_rules.rules.validator import check_rule

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/rules", tags=["rules"])

RuleId = Annotated[str, Path(min_length=1, max_length=64, pattern=r"^[A-Za-z0-9_-]+$")]


@router.post("/validate", response_model=ValidateRuleResponse, response_model_by_alias=True)
def validate_rule_json(payload: ValidateRuleRequest, registry: Registry) -> ValidateRuleResponse:
    """
    Validate a rule tree without saving it.

    A tree that parses but breaks a rule answers 200 with `valid: false` and
    the first violation; a payload that is not a rule tree answers 400.
    """
    tree = deserialize(payload.rule_json)
    error = check_rule(tree, registry)
    conditions = count_conditions(tree)

    if error is not None:
        metrics.rule_validations_total.labels(result=error.code).inc()
        return ValidateRuleResponse(
            valid=False,
            depth=depth(tree),
            condition_count=conditions,
            error=RuleViolation(
                code=error.code, message=error.message, path=error.path, details=error.details
            ),
        )

    metrics.rule_validations_total.labels(result="valid").inc()
    metrics.rule_conditions_count.observe(conditions)
    return ValidateRuleResponse(
        valid=True,
        depth=depth(tree),
        condition_count=conditions,
        canonical_json=dumps_rule(tree),
        checksum=checksum(serialize(tree)),
    )


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_rule(
    payload: RuleEnvelope, registry: Registry, storage: RuleStorage
) -> dict[str, Any]:
    """Validate a rule and create it in the persistence API."""
    return await storage.create_rule(payload, registry)


@router.put("/{rule_id}")
async def update_rule(
    payload: RuleUpdate,
    registry: Registry,
    storage: RuleStorage,
    rule_id: RuleId,
) -> dict[str, Any]:
    """Validate a (partial) rule update and forward it to the persistence API."""
    return await storage.update_rule(rule_id, payload, registry)


@router.get("/{rule_id}")
async def get_rule(storage: RuleStorage, rule_id: RuleId) -> dict[str, Any]:
    return await storage.get_rule(rule_id)
