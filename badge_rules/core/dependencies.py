"""
FastAPI dependency injection utilities.

Provides the field registry and the rule storage client to endpoints. Tests
replace either one through `app.dependency_overrides`.
"""

from collections.abc import AsyncGenerator
from functools import lru_cache
from typing import Annotated

from fastapi import Depends

from badge_rules.core.config import settings
from badge_rules.rules.field_registry import FieldRegistry, load_field_registry
from badge_rules.services.rule_storage import RuleStorageClient

# ============================================================================
# Field Registry
# ============================================================================


@lru_cache(maxsize=1)
def get_field_registry() -> FieldRegistry:
    """
    Field registry dependency.

    Loaded once per process: the preset fields plus FIELD_REGISTRY_FILE when set.
    """
    return load_field_registry(settings.field_registry_file)


Registry = Annotated[FieldRegistry, Depends(get_field_registry)]


# ============================================================================
# Rule Storage
# ============================================================================


async def get_rule_storage() -> AsyncGenerator[RuleStorageClient]:
    """
    Rule storage client dependency, closed when the request finishes.

    Usage:
        @router.get("/rules/{rule_id}")
        async def read_rule(rule_id: str, storage: RuleStorage):
            return await storage.get_rule(rule_id)
    """
    async with RuleStorageClient() as client:
        yield client


RuleStorage = Annotated[RuleStorageClient, Depends(get_rule_storage)]
