"""
Field registry listing.

The rule editor uses this to populate the field picker and to restrict the
operator picker to the operators the selected field accepts.
"""

from fastapi import APIRouter, Query

from badge_rules.api.schemas.rule import FieldResponse
from badge_rules.core.dependencies import Registry

router = APIRouter(prefix="/fields", tags=["fields"])


@router.get("", response_model=list[FieldResponse], response_model_by_alias=True)
def list_fields(
    registry: Registry,
    include_inactive: bool = Query(default=False, alias="includeInactive"),
    category: str | None = Query(default=None),
) -> list[FieldResponse]:
    """List registered fields with their allowed operators."""
    results = []
    for definition in registry:
        if not include_inactive and not definition.is_active:
            continue
        if category is not None and definition.category != category:
            continue
        results.append(FieldResponse.model_validate(definition.to_dict()))
    return results
