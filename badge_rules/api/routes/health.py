import logging

from fastapi import APIRouter

from badge_rules.core.config import settings
from badge_rules.core.dependencies import Registry

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
def health(registry: Registry) -> dict:
    """Liveness check; also reports how many fields the registry knows."""
    return {"ok": True, "service": settings.app_name, "fields": len(registry)}
