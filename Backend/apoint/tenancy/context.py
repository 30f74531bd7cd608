"""
Tenant context for the booking engine.

Every tenant-specific operation is keyed by a TenantContext (or its bare
tenant_id). The HTTP layer builds one from the /tenants/{tenant_id}/ path
segment (plus the X-Actor-Id header); the reminder cycle builds a background
context for each tenant it visits.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from fastapi import Header, HTTPException, Path


logger = logging.getLogger(__name__)


class TenantResolutionSource(str, Enum):
    """How the tenant context was determined."""

    URL_PATH = "url_path"       # From /tenants/{tenant_id}/ in the URL
    BACKGROUND = "background"   # Built by a scheduled cycle


@dataclass(frozen=True)
class TenantContext:
    """
    Immutable context representing the tenant an operation runs for.

    Attributes:
        tenant_id: The database ID of the tenant (tenants.id)
        actor_id: Who triggered the operation, recorded in audit entries
        source: How this context was determined
    """

    tenant_id: int
    actor_id: Optional[str] = None
    source: TenantResolutionSource = TenantResolutionSource.URL_PATH

    def __post_init__(self):
        if self.tenant_id <= 0:
            raise ValueError(f"tenant_id must be positive, got {self.tenant_id}")


def tenant_context_for_background(tenant_id: int, actor_id: str = "system") -> TenantContext:
    return TenantContext(
        tenant_id=tenant_id,
        actor_id=actor_id,
        source=TenantResolutionSource.BACKGROUND,
    )


# ────────────────────────────────────────────────────────────────
# FastAPI Dependencies
# ────────────────────────────────────────────────────────────────

async def get_tenant_context(
    tenant_id: int = Path(..., description="Tenant ID"),
    x_actor_id: Optional[str] = Header(default=None),
) -> TenantContext:
    """
    FastAPI dependency to resolve the tenant context from the request path.

    The optional X-Actor-Id header names the caller for audit entries;
    identity issuance lives outside this service.

    Usage:
        @router.get("/tenants/{tenant_id}/slots")
        async def list_slots(ctx: TenantContext = Depends(get_tenant_context)):
            ...
    """
    try:
        return TenantContext(tenant_id=tenant_id, actor_id=x_actor_id)
    except ValueError:
        logger.warning(f"Rejected request with invalid tenant id {tenant_id}")
        raise HTTPException(status_code=404, detail="Tenant not found")
