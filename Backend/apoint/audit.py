"""
Audit log recorders.

Audit entries are append-only and best effort. SqlAuditRecorder writes each
entry in its own short session so that a failed audit insert can never roll
back (or be rolled back with) the booking transaction.
"""

import logging
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .models import AuditLog

logger = logging.getLogger(__name__)


async def log_audit(
    session: AsyncSession,
    *,
    tenant_id: int,
    action: str,
    entity: str,
    entity_id: Optional[str] = None,
    metadata: Optional[dict] = None,
    actor_id: Optional[str] = None,
) -> AuditLog:
    """
    Create an audit log entry.

    Do NOT include customer emails or other PII in metadata.
    The caller controls the transaction; this only flushes.
    """
    audit_log = AuditLog(
        tenant_id=tenant_id,
        actor_id=actor_id,
        action=action,
        entity=entity,
        entity_id=entity_id,
        metadata_json=metadata or {},
    )
    session.add(audit_log)
    await session.flush()

    logger.info(f"Audit: {action} by {actor_id or 'anonymous'} (tenant={tenant_id}, target={entity}:{entity_id})")
    return audit_log


class SqlAuditRecorder:
    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def record(
        self,
        tenant_id: int,
        action: str,
        entity: str,
        entity_id: Optional[str],
        metadata: Optional[dict[str, Any]] = None,
        actor_id: Optional[str] = None,
    ) -> None:
        async with self.session_factory() as session:
            await log_audit(
                session,
                tenant_id=tenant_id,
                action=action,
                entity=entity,
                entity_id=entity_id,
                metadata=metadata,
                actor_id=actor_id,
            )
            await session.commit()
