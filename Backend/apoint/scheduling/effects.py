"""
Best-effort side effects (notifications and audit entries).

A booking that was committed must not fail because an email could not be
sent or an audit row could not be written: failures are logged and dropped.
"""

import logging
from typing import Any, Optional

logger = logging.getLogger(__name__)


class SideEffects:
    def __init__(self, notifications=None, audit=None):
        self.notifications = notifications
        self.audit = audit

    async def notify(self, event: str, *args, **kwargs) -> bool:
        """Call notifications.<event>(...); returns False when absent or failed."""
        if self.notifications is None:
            return False
        handler = getattr(self.notifications, event, None)
        if handler is None:
            logger.warning(f"Notification gateway has no handler for {event}")
            return False
        try:
            return bool(await handler(*args, **kwargs))
        except Exception:
            logger.warning(f"Notification {event} failed", exc_info=True)
            return False

    async def record(
        self,
        tenant_id: int,
        action: str,
        entity: str,
        entity_id: Optional[str],
        metadata: Optional[dict[str, Any]] = None,
        actor_id: Optional[str] = None,
    ) -> None:
        if self.audit is None:
            return
        try:
            await self.audit.record(
                tenant_id,
                action,
                entity,
                entity_id,
                metadata=metadata,
                actor_id=actor_id,
            )
        except Exception:
            logger.warning(f"Audit {action} for {entity} {entity_id} failed", exc_info=True)
