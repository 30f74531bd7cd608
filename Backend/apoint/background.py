"""
Background tasks.

PeriodicTask runs an async cycle every `interval_seconds` until stopped. A
cycle never starts while the previous one is still running. ReminderCycle is
the cycle used for automatic reminders: each tenant runs in isolation, so one
failing tenant is logged and the rest are still processed.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from .tenancy.context import tenant_context_for_background

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 300
MIN_INTERVAL_SECONDS = 15


@dataclass(frozen=True)
class SchedulerConfig:
    enabled: bool = True
    interval_seconds: float = DEFAULT_INTERVAL_SECONDS

    @property
    def effective_interval(self) -> float:
        if not self.interval_seconds or self.interval_seconds <= 0:
            return DEFAULT_INTERVAL_SECONDS
        return max(self.interval_seconds, MIN_INTERVAL_SECONDS)


class PeriodicTask:
    def __init__(self, name: str, cycle: Callable[[], Awaitable[None]], config: SchedulerConfig):
        self.name = name
        self.cycle = cycle
        self.config = config
        self.is_running = False
        self._task: Optional[asyncio.Task] = None

    @property
    def started(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> bool:
        """Run one cycle. Returns False if a cycle was already in progress."""
        if self.is_running:
            return False
        self.is_running = True
        try:
            await self.cycle()
        except Exception:
            logger.exception(f"{self.name} cycle failed")
        finally:
            self.is_running = False
        return True

    async def _loop(self) -> None:
        interval = self.config.effective_interval
        while True:
            await self.run_once()
            await asyncio.sleep(interval)

    def start(self) -> bool:
        if not self.config.enabled:
            logger.info(f"{self.name} disabled")
            return False
        if self.started:
            return False
        self._task = asyncio.create_task(self._loop(), name=self.name)
        logger.info(f"{self.name} enabled every {self.config.effective_interval}s")
        return True

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass


class ReminderCycle:
    """
    One pass over every tenant with reminders enabled.

    `store_factory` is an async context manager factory yielding a
    SchedulingStore; `dispatcher_factory(store)` builds a ReminderDispatcher.
    Each tenant gets its own store so a failed tenant cannot poison the next.
    """

    def __init__(self, store_factory, dispatcher_factory, actor_id: str = "system:reminder-scheduler"):
        self.store_factory = store_factory
        self.dispatcher_factory = dispatcher_factory
        self.actor_id = actor_id

    async def __call__(self) -> None:
        async with self.store_factory() as store:
            tenant_ids = list(await store.tenants.list_reminder_tenant_ids())

        for tenant_id in tenant_ids:
            try:
                ctx = tenant_context_for_background(tenant_id, self.actor_id)
                async with self.store_factory() as store:
                    dispatcher = self.dispatcher_factory(store)
                    await dispatcher.run_due_reminders_for_tenant(ctx.tenant_id, ctx.actor_id)
            except Exception as exc:
                logger.warning(f"Reminder run failed for tenant {tenant_id}: {exc}")
