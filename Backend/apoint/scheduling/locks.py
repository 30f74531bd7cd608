"""
In-process lock registry keyed by (tenant_id, staff_id), plus one lock per tenant.

Shared by every store in the process so that two requests for the same staff
member never run their check-and-write concurrently. When a tenant has booking
caps, the counts span all of its staff, so writes that are counted also take
the tenant lock. The tenant lock is always acquired before the staff lock.
Cross-process serialization is added on top by the SQL store (advisory locks).
"""

import asyncio
from contextlib import AsyncExitStack, asynccontextmanager
from typing import AsyncIterator


class InProcessStaffLocks:
    def __init__(self):
        self._locks: dict[tuple[int, int], asyncio.Lock] = {}
        self._tenant_locks: dict[int, asyncio.Lock] = {}

    def lock_for(self, tenant_id: int, staff_id: int) -> asyncio.Lock:
        key = (tenant_id, staff_id)
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    def tenant_lock_for(self, tenant_id: int) -> asyncio.Lock:
        lock = self._tenant_locks.get(tenant_id)
        if lock is None:
            lock = asyncio.Lock()
            self._tenant_locks[tenant_id] = lock
        return lock

    @asynccontextmanager
    async def hold(self, tenant_id: int, staff_id: int, tenant_wide: bool = False) -> AsyncIterator[None]:
        async with AsyncExitStack() as stack:
            if tenant_wide:
                await stack.enter_async_context(self.tenant_lock_for(tenant_id))
            await stack.enter_async_context(self.lock_for(tenant_id, staff_id))
            yield

    def __len__(self) -> int:
        return len(self._locks)


staff_locks = InProcessStaffLocks()
