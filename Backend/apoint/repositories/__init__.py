"""
Adapters for the scheduling ports.

    sql: AsyncSession-backed repositories and the advisory-locked store
    memory: process-local store used by tests
"""

from .memory import MemoryAuditRecorder, MemorySchedulingStore, MemoryStore
from .sql import SqlSchedulingStore, advisory_lock_key

__all__ = [
    "MemoryAuditRecorder",
    "MemorySchedulingStore",
    "MemoryStore",
    "SqlSchedulingStore",
    "advisory_lock_key",
]
