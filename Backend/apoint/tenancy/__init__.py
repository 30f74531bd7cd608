"""
Multi-tenancy package for the booking engine.

Modules:
    context: TenantContext and the FastAPI dependency that builds it
    queries: Tenant-scoped query helpers
"""

from .context import (
    TenantContext,
    TenantResolutionSource,
    get_tenant_context,
    tenant_context_for_background,
)

from .queries import (
    # Composable helpers
    scoped_select,
    tenant_filter,
    staff_scope_filter,
    require_owned,
    # Availability queries
    list_rules_for_weekday,
    list_blocking_exceptions_for_date,
    # Booking queries
    list_active_bookings_overlapping,
    count_active_bookings_starting_between,
    list_active_bookings_starting_between,
    # Waitlist queries
    waiting_entries_for,
)

__all__ = [
    "TenantContext",
    "TenantResolutionSource",
    "get_tenant_context",
    "tenant_context_for_background",
    "scoped_select",
    "tenant_filter",
    "staff_scope_filter",
    "require_owned",
    "list_rules_for_weekday",
    "list_blocking_exceptions_for_date",
    "list_active_bookings_overlapping",
    "count_active_bookings_starting_between",
    "list_active_bookings_starting_between",
    "waiting_entries_for",
]
