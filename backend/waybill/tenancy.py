"""Multi-tenancy: row-level isolation keyed by tenant id.

Key components:
  - _tenant_ctx      ContextVar holding the tenant id for the current request
  - set / clear helpers for the ContextVar
  - validate_tenant_id()   rejects malformed ids before they reach a query

Tenant resolution itself belongs to the identity service; the id arrives
as the `tenant_id` claim of the bearer token.
"""

import re
from contextvars import ContextVar

# ── Request-scoped tenant context ───────────────────────────

_tenant_ctx: ContextVar[str | None] = ContextVar("_tenant_ctx", default=None)


def set_current_tenant(tenant_id: str) -> None:
    _tenant_ctx.set(tenant_id)


def clear_tenant_context() -> None:
    _tenant_ctx.set(None)


# ── Validation ──────────────────────────────────────────────

_TENANT_RE = re.compile(r"^[A-Za-z0-9_-]{1,36}$")


def validate_tenant_id(tenant_id: str) -> str:
    """Only allow short alphanumeric ids (uuid, slug or numeric org id)."""
    if not _TENANT_RE.match(tenant_id):
        raise ValueError(f"Invalid tenant id: {tenant_id!r}")
    return tenant_id
