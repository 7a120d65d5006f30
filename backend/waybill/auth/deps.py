"""FastAPI dependencies for the calling actor and authorization.

Dependencies:
  get_current_actor       → decode JWT, return Actor (no DB hit)
  get_tenant_id           → tenant id of the current actor (or raise)
  require_permission(...) → restrict to actors holding granular permissions
"""

from dataclasses import dataclass, field

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from waybill.auth.jwt import decode_token
from waybill.auth.permissions import has_permission
from waybill.middleware.exceptions import PermissionDeniedError, TenantContextError

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")


@dataclass
class Actor:
    """Who is calling: user, driver or system, scoped to one tenant."""
    id: str
    tenant_id: str | None
    actor_type: str = "user"
    permissions: list[str] = field(default_factory=list)


# ── Core actor dependency ───────────────────────────────────

async def get_current_actor(token: str = Depends(oauth2_scheme)) -> Actor:
    """Decode the JWT and return the actor it describes."""
    payload = decode_token(token)
    actor_id: str | None = payload.get("sub")
    if not actor_id or payload.get("type") != "access":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    tenant_id = payload.get("tenant_id")
    return Actor(
        id=actor_id,
        tenant_id=str(tenant_id) if tenant_id else None,
        actor_type=payload.get("actor_type", "user"),
        permissions=payload.get("permissions", []),
    )


# ── Tenant context from JWT ─────────────────────────────────

async def get_tenant_id(actor: Actor = Depends(get_current_actor)) -> str:
    """Return the tenant id from the JWT claims.

    Raises 403 if the token is not tenant-scoped.
    """
    if not actor.tenant_id:
        raise TenantContextError("No tenant context — this endpoint requires a tenant-scoped token")
    return actor.tenant_id


# ── Permission-based access control ─────────────────────────

def require_permission(*perms: str):
    """Dependency factory — restrict to actors who hold ALL listed permissions.

    Usage:
        @router.post("/{manifest_id}/shipments")
        async def add(actor: Actor = Depends(require_permission("manifest.write"))):
            ...
    """
    async def _check(actor: Actor = Depends(get_current_actor)) -> Actor:
        missing = [p for p in perms if not has_permission(actor.permissions, p)]
        if missing:
            raise PermissionDeniedError(f"Missing permissions: {', '.join(missing)}")
        return actor

    return _check
