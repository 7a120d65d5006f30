"""JWT token creation and decoding.

Tokens are minted by the identity service; this module only needs to read
them.  `create_access_token` exists for internal tooling and tests.

Token claims:
  - sub:          actor ID (user or driver)
  - tenant_id:    tenant the actor operates in
  - actor_type:   "user" | "driver" | "system"
  - permissions:  list of effective permission strings
  - type:         "access"
  - exp:          expiry timestamp
"""

from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from waybill.config import settings

ALGORITHM = settings.jwt_algorithm


def create_access_token(
    actor_id: str,
    tenant_id: str | None,
    permissions: list[str],
    actor_type: str = "user",
    expires_delta: timedelta | None = None,
) -> str:
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    payload = {
        "sub": actor_id,
        "actor_type": actor_type,
        "permissions": permissions,
        "type": "access",
        "exp": expire,
    }
    if tenant_id:
        payload["tenant_id"] = tenant_id
    return jwt.encode(payload, settings.secret_key, algorithm=ALGORITHM)


def decode_token(token: str) -> dict:
    """Decode and validate a JWT. Returns empty dict on failure."""
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[ALGORITHM])
    except JWTError:
        return {}
