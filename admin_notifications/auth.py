# auth.py
from typing import Optional

from fastapi import HTTPException, Request
from jose import JWTError, jwt

from .config import Settings

JWT_ALGORITHM = "HS256"
JWT_AUDIENCE = "authenticated"


def decode_access_token(token: str, settings: Settings) -> Optional[dict]:
    """Claims of a backend-issued access token, or None if it does not verify."""
    if not token or not settings.supabase_jwt_secret:
        return None
    try:
        return jwt.decode(
            token,
            settings.supabase_jwt_secret,
            algorithms=[JWT_ALGORITHM],
            audience=JWT_AUDIENCE,
        )
    except JWTError:
        return None


def role_from_claims(claims: dict) -> Optional[str]:
    for key in ("app_metadata", "user_metadata"):
        meta = claims.get(key)
        if isinstance(meta, dict) and meta.get("role"):
            return meta["role"]
    return claims.get("user_role")


def authorize_staff(token: Optional[str], settings: Settings) -> Optional[dict]:
    """Staff user dict for a valid staff token; None for anything else."""
    if not settings.require_auth:
        return {"id": None, "role": "admin"}

    claims = decode_access_token(token or "", settings)
    if claims is None:
        return None
    role = role_from_claims(claims)
    if role not in settings.staff_roles:
        return None
    return {"id": claims.get("sub"), "role": role}


def bearer_token(request: Request) -> Optional[str]:
    auth = request.headers.get("Authorization")
    if not auth or not auth.lower().startswith("bearer "):
        return None
    return auth.split(" ", 1)[1].strip()


def staff_required(settings: Settings):
    """Dependency factory: 401 without a valid token, 403 for non-staff roles."""

    async def get_staff_user(request: Request):
        if not settings.require_auth:
            return {"id": None, "role": "admin"}

        claims = decode_access_token(bearer_token(request) or "", settings)
        if claims is None:
            raise HTTPException(status_code=401, detail="Not authenticated")
        role = role_from_claims(claims)
        if role not in settings.staff_roles:
            raise HTTPException(status_code=403, detail="Forbidden: staff only")
        return {"id": claims.get("sub"), "role": role}

    return get_staff_user
