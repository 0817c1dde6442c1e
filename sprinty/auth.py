from typing import Optional

from fastapi import Header, HTTPException

BEARER_SCHEME = "bearer"


def get_current_user(authorization: Optional[str] = Header(default=None)) -> str:
    """Resolve the acting user from a ``Bearer <user id>`` header.

    Token verification and organization/role checks belong to the gateway in
    front of this service; the bearer value is only recorded on activity rows.
    """
    if authorization is None:
        raise HTTPException(status_code=401, detail="missing_token")
    scheme, _, user_id = authorization.partition(" ")
    user_id = user_id.strip()
    if scheme.lower() != BEARER_SCHEME or not user_id:
        raise HTTPException(status_code=401, detail="invalid_token")
    return user_id
