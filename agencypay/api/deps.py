"""Shared dependencies: bearer-token identity and module permissions."""
from typing import Annotated, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from pydantic import BaseModel

from agencypay.config import settings
from agencypay.rbac import ACTION_BY_METHOD, has_permission

security = HTTPBearer(auto_error=False)


class AuthenticatedUser(BaseModel):
    """Identity taken from the token; every query is scoped to agency_id."""
    user_id: str
    agency_id: str
    role: str


def decode_token(token: str) -> AuthenticatedUser:
    try:
        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    user_id = payload.get("sub")
    agency_id = payload.get("agency_id")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token")
    if not agency_id:
        raise HTTPException(status_code=403, detail="User not associated with an agency")
    return AuthenticatedUser(user_id=user_id, agency_id=agency_id, role=payload.get("role", ""))


async def get_current_user(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
) -> AuthenticatedUser:
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return decode_token(credentials.credentials)


def require_module_permission(module: str):
    async def checker(
        request: Request,
        user: Annotated[AuthenticatedUser, Depends(get_current_user)],
    ):
        method = request.method.upper()
        action = ACTION_BY_METHOD.get(method)
        if not action:
            raise HTTPException(status_code=405, detail=f"Unsupported method for permission check: {method}")
        if not has_permission(user.role, module, action):
            raise HTTPException(status_code=403, detail=f"Missing {module}.{action} permission")
        return user

    return checker


# Type aliases for route injection
CurrentUser = Annotated[AuthenticatedUser, Depends(get_current_user)]
