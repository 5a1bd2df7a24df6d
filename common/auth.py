# common/auth.py
import os
from typing import Callable

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from .capabilities import Caller, Capability, Role

# Tokens are issued by the identity provider; every service shares the key.
SECRET_KEY = os.getenv("JWT_SECRET_KEY", "super-secret-smart-meeting-room-key")
ALGORITHM = "HS256"

security = HTTPBearer()


def decode_caller(token: str) -> Caller:
    """
    Decode a JWT access token into a Caller.

    Parameters
    ----------
    token : str
        Encoded JWT carrying ``sub``, ``user_id`` and ``role`` claims.

    Returns
    -------
    Caller
        Identity of the token holder.

    Raises
    ------
    HTTPException
        401 if the token is invalid, expired, or its claims are missing or
        carry an unknown role.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        raise credentials_exception

    username = payload.get("sub")
    user_id = payload.get("user_id")
    role = payload.get("role")
    if username is None or user_id is None or role is None:
        raise credentials_exception

    try:
        return Caller(user_id=int(user_id), username=username, role=Role(role))
    except ValueError:
        raise credentials_exception


async def get_current_caller(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> Caller:
    return decode_caller(credentials.credentials)


def require_capability(capability: Capability) -> Callable:
    """
    Build a dependency that only lets callers holding ``capability`` through.

    Parameters
    ----------
    capability : Capability
        Capability the route requires.

    Returns
    -------
    Callable
        A FastAPI dependency returning the Caller, or raising HTTP 403.
    """

    async def dependency(caller: Caller = Depends(get_current_caller)) -> Caller:
        if not caller.can(capability):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Operation not permitted for this role",
            )
        return caller

    return dependency
