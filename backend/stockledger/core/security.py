"""
Request authentication and company scoping

Tokens are issued by the external authentication service and signed with the
shared SECRET_KEY. This service only verifies them and resolves the caller.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import JWTError, jwt
from fastapi import Depends, HTTPException, status, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from stockledger.core.config import settings
from stockledger.core.database import get_db

bearer_scheme = HTTPBearer(auto_error=False)

TOKEN_COOKIE = "access_token"


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Sign a token the way the issuing service does; used by tests and tooling"""
    lifetime = expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    claims = dict(data, exp=datetime.now(timezone.utc) + lifetime)
    return jwt.encode(claims, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> Optional[dict]:
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        return None


def _extract_token(request: Request, credentials: Optional[HTTPAuthorizationCredentials]) -> Optional[str]:
    # header wins over the cookie
    if credentials and credentials.credentials:
        return credentials.credentials
    return request.cookies.get(TOKEN_COOKIE)


async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    db: Session = Depends(get_db)
):
    """Resolve the User named by the token's `sub` claim"""
    from stockledger.services.repositories import UserRepository

    token = _extract_token(request, credentials)
    if not token:
        raise _unauthorized("Not authenticated")

    claims = decode_access_token(token)
    if claims is None:
        raise _unauthorized("Invalid or expired token")

    username = claims.get("sub")
    if not username:
        raise _unauthorized("Invalid token payload")

    user = UserRepository(db).get_by_username(username)
    if user is None:
        raise _unauthorized("User not found")
    return user


async def get_current_active_user(current_user = Depends(get_current_user)):
    """Caller allowed to act on a ledger: known and not disabled"""
    if not current_user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is disabled"
        )
    return current_user


def company_scope(user) -> Optional[int]:
    """Company the user is restricted to, or None for superusers"""
    if user is None or user.is_superuser:
        return None
    return user.company_id
