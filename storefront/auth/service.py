# storefront/auth/service.py

from datetime import timedelta, datetime, timezone
from typing import Annotated, Optional
from uuid import uuid4

import jwt
from fastapi import Depends, Request, Response

from ..core.config import settings
from ..core.exceptions import AuthenticationError, AuthorizationError, ErrorCode
from ..database.core import DbSession
from ..logging import logger
from ..services import denylist_service
from ..users.models import User

SECRET_KEY = settings.JWT_SECRET
ALGORITHM = settings.JWT_ALGORITHM
COOKIE_NAME = settings.JWT_COOKIE_NAME


def token_lifetime(remember_me: bool = False) -> timedelta:
    days = settings.REMEMBER_ME_EXPIRE_DAYS if remember_me else settings.TOKEN_EXPIRE_DAYS
    return timedelta(days=days)


def create_token(user_id: int, expires_delta: Optional[timedelta] = None) -> str:
    """Creates a signed JWT carrying the user id and a unique ID (jti)."""
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta if expires_delta is not None else token_lifetime())
    payload = {
        'id': user_id,
        'iat': now,
        'exp': expire,
        'jti': str(uuid4()),
    }
    return jwt.encode(payload, SECRET_KEY, algorithm=ALGORITHM)


def decode_token(token: str) -> dict:
    """Verify signature and expiry, distinguishing an expired token from a bad one."""
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Token expired", code=ErrorCode.TOKEN_EXPIRED)
    except jwt.PyJWTError as e:
        logger.warning(f"JWT decode error: {e}")
        raise AuthenticationError("Invalid token", code=ErrorCode.INVALID_TOKEN)

    if payload.get('id') is None:
        raise AuthenticationError("Invalid token", code=ErrorCode.INVALID_TOKEN)

    jti = payload.get('jti')
    if jti and denylist_service.is_token_denylisted(jti):
        raise AuthenticationError("Token has been revoked", code=ErrorCode.INVALID_TOKEN)
    return payload


def set_auth_cookie(response: Response, token: str, remember_me: bool = False, samesite: Optional[str] = None):
    """Utility to set the auth token in an httpOnly cookie."""
    response.set_cookie(
        key=COOKIE_NAME,
        value=token,
        httponly=True,
        samesite=samesite or settings.JWT_COOKIE_SAMESITE,
        secure=settings.COOKIE_SECURE,
        max_age=int(token_lifetime(remember_me).total_seconds()),
        path="/",
    )


def clear_auth_cookie(response: Response):
    """Utility to clear the auth token cookie."""
    response.delete_cookie(
        key=COOKIE_NAME,
        path="/",
        httponly=True,
        samesite=settings.JWT_COOKIE_SAMESITE,
        secure=settings.COOKIE_SECURE,
    )


def issue_login(response: Response, user: User, remember_me: bool = False, samesite: Optional[str] = None) -> str:
    token = create_token(user.id, token_lifetime(remember_me))
    set_auth_cookie(response, token, remember_me=remember_me, samesite=samesite)
    return token


def extract_token(request: Request) -> Optional[str]:
    """Bearer header first, then the auth cookie."""
    authorization = request.headers.get("Authorization", "")
    if authorization.lower().startswith("bearer "):
        token = authorization[7:].strip()
        if token:
            return token
    return request.cookies.get(COOKIE_NAME) or None


def revoke_token(token: Optional[str]) -> None:
    """Denylist a token for the rest of its lifetime; unreadable tokens are ignored."""
    if not token:
        return
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM], options={"verify_exp": False})
    except jwt.PyJWTError:
        logger.warning("Logout attempt with undecodable token")
        return

    jti = payload.get('jti')
    exp = payload.get('exp')
    now = datetime.now(timezone.utc).timestamp()
    if jti and exp and now < exp:
        denylist_service.add_token_to_denylist(jti, timedelta(seconds=int(exp - now)))
        logger.info(f"User {payload.get('id')} logged out. Token JTI {jti} denylisted.")


def get_current_user(request: Request, db: DbSession) -> User:
    """FastAPI dependency resolving the authenticated, active user."""
    token = extract_token(request)
    if not token:
        raise AuthenticationError("Not authorized, no token")

    payload = decode_token(token)
    user = db.get(User, payload['id'])
    if user is None:
        raise AuthenticationError("User not found")
    if not user.is_active:
        raise AuthorizationError("Account is deactivated", code=ErrorCode.ACCOUNT_DEACTIVATED)

    request.state.user_id = user.id
    return user


CurrentUser = Annotated[User, Depends(get_current_user)]


def require_admin(current_user: CurrentUser) -> User:
    if not current_user.is_admin:
        logger.warning(f"Non-admin user {current_user.id} attempted an admin action")
        raise AuthorizationError("Not authorized as admin")
    return current_user


AdminUser = Annotated[User, Depends(require_admin)]
