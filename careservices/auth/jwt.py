"""
JWT token handling for authentication.

This module provides functionality for:
- Creating JWT access tokens
- Validating JWT access tokens
- The ``authenticate`` gate used by every protected route
"""
import os
import secrets
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional
import jwt
from jwt.exceptions import PyJWTError
from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from pydantic import BaseModel
from careservices.base_microservice import APP_ENV
from careservices.auth.errors import AuthenticationError, InvalidTokenError

logger = logging.getLogger("careservices.auth")

DEVELOPMENT_ENVIRONMENTS = ("development", "test")


def _resolve_secret_key() -> str:
    """
    Read the signing secret from the environment.

    Outside development and test a missing secret aborts startup.
    """
    secret = os.getenv("JWT_SECRET_KEY", "").strip()
    if secret:
        return secret
    if APP_ENV in DEVELOPMENT_ENVIRONMENTS:
        logger.warning(
            "JWT_SECRET_KEY is not set; using a random key for this process (APP_ENV=%s)",
            APP_ENV,
        )
        return secrets.token_urlsafe(48)
    raise RuntimeError(
        f"JWT_SECRET_KEY must be set when APP_ENV is '{APP_ENV}'"
    )


# JWT Configuration
SECRET_KEY = _resolve_secret_key()
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_HOURS = int(os.getenv("ACCESS_TOKEN_EXPIRE_HOURS", 24))

# Authentication scheme; missing tokens are reported by get_current_user
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/login", auto_error=False)


class TokenData(BaseModel):
    """Token payload model."""
    user_id: int
    email: Optional[str] = None
    role: str
    must_change_password: bool = False
    exp: Optional[int] = None  # Expiration time
    worker_type: Optional[str] = None  # Set by the worker type gate


def create_access_token(
    user_id: int,
    email: str,
    role: str,
    must_change_password: bool = False,
    expires_delta: Optional[timedelta] = None
) -> str:
    """
    Create a JWT access token.

    Args:
        user_id: User's ID
        email: User's email
        role: User's role
        must_change_password: Whether the user still has to rotate their password
        expires_delta: Custom expiration time, defaults to ACCESS_TOKEN_EXPIRE_HOURS

    Returns:
        Encoded JWT token string
    """
    issued_at = datetime.now(timezone.utc)
    expires = issued_at + (expires_delta or timedelta(hours=ACCESS_TOKEN_EXPIRE_HOURS))
    to_encode = {
        "userId": user_id,
        "email": email,
        "role": role,
        "mustChangePassword": bool(must_change_password),
        "iat": issued_at,
        "exp": expires,
    }
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def verify_token(token: str) -> TokenData:
    """
    Verify a JWT token and return its data.

    Args:
        token: JWT token string

    Returns:
        TokenData for a valid token

    Raises:
        InvalidTokenError: If the token is malformed, expired or badly signed
    """
    try:
        payload = jwt.decode(
            token,
            SECRET_KEY,
            algorithms=[ALGORITHM],
            options={"require": ["exp"]},
        )
        return TokenData(
            user_id=int(payload["userId"]),
            email=payload.get("email"),
            role=str(payload["role"]),
            must_change_password=bool(payload.get("mustChangePassword", False)),
            exp=payload.get("exp"),
        )
    except PyJWTError:
        raise InvalidTokenError()
    except (KeyError, ValueError, TypeError):
        # Signed by us but missing userId/role
        raise InvalidTokenError()


async def get_current_user(
    request: Request,
    token: Optional[str] = Depends(oauth2_scheme)
) -> TokenData:
    """
    FastAPI dependency to get the current authenticated user from token.

    Args:
        request: Incoming request, the claims are stored on request.state.user
        token: JWT token from Authorization header

    Returns:
        TokenData object for the authenticated user

    Raises:
        AuthenticationError: If no bearer token was sent (401)
        InvalidTokenError: If the token is invalid or expired (403)
    """
    if not token:
        raise AuthenticationError(
            "Access token required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token_data = verify_token(token)
    request.state.user = token_data
    return token_data
