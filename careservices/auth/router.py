"""
Authentication router.

This module provides FastAPI router for authentication endpoints:
- Login and logout
- Current user profile
- Self-service password change
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from datetime import datetime
from typing import Optional

from careservices.base_microservice import (
    BaseMicroservice, AsyncSessionLocal, Base, engine, get_db_session
)
from careservices.auth.users import UserService, LoginRequest, PasswordChange, session_user
from careservices.auth.jwt import TokenData, get_current_user
from careservices.auth.errors import InternalError, NotFoundError
from careservices.auth.seed import seed_admin_user

# Create router
router = APIRouter(tags=["auth"])

# Create service instance
base_service = BaseMicroservice("auth")


async def start_auth_service():
    """Initialize the auth service."""
    base_service.log_event("service.startup", {"service": "auth"})

    try:
        # Create missing tables
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        async with AsyncSessionLocal() as session:
            await seed_admin_user(session)
    except Exception as e:
        base_service.log_error(e, context="Auth service startup")
        raise

# --- Basic Auth Endpoints ---

@router.post("/login")
async def login(
    login_data: Optional[LoginRequest] = None,
    db: AsyncSession = Depends(get_db_session)
):
    """
    Authenticate a user and return a token.

    Args:
        login_data: Email and password, a missing body counts as empty
        db: Database session

    Returns:
        Envelope with the token and user information
    """
    login_data = login_data or LoginRequest()
    try:
        user_info, token = await UserService.authenticate_user(login_data, db)

        # Log event
        base_service.log_event("user.login", {
            "id": user_info["id"],
            "role": user_info["role"]
        })

        return base_service.api_response(
            data={"token": token, "user": user_info},
            message="Login successful"
        )
    except HTTPException as e:
        # Log failed login attempt
        base_service.log_event("user.login.failed", {
            "email": login_data.email,
            "reason": str(e.detail)
        })
        raise
    except Exception as e:
        base_service.log_error(e, context="User login")
        raise InternalError()


@router.get("/me")
async def get_current_user_info(
    token_data: TokenData = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session)
):
    """
    Get information about the current authenticated user.

    Args:
        token_data: Token data from authentication
        db: Database session

    Returns:
        Envelope with user information
    """
    try:
        user = await UserService.get_user_by_id(token_data.user_id, db)

        if user is None:
            raise NotFoundError("User not found")

        return base_service.api_response(data=session_user(user))
    except HTTPException:
        raise
    except Exception as e:
        base_service.log_error(e, context="Get current user")
        raise InternalError()


@router.post("/logout")
async def logout(token_data: TokenData = Depends(get_current_user)):
    """
    Log out the current user.

    Tokens are not tracked server-side; the client discards its copy.
    """
    base_service.log_event("user.logout", {"id": token_data.user_id})
    return base_service.api_response(message="Logged out successfully")


@router.put("/change-password")
async def change_password(
    change_data: Optional[PasswordChange] = None,
    token_data: TokenData = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session)
):
    """
    Change the current user's password.

    Args:
        change_data: Current and new password
        token_data: Token data from authentication
        db: Database session

    Returns:
        Envelope with a fresh token reflecting the cleared must-change flag
    """
    change_data = change_data or PasswordChange()
    try:
        token = await UserService.change_password(token_data, change_data, db)

        # Log event
        base_service.log_event("user.password.changed", {
            "id": token_data.user_id
        })

        return base_service.api_response(
            data={"token": token},
            message="Password changed successfully"
        )
    except HTTPException:
        raise
    except Exception as e:
        base_service.log_error(e, context="Change password")
        raise InternalError()

# --- Health Check ---

@router.get("/ping")
async def ping():
    """
    Health check endpoint for the auth service.
    """
    return base_service.api_response(
        data={"timestamp": datetime.utcnow().isoformat()},
        message="Auth service is alive"
    )
