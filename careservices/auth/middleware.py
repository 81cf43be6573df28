"""
Authorization middleware.

This module provides the gates applied after authentication:
- Role-based access control (exact role membership)
- Worker type access control (office vs ground staff)
- Forced password rotation after an administrative reset

Role and worker type checks are independent; routes combine them as needed.
"""
from typing import Iterable, Optional
from fastapi import Depends
from careservices.auth.jwt import get_current_user, TokenData
from careservices.auth.errors import (
    AuthenticationError, AuthorizationError, PasswordChangeRequiredError
)
from careservices.auth.models import MANAGEMENT_ROLES, Role, WorkerType, worker_type_of


def _values(items: Iterable) -> list:
    return [getattr(item, "value", item) for item in items]


def check_roles(token_data: Optional[TokenData], roles: Iterable) -> TokenData:
    """
    Ensure the caller's role is one of ``roles``.

    Raises:
        AuthenticationError: If there are no claims
        AuthorizationError: If the role is not allowed
    """
    if token_data is None:
        raise AuthenticationError("Authentication required")

    allowed = _values(roles)
    if token_data.role not in allowed:
        raise AuthorizationError(
            f"Access denied. Required roles: {', '.join(allowed)}. Your role: {token_data.role}"
        )
    return token_data


def check_worker_types(token_data: Optional[TokenData], worker_types: Iterable) -> TokenData:
    """
    Ensure the caller's derived worker type is one of ``worker_types``.

    The derived type is attached to the claims as ``worker_type``.

    Raises:
        AuthenticationError: If there are no claims
        AuthorizationError: If the role is unknown or the type is not allowed
    """
    if token_data is None:
        raise AuthenticationError("Authentication required")

    try:
        worker_type = worker_type_of(token_data.role).value
    except ValueError:
        raise AuthorizationError("Invalid user role")

    allowed = _values(worker_types)
    if worker_type not in allowed:
        raise AuthorizationError(
            f"Access denied. Required worker types: {', '.join(allowed)}. Your type: {worker_type}"
        )

    token_data.worker_type = worker_type
    return token_data


def check_password_current(token_data: Optional[TokenData]) -> TokenData:
    """Reject callers that still have to replace a reset password."""
    if token_data is None:
        raise AuthenticationError("Authentication required")
    if token_data.must_change_password:
        raise PasswordChangeRequiredError()
    return token_data


class RBACMiddleware:
    """
    Role-Based Access Control middleware.

    Creates FastAPI dependencies for protecting routes based on:
    - User authentication
    - Role requirements
    - Worker type requirements
    - Pending password changes
    """

    @staticmethod
    def has_roles(roles: Iterable):
        """
        Dependency to check if the user has any of the specified roles.

        Args:
            roles: Allowed role names (any match is sufficient)

        Returns:
            Dependency function
        """
        allowed = tuple(roles)

        async def verify_roles(token_data: TokenData = Depends(get_current_user)):
            return check_roles(token_data, allowed)

        return verify_roles

    @staticmethod
    def has_worker_types(worker_types: Iterable):
        """
        Dependency to check if the user's role belongs to an allowed worker type.

        Args:
            worker_types: Allowed worker types

        Returns:
            Dependency function
        """
        allowed = tuple(worker_types)

        async def verify_worker_types(token_data: TokenData = Depends(get_current_user)):
            return check_worker_types(token_data, allowed)

        return verify_worker_types

    @staticmethod
    def password_current():
        """
        Dependency rejecting users flagged with must_change_password.

        Returns:
            Dependency function
        """
        async def verify_password_current(token_data: TokenData = Depends(get_current_user)):
            return check_password_current(token_data)

        return verify_password_current


require_admin = RBACMiddleware.has_roles([Role.ADMIN])
require_management = RBACMiddleware.has_roles(MANAGEMENT_ROLES)
require_office_worker = RBACMiddleware.has_worker_types([WorkerType.OFFICE_WORKER])
require_password_current = RBACMiddleware.password_current()
