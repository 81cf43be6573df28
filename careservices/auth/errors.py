"""
Error taxonomy for the auth service.

Every error is an HTTPException so routes can re-raise them untouched and the
application handlers render them as ``{success: false, error, details?}``.
"""
from typing import Dict, List, Optional
from fastapi import HTTPException, status


class ServiceError(HTTPException):
    """Base class for errors rendered with the failure envelope."""
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(
        self,
        message: str,
        details: Optional[List[str]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        super().__init__(status_code=self.status_code, detail=message, headers=headers)
        self.details = details


class ValidationError(ServiceError):
    status_code = status.HTTP_400_BAD_REQUEST


class AuthenticationError(ServiceError):
    status_code = status.HTTP_401_UNAUTHORIZED


class InvalidTokenError(AuthenticationError):
    status_code = status.HTTP_403_FORBIDDEN

    def __init__(self, message: str = "Invalid token"):
        super().__init__(message)


class AuthorizationError(ServiceError):
    status_code = status.HTTP_403_FORBIDDEN


class PasswordChangeRequiredError(AuthorizationError):
    def __init__(self, message: str = "Password change required"):
        super().__init__(message)


class NotFoundError(ServiceError):
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(ServiceError):
    status_code = status.HTTP_409_CONFLICT


class InternalError(ServiceError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self):
        super().__init__("Internal server error")


def error_body(message: str, details: Optional[List[str]] = None) -> Dict:
    """Build the failure envelope."""
    body = {"success": False, "error": message}
    if details:
        body["details"] = details
    return body
