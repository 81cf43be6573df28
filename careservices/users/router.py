from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from careservices.base_microservice import BaseMicroservice, get_db_session
from careservices.auth.jwt import TokenData
from careservices.auth.middleware import require_management, require_password_current
from careservices.auth.users import UserService, WorkerCreate, WorkerUpdate
from careservices.auth.errors import InternalError, ValidationError

# Every route needs a management role and a rotated password
router = APIRouter(
    tags=["users"],
    dependencies=[Depends(require_management), Depends(require_password_current)],
)
users_service = BaseMicroservice("users")


def parse_user_id(raw: str) -> int:
    try:
        user_id = int(raw)
    except (TypeError, ValueError):
        raise ValidationError("Invalid user ID")
    if user_id < 1:
        raise ValidationError("Invalid user ID")
    return user_id


async def start_users_service():
    users_service.log_event("service.startup", {"service": "users"})


@router.get("")
async def list_users(db: AsyncSession = Depends(get_db_session)):
    """
    List active users ordered by name.
    """
    try:
        users = await UserService.list_users(db)
        return users_service.api_response(data=users)
    except HTTPException:
        raise
    except Exception as e:
        users_service.log_error(e, context="List users")
        raise InternalError()


@router.post("")
async def create_worker(
    worker_data: WorkerCreate,
    token_data: TokenData = Depends(require_management),
    db: AsyncSession = Depends(get_db_session)
):
    """
    Create a worker. A generated password is returned once, in this response only.
    """
    try:
        user, generated_password = await UserService.create_worker(worker_data, db)

        users_service.log_event("user.created", {
            "id": user["id"],
            "role": user["role"],
            "worker_type": worker_data.worker_type,
            "created_by": token_data.user_id
        })

        if worker_data.send_welcome_email:
            # No mail transport is configured; the creator shares credentials
            users_service.log_event("user.welcome_email.skipped", {"id": user["id"]})

        if generated_password is not None:
            user["generated_password"] = generated_password
            message = "Worker created successfully. Please share the generated password securely with the worker."
        else:
            message = "Worker created successfully."

        return users_service.api_response(
            data=user,
            message=message,
            status_code=status.HTTP_201_CREATED
        )
    except HTTPException:
        raise
    except Exception as e:
        users_service.log_error(e, context="Create worker")
        raise InternalError()


@router.put("/{user_id}")
async def update_user(
    user_id: str,
    update_data: WorkerUpdate,
    token_data: TokenData = Depends(require_management),
    db: AsyncSession = Depends(get_db_session)
):
    """
    Update a worker's profile, email or role.
    """
    try:
        target_id = parse_user_id(user_id)
        user = await UserService.update_user(target_id, update_data, db)

        users_service.log_event("user.updated", {
            "id": target_id,
            "fields_updated": list(update_data.model_dump(exclude_unset=True).keys()),
            "updated_by": token_data.user_id
        })

        return users_service.api_response(data=user, message="User updated successfully")
    except HTTPException:
        raise
    except Exception as e:
        users_service.log_error(e, context="Update user")
        raise InternalError()


@router.delete("/{user_id}")
async def deactivate_user(
    user_id: str,
    token_data: TokenData = Depends(require_management),
    db: AsyncSession = Depends(get_db_session)
):
    """
    Deactivate (soft delete) a worker.
    """
    try:
        target_id = parse_user_id(user_id)
        user = await UserService.deactivate_user(target_id, db)

        users_service.log_event("user.deactivated", {
            "id": target_id,
            "deactivated_by": token_data.user_id
        })

        return users_service.api_response(
            message=f"User {user.full_name} has been deactivated"
        )
    except HTTPException:
        raise
    except Exception as e:
        users_service.log_error(e, context="Deactivate user")
        raise InternalError()


@router.post("/{user_id}/reset-password")
async def reset_password(
    user_id: str,
    token_data: TokenData = Depends(require_management),
    db: AsyncSession = Depends(get_db_session)
):
    """
    Reset a worker's password and flag it for change at next login.
    """
    try:
        target_id = parse_user_id(user_id)
        result = await UserService.reset_password(target_id, db)

        users_service.log_event("user.password.reset", {
            "id": target_id,
            "reset_by": token_data.user_id
        })

        return users_service.api_response(
            data=result,
            message="Password reset successfully. Please share the new password securely with the user."
        )
    except HTTPException:
        raise
    except Exception as e:
        users_service.log_error(e, context="Reset password")
        raise InternalError()
