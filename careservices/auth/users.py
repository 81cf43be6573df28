"""
User management service.

This module provides functionality for:
- User authentication
- Worker creation with issued credentials
- Profile updates and soft deactivation
- Administrative password resets and self-service password changes
"""
import re
import time
from datetime import date, datetime
from decimal import Decimal
from functools import lru_cache
from typing import Optional, List, Dict, Any, Tuple
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from starlette.concurrency import run_in_threadpool
from pydantic import BaseModel, ConfigDict, field_validator
from careservices.base_microservice import AsyncSessionLocal
from careservices.auth.models import User, WorkerType, resolve_role, worker_type_of
from careservices.auth.jwt import create_access_token, TokenData
from careservices.auth.passwords import (
    generate_secure_password, hash_password, verify_password, validate_password
)
from careservices.auth.errors import (
    ValidationError, AuthenticationError, NotFoundError, ConflictError
)

EMAIL_PATTERN = r"^[^\s@]+@[^\s@]+\.[^\s@]+$"

REQUIRED_WORKER_FIELDS = ("first_name", "last_name", "email", "phone", "worker_type", "role")

# Nullable columns the frontend expects as empty strings
BLANK_AS_EMPTY_FIELDS = (
    "address_line1", "address_line2", "city", "postal_code", "phone",
    "mobile", "employee_id", "transport_type", "availability",
)

ROLE_ERRORS = {
    WorkerType.GROUND_WORKER: "Invalid role for ground worker. Must be: carer, senior_carer, or trainee",
    WorkerType.OFFICE_WORKER: "Invalid role for office worker. Must be: admin, coordinator, or supervisor",
}


# Pydantic models for request validation
class LoginRequest(BaseModel):
    """Model for user login."""
    email: Optional[str] = None
    password: Optional[str] = None


class PasswordChange(BaseModel):
    """Model for a self-service password change."""
    current_password: Optional[str] = None
    new_password: Optional[str] = None


class WorkerFields(BaseModel):
    """Profile fields shared by worker creation and update."""
    model_config = ConfigDict(extra="ignore")

    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    role: Optional[str] = None
    worker_type: Optional[str] = None
    employment_type: Optional[str] = None
    start_date: Optional[date] = None
    hourly_rate: Optional[Decimal] = None
    contract_hours_per_week: Optional[Decimal] = None
    address_line1: Optional[str] = None
    address_line2: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None
    emergency_contact_name: Optional[str] = None
    emergency_contact_phone: Optional[str] = None

    @field_validator("start_date", "hourly_rate", "contract_hours_per_week", mode="before")
    @classmethod
    def blank_to_none(cls, v):
        # Forms submit untouched inputs as ""
        if isinstance(v, str) and not v.strip():
            return None
        return v


class WorkerCreate(WorkerFields):
    """Model for creating a worker."""
    employee_id: Optional[str] = None
    employment_type: Optional[str] = "full_time"
    auto_generate_password: bool = True
    custom_password: Optional[str] = None
    send_welcome_email: bool = True


class WorkerUpdate(WorkerFields):
    """Model for a partial worker update."""


class UserOut(BaseModel):
    """Model for user information returned to clients."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    employee_id: Optional[str] = None
    email: str
    first_name: str
    last_name: str
    phone: Optional[str] = None
    mobile: Optional[str] = None
    role: str
    employment_type: Optional[str] = None
    start_date: Optional[date] = None
    contract_hours_per_week: Optional[Decimal] = None
    hourly_rate: Optional[Decimal] = None
    address_line1: Optional[str] = None
    address_line2: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None
    emergency_contact_name: Optional[str] = None
    emergency_contact_phone: Optional[str] = None
    transport_type: Optional[str] = None
    availability: Optional[str] = None
    is_active: bool
    must_change_password: bool = False
    created_at: Optional[datetime] = None
    last_login: Optional[datetime] = None


def normalize_email(email: str) -> str:
    return email.strip().lower()


def serialize_user(user: User) -> Dict[str, Any]:
    """Public representation of a user with null text fields as ''."""
    data = UserOut.model_validate(user).model_dump()
    for field in BLANK_AS_EMPTY_FIELDS:
        if data.get(field) is None:
            data[field] = ""
    return data


def session_user(user: User) -> Dict[str, Any]:
    """User subset returned by login and /auth/me."""
    return {
        "id": user.id,
        "email": user.email,
        "firstName": user.first_name,
        "lastName": user.last_name,
        "role": user.role,
        "mustChangePassword": bool(user.must_change_password),
    }


def issue_token(user: User) -> str:
    return create_access_token(
        user_id=user.id,
        email=user.email,
        role=user.role,
        must_change_password=bool(user.must_change_password),
    )


@lru_cache(maxsize=1)
def _timing_hash() -> str:
    """Hash checked when the email is unknown so both failures cost the same."""
    return hash_password(generate_secure_password())


def _check_email(email: Optional[str]) -> str:
    if not email or not re.match(EMAIL_PATTERN, email.strip()):
        raise ValidationError("Invalid email format")
    return normalize_email(email)


def _check_role(role: Optional[str], worker_type: Optional[str]) -> str:
    """Resolve a role and, when a worker type is given, cross-check it."""
    resolved = resolve_role(role)
    if resolved is None:
        raise ValidationError(f"Invalid role: {role}")
    if worker_type is not None:
        try:
            expected = WorkerType(worker_type)
        except ValueError:
            raise ValidationError("Invalid worker type. Must be: ground_worker or office_worker")
        if worker_type_of(resolved.value) != expected:
            raise ValidationError(ROLE_ERRORS[expected])
    return resolved.value


def _generate_employee_id() -> str:
    return f"EMP{int(time.time() * 1000) % 1000000:06d}"


class UserService:
    """
    Service for user management operations.
    """
    @staticmethod
    async def authenticate_user(
        login_data: LoginRequest,
        db: AsyncSession = None
    ) -> Tuple[Dict[str, Any], str]:
        """
        Authenticate a user and return a token.

        Args:
            login_data: Login credentials
            db: Database session

        Returns:
            Tuple of user information and access token

        Raises:
            ValidationError: If email or password is missing
            AuthenticationError: If the credentials do not match an active user
        """
        if not login_data.email or not login_data.password:
            raise ValidationError("Email and password required")

        close_db = False
        if db is None:
            db = AsyncSessionLocal()
            close_db = True

        try:
            result = await db.execute(
                select(User).where(
                    User.email == normalize_email(login_data.email),
                    User.is_active == True
                )
            )
            user = result.scalar_one_or_none()

            if user is not None:
                stored_hash = user.password_hash
            else:
                stored_hash = await run_in_threadpool(_timing_hash)
            password_ok = await run_in_threadpool(verify_password, login_data.password, stored_hash)

            if user is None or not password_ok:
                raise AuthenticationError("Invalid credentials")

            # Update last login time
            user.last_login = datetime.utcnow()
            await db.commit()

            return session_user(user), issue_token(user)
        finally:
            if close_db:
                await db.close()

    @staticmethod
    async def get_user_by_id(
        user_id: int,
        db: AsyncSession = None,
        active_only: bool = True
    ) -> Optional[User]:
        """
        Get user by ID.

        Args:
            user_id: User ID
            db: Database session
            active_only: Ignore deactivated users

        Returns:
            User or None if not found
        """
        close_db = False
        if db is None:
            db = AsyncSessionLocal()
            close_db = True

        try:
            query = select(User).where(User.id == user_id)
            if active_only:
                query = query.where(User.is_active == True)
            result = await db.execute(query)
            return result.scalar_one_or_none()
        finally:
            if close_db:
                await db.close()

    @staticmethod
    async def list_users(db: AsyncSession = None) -> List[Dict[str, Any]]:
        """
        Get all active users ordered by name.

        Args:
            db: Database session

        Returns:
            List of user information
        """
        close_db = False
        if db is None:
            db = AsyncSessionLocal()
            close_db = True

        try:
            result = await db.execute(
                select(User)
                .where(User.is_active == True)
                .order_by(User.first_name, User.last_name)
            )
            return [serialize_user(user) for user in result.scalars().all()]
        finally:
            if close_db:
                await db.close()

    @staticmethod
    async def create_worker(
        worker_data: WorkerCreate,
        db: AsyncSession = None
    ) -> Tuple[Dict[str, Any], Optional[str]]:
        """
        Create a worker account.

        Args:
            worker_data: Worker fields and password options
            db: Database session

        Returns:
            Tuple of user information and the generated password
            (None when a custom password was supplied)

        Raises:
            ValidationError: If fields, role or password are invalid
            ConflictError: If the email is already registered
        """
        missing = [f for f in REQUIRED_WORKER_FIELDS if not getattr(worker_data, f)]
        if missing:
            raise ValidationError(
                "Missing required fields: " + ", ".join(REQUIRED_WORKER_FIELDS),
                details=missing
            )

        email = _check_email(worker_data.email)
        role = _check_role(worker_data.role, worker_data.worker_type)

        close_db = False
        if db is None:
            db = AsyncSessionLocal()
            close_db = True

        try:
            # Deactivated users keep their email reserved
            result = await db.execute(select(User.id).where(User.email == email))
            if result.first() is not None:
                raise ConflictError("Email already exists")

            generated_password = None
            if worker_data.auto_generate_password:
                generated_password = generate_secure_password()
                password = generated_password
            else:
                if not worker_data.custom_password:
                    raise ValidationError(
                        "Custom password is required when auto_generate_password is false"
                    )
                validation = validate_password(worker_data.custom_password)
                if not validation.is_valid:
                    raise ValidationError("Password validation failed", details=validation.errors)
                password = worker_data.custom_password

            new_user = User(
                employee_id=worker_data.employee_id or _generate_employee_id(),
                email=email,
                password_hash=await run_in_threadpool(hash_password, password),
                first_name=worker_data.first_name,
                last_name=worker_data.last_name,
                phone=worker_data.phone,
                role=role,
                employment_type=worker_data.employment_type or "full_time",
                start_date=worker_data.start_date,
                contract_hours_per_week=worker_data.contract_hours_per_week,
                hourly_rate=worker_data.hourly_rate,
                address_line1=worker_data.address_line1,
                address_line2=worker_data.address_line2,
                city=worker_data.city,
                postal_code=worker_data.postal_code,
                emergency_contact_name=worker_data.emergency_contact_name,
                emergency_contact_phone=worker_data.emergency_contact_phone,
                is_active=True,
                must_change_password=False,
            )
            db.add(new_user)
            try:
                await db.commit()
            except IntegrityError:
                # Lost a race against a concurrent insert of the same email
                await db.rollback()
                raise ConflictError("Email already exists")
            await db.refresh(new_user)

            return serialize_user(new_user), generated_password
        finally:
            if close_db:
                await db.close()

    @staticmethod
    async def update_user(
        user_id: int,
        update_data: WorkerUpdate,
        db: AsyncSession = None
    ) -> Dict[str, Any]:
        """
        Update worker information.

        Args:
            user_id: User ID
            update_data: Fields to update, unset fields are left alone
            db: Database session

        Returns:
            Updated user information

        Raises:
            ValidationError: If nothing is updated or a value is invalid
            NotFoundError: If the user does not exist or is inactive
            ConflictError: If the new email is already registered
        """
        fields = update_data.model_dump(exclude_unset=True)
        worker_type = fields.pop("worker_type", None)
        if not fields:
            raise ValidationError("No fields to update")

        for name in ("first_name", "last_name"):
            if name in fields and not fields[name]:
                raise ValidationError(f"{name} cannot be empty")

        close_db = False
        if db is None:
            db = AsyncSessionLocal()
            close_db = True

        try:
            user = await UserService.get_user_by_id(user_id, db)
            if user is None:
                raise NotFoundError("User not found")

            if "email" in fields:
                fields["email"] = _check_email(fields["email"])
                if fields["email"] != user.email:
                    result = await db.execute(
                        select(User.id).where(
                            User.email == fields["email"],
                            User.id != user_id
                        )
                    )
                    if result.first() is not None:
                        raise ConflictError("Email already exists")

            if "role" in fields:
                fields["role"] = _check_role(fields["role"], worker_type)
            elif worker_type is not None:
                _check_role(user.role, worker_type)

            for name, value in fields.items():
                setattr(user, name, value)

            try:
                await db.commit()
            except IntegrityError:
                await db.rollback()
                raise ConflictError("Email already exists")
            await db.refresh(user)

            return serialize_user(user)
        finally:
            if close_db:
                await db.close()

    @staticmethod
    async def deactivate_user(
        user_id: int,
        db: AsyncSession = None
    ) -> User:
        """
        Soft delete a user by clearing is_active.

        Raises:
            NotFoundError: If the user does not exist or is already inactive
        """
        close_db = False
        if db is None:
            db = AsyncSessionLocal()
            close_db = True

        try:
            user = await UserService.get_user_by_id(user_id, db)
            if user is None:
                raise NotFoundError("User not found")

            user.is_active = False
            await db.commit()
            return user
        finally:
            if close_db:
                await db.close()

    @staticmethod
    async def reset_password(
        user_id: int,
        db: AsyncSession = None
    ) -> Dict[str, Any]:
        """
        Issue a new password for a user and force them to change it.

        The plaintext password is only ever returned here.

        Raises:
            NotFoundError: If the user does not exist or is inactive
        """
        close_db = False
        if db is None:
            db = AsyncSessionLocal()
            close_db = True

        try:
            user = await UserService.get_user_by_id(user_id, db)
            if user is None:
                raise NotFoundError("User not found")

            new_password = generate_secure_password()
            user.password_hash = await run_in_threadpool(hash_password, new_password)
            user.must_change_password = True
            await db.commit()

            return {
                "user_id": user.id,
                "email": user.email,
                "name": user.full_name,
                "new_password": new_password,
            }
        finally:
            if close_db:
                await db.close()

    @staticmethod
    async def change_password(
        token_data: TokenData,
        change_data: PasswordChange,
        db: AsyncSession = None
    ) -> str:
        """
        Replace the caller's password after checking the current one.

        Returns:
            Fresh access token without the must-change-password claim

        Raises:
            ValidationError: If a field is missing or the new password is weak
            NotFoundError: If the user no longer exists
            AuthenticationError: If the current password is wrong
        """
        if not change_data.current_password or not change_data.new_password:
            raise ValidationError("Current password and new password are required")

        validation = validate_password(change_data.new_password)
        if not validation.is_valid:
            raise ValidationError("New password validation failed", details=validation.errors)

        close_db = False
        if db is None:
            db = AsyncSessionLocal()
            close_db = True

        try:
            user = await UserService.get_user_by_id(token_data.user_id, db)
            if user is None:
                raise NotFoundError("User not found")

            password_ok = await run_in_threadpool(
                verify_password, change_data.current_password, user.password_hash
            )
            if not password_ok:
                raise AuthenticationError("Current password is incorrect")

            user.password_hash = await run_in_threadpool(hash_password, change_data.new_password)
            user.must_change_password = False
            await db.commit()

            return issue_token(user)
        finally:
            if close_db:
                await db.close()
