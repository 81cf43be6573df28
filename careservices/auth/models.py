"""
Authentication models for the care coordination back office.

This module defines:
- The ``users`` table
- Roles and worker types, and the mapping between them
"""
from enum import Enum
from sqlalchemy import Column, Integer, String, Boolean, DateTime, Date, Numeric
from datetime import datetime
from typing import Optional
from careservices.base_microservice import Base


class Role(str, Enum):
    """Closed set of user roles."""
    ADMIN = "admin"
    COORDINATOR = "coordinator"
    SUPERVISOR = "supervisor"
    CARER = "carer"
    SENIOR_CARER = "senior_carer"
    TRAINEE = "trainee"


class WorkerType(str, Enum):
    OFFICE_WORKER = "office_worker"
    GROUND_WORKER = "ground_worker"


OFFICE_WORKER_ROLES = (Role.ADMIN, Role.COORDINATOR, Role.SUPERVISOR)
GROUND_WORKER_ROLES = (Role.CARER, Role.SENIOR_CARER, Role.TRAINEE)

# Roles allowed to create, update, reset and deactivate users
MANAGEMENT_ROLES = (Role.ADMIN, Role.COORDINATOR, Role.SUPERVISOR)

# Free-text role values accepted from the frontend
ROLE_ALIASES = {
    "care_worker": Role.CARER,
    **{role.value: role for role in Role},
}


def worker_type_of(role: str) -> WorkerType:
    """
    Derive the worker type of a role.

    Raises:
        ValueError: If the role belongs to neither partition
    """
    if role in [r.value for r in GROUND_WORKER_ROLES]:
        return WorkerType.GROUND_WORKER
    if role in [r.value for r in OFFICE_WORKER_ROLES]:
        return WorkerType.OFFICE_WORKER
    raise ValueError(f"Invalid user role: {role}")


def resolve_role(value: Optional[str]) -> Optional[Role]:
    """Map an incoming role string to a canonical role, or None if unknown."""
    if value is None:
        return None
    return ROLE_ALIASES.get(value.strip().lower())


class User(Base):
    """User model for authentication and authorization."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(String(32), nullable=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    phone = Column(String(50), nullable=True)
    mobile = Column(String(50), nullable=True)
    role = Column(String(32), nullable=False, default=Role.CARER.value)
    employment_type = Column(String(32), default="full_time")
    start_date = Column(Date, nullable=True)
    contract_hours_per_week = Column(Numeric(5, 2), nullable=True)
    hourly_rate = Column(Numeric(8, 2), nullable=True)
    address_line1 = Column(String(255), nullable=True)
    address_line2 = Column(String(255), nullable=True)
    city = Column(String(100), nullable=True)
    postal_code = Column(String(20), nullable=True)
    emergency_contact_name = Column(String(200), nullable=True)
    emergency_contact_phone = Column(String(50), nullable=True)
    transport_type = Column(String(50), nullable=True)
    availability = Column(String(255), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    must_change_password = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    last_login = Column(DateTime, nullable=True)

    @property
    def worker_type(self) -> WorkerType:
        return worker_type_of(self.role)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"
