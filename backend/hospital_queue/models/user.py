"""
User, authentication and server-role models.
"""

from dataclasses import dataclass
from pydantic import BaseModel, EmailStr, Field
from typing import Optional
from datetime import datetime
from enum import Enum

from ..errors import PermissionDenied


class UserRole(str, Enum):
    """User roles in the system."""
    ADMIN = "admin"
    DOCTOR = "doctor"
    LAB_TECHNICIAN = "lab_technician"
    RECEPTIONIST = "receptionist"


class ServerRole(str, Enum):
    """Roles that call and serve queue entries."""
    DOCTOR = "doctor"
    LAB_TECHNICIAN = "lab_technician"


class UserBase(BaseModel):
    """Base user model."""
    email: EmailStr
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field("", max_length=100)
    phone_number: Optional[str] = None
    role: UserRole = UserRole.RECEPTIONIST
    department: Optional[str] = None


class UserCreate(UserBase):
    """User creation model."""
    password: str = Field(..., min_length=6, max_length=72)


class UserLogin(BaseModel):
    """User login model."""
    email: EmailStr
    password: str


class User(UserBase):
    """User response model (no password)."""
    id: str = Field(..., alias="_id")
    is_active: bool = True
    created_at: datetime

    class Config:
        populate_by_name = True

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class Token(BaseModel):
    """JWT token response."""
    access_token: str
    token_type: str = "bearer"
    user: User


class TokenData(BaseModel):
    """JWT token payload data."""
    user_id: Optional[str] = None
    email: Optional[str] = None
    role: Optional[UserRole] = None


@dataclass(frozen=True)
class Server:
    """A doctor or lab technician acting on the queue."""
    id: str
    role: ServerRole
    name: str = ""
    department: Optional[str] = None

    @classmethod
    def from_user(cls, user: User) -> "Server":
        try:
            role = ServerRole(user.role.value)
        except ValueError:
            raise PermissionDenied(
                f"Role '{user.role.value}' cannot serve queue entries",
                {"role": user.role.value},
            )
        return cls(id=user.id, role=role, name=user.full_name, department=user.department)

    @property
    def is_lab_technician(self) -> bool:
        return self.role is ServerRole.LAB_TECHNICIAN

    @property
    def display_name(self) -> str:
        if self.role is ServerRole.DOCTOR:
            return f"Dr. {self.name}" if self.name else "the doctor"
        return self.name or "the lab technician"
