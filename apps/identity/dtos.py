"""DTOs for Identity app."""
from dataclasses import dataclass, field
from uuid import UUID
from typing import Optional, List, Dict, Any

from ninja import Schema
from .models import UserRole


@dataclass(frozen=True)
class UserDTO:
    id: UUID
    username: str
    email: str
    role: str
    org_id: Optional[UUID]
    is_active: bool
    full_name: str = ""
    phone: str = ""
    avatar_url: str = ""
    preferences: Dict[str, Any] = field(default_factory=dict)
    permissions: List[str] = field(default_factory=list)


class UserCreate(Schema):
    username: str
    email: str
    password: str
    full_name: str = ""
    role: str = UserRole.CLIENT
    phone: Optional[str] = None


class UserUpdate(Schema):
    email: Optional[str] = None
    full_name: Optional[str] = None
    role: Optional[str] = None
    phone: Optional[str] = None
    is_active: Optional[bool] = None


class ProfileUpdate(Schema):
    full_name: Optional[str] = None
    phone: Optional[str] = None
    avatar_url: Optional[str] = None


class PasswordChange(Schema):
    current_password: str
    new_password: str


class PreferencesUpdate(Schema):
    preferences: Dict[str, Any]
