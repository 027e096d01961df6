"""Services for Identity app."""
import logging
from typing import Optional

from django.contrib.auth.password_validation import validate_password
from django.core.exceptions import ValidationError

from .models import User, UserRole
from .dtos import UserDTO, UserCreate
from .permissions import get_user_permissions

logger = logging.getLogger(__name__)

# Fields an org admin may change on another user
UPDATABLE_FIELDS = {'email', 'full_name', 'role', 'phone', 'is_active'}


def to_user_dto(user: User) -> UserDTO:
    return UserDTO(
        id=user.id,
        username=user.username,
        email=user.email,
        role=user.role,
        org_id=user.org_id,
        is_active=user.is_active,
        full_name=user.full_name,
        phone=user.phone,
        avatar_url=user.avatar_url,
        preferences=dict(user.preferences or {}),
        permissions=get_user_permissions(user),
    )


def get_user_dto(user_id) -> Optional[UserDTO]:
    try:
        return to_user_dto(User.objects.get(id=user_id))
    except User.DoesNotExist:
        return None


def create_user(org_id, payload: UserCreate) -> UserDTO:
    if payload.role not in UserRole.values:
        raise ValueError(f"Invalid role: {payload.role}")
    if User.objects.filter(username=payload.username).exists():
        raise ValueError(f"Username '{payload.username}' is already taken")

    user = User.objects.create_user(
        username=payload.username,
        email=payload.email,
        password=payload.password,
        full_name=payload.full_name,
        role=payload.role,
        phone=payload.phone or "",
        org_id=org_id,
        is_active=True,
    )
    logger.info(f"Created user {user.username} ({user.role}) in org {org_id}")
    return to_user_dto(user)


def list_users(org_id, role: Optional[str] = None) -> list[UserDTO]:
    users = User.objects.filter(org_id=org_id)
    if role:
        users = users.filter(role=role)
    return [to_user_dto(u) for u in users]


def update_user(org_id, user_id, data: dict) -> Optional[UserDTO]:
    try:
        user = User.objects.get(id=user_id, org_id=org_id)
    except User.DoesNotExist:
        return None

    if data.get('role') and data['role'] not in UserRole.values:
        raise ValueError(f"Invalid role: {data['role']}")

    for key, value in data.items():
        if key in UPDATABLE_FIELDS and value is not None:
            setattr(user, key, value)
    user.save()
    return to_user_dto(user)


def deactivate_user(org_id, user_id) -> bool:
    updated = User.objects.filter(id=user_id, org_id=org_id).update(is_active=False)
    return bool(updated)


# =============================================================================
# Profile settings (self-service)
# =============================================================================

def update_profile(user: User, data: dict) -> UserDTO:
    for key in ('full_name', 'phone', 'avatar_url'):
        if data.get(key) is not None:
            setattr(user, key, data[key])
    user.save(update_fields=['full_name', 'phone', 'avatar_url'])
    return to_user_dto(user)


def change_password(user: User, current_password: str, new_password: str) -> None:
    """
    Raises:
        ValueError: wrong current password or weak new password
    """
    if not user.check_password(current_password):
        raise ValueError("Current password is incorrect")
    try:
        validate_password(new_password, user)
    except ValidationError as e:
        raise ValueError(" ".join(e.messages))
    user.set_password(new_password)
    user.save(update_fields=['password'])
    logger.info(f"Password changed for user {user.id}")


def update_preferences(user: User, preferences: dict) -> UserDTO:
    """Shallow-merges the given keys into the stored preferences."""
    merged = dict(user.preferences or {})
    merged.update(preferences)
    user.preferences = merged
    user.save(update_fields=['preferences'])
    return to_user_dto(user)
