"""
Identity API endpoints with JWT authentication.

Provides login, logout, token refresh, user management and the
self-service profile settings. Tokens travel in httpOnly cookies.
"""
from typing import List, Optional
from uuid import UUID
from ninja import Router, Schema
from django.http import HttpRequest, HttpResponse
from ninja.errors import HttpError
from django.contrib.auth import authenticate

from .models import User
from .dtos import UserDTO, UserCreate, UserUpdate, ProfileUpdate, PasswordChange, PreferencesUpdate
from .services import (
    to_user_dto, create_user, list_users, update_user, deactivate_user,
    update_profile, change_password, update_preferences,
)
from .permissions import Permissions
from .decorators import require_auth, require_permission, get_org_id
from .jwt_auth import (
    REFRESH_COOKIE,
    create_token_pair,
    create_access_token,
    decode_token,
    set_auth_cookies,
    clear_auth_cookies,
)

router = Router(tags=["Identity"])


# =============================================================================
# Schemas
# =============================================================================

class LoginSchema(Schema):
    username: str
    password: str


class TokenResponse(Schema):
    success: bool
    user: Optional[UserDTO] = None
    message: Optional[str] = None


def _json_response(data: TokenResponse) -> HttpResponse:
    return HttpResponse(data.model_dump_json(), content_type='application/json')


# =============================================================================
# Auth Endpoints
# =============================================================================

@router.post("/login", response=TokenResponse, auth=None)
def login_user(request: HttpRequest, payload: LoginSchema):
    """
    Authenticate user and set JWT tokens in httpOnly cookies.
    """
    user = authenticate(request, username=payload.username, password=payload.password)
    if user is None or not user.is_active:
        raise HttpError(401, "Invalid username or password")

    access_token, refresh_token = create_token_pair(user)
    response = _json_response(TokenResponse(success=True, user=to_user_dto(user)))
    return set_auth_cookies(response, access_token, refresh_token)


@router.post("/logout", response=TokenResponse, auth=None)
def logout_user(request: HttpRequest):
    """Clear authentication cookies."""
    response = _json_response(TokenResponse(success=True, message="Logged out"))
    return clear_auth_cookies(response)


@router.post("/refresh", response=TokenResponse, auth=None)
def refresh_token(request: HttpRequest):
    """Issue a new access token from the refresh cookie."""
    token = request.COOKIES.get(REFRESH_COOKIE)
    if not token:
        raise HttpError(401, "No refresh token")

    payload = decode_token(token, expected_type='refresh')
    if not payload:
        raise HttpError(401, "Invalid refresh token")

    try:
        user = User.objects.get(id=UUID(payload['sub']), is_active=True)
    except (KeyError, ValueError, User.DoesNotExist):
        raise HttpError(401, "Invalid refresh token")

    response = _json_response(TokenResponse(success=True, user=to_user_dto(user)))
    return set_auth_cookies(response, create_access_token(user.id, user.org_id, user.role))


@router.get("/me", response=UserDTO, auth=None)
def get_me(request: HttpRequest):
    """Current authenticated user's profile."""
    return to_user_dto(require_auth(request))


# =============================================================================
# Profile Settings
# =============================================================================

@router.patch("/me/profile", response=UserDTO, auth=None)
def update_my_profile(request: HttpRequest, payload: ProfileUpdate):
    user = require_auth(request)
    return update_profile(user, payload.dict(exclude_unset=True))


@router.post("/me/password", response=TokenResponse, auth=None)
def change_my_password(request: HttpRequest, payload: PasswordChange):
    user = require_auth(request)
    try:
        change_password(user, payload.current_password, payload.new_password)
    except ValueError as e:
        raise HttpError(400, str(e))
    return TokenResponse(success=True, message="Password updated")


@router.patch("/me/preferences", response=UserDTO, auth=None)
def update_my_preferences(request: HttpRequest, payload: PreferencesUpdate):
    user = require_auth(request)
    return update_preferences(user, payload.preferences)


# =============================================================================
# User Management Endpoints
# =============================================================================

@router.post("/users", response=UserDTO, auth=None)
def create_org_user(request: HttpRequest, payload: UserCreate):
    """Create a user in the caller's organization."""
    require_permission(request, Permissions.IDENTITY_MANAGE_USER)
    try:
        return create_user(get_org_id(request), payload)
    except ValueError as e:
        raise HttpError(400, str(e))


@router.get("/users", response=List[UserDTO], auth=None)
def list_org_users(request: HttpRequest, role: Optional[str] = None):
    """List users of the caller's organization."""
    require_permission(request, Permissions.IDENTITY_VIEW_USER)
    return list_users(get_org_id(request), role=role)


@router.put("/users/{user_id}", response=UserDTO, auth=None)
def update_org_user(request: HttpRequest, user_id: UUID, payload: UserUpdate):
    require_permission(request, Permissions.IDENTITY_MANAGE_USER)
    try:
        updated = update_user(get_org_id(request), user_id, payload.dict(exclude_unset=True))
    except ValueError as e:
        raise HttpError(400, str(e))
    if not updated:
        raise HttpError(404, "User not found")
    return updated


@router.delete("/users/{user_id}", auth=None)
def deactivate_org_user(request: HttpRequest, user_id: UUID):
    """Deactivate (soft delete) a user of the organization."""
    user = require_permission(request, Permissions.IDENTITY_MANAGE_USER)
    if user.id == user_id:
        raise HttpError(400, "You cannot deactivate your own account")
    if not deactivate_user(get_org_id(request), user_id):
        raise HttpError(404, "User not found")
    return {"success": True}
