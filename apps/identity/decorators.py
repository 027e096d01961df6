from functools import wraps
from typing import Callable
from uuid import UUID
from ninja.errors import HttpError
from django.http import HttpRequest
from .permissions import get_user_permissions


def require_auth(request: HttpRequest):
    """Require an authenticated user. Raises 401 otherwise."""
    if not request.user.is_authenticated:
        raise HttpError(401, "Authentication required")
    return request.user


def require_permission(request: HttpRequest, permission: str):
    """Require a specific permission. Returns the user."""
    user = require_auth(request)
    if permission not in get_user_permissions(user):
        raise HttpError(403, f"Permission denied: {permission}")
    return user


def get_org_id(request: HttpRequest) -> UUID:
    """Tenant of the current request (TenantMiddleware, then the user's own org)."""
    org_id = getattr(request, 'org_id', None) or getattr(request.user, 'org_id', None)
    if not org_id:
        raise HttpError(400, "User has no organization context")
    return org_id


def has_permission(required_perm: str):
    """
    Decorator to enforce a specific permission on a Django Ninja endpoint.

    Usage:
        @router.get("/some-path")
        @has_permission(Permissions.BILLING_MANAGE)
        def my_view(request):
            ...
    """
    def decorator(view_func: Callable):
        @wraps(view_func)
        def wrapper(request: HttpRequest, *args, **kwargs):
            require_permission(request, required_perm)
            return view_func(request, *args, **kwargs)
        return wrapper
    return decorator
