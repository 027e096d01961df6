"""
JWT cookie authentication for the portal.

Access tokens carry the user, tenant and role; refresh tokens only the
user. Both travel in httpOnly cookies so the browser never sees them.
"""
import os
import jwt
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple
from uuid import UUID
from django.conf import settings


JWT_ALGORITHM = 'HS256'
ACCESS_TOKEN_EXPIRE_MINUTES = 15
REFRESH_TOKEN_EXPIRE_DAYS = 7

ACCESS_COOKIE = 'access_token'
REFRESH_COOKIE = 'refresh_token'


def _secret() -> str:
    return os.getenv('JWT_SECRET', settings.SECRET_KEY)


def _encode(payload: dict, lifetime: timedelta) -> str:
    now = datetime.now(timezone.utc)
    payload = {**payload, 'iat': now, 'exp': now + lifetime}
    return jwt.encode(payload, _secret(), algorithm=JWT_ALGORITHM)


def create_access_token(user_id: UUID, org_id: Optional[UUID], role: str = '') -> str:
    """Short-lived token used to authorize API calls."""
    return _encode(
        {
            'sub': str(user_id),
            'org_id': str(org_id) if org_id else None,
            'role': role,
            'type': 'access',
        },
        timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES),
    )


def create_refresh_token(user_id: UUID) -> str:
    """Long-lived token only accepted by the refresh endpoint."""
    return _encode(
        {'sub': str(user_id), 'type': 'refresh'},
        timedelta(days=REFRESH_TOKEN_EXPIRE_DAYS),
    )


def create_token_pair(user) -> Tuple[str, str]:
    """Returns (access_token, refresh_token) for a user."""
    return (
        create_access_token(user.id, user.org_id, user.role),
        create_refresh_token(user.id),
    )


def decode_token(token: str, expected_type: Optional[str] = None) -> Optional[dict]:
    """
    Decode and validate a JWT.

    Returns the payload, or None when the token is expired, tampered with
    or of the wrong type.
    """
    try:
        payload = jwt.decode(token, _secret(), algorithms=[JWT_ALGORITHM])
    except jwt.InvalidTokenError:
        return None
    if expected_type and payload.get('type') != expected_type:
        return None
    return payload


def get_user_id_from_token(token: str, expected_type: str = 'access') -> Optional[UUID]:
    payload = decode_token(token, expected_type)
    if not payload or 'sub' not in payload:
        return None
    try:
        return UUID(payload['sub'])
    except ValueError:
        return None


def is_production() -> bool:
    """Running on Lambda or with DEBUG off."""
    return bool(os.getenv('AWS_LAMBDA_FUNCTION_NAME')) or not settings.DEBUG


def _cookie_settings(max_age: int) -> dict:
    return {
        'httponly': True,
        'secure': is_production(),
        'samesite': 'Lax',
        'path': '/',
        'max_age': max_age,
    }


def set_auth_cookies(response, access_token: str, refresh_token: Optional[str] = None):
    response.set_cookie(ACCESS_COOKIE, access_token, **_cookie_settings(ACCESS_TOKEN_EXPIRE_MINUTES * 60))
    if refresh_token:
        response.set_cookie(
            REFRESH_COOKIE, refresh_token, **_cookie_settings(REFRESH_TOKEN_EXPIRE_DAYS * 24 * 60 * 60)
        )
    return response


def clear_auth_cookies(response):
    response.delete_cookie(ACCESS_COOKIE, path='/')
    response.delete_cookie(REFRESH_COOKIE, path='/')
    return response
