import logging
from django.utils.deprecation import MiddlewareMixin

from .jwt_auth import ACCESS_COOKIE, get_user_id_from_token

logger = logging.getLogger(__name__)


class JWTCookieMiddleware(MiddlewareMixin):
    """
    Authenticates API requests from the access token cookie.

    Runs after AuthenticationMiddleware: a session login (Django admin,
    tests) wins, otherwise a valid access cookie sets request.user.
    """

    def process_request(self, request):
        user = getattr(request, 'user', None)
        if user is not None and user.is_authenticated:
            return

        token = request.COOKIES.get(ACCESS_COOKIE)
        if not token:
            return

        user_id = get_user_id_from_token(token)
        if not user_id:
            return

        from .models import User
        try:
            request.user = User.objects.get(id=user_id, is_active=True)
        except User.DoesNotExist:
            logger.warning(f"Access token for unknown or inactive user {user_id}")
