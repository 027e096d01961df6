import logging
import uuid
from django.utils.deprecation import MiddlewareMixin
from django.core.exceptions import PermissionDenied

logger = logging.getLogger(__name__)


class TenantMiddleware(MiddlewareMixin):
    """
    Sets request.org_id for the current request.

    - Regular users are bound to their own organization.
    - Superusers may act on another tenant through X-Organization-ID.
    """

    def process_request(self, request):
        request.org_id = None

        user = getattr(request, 'user', None)
        if user is None or not user.is_authenticated:
            return

        request.org_id = user.org_id
        if not user.is_superuser:
            return

        header_org = request.headers.get('X-Organization-ID')
        if header_org:
            try:
                request.org_id = uuid.UUID(header_org)
            except ValueError:
                logger.warning(f"Invalid X-Organization-ID header: {header_org}")

    def process_view(self, request, view_func, view_args, view_kwargs):
        """An org_id in the URL must match the resolved tenant."""
        user = getattr(request, 'user', None)
        if user is None or not user.is_authenticated or user.is_superuser:
            return None

        url_org_id = view_kwargs.get('org_id')
        if url_org_id and str(url_org_id) != str(request.org_id):
            logger.warning(f"User {user.id} tried to access org {url_org_id}")
            raise PermissionDenied("You do not have access to this organization.")
        return None
