from typing import List, Dict
from .models import UserRole, User


class Permissions:
    # Projects
    PROJECT_VIEW = "projects.view"
    PROJECT_MANAGE = "projects.manage"

    # Documents
    DOCUMENT_VIEW = "documents.view"
    DOCUMENT_UPLOAD = "documents.upload"
    DOCUMENT_MANAGE = "documents.manage"

    # Billing
    BILLING_VIEW = "billing.view"
    BILLING_MANAGE = "billing.manage"
    PAYMENT_INITIATE = "payments.initiate"

    # Support
    SUPPORT_VIEW = "support.view"
    SUPPORT_CREATE = "support.create"
    SUPPORT_MANAGE = "support.manage"

    # Clients & prospects
    CLIENT_VIEW = "clients.view"
    CLIENT_MANAGE = "clients.manage"
    PROSPECT_MANAGE = "clients.manage_prospects"

    # Identity
    IDENTITY_VIEW_USER = "identity.view_user"
    IDENTITY_MANAGE_USER = "identity.manage_user"

    # Organizations
    ORGANIZATION_MANAGE = "organization.manage"
    AUDIT_VIEW = "audit.view"


# Static Role -> Permission Mapping
ROLE_PERMISSIONS: Dict[str, List[str]] = {
    UserRole.ADMIN: [
        Permissions.PROJECT_VIEW,
        Permissions.PROJECT_MANAGE,
        Permissions.DOCUMENT_VIEW,
        Permissions.DOCUMENT_UPLOAD,
        Permissions.DOCUMENT_MANAGE,
        Permissions.BILLING_VIEW,
        Permissions.BILLING_MANAGE,
        Permissions.SUPPORT_VIEW,
        Permissions.SUPPORT_CREATE,
        Permissions.SUPPORT_MANAGE,
        Permissions.CLIENT_VIEW,
        Permissions.CLIENT_MANAGE,
        Permissions.PROSPECT_MANAGE,
        Permissions.IDENTITY_VIEW_USER,
        Permissions.IDENTITY_MANAGE_USER,
        Permissions.ORGANIZATION_MANAGE,
        Permissions.AUDIT_VIEW,
    ],
    UserRole.STAFF: [
        # Delivery work, no billing changes or user management
        Permissions.PROJECT_VIEW,
        Permissions.PROJECT_MANAGE,
        Permissions.DOCUMENT_VIEW,
        Permissions.DOCUMENT_UPLOAD,
        Permissions.BILLING_VIEW,
        Permissions.SUPPORT_VIEW,
        Permissions.SUPPORT_CREATE,
        Permissions.SUPPORT_MANAGE,
        Permissions.CLIENT_VIEW,
        Permissions.PROSPECT_MANAGE,
        Permissions.IDENTITY_VIEW_USER,
    ],
    UserRole.CLIENT: [
        # Scoped to the user's client memberships at the service level
        Permissions.PROJECT_VIEW,
        Permissions.DOCUMENT_VIEW,
        Permissions.DOCUMENT_UPLOAD,
        Permissions.BILLING_VIEW,
        Permissions.PAYMENT_INITIATE,
        Permissions.SUPPORT_VIEW,
        Permissions.SUPPORT_CREATE,
    ],
}


def get_user_permissions(user: User) -> List[str]:
    """
    Returns a list of permission strings for the given user based on their role.
    """
    if not user or not user.is_active:
        return []

    return ROLE_PERMISSIONS.get(user.role, [])


def has_perm(user: User, permission: str) -> bool:
    return permission in get_user_permissions(user)
