"""
URL configuration for CPMS.
"""
from django.contrib import admin
from django.urls import path
from django.conf import settings
from django.conf.urls.static import static
from ninja import NinjaAPI

api = NinjaAPI(
    title="CPMS API",
    version="1.0.0",
    description="Client Portal Management System API",
    docs_url="/docs",
)

from apps.identity.api import router as identity_router
from apps.organizations.api import router as organizations_router
from apps.audit.api import router as audit_router
from apps.clients.api import router as clients_router
from apps.projects.api import router as projects_router
from apps.documents.api import router as documents_router
from apps.billing.api import router as billing_router
from apps.payments.api import router as payments_router
from apps.support.api import router as support_router

api.add_router("/identity/", identity_router)
api.add_router("/organizations/", organizations_router)
api.add_router("/audit/", audit_router)
api.add_router("/clients/", clients_router)
api.add_router("/projects/", projects_router)
api.add_router("/documents/", documents_router)
api.add_router("/billing/", billing_router)
api.add_router("/payments/", payments_router)
api.add_router("/support/", support_router)

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/', api.urls),
]

# Serve media files in development
if settings.DEBUG:
    urlpatterns += static(
        getattr(settings, 'MEDIA_URL', '/media/'),
        document_root=getattr(settings, 'MEDIA_ROOT', settings.BASE_DIR / 'media')
    )
