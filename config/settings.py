"""
Django settings for CPMS.

Every deploy-specific value comes from the environment so the same
settings module serves local development, the Celery worker and Lambda.
"""
import os
from pathlib import Path

from config.database import get_database_config
from config.storage import get_storage_settings

BASE_DIR = Path(__file__).resolve().parent.parent


def _env_bool(name: str, default: str = 'false') -> bool:
    return os.getenv(name, default).lower() in ('1', 'true', 'yes')


# =============================================================================
# Security
# =============================================================================

SECRET_KEY = os.getenv('SECRET_KEY', 'cpms-dev-key-replace-before-deployment')
DEBUG = _env_bool('DEBUG', 'true')
ALLOWED_HOSTS = [h for h in os.getenv('ALLOWED_HOSTS', 'localhost,127.0.0.1,testserver').split(',') if h]
CSRF_TRUSTED_ORIGINS = [o for o in os.getenv('CSRF_TRUSTED_ORIGINS', '').split(',') if o]

# =============================================================================
# Applications
# =============================================================================

INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    # CPMS
    'apps.core',
    'apps.identity',
    'apps.organizations',
    'apps.audit',
    'apps.notifications',
    'apps.clients',
    'apps.projects',
    'apps.documents',
    'apps.billing',
    'apps.payments',
    'apps.support',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'apps.identity.middleware.JWTCookieMiddleware',
    'apps.organizations.middleware.TenantMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]

ROOT_URLCONF = 'config.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
            ],
        },
    },
]

ASGI_APPLICATION = 'config.asgi.application'

# =============================================================================
# Database & Auth
# =============================================================================

DATABASES = {'default': get_database_config(BASE_DIR)}

AUTH_USER_MODEL = 'identity.User'

AUTH_PASSWORD_VALIDATORS = [
    {'NAME': 'django.contrib.auth.password_validation.MinimumLengthValidator'},
    {'NAME': 'django.contrib.auth.password_validation.CommonPasswordValidator'},
]

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

# =============================================================================
# Internationalization
# =============================================================================

LANGUAGE_CODE = 'fr-fr'
TIME_ZONE = os.getenv('TIME_ZONE', 'Africa/Abidjan')
USE_I18N = True
USE_TZ = True

# =============================================================================
# Static & Media
# =============================================================================

STATIC_URL = '/static/'
STATIC_ROOT = BASE_DIR / 'staticfiles'

globals().update(get_storage_settings(BASE_DIR))

# =============================================================================
# Logging
# =============================================================================

LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '{asctime} {levelname} {name} {message}',
            'style': '{',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'verbose',
        },
    },
    'root': {
        'handlers': ['console'],
        'level': LOG_LEVEL,
    },
    'loggers': {
        'django': {
            'handlers': ['console'],
            'level': os.getenv('DJANGO_LOG_LEVEL', 'WARNING'),
            'propagate': False,
        },
    },
}

# =============================================================================
# Celery
# =============================================================================

CELERY_BROKER_URL = os.getenv('CELERY_BROKER_URL', 'redis://localhost:6379/0')
CELERY_RESULT_BACKEND = os.getenv('CELERY_RESULT_BACKEND', CELERY_BROKER_URL)
CELERY_TASK_SERIALIZER = 'json'
CELERY_ACCEPT_CONTENT = ['json']
CELERY_TIMEZONE = TIME_ZONE

# =============================================================================
# E-mail
# =============================================================================

EMAIL_BACKEND = os.getenv('EMAIL_BACKEND', 'django.core.mail.backends.console.EmailBackend')
EMAIL_HOST = os.getenv('EMAIL_HOST', 'localhost')
EMAIL_PORT = int(os.getenv('EMAIL_PORT', '587'))
EMAIL_HOST_USER = os.getenv('EMAIL_HOST_USER', '')
EMAIL_HOST_PASSWORD = os.getenv('EMAIL_HOST_PASSWORD', '')
EMAIL_USE_TLS = _env_bool('EMAIL_USE_TLS', 'true')
EMAIL_TIMEOUT = int(os.getenv('EMAIL_TIMEOUT', '10'))
DEFAULT_FROM_EMAIL = os.getenv('DEFAULT_FROM_EMAIL', 'CPMS <no-reply@cpms.local>')
EMAIL_BRAND_NAME = os.getenv('EMAIL_BRAND_NAME', 'CPMS')

# =============================================================================
# Portal
# =============================================================================

# Public URL of the portal frontend, used in e-mails and payment redirects
APP_BASE_URL = os.getenv('APP_BASE_URL', 'http://localhost:3000').rstrip('/')
DEFAULT_CURRENCY = os.getenv('DEFAULT_CURRENCY', 'XOF')
QUOTE_VALIDITY_DAYS = int(os.getenv('QUOTE_VALIDITY_DAYS', '14'))
INVOICE_PAYMENT_TERMS_DAYS = int(os.getenv('INVOICE_PAYMENT_TERMS_DAYS', '30'))

# Shared secret expected in X-Cron-Secret by scheduled HTTP callers
CRON_SECRET = os.getenv('CRON_SECRET', '')
SLA_WARNING_MINUTES = int(os.getenv('SLA_WARNING_MINUTES', '60'))

# =============================================================================
# Payment gateway (CinetPay)
# =============================================================================

CINETPAY_BASE_URL = os.getenv('CINETPAY_BASE_URL', 'https://api-checkout.cinetpay.com/v2').rstrip('/')
CINETPAY_APIKEY = os.getenv('CINETPAY_APIKEY', '')
CINETPAY_SITE_ID = os.getenv('CINETPAY_SITE_ID', '')
CINETPAY_SECRET_KEY = os.getenv('CINETPAY_SECRET_KEY', '')
CINETPAY_NOTIFY_URL = os.getenv('CINETPAY_NOTIFY_URL', '')
CINETPAY_RETURN_URL = os.getenv('CINETPAY_RETURN_URL', '')
CINETPAY_TIMEOUT = int(os.getenv('CINETPAY_TIMEOUT', '15'))
PAYMENT_RECONCILE_AFTER_MINUTES = int(os.getenv('PAYMENT_RECONCILE_AFTER_MINUTES', '10'))
