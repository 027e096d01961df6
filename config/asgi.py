"""
ASGI entrypoint for CPMS.

Serves uvicorn/daphne deployments directly and AWS Lambda through Mangum
(see lambda_handlers.api_handler).
"""
import os

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings')

from django.core.asgi import get_asgi_application

# Built at import time so a Lambda cold start pays for it once
application = get_asgi_application()

_lambda_handler = None


def lambda_handler(event, context):
    """AWS Lambda entry point for API Gateway HTTP events."""
    global _lambda_handler
    if _lambda_handler is None:
        from mangum import Mangum
        _lambda_handler = Mangum(application, lifespan="off")
    return _lambda_handler(event, context)
