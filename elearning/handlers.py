"""
REST exception handler for billing errors.

``BillingError`` subclasses are rendered as JSON with their own status code;
database integrity errors that escape the services become 409 responses.
Everything else is delegated to Django REST Framework's default handler.
"""

import logging

from django.db import IntegrityError
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

from .exceptions import BillingError, ConflictError

logger = logging.getLogger(__name__)


def billing_exception_handler(exc, context):
    if isinstance(exc, IntegrityError):
        logger.warning("Integrity error in %s: %s", context.get("view").__class__.__name__, exc)
        exc = ConflictError("Request conflicts with existing data")

    if isinstance(exc, BillingError):
        if exc.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
            logger.error("%s: %s", exc.__class__.__name__, exc.message)
        return Response({"detail": exc.message, **exc.to_dict()}, status=exc.status_code)

    return exception_handler(exc, context)
