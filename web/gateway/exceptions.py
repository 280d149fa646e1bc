"""DRF exception handler mapping failures to ``{"detail", "message"}`` bodies.

``detail`` always holds a stable machine-readable code so clients can
branch on it; ``message`` is for humans.

- ``DomainError`` subclasses map to their own code and status.
- pydantic ``ValidationError`` becomes 400 ``VALIDATION_ERROR`` with the
  list of field errors.
- ``httpx.HTTPError`` (storage service down after retries) becomes 503.
- DRF's own exceptions (auth, throttling, parse errors, 404/405) keep
  their status and are reshaped.
- Anything else is logged with its traceback and returned as 500.
"""

import logging

import httpx
from django.http import Http404
from pydantic import ValidationError
from rest_framework import exceptions as drf_exceptions
from rest_framework.response import Response

from apps.common.exceptions import DomainError

logger = logging.getLogger(__name__)

_DRF_CODES = {
    drf_exceptions.NotAuthenticated: "UNAUTHORIZED",
    drf_exceptions.AuthenticationFailed: "UNAUTHORIZED",
    drf_exceptions.PermissionDenied: "FORBIDDEN",
    drf_exceptions.NotFound: "NOT_FOUND",
    drf_exceptions.Throttled: "THROTTLED",
    drf_exceptions.ParseError: "VALIDATION_ERROR",
    drf_exceptions.ValidationError: "VALIDATION_ERROR",
    drf_exceptions.UnsupportedMediaType: "UNSUPPORTED_MEDIA_TYPE",
    drf_exceptions.MethodNotAllowed: "METHOD_NOT_ALLOWED",
}


def error_body(exc: DomainError) -> dict:
    return {"detail": exc.code, "message": exc.message}


def api_exception_handler(exc, context):
    """Convert an exception raised in a view into a JSON response."""
    view = context.get("view")
    view_name = type(view).__name__ if view is not None else "-"

    if isinstance(exc, DomainError):
        if exc.status_code >= 500:
            logger.warning("upstream failure", extra={"view": view_name, "code": exc.code})
        return Response(error_body(exc), status=exc.status_code)

    if isinstance(exc, ValidationError):
        errors = exc.errors(include_url=False, include_context=False)
        return Response(
            {"detail": "VALIDATION_ERROR", "message": "Invalid request body", "errors": errors},
            status=400,
        )

    if isinstance(exc, httpx.HTTPError):
        logger.warning("upstream http error", extra={"view": view_name, "error": str(exc)})
        return Response(
            {"detail": "UPSTREAM_UNAVAILABLE", "message": "A dependent service is unavailable"},
            status=503,
        )

    if isinstance(exc, Http404):
        exc = drf_exceptions.NotFound()

    if isinstance(exc, drf_exceptions.APIException):
        code = next((c for cls, c in _DRF_CODES.items() if isinstance(exc, cls)), "ERROR")
        resp = Response({"detail": code, "message": str(exc.detail)}, status=exc.status_code)
        if getattr(exc, "auth_header", None):
            resp["WWW-Authenticate"] = exc.auth_header
        if getattr(exc, "wait", None):
            resp["Retry-After"] = str(int(exc.wait))
        return resp

    logger.exception("unhandled error", extra={"view": view_name})
    return Response({"detail": "INTERNAL", "message": "Internal server error"}, status=500)
