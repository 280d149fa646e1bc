"""Request-scoped middleware for the storefront API.

``RequestIdMiddleware`` makes sure every request carries an identifier.
The value is read from the incoming ``X-Request-Id`` header when the
client provides one, or generated server-side otherwise. It is stored on
the ``request`` object and in context variables so downstream code
(log filters, the object-storage HTTP client) can read it without the
request being passed around. The response echoes it in ``X-Request-ID``.

``ApiSizeLimitMiddleware`` rejects oversized API bodies early from the
declared ``Content-Length``. Payment-proof uploads get a larger allowance
than JSON endpoints.
"""

import contextvars
import os
import uuid

from django.http import JsonResponse
from django.utils.deprecation import MiddlewareMixin

REQUEST_ID_CTX = contextvars.ContextVar("request_id", default="-")
REQUEST_PATH_CTX = contextvars.ContextVar("request_path", default="-")

MAX_API_BYTES = int(os.getenv("API_MAX_BYTES", str(1 * 1024 * 1024)))
MAX_UPLOAD_BYTES = int(os.getenv("UPLOAD_MAX_BYTES", str(20 * 1024 * 1024)))
UPLOAD_PATH_SUFFIX = "/upload-screenshot/"


class RequestIdMiddleware(MiddlewareMixin):
    """Sets and returns a per-request identifier.

    Attributes:
        HEADER (str): Incoming header in Django's ``request.META`` casing.
        RESPONSE_HEADER (str): Header added to outgoing responses.
    """

    HEADER = "HTTP_X_REQUEST_ID"
    RESPONSE_HEADER = "X-Request-ID"

    def process_request(self, request):
        rid = request.META.get(self.HEADER)
        if not rid:
            rid = str(uuid.uuid4())
        request.request_id = rid
        REQUEST_ID_CTX.set(rid)
        REQUEST_PATH_CTX.set(f"{request.method} {request.path}")

    def process_response(self, request, response):
        """Attach the request id, falling back to the ContextVar when the
        request object has none (some error handlers)."""
        rid = getattr(request, "request_id", REQUEST_ID_CTX.get())
        response[self.RESPONSE_HEADER] = rid
        return response


def body_limit_for(path: str) -> int:
    if path.endswith(UPLOAD_PATH_SUFFIX):
        return MAX_UPLOAD_BYTES
    return MAX_API_BYTES


class ApiSizeLimitMiddleware(MiddlewareMixin):
    def process_request(self, request):
        if request.path.startswith("/api/"):
            clen = request.META.get("CONTENT_LENGTH")
            if clen and clen.isdigit() and int(clen) > body_limit_for(request.path):
                return JsonResponse(
                    {"detail": "PAYLOAD_TOO_LARGE", "message": "Request body exceeds the allowed size"},
                    status=413,
                )
