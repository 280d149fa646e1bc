"""Health endpoint reporting the database and, when enabled, object storage."""

import logging

import httpx
from django.conf import settings
from django.db import DatabaseError, connection
from django.http import JsonResponse

logger = logging.getLogger(__name__)


def _db_ok() -> bool:
    try:
        with connection.cursor() as cur:
            cur.execute("SELECT 1;")
    except DatabaseError:
        logger.warning("health check: database unreachable")
        return False
    return True


def _storage_ok() -> bool:
    try:
        resp = httpx.get(f"{settings.OBJECT_STORAGE_BASE_URL}/health", timeout=settings.HTTP_TIMEOUT_SECS)
    except httpx.HTTPError:
        logger.warning("health check: storage unreachable")
        return False
    return resp.status_code == 200


def health_view(_request):
    components = {"db": {"ok": _db_ok()}}
    if getattr(settings, "USE_HTTP_ADAPTERS", True):
        components["storage"] = {"ok": _storage_ok()}

    ok = all(c["ok"] for c in components.values())
    return JsonResponse({"ok": ok, "components": components}, status=200 if ok else 503)
