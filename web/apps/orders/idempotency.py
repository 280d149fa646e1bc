"""Idempotency utilities for safely handling duplicate order submissions.

This module stores and retrieves idempotency keys to safely de-duplicate
client requests. Keys are scoped to the authenticated user so two clients
picking the same key never see each other's responses. It supports
creating an idempotent record, detecting conflicts when the same key is
used with a different payload, and finalizing a stored response so
subsequent retries can short-circuit.
"""

import hashlib
import json

from django.db import IntegrityError, transaction

from apps.common.exceptions import Conflict

from .models import IdempotencyKey


def _hash(payload: dict) -> str:
    """Compute a stable SHA-256 hash for a JSON-serializable payload.

    The payload is serialized with sorted keys and compact separators to
    ensure a deterministic representation before hashing.
    """
    body = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(body.encode("utf-8")).hexdigest()


def scoped_key(user_id: int, key: str) -> str:
    return f"{user_id}:{key.strip()}"[:200]


@transaction.atomic
def get_or_create_idempotent(key: str, payload: dict):
    """Get-or-create an idempotency record for the given key and payload.

    Behavior:
        - First request with a new key: create a record and return (False, rec).
        - Retry with the same key and payload: lock and return (True, rec).
          ``rec.response_status`` is 0 while the first request is still
          being processed.
        - Same key, different payload: raise ``Conflict`` with code
          ``IDEMPOTENCY_CONFLICT``.

    The create path runs in a nested savepoint so an IntegrityError only
    rolls back that block; the existing-record path takes a row lock.

    Returns:
        tuple[bool, IdempotencyKey]: (existing, rec).
    """
    h = _hash(payload)

    try:
        with transaction.atomic():
            rec = IdempotencyKey.objects.create(key=key, request_hash=h, response_status=0, response_body={})
            return False, rec
    except IntegrityError:
        rec = IdempotencyKey.objects.select_for_update().get(key=key)
        if rec.request_hash != h:
            raise Conflict("Idempotency key reused with a different payload", code="IDEMPOTENCY_CONFLICT")
        return True, rec


def in_progress(rec: IdempotencyKey) -> bool:
    return rec.response_status == 0


def discard(rec: IdempotencyKey):
    """Forget a record whose request failed unexpectedly so the client can retry."""
    IdempotencyKey.objects.filter(pk=rec.pk).delete()


def finalize(rec: IdempotencyKey, status_code: int, body: dict, order_id=None):
    """Persist the final response for an idempotent request.

    Args:
        rec: The idempotency record to update.
        status_code: HTTP status code to store for the response.
        body: JSON-serializable response body to persist.
        order_id: Optional order identifier to link to the record.
    """
    rec.response_status = status_code
    rec.response_body = body
    if order_id is not None:
        rec.order_id = order_id
    rec.save(update_fields=["response_status", "response_body", "order_id"])
