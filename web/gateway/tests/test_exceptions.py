import httpx
import pytest
from pydantic import BaseModel, Field, ValidationError
from rest_framework import exceptions as drf_exceptions

from apps.common.exceptions import Conflict, InsufficientStock, NotFound, UpstreamUnavailable
from gateway.exceptions import api_exception_handler


def _handle(exc):
    return api_exception_handler(exc, {"view": None})


class _Body(BaseModel):
    quantity: int = Field(gt=0)


@pytest.mark.parametrize(
    "exc,status,detail",
    [
        (InsufficientStock("only 1 left"), 400, "INSUFFICIENT_STOCK"),
        (NotFound("Order not found"), 404, "NOT_FOUND"),
        (Conflict("reused", code="IDEMPOTENCY_CONFLICT"), 409, "IDEMPOTENCY_CONFLICT"),
        (UpstreamUnavailable(code="CIRCUIT_OPEN"), 503, "CIRCUIT_OPEN"),
    ],
)
def test_domain_errors_keep_code_and_status(exc, status, detail):
    r = _handle(exc)
    assert r.status_code == status
    assert r.data["detail"] == detail
    assert r.data["message"] == exc.message


def test_pydantic_errors_are_400_with_field_list():
    with pytest.raises(ValidationError) as e:
        _Body.model_validate({"quantity": 0})
    r = _handle(e.value)
    assert r.status_code == 400
    assert r.data["detail"] == "VALIDATION_ERROR"
    assert r.data["errors"][0]["loc"] == ("quantity",)


def test_httpx_errors_are_503():
    r = _handle(httpx.ReadTimeout("slow"))
    assert r.status_code == 503
    assert r.data["detail"] == "UPSTREAM_UNAVAILABLE"


def test_drf_exceptions_are_reshaped():
    r = _handle(drf_exceptions.PermissionDenied())
    assert (r.status_code, r.data["detail"]) == (403, "FORBIDDEN")

    r = _handle(drf_exceptions.Throttled(wait=12))
    assert (r.status_code, r.data["detail"]) == (429, "THROTTLED")
    assert r["Retry-After"] == "12"


def test_unexpected_errors_are_500(caplog):
    r = _handle(RuntimeError("kaboom"))
    assert r.status_code == 500
    assert r.data == {"detail": "INTERNAL", "message": "Internal server error"}
    assert "unhandled error" in caplog.text
