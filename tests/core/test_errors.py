"""Error Hierarchy — tests for status codes and response shape.

Tests cover:
    - HTTP status per error class
    - to_response carries code, category and context ids
    - External errors record retry hints
"""

import pytest

from badgeledger.core.errors import (
    AnthropicAPIError, AuthorizationError, ConcurrencyError, ConflictError,
    DatabaseError, ErrorContext, FlagWriteError, InvalidTransitionError,
    PaymentProviderError, ResourceNotFoundError, ValidationError,
)


@pytest.mark.parametrize("error,status", [
    (ValidationError("bad"), 400),
    (AuthorizationError("nope"), 403),
    (ResourceNotFoundError("VerificationCase", "x"), 404),
    (ConflictError("open case"), 409),
    (InvalidTransitionError("active", "submitted"), 409),
    (ConcurrencyError("stale"), 409),
    (FlagWriteError("elite_active"), 500),
    (AnthropicAPIError("boom", "overloaded"), 502),
    (PaymentProviderError("boom", "api_error"), 502),
    (DatabaseError("down", "commit"), 503),
])
def test_http_status_mapping(error, status):
    assert error.http_status == status


def test_response_includes_context_ids():
    error = InvalidTransitionError(
        "expired", "active", ErrorContext(case_id="c1", target_id="L1"),
    )
    body = error.to_response()["error"]
    assert body["code"] == "INVALID_TRANSITION"
    assert body["context"]["case_id"] == "c1"
    assert body["context"]["target_id"] == "L1"


def test_anthropic_error_keeps_retry_hint():
    error = AnthropicAPIError("slow down", "rate_limit", retry_after_ms=1500)
    assert error.error_type == "rate_limit"
    assert error.to_response()["error"]["context"]["retry_after_ms"] == 1500


def test_not_found_message_names_resource():
    error = ResourceNotFoundError("EntitlementPurchase", "abc")
    assert "EntitlementPurchase 'abc'" in error.message
