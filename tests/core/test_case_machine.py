"""Verification Case Machine — tests for pure case transition rules.

Tests cover:
    - classify_ai_result paths per actor policy (auto-approve vs manual)
    - Low-confidence approvals and note-less rejections downgraded to needs_review
    - fallback_review shape
    - admin_path (reject requires reason) and check_path validation
    - Stale review detection and escalation path
    - validate_documents details, public_status collapse, open_case_key
"""

from datetime import datetime, timedelta, timezone

import pytest

from badgeledger.core.case_machine import (
    AIReviewResult, FALLBACK_NOTES, admin_path, case_expiry, check_path,
    classify_ai_result, fallback_review, is_stale_review, open_case_key,
    public_status, stale_review_path, validate_documents,
)
from badgeledger.core.catalog import build_catalog
from badgeledger.core.domain_types import (
    ActorType, AdminAction, AIVerdict, CaseStatus, DocumentType,
)
from badgeledger.core.errors import InvalidTransitionError, ValidationError

S = CaseStatus
catalog = build_catalog()
BUYER = catalog.policy(ActorType.BUYER)
SELLER = catalog.policy(ActorType.SELLER)
NOW = datetime(2026, 3, 1, tzinfo=timezone.utc)


# ─── classify_ai_result ──────────────────────────────────────────

def test_confident_buyer_approval_goes_to_payment():
    outcome = classify_ai_result(BUYER, AIReviewResult(AIVerdict.APPROVED, 92))
    assert outcome.path == (S.AI_APPROVED, S.PENDING_PAYMENT)


def test_seller_approval_still_needs_admin():
    outcome = classify_ai_result(SELLER, AIReviewResult(AIVerdict.APPROVED, 99))
    assert outcome.path == (S.AI_APPROVED, S.PENDING_ADMIN)


def test_low_confidence_buyer_approval_goes_to_admin():
    outcome = classify_ai_result(BUYER, AIReviewResult(AIVerdict.APPROVED, 79))
    assert outcome.path == (S.NEEDS_ADMIN_REVIEW, S.PENDING_ADMIN)
    assert "low_confidence" in outcome.effective.flags


def test_rejection_with_notes_is_final():
    outcome = classify_ai_result(
        BUYER, AIReviewResult(AIVerdict.REJECTED, 90, notes="Document expired"),
    )
    assert outcome.path == (S.AI_REJECTED, S.REJECTED)


def test_rejection_without_notes_escalates():
    outcome = classify_ai_result(BUYER, AIReviewResult(AIVerdict.REJECTED, 90, notes="  "))
    assert outcome.path == (S.NEEDS_ADMIN_REVIEW, S.PENDING_ADMIN)
    assert "rejection_without_notes" in outcome.effective.flags


def test_fallback_is_needs_review_with_zero_confidence():
    result = fallback_review("timeout")
    assert result.verdict == AIVerdict.NEEDS_REVIEW
    assert result.confidence == 0
    assert result.notes == FALLBACK_NOTES
    assert result.flags == ("ai_unavailable", "timeout")
    assert classify_ai_result(BUYER, result).path == (
        S.NEEDS_ADMIN_REVIEW, S.PENDING_ADMIN,
    )


def test_review_record_is_json_ready():
    record = AIReviewResult(AIVerdict.APPROVED, 85, "ok", ("a",)).to_record(NOW)
    assert record == {
        "status": "approved",
        "confidence": 85,
        "notes": "ok",
        "flags": ["a"],
        "reviewed_at": NOW.isoformat(),
    }


# ─── admin_path / check_path ─────────────────────────────────────

def test_approve_path_ends_at_payment():
    assert admin_path(AdminAction.APPROVE) == (S.APPROVED, S.PENDING_PAYMENT)


def test_reject_without_reason_raises_validation_error():
    with pytest.raises(ValidationError) as exc:
        admin_path(AdminAction.REJECT, "   ")
    assert exc.value.details[0]["field"] == "reason"


def test_reject_with_reason():
    assert admin_path(AdminAction.REJECT, "blurry photo") == (S.REJECTED,)


def test_reinstate_goes_to_payment():
    assert admin_path(AdminAction.REINSTATE) == (S.PENDING_PAYMENT,)


def test_check_path_returns_final_status():
    assert check_path(SELLER, S.PENDING_ADMIN, (S.APPROVED, S.PENDING_PAYMENT)) == (
        S.PENDING_PAYMENT
    )


def test_check_path_rejects_illegal_hop():
    with pytest.raises(InvalidTransitionError) as exc:
        check_path(SELLER, S.SUBMITTED, (S.APPROVED,))
    assert exc.value.http_status == 409


def test_revoke_not_allowed_from_review():
    with pytest.raises(InvalidTransitionError):
        check_path(SELLER, S.PENDING_ADMIN, admin_path(AdminAction.REVOKE))


def test_expired_case_cannot_return_to_active_directly():
    with pytest.raises(InvalidTransitionError):
        check_path(SELLER, S.EXPIRED, (S.ACTIVE,))


# ─── Stale reviews ───────────────────────────────────────────────

def test_review_older_than_window_is_stale():
    assert is_stale_review(S.AI_REVIEW, NOW - timedelta(hours=48), NOW, 48)
    assert not is_stale_review(S.AI_REVIEW, NOW - timedelta(hours=47), NOW, 48)


def test_only_review_states_can_be_stale():
    assert not is_stale_review(S.PENDING_ADMIN, NOW - timedelta(days=30), NOW, 48)


def test_stale_submitted_passes_through_ai_review():
    path = stale_review_path(S.SUBMITTED)
    assert path == (S.AI_REVIEW, S.NEEDS_ADMIN_REVIEW, S.PENDING_ADMIN)
    assert check_path(SELLER, S.SUBMITTED, path) == S.PENDING_ADMIN


# ─── Documents & views ───────────────────────────────────────────

def test_missing_document_groups_listed():
    contractor = catalog.policy(ActorType.CONTRACTOR)
    with pytest.raises(ValidationError) as exc:
        validate_documents(contractor, [])
    assert len(exc.value.details) == 2
    assert exc.value.to_response()["error"]["details"] == exc.value.details


def test_valid_documents_pass():
    validate_documents(BUYER, [DocumentType.PASSPORT])


def test_internal_review_states_collapse_to_under_review():
    for status in (S.SUBMITTED, S.AI_REVIEW, S.AI_REJECTED, S.NEEDS_ADMIN_REVIEW):
        assert public_status(status) == "under_review"
    assert public_status(S.ACTIVE) == "verified"


def test_open_case_key_released_in_terminal_states():
    assert open_case_key("seller", "u1", S.PENDING_ADMIN) == "seller:u1"
    assert open_case_key("seller", "u1", S.EXPIRED) is None
    assert open_case_key("seller", "u1", S.REVOKED) is None


def test_case_expiry_per_policy():
    assert case_expiry(BUYER, NOW) is None
    assert case_expiry(SELLER, NOW) == NOW + timedelta(days=365)
