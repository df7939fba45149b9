"""Request schemas — boundary validation for verification and entitlement bodies.

Invariants:
    - Document refs are stripped and never empty
    - Document type and tier must be known enum values
    - Submissions carry 1..10 documents; ranking requests at most 500 listings
"""

import pytest
from pydantic import ValidationError

from badgeledger.core.domain_types import AdminAction, DocumentType, TargetType, Tier
from badgeledger.schemas.entitlements import PurchaseRequest, RankRequest
from badgeledger.schemas.verification import (
    AdminDecisionRequest, DocumentRef, SubmitVerificationRequest,
)


# --- DocumentRef --------------------------------------------------------------

def test_document_ref_strips_whitespace():
    doc = DocumentRef(type="passport", ref="  uploads/u1/p.jpg  ")
    assert doc.ref == "uploads/u1/p.jpg"
    assert doc.type == DocumentType.PASSPORT


def test_document_ref_rejects_blank():
    with pytest.raises(ValidationError):
        DocumentRef(type="passport", ref="   ")


def test_document_ref_rejects_unknown_type():
    with pytest.raises(ValidationError):
        DocumentRef(type="library_card", ref="x")


# --- SubmitVerificationRequest ------------------------------------------------

def test_submission_needs_at_least_one_document():
    with pytest.raises(ValidationError):
        SubmitVerificationRequest(documents=[])


def test_submission_capped_at_ten_documents():
    docs = [{"type": "passport", "ref": f"p{i}"} for i in range(11)]
    with pytest.raises(ValidationError):
        SubmitVerificationRequest(documents=docs)


# --- AdminDecisionRequest -----------------------------------------------------

def test_decision_reason_optional_at_boundary():
    body = AdminDecisionRequest(action="reject")
    assert body.action == AdminAction.REJECT
    assert body.reason is None


# --- Entitlements -------------------------------------------------------------

def test_purchase_defaults_to_listing():
    body = PurchaseRequest(target_id="L1", tier="elite")
    assert body.target_type == TargetType.LISTING
    assert body.tier == Tier.ELITE


def test_purchase_rejects_unknown_tier():
    with pytest.raises(ValidationError):
        PurchaseRequest(target_id="L1", tier="platinum")


def test_rank_request_bounded():
    items = [{"listing_id": f"L{i}", "created_at": "2026-01-01T00:00:00Z"} for i in range(501)]
    with pytest.raises(ValidationError):
        RankRequest(listings=items)
