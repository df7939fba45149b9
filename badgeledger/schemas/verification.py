"""Verification Schemas — request bodies and response views for verification cases.

Invariants:
    - Document type validated against DocumentType; ref is an opaque non-empty string
    - Actor-facing views expose only the collapsed public status
    - Admin views expose the full case including AI and admin review records

Design Decisions:
    - field_validator for side-effect-free transforms (strip)
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from badgeledger.core.case_machine import public_status
from badgeledger.core.domain_types import AdminAction, CaseStatus, DocumentType


class DocumentRef(BaseModel):
    """Opaque reference to an already-uploaded document."""
    type: DocumentType
    ref: str = Field(min_length=1, max_length=1024)
    file_name: str | None = Field(None, max_length=255)

    @field_validator("ref")
    @classmethod
    def strip_ref(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("ref cannot be empty or whitespace")
        return v


class SubmitVerificationRequest(BaseModel):
    documents: list[DocumentRef] = Field(min_length=1, max_length=10)


class AdminDecisionRequest(BaseModel):
    action: AdminAction
    notes: str | None = Field(None, max_length=2000)
    reason: str | None = Field(None, max_length=2000)


class CaseView(BaseModel):
    """What the actor sees about their own case."""
    id: UUID
    actor_type: str
    status: str
    rejection_reason: str | None = None
    activated_at: datetime | None = None
    expires_at: datetime | None = None
    checkout_url: str | None = None

    @classmethod
    def from_case(cls, case, checkout_url: str | None = None) -> "CaseView":
        return cls(
            id=case.id,
            actor_type=case.actor_type,
            status=public_status(CaseStatus(case.status)),
            rejection_reason=case.rejection_reason,
            activated_at=case.activated_at,
            expires_at=case.expires_at,
            checkout_url=checkout_url,
        )


class AdminCaseView(BaseModel):
    id: UUID
    actor_id: str
    actor_type: str
    status: str
    documents: list[dict]
    ai_review: dict | None
    admin_review: dict | None
    status_history: list[dict]
    rejection_reason: str | None
    payment_ref: str | None
    subscription_ref: str | None
    activated_at: datetime | None
    expires_at: datetime | None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_case(cls, case) -> "AdminCaseView":
        return cls(
            id=case.id,
            actor_id=case.actor_id,
            actor_type=case.actor_type,
            status=case.status,
            documents=case.documents or [],
            ai_review=case.ai_review,
            admin_review=case.admin_review,
            status_history=case.status_history or [],
            rejection_reason=case.rejection_reason,
            payment_ref=case.payment_ref,
            subscription_ref=case.subscription_ref,
            activated_at=case.activated_at,
            expires_at=case.expires_at,
            created_at=case.created_at,
            updated_at=case.updated_at,
        )
