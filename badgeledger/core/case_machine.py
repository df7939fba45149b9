"""Verification Case Machine — pure transition rules for trust-badge requests.

Invariants:
    - Every status change is checked against the actor's own transition table
    - expired and revoked are terminal; only reinstate leaves them (-> pending_payment)
    - A rejection always carries a human-readable reason (admin reason or AI notes)
    - The AI fallback is needs_review with confidence 0 — failures are never
      shown to the actor as errors
    - status_history entries are append-only plain dicts (JSON-serializable)

Design Decisions:
    - Functions return status *paths* (tuples) instead of mutating rows: the service
      walks the path, appending one history entry per hop, inside one transaction
    - Low-confidence AI approvals are downgraded to needs_review so an uncertain
      auto-approvable case still reaches a human
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta

from badgeledger.core.catalog import ActorPolicy
from badgeledger.core.domain_types import (
    AdminAction, AIVerdict, CaseStatus, DocumentType,
)
from badgeledger.core.errors import (
    ErrorContext, InvalidTransitionError, ValidationError,
)

S = CaseStatus

TERMINAL_STATES: frozenset[CaseStatus] = frozenset({S.EXPIRED, S.REVOKED})
REVIEW_STATES: frozenset[CaseStatus] = frozenset({S.SUBMITTED, S.AI_REVIEW})

FALLBACK_NOTES = "Automated review unavailable; queued for manual review"


# ─── Review Results ──────────────────────────────────────────────

@dataclass(frozen=True)
class AIReviewResult:
    """Normalized output of the document review gateway."""
    verdict: AIVerdict
    confidence: int
    notes: str | None = None
    flags: tuple[str, ...] = field(default_factory=tuple)

    def to_record(self, reviewed_at: datetime) -> dict:
        return {
            "status": self.verdict.value,
            "confidence": self.confidence,
            "notes": self.notes,
            "flags": list(self.flags),
            "reviewed_at": reviewed_at.isoformat(),
        }


def fallback_review(reason: str) -> AIReviewResult:
    """Result recorded when the gateway fails or times out."""
    return AIReviewResult(
        verdict=AIVerdict.NEEDS_REVIEW,
        confidence=0,
        notes=FALLBACK_NOTES,
        flags=("ai_unavailable", reason),
    )


@dataclass(frozen=True)
class ReviewOutcome:
    effective: AIReviewResult
    path: tuple[CaseStatus, ...]


def classify_ai_result(policy: ActorPolicy, result: AIReviewResult) -> ReviewOutcome:
    """Map a gateway verdict to the status path that follows ai_review."""
    effective = result
    if (
        result.verdict == AIVerdict.APPROVED
        and policy.auto_approve
        and result.confidence < policy.min_auto_approve_confidence
    ):
        effective = AIReviewResult(
            AIVerdict.NEEDS_REVIEW, result.confidence, result.notes,
            result.flags + ("low_confidence",),
        )
    if result.verdict == AIVerdict.REJECTED and not (result.notes or "").strip():
        effective = AIReviewResult(
            AIVerdict.NEEDS_REVIEW, result.confidence, result.notes,
            result.flags + ("rejection_without_notes",),
        )

    if effective.verdict == AIVerdict.APPROVED:
        follow = S.PENDING_PAYMENT if policy.auto_approve else S.PENDING_ADMIN
        return ReviewOutcome(effective, (S.AI_APPROVED, follow))
    if effective.verdict == AIVerdict.REJECTED:
        return ReviewOutcome(effective, (S.AI_REJECTED, S.REJECTED))
    return ReviewOutcome(effective, (S.NEEDS_ADMIN_REVIEW, S.PENDING_ADMIN))


# ─── Transitions ─────────────────────────────────────────────────

def check_transition(
    policy: ActorPolicy,
    from_status: CaseStatus,
    to_status: CaseStatus,
    context: ErrorContext | None = None,
) -> None:
    if not policy.allows(from_status, to_status):
        raise InvalidTransitionError(from_status.value, to_status.value, context)


def check_path(
    policy: ActorPolicy,
    from_status: CaseStatus,
    path: tuple[CaseStatus, ...],
    context: ErrorContext | None = None,
) -> CaseStatus:
    """Validate every hop of `path`; returns the final status."""
    current = from_status
    for nxt in path:
        check_transition(policy, current, nxt, context)
        current = nxt
    return current


def admin_path(
    action: AdminAction,
    reason: str | None = None,
    context: ErrorContext | None = None,
) -> tuple[CaseStatus, ...]:
    """Status path for an admin decision. Reject requires a non-empty reason."""
    if action == AdminAction.APPROVE:
        return (S.APPROVED, S.PENDING_PAYMENT)
    if action == AdminAction.REJECT:
        if not (reason or "").strip():
            raise ValidationError(
                "A rejection reason is required",
                details=[{
                    "field": "reason",
                    "message": "must be non-empty when rejecting",
                    "type": "missing",
                }],
                context=context,
            )
        return (S.REJECTED,)
    if action == AdminAction.REVOKE:
        return (S.REVOKED,)
    return (S.PENDING_PAYMENT,)


def stale_review_path(status: CaseStatus) -> tuple[CaseStatus, ...]:
    """Escalation path for a case whose AI review never completed."""
    escalate = (S.NEEDS_ADMIN_REVIEW, S.PENDING_ADMIN)
    if status == S.SUBMITTED:
        return (S.AI_REVIEW,) + escalate
    return escalate


def is_stale_review(
    status: CaseStatus, updated_at: datetime, now: datetime, stale_hours: int,
) -> bool:
    return status in REVIEW_STATES and updated_at <= now - timedelta(hours=stale_hours)


# ─── Submission ──────────────────────────────────────────────────

def validate_documents(
    policy: ActorPolicy,
    document_types: list[DocumentType],
    context: ErrorContext | None = None,
) -> None:
    """Raise ValidationError listing every unmet required-document group."""
    missing = policy.missing_document_groups(set(document_types))
    if not missing:
        return
    raise ValidationError(
        f"Missing required documents for {policy.actor_type.value} verification",
        details=[
            {
                "field": "documents",
                "message": "one of: " + ", ".join(sorted(d.value for d in group)),
                "type": "missing_document",
            }
            for group in missing
        ],
        context=context,
    )


# ─── Actor-facing view ───────────────────────────────────────────

_PUBLIC_STATUS: dict[CaseStatus, str] = {
    S.NONE: "not_started",
    S.SUBMITTED: "under_review",
    S.AI_REVIEW: "under_review",
    S.AI_APPROVED: "under_review",
    S.AI_REJECTED: "under_review",
    S.NEEDS_ADMIN_REVIEW: "under_review",
    S.PENDING_ADMIN: "under_review",
    S.APPROVED: "approved",
    S.REJECTED: "rejected",
    S.PENDING_PAYMENT: "payment_required",
    S.ACTIVE: "verified",
    S.EXPIRED: "expired",
    S.REVOKED: "revoked",
}


def public_status(status: CaseStatus) -> str:
    """Collapse internal review states; the actor never sees AI outcomes directly."""
    return _PUBLIC_STATUS[status]


# ─── Bookkeeping ─────────────────────────────────────────────────

def history_entry(
    status: CaseStatus, changed_by: str, changed_at: datetime, reason: str | None = None,
) -> dict:
    return {
        "status": status.value,
        "changed_by": changed_by,
        "changed_at": changed_at.isoformat(),
        "reason": reason,
    }


def open_case_key(actor_type: str, actor_id: str, status: CaseStatus) -> str | None:
    """Uniqueness key held only while the case is non-terminal."""
    if status in TERMINAL_STATES:
        return None
    return f"{actor_type}:{actor_id}"


def case_expiry(policy: ActorPolicy, activated_at: datetime) -> datetime | None:
    """Badge lifetime: None for lifetime (one-time) verifications."""
    if policy.subscription_days is None:
        return None
    return activated_at + timedelta(days=policy.subscription_days)
