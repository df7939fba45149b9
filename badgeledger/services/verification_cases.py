"""Verification Case Service — drives trust-badge requests through their lifecycle.

Invariants:
    - Every status change walks a path validated by core/case_machine.py and
      appends one status_history entry per hop
    - One non-terminal case per (actor_type, actor_id), enforced by open_case_key
    - AI gateway failures never reach the actor: fallback is needs_review / 0
    - The cached ActorBadge changes in the same transaction as the case status
    - Operations that call an external service (submit, record_ai_result,
      admin_decision, resume_checkout) commit the state change BEFORE the call;
      activate_on_payment / extend_subscription / expire / escalate_stale_review
      only flush and leave the commit to their caller (payment gate, sweeper)

Design Decisions:
    - Revoke is commit-then-cancel: the badge is cleared even when the provider
      is down; the cancellation failure is logged only
    - Payment confirmed before approval is kept on the case (payment_ref) and
      consumed when the case reaches pending_payment
    - Reinstate discards prior payment references: it always requires a new payment
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import and_, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from badgeledger.core.case_machine import (
    AIReviewResult, REVIEW_STATES, TERMINAL_STATES, admin_path, case_expiry,
    check_path, classify_ai_result, fallback_review, history_entry,
    open_case_key, stale_review_path, validate_documents,
)
from badgeledger.core.catalog import ActorPolicy, Catalog
from badgeledger.core.domain_types import (
    ActorType, AdminAction, CaseStatus, CheckoutKind, CheckoutMode, DocumentType,
)
from badgeledger.core.errors import (
    ConflictError, ErrorContext, ExternalServiceError, ResourceNotFoundError,
)
from badgeledger.core.repository_protocols import (
    CheckoutRequest, CheckoutSession, DocumentReviewer, PaymentProvider,
)
from badgeledger.db.base import utcnow
from badgeledger.infrastructure.database import commit_or_conflict
from badgeledger.models.actor_badge import ActorBadge
from badgeledger.models.verification_case import VerificationCase

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"
AI_ACTOR = "ai_reviewer"
PAYMENT_ACTOR = "payment_provider"


@dataclass
class CaseOutcome:
    case: VerificationCase
    checkout: CheckoutSession | None = None


def _ctx(case: VerificationCase) -> ErrorContext:
    return ErrorContext(case_id=str(case.id), actor_id=case.actor_id)


class VerificationCaseService:
    def __init__(
        self,
        catalog: Catalog,
        reviewer: DocumentReviewer,
        payments: PaymentProvider,
    ):
        self._catalog = catalog
        self._reviewer = reviewer
        self._payments = payments

    # ─── Queries ─────────────────────────────────────────────────

    async def get(self, db: AsyncSession, case_id: UUID) -> VerificationCase:
        case = await db.get(VerificationCase, case_id)
        if case is None:
            raise ResourceNotFoundError("VerificationCase", str(case_id))
        return case

    async def latest_for_actor(
        self, db: AsyncSession, actor_id: str, actor_type: ActorType,
    ) -> VerificationCase | None:
        result = await db.execute(
            select(VerificationCase)
            .where(
                VerificationCase.actor_id == actor_id,
                VerificationCase.actor_type == actor_type.value,
            )
            .order_by(VerificationCase.created_at.desc())
            .limit(1),
        )
        return result.scalars().first()

    async def find_by_subscription(
        self, db: AsyncSession, subscription_ref: str,
    ) -> VerificationCase | None:
        result = await db.execute(
            select(VerificationCase).where(
                VerificationCase.subscription_ref == subscription_ref,
            ),
        )
        return result.scalars().first()

    async def list_cases(
        self,
        db: AsyncSession,
        status: CaseStatus | None = None,
        actor_type: ActorType | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[VerificationCase]:
        query = select(VerificationCase).order_by(VerificationCase.created_at.asc())
        if status is not None:
            query = query.where(VerificationCase.status == status.value)
        if actor_type is not None:
            query = query.where(VerificationCase.actor_type == actor_type.value)
        result = await db.execute(query.limit(limit).offset(offset))
        return list(result.scalars().all())

    async def due_for_sweep(
        self,
        db: AsyncSession,
        now: datetime,
        stale_before: datetime,
        after_id: UUID | None = None,
        limit: int = 200,
    ) -> list[VerificationCase]:
        """One keyset page of lapsed active cases and stuck AI reviews."""
        query = select(VerificationCase).where(
            or_(
                and_(
                    VerificationCase.status == CaseStatus.ACTIVE.value,
                    VerificationCase.expires_at.is_not(None),
                    VerificationCase.expires_at <= now,
                ),
                and_(
                    VerificationCase.status.in_([s.value for s in REVIEW_STATES]),
                    VerificationCase.updated_at <= stale_before,
                ),
            ),
        )
        if after_id is not None:
            query = query.where(VerificationCase.id > after_id)
        result = await db.execute(query.order_by(VerificationCase.id).limit(limit))
        return list(result.scalars().all())

    # ─── Submission & AI review ──────────────────────────────────

    async def submit(
        self,
        db: AsyncSession,
        actor_id: str,
        actor_type: ActorType,
        documents: list[dict],
        now: datetime | None = None,
    ) -> CaseOutcome:
        """Validate documents, open (or resubmit) the case, then run AI review."""
        now = now or utcnow()
        policy = self._catalog.policy(actor_type)
        context = ErrorContext(actor_id=actor_id)
        validate_documents(
            policy, [DocumentType(d["type"]) for d in documents], context,
        )

        key = open_case_key(actor_type.value, actor_id, CaseStatus.SUBMITTED)
        result = await db.execute(
            select(VerificationCase).where(VerificationCase.open_case_key == key),
        )
        case = result.scalars().first()

        if case is not None and case.case_status != CaseStatus.REJECTED:
            raise ConflictError(
                f"An open {actor_type.value} verification already exists "
                f"(status={case.status})",
                _ctx(case),
            )
        if case is None:
            await self._refuse_if_revoked(db, actor_id, actor_type)
            case = VerificationCase(
                id=uuid4(),
                actor_id=actor_id,
                actor_type=actor_type.value,
                status=CaseStatus.NONE.value,
                documents=[],
                status_history=[],
            )
            db.add(case)

        case.documents = [dict(d) for d in documents]
        case.ai_review = None
        case.admin_review = None
        case.rejection_reason = None
        self._advance(
            case, policy, (CaseStatus.SUBMITTED,), actor_id, now, "Documents submitted",
        )
        await self._commit_unique(db, case)
        logger.info(
            "Verification submitted",
            extra={"case_id": case.id, "actor_id": actor_id},
        )
        return await self.run_ai_review(db, case, now)

    async def run_ai_review(
        self, db: AsyncSession, case: VerificationCase, now: datetime | None = None,
    ) -> CaseOutcome:
        """Move to ai_review, call the gateway, record the (possibly fallback) result."""
        now = now or utcnow()
        policy = self._catalog.policy(case.kind)
        if case.case_status == CaseStatus.SUBMITTED:
            self._advance(case, policy, (CaseStatus.AI_REVIEW,), SYSTEM_ACTOR, now)
            await commit_or_conflict(db, _ctx(case))

        try:
            result = await self._reviewer.review(case.kind, list(case.documents))
        except ExternalServiceError as e:
            logger.warning(
                f"Document review unavailable, falling back to manual review: {e.message}",
                extra={"case_id": case.id, "error_code": e.code},
            )
            result = fallback_review(e.error_type)
        return await self.record_ai_result(db, case.id, result, now)

    async def record_ai_result(
        self,
        db: AsyncSession,
        case_id: UUID,
        result: AIReviewResult,
        now: datetime | None = None,
    ) -> CaseOutcome:
        now = now or utcnow()
        case = await self.get(db, case_id)
        if case.case_status not in REVIEW_STATES:
            logger.warning(
                f"Late AI result ignored (status={case.status})",
                extra={"case_id": case.id},
            )
            return CaseOutcome(case)

        policy = self._catalog.policy(case.kind)
        outcome = classify_ai_result(policy, result)
        path = outcome.path
        if case.case_status == CaseStatus.SUBMITTED:
            path = (CaseStatus.AI_REVIEW,) + path

        case.ai_review = outcome.effective.to_record(now)
        final = path[-1]
        if final == CaseStatus.REJECTED:
            case.rejection_reason = outcome.effective.notes
        self._advance(
            case, policy, path, AI_ACTOR, now,
            f"AI review {outcome.effective.verdict.value} "
            f"(confidence {outcome.effective.confidence})",
        )
        await commit_or_conflict(db, _ctx(case))
        logger.info(
            f"AI review recorded -> {case.status}",
            extra={"case_id": case.id, "to_status": case.status},
        )
        if final == CaseStatus.PENDING_PAYMENT:
            return await self._settle_pending_payment(db, case, policy, now)
        return CaseOutcome(case)

    # ─── Admin decisions ─────────────────────────────────────────

    async def admin_decision(
        self,
        db: AsyncSession,
        case_id: UUID,
        action: AdminAction,
        admin_id: str,
        notes: str | None = None,
        reason: str | None = None,
        now: datetime | None = None,
    ) -> CaseOutcome:
        now = now or utcnow()
        case = await self.get(db, case_id)
        policy = self._catalog.policy(case.kind)
        context = _ctx(case)
        path = admin_path(action, reason, context)
        check_path(policy, case.case_status, path, context)

        case.admin_review = {
            "status": action.value,
            "reviewer_id": admin_id,
            "notes": notes,
            "rejection_reason": reason if action == AdminAction.REJECT else None,
            "reviewed_at": now.isoformat(),
        }
        history_reason = reason or notes or f"Admin {action.value}"

        if action == AdminAction.REJECT:
            case.rejection_reason = reason
            self._advance(case, policy, path, admin_id, now, history_reason)
            await commit_or_conflict(db, context)
            return CaseOutcome(case)

        if action == AdminAction.REVOKE:
            return await self._revoke(db, case, policy, path, admin_id, history_reason, now)

        if action == AdminAction.REINSTATE:
            case.payment_ref = None
            case.subscription_ref = None
            case.checkout_session_id = None
            case.activated_at = None
            case.expires_at = None

        self._advance(case, policy, path, admin_id, now, history_reason)
        await self._commit_unique(db, case)
        logger.info(
            f"Admin {action.value} -> {case.status}",
            extra={"case_id": case.id, "actor_id": case.actor_id},
        )
        return await self._settle_pending_payment(db, case, policy, now)

    async def _revoke(
        self,
        db: AsyncSession,
        case: VerificationCase,
        policy: ActorPolicy,
        path: tuple[CaseStatus, ...],
        admin_id: str,
        reason: str,
        now: datetime,
    ) -> CaseOutcome:
        subscription_ref = case.subscription_ref
        self._advance(case, policy, path, admin_id, now, reason)
        await self._set_badge(db, case, verified=False, now=now)
        await commit_or_conflict(db, _ctx(case))
        logger.info("Verification revoked", extra={"case_id": case.id})

        if subscription_ref:
            try:
                await self._payments.cancel_subscription(subscription_ref)
            except ExternalServiceError as e:
                logger.error(
                    f"Subscription cancel failed after revoke: {e.message}",
                    extra={"case_id": case.id, "error_code": e.code},
                )
        return CaseOutcome(case)

    # ─── Payment ─────────────────────────────────────────────────

    async def activate_on_payment(
        self,
        db: AsyncSession,
        case: VerificationCase,
        payment_ref: str | None,
        subscription_ref: str | None = None,
        now: datetime | None = None,
    ) -> bool:
        """Idempotent activation. Flushes only; the caller commits."""
        now = now or utcnow()
        status = case.case_status
        if status == CaseStatus.ACTIVE:
            logger.info("Duplicate payment confirmation ignored", extra={"case_id": case.id})
            return False

        if payment_ref:
            case.payment_ref = payment_ref
        if subscription_ref:
            case.subscription_ref = subscription_ref

        if status != CaseStatus.PENDING_PAYMENT:
            level = logging.WARNING if status in TERMINAL_STATES else logging.INFO
            logger.log(
                level,
                f"Payment recorded before case is payable (status={status.value})",
                extra={"case_id": case.id},
            )
            await db.flush()
            return False

        policy = self._catalog.policy(case.kind)
        self._advance(
            case, policy, (CaseStatus.ACTIVE,), PAYMENT_ACTOR, now, "Payment confirmed",
        )
        case.activated_at = now
        case.expires_at = case_expiry(policy, now)
        await self._set_badge(db, case, verified=True, now=now)
        await db.flush()
        logger.info(
            "Verification activated",
            extra={"case_id": case.id, "actor_id": case.actor_id},
        )
        return True

    async def resume_checkout(
        self, db: AsyncSession, actor_id: str, actor_type: ActorType,
        now: datetime | None = None,
    ) -> CaseOutcome:
        """Issue a fresh checkout for a case waiting on payment."""
        now = now or utcnow()
        case = await self.latest_for_actor(db, actor_id, actor_type)
        if case is None or case.case_status != CaseStatus.PENDING_PAYMENT:
            raise ConflictError(
                "No verification is awaiting payment",
                ErrorContext(actor_id=actor_id),
            )
        return await self._settle_pending_payment(
            db, case, self._catalog.policy(actor_type), now, required=True,
        )

    async def _settle_pending_payment(
        self,
        db: AsyncSession,
        case: VerificationCase,
        policy: ActorPolicy,
        now: datetime,
        required: bool = False,
    ) -> CaseOutcome:
        """Consume an early payment, or open a checkout session."""
        if case.payment_ref:
            await self.activate_on_payment(db, case, None, None, now)
            await commit_or_conflict(db, _ctx(case))
            return CaseOutcome(case)

        request = self._checkout_request(case, policy)
        try:
            session = await self._payments.create_checkout(request)
        except ExternalServiceError as e:
            if required:
                raise
            logger.error(
                f"Checkout creation failed; case stays payable: {e.message}",
                extra={"case_id": case.id, "error_code": e.code},
            )
            return CaseOutcome(case)

        case.checkout_session_id = session.session_id
        await commit_or_conflict(db, _ctx(case))
        return CaseOutcome(case, session)

    def _checkout_request(
        self, case: VerificationCase, policy: ActorPolicy,
    ) -> CheckoutRequest:
        return CheckoutRequest(
            mode=policy.checkout_mode,
            amount_cents=policy.price_cents,
            currency=self._catalog.currency,
            product_name=policy.display_name,
            metadata={
                "kind": CheckoutKind.VERIFICATION.value,
                "case_id": str(case.id),
                "actor_id": case.actor_id,
                "actor_type": case.actor_type,
            },
            idempotency_key=f"case:{case.id}:{len(case.status_history)}",
            interval="year" if policy.checkout_mode == CheckoutMode.SUBSCRIPTION else None,
        )

    # ─── Scheduled transitions ───────────────────────────────────

    async def expire(
        self,
        db: AsyncSession,
        case: VerificationCase,
        now: datetime | None = None,
        reason: str = "Verification period ended",
    ) -> bool:
        """active -> expired and clear the badge. Flushes only."""
        now = now or utcnow()
        if case.case_status != CaseStatus.ACTIVE:
            return False
        policy = self._catalog.policy(case.kind)
        self._advance(case, policy, (CaseStatus.EXPIRED,), SYSTEM_ACTOR, now, reason)
        await self._set_badge(db, case, verified=False, now=now)
        await db.flush()
        logger.info("Verification expired", extra={"case_id": case.id})
        return True

    async def extend_subscription(
        self, db: AsyncSession, case: VerificationCase, period_end: datetime,
    ) -> bool:
        """Carry an active case and its badge to a renewed period end. Flushes only.

        Expiry only moves forward; a replayed older period is a no-op.
        """
        current = case.expires_at_utc
        if case.case_status != CaseStatus.ACTIVE or current is None:
            return False
        if period_end <= current:
            return False
        case.expires_at = period_end
        badge = await db.get(ActorBadge, (case.actor_type, case.actor_id))
        if badge is not None and badge.case_id == case.id:
            badge.expires_at = period_end
        await db.flush()
        logger.info(
            "Verification renewed",
            extra={"case_id": case.id, "actor_id": case.actor_id},
        )
        return True

    async def escalate_stale_review(
        self, db: AsyncSession, case: VerificationCase, now: datetime | None = None,
    ) -> bool:
        """Hand a case whose AI review never finished to an admin. Flushes only."""
        now = now or utcnow()
        if case.case_status not in REVIEW_STATES:
            return False
        policy = self._catalog.policy(case.kind)
        case.ai_review = fallback_review("stale").to_record(now)
        self._advance(
            case, policy, stale_review_path(case.case_status), SYSTEM_ACTOR, now,
            "AI review did not complete in time; escalated to admin",
        )
        await db.flush()
        logger.warning("Stale review escalated", extra={"case_id": case.id})
        return True

    # ─── Internals ───────────────────────────────────────────────

    def _advance(
        self,
        case: VerificationCase,
        policy: ActorPolicy,
        path: tuple[CaseStatus, ...],
        changed_by: str,
        now: datetime,
        reason: str | None = None,
    ) -> None:
        check_path(policy, case.case_status, path, _ctx(case))
        history = list(case.status_history or [])
        for status in path:
            history.append(history_entry(status, changed_by, now, reason))
        final = path[-1]
        case.status_history = history
        case.status = final.value
        case.open_case_key = open_case_key(case.actor_type, case.actor_id, final)

    async def _set_badge(
        self, db: AsyncSession, case: VerificationCase, verified: bool, now: datetime,
    ) -> None:
        badge = await db.get(ActorBadge, (case.actor_type, case.actor_id))
        if badge is None:
            badge = ActorBadge(actor_type=case.actor_type, actor_id=case.actor_id)
            db.add(badge)
        badge.verified = verified
        badge.case_id = case.id
        badge.verified_at = now if verified else None
        badge.expires_at = case.expires_at if verified else None

    async def _commit_unique(self, db: AsyncSession, case: VerificationCase) -> None:
        """Commit, mapping an open_case_key collision to ConflictError."""
        try:
            await commit_or_conflict(db, _ctx(case))
        except IntegrityError:
            await db.rollback()
            raise ConflictError(
                f"Another open {case.actor_type} verification exists",
                ErrorContext(actor_id=case.actor_id),
            )

    async def _refuse_if_revoked(
        self, db: AsyncSession, actor_id: str, actor_type: ActorType,
    ) -> None:
        latest = await self.latest_for_actor(db, actor_id, actor_type)
        if latest is not None and latest.case_status == CaseStatus.REVOKED:
            raise ConflictError(
                "Verification was revoked; an administrator must reinstate it",
                _ctx(latest),
            )


async def get_badge(
    db: AsyncSession, actor_id: str, actor_type: ActorType,
) -> ActorBadge | None:
    return await db.get(ActorBadge, (actor_type.value, actor_id))
