"""Payment Gate — opens checkout sessions and applies provider payment events.

Invariants:
    - Every checkout carries correlation metadata: kind, the case or purchase id,
      the actor or target id, and the capability being bought
    - Each provider event id is applied at most once (PaymentEventRecord)
    - Handlers are idempotent and order-tolerant: a refund that beats its
      completion leaves the purchase refunded; a repeated completion is a no-op
    - The event record and the state change it caused commit together

Design Decisions:
    - Explicit dict dispatch on event type (no auto-discovery)
    - Invalid transitions caused by stale events are recorded as ignored instead
      of failing the webhook, so the provider stops redelivering them
    - Charges are matched by payment_ref first, then by the purchase_id carried
      in metadata (a refund can arrive before the completion sets payment_ref)
    - Subscription renewals move a live case to the provider's current period
      end; past_due and unpaid keep the existing expiry as a grace period; any
      other subscription status expires the case
"""

import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from badgeledger.core.catalog import Catalog
from badgeledger.core.domain_types import (
    CheckoutKind, CheckoutMode, TargetType, Tier,
)
from badgeledger.core.errors import ErrorContext, InvalidTransitionError
from badgeledger.core.repository_protocols import (
    CheckoutRequest, CheckoutSession, PaymentProvider, ProviderEvent,
)
from badgeledger.db.base import utcnow
from badgeledger.infrastructure.database import commit_or_conflict
from badgeledger.models.entitlement_purchase import EntitlementPurchase
from badgeledger.models.payment_event import PaymentEventRecord
from badgeledger.models.verification_case import VerificationCase
from badgeledger.services.entitlement_ledger import EntitlementLedger
from badgeledger.services.verification_cases import VerificationCaseService

logger = logging.getLogger(__name__)

APPLIED = "applied"
DUPLICATE = "duplicate"

_PAID_STATUSES = {"paid", "no_payment_required"}
_RENEWING_STATUSES = {"active", "trialing"}
_GRACE_STATUSES = {"past_due", "unpaid"}

EventHandler = Callable[[AsyncSession, dict, datetime], Awaitable[str]]


def _as_uuid(value: str | None) -> UUID | None:
    if not value:
        return None
    try:
        return UUID(value)
    except ValueError:
        return None


def _from_timestamp(value) -> datetime | None:
    if value is None:
        return None
    return datetime.fromtimestamp(int(value), timezone.utc)


def _subscription_period_end(subscription: dict) -> datetime | None:
    # Newer API versions carry the period on the subscription items
    if subscription.get("current_period_end") is not None:
        return _from_timestamp(subscription["current_period_end"])
    items = (subscription.get("items") or {}).get("data") or []
    ends = [item["current_period_end"] for item in items if item.get("current_period_end")]
    return _from_timestamp(max(ends)) if ends else None


def _invoice_subscription(invoice: dict) -> str | None:
    if invoice.get("subscription"):
        return invoice["subscription"]
    details = (invoice.get("parent") or {}).get("subscription_details") or {}
    return details.get("subscription")


def _invoice_period_end(invoice: dict) -> datetime | None:
    # The invoice's own period_end covers the previous period; the lines carry the paid one
    lines = (invoice.get("lines") or {}).get("data") or []
    ends = [(line.get("period") or {}).get("end") for line in lines]
    ends = [end for end in ends if end]
    return _from_timestamp(max(ends)) if ends else None


class PaymentGate:
    def __init__(
        self,
        catalog: Catalog,
        payments: PaymentProvider,
        cases: VerificationCaseService,
        ledger: EntitlementLedger,
    ):
        self._catalog = catalog
        self._payments = payments
        self._cases = cases
        self._ledger = ledger
        self._handlers: dict[str, EventHandler] = {
            "checkout.session.completed": self._on_checkout_completed,
            "charge.refunded": self._on_charge_refunded,
            "customer.subscription.updated": self._on_subscription_updated,
            "customer.subscription.deleted": self._on_subscription_deleted,
            "invoice.payment_succeeded": self._on_invoice_paid,
        }

    # ─── Checkout ────────────────────────────────────────────────

    async def purchase_checkout(
        self,
        db: AsyncSession,
        owner_id: str,
        target_id: str,
        target_type: TargetType,
        tier: Tier,
    ) -> tuple[EntitlementPurchase, CheckoutSession]:
        """Record purchase intent, then open a one-time checkout for it."""
        spec = self._catalog.tier(tier)
        purchase = await self._ledger.open_purchase(
            db, owner_id, target_id, target_type, tier,
        )
        context = ErrorContext(purchase_id=str(purchase.id), target_id=target_id)
        await commit_or_conflict(db, context)

        session = await self._payments.create_checkout(CheckoutRequest(
            mode=CheckoutMode.PAYMENT,
            amount_cents=spec.price_cents,
            currency=self._catalog.currency,
            product_name=spec.display_name,
            metadata={
                "kind": CheckoutKind.ENTITLEMENT.value,
                "purchase_id": str(purchase.id),
                "target_id": target_id,
                "owner_id": owner_id,
                "capability": tier.value,
            },
            idempotency_key=f"purchase:{purchase.id}",
        ))
        purchase.checkout_session_id = session.session_id
        await commit_or_conflict(db, context)
        return purchase, session

    # ─── Webhooks ────────────────────────────────────────────────

    async def handle_webhook(
        self, db: AsyncSession, payload: bytes, signature: str | None,
    ) -> str:
        event = self._payments.parse_event(payload, signature)
        return await self.process_event(db, event)

    async def process_event(
        self, db: AsyncSession, event: ProviderEvent, now: datetime | None = None,
    ) -> str:
        now = now or utcnow()
        log_extra = {"event_id": event.id, "event_type": event.type}
        seen = await db.execute(
            select(PaymentEventRecord.id).where(PaymentEventRecord.event_id == event.id),
        )
        if seen.first() is not None:
            logger.info("Duplicate provider event skipped", extra=log_extra)
            return DUPLICATE

        handler = self._handlers.get(event.type)
        if handler is None:
            outcome = "ignored:unhandled"
        else:
            try:
                outcome = await handler(db, event.data, now)
            except InvalidTransitionError as e:
                await db.rollback()
                logger.warning(
                    f"Provider event conflicts with current state: {e.message}",
                    extra=log_extra,
                )
                outcome = "ignored:invalid_transition"

        db.add(PaymentEventRecord(
            event_id=event.id, event_type=event.type, outcome=outcome,
        ))
        try:
            await commit_or_conflict(db)
        except IntegrityError:
            # Concurrent delivery of the same event committed first
            await db.rollback()
            logger.info("Duplicate provider event lost the race", extra=log_extra)
            return DUPLICATE
        logger.info(f"Provider event processed: {outcome}", extra=log_extra)
        return outcome

    async def _on_checkout_completed(
        self, db: AsyncSession, session: dict, now: datetime,
    ) -> str:
        if session.get("payment_status") not in _PAID_STATUSES:
            return "ignored:unpaid"
        metadata = session.get("metadata") or {}
        payment_ref = session.get("payment_intent") or session.get("id")
        kind = metadata.get("kind")

        if kind == CheckoutKind.VERIFICATION.value:
            case_id = _as_uuid(metadata.get("case_id"))
            case = await db.get(VerificationCase, case_id) if case_id else None
            if case is None:
                return "ignored:unknown_case"
            activated = await self._cases.activate_on_payment(
                db, case, payment_ref, session.get("subscription"), now,
            )
            return APPLIED if activated else "recorded"

        if kind == CheckoutKind.ENTITLEMENT.value:
            purchase = await self._purchase_for(db, metadata, session.get("id"))
            if purchase is None:
                return "ignored:unknown_purchase"
            activated = await self._ledger.activate(db, purchase, payment_ref, now)
            return APPLIED if activated else "ignored:not_pending"

        return "ignored:unknown_kind"

    async def _on_charge_refunded(
        self, db: AsyncSession, charge: dict, now: datetime,
    ) -> str:
        purchase = None
        payment_intent = charge.get("payment_intent")
        if payment_intent:
            purchase = await self._ledger.find_by_payment_ref(db, payment_intent)
        if purchase is None:
            purchase = await self._purchase_for(db, charge.get("metadata") or {}, None)
        if purchase is None:
            return "ignored:unknown_payment"
        refunded = await self._ledger.refund(db, purchase, "Charge refunded", now)
        return APPLIED if refunded else "ignored:already_refunded"

    async def _on_subscription_deleted(
        self, db: AsyncSession, subscription: dict, now: datetime,
    ) -> str:
        case = await self._cases.find_by_subscription(db, subscription.get("id", ""))
        if case is None:
            return "ignored:unknown_subscription"
        expired = await self._cases.expire(db, case, now, reason="Subscription ended")
        return APPLIED if expired else "ignored:not_active"

    async def _on_subscription_updated(
        self, db: AsyncSession, subscription: dict, now: datetime,
    ) -> str:
        case = await self._cases.find_by_subscription(db, subscription.get("id", ""))
        if case is None:
            return "ignored:unknown_subscription"
        status = subscription.get("status")
        if status in _GRACE_STATUSES:
            logger.warning(
                f"Verification subscription {status}; badge kept until current expiry",
                extra={"case_id": case.id},
            )
            return "ignored:grace_period"
        if status not in _RENEWING_STATUSES:
            expired = await self._cases.expire(
                db, case, now, reason=f"Subscription {status}",
            )
            return APPLIED if expired else "ignored:not_active"
        return await self._renew(db, case, _subscription_period_end(subscription))

    async def _on_invoice_paid(
        self, db: AsyncSession, invoice: dict, now: datetime,
    ) -> str:
        subscription_ref = _invoice_subscription(invoice)
        if not subscription_ref:
            return "ignored:no_subscription"
        case = await self._cases.find_by_subscription(db, subscription_ref)
        if case is None:
            return "ignored:unknown_subscription"
        return await self._renew(db, case, _invoice_period_end(invoice))

    async def _renew(
        self, db: AsyncSession, case: VerificationCase, period_end: datetime | None,
    ) -> str:
        if period_end is None:
            return "ignored:no_period"
        extended = await self._cases.extend_subscription(db, case, period_end)
        return APPLIED if extended else "ignored:not_extended"

    async def _purchase_for(
        self, db: AsyncSession, metadata: dict, checkout_session_id: str | None,
    ) -> EntitlementPurchase | None:
        purchase_id = _as_uuid(metadata.get("purchase_id"))
        if purchase_id is not None:
            purchase = await db.get(EntitlementPurchase, purchase_id)
            if purchase is not None:
                return purchase
        if checkout_session_id:
            return await self._ledger.find_by_checkout(db, checkout_session_id)
        return None
