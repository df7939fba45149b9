"""Entitlement Ledger — persistence and lifecycle of paid capability purchases.

Invariants:
    - Every status change is checked by core/entitlement_rules.py
    - expires_at computed once on first activation, never recomputed
    - Every state change is followed by a cascade recompute of the target in the
      same (uncommitted) transaction; callers commit
    - activate / expire / cancel / refund are idempotent: repeating a change that
      already happened returns False without touching the row

Design Decisions:
    - Ledger owns the resolver call so no caller can forget it
    - due_for_expiry pages by keyset over id: rows that fail to expire stay
      behind the cursor instead of being re-selected forever
"""

import logging
from datetime import datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from badgeledger.core.catalog import Catalog
from badgeledger.core.domain_types import PurchaseStatus, TargetType, Tier
from badgeledger.core.entitlement_rules import can_transition, plan_activation
from badgeledger.core.errors import (
    ErrorContext, InvalidTransitionError, ResourceNotFoundError,
)
from badgeledger.db.base import as_utc, utcnow
from badgeledger.models.entitlement_purchase import EntitlementPurchase
from badgeledger.services.cascade_resolver import CascadeResolver

logger = logging.getLogger(__name__)


def _ctx(purchase: EntitlementPurchase) -> ErrorContext:
    return ErrorContext(purchase_id=str(purchase.id), target_id=purchase.target_id)


class EntitlementLedger:
    def __init__(self, catalog: Catalog, resolver: CascadeResolver):
        self._catalog = catalog
        self._resolver = resolver

    # ─── Queries ─────────────────────────────────────────────────

    async def get(self, db: AsyncSession, purchase_id: UUID) -> EntitlementPurchase:
        purchase = await db.get(EntitlementPurchase, purchase_id)
        if purchase is None:
            raise ResourceNotFoundError("Purchase", str(purchase_id))
        return purchase

    async def find_by_checkout(
        self, db: AsyncSession, checkout_session_id: str,
    ) -> EntitlementPurchase | None:
        result = await db.execute(
            select(EntitlementPurchase).where(
                EntitlementPurchase.checkout_session_id == checkout_session_id,
            ),
        )
        return result.scalars().first()

    async def find_by_payment_ref(
        self, db: AsyncSession, payment_ref: str,
    ) -> EntitlementPurchase | None:
        result = await db.execute(
            select(EntitlementPurchase).where(
                EntitlementPurchase.payment_ref == payment_ref,
            ),
        )
        return result.scalars().first()

    async def active_for_target(
        self, db: AsyncSession, target_id: str,
    ) -> list[EntitlementPurchase]:
        result = await db.execute(
            select(EntitlementPurchase).where(
                EntitlementPurchase.target_id == target_id,
                EntitlementPurchase.status == PurchaseStatus.ACTIVE.value,
            ),
        )
        return list(result.scalars().all())

    async def due_for_expiry(
        self,
        db: AsyncSession,
        now: datetime,
        after_id: UUID | None = None,
        limit: int = 200,
    ) -> list[EntitlementPurchase]:
        """One keyset page of active purchases whose expiry has passed."""
        query = select(EntitlementPurchase).where(
            EntitlementPurchase.status == PurchaseStatus.ACTIVE.value,
            EntitlementPurchase.expires_at.is_not(None),
            EntitlementPurchase.expires_at <= now,
        )
        if after_id is not None:
            query = query.where(EntitlementPurchase.id > after_id)
        result = await db.execute(
            query.order_by(EntitlementPurchase.id).limit(limit),
        )
        return list(result.scalars().all())

    # ─── Commands ────────────────────────────────────────────────

    async def open_purchase(
        self,
        db: AsyncSession,
        owner_id: str,
        target_id: str,
        target_type: TargetType,
        tier: Tier,
    ) -> EntitlementPurchase:
        """Record purchase intent (pending until payment confirms)."""
        spec = self._catalog.tier(tier)
        purchase = EntitlementPurchase(
            owner_id=owner_id,
            target_id=target_id,
            target_type=target_type.value,
            tier=tier.value,
            amount_cents=spec.price_cents,
            status=PurchaseStatus.PENDING.value,
        )
        db.add(purchase)
        await db.flush()
        logger.info(
            f"Purchase opened: {tier.value}",
            extra={"purchase_id": purchase.id, "target_id": target_id},
        )
        return purchase

    async def activate(
        self,
        db: AsyncSession,
        purchase: EntitlementPurchase,
        payment_ref: str | None = None,
        now: datetime | None = None,
    ) -> bool:
        now = now or utcnow()
        decision = plan_activation(
            purchase.purchase_status,
            as_utc(purchase.started_at),
            as_utc(purchase.expires_at),
            self._catalog.tier(Tier(purchase.tier)),
            now,
        )
        if not decision.apply:
            logger.info(
                f"Activation skipped ({decision.reason})",
                extra={"purchase_id": purchase.id, "target_id": purchase.target_id},
            )
            return False

        purchase.status = PurchaseStatus.ACTIVE.value
        purchase.started_at = decision.started_at
        purchase.expires_at = decision.expires_at
        if payment_ref:
            purchase.payment_ref = payment_ref
        await db.flush()
        await self._resolver.recompute(db, purchase.target_id, now)
        logger.info(
            f"Purchase activated: {purchase.tier}",
            extra={"purchase_id": purchase.id, "target_id": purchase.target_id},
        )
        return True

    async def grant(
        self,
        db: AsyncSession,
        owner_id: str,
        target_id: str,
        target_type: TargetType,
        tier: Tier,
        granted_by: str,
        expires_at: datetime | None = None,
        now: datetime | None = None,
    ) -> EntitlementPurchase:
        """Admin assignment without payment: created and activated at once."""
        now = now or utcnow()
        purchase = EntitlementPurchase(
            owner_id=owner_id,
            target_id=target_id,
            target_type=target_type.value,
            tier=tier.value,
            amount_cents=0,
            status=PurchaseStatus.PENDING.value,
            granted_by=granted_by,
            expires_at=expires_at,
        )
        db.add(purchase)
        await db.flush()
        await self.activate(db, purchase, now=now)
        return purchase

    async def expire(
        self, db: AsyncSession, purchase: EntitlementPurchase, now: datetime | None = None,
    ) -> bool:
        return await self._move(db, purchase, PurchaseStatus.EXPIRED, None, now)

    async def cancel(
        self,
        db: AsyncSession,
        purchase: EntitlementPurchase,
        reason: str | None = None,
        now: datetime | None = None,
    ) -> bool:
        return await self._move(db, purchase, PurchaseStatus.CANCELLED, reason, now)

    async def refund(
        self,
        db: AsyncSession,
        purchase: EntitlementPurchase,
        reason: str | None = None,
        now: datetime | None = None,
    ) -> bool:
        return await self._move(db, purchase, PurchaseStatus.REFUNDED, reason, now)

    async def _move(
        self,
        db: AsyncSession,
        purchase: EntitlementPurchase,
        to_status: PurchaseStatus,
        reason: str | None,
        now: datetime | None,
    ) -> bool:
        current = purchase.purchase_status
        if current == to_status:
            return False
        if not can_transition(current, to_status):
            raise InvalidTransitionError(current.value, to_status.value, _ctx(purchase))

        purchase.status = to_status.value
        if reason:
            purchase.cancel_reason = reason
        await db.flush()
        await self._resolver.recompute(db, purchase.target_id, now)
        logger.info(
            f"Purchase {current.value} -> {to_status.value}",
            extra={
                "purchase_id": purchase.id,
                "target_id": purchase.target_id,
                "from_status": current.value,
                "to_status": to_status.value,
            },
        )
        return True
