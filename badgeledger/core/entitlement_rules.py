"""Entitlement Rules — pure lifecycle decisions for paid capability purchases.

Invariants:
    - expires_at is computed exactly once, on the first transition to active,
      and only when it is unset; it is never recomputed afterwards
    - A purchase is live iff status == active and (expires_at is None or expires_at > now)
    - Activation of an active purchase is a no-op (duplicate payment events)
    - Activation of expired/cancelled/refunded purchases is a no-op (out-of-order events)

Design Decisions:
    - Snapshot dataclass instead of ORM rows: the cascade and sweep planners
      work on plain values and are trivially unit-testable
    - Decisions returned as values; the ledger service applies them
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID

from badgeledger.core.catalog import TierSpec
from badgeledger.core.domain_types import PurchaseStatus, Tier


P = PurchaseStatus

PURCHASE_TRANSITIONS: dict[PurchaseStatus, frozenset[PurchaseStatus]] = {
    P.PENDING: frozenset({P.ACTIVE, P.CANCELLED, P.REFUNDED}),
    P.ACTIVE: frozenset({P.EXPIRED, P.CANCELLED, P.REFUNDED}),
    P.EXPIRED: frozenset({P.REFUNDED}),
    P.CANCELLED: frozenset({P.REFUNDED}),
    P.REFUNDED: frozenset(),
}


@dataclass(frozen=True)
class PurchaseSnapshot:
    """Plain-value view of one ledger row."""
    id: UUID
    target_id: str
    tier: Tier
    status: PurchaseStatus
    expires_at: datetime | None


@dataclass(frozen=True)
class ActivationDecision:
    """Outcome of an activation request. apply=False means leave the row alone."""
    apply: bool
    reason: str
    started_at: datetime | None = None
    expires_at: datetime | None = None


def compute_expiry(spec: TierSpec, started_at: datetime) -> datetime | None:
    """started_at + tier duration, or None for non-expiring tiers."""
    if spec.duration_days is None:
        return None
    return started_at + timedelta(days=spec.duration_days)


def is_live(snapshot: PurchaseSnapshot, now: datetime) -> bool:
    if snapshot.status != PurchaseStatus.ACTIVE:
        return False
    return snapshot.expires_at is None or snapshot.expires_at > now


def is_due(snapshot: PurchaseSnapshot, now: datetime) -> bool:
    """Active but past its expiry: the sweep must move it to expired."""
    return (
        snapshot.status == PurchaseStatus.ACTIVE
        and snapshot.expires_at is not None
        and snapshot.expires_at <= now
    )


def can_transition(from_status: PurchaseStatus, to_status: PurchaseStatus) -> bool:
    return to_status in PURCHASE_TRANSITIONS[from_status]


def plan_activation(
    status: PurchaseStatus,
    started_at: datetime | None,
    expires_at: datetime | None,
    spec: TierSpec,
    now: datetime,
) -> ActivationDecision:
    """Decide how (and whether) to activate a purchase."""
    if status == PurchaseStatus.ACTIVE:
        return ActivationDecision(apply=False, reason="already_active")
    if status != PurchaseStatus.PENDING:
        return ActivationDecision(apply=False, reason=f"terminal:{status.value}")

    start = started_at or now
    # Pre-set expiry (admin grants with explicit end date) is kept as-is
    expiry = expires_at if expires_at is not None else compute_expiry(spec, start)
    return ActivationDecision(
        apply=True, reason="activated", started_at=start, expires_at=expiry,
    )
