"""EntitlementPurchase ORM — the ledger of paid capability purchases.

Invariants:
    - status values come from PurchaseStatus; transitions validated in core/entitlement_rules.py
    - expires_at set once on first activation (NULL = non-expiring tier)
    - version is the optimistic lock shared with the sweeper and webhook handlers

Design Decisions:
    - target_id indexed: the cascade resolver loads every purchase of one target
    - (status, expires_at, id) indexed: the sweeper pages due rows by keyset over id
"""

import uuid
from datetime import datetime

from sqlalchemy import String, Text, Integer, DateTime, Index
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import UUID

from badgeledger.core.domain_types import PurchaseStatus, Tier
from badgeledger.core.entitlement_rules import PurchaseSnapshot
from badgeledger.db.base import Base, as_utc, utcnow


class EntitlementPurchase(Base):
    """One purchase of one tier for one listing or profile."""
    __tablename__ = "entitlement_purchases"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    target_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    target_type: Mapped[str] = mapped_column(String(20), nullable=False)
    tier: Mapped[str] = mapped_column(String(30), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PurchaseStatus.PENDING.value,
    )
    started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    payment_ref: Mapped[str | None] = mapped_column(String(255), nullable=True)
    checkout_session_id: Mapped[str | None] = mapped_column(
        String(255), nullable=True, index=True,
    )
    granted_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    cancel_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow,
    )

    __mapper_args__ = {"version_id_col": version}
    __table_args__ = (
        Index("ix_entitlement_purchases_due", "status", "expires_at", "id"),
    )

    @property
    def purchase_status(self) -> PurchaseStatus:
        return PurchaseStatus(self.status)

    def snapshot(self) -> PurchaseSnapshot:
        return PurchaseSnapshot(
            id=self.id,
            target_id=self.target_id,
            tier=Tier(self.tier),
            status=PurchaseStatus(self.status),
            expires_at=as_utc(self.expires_at),
        )
