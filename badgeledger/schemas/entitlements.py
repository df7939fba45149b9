"""Entitlement Schemas — purchase, grant, cancel and ranking payloads.

Invariants:
    - Tier and target type validated against their Enums
    - Ranking requests are bounded (max 500 listings per call)
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from badgeledger.core.domain_types import TargetType, Tier


class PurchaseRequest(BaseModel):
    target_id: str = Field(min_length=1, max_length=64)
    target_type: TargetType = TargetType.LISTING
    tier: Tier


class GrantRequest(BaseModel):
    owner_id: str = Field(min_length=1, max_length=64)
    target_id: str = Field(min_length=1, max_length=64)
    target_type: TargetType = TargetType.LISTING
    tier: Tier
    expires_at: datetime | None = None


class CancelRequest(BaseModel):
    reason: str | None = Field(None, max_length=2000)


class PurchaseView(BaseModel):
    id: UUID
    owner_id: str
    target_id: str
    target_type: str
    tier: str
    amount_cents: int
    status: str
    started_at: datetime | None
    expires_at: datetime | None
    checkout_url: str | None = None

    @classmethod
    def from_purchase(cls, purchase, checkout_url: str | None = None) -> "PurchaseView":
        return cls(
            id=purchase.id,
            owner_id=purchase.owner_id,
            target_id=purchase.target_id,
            target_type=purchase.target_type,
            tier=purchase.tier,
            amount_cents=purchase.amount_cents,
            status=purchase.status,
            started_at=purchase.started_at,
            expires_at=purchase.expires_at,
            checkout_url=checkout_url,
        )


class RankItem(BaseModel):
    listing_id: str = Field(min_length=1, max_length=64)
    created_at: datetime


class RankRequest(BaseModel):
    listings: list[RankItem] = Field(max_length=500)
