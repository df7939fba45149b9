"""Entitlement Routes — purchases by owners, grants and cancellations by admins.

Invariants:
    - A purchase is always recorded (pending) before its checkout is created
    - Grants and cancellations commit the ledger change and the recomputed
      capability flags in one transaction
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from badgeledger.api.deps import Caller, get_caller, get_services, require_admin
from badgeledger.core.errors import ErrorContext
from badgeledger.infrastructure.database import commit_or_conflict, get_db
from badgeledger.schemas.entitlements import (
    CancelRequest, GrantRequest, PurchaseRequest, PurchaseView,
)
from badgeledger.services.container import Services

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/entitlements", tags=["entitlements"])
admin_router = APIRouter(
    prefix="/api/v1/admin/entitlements", tags=["admin-entitlements"],
)


@router.post(
    "/purchases",
    response_model=PurchaseView,
    status_code=status.HTTP_201_CREATED,
)
async def create_purchase(
    body: PurchaseRequest,
    caller: Caller = Depends(get_caller),
    services: Services = Depends(get_services),
    db: AsyncSession = Depends(get_db),
):
    """Open a purchase and return the hosted checkout link."""
    purchase, session = await services.gate.purchase_checkout(
        db, caller.actor_id, body.target_id, body.target_type, body.tier,
    )
    return PurchaseView.from_purchase(purchase, session.url)


@admin_router.post(
    "/grants",
    response_model=PurchaseView,
    status_code=status.HTTP_201_CREATED,
)
async def grant_entitlement(
    body: GrantRequest,
    admin: Caller = Depends(require_admin),
    services: Services = Depends(get_services),
    db: AsyncSession = Depends(get_db),
):
    """Assign a tier without payment."""
    purchase = await services.ledger.grant(
        db, body.owner_id, body.target_id, body.target_type, body.tier,
        granted_by=admin.actor_id, expires_at=body.expires_at,
    )
    await commit_or_conflict(db, ErrorContext(target_id=body.target_id))
    logger.info(
        f"Entitlement granted by {admin.actor_id}",
        extra={"purchase_id": purchase.id, "target_id": body.target_id},
    )
    return PurchaseView.from_purchase(purchase)


@admin_router.post("/purchases/{purchase_id}/cancel", response_model=PurchaseView)
async def cancel_purchase(
    purchase_id: UUID,
    body: CancelRequest,
    _admin: Caller = Depends(require_admin),
    services: Services = Depends(get_services),
    db: AsyncSession = Depends(get_db),
):
    purchase = await services.ledger.get(db, purchase_id)
    await services.ledger.cancel(db, purchase, body.reason)
    await commit_or_conflict(
        db,
        ErrorContext(purchase_id=str(purchase_id), target_id=purchase.target_id),
    )
    return PurchaseView.from_purchase(purchase)
