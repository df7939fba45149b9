"""Payment Webhook Route — entry point for provider events.

Invariants:
    - The raw request body is passed untouched to signature verification
    - A bad signature is rejected (400) before any state is read
    - Duplicate and out-of-order events return 200 so the provider stops retrying
"""

import logging

from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from badgeledger.api.deps import get_services
from badgeledger.infrastructure.database import get_db
from badgeledger.services.container import Services

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/payments", tags=["payments"])


@router.post("/webhook")
async def payment_webhook(
    request: Request,
    stripe_signature: str | None = Header(None),
    services: Services = Depends(get_services),
    db: AsyncSession = Depends(get_db),
):
    payload = await request.body()
    outcome = await services.gate.handle_webhook(db, payload, stripe_signature)
    return {"received": True, "outcome": outcome}
