"""Cron Routes — scheduler trigger for the expiry sweep.

Invariants:
    - Bearer secret required; with no secret configured the trigger is refused
    - GET and POST both accepted (schedulers differ in the verb they send)
    - Response is always {processed, errors, total}
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from badgeledger.api.deps import get_services, require_cron_secret
from badgeledger.infrastructure.database import get_db
from badgeledger.services.container import Services

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/cron", tags=["cron"])


@router.api_route(
    "/sweep",
    methods=["GET", "POST"],
    dependencies=[Depends(require_cron_secret)],
)
async def run_sweep(
    services: Services = Depends(get_services),
    db: AsyncSession = Depends(get_db),
):
    result = await services.sweeper.run(db)
    return result.to_dict()
