"""Capability Routes — read model for target flags and listing ranking.

Invariants:
    - Read-only: nothing here writes a capability flag
    - A target with no capability row reads as all flags inactive
    - "live" reflects the clock at request time, so a lapsed flag reads as
      off even before the sweep has expired its purchase
"""

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from badgeledger.api.deps import get_services
from badgeledger.core.cascade import INACTIVE, capability_order
from badgeledger.core.ranking import ListingFlags, flag_is_on, rank_listings
from badgeledger.db.base import as_utc, utcnow
from badgeledger.infrastructure.database import get_db
from badgeledger.models.target_capabilities import TargetCapabilities
from badgeledger.schemas.entitlements import RankRequest
from badgeledger.services.cascade_resolver import get_capabilities
from badgeledger.services.container import Services

router = APIRouter(prefix="/api/v1", tags=["capabilities"])


@router.get("/targets/{target_id}/capabilities")
async def target_capabilities(
    target_id: str,
    db: AsyncSession = Depends(get_db),
):
    now = utcnow()
    caps = await get_capabilities(db, target_id)
    if caps is None:
        return {
            "target_id": target_id,
            "target_type": None,
            "flags": {
                c.value: {"active": False, "expires_at": None}
                for c in capability_order()
            },
            "live": {c.value: False for c in capability_order()},
            "recomputed_at": None,
        }
    body = caps.to_dict()
    states = caps.flag_states()
    body["live"] = {
        c.value: flag_is_on(states.get(c, INACTIVE), now) for c in capability_order()
    }
    return body


@router.post("/listings/rank")
async def rank(
    body: RankRequest,
    services: Services = Depends(get_services),
    db: AsyncSession = Depends(get_db),
):
    """Order the given listings by their active entitlements."""
    ids = [item.listing_id for item in body.listings]
    rows: dict[str, TargetCapabilities] = {}
    if ids:
        result = await db.execute(
            select(TargetCapabilities).where(TargetCapabilities.target_id.in_(ids)),
        )
        rows = {row.target_id: row for row in result.scalars().all()}

    listings = [
        ListingFlags(
            listing_id=item.listing_id,
            created_at=as_utc(item.created_at),
            flags=rows[item.listing_id].flag_states() if item.listing_id in rows else {},
        )
        for item in body.listings
    ]
    ranked = rank_listings(listings, utcnow(), services.catalog)
    return {
        "listings": [
            {
                "listing_id": r.listing_id,
                "score": r.score,
                "created_at": r.created_at.isoformat(),
            }
            for r in ranked
        ],
    }
