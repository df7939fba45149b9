"""Cascade Resolver — the single writer of materialized capability flags.

Invariants:
    - recompute() reads ALL purchases of the target and rewrites the whole flag set
    - Idempotent: recomputing twice at the same `now` writes identical values
    - Never commits: the caller's transaction covers the triggering change and
      the derived flags together
    - The only code path that opens resolver_write_scope()

Design Decisions:
    - Full rescan instead of incremental patching: a stale concurrent read only
      delays convergence, it can never leave a flag permanently wrong
"""

import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from badgeledger.core.cascade import resolve_flags
from badgeledger.core.catalog import Catalog
from badgeledger.db.base import utcnow
from badgeledger.models.entitlement_purchase import EntitlementPurchase
from badgeledger.models.target_capabilities import (
    TargetCapabilities, resolver_write_scope,
)

logger = logging.getLogger(__name__)


class CascadeResolver:
    def __init__(self, catalog: Catalog):
        self._catalog = catalog

    async def recompute(
        self,
        db: AsyncSession,
        target_id: str,
        now: datetime | None = None,
        target_type: str | None = None,
    ) -> TargetCapabilities:
        """Derive and persist every capability flag of one target."""
        now = now or utcnow()
        result = await db.execute(
            select(EntitlementPurchase).where(
                EntitlementPurchase.target_id == target_id,
            ),
        )
        purchases = result.scalars().all()
        flags = resolve_flags(
            [p.snapshot() for p in purchases], now, self._catalog,
        )

        caps = await db.get(TargetCapabilities, target_id)
        with resolver_write_scope():
            if caps is None:
                caps = TargetCapabilities(
                    target_id=target_id,
                    target_type=target_type or (
                        purchases[0].target_type if purchases else None
                    ),
                )
                db.add(caps)
            caps.apply_flags(flags, now)
        await db.flush()

        logger.info(
            "Capabilities recomputed: "
            + ",".join(c.value for c, f in flags.items() if f.active),
            extra={"target_id": target_id},
        )
        return caps


async def get_capabilities(
    db: AsyncSession, target_id: str,
) -> TargetCapabilities | None:
    return await db.get(TargetCapabilities, target_id)
