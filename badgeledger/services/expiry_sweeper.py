"""Expiry Sweeper — scheduled adapter that applies core/sweep_plan.py to the database.

Invariants:
    - Each record is transitioned in its own transaction: one failure rolls back
      only that record, increments `errors`, and the sweep continues
    - Purchases are selected in bounded keyset chunks; a record that fails stays
      behind the cursor and is retried on the next scheduled run
    - Snapshots are taken before any commit/rollback, so no expired ORM attribute
      is ever lazily loaded mid-sweep
    - Running the sweep twice at the same `now` processes zero records the second time

Design Decisions:
    - The ledger recomputes each touched target inside the record's transaction,
      so a committed expiry and its derived flags are never out of step
    - Lapsed verification cases and stale AI reviews share the same pass and the
      same {processed, errors, total} counters
"""

import logging
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from badgeledger.core.sweep_plan import (
    CaseSnapshot, SweepAction, SweepResult, Transition, plan_sweep,
)
from badgeledger.core.entitlement_rules import is_due
from badgeledger.db.base import utcnow
from badgeledger.infrastructure.database import commit_or_conflict
from badgeledger.models.entitlement_purchase import EntitlementPurchase
from badgeledger.models.verification_case import VerificationCase
from badgeledger.services.entitlement_ledger import EntitlementLedger
from badgeledger.services.verification_cases import VerificationCaseService

logger = logging.getLogger(__name__)


class ExpirySweeper:
    def __init__(
        self,
        ledger: EntitlementLedger,
        cases: VerificationCaseService,
        chunk_size: int = 200,
        stale_review_hours: int = 48,
    ):
        self._ledger = ledger
        self._cases = cases
        self._chunk_size = chunk_size
        self._stale_review_hours = stale_review_hours

    async def run(self, db: AsyncSession, now: datetime | None = None) -> SweepResult:
        now = now or utcnow()
        result = SweepResult()
        targets = await self._sweep_purchases(db, now, result)
        await self._sweep_cases(db, now, result)
        logger.info(
            f"Sweep complete ({len(targets)} target(s) recomputed)",
            extra=result.to_dict(),
        )
        return result

    async def _sweep_purchases(
        self, db: AsyncSession, now: datetime, result: SweepResult,
    ) -> set[str]:
        touched: set[str] = set()
        cursor: UUID | None = None
        while True:
            page = await self._ledger.due_for_expiry(db, now, cursor, self._chunk_size)
            if not page:
                break
            snapshots = [p.snapshot() for p in page]
            cursor = snapshots[-1].id
            plan = plan_sweep(now, purchases=snapshots)
            for transition in plan.transitions:
                if await self._apply(db, transition, now, result):
                    touched.add(transition.target_id)
            if len(page) < self._chunk_size:
                break
        return touched

    async def _sweep_cases(
        self, db: AsyncSession, now: datetime, result: SweepResult,
    ) -> None:
        stale_before = now - timedelta(hours=self._stale_review_hours)
        cursor: UUID | None = None
        while True:
            page = await self._cases.due_for_sweep(
                db, now, stale_before, cursor, self._chunk_size,
            )
            if not page:
                break
            snapshots = [
                CaseSnapshot(
                    id=c.id,
                    actor_id=c.actor_id,
                    actor_type=c.kind,
                    status=c.case_status,
                    expires_at=c.expires_at_utc,
                    updated_at=c.updated_at_utc,
                )
                for c in page
            ]
            cursor = snapshots[-1].id
            plan = plan_sweep(
                now, cases=snapshots, stale_review_hours=self._stale_review_hours,
            )
            for transition in plan.transitions:
                await self._apply(db, transition, now, result)
            if len(page) < self._chunk_size:
                break

    async def _apply(
        self,
        db: AsyncSession,
        transition: Transition,
        now: datetime,
        result: SweepResult,
    ) -> bool:
        """Apply one planned transition in its own transaction."""
        try:
            changed = await self._transition(db, transition, now)
            await commit_or_conflict(db)
        except Exception as e:
            await db.rollback()
            result.errors += 1
            logger.error(
                f"Sweep {transition.action.value} failed for {transition.record_id}: {e}",
                exc_info=True,
                extra={"target_id": transition.target_id},
            )
            return False
        if changed:
            result.processed += 1
        return changed

    async def _transition(
        self, db: AsyncSession, transition: Transition, now: datetime,
    ) -> bool:
        if transition.action == SweepAction.EXPIRE_PURCHASE:
            purchase = await db.get(
                EntitlementPurchase, transition.record_id, populate_existing=True,
            )
            if purchase is None or not is_due(purchase.snapshot(), now):
                return False
            return await self._ledger.expire(db, purchase, now)

        case = await db.get(
            VerificationCase, transition.record_id, populate_existing=True,
        )
        if case is None:
            return False
        if transition.action == SweepAction.EXPIRE_CASE:
            return await self._cases.expire(db, case, now)
        return await self._cases.escalate_stale_review(db, case, now)
