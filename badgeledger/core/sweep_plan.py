"""Sweep Planning — pure selection of the records a scheduled sweep must transition.

Invariants:
    - plan_sweep(now, snapshot) is pure: no clock reads, no IO
    - A purchase is planned iff status == active and expires_at <= now
    - A case is planned for expiry iff status == active and expires_at <= now
    - A case is planned for escalation iff it sat in submitted/ai_review
      longer than the stale window
    - Applying a plan and re-planning at the same `now` yields an empty plan

Design Decisions:
    - The sweeper adapter pages through the database and calls plan_sweep per
      chunk; per-record transactions and error counting live in the adapter
    - SweepResult.total counts every record attempted (processed + errors)
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Iterable
from uuid import UUID

from badgeledger.core.case_machine import is_stale_review
from badgeledger.core.domain_types import ActorType, CaseStatus
from badgeledger.core.entitlement_rules import PurchaseSnapshot, is_due


class SweepAction(str, Enum):
    EXPIRE_PURCHASE = "expire_purchase"
    EXPIRE_CASE = "expire_case"
    ESCALATE_REVIEW = "escalate_review"


@dataclass(frozen=True)
class CaseSnapshot:
    """Plain-value view of one verification case row."""
    id: UUID
    actor_id: str
    actor_type: ActorType
    status: CaseStatus
    expires_at: datetime | None
    updated_at: datetime


@dataclass(frozen=True)
class Transition:
    action: SweepAction
    record_id: UUID
    target_id: str | None = None


@dataclass(frozen=True)
class SweepPlan:
    transitions: tuple[Transition, ...]
    # Targets whose capability flags must be recomputed after the transitions
    targets: frozenset[str]

    @property
    def is_empty(self) -> bool:
        return not self.transitions


@dataclass
class SweepResult:
    processed: int = 0
    errors: int = 0

    @property
    def total(self) -> int:
        return self.processed + self.errors

    def to_dict(self) -> dict:
        return {"processed": self.processed, "errors": self.errors, "total": self.total}


def plan_sweep(
    now: datetime,
    purchases: Iterable[PurchaseSnapshot] = (),
    cases: Iterable[CaseSnapshot] = (),
    stale_review_hours: int | None = None,
) -> SweepPlan:
    """Select every transition due at `now`."""
    transitions: list[Transition] = []
    targets: set[str] = set()

    for p in purchases:
        if is_due(p, now):
            transitions.append(
                Transition(SweepAction.EXPIRE_PURCHASE, p.id, p.target_id),
            )
            targets.add(p.target_id)

    for c in cases:
        if _case_due(c, now):
            transitions.append(Transition(SweepAction.EXPIRE_CASE, c.id))
        elif stale_review_hours is not None and is_stale_review(
            c.status, c.updated_at, now, stale_review_hours,
        ):
            transitions.append(Transition(SweepAction.ESCALATE_REVIEW, c.id))

    return SweepPlan(transitions=tuple(transitions), targets=frozenset(targets))


def _case_due(case: CaseSnapshot, now: datetime) -> bool:
    return (
        case.status == CaseStatus.ACTIVE
        and case.expires_at is not None
        and case.expires_at <= now
    )
