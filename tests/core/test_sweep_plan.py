"""Sweep Planning — tests for pure selection of due transitions.

Tests cover:
    - Only active purchases at or past expiry are planned
    - Touched targets collected for recompute
    - Lapsed active cases planned for expiry, stuck reviews for escalation
    - Re-planning after the transitions applied yields an empty plan
    - SweepResult counters
"""

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from uuid import uuid4

from badgeledger.core.domain_types import ActorType, CaseStatus, PurchaseStatus, Tier
from badgeledger.core.entitlement_rules import PurchaseSnapshot
from badgeledger.core.sweep_plan import (
    CaseSnapshot, SweepAction, SweepResult, plan_sweep,
)

NOW = datetime(2026, 3, 1, tzinfo=timezone.utc)


def _purchase(status=PurchaseStatus.ACTIVE, expires_at=NOW, target="L1"):
    return PurchaseSnapshot(uuid4(), target, Tier.FEATURED, status, expires_at)


def _case(status, expires_at=None, updated_at=NOW):
    return CaseSnapshot(uuid4(), "u1", ActorType.SELLER, status, expires_at, updated_at)


def test_due_purchase_planned_with_target():
    p = _purchase(expires_at=NOW - timedelta(minutes=1))
    plan = plan_sweep(NOW, purchases=[p])
    assert [t.record_id for t in plan.transitions] == [p.id]
    assert plan.transitions[0].action == SweepAction.EXPIRE_PURCHASE
    assert plan.targets == {"L1"}


def test_future_and_non_active_purchases_skipped():
    plan = plan_sweep(NOW, purchases=[
        _purchase(expires_at=NOW + timedelta(seconds=1)),
        _purchase(status=PurchaseStatus.CANCELLED, expires_at=NOW - timedelta(days=1)),
        _purchase(expires_at=None),
    ])
    assert plan.is_empty


def test_replanning_after_apply_is_empty():
    purchases = [_purchase(target="A"), _purchase(target="B")]
    plan = plan_sweep(NOW, purchases=purchases)
    assert len(plan.transitions) == 2
    applied = [replace(p, status=PurchaseStatus.EXPIRED) for p in purchases]
    assert plan_sweep(NOW, purchases=applied).is_empty


def test_lapsed_active_case_planned_for_expiry():
    c = _case(CaseStatus.ACTIVE, expires_at=NOW)
    plan = plan_sweep(NOW, cases=[c])
    assert plan.transitions[0].action == SweepAction.EXPIRE_CASE


def test_stuck_review_escalated_only_with_window():
    c = _case(CaseStatus.AI_REVIEW, updated_at=NOW - timedelta(hours=49))
    assert plan_sweep(NOW, cases=[c]).is_empty
    plan = plan_sweep(NOW, cases=[c], stale_review_hours=48)
    assert plan.transitions[0].action == SweepAction.ESCALATE_REVIEW


def test_recent_review_not_escalated():
    c = _case(CaseStatus.SUBMITTED, updated_at=NOW - timedelta(hours=2))
    assert plan_sweep(NOW, cases=[c], stale_review_hours=48).is_empty


def test_sweep_result_counts():
    result = SweepResult(processed=3, errors=1)
    assert result.to_dict() == {"processed": 3, "errors": 1, "total": 4}
