"""Capability Cascade — tests for deriving flags from purchases.

Tests cover:
    - Containment: elite turns on premium and featured
    - Latest expiry wins among live granting purchases
    - Non-expiring grants yield expires_at None
    - An expired elite leaves featured on while a longer premium is live
    - Inactive flags are always present in the result
    - Pure: same inputs => same output
"""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

from badgeledger.core.cascade import INACTIVE, FlagState, capability_order, resolve_flags
from badgeledger.core.catalog import build_catalog
from badgeledger.core.domain_types import Capability, PurchaseStatus, Tier
from badgeledger.core.entitlement_rules import PurchaseSnapshot

catalog = build_catalog()
NOW = datetime(2026, 3, 1, tzinfo=timezone.utc)


def _p(tier, expires_at, status=PurchaseStatus.ACTIVE):
    return PurchaseSnapshot(uuid4(), "L1", tier, status, expires_at)


def test_no_purchases_all_flags_inactive():
    flags = resolve_flags([], NOW, catalog)
    assert set(flags) == set(Capability)
    assert all(f == INACTIVE for f in flags.values())


def test_elite_activates_contained_tiers():
    exp = NOW + timedelta(days=30)
    flags = resolve_flags([_p(Tier.ELITE, exp)], NOW, catalog)
    for c in (Capability.ELITE, Capability.PREMIUM, Capability.FEATURED):
        assert flags[c] == FlagState(True, exp)
    assert flags[Capability.VERIFIED_BADGE] == INACTIVE


def test_latest_expiry_wins():
    short, long = NOW + timedelta(days=3), NOW + timedelta(days=20)
    flags = resolve_flags(
        [_p(Tier.FEATURED, short), _p(Tier.PREMIUM, long)], NOW, catalog,
    )
    assert flags[Capability.FEATURED].expires_at == long


def test_expired_elite_keeps_featured_from_premium():
    """Elite lapsed, premium still live: elite off, premium and featured on."""
    premium_exp = NOW + timedelta(days=20)
    flags = resolve_flags(
        [
            _p(Tier.ELITE, NOW - timedelta(days=1)),
            _p(Tier.PREMIUM, premium_exp),
        ],
        NOW,
        catalog,
    )
    assert flags[Capability.ELITE] == INACTIVE
    assert flags[Capability.PREMIUM] == FlagState(True, premium_exp)
    assert flags[Capability.FEATURED] == FlagState(True, premium_exp)


def test_elite_expiring_at_now_counts_as_expired():
    flags = resolve_flags([_p(Tier.ELITE, NOW)], NOW, catalog)
    assert flags[Capability.ELITE] == INACTIVE


def test_non_expiring_grant_has_no_expiry():
    flags = resolve_flags([_p(Tier.AI_ENHANCEMENT, None)], NOW, catalog)
    assert flags[Capability.AI_ENHANCED] == FlagState(True, None)


def test_non_live_statuses_ignored():
    exp = NOW + timedelta(days=10)
    flags = resolve_flags(
        [
            _p(Tier.ELITE, exp, PurchaseStatus.PENDING),
            _p(Tier.PREMIUM, exp, PurchaseStatus.REFUNDED),
            _p(Tier.FEATURED, exp, PurchaseStatus.CANCELLED),
        ],
        NOW,
        catalog,
    )
    assert all(not f.active for f in flags.values())


def test_resolve_is_deterministic():
    purchases = [_p(Tier.ELITE, NOW + timedelta(days=1)), _p(Tier.SPEC_SHEET, None)]
    assert resolve_flags(purchases, NOW, catalog) == resolve_flags(purchases, NOW, catalog)


def test_capability_order_starts_with_placement():
    assert capability_order()[:3] == (
        Capability.ELITE, Capability.PREMIUM, Capability.FEATURED,
    )
