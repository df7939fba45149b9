"""Tier & Actor Catalog — immutable pricing, duration, ranking and policy tables.

Invariants:
    - Built once at startup, never mutated (frozen dataclasses + MappingProxyType)
    - Tier containment: elite grants {elite, premium, featured}; premium grants
      {premium, featured}; verified_badge / ai_enhancement / spec_sheet grant only themselves
    - duration_days=None means non-expiring
    - Every ActorPolicy carries its own transition table; no actor branching
      happens outside this module

Design Decisions:
    - Catalog injected (app.state / service constructors) instead of module globals,
      so tests can build variants without monkeypatching
    - Transition tables share a common skeleton; only the ai_approved edge differs
      (auto-approvable actors go straight to payment)
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

from badgeledger.core.domain_types import (
    ActorType, Capability, CaseStatus, CheckoutMode, DocumentType, Tier,
)


# ─── Tier Specs ──────────────────────────────────────────────────

@dataclass(frozen=True)
class TierSpec:
    """Price, lifetime and capability grants of one purchasable tier."""
    tier: Tier
    display_name: str
    price_cents: int
    duration_days: int | None
    grants: frozenset[Capability]


# Placement capabilities in descending precedence. Ranking takes the first
# active one; the resolver walks them in the same order.
PLACEMENT_ORDER: tuple[Capability, ...] = (
    Capability.ELITE, Capability.PREMIUM, Capability.FEATURED,
)


# ─── Actor Policies ──────────────────────────────────────────────

S = CaseStatus

_COMMON_TRANSITIONS: dict[CaseStatus, frozenset[CaseStatus]] = {
    S.NONE: frozenset({S.SUBMITTED}),
    S.SUBMITTED: frozenset({S.AI_REVIEW}),
    S.AI_REVIEW: frozenset({S.AI_APPROVED, S.AI_REJECTED, S.NEEDS_ADMIN_REVIEW}),
    S.AI_REJECTED: frozenset({S.REJECTED}),
    S.NEEDS_ADMIN_REVIEW: frozenset({S.PENDING_ADMIN}),
    S.PENDING_ADMIN: frozenset({S.APPROVED, S.REJECTED}),
    S.APPROVED: frozenset({S.PENDING_PAYMENT}),
    S.REJECTED: frozenset({S.SUBMITTED}),
    S.PENDING_PAYMENT: frozenset({S.ACTIVE, S.REVOKED}),
    S.ACTIVE: frozenset({S.EXPIRED, S.REVOKED}),
    S.EXPIRED: frozenset({S.PENDING_PAYMENT}),
    S.REVOKED: frozenset({S.PENDING_PAYMENT}),
}


def _transition_table(auto_approve: bool) -> Mapping[CaseStatus, frozenset[CaseStatus]]:
    table = dict(_COMMON_TRANSITIONS)
    table[S.AI_APPROVED] = frozenset(
        {S.PENDING_PAYMENT} if auto_approve else {S.PENDING_ADMIN},
    )
    return MappingProxyType(table)


@dataclass(frozen=True)
class ActorPolicy:
    """Everything that differs between buyer, seller and contractor verification."""
    actor_type: ActorType
    display_name: str
    price_cents: int
    subscription_days: int | None
    checkout_mode: CheckoutMode
    # Each group must be satisfied by at least one submitted document type
    required_documents: tuple[frozenset[DocumentType], ...]
    auto_approve: bool
    min_auto_approve_confidence: int
    transitions: Mapping[CaseStatus, frozenset[CaseStatus]] = field(repr=False)

    def allows(self, from_status: CaseStatus, to_status: CaseStatus) -> bool:
        return to_status in self.transitions.get(from_status, frozenset())

    def missing_document_groups(
        self, submitted: set[DocumentType],
    ) -> list[frozenset[DocumentType]]:
        return [g for g in self.required_documents if not (g & submitted)]


# ─── Catalog ─────────────────────────────────────────────────────

@dataclass(frozen=True)
class Catalog:
    """Immutable configuration map shared by every component."""
    tiers: Mapping[Tier, TierSpec]
    actors: Mapping[ActorType, ActorPolicy]
    placement_weights: Mapping[Capability, int]
    enhancement_bonuses: Mapping[Capability, int]
    currency: str = "usd"

    def tier(self, tier: Tier) -> TierSpec:
        return self.tiers[tier]

    def policy(self, actor_type: ActorType) -> ActorPolicy:
        return self.actors[actor_type]

    def tiers_granting(self, capability: Capability) -> tuple[Tier, ...]:
        """All tiers whose grant set contains `capability`."""
        return tuple(t for t, spec in self.tiers.items() if capability in spec.grants)


def build_catalog(currency: str = "usd") -> Catalog:
    """Build the production catalog. Called once in the app lifespan."""
    D = DocumentType
    C = Capability
    tiers = {
        Tier.FEATURED: TierSpec(
            Tier.FEATURED, "Featured Placement", 2900, 30,
            frozenset({C.FEATURED}),
        ),
        Tier.PREMIUM: TierSpec(
            Tier.PREMIUM, "Premium Placement", 4900, 30,
            frozenset({C.PREMIUM, C.FEATURED}),
        ),
        Tier.ELITE: TierSpec(
            Tier.ELITE, "Elite Placement", 9900, 30,
            frozenset({C.ELITE, C.PREMIUM, C.FEATURED}),
        ),
        Tier.VERIFIED_BADGE: TierSpec(
            Tier.VERIFIED_BADGE, "Verified Asset Badge", 1500, 30,
            frozenset({C.VERIFIED_BADGE}),
        ),
        Tier.AI_ENHANCEMENT: TierSpec(
            Tier.AI_ENHANCEMENT, "AI Listing Enhancement", 1000, None,
            frozenset({C.AI_ENHANCED}),
        ),
        Tier.SPEC_SHEET: TierSpec(
            Tier.SPEC_SHEET, "Spec Sheet", 2500, None,
            frozenset({C.SPEC_SHEET}),
        ),
    }
    actors = {
        ActorType.BUYER: ActorPolicy(
            actor_type=ActorType.BUYER,
            display_name="Buyer Identity Verification",
            price_cents=100,
            subscription_days=None,
            checkout_mode=CheckoutMode.PAYMENT,
            required_documents=(frozenset({D.DRIVERS_LICENSE, D.PASSPORT}),),
            auto_approve=True,
            min_auto_approve_confidence=80,
            transitions=_transition_table(auto_approve=True),
        ),
        ActorType.SELLER: ActorPolicy(
            actor_type=ActorType.SELLER,
            display_name="Seller Identity Verification",
            price_cents=2900,
            subscription_days=365,
            checkout_mode=CheckoutMode.SUBSCRIPTION,
            required_documents=(
                frozenset({D.DRIVERS_LICENSE}),
                frozenset({D.BUSINESS_LICENSE, D.EIN_DOCUMENT}),
            ),
            auto_approve=False,
            min_auto_approve_confidence=0,
            transitions=_transition_table(auto_approve=False),
        ),
        ActorType.CONTRACTOR: ActorPolicy(
            actor_type=ActorType.CONTRACTOR,
            display_name="Verified Professional",
            price_cents=250_000,
            subscription_days=365,
            checkout_mode=CheckoutMode.SUBSCRIPTION,
            required_documents=(
                frozenset({D.BUSINESS_LICENSE}),
                frozenset({D.INSURANCE_CERTIFICATE}),
            ),
            auto_approve=False,
            min_auto_approve_confidence=0,
            transitions=_transition_table(auto_approve=False),
        ),
    }
    return Catalog(
        tiers=MappingProxyType(tiers),
        actors=MappingProxyType(actors),
        placement_weights=MappingProxyType({
            C.ELITE: 750, C.PREMIUM: 500, C.FEATURED: 250,
        }),
        enhancement_bonuses=MappingProxyType({
            C.AI_ENHANCED: 25, C.SPEC_SHEET: 10,
        }),
        currency=currency,
    )
