"""Ranking Scorer — orders listings by their active entitlements.

Invariants:
    - score = weight of the highest active placement tier + flat enhancement bonuses
    - Placement weights are not summed: elite alone scores the same as elite+premium+featured
    - A flag whose expires_at has passed counts as inactive, even before the sweep runs
    - Ties broken by creation time, most recent first
    - Pure and uncached: scores are recomputed on every query

Design Decisions:
    - Two stable sorts (created_at desc, then score desc) instead of a composite key,
      so timezone-aware datetimes never need converting to numbers
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Mapping

from badgeledger.core.cascade import FlagState
from badgeledger.core.catalog import Catalog, PLACEMENT_ORDER
from badgeledger.core.domain_types import Capability


@dataclass(frozen=True)
class ListingFlags:
    listing_id: str
    created_at: datetime
    flags: Mapping[Capability, FlagState] = field(default_factory=dict)


@dataclass(frozen=True)
class RankedListing:
    listing_id: str
    score: int
    created_at: datetime


def flag_is_on(flag: FlagState | None, now: datetime) -> bool:
    if flag is None or not flag.active:
        return False
    return flag.expires_at is None or flag.expires_at > now


def score_listing(
    flags: Mapping[Capability, FlagState], now: datetime, catalog: Catalog,
) -> int:
    placement = 0
    for capability in PLACEMENT_ORDER:
        if flag_is_on(flags.get(capability), now):
            placement = catalog.placement_weights[capability]
            break
    bonus = sum(
        points
        for capability, points in catalog.enhancement_bonuses.items()
        if flag_is_on(flags.get(capability), now)
    )
    return placement + bonus


def rank_listings(
    listings: Iterable[ListingFlags], now: datetime, catalog: Catalog,
) -> list[RankedListing]:
    scored = [
        RankedListing(item.listing_id, score_listing(item.flags, now, catalog), item.created_at)
        for item in listings
    ]
    scored.sort(key=lambda r: r.created_at, reverse=True)
    scored.sort(key=lambda r: r.score, reverse=True)
    return scored
