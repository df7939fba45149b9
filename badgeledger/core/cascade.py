"""Capability Cascade — derives the full flag set of a target from its purchases.

Invariants:
    - A capability is active iff at least one live purchase grants it, directly
      or through tier containment (elite ⊇ premium ⊇ featured)
    - A flag's expires_at is the latest expiry among its live granting purchases,
      or None when any of them is non-expiring
    - Every capability is always present in the result (inactive flags included),
      so the writer replaces the whole flag set atomically
    - Pure: same purchases + same now => same flags

Design Decisions:
    - Every tier granting a capability is scanned on every call, not only the
      tier directly above it: an expiring elite never clears featured while a
      longer premium is still live
    - Evaluation walks placement tiers in descending precedence, then the
      independent capabilities, so logs and responses list flags in rank order
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable

from badgeledger.core.catalog import Catalog, PLACEMENT_ORDER
from badgeledger.core.domain_types import Capability
from badgeledger.core.entitlement_rules import PurchaseSnapshot, is_live


@dataclass(frozen=True)
class FlagState:
    active: bool
    expires_at: datetime | None = None


INACTIVE = FlagState(active=False)


def capability_order() -> tuple[Capability, ...]:
    rest = tuple(c for c in Capability if c not in PLACEMENT_ORDER)
    return PLACEMENT_ORDER + rest


def resolve_flags(
    purchases: Iterable[PurchaseSnapshot], now: datetime, catalog: Catalog,
) -> dict[Capability, FlagState]:
    """Compute every capability flag for one target."""
    live = [p for p in purchases if is_live(p, now)]
    flags: dict[Capability, FlagState] = {}
    for capability in capability_order():
        granting = [
            p for p in live if capability in catalog.tier(p.tier).grants
        ]
        flags[capability] = _merge(granting)
    return flags


def _merge(granting: list[PurchaseSnapshot]) -> FlagState:
    if not granting:
        return INACTIVE
    expiries = [p.expires_at for p in granting]
    if any(e is None for e in expiries):
        return FlagState(active=True, expires_at=None)
    return FlagState(active=True, expires_at=max(e for e in expiries if e is not None))
