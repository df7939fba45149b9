"""Boundary Protocols — contracts between core and shell for external collaborators.

Invariants:
    - Core NEVER imports from shell — dependency arrows point inward only
    - The AI reviewer and payment provider are accessed only through these Protocols
    - Implementations provided by the shell (infrastructure/) via dependency injection

Design Decisions:
    - Protocol over ABC: structural subtyping, test fakes need no inheritance
    - Async in Protocol: boundary methods are async because implementations do IO,
      but the core functions that consume their results are never async themselves
"""

from dataclasses import dataclass, field
from typing import Any, Protocol

from badgeledger.core.case_machine import AIReviewResult
from badgeledger.core.domain_types import ActorType, CheckoutMode


@dataclass(frozen=True)
class CheckoutRequest:
    """Everything a provider needs to open a hosted checkout page."""
    mode: CheckoutMode
    amount_cents: int
    currency: str
    product_name: str
    metadata: dict[str, str]
    idempotency_key: str
    # Billing interval for subscription mode ("year", "month")
    interval: str | None = None


@dataclass(frozen=True)
class CheckoutSession:
    session_id: str
    url: str | None


@dataclass(frozen=True)
class ProviderEvent:
    """Verified provider webhook event, reduced to what the gate dispatches on."""
    id: str
    type: str
    data: dict[str, Any] = field(default_factory=dict)


class DocumentReviewer(Protocol):
    """Contract for AI document analysis — implemented by shell."""
    async def review(
        self, actor_type: ActorType, documents: list[dict],
    ) -> AIReviewResult: ...


class PaymentProvider(Protocol):
    """Contract for the payment provider — implemented by shell."""
    async def create_checkout(self, request: CheckoutRequest) -> CheckoutSession: ...
    async def cancel_subscription(self, subscription_ref: str) -> None: ...
    def parse_event(self, payload: bytes, signature: str | None) -> ProviderEvent: ...
