"""Service Container — wires catalog, collaborators and services once per process.

Invariants:
    - Exactly one Catalog instance is shared by every service
    - Collaborators (reviewer, payments) are injected; services never build their own

Design Decisions:
    - build_services() takes collaborators as arguments so tests assemble the
      same graph with fakes; build_production_services() adds the real clients
"""

from dataclasses import dataclass

from badgeledger.config import Settings
from badgeledger.core.catalog import Catalog, build_catalog
from badgeledger.core.repository_protocols import DocumentReviewer, PaymentProvider
from badgeledger.infrastructure.anthropic_client import ResilientAnthropicClient
from badgeledger.infrastructure.stripe_payments import StripePaymentProvider
from badgeledger.services.cascade_resolver import CascadeResolver
from badgeledger.services.document_review import AnthropicDocumentReviewer
from badgeledger.services.entitlement_ledger import EntitlementLedger
from badgeledger.services.expiry_sweeper import ExpirySweeper
from badgeledger.services.payment_gate import PaymentGate
from badgeledger.services.verification_cases import VerificationCaseService


@dataclass(frozen=True)
class Services:
    catalog: Catalog
    resolver: CascadeResolver
    ledger: EntitlementLedger
    cases: VerificationCaseService
    gate: PaymentGate
    sweeper: ExpirySweeper


def build_services(
    catalog: Catalog,
    reviewer: DocumentReviewer,
    payments: PaymentProvider,
    sweep_chunk_size: int = 200,
    stale_review_hours: int = 48,
) -> Services:
    resolver = CascadeResolver(catalog)
    ledger = EntitlementLedger(catalog, resolver)
    cases = VerificationCaseService(catalog, reviewer, payments)
    return Services(
        catalog=catalog,
        resolver=resolver,
        ledger=ledger,
        cases=cases,
        gate=PaymentGate(catalog, payments, cases, ledger),
        sweeper=ExpirySweeper(
            ledger, cases,
            chunk_size=sweep_chunk_size,
            stale_review_hours=stale_review_hours,
        ),
    )


def build_production_services(settings: Settings) -> Services:
    client = ResilientAnthropicClient(
        api_key=settings.anthropic_api_key,
        max_retries=settings.anthropic_max_retries,
        base_delay_ms=settings.anthropic_base_delay_ms,
        max_delay_ms=settings.anthropic_max_delay_ms,
        timeout_seconds=settings.anthropic_timeout_seconds,
    )
    reviewer = AnthropicDocumentReviewer(
        client,
        model=settings.review_model,
        max_tokens=settings.review_max_tokens,
        timeout_seconds=settings.review_timeout_seconds,
    )
    payments = StripePaymentProvider(
        secret_key=settings.stripe_secret_key,
        webhook_secret=settings.stripe_webhook_secret,
        success_url=settings.checkout_success_url,
        cancel_url=settings.checkout_cancel_url,
    )
    return build_services(
        build_catalog(settings.currency),
        reviewer,
        payments,
        sweep_chunk_size=settings.sweep_chunk_size,
        stale_review_hours=settings.stale_review_hours,
    )
