"""Stripe Payment Provider — hosted checkout, subscription cancellation, webhook verification.

Invariants:
    - Signature verified BEFORE the payload is parsed or dispatched
    - Every checkout carries the caller's correlation metadata on the session and
      on the underlying payment intent / subscription
    - stripe.StripeError mapped to PaymentProviderError; bad signatures and
      malformed payloads mapped to ValidationError (400)

Design Decisions:
    - Inline price_data instead of dashboard price ids: amounts come from the
      injected Catalog, so the catalog stays the single source of truth
    - The Stripe SDK is synchronous; calls run in a worker thread via asyncio.to_thread
    - api_key passed per request: no process-global SDK state
"""

import asyncio
import json
import logging

import stripe

from badgeledger.core.domain_types import CheckoutMode
from badgeledger.core.errors import PaymentProviderError, ValidationError
from badgeledger.core.repository_protocols import (
    CheckoutRequest, CheckoutSession, ProviderEvent,
)

logger = logging.getLogger(__name__)


class StripePaymentProvider:
    """PaymentProvider implementation backed by Stripe Checkout."""

    def __init__(
        self,
        secret_key: str,
        webhook_secret: str,
        success_url: str,
        cancel_url: str,
    ):
        self._secret_key = secret_key
        self._webhook_secret = webhook_secret
        self._success_url = success_url
        self._cancel_url = cancel_url

    async def create_checkout(self, request: CheckoutRequest) -> CheckoutSession:
        params = self._checkout_params(request)
        try:
            session = await asyncio.to_thread(
                stripe.checkout.Session.create, **params,
            )
        except stripe.StripeError as e:
            logger.error(
                f"Checkout creation failed: {e}",
                extra={"error_code": getattr(e, "code", None)},
            )
            raise PaymentProviderError(str(e), "checkout_create")
        logger.info(
            f"Checkout session created ({request.metadata.get('kind')})",
            extra={
                "case_id": request.metadata.get("case_id"),
                "purchase_id": request.metadata.get("purchase_id"),
            },
        )
        return CheckoutSession(session_id=session.id, url=session.url)

    async def cancel_subscription(self, subscription_ref: str) -> None:
        try:
            await asyncio.to_thread(
                stripe.Subscription.cancel, subscription_ref, api_key=self._secret_key,
            )
        except stripe.StripeError as e:
            raise PaymentProviderError(str(e), "subscription_cancel")

    def parse_event(self, payload: bytes, signature: str | None) -> ProviderEvent:
        if not signature:
            raise ValidationError("Missing Stripe-Signature header")
        try:
            stripe.Webhook.construct_event(payload, signature, self._webhook_secret)
        except stripe.SignatureVerificationError as e:
            logger.warning(f"Webhook signature invalid: {e}")
            raise ValidationError("Invalid webhook signature")
        except ValueError as e:
            raise ValidationError(f"Malformed webhook payload: {e}")

        body = json.loads(payload)
        return ProviderEvent(
            id=body["id"],
            type=body["type"],
            data=body.get("data", {}).get("object", {}),
        )

    def _checkout_params(self, request: CheckoutRequest) -> dict:
        price_data: dict = {
            "currency": request.currency,
            "unit_amount": request.amount_cents,
            "product_data": {"name": request.product_name},
        }
        params: dict = {
            "api_key": self._secret_key,
            "mode": request.mode.value,
            "success_url": self._success_url,
            "cancel_url": self._cancel_url,
            "metadata": request.metadata,
            "idempotency_key": request.idempotency_key,
        }
        if request.mode == CheckoutMode.SUBSCRIPTION:
            price_data["recurring"] = {"interval": request.interval or "year"}
            params["subscription_data"] = {"metadata": request.metadata}
        else:
            params["payment_intent_data"] = {"metadata": request.metadata}
        params["line_items"] = [{"price_data": price_data, "quantity": 1}]
        return params
