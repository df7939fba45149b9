"""Resilient Anthropic Client — Messages API calls with bounded retries for document review.

Invariants:
    - Every failure leaves this module as AnthropicAPIError (core/errors.py)
    - 429 honours Retry-After when the provider sends one, else exponential backoff
    - 5xx, 529 overloaded and connection failures retried up to max_retries
    - Other 4xx and SDK timeouts fail at once: a timed-out review is never replayed
    - The SDK's own retry loop is switched off; attempts are counted only here

Design Decisions:
    - One classification step (_retry_delay_ms) decides retry vs fail, so the
      request loop stays a flat while/try
    - Jitter of ±25% spreads concurrent reviewers hitting the same rate limit
    - Token usage logged per successful call with the case context attached
"""

import asyncio
import logging
import random

import anthropic
from anthropic import (
    APIConnectionError,
    APIError,
    APIStatusError,
    APITimeoutError,
    RateLimitError,
)

from badgeledger.core.errors import AnthropicAPIError, ErrorContext

logger = logging.getLogger(__name__)

_RETRYABLE_STATUS = frozenset({500, 502, 503, 504, 529})


class ResilientAnthropicClient:
    """AsyncAnthropic wrapper owning retry policy and error mapping."""

    def __init__(
        self,
        api_key: str,
        max_retries: int = 3,
        base_delay_ms: int = 1000,
        max_delay_ms: int = 30_000,
        timeout_seconds: int = 60,
    ):
        self.client = anthropic.AsyncAnthropic(
            api_key=api_key, timeout=timeout_seconds, max_retries=0,
        )
        self.max_retries = max_retries
        self.base_delay_ms = base_delay_ms
        self.max_delay_ms = max_delay_ms

    async def create_message(
        self,
        *,
        model: str,
        max_tokens: int,
        system: str,
        messages: list,
        context: ErrorContext | None = None,
    ):
        """Send one Messages API request, retrying transient failures."""
        context = context or ErrorContext()
        attempt = 0
        while True:
            try:
                response = await self.client.messages.create(
                    model=model,
                    max_tokens=max_tokens,
                    system=system,
                    messages=messages,
                )
            except APIError as e:
                delay_ms = self._retry_delay_ms(e, attempt, context)
                logger.warning(
                    f"Anthropic call failed ({type(e).__name__}), "
                    f"retrying in {delay_ms}ms",
                    extra={"attempt": attempt + 1},
                )
                await asyncio.sleep(delay_ms / 1000)
                attempt += 1
                continue
            except Exception as e:
                logger.error(f"Unexpected Anthropic error: {e}", exc_info=True)
                raise AnthropicAPIError(str(e), "unknown", context=context)
            usage = getattr(response, "usage", None)
            logger.info(
                "Anthropic review call succeeded",
                extra={
                    "attempt": attempt + 1,
                    "input_tokens": getattr(usage, "input_tokens", None),
                    "output_tokens": getattr(usage, "output_tokens", None),
                    **(context.debug_info or {}),
                },
            )
            return response

    # ─── Retry classification ────────────────────────────────────────

    def _retry_delay_ms(
        self, error: APIError, attempt: int, context: ErrorContext,
    ) -> int:
        """Delay before the next attempt, or raise when the error is final."""
        if isinstance(error, APITimeoutError):
            raise AnthropicAPIError("API timeout", "timeout", context=context)

        if isinstance(error, RateLimitError):
            retry_after_ms = _retry_after_ms(error)
            if attempt >= self.max_retries:
                raise AnthropicAPIError(
                    "Rate limit exceeded after retries", "rate_limit",
                    retry_after_ms=retry_after_ms, context=context,
                )
            return retry_after_ms or self._backoff(attempt)

        transient = isinstance(error, APIConnectionError) or (
            isinstance(error, APIStatusError)
            and error.status_code in _RETRYABLE_STATUS
        )
        if not transient:
            raise AnthropicAPIError(str(error), "client_error", context=context)
        if attempt >= self.max_retries:
            raise AnthropicAPIError(
                f"Transient failure after {self.max_retries} retries: {error}",
                "connection_error", context=context,
            )
        return self._backoff(attempt)

    def _backoff(self, attempt: int) -> int:
        delay = min(self.max_delay_ms, (2 ** attempt) * self.base_delay_ms)
        return int(delay * random.uniform(0.75, 1.25))  # nosec B311


def _retry_after_ms(error: RateLimitError) -> int | None:
    """Retry-After header in milliseconds, if present and numeric."""
    response = getattr(error, "response", None)
    value = response.headers.get("retry-after") if response is not None else None
    if not value:
        return None
    try:
        return int(float(value) * 1000)
    except ValueError:
        return None
