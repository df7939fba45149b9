"""Document Review Gateway — asks Claude to assess submitted verification documents.

Invariants:
    - review() returns an AIReviewResult or raises ExternalServiceError; never anything else
    - The whole call (retries included) is bounded by review_timeout_seconds
    - Confidence clamped to 0–100; unknown verdicts rejected as unparseable
    - Document references are passed through untouched (no storage access here)

Design Decisions:
    - https:// references are attached as URL image/document sources so the model
      sees the file; any other reference is described in text only
    - JSON reply parsed with pydantic: one schema, one error path
    - The caller (verification_cases) owns the fallback policy; this module only
      reports failure
"""

import asyncio
import json
import logging

from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, field_validator

from badgeledger.core.case_machine import AIReviewResult
from badgeledger.core.domain_types import ActorType, AIVerdict
from badgeledger.core.errors import AnthropicAPIError, ErrorContext
from badgeledger.infrastructure.anthropic_client import ResilientAnthropicClient

logger = logging.getLogger(__name__)

REVIEW_SYSTEM_PROMPT = """You are a document verification specialist for a marketplace.
You assess identity and business documents for authenticity, validity and signs of fraud.

Respond with a single JSON object and nothing else:
{
  "verdict": "approved" | "rejected" | "needs_review",
  "confidence": 0-100,
  "flags": ["short concern labels"],
  "notes": "one or two sentences explaining the verdict"
}

Use "rejected" only for clear fraud, tampering or an expired/invalid document, and
always explain why in "notes". Use "needs_review" whenever you are unsure."""


class ReviewReply(BaseModel):
    """Schema of the model's JSON reply."""
    verdict: AIVerdict
    confidence: int = Field(default=50)
    flags: list[str] = Field(default_factory=list)
    notes: str | None = None

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, v) -> int:
        try:
            value = int(float(v))
        except (TypeError, ValueError):
            return 50
        return max(0, min(100, value))


def build_review_content(actor_type: ActorType, documents: list[dict]) -> list[dict]:
    """User-turn content blocks: one instruction plus one block per document."""
    listing = "\n".join(
        f"- {d.get('type')}: {d.get('file_name') or d.get('ref')}" for d in documents
    )
    content: list[dict] = [{
        "type": "text",
        "text": (
            f"Verify these documents for a {actor_type.value} verification request.\n"
            f"{listing}"
        ),
    }]
    for doc in documents:
        ref = str(doc.get("ref", ""))
        if not ref.startswith("https://"):
            continue
        name = str(doc.get("file_name") or ref).lower()
        block_type = "document" if name.endswith(".pdf") else "image"
        content.append({"type": block_type, "source": {"type": "url", "url": ref}})
    return content


def parse_review_reply(text: str) -> AIReviewResult:
    """Extract the JSON object from the reply and normalize it."""
    start, end = text.find("{"), text.rfind("}")
    if start == -1 or end <= start:
        raise AnthropicAPIError("Reply contained no JSON object", "invalid_response")
    try:
        reply = ReviewReply.model_validate(json.loads(text[start:end + 1]))
    except (json.JSONDecodeError, PydanticValidationError) as e:
        raise AnthropicAPIError(f"Unparseable review reply: {e}", "invalid_response")
    return AIReviewResult(
        verdict=reply.verdict,
        confidence=reply.confidence,
        notes=reply.notes,
        flags=tuple(reply.flags),
    )


class AnthropicDocumentReviewer:
    """DocumentReviewer implementation backed by the Anthropic Messages API."""

    def __init__(
        self,
        client: ResilientAnthropicClient,
        model: str,
        max_tokens: int = 1024,
        timeout_seconds: float = 90.0,
    ):
        self._client = client
        self._model = model
        self._max_tokens = max_tokens
        self._timeout = timeout_seconds

    async def review(
        self, actor_type: ActorType, documents: list[dict],
    ) -> AIReviewResult:
        context = ErrorContext(debug_info={"actor_type": actor_type.value})
        try:
            response = await asyncio.wait_for(
                self._client.create_message(
                    model=self._model,
                    max_tokens=self._max_tokens,
                    system=REVIEW_SYSTEM_PROMPT,
                    messages=[{
                        "role": "user",
                        "content": build_review_content(actor_type, documents),
                    }],
                    context=context,
                ),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            raise AnthropicAPIError(
                f"Review exceeded {self._timeout}s", "timeout", context=context,
            )

        text = "".join(
            getattr(block, "text", "") for block in response.content
            if getattr(block, "type", None) == "text"
        )
        result = parse_review_reply(text)
        logger.info(
            f"Document review verdict={result.verdict.value} "
            f"confidence={result.confidence}",
        )
        return result
