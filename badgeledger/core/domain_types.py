"""Domain Types — rich types that replace bare primitives across the codebase.

Invariants:
    - CaseId, PurchaseId wrap UUIDs; ActorId, TargetId are opaque upstream strings
    - All valid states encoded as Enums — no raw string matching
    - Confidence is bounded 0–100

Design Decisions:
    - NewType over dataclass wrappers: zero runtime cost, full type-checker support
    - str Enums: serialize to JSON and store in String columns without custom encoders
"""

from enum import Enum
from typing import NewType
from uuid import UUID


# ─── Identity Types ──────────────────────────────────────────────

CaseId = NewType("CaseId", UUID)
PurchaseId = NewType("PurchaseId", UUID)
ActorId = NewType("ActorId", str)
TargetId = NewType("TargetId", str)


# ─── Value Types ─────────────────────────────────────────────────

Confidence = NewType("Confidence", int)   # 0–100
Cents = NewType("Cents", int)


# ─── Enums ───────────────────────────────────────────────────────

class ActorType(str, Enum):
    """Participant kinds that can hold a verification badge."""
    BUYER = "buyer"
    SELLER = "seller"
    CONTRACTOR = "contractor"


class ActorRole(str, Enum):
    """Caller role forwarded by the upstream session layer."""
    USER = "user"
    ADMIN = "admin"


class CaseStatus(str, Enum):
    """Verification case lifecycle — maps to DB `status` column."""
    NONE = "none"
    SUBMITTED = "submitted"
    AI_REVIEW = "ai_review"
    AI_APPROVED = "ai_approved"
    AI_REJECTED = "ai_rejected"
    NEEDS_ADMIN_REVIEW = "needs_admin_review"
    PENDING_ADMIN = "pending_admin"
    APPROVED = "approved"
    REJECTED = "rejected"
    PENDING_PAYMENT = "pending_payment"
    ACTIVE = "active"
    EXPIRED = "expired"
    REVOKED = "revoked"


class AdminAction(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"
    REVOKE = "revoke"
    REINSTATE = "reinstate"


class AIVerdict(str, Enum):
    """Verdict returned by the document review gateway."""
    APPROVED = "approved"
    REJECTED = "rejected"
    NEEDS_REVIEW = "needs_review"


class DocumentType(str, Enum):
    DRIVERS_LICENSE = "drivers_license"
    PASSPORT = "passport"
    BUSINESS_LICENSE = "business_license"
    EIN_DOCUMENT = "ein_document"
    INSURANCE_CERTIFICATE = "insurance_certificate"


class Tier(str, Enum):
    """Purchasable entitlement tiers."""
    FEATURED = "featured"
    PREMIUM = "premium"
    ELITE = "elite"
    VERIFIED_BADGE = "verified_badge"
    AI_ENHANCEMENT = "ai_enhancement"
    SPEC_SHEET = "spec_sheet"


class Capability(str, Enum):
    """Derived boolean flags materialized on a listing or profile."""
    FEATURED = "featured"
    PREMIUM = "premium"
    ELITE = "elite"
    VERIFIED_BADGE = "verified_badge"
    AI_ENHANCED = "ai_enhanced"
    SPEC_SHEET = "spec_sheet"


class PurchaseStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    EXPIRED = "expired"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class TargetType(str, Enum):
    LISTING = "listing"
    PROFILE = "profile"


class CheckoutMode(str, Enum):
    """Provider checkout mode: one-time payment or recurring subscription."""
    PAYMENT = "payment"
    SUBSCRIPTION = "subscription"


class CheckoutKind(str, Enum):
    """Correlation tag carried in checkout metadata."""
    VERIFICATION = "verification"
    ENTITLEMENT = "entitlement"
