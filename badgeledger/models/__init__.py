"""ORM Models — SQLAlchemy declarative models for all persisted entities.

Invariants:
    - All models inherit from Base (db/base.py)
    - Cases and purchases carry an optimistic-lock version column

Design Decisions:
    - One file per entity for locality
    - All models imported here so Base.metadata is complete before create_all
      or Alembic autogenerate runs
"""

from badgeledger.models.verification_case import VerificationCase  # noqa: F401
from badgeledger.models.entitlement_purchase import EntitlementPurchase  # noqa: F401
from badgeledger.models.target_capabilities import TargetCapabilities  # noqa: F401
from badgeledger.models.actor_badge import ActorBadge  # noqa: F401
from badgeledger.models.payment_event import PaymentEventRecord  # noqa: F401
