"""PaymentEventRecord ORM — processed provider webhook events.

Invariants:
    - event_id is unique: a redelivered event is detected before any state change
    - outcome records what the gate did ("applied", "ignored:<reason>")

Design Decisions:
    - Logging table plus dedup key: business state never depends on it beyond
      the short-circuit, so it can be pruned freely
"""

import uuid
from datetime import datetime

from sqlalchemy import String, DateTime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import UUID

from badgeledger.db.base import Base, utcnow


class PaymentEventRecord(Base):
    __tablename__ = "payment_events"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    event_id: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    event_type: Mapped[str] = mapped_column(String(100), nullable=False)
    outcome: Mapped[str] = mapped_column(String(100), nullable=False)
    received_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow,
    )
