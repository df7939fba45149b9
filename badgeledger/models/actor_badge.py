"""ActorBadge ORM — cached verified flag per (actor_type, actor_id).

Invariants:
    - Written only by the verification case service, in the same transaction
      as the case transition that justifies it
    - verified=False rows are kept (with case_id) for audit rather than deleted
"""

import uuid
from datetime import datetime

from sqlalchemy import String, Boolean, DateTime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import UUID

from badgeledger.db.base import Base, utcnow


class ActorBadge(Base):
    __tablename__ = "actor_badges"

    actor_type: Mapped[str] = mapped_column(String(20), primary_key=True)
    actor_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    case_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), nullable=True,
    )
    verified_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow,
    )
