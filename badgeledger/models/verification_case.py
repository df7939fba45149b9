"""VerificationCase ORM — one trust-badge request per actor and lifecycle round.

Invariants:
    - id is UUID primary key
    - status values come from CaseStatus; transitions validated in core/case_machine.py
    - status_history is append-only: always reassigned with a new list, never mutated in place
    - open_case_key is set while the case is non-terminal, NULL otherwise; the unique
      constraint enforces one non-terminal case per (actor_type, actor_id)
    - version is the optimistic lock; a stale flush raises StaleDataError

Design Decisions:
    - JSON columns for documents / ai_review / admin_review: opaque references and
      review payloads are only read back as a whole
    - Reassign-not-mutate for JSON columns: SQLAlchemy only tracks attribute sets
"""

import uuid
from datetime import datetime

from sqlalchemy import String, Text, Integer, DateTime, JSON, Index
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import UUID

from badgeledger.core.domain_types import ActorType, CaseStatus
from badgeledger.db.base import Base, as_utc, utcnow


class VerificationCase(Base):
    """Verification request for a buyer, seller or contractor."""
    __tablename__ = "verification_cases"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    actor_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    actor_type: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(
        String(30), nullable=False, default=CaseStatus.SUBMITTED.value,
    )
    documents: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    ai_review: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    admin_review: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    status_history: Mapped[list] = mapped_column(
        JSON, nullable=False, default=list,
    )
    payment_ref: Mapped[str | None] = mapped_column(String(255), nullable=True)
    checkout_session_id: Mapped[str | None] = mapped_column(
        String(255), nullable=True, index=True,
    )
    subscription_ref: Mapped[str | None] = mapped_column(
        String(255), nullable=True, index=True,
    )
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    activated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    open_case_key: Mapped[str | None] = mapped_column(
        String(120), nullable=True, unique=True,
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow,
    )

    __mapper_args__ = {"version_id_col": version}
    __table_args__ = (
        Index("ix_verification_cases_status_expires", "status", "expires_at"),
    )

    @property
    def case_status(self) -> CaseStatus:
        return CaseStatus(self.status)

    @property
    def kind(self) -> ActorType:
        return ActorType(self.actor_type)

    @property
    def expires_at_utc(self) -> datetime | None:
        return as_utc(self.expires_at)

    @property
    def updated_at_utc(self) -> datetime:
        return as_utc(self.updated_at)
