"""TargetCapabilities ORM — materialized capability flags per listing or profile.

Invariants:
    - One row per target; every flag column rewritten together on each recompute
    - Flag attributes may only be set inside resolver_write_scope(); any other
      attribute set raises FlagWriteError at the ORM boundary
    - ai_enhanced / spec_sheet carry no expiry (their tiers are non-expiring)

Design Decisions:
    - Single-writer guard via @validates + ContextVar: the check runs on every
      attribute set (constructor kwargs included) without a custom session class
    - Column naming <capability>_active / <capability>_expires_at keeps the
      capability→column mapping mechanical
"""

from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime
from typing import Iterator, Mapping

from sqlalchemy import String, Boolean, DateTime
from sqlalchemy.orm import Mapped, mapped_column, validates

from badgeledger.core.cascade import FlagState
from badgeledger.core.domain_types import Capability
from badgeledger.core.errors import ErrorContext, FlagWriteError
from badgeledger.db.base import Base, as_utc, utcnow

_resolver_writing: ContextVar[bool] = ContextVar("_resolver_writing", default=False)

# capability -> (active column, expires column or None)
FLAG_COLUMNS: dict[Capability, tuple[str, str | None]] = {
    Capability.FEATURED: ("featured_active", "featured_expires_at"),
    Capability.PREMIUM: ("premium_active", "premium_expires_at"),
    Capability.ELITE: ("elite_active", "elite_expires_at"),
    Capability.VERIFIED_BADGE: ("verified_badge_active", "verified_badge_expires_at"),
    Capability.AI_ENHANCED: ("ai_enhanced", None),
    Capability.SPEC_SHEET: ("spec_sheet", None),
}

_GUARDED = tuple(
    name for pair in FLAG_COLUMNS.values() for name in pair if name is not None
)


@contextmanager
def resolver_write_scope() -> Iterator[None]:
    """Open the only window in which capability flags may be assigned."""
    token = _resolver_writing.set(True)
    try:
        yield
    finally:
        _resolver_writing.reset(token)


class TargetCapabilities(Base):
    """Derived read model consumed by ranking and badge display."""
    __tablename__ = "target_capabilities"

    target_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    target_type: Mapped[str | None] = mapped_column(String(20), nullable=True)

    featured_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    featured_expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    premium_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    premium_expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    elite_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    elite_expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    verified_badge_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False,
    )
    verified_badge_expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    ai_enhanced: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    spec_sheet: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    recomputed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow,
    )

    @validates(*_GUARDED)
    def _guard_flag_write(self, key: str, value):
        if not _resolver_writing.get():
            raise FlagWriteError(key, ErrorContext(target_id=self.target_id))
        return value

    def apply_flags(self, flags: Mapping[Capability, FlagState], now: datetime) -> None:
        """Overwrite every flag column. Must run inside resolver_write_scope()."""
        for capability, (active_col, expires_col) in FLAG_COLUMNS.items():
            state = flags.get(capability, FlagState(active=False))
            setattr(self, active_col, state.active)
            if expires_col is not None:
                setattr(self, expires_col, state.expires_at)
        self.recomputed_at = now

    def flag_states(self) -> dict[Capability, FlagState]:
        states: dict[Capability, FlagState] = {}
        for capability, (active_col, expires_col) in FLAG_COLUMNS.items():
            expires = as_utc(getattr(self, expires_col)) if expires_col else None
            states[capability] = FlagState(bool(getattr(self, active_col)), expires)
        return states

    def to_dict(self) -> dict:
        return {
            "target_id": self.target_id,
            "target_type": self.target_type,
            "flags": {
                capability.value: {
                    "active": state.active,
                    "expires_at": state.expires_at.isoformat() if state.expires_at else None,
                }
                for capability, state in self.flag_states().items()
            },
            "recomputed_at": as_utc(self.recomputed_at).isoformat(),
        }
