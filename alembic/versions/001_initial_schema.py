"""Initial schema — verification cases, entitlement purchases, capabilities, badges, payment events.

Revision ID: 001_initial
Revises: None
Create Date: 2026-10-17

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID

revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "verification_cases",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("actor_id", sa.String(64), nullable=False),
        sa.Column("actor_type", sa.String(20), nullable=False),
        sa.Column("status", sa.String(30), nullable=False, server_default="submitted"),
        sa.Column("documents", sa.JSON, nullable=False),
        sa.Column("ai_review", sa.JSON, nullable=True),
        sa.Column("admin_review", sa.JSON, nullable=True),
        sa.Column("status_history", sa.JSON, nullable=False),
        sa.Column("payment_ref", sa.String(255), nullable=True),
        sa.Column("checkout_session_id", sa.String(255), nullable=True),
        sa.Column("subscription_ref", sa.String(255), nullable=True),
        sa.Column("rejection_reason", sa.Text, nullable=True),
        sa.Column("activated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("open_case_key", sa.String(120), nullable=True, unique=True),
        sa.Column("version", sa.Integer, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_verification_cases_actor_id", "verification_cases", ["actor_id"])
    op.create_index("ix_verification_cases_checkout_session_id", "verification_cases", ["checkout_session_id"])
    op.create_index("ix_verification_cases_subscription_ref", "verification_cases", ["subscription_ref"])
    op.create_index("ix_verification_cases_status_expires", "verification_cases", ["status", "expires_at"])

    op.create_table(
        "entitlement_purchases",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("owner_id", sa.String(64), nullable=False),
        sa.Column("target_id", sa.String(64), nullable=False),
        sa.Column("target_type", sa.String(20), nullable=False),
        sa.Column("tier", sa.String(30), nullable=False),
        sa.Column("amount_cents", sa.Integer, nullable=False, server_default="0"),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("payment_ref", sa.String(255), nullable=True),
        sa.Column("checkout_session_id", sa.String(255), nullable=True),
        sa.Column("granted_by", sa.String(64), nullable=True),
        sa.Column("cancel_reason", sa.Text, nullable=True),
        sa.Column("version", sa.Integer, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_entitlement_purchases_owner_id", "entitlement_purchases", ["owner_id"])
    op.create_index("ix_entitlement_purchases_target_id", "entitlement_purchases", ["target_id"])
    op.create_index("ix_entitlement_purchases_checkout_session_id", "entitlement_purchases", ["checkout_session_id"])
    op.create_index("ix_entitlement_purchases_due", "entitlement_purchases", ["status", "expires_at", "id"])

    op.create_table(
        "target_capabilities",
        sa.Column("target_id", sa.String(64), primary_key=True),
        sa.Column("target_type", sa.String(20), nullable=True),
        sa.Column("featured_active", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("featured_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("premium_active", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("premium_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("elite_active", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("elite_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("verified_badge_active", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("verified_badge_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ai_enhanced", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("spec_sheet", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("recomputed_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "actor_badges",
        sa.Column("actor_type", sa.String(20), primary_key=True),
        sa.Column("actor_id", sa.String(64), primary_key=True),
        sa.Column("verified", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("case_id", UUID(as_uuid=True), nullable=True),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "payment_events",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("event_id", sa.String(255), nullable=False, unique=True),
        sa.Column("event_type", sa.String(100), nullable=False),
        sa.Column("outcome", sa.String(100), nullable=False),
        sa.Column("received_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )


def downgrade() -> None:
    op.drop_table("payment_events")
    op.drop_table("actor_badges")
    op.drop_table("target_capabilities")
    op.drop_index("ix_entitlement_purchases_due", table_name="entitlement_purchases")
    op.drop_index("ix_entitlement_purchases_checkout_session_id", table_name="entitlement_purchases")
    op.drop_index("ix_entitlement_purchases_target_id", table_name="entitlement_purchases")
    op.drop_index("ix_entitlement_purchases_owner_id", table_name="entitlement_purchases")
    op.drop_table("entitlement_purchases")
    op.drop_index("ix_verification_cases_status_expires", table_name="verification_cases")
    op.drop_index("ix_verification_cases_subscription_ref", table_name="verification_cases")
    op.drop_index("ix_verification_cases_checkout_session_id", table_name="verification_cases")
    op.drop_index("ix_verification_cases_actor_id", table_name="verification_cases")
    op.drop_table("verification_cases")
