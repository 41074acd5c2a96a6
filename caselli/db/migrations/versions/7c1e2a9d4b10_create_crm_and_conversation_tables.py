"""create_crm_and_conversation_tables

Revision ID: 7c1e2a9d4b10
Revises:
Create Date: 2026-10-19 09:12:44.201337

Creates conversations, messages, deals, contacts, business_profiles,
memory_facts and task_history.
"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql as pg

# revision identifiers, used by Alembic.
revision: str = "7c1e2a9d4b10"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id() -> sa.Column:
    return sa.Column(
        "id",
        pg.UUID(as_uuid=True),
        primary_key=True,
        server_default=sa.text("gen_random_uuid()"),
    )


def _timestamp(name: str) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.text("now()"),
    )


def upgrade() -> None:
    """Create all tables used by the agent core."""

    # pgcrypto for gen_random_uuid()
    op.execute("CREATE EXTENSION IF NOT EXISTS pgcrypto")

    op.create_table(
        "conversations",
        _id(),
        sa.Column("user_id", pg.UUID(as_uuid=True), nullable=False),
        sa.Column("title", sa.Text(), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
    )
    op.create_index("ix_conversations_user_id", "conversations", ["user_id"])
    op.create_index("ix_conversations_updated_at", "conversations", ["updated_at"])

    op.create_table(
        "messages",
        _id(),
        sa.Column(
            "conversation_id",
            pg.UUID(as_uuid=True),
            sa.ForeignKey("conversations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_id", pg.UUID(as_uuid=True), nullable=False),
        sa.Column("role", sa.Text(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False, server_default=""),
        sa.Column("metadata", pg.JSONB(), nullable=True),
        _timestamp("created_at"),
        sa.CheckConstraint("role IN ('user', 'assistant')", name="chk_message_role"),
    )
    op.create_index(
        "idx_messages_conversation_created",
        "messages",
        ["conversation_id", "created_at"],
    )

    op.create_table(
        "deals",
        _id(),
        sa.Column("user_id", pg.UUID(as_uuid=True), nullable=False),
        sa.Column("property_address", sa.Text(), nullable=False),
        sa.Column("stage", sa.Text(), nullable=False, server_default="lead"),
        sa.Column("deal_type", sa.Text(), nullable=True),
        sa.Column("list_price", sa.Numeric(14, 2), nullable=True),
        sa.Column("contract_price", sa.Numeric(14, 2), nullable=True),
        sa.Column("client_name", sa.Text(), nullable=True),
        sa.Column("client_email", sa.Text(), nullable=True),
        sa.Column("client_phone", sa.Text(), nullable=True),
        sa.Column("closing_date", sa.Date(), nullable=True),
        sa.Column("inspection_deadline", sa.Date(), nullable=True),
        sa.Column("financing_deadline", sa.Date(), nullable=True),
        sa.Column("appraisal_deadline", sa.Date(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("bedrooms", sa.Integer(), nullable=True),
        sa.Column("bathrooms", sa.Float(), nullable=True),
        sa.Column("square_footage", sa.Integer(), nullable=True),
        sa.Column("year_built", sa.Integer(), nullable=True),
        sa.Column("lot_size", sa.Integer(), nullable=True),
        sa.Column("property_type", sa.Text(), nullable=True),
        sa.Column("property_data", pg.JSONB(), nullable=True),
        sa.Column("enriched_at", sa.DateTime(timezone=True), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.CheckConstraint(
            "stage IN ('lead', 'active_client', 'under_contract', 'due_diligence', "
            "'clear_to_close', 'closed', 'fell_through')",
            name="chk_deal_stage",
        ),
    )
    op.create_index("ix_deals_user_id", "deals", ["user_id"])
    op.create_index("idx_deals_user_updated", "deals", ["user_id", "updated_at"])

    op.create_table(
        "contacts",
        _id(),
        sa.Column("user_id", pg.UUID(as_uuid=True), nullable=False),
        sa.Column("full_name", sa.Text(), nullable=False),
        sa.Column("contact_type", sa.Text(), nullable=False, server_default="lead"),
        sa.Column("email", sa.Text(), nullable=True),
        sa.Column("phone", sa.Text(), nullable=True),
        sa.Column("company", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("last_contacted", sa.Date(), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
    )
    op.create_index("ix_contacts_user_id", "contacts", ["user_id"])

    op.create_table(
        "business_profiles",
        _id(),
        sa.Column("user_id", pg.UUID(as_uuid=True), nullable=False, unique=True),
        sa.Column("business_name", sa.Text(), nullable=True),
        sa.Column("brokerage_name", sa.Text(), nullable=True),
        sa.Column("market_area", sa.Text(), nullable=True),
        sa.Column("specialties", pg.JSONB(), nullable=True),
        sa.Column("team_size", sa.Text(), nullable=True),
        sa.Column("brand_tone", sa.Text(), nullable=True),
        sa.Column("brand_voice_notes", sa.Text(), nullable=True),
        sa.Column("preferred_title_company", sa.Text(), nullable=True),
        sa.Column("preferred_inspector", sa.Text(), nullable=True),
        sa.Column("preferred_photographer", sa.Text(), nullable=True),
        sa.Column("preferred_lender", sa.Text(), nullable=True),
        _timestamp("updated_at"),
    )

    op.create_table(
        "memory_facts",
        _id(),
        sa.Column("user_id", pg.UUID(as_uuid=True), nullable=False),
        sa.Column("fact", sa.Text(), nullable=False),
        sa.Column("category", sa.Text(), nullable=False, server_default="general"),
        sa.Column(
            "source_conversation_id",
            pg.UUID(as_uuid=True),
            sa.ForeignKey("conversations.id", ondelete="SET NULL"),
            nullable=True,
        ),
        _timestamp("created_at"),
    )
    op.create_index("ix_memory_facts_user_id", "memory_facts", ["user_id"])

    op.create_table(
        "task_history",
        _id(),
        sa.Column("user_id", pg.UUID(as_uuid=True), nullable=False),
        sa.Column("conversation_id", pg.UUID(as_uuid=True), nullable=True),
        sa.Column("task_type", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("metadata", pg.JSONB(), nullable=True),
        _timestamp("created_at"),
    )
    op.create_index("ix_task_history_user_id", "task_history", ["user_id"])


def downgrade() -> None:
    """Drop all agent core tables."""
    op.drop_table("task_history")
    op.drop_table("memory_facts")
    op.drop_table("business_profiles")
    op.drop_table("contacts")
    op.drop_table("deals")
    op.drop_table("messages")
    op.drop_table("conversations")
