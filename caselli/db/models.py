"""
Database models for the Caselli agent core.

This module defines SQLAlchemy models for:
- Conversations and their messages (with turn metadata)
- The CRM records the agent works on: deals, contacts, business profile
- Remembered facts and the task-history audit log

Every row is scoped to an owner (`user_id`, the id issued by the auth
provider). Column types are portable: JSON columns become JSONB on
PostgreSQL and plain JSON elsewhere, so the suite runs on SQLite.
"""

import uuid
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    Text,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

JSONType = JSON().with_variant(JSONB(), "postgresql")

DEAL_STAGES = (
    "lead",
    "active_client",
    "under_contract",
    "due_diligence",
    "clear_to_close",
    "closed",
    "fell_through",
)

INACTIVE_DEAL_STAGES = ("closed", "fell_through")

CONTACT_TYPES = ("lead", "client", "past_client", "vendor", "agent", "other")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class Conversation(Base):
    """
    A chat session between an agent and the AI coworker.

    Attributes:
        id: Client-generated conversation id
        user_id: Owner
        title: Short title, NULL until the auto-title job runs
        created_at: Creation timestamp
        updated_at: Bumped on every message
    """

    __tablename__ = "conversations"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4, doc="Conversation id"
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, nullable=False, index=True, doc="Owning user"
    )

    title: Mapped[Optional[str]] = mapped_column(
        Text, nullable=True, doc="Auto-generated title"
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, index=True
    )

    messages: Mapped[List["Message"]] = relationship(
        "Message",
        back_populates="conversation",
        cascade="all, delete-orphan",
        order_by="Message.created_at",
    )

    def __repr__(self) -> str:
        return f"<Conversation(id={self.id}, title={self.title!r})>"


class Message(Base):
    """
    One user or assistant message.

    The assistant row is the terminal write of a turn; its metadata carries
    the content-type hint, the tool-call log, undo actions and sources.
    """

    __tablename__ = "messages"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4, doc="Message id"
    )

    conversation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("conversations.id", ondelete="CASCADE"),
        nullable=False,
        doc="Parent conversation",
    )

    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, doc="Owner")

    role: Mapped[str] = mapped_column(Text, nullable=False, doc="user or assistant")

    content: Mapped[str] = mapped_column(Text, nullable=False, default="")

    # "metadata" is reserved on declarative classes
    message_metadata: Mapped[Optional[Dict[str, Any]]] = mapped_column(
        "metadata", JSONType, nullable=True, doc="Turn metadata for assistant rows"
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    conversation: Mapped["Conversation"] = relationship(
        "Conversation", back_populates="messages"
    )

    __table_args__ = (
        CheckConstraint("role IN ('user', 'assistant')", name="chk_message_role"),
        Index("idx_messages_conversation_created", "conversation_id", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<Message(id={self.id}, conversation_id={self.conversation_id}, "
            f"role={self.role})>"
        )


class Deal(Base):
    """
    A transaction the agent is working, from lead to closing.

    Enrichment columns (bedrooms through enriched_at) are filled from the
    property data API after creation and stay NULL when enrichment fails.
    """

    __tablename__ = "deals"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)

    property_address: Mapped[str] = mapped_column(Text, nullable=False)
    stage: Mapped[str] = mapped_column(Text, nullable=False, default="lead")
    deal_type: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    list_price: Mapped[Optional[float]] = mapped_column(
        Numeric(14, 2, asdecimal=False), nullable=True
    )
    contract_price: Mapped[Optional[float]] = mapped_column(
        Numeric(14, 2, asdecimal=False), nullable=True
    )

    client_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    client_email: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    client_phone: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    closing_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    inspection_deadline: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    financing_deadline: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    appraisal_deadline: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Property enrichment
    bedrooms: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    bathrooms: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    square_footage: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    year_built: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    lot_size: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    property_type: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    property_data: Mapped[Optional[Dict[str, Any]]] = mapped_column(
        JSONType, nullable=True, doc="Raw record returned by the property API"
    )
    enriched_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    __table_args__ = (
        CheckConstraint(
            "stage IN ('lead', 'active_client', 'under_contract', 'due_diligence', "
            "'clear_to_close', 'closed', 'fell_through')",
            name="chk_deal_stage",
        ),
        Index("idx_deals_user_updated", "user_id", "updated_at"),
    )

    def __repr__(self) -> str:
        return f"<Deal(id={self.id}, address={self.property_address!r}, stage={self.stage})>"


class Contact(Base):
    """A person in the agent's sphere: leads, clients, vendors, other agents."""

    __tablename__ = "contacts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)

    full_name: Mapped[str] = mapped_column(Text, nullable=False)
    contact_type: Mapped[str] = mapped_column(Text, nullable=False, default="lead")
    email: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    company: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    last_contacted: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    def __repr__(self) -> str:
        return f"<Contact(id={self.id}, name={self.full_name!r}, type={self.contact_type})>"


class BusinessProfile(Base):
    """
    The agent's business facts, rendered into the cached profile prompt block.

    One row per owner.
    """

    __tablename__ = "business_profiles"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, unique=True)

    business_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    brokerage_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    market_area: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    specialties: Mapped[Optional[List[str]]] = mapped_column(JSONType, nullable=True)
    team_size: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    brand_tone: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    brand_voice_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    preferred_title_company: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    preferred_inspector: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    preferred_photographer: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    preferred_lender: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )


class MemoryFact(Base):
    """A durable statement about the agent's business, extracted from chats."""

    __tablename__ = "memory_facts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)

    fact: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(Text, nullable=False, default="general")
    source_conversation_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("conversations.id", ondelete="SET NULL"),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    def __repr__(self) -> str:
        return f"<MemoryFact(id={self.id}, category={self.category})>"


class TaskHistory(Base):
    """
    Append-only audit log of tool invocations.

    Never updated or deleted by the agent core.
    """

    __tablename__ = "task_history"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    conversation_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)

    task_type: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    task_metadata: Mapped[Optional[Dict[str, Any]]] = mapped_column(
        "metadata", JSONType, nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    def __repr__(self) -> str:
        return f"<TaskHistory(id={self.id}, task_type={self.task_type})>"
