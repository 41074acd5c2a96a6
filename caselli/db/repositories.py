"""
Repository layer for Caselli database operations.

Repositories wrap a single AsyncSession and encapsulate the queries the agent
core needs. Every method takes the owner id and filters by it; nothing here
reads or writes across owners. Repositories flush but never commit: the
caller's unit of work owns the transaction.
"""

import uuid
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from .models import (
    INACTIVE_DEAL_STAGES,
    BusinessProfile,
    Contact,
    Conversation,
    Deal,
    MemoryFact,
    Message,
    TaskHistory,
)


class RepositoryError(Exception):
    """Base exception for repository operations."""

    pass


class ConversationAccessError(RepositoryError):
    """Raised when a conversation id belongs to a different owner."""

    pass


class DealNotFoundError(RepositoryError):
    """Raised when a deal is not found for the owner."""

    pass


class ContactNotFoundError(RepositoryError):
    """Raised when a contact is not found for the owner."""

    pass


def _iso(value: Any) -> Any:
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, uuid.UUID):
        return str(value)
    return value


DEAL_FIELDS = (
    "property_address",
    "stage",
    "deal_type",
    "list_price",
    "contract_price",
    "client_name",
    "client_email",
    "client_phone",
    "closing_date",
    "inspection_deadline",
    "financing_deadline",
    "appraisal_deadline",
    "notes",
)

ENRICHMENT_FIELDS = (
    "bedrooms",
    "bathrooms",
    "square_footage",
    "year_built",
    "lot_size",
    "property_type",
)

CONTACT_FIELDS = (
    "full_name",
    "contact_type",
    "email",
    "phone",
    "company",
    "notes",
    "last_contacted",
)


def deal_to_dict(deal: Deal) -> Dict[str, Any]:
    """Serialize a deal for tool results (JSON-safe, nulls dropped)."""
    data = {"id": str(deal.id)}
    for field in DEAL_FIELDS + ENRICHMENT_FIELDS:
        value = getattr(deal, field)
        if value is not None:
            data[field] = _iso(value)
    return data


def contact_to_dict(contact: Contact) -> Dict[str, Any]:
    """Serialize a contact for tool results (JSON-safe, nulls dropped)."""
    data = {"id": str(contact.id)}
    for field in CONTACT_FIELDS:
        value = getattr(contact, field)
        if value is not None:
            data[field] = _iso(value)
    return data


def field_snapshot(entity: Any, fields: Sequence[str]) -> Dict[str, Any]:
    """Capture the JSON-safe current values of the given fields."""
    return {field: _iso(getattr(entity, field)) for field in fields}


class ConversationsRepository:
    """Conversation lookup, lazy creation, titling and recency."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(
        self, user_id: uuid.UUID, conversation_id: uuid.UUID
    ) -> Optional[Conversation]:
        try:
            result = await self.session.execute(
                select(Conversation).where(
                    Conversation.id == conversation_id,
                    Conversation.user_id == user_id,
                )
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise RepositoryError(f"Database error getting conversation: {e}") from e

    async def get_or_create(
        self, user_id: uuid.UUID, conversation_id: uuid.UUID
    ) -> Conversation:
        """
        Return the owner's conversation, creating it on first use.

        Raises:
            ConversationAccessError: If the id exists under another owner
        """
        try:
            existing = await self.session.get(Conversation, conversation_id)
            if existing is not None:
                if existing.user_id != user_id:
                    raise ConversationAccessError(
                        f"Conversation {conversation_id} not found"
                    )
                return existing

            conversation = Conversation(id=conversation_id, user_id=user_id)
            self.session.add(conversation)
            await self.session.flush()
            return conversation
        except SQLAlchemyError as e:
            raise RepositoryError(f"Database error creating conversation: {e}") from e

    async def touch(self, user_id: uuid.UUID, conversation_id: uuid.UUID) -> None:
        conversation = await self.get(user_id, conversation_id)
        if conversation is not None:
            conversation.updated_at = datetime.now(timezone.utc)
            await self.session.flush()

    async def set_title(
        self, user_id: uuid.UUID, conversation_id: uuid.UUID, title: str
    ) -> None:
        conversation = await self.get(user_id, conversation_id)
        if conversation is not None:
            conversation.title = title
            await self.session.flush()

    async def most_recent_other(
        self, user_id: uuid.UUID, conversation_id: uuid.UUID
    ) -> Optional[Conversation]:
        """The owner's most recently updated conversation other than this one."""
        try:
            result = await self.session.execute(
                select(Conversation)
                .where(
                    Conversation.user_id == user_id,
                    Conversation.id != conversation_id,
                )
                .order_by(Conversation.updated_at.desc())
                .limit(1)
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise RepositoryError(f"Database error getting conversations: {e}") from e


class MessagesRepository:
    """Message persistence and history reads."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(
        self,
        user_id: uuid.UUID,
        conversation_id: uuid.UUID,
        role: str,
        content: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Message:
        try:
            message = Message(
                conversation_id=conversation_id,
                user_id=user_id,
                role=role,
                content=content,
                message_metadata=metadata,
            )
            self.session.add(message)
            await self.session.flush()
            return message
        except SQLAlchemyError as e:
            raise RepositoryError(f"Database error adding message: {e}") from e

    async def list_for_conversation(
        self,
        user_id: uuid.UUID,
        conversation_id: uuid.UUID,
        limit: Optional[int] = None,
    ) -> List[Message]:
        """
        Messages of a conversation in ascending order.

        With `limit`, returns the most recent `limit` messages (still ascending).
        """
        try:
            stmt = select(Message).where(
                Message.conversation_id == conversation_id,
                Message.user_id == user_id,
            )
            if limit is None:
                result = await self.session.execute(stmt.order_by(Message.created_at))
                return list(result.scalars().all())

            result = await self.session.execute(
                stmt.order_by(Message.created_at.desc()).limit(limit)
            )
            return list(reversed(result.scalars().all()))
        except SQLAlchemyError as e:
            raise RepositoryError(f"Database error listing messages: {e}") from e


class DealsRepository:
    """Deal CRUD plus the derived views the read-only tools need."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, user_id: uuid.UUID, **fields: Any) -> Deal:
        try:
            deal = Deal(user_id=user_id, **fields)
            self.session.add(deal)
            await self.session.flush()
            return deal
        except SQLAlchemyError as e:
            raise RepositoryError(f"Database error creating deal: {e}") from e

    async def get(self, user_id: uuid.UUID, deal_id: uuid.UUID) -> Optional[Deal]:
        try:
            result = await self.session.execute(
                select(Deal).where(Deal.id == deal_id, Deal.user_id == user_id)
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise RepositoryError(f"Database error getting deal: {e}") from e

    async def find_by_address(self, user_id: uuid.UUID, address: str) -> Optional[Deal]:
        """
        Fuzzy-match a deal by address substring, most recently updated first.

        Tries the full text first, then only the street part before the
        first comma ("123 Main St, Austin TX" -> "123 Main St").
        """
        candidates = [address.strip()]
        street = address.split(",")[0].strip()
        if street and street not in candidates:
            candidates.append(street)

        try:
            for term in candidates:
                if not term:
                    continue
                result = await self.session.execute(
                    select(Deal)
                    .where(
                        Deal.user_id == user_id,
                        func.lower(Deal.property_address).contains(
                            term.lower(), autoescape=True
                        ),
                    )
                    .order_by(Deal.updated_at.desc())
                    .limit(1)
                )
                deal = result.scalar_one_or_none()
                if deal is not None:
                    return deal
            return None
        except SQLAlchemyError as e:
            raise RepositoryError(f"Database error searching deals: {e}") from e

    async def list_active(
        self, user_id: uuid.UUID, stage: Optional[str] = None, limit: int = 50
    ) -> List[Deal]:
        try:
            stmt = select(Deal).where(
                Deal.user_id == user_id, Deal.stage.not_in(INACTIVE_DEAL_STAGES)
            )
            if stage:
                stmt = stmt.where(Deal.stage == stage)
            result = await self.session.execute(
                stmt.order_by(Deal.updated_at.desc()).limit(limit)
            )
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise RepositoryError(f"Database error listing deals: {e}") from e

    async def count_active(self, user_id: uuid.UUID) -> int:
        try:
            result = await self.session.execute(
                select(func.count())
                .select_from(Deal)
                .where(Deal.user_id == user_id, Deal.stage.not_in(INACTIVE_DEAL_STAGES))
            )
            return int(result.scalar_one())
        except SQLAlchemyError as e:
            raise RepositoryError(f"Database error counting deals: {e}") from e

    async def update(self, deal: Deal, changes: Dict[str, Any]) -> Deal:
        try:
            for field, value in changes.items():
                setattr(deal, field, value)
            deal.updated_at = datetime.now(timezone.utc)
            await self.session.flush()
            return deal
        except SQLAlchemyError as e:
            raise RepositoryError(f"Database error updating deal: {e}") from e

    async def delete(self, user_id: uuid.UUID, deal_id: uuid.UUID) -> bool:
        try:
            result = await self.session.execute(
                delete(Deal).where(Deal.id == deal_id, Deal.user_id == user_id)
            )
            return result.rowcount > 0
        except SQLAlchemyError as e:
            raise RepositoryError(f"Database error deleting deal: {e}") from e


class ContactsRepository:
    """Contact CRUD and search."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, user_id: uuid.UUID, **fields: Any) -> Contact:
        try:
            contact = Contact(user_id=user_id, **fields)
            self.session.add(contact)
            await self.session.flush()
            return contact
        except SQLAlchemyError as e:
            raise RepositoryError(f"Database error creating contact: {e}") from e

    async def get(self, user_id: uuid.UUID, contact_id: uuid.UUID) -> Optional[Contact]:
        try:
            result = await self.session.execute(
                select(Contact).where(Contact.id == contact_id, Contact.user_id == user_id)
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise RepositoryError(f"Database error getting contact: {e}") from e

    async def search(
        self,
        user_id: uuid.UUID,
        query: str,
        contact_type: Optional[str] = None,
        limit: int = 10,
    ) -> List[Contact]:
        """Case-insensitive substring match over name, email, phone and company."""
        term = query.strip().lower()
        try:
            stmt = select(Contact).where(Contact.user_id == user_id)
            if term:
                stmt = stmt.where(
                    or_(
                        *(
                            func.lower(column).contains(term, autoescape=True)
                            for column in (
                                Contact.full_name,
                                Contact.email,
                                Contact.phone,
                                Contact.company,
                            )
                        )
                    )
                )
            if contact_type:
                stmt = stmt.where(Contact.contact_type == contact_type)
            result = await self.session.execute(
                stmt.order_by(Contact.updated_at.desc()).limit(limit)
            )
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise RepositoryError(f"Database error searching contacts: {e}") from e

    async def update(self, contact: Contact, changes: Dict[str, Any]) -> Contact:
        try:
            for field, value in changes.items():
                setattr(contact, field, value)
            contact.updated_at = datetime.now(timezone.utc)
            await self.session.flush()
            return contact
        except SQLAlchemyError as e:
            raise RepositoryError(f"Database error updating contact: {e}") from e

    async def delete(self, user_id: uuid.UUID, contact_id: uuid.UUID) -> bool:
        try:
            result = await self.session.execute(
                delete(Contact).where(Contact.id == contact_id, Contact.user_id == user_id)
            )
            return result.rowcount > 0
        except SQLAlchemyError as e:
            raise RepositoryError(f"Database error deleting contact: {e}") from e


class ProfilesRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, user_id: uuid.UUID) -> Optional[BusinessProfile]:
        try:
            result = await self.session.execute(
                select(BusinessProfile).where(BusinessProfile.user_id == user_id)
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise RepositoryError(f"Database error getting profile: {e}") from e


class MemoryFactsRepository:
    """Remembered facts, newest first."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_recent(
        self, user_id: uuid.UUID, limit: Optional[int] = None
    ) -> List[MemoryFact]:
        try:
            stmt = (
                select(MemoryFact)
                .where(MemoryFact.user_id == user_id)
                .order_by(MemoryFact.created_at.desc())
            )
            if limit is not None:
                stmt = stmt.limit(limit)
            result = await self.session.execute(stmt)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise RepositoryError(f"Database error listing memory facts: {e}") from e

    async def add(
        self,
        user_id: uuid.UUID,
        fact: str,
        category: str,
        source_conversation_id: Optional[uuid.UUID],
    ) -> MemoryFact:
        try:
            memory = MemoryFact(
                user_id=user_id,
                fact=fact,
                category=category,
                source_conversation_id=source_conversation_id,
            )
            self.session.add(memory)
            await self.session.flush()
            return memory
        except SQLAlchemyError as e:
            raise RepositoryError(f"Database error adding memory fact: {e}") from e

    async def count(self, user_id: uuid.UUID) -> int:
        result = await self.session.execute(
            select(func.count()).select_from(MemoryFact).where(MemoryFact.user_id == user_id)
        )
        return int(result.scalar_one())


class TaskHistoryRepository:
    """Append-only task audit log."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def record(
        self,
        user_id: uuid.UUID,
        task_type: str,
        description: str,
        conversation_id: Optional[uuid.UUID] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> TaskHistory:
        try:
            entry = TaskHistory(
                user_id=user_id,
                conversation_id=conversation_id,
                task_type=task_type,
                description=description,
                task_metadata=metadata,
            )
            self.session.add(entry)
            await self.session.flush()
            return entry
        except SQLAlchemyError as e:
            raise RepositoryError(f"Database error recording task: {e}") from e

    async def list_recent(self, user_id: uuid.UUID, limit: int = 10) -> List[TaskHistory]:
        try:
            result = await self.session.execute(
                select(TaskHistory)
                .where(TaskHistory.user_id == user_id)
                .order_by(TaskHistory.created_at.desc())
                .limit(limit)
            )
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise RepositoryError(f"Database error listing task history: {e}") from e
