"""
Database module for the Caselli agent core.

Single import point for all database functionality.
"""

from .database import (
    create_session_factory,
    create_tables,
    get_engine,
    get_session_factory,
    on_shutdown,
    on_startup,
    ping,
    unit_of_work,
)
from .models import (
    Base,
    BusinessProfile,
    Contact,
    Conversation,
    Deal,
    MemoryFact,
    Message,
    TaskHistory,
)
from .repositories import (
    ContactNotFoundError,
    ContactsRepository,
    ConversationAccessError,
    ConversationsRepository,
    DealNotFoundError,
    DealsRepository,
    MemoryFactsRepository,
    MessagesRepository,
    ProfilesRepository,
    RepositoryError,
    TaskHistoryRepository,
)

__all__ = [
    # Session management
    "unit_of_work",
    "get_engine",
    "get_session_factory",
    "create_session_factory",
    # Lifecycle
    "on_startup",
    "on_shutdown",
    "ping",
    "create_tables",
    # Models
    "Base",
    "BusinessProfile",
    "Contact",
    "Conversation",
    "Deal",
    "MemoryFact",
    "Message",
    "TaskHistory",
    # Repositories
    "RepositoryError",
    "ConversationAccessError",
    "DealNotFoundError",
    "ContactNotFoundError",
    "ConversationsRepository",
    "MessagesRepository",
    "DealsRepository",
    "ContactsRepository",
    "ProfilesRepository",
    "MemoryFactsRepository",
    "TaskHistoryRepository",
]
