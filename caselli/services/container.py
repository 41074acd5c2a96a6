"""
Process-wide service wiring.

Everything with state (HTTP clients, the cooldown limiter, the background
dispatcher) is built once here and stored on `app.state.services`. Tests
build their own container with fakes and pass it to `create_app`.
"""

from dataclasses import dataclass
from typing import Optional

from pydantic_ai.models import Model
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from caselli.clients.anthropic import AnthropicStreamingClient
from caselli.clients.auth import SupabaseAuthClient
from caselli.clients.property_data import PropertyDataClient
from caselli.clients.storage import StorageClient
from caselli.config import Settings
from caselli.db.database import get_session_factory
from caselli.services.agent_orchestrator import AgentOrchestrator
from caselli.services.background import BackgroundDispatcher
from caselli.services.chat_service import ChatService
from caselli.services.context_assembler import ContextAssembler
from caselli.services.enrichment_service import PropertyEnrichmentService
from caselli.services.finalizer import TurnFinalizer
from caselli.services.memory_service import MemoryExtractor
from caselli.services.rate_limiter import CooldownLimiter
from caselli.services.title_service import TitleGenerator
from caselli.services.undo_service import UndoService
from caselli.tools.registry import build_executor
from caselli.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class Services:
    settings: Settings
    session_factory: async_sessionmaker[AsyncSession]
    auth: SupabaseAuthClient
    llm: AnthropicStreamingClient
    property_data: PropertyDataClient
    storage: StorageClient
    dispatcher: BackgroundDispatcher
    chat: ChatService
    undo: UndoService

    async def close(self) -> None:
        await self.dispatcher.drain()
        for client in (self.llm, self.auth, self.property_data, self.storage):
            await client.close()
        logger.info("Services closed")


def build_services(
    settings: Settings,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    *,
    auth: Optional[SupabaseAuthClient] = None,
    llm: Optional[AnthropicStreamingClient] = None,
    property_data: Optional[PropertyDataClient] = None,
    storage: Optional[StorageClient] = None,
    utility_model: Optional[Model] = None,
    limiter: Optional[CooldownLimiter] = None,
) -> Services:
    """Wire the full service graph; any collaborator can be swapped out."""
    session_factory = session_factory or get_session_factory(settings)
    auth = auth or SupabaseAuthClient(settings)
    llm = llm or AnthropicStreamingClient(settings)
    property_data = property_data or PropertyDataClient(settings)
    storage = storage or StorageClient(settings)
    limiter = limiter or CooldownLimiter(
        settings.memory_cooldown_seconds, max_keys=settings.memory_cooldown_max_owners
    )
    dispatcher = BackgroundDispatcher()

    enrichment = PropertyEnrichmentService(property_data, session_factory)
    executor = build_executor(
        enrichment, storage, settings.signed_url_ttl_seconds, dispatcher
    )
    orchestrator = AgentOrchestrator(settings, llm, executor, session_factory)
    finalizer = TurnFinalizer(
        settings,
        session_factory,
        dispatcher,
        TitleGenerator(settings, session_factory, model=utility_model),
        MemoryExtractor(settings, session_factory, limiter, model=utility_model),
    )
    chat = ChatService(
        session_factory,
        ContextAssembler(settings, session_factory),
        orchestrator,
        finalizer,
    )

    return Services(
        settings=settings,
        session_factory=session_factory,
        auth=auth,
        llm=llm,
        property_data=property_data,
        storage=storage,
        dispatcher=dispatcher,
        chat=chat,
        undo=UndoService(session_factory),
    )
