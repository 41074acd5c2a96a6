"""
One chat turn end to end: context, user message, loop, finalizer.

Errors never escape `run`; they become a single `error` event and the turn
ends without a `done` event or an assistant message.
"""

import asyncio
import uuid
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from caselli.db.database import unit_of_work
from caselli.db.models import Conversation
from caselli.db.repositories import ConversationsRepository, MessagesRepository
from caselli.services.agent_orchestrator import AgentOrchestrator, Emit, TurnError
from caselli.services.context_assembler import ContextAssembler
from caselli.services.finalizer import TurnFinalizer
from caselli.streaming import client_events
from caselli.utils.logging import get_logger

logger = get_logger(__name__)

UNEXPECTED_ERROR_MESSAGE = "Something went wrong while working on that. Please try again."


class ChatService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        assembler: ContextAssembler,
        orchestrator: AgentOrchestrator,
        finalizer: TurnFinalizer,
    ):
        self.session_factory = session_factory
        self.assembler = assembler
        self.orchestrator = orchestrator
        self.finalizer = finalizer

    async def open_conversation(
        self, owner_id: uuid.UUID, conversation_id: uuid.UUID
    ) -> Conversation:
        """
        Get or lazily create the conversation before the stream starts.

        Raises:
            ConversationAccessError: The id belongs to another owner
        """
        async with unit_of_work(self.session_factory) as session:
            return await ConversationsRepository(session).get_or_create(
                owner_id, conversation_id
            )

    async def run(
        self,
        owner_id: uuid.UUID,
        conversation_id: uuid.UUID,
        message: str,
        emit: Emit,
        cancel: Optional[asyncio.Event] = None,
    ) -> None:
        cancel = cancel or asyncio.Event()
        try:
            context = await self.assembler.assemble(owner_id, conversation_id, message)

            async with unit_of_work(self.session_factory) as session:
                await MessagesRepository(session).add(owner_id, conversation_id, "user", message)
                await ConversationsRepository(session).touch(owner_id, conversation_id)

            state = await self.orchestrator.run(
                owner_id, conversation_id, context, emit, cancel
            )
            if state.cancelled or cancel.is_set():
                logger.info(
                    "Client gone, skipping finalizer",
                    conversation_id=str(conversation_id),
                    rounds=state.rounds,
                )
                return

            await self.finalizer.finalize(
                owner_id,
                conversation_id,
                message,
                state,
                emit,
                needs_title=not context.has_title,
            )
        except TurnError as e:
            await emit(client_events.error(e.user_message))
        except Exception as e:
            logger.error(
                "Chat turn failed",
                conversation_id=str(conversation_id),
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            await emit(client_events.error(UNEXPECTED_ERROR_MESSAGE))
