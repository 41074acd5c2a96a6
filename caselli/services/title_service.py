"""
Conversation auto-titling with the cheaper utility model.

Runs once per conversation, after the first exchange. Returns None rather
than raising so a failed title never affects the turn.
"""

import re
import uuid
from typing import Optional

from pydantic_ai import Agent
from pydantic_ai.models import Model
from pydantic_ai.models.anthropic import AnthropicModel
from pydantic_ai.providers.anthropic import AnthropicProvider
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from caselli.config import Settings
from caselli.db.database import unit_of_work
from caselli.db.repositories import ConversationsRepository
from caselli.utils.logging import get_logger

logger = get_logger(__name__)

TITLE_PROMPT = (
    "You name chat conversations between a real estate agent and their AI "
    "coworker. Reply with a title of at most six words that captures the topic, "
    "for example 'Offer strategy for 12 Elm St'. No quotes, no trailing punctuation."
)

MAX_TITLE_LENGTH = 60


def utility_model(settings: Settings) -> AnthropicModel:
    """The cheaper model used for background jobs."""
    return AnthropicModel(
        settings.anthropic_utility_model,
        provider=AnthropicProvider(api_key=settings.anthropic_api_key),
    )


def clean_title(raw: str) -> Optional[str]:
    title = raw.strip().splitlines()[0] if raw.strip() else ""
    title = re.sub(r"^(title:\s*)", "", title, flags=re.IGNORECASE)
    title = title.strip().strip("\"'*#").strip().rstrip(".!?:;,")
    if not title:
        return None
    if len(title) > MAX_TITLE_LENGTH:
        title = title[:MAX_TITLE_LENGTH].rsplit(" ", 1)[0].rstrip(",;:-")
    return title


class TitleGenerator:
    def __init__(
        self,
        settings: Settings,
        session_factory: async_sessionmaker[AsyncSession],
        model: Optional[Model] = None,
    ):
        self.session_factory = session_factory
        self.agent = Agent(model or utility_model(settings), system_prompt=TITLE_PROMPT)

    async def generate(self, user_message: str, assistant_reply: str) -> Optional[str]:
        prompt = (
            f"Agent: {user_message[:1000]}\n\n"
            f"Assistant: {assistant_reply[:1000]}\n\n"
            "Title:"
        )
        result = await self.agent.run(prompt)
        return clean_title(str(result.output))

    async def generate_and_store(
        self,
        owner_id: uuid.UUID,
        conversation_id: uuid.UUID,
        user_message: str,
        assistant_reply: str,
    ) -> Optional[str]:
        try:
            title = await self.generate(user_message, assistant_reply)
            if not title:
                return None
            async with unit_of_work(self.session_factory) as session:
                await ConversationsRepository(session).set_title(
                    owner_id, conversation_id, title
                )
        except Exception as e:
            logger.warning(
                "Title generation failed",
                conversation_id=str(conversation_id),
                error=str(e),
                error_type=type(e).__name__,
            )
            return None

        logger.info("Conversation titled", conversation_id=str(conversation_id), title=title)
        return title
