"""
Memory fact extraction.

After a turn, the last few messages are sent to the utility model, which
returns durable facts about the agent's business ("Works mostly with
first-time buyers in Round Rock"). Facts too similar to what is already
stored are dropped before insert.

The job is gated three ways before any model call is made:
    1. the user's message must be long enough to carry a fact
    2. it must not look like a data dump (symbols/digits ratio)
    3. the owner's cooldown window must have elapsed
"""

import re
import uuid
from typing import Iterable, List, Literal, Optional, Set

from pydantic import BaseModel, Field
from pydantic_ai import Agent
from pydantic_ai.models import Model
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from caselli.config import Settings
from caselli.db.database import unit_of_work
from caselli.db.repositories import MemoryFactsRepository, MessagesRepository
from caselli.services.rate_limiter import CooldownLimiter
from caselli.services.title_service import utility_model
from caselli.utils.logging import get_logger

logger = get_logger(__name__)

_TOKEN_RE = re.compile(r"[a-z0-9']+")

EXTRACTION_PROMPT = """\
You maintain long-term memory for an AI coworker that assists a real estate agent.
From the conversation excerpt, extract durable facts about the agent's business,
preferences, clients, market or working style that will still matter in future
conversations. Skip one-off requests, small talk, and anything already obvious
from a single deal record. Write each fact as a short third-person statement.
Return an empty list when there is nothing worth remembering."""


class ExtractedFact(BaseModel):
    fact: str = Field(min_length=3, max_length=300)
    category: Literal["business", "preference", "client", "market", "workflow", "general"] = "general"


class ExtractedFacts(BaseModel):
    facts: List[ExtractedFact] = Field(default_factory=list)


def tokenize(text: str) -> Set[str]:
    return set(_TOKEN_RE.findall(text.lower()))


def similarity(a: str, b: str) -> float:
    """Token-set overlap: |A & B| / max(|A|, |B|)."""
    left, right = tokenize(a), tokenize(b)
    if not left or not right:
        return 0.0
    return len(left & right) / max(len(left), len(right))


def is_data_heavy(text: str, ratio_limit: float) -> bool:
    """True when symbols and digits make up more than `ratio_limit` of the text."""
    visible = [ch for ch in text if not ch.isspace()]
    if not visible:
        return False
    noisy = sum(1 for ch in visible if not ch.isalpha())
    return noisy / len(visible) > ratio_limit


def dedupe_facts(
    candidates: Iterable[ExtractedFact], existing: Iterable[str], threshold: float
) -> List[ExtractedFact]:
    """Drop candidates whose overlap with a stored or earlier-accepted fact exceeds the threshold."""
    known = list(existing)
    accepted: List[ExtractedFact] = []
    for candidate in candidates:
        text = candidate.fact.strip()
        if not text:
            continue
        if any(similarity(text, other) > threshold for other in known):
            continue
        accepted.append(candidate)
        known.append(text)
    return accepted


class MemoryExtractor:
    def __init__(
        self,
        settings: Settings,
        session_factory: async_sessionmaker[AsyncSession],
        limiter: CooldownLimiter,
        model: Optional[Model] = None,
    ):
        self.settings = settings
        self.session_factory = session_factory
        self.limiter = limiter
        self.agent = Agent(
            model or utility_model(settings),
            output_type=ExtractedFacts,
            system_prompt=EXTRACTION_PROMPT,
        )

    def is_candidate(self, user_text: str) -> bool:
        text = user_text.strip()
        if len(text) < self.settings.memory_min_text_length:
            return False
        return not is_data_heavy(text, self.settings.memory_symbol_ratio_limit)

    async def should_extract(self, owner_id: uuid.UUID, user_text: str) -> bool:
        """Content heuristics first so a skipped turn never consumes the cooldown."""
        if not self.is_candidate(user_text):
            return False
        return await self.limiter.try_acquire(owner_id)

    async def extract(self, owner_id: uuid.UUID, conversation_id: uuid.UUID) -> List[str]:
        """
        Run one extraction pass and insert the new facts.

        Returns:
            The facts that were inserted
        """
        async with unit_of_work(self.session_factory) as session:
            messages = await MessagesRepository(session).list_for_conversation(
                owner_id, conversation_id, limit=self.settings.memory_recent_messages
            )
            excerpt = "\n\n".join(f"{m.role.title()}: {m.content}" for m in messages)

        if not excerpt:
            return []

        result = await self.agent.run(f"Conversation excerpt:\n\n{excerpt}")
        candidates = result.output.facts

        async with unit_of_work(self.session_factory) as session:
            facts = MemoryFactsRepository(session)
            existing = [m.fact for m in await facts.list_recent(owner_id)]
            fresh = dedupe_facts(
                candidates, existing, self.settings.memory_similarity_threshold
            )
            for item in fresh:
                await facts.add(owner_id, item.fact.strip(), item.category, conversation_id)

        logger.info(
            "Memory extraction complete",
            conversation_id=str(conversation_id),
            candidates=len(candidates),
            inserted=len(fresh),
        )
        return [item.fact.strip() for item in fresh]
