"""
Post-turn work: persist the assistant message, emit `done`, then the
background jobs (title awaited with a timeout, memory fire-and-forget).
"""

import asyncio
import uuid
from datetime import date
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from caselli.config import Settings
from caselli.db.database import unit_of_work
from caselli.db.repositories import (
    ConversationsRepository,
    DealsRepository,
    MessagesRepository,
)
from caselli.services.agent_orchestrator import Emit, ToolCallRecord, TurnState
from caselli.services.background import BackgroundDispatcher
from caselli.services.memory_service import MemoryExtractor
from caselli.services.title_service import TitleGenerator
from caselli.streaming import client_events
from caselli.tools.catalog import DRAFTING_TOOLS, ToolName
from caselli.tools.deals import collect_deadlines
from caselli.utils.logging import get_logger
from caselli.utils.sse_utils import truncate_text

logger = get_logger(__name__)

CONVERSATIONAL = "conversational"
PROPERTY_ENRICHED = "property_enriched"

# Stored length including the ellipsis
TOOL_LOG_VALUE_LIMIT = 500


def _enriched(call: ToolCallRecord) -> bool:
    if call.outcome is None or not call.outcome.success:
        return False
    if call.tool == ToolName.ENRICH_PROPERTY.value:
        return True
    if call.tool == ToolName.CREATE_DEAL.value:
        enrichment = call.outcome.result.get("enrichment") or {}
        return bool(enrichment.get("property"))
    return False


def derive_content_type(text: str, calls: List[ToolCallRecord], threshold: int) -> str:
    """
    Fixed priority: short text, then enrichment, then the first draft tool.
    """
    if len(text.strip()) < threshold:
        return CONVERSATIONAL
    if any(_enriched(call) for call in calls):
        return PROPERTY_ENRICHED
    drafting = {tool.value: content_type for tool, content_type in DRAFTING_TOOLS.items()}
    for call in calls:
        if call.tool in drafting:
            return drafting[call.tool]
    return CONVERSATIONAL


def entity_refs(call: ToolCallRecord) -> Tuple[Optional[str], Optional[str]]:
    """(deal_id, contact_id) a tool call touched, if any."""
    if call.outcome is None or not call.outcome.success:
        return None, None
    result = call.outcome.result
    deal = result.get("deal")
    deal_id = deal.get("id") if isinstance(deal, dict) else result.get("deal_id")
    contact = result.get("contact")
    contact_id = contact.get("id") if isinstance(contact, dict) else None
    return deal_id, contact_id


def dedupe_sources(sources: List[Dict[str, str]]) -> List[Dict[str, str]]:
    seen = set()
    unique = []
    for source in sources:
        if source["url"] in seen:
            continue
        seen.add(source["url"])
        unique.append(source)
    return unique


class TurnFinalizer:
    def __init__(
        self,
        settings: Settings,
        session_factory: async_sessionmaker[AsyncSession],
        dispatcher: BackgroundDispatcher,
        titles: TitleGenerator,
        memory: MemoryExtractor,
        today: Callable[[], date] = date.today,
    ):
        self.settings = settings
        self.session_factory = session_factory
        self.dispatcher = dispatcher
        self.titles = titles
        self.memory = memory
        self.today = today

    def tool_log(self, calls: List[ToolCallRecord]) -> List[Dict[str, Any]]:
        """Tool calls as stored in message metadata; long string inputs are clipped."""
        return [
            {
                "tool": call.tool,
                "input": {
                    key: truncate_text(value, TOOL_LOG_VALUE_LIMIT - 3)
                    if isinstance(value, str)
                    else value
                    for key, value in call.input.items()
                },
                "result_summary": call.summary,
            }
            for call in calls
        ]

    async def finalize(
        self,
        owner_id: uuid.UUID,
        conversation_id: uuid.UUID,
        user_message: str,
        state: TurnState,
        emit: Emit,
        needs_title: bool = False,
    ) -> Dict[str, Any]:
        """Persist, emit `done`, run the title job, schedule memory. Returns the done payload."""
        text = state.text
        content_type = derive_content_type(
            text, state.tool_calls, self.settings.conversational_text_threshold
        )
        undo_actions = [
            call.outcome.undo_action.model_dump(exclude_none=True)
            for call in state.tool_calls
            if call.outcome is not None and call.outcome.undo_action is not None
        ]
        sources = dedupe_sources(state.sources)

        metadata: Dict[str, Any] = {
            "content_type": content_type,
            "tool_calls": self.tool_log(state.tool_calls),
        }
        if undo_actions:
            metadata["undo_actions"] = undo_actions
        if sources:
            metadata["sources"] = sources

        async with unit_of_work(self.session_factory) as session:
            await MessagesRepository(session).add(
                owner_id, conversation_id, "assistant", text, metadata
            )
            await ConversationsRepository(session).touch(owner_id, conversation_id)

        payload = await self._done_payload(owner_id, state, content_type, undo_actions, sources)
        await emit(client_events.done(payload))

        if needs_title:
            await self._title(owner_id, conversation_id, user_message, text, emit)

        if await self.memory.should_extract(owner_id, user_message):
            self.dispatcher.spawn(
                self.memory.extract(owner_id, conversation_id), name="memory-extraction"
            )

        return payload

    async def _done_payload(
        self,
        owner_id: uuid.UUID,
        state: TurnState,
        content_type: str,
        undo_actions: List[Dict[str, Any]],
        sources: List[Dict[str, str]],
    ) -> Dict[str, Any]:
        tools_used = []
        last_deal_id = last_contact_id = None
        last_deal_stage = last_contact_type = None

        for call in state.tool_calls:
            entry: Dict[str, Any] = {"tool": call.tool}
            deal_id, contact_id = entity_refs(call)
            if deal_id:
                entry["deal_id"] = last_deal_id = deal_id
                deal = call.outcome.result.get("deal") or {}
                last_deal_stage = deal.get("stage", last_deal_stage)
            if contact_id:
                entry["contact_id"] = last_contact_id = contact_id
                contact = call.outcome.result.get("contact") or {}
                last_contact_type = contact.get("contact_type", last_contact_type)
            tools_used.append(entry)

        payload: Dict[str, Any] = {
            "tools_used": tools_used,
            "chip_context": {
                **await self._pipeline_counts(owner_id),
                "last_deal_stage": last_deal_stage,
                "last_contact_type": last_contact_type,
            },
            "content_type": content_type,
        }
        if last_deal_id:
            payload["last_deal_id"] = last_deal_id
        if last_contact_id:
            payload["last_contact_id"] = last_contact_id
        if undo_actions:
            payload["undo_actions"] = undo_actions
        if sources:
            payload["sources"] = sources
        return payload

    async def _pipeline_counts(self, owner_id: uuid.UUID) -> Dict[str, int]:
        """Best effort: chips degrade to zeros rather than failing the turn."""
        try:
            async with unit_of_work(self.session_factory) as session:
                deals = DealsRepository(session)
                active = await deals.list_active(owner_id, limit=500)
                return {
                    "active_deals_count": await deals.count_active(owner_id),
                    "upcoming_deadlines": len(collect_deadlines(active, self.today())),
                }
        except Exception as e:
            logger.warning("Chip context unavailable", error=str(e))
            return {"active_deals_count": 0, "upcoming_deadlines": 0}

    async def _title(
        self,
        owner_id: uuid.UUID,
        conversation_id: uuid.UUID,
        user_message: str,
        reply: str,
        emit: Emit,
    ) -> None:
        try:
            title = await asyncio.wait_for(
                self.titles.generate_and_store(owner_id, conversation_id, user_message, reply),
                timeout=self.settings.title_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning("Title generation timed out", conversation_id=str(conversation_id))
            return
        if title:
            await emit(client_events.title_update(title))
