"""
Per-turn prompt assembly.

The system prompt is split in three so provider-side prompt caching works:

    static   persona, rules, formatting, tool policy      cacheable
    profile  the agent's business profile                 cacheable
    dynamic  date, memory, recent tasks, last topic       never cached

The first two must be byte-identical across turns for the same inputs, so
they contain nothing time-dependent and render fields in a fixed order.
"""

import uuid
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from caselli.config import Settings
from caselli.db.database import unit_of_work
from caselli.db.models import BusinessProfile, Message
from caselli.db.repositories import (
    ConversationsRepository,
    MemoryFactsRepository,
    MessagesRepository,
    ProfilesRepository,
    TaskHistoryRepository,
)

CACHE_CONTROL = {"type": "ephemeral"}

RECENT_TASK_LIMIT = 10

STATIC_INSTRUCTIONS = """\
You are Caselli, an AI coworker built for real estate agents. You work alongside the agent every day on communications, content, deal tracking, deadlines and strategy.

PERSONALITY
- Professional but warm, like a sharp colleague who cares about the agent's business.
- Proactive: suggest next steps and flag anything the agent might miss.
- Use real estate terminology naturally. Do not explain basic terms such as CMA, DOM, PSA or contingency.
- Keep answers concise and actionable. Agents are busy.

RULES
- Follow Fair Housing guidelines. Never reference protected classes in any content.
- Listing descriptions describe the property only, never the ideal buyer.
- For legal questions, recommend the agent consult their broker or an attorney.
- If something is outside your expertise, say so plainly.
- Never invent deal or contact details. Look them up with your tools.

FORMATTING
- Write in plain prose with short paragraphs. Use bullet lists only for genuinely list-shaped content.
- When you draft an email, social post or listing description, output the finished copy directly, ready to paste, matching the agent's brand voice.
- Do not narrate your tool calls; the interface already shows them.

TOOLS
- Use the CRM tools whenever the request involves the agent's deals, contacts or deadlines.
- When the agent mentions a new property or client, create the deal or contact rather than asking permission.
- For requests with three or more steps, call create_todos first and keep exactly one task in_progress with update_todo as you work.
- The drafting tools only gather details. After calling one, write the content yourself in the same reply.
- Use web_search for current market information, news or anything you cannot know from the CRM.
- Use create_file when the agent asks for something to download, such as a spreadsheet or report."""

PROFILE_FIELDS = (
    ("Business Name", "business_name"),
    ("Brokerage", "brokerage_name"),
    ("Market Area", "market_area"),
    ("Specialties", "specialties"),
    ("Team Size", "team_size"),
    ("Brand Voice", "brand_tone"),
    ("Brand Voice Sample", "brand_voice_notes"),
    ("Preferred Title Company", "preferred_title_company"),
    ("Preferred Inspector", "preferred_inspector"),
    ("Preferred Photographer", "preferred_photographer"),
    ("Preferred Lender", "preferred_lender"),
)


@dataclass
class TurnContext:
    system: List[Dict[str, Any]]
    messages: List[Dict[str, Any]]
    history_length: int = 0
    has_title: bool = False


def render_profile(profile: Optional[BusinessProfile]) -> Optional[str]:
    if profile is None:
        return None
    lines = []
    for label, attr in PROFILE_FIELDS:
        value = getattr(profile, attr)
        if isinstance(value, (list, tuple)):
            value = ", ".join(str(item) for item in value if str(item).strip())
        if value and str(value).strip():
            lines.append(f"{label}: {str(value).strip()}")
    if not lines:
        return None
    return "ABOUT THE AGENT YOU WORK WITH\n" + "\n".join(lines)


def render_tool_markers(metadata: Optional[Dict[str, Any]]) -> str:
    """Stored tool-call log -> '[Used create_deal: Created deal for ...]' lines."""
    if not metadata:
        return ""
    lines = []
    for call in metadata.get("tool_calls") or []:
        tool = call.get("tool", "tool")
        summary = call.get("result_summary")
        lines.append(f"[Used {tool}: {summary}]" if summary else f"[Used {tool}]")
    return "\n".join(lines)


def history_entry(message: Message) -> Dict[str, Any]:
    content = message.content or ""
    if message.role == "assistant":
        markers = render_tool_markers(message.message_metadata)
        if markers:
            content = f"{markers}\n\n{content}" if content else markers
    return {"role": message.role, "content": content}


def normalize_messages(messages: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Enforce strict user/assistant alternation starting with a user message.

    Consecutive same-role text messages are merged, empty ones dropped and
    leading assistant messages removed.
    """
    normalized: List[Dict[str, Any]] = []
    for message in messages:
        content = message.get("content")
        if isinstance(content, str) and not content.strip():
            continue
        if not normalized and message["role"] != "user":
            continue
        if (
            normalized
            and normalized[-1]["role"] == message["role"]
            and isinstance(normalized[-1]["content"], str)
            and isinstance(content, str)
        ):
            normalized[-1] = {
                "role": message["role"],
                "content": f"{normalized[-1]['content']}\n\n{content}",
            }
            continue
        normalized.append({"role": message["role"], "content": content})
    return normalized


class ContextAssembler:
    def __init__(
        self,
        settings: Settings,
        session_factory: async_sessionmaker[AsyncSession],
        today: Callable[[], date] = date.today,
    ):
        self.settings = settings
        self.session_factory = session_factory
        self.today = today

    def static_block(self) -> Dict[str, Any]:
        return {"type": "text", "text": STATIC_INSTRUCTIONS, "cache_control": CACHE_CONTROL}

    def profile_block(self, profile: Optional[BusinessProfile]) -> Optional[Dict[str, Any]]:
        text = render_profile(profile)
        if text is None:
            return None
        return {"type": "text", "text": text, "cache_control": CACHE_CONTROL}

    def dynamic_block(
        self,
        facts: List[str],
        tasks: List[str],
        previous_title: Optional[str],
    ) -> Dict[str, Any]:
        sections = [f"Today is {self.today().strftime('%A, %B %d, %Y')}."]
        if facts:
            sections.append(
                "THINGS YOU REMEMBER FROM PAST CONVERSATIONS\n"
                + "\n".join(f"- {fact}" for fact in facts)
            )
        if tasks:
            sections.append(
                "RECENT ACTIVITY\n" + "\n".join(f"- {task}" for task in tasks)
            )
        if previous_title:
            sections.append(f"The agent's previous conversation was about: {previous_title}")
        return {"type": "text", "text": "\n\n".join(sections)}

    async def assemble(
        self, owner_id: uuid.UUID, conversation_id: uuid.UUID, user_message: str
    ) -> TurnContext:
        """Build system blocks and the provider message list ending with `user_message`."""
        async with unit_of_work(self.session_factory) as session:
            profile = await ProfilesRepository(session).get(owner_id)
            facts = await MemoryFactsRepository(session).list_recent(
                owner_id, limit=self.settings.memory_fact_limit
            )
            tasks = await TaskHistoryRepository(session).list_recent(
                owner_id, limit=RECENT_TASK_LIMIT
            )
            conversations = ConversationsRepository(session)
            other = await conversations.most_recent_other(owner_id, conversation_id)
            current = await conversations.get(owner_id, conversation_id)
            history = await MessagesRepository(session).list_for_conversation(
                owner_id, conversation_id
            )

        system = [self.static_block()]
        profile_block = self.profile_block(profile)
        if profile_block is not None:
            system.append(profile_block)
        system.append(
            self.dynamic_block(
                [fact.fact for fact in facts],
                [task.description for task in tasks],
                other.title if other is not None else None,
            )
        )

        messages = [history_entry(message) for message in history]
        messages.append({"role": "user", "content": user_message})

        return TurnContext(
            system=system,
            messages=normalize_messages(messages),
            history_length=len(history),
            has_title=bool(current is not None and current.title),
        )
