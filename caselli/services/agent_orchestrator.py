"""
The conversation loop.

One turn is a bounded sequence of rounds. Each round is a single streaming
inference call; if the model asks for tools, they are executed and their
results fed back as the next round's input. The loop stops when the model
finishes, a limit is reached, or the client goes away.

    drafting -> awaiting_model -> tool_round -> awaiting_model -> ... -> final

Client events are pushed through `emit` as they happen. Persistence of the
final message is the finalizer's job; this module only produces a TurnState.
"""

import asyncio
import json
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from caselli.clients.anthropic import AnthropicStreamingClient
from caselli.config import Settings
from caselli.services.context_assembler import TurnContext
from caselli.streaming import client_events
from caselli.streaming.client_events import ClientEvent
from caselli.streaming.upstream import (
    MessageFinished,
    TextDelta,
    ToolUseFinished,
    UpstreamError,
    WebSearchResults,
)
from caselli.tools.catalog import (
    DRAFTING_TOOLS,
    TODO_TOOLS,
    WEB_SEARCH_TOOL,
    ToolName,
    provider_tools,
)
from caselli.tools.executor import ToolContext, ToolExecutor, ToolOutcome
from caselli.tools.summaries import status_label, summarize_input, summarize_result
from caselli.utils.logging import get_logger
from caselli.utils.sse_utils import truncate_text

logger = get_logger(__name__)

Emit = Callable[[ClientEvent], Awaitable[None]]

HIGH_DEMAND_MESSAGE = (
    "Caselli is experiencing high demand right now. Please try again in a moment."
)
CONTEXT_TOO_LONG_MESSAGE = (
    "This conversation has gotten too long for me to keep track of. "
    "Please start a new conversation and I'll pick up from there."
)
CONNECTION_MESSAGE = "I'm having trouble connecting right now. Please try again."

TOKEN_CEILING_NOTICE = (
    "\n\n_I stopped here because this request reached its processing limit. "
    "Ask me to continue if you need more._"
)
ROUND_LIMIT_NOTICE = (
    "\n\n_I've reached the step limit for a single request. "
    "Let me know if you'd like me to keep going._"
)


class TurnError(Exception):
    """A turn failed in a way the user should be told about."""

    def __init__(self, user_message: str, cause: Optional[BaseException] = None):
        super().__init__(user_message)
        self.user_message = user_message
        self.cause = cause


@dataclass
class ToolCallRecord:
    tool: str
    tool_use_id: str
    input: Dict[str, Any]
    outcome: Optional[ToolOutcome] = None
    summary: str = ""

    @property
    def success(self) -> bool:
        return self.outcome is None or self.outcome.success


@dataclass
class TurnState:
    text_parts: List[str] = field(default_factory=list)
    tool_calls: List[ToolCallRecord] = field(default_factory=list)
    sources: List[Dict[str, str]] = field(default_factory=list)
    input_tokens: int = 0
    output_tokens: int = 0
    rounds: int = 0
    stop_reason: Optional[str] = None
    cancelled: bool = False

    @property
    def text(self) -> str:
        return "".join(self.text_parts)

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


def _is_plain_user(message: Dict[str, Any]) -> bool:
    return message["role"] == "user" and isinstance(message["content"], str)


def truncate_history(messages: List[Dict[str, Any]], window: int) -> List[Dict[str, Any]]:
    """
    Keep roughly the last `window` messages.

    The result always starts with a plain user message, so it never opens
    with an assistant turn or a tool_result whose tool_use was cut off.
    """
    start = max(0, len(messages) - window)
    for i in range(start, len(messages)):
        if _is_plain_user(messages[i]):
            return messages[i:]
    for i in range(start - 1, -1, -1):
        if _is_plain_user(messages[i]):
            return messages[i:]
    return list(messages)


def tool_result_block(tool_use_id: str, outcome: ToolOutcome) -> Dict[str, Any]:
    return {
        "type": "tool_result",
        "tool_use_id": tool_use_id,
        "content": json.dumps(outcome.result, default=str),
        "is_error": not outcome.success,
    }


class AgentOrchestrator:
    """
    Drives one turn from assembled context to a TurnState.

    Args:
        settings: Loop bounds and model options
        llm: Streaming inference client
        executor: Tool dispatcher
        session_factory: Passed to tools through their ToolContext
    """

    def __init__(
        self,
        settings: Settings,
        llm: AnthropicStreamingClient,
        executor: ToolExecutor,
        session_factory: async_sessionmaker[AsyncSession],
    ):
        self.settings = settings
        self.llm = llm
        self.executor = executor
        self.session_factory = session_factory
        self.tools = provider_tools(settings.web_search_max_uses)

    async def run(
        self,
        owner_id: uuid.UUID,
        conversation_id: uuid.UUID,
        context: TurnContext,
        emit: Emit,
        cancel: Optional[asyncio.Event] = None,
    ) -> TurnState:
        """
        Run the loop.

        Raises:
            TurnError: Upstream failure the user must hear about; events
                already emitted stay emitted
        """
        cancel = cancel or asyncio.Event()
        max_rounds = self.settings.agent_max_rounds
        messages = list(context.messages)
        state = TurnState()
        tool_ctx = ToolContext(
            owner_id=owner_id,
            conversation_id=conversation_id,
            session_factory=self.session_factory,
        )
        truncated = False
        last_tool: Optional[str] = None

        for round_number in range(1, max_rounds + 1):
            if cancel.is_set():
                state.cancelled = True
                logger.info("Turn cancelled", rounds=state.rounds)
                return state

            if round_number > 1:
                await emit(client_events.iteration(round_number, max_rounds, last_tool))

            try:
                finished, calls, round_chars = await self._stream_round(
                    context.system, messages, state, emit
                )
            except UpstreamError as e:
                if not e.is_context_overflow or truncated:
                    raise self._turn_error(e, truncated) from e
                truncated = True
                before = len(messages)
                messages = truncate_history(messages, self.settings.context_window_messages)
                logger.warning(
                    "Context too long, retrying with truncated history",
                    messages_before=before,
                    messages_after=len(messages),
                )
                try:
                    finished, calls, round_chars = await self._stream_round(
                        context.system, messages, state, emit
                    )
                except UpstreamError as retry_error:
                    raise self._turn_error(retry_error, truncated) from retry_error

            state.rounds = round_number
            state.stop_reason = finished.stop_reason
            state.input_tokens += finished.input_tokens
            state.output_tokens += finished.output_tokens
            if finished.content:
                messages.append({"role": "assistant", "content": finished.content})
            wants_tools = finished.stop_reason == "tool_use" and bool(calls)

            if wants_tools:
                # Announced tools run to completion even if the client has left;
                # the cancel flag is honoured at the next round boundary
                results = await self._run_tools(calls, tool_ctx, state, emit)
                messages.append({"role": "user", "content": results})
                last_tool = calls[-1].name

            if state.total_tokens > self.settings.agent_token_ceiling:
                logger.warning(
                    "Token ceiling reached",
                    total_tokens=state.total_tokens,
                    ceiling=self.settings.agent_token_ceiling,
                    stop_reason=finished.stop_reason,
                )
                await self._notice(TOKEN_CEILING_NOTICE, state, emit)
                break

            if finished.stop_reason == "pause_turn":
                continue

            if not wants_tools:
                break

            drafted = any(call.name in {t.value for t in DRAFTING_TOOLS} for call in calls)
            if drafted and round_chars >= self.settings.drafting_early_exit_chars:
                logger.info("Draft already written, ending turn early", round=round_number)
                break

            if round_number == max_rounds:
                logger.warning("Round limit reached with tools pending", rounds=max_rounds)
                await self._notice(ROUND_LIMIT_NOTICE, state, emit)

        logger.info(
            "Turn complete",
            rounds=state.rounds,
            tool_calls=len(state.tool_calls),
            input_tokens=state.input_tokens,
            output_tokens=state.output_tokens,
            stop_reason=state.stop_reason,
        )
        return state

    def _turn_error(self, error: UpstreamError, truncated: bool) -> TurnError:
        logger.error(
            "Inference failed",
            status_code=error.status_code,
            error_type=error.error_type,
            error=error.message,
        )
        if error.is_context_overflow and truncated:
            return TurnError(CONTEXT_TOO_LONG_MESSAGE, error)
        if error.is_transient:
            return TurnError(HIGH_DEMAND_MESSAGE, error)
        return TurnError(CONNECTION_MESSAGE, error)

    async def _notice(self, text: str, state: TurnState, emit: Emit) -> None:
        state.text_parts.append(text)
        await emit(client_events.text_delta(text))

    async def _stream_round(
        self,
        system: List[Dict[str, Any]],
        messages: List[Dict[str, Any]],
        state: TurnState,
        emit: Emit,
    ) -> Tuple[MessageFinished, List[ToolUseFinished], int]:
        """One inference call. Returns the finish event, custom tool calls and visible chars."""
        calls: List[ToolUseFinished] = []
        queries: Dict[str, str] = {}
        round_chars = 0
        finished: Optional[MessageFinished] = None

        async for event in self.llm.stream(system=system, messages=messages, tools=self.tools):
            if isinstance(event, TextDelta):
                state.text_parts.append(event.text)
                round_chars += len(event.text)
                await emit(client_events.text_delta(event.text))

            elif isinstance(event, ToolUseFinished):
                if event.server:
                    query = str(event.input.get("query", ""))
                    queries[event.id] = query
                    await emit(
                        client_events.tool_start(
                            event.name, status_label(event.name), truncate_text(query, 80)
                        )
                    )
                    continue
                calls.append(event)
                await emit(
                    client_events.tool_start(
                        event.name,
                        status_label(event.name),
                        summarize_input(event.name, event.input),
                    )
                )

            elif isinstance(event, WebSearchResults):
                await self._on_search_results(event, queries, state, emit)

            elif isinstance(event, MessageFinished):
                finished = event

        if finished is None:
            raise UpstreamError("Stream ended without a final message")
        return finished, calls, round_chars

    async def _on_search_results(
        self,
        event: WebSearchResults,
        queries: Dict[str, str],
        state: TurnState,
        emit: Emit,
    ) -> None:
        query = queries.get(event.tool_use_id, "")
        record = ToolCallRecord(
            tool=WEB_SEARCH_TOOL, tool_use_id=event.tool_use_id, input={"query": query}
        )

        if event.error:
            record.summary = f"Search failed: {event.error}"
            state.tool_calls.append(record)
            await emit(client_events.tool_done(WEB_SEARCH_TOOL, record.summary, False))
            return

        sources = [
            {"title": item.get("title") or item["url"], "url": item["url"]}
            for item in event.results
            if item.get("url")
        ]
        state.sources.extend(sources)
        record.summary = f"Found {len(event.results)} results"
        state.tool_calls.append(record)

        await emit(client_events.web_search_result(query, len(event.results), sources))
        await emit(client_events.tool_done(WEB_SEARCH_TOOL, record.summary, True))

    async def _run_tools(
        self,
        calls: List[ToolUseFinished],
        ctx: ToolContext,
        state: TurnState,
        emit: Emit,
    ) -> List[Dict[str, Any]]:
        """
        Execute one round's calls and return tool_result blocks in call order.

        Todo tools run inline first, in order; everything else fans out as
        concurrent tasks and is reported as each one finishes.
        """
        outcomes: Dict[str, ToolOutcome] = {}
        todo_names = {tool.value for tool in TODO_TOOLS}

        for call in calls:
            if call.name not in todo_names:
                continue
            outcome = await self.executor.execute(call.name, call.input, ctx)
            outcomes[call.id] = outcome
            if outcome.success:
                await emit(client_events.todo_update(ctx.todos.snapshot()))
            await self._report(call, outcome, emit)

        pending = [
            asyncio.create_task(self._execute(call, ctx), name=f"tool:{call.name}")
            for call in calls
            if call.name not in todo_names
        ]
        try:
            for next_done in asyncio.as_completed(pending):
                call, outcome = await next_done
                outcomes[call.id] = outcome
                await self._report(call, outcome, emit)
        except asyncio.CancelledError:
            # The turn itself was cancelled (shutdown drain); let started
            # writes finish before propagating
            logger.warning(
                "Turn cancelled during tool execution",
                pending=[task.get_name() for task in pending if not task.done()],
            )
            await asyncio.gather(*pending, return_exceptions=True)
            raise

        blocks = []
        for call in calls:
            outcome = outcomes[call.id]
            state.tool_calls.append(
                ToolCallRecord(
                    tool=call.name,
                    tool_use_id=call.id,
                    input=call.input,
                    outcome=outcome,
                    summary=summarize_result(call.name, outcome.result),
                )
            )
            blocks.append(tool_result_block(call.id, outcome))
        return blocks

    async def _execute(
        self, call: ToolUseFinished, ctx: ToolContext
    ) -> Tuple[ToolUseFinished, ToolOutcome]:
        return call, await self.executor.execute(call.name, call.input, ctx)

    async def _report(self, call: ToolUseFinished, outcome: ToolOutcome, emit: Emit) -> None:
        await emit(
            client_events.tool_done(
                call.name, summarize_result(call.name, outcome.result), outcome.success
            )
        )
        if call.name == ToolName.CREATE_FILE.value and outcome.success:
            result = outcome.result
            await emit(
                client_events.file_created(
                    result["filename"], result["url"], result["format"], result["size"]
                )
            )
