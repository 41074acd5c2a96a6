"""
Tool execution for the conversation loop.

`ToolExecutor.execute` is the only entry point the orchestrator uses. It
maps a tool name onto its handler through a lookup table built once at
startup, validates the raw model-supplied input against the handler's
input model, and runs it. It never raises: unknown tools, invalid input,
domain failures and unexpected exceptions all come back as a ToolOutcome
whose result holds an "error" key.
"""

import uuid
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Literal, Mapping, Optional, Type

from pydantic import BaseModel, ValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from caselli.db.database import unit_of_work
from caselli.db.repositories import TaskHistoryRepository
from caselli.services.background import BackgroundDispatcher
from caselli.tools.catalog import TODO_TOOLS, ToolName
from caselli.tools.inputs import ToolInput
from caselli.tools.todos import TodoList
from caselli.utils.logging import get_logger

logger = get_logger(__name__)


class UndoAction(BaseModel):
    """Instruction the client can send back to reverse one mutation."""

    type: Literal["delete_deal", "delete_contact", "revert_deal"]
    entity_id: str
    previous_values: Optional[Dict[str, Any]] = None
    label: str


@dataclass
class ToolOutcome:
    result: Dict[str, Any]
    task_type: str
    task_description: str
    undo_action: Optional[UndoAction] = None

    @property
    def success(self) -> bool:
        return "error" not in self.result


@dataclass
class ToolContext:
    """Everything a handler needs about the turn it runs in."""

    owner_id: uuid.UUID
    session_factory: async_sessionmaker[AsyncSession]
    conversation_id: Optional[uuid.UUID] = None
    todos: TodoList = field(default_factory=TodoList)
    today: date = field(default_factory=date.today)


class ToolHandler:
    """
    Base class for one tool.

    Subclasses set `input_model` and `task_type` and implement `run`, which
    receives validated input and may raise; the executor converts anything
    raised into an error result.
    """

    input_model: Type[ToolInput]
    task_type: str = "tool"

    async def run(self, params: Any, ctx: ToolContext) -> ToolOutcome:
        raise NotImplementedError

    def outcome(
        self,
        result: Dict[str, Any],
        description: str,
        undo: Optional[UndoAction] = None,
    ) -> ToolOutcome:
        return ToolOutcome(
            result=result,
            task_type=self.task_type,
            task_description=description,
            undo_action=undo,
        )

    def failure(self, message: str) -> ToolOutcome:
        return self.outcome({"error": message}, message)


def format_validation_error(tool: str, exc: ValidationError) -> str:
    """'Invalid input for update_deal: stage: Invalid stage ...'"""
    problems: List[str] = []
    for err in exc.errors():
        message = err.get("msg", "invalid value")
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        location = ".".join(str(part) for part in err.get("loc", ()))
        problems.append(f"{location}: {message}" if location else message)
    return f"Invalid input for {tool}: " + "; ".join(problems)


class ToolExecutor:
    """
    Dispatches tool calls to their handlers.

    Args:
        handlers: One handler per ToolName; a missing entry is a startup error
        dispatcher: Where task-history writes are sent (fire-and-forget)
    """

    def __init__(
        self,
        handlers: Mapping[ToolName, ToolHandler],
        dispatcher: Optional[BackgroundDispatcher] = None,
    ):
        missing = [name.value for name in ToolName if name not in handlers]
        if missing:
            raise ValueError(f"No handler registered for: {', '.join(missing)}")
        self.handlers: Dict[ToolName, ToolHandler] = dict(handlers)
        self.dispatcher = dispatcher

    async def execute(
        self, name: str, raw_input: Optional[Dict[str, Any]], ctx: ToolContext
    ) -> ToolOutcome:
        try:
            tool = ToolName.parse(name)
        except ValueError:
            logger.warning("Unknown tool requested", tool=name)
            return ToolOutcome(
                result={"error": "Unknown tool"},
                task_type="unknown",
                task_description=f"Unknown tool {name}",
            )

        handler = self.handlers[tool]
        try:
            params = handler.input_model.model_validate(raw_input or {})
        except ValidationError as e:
            message = format_validation_error(tool.value, e)
            logger.info("Tool input rejected", tool=tool.value, error=message)
            return handler.failure(message)

        try:
            outcome = await handler.run(params, ctx)
        except Exception as e:
            logger.error(
                "Tool execution failed",
                tool=tool.value,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            return handler.failure(f"{tool.value} failed: {e}")

        logger.info(
            "Tool executed",
            tool=tool.value,
            success=outcome.success,
            undo=outcome.undo_action.type if outcome.undo_action else None,
        )

        if outcome.success and tool not in TODO_TOOLS:
            self._record_history(tool, outcome, ctx)
        return outcome

    def _record_history(self, tool: ToolName, outcome: ToolOutcome, ctx: ToolContext) -> None:
        if self.dispatcher is None:
            return
        self.dispatcher.spawn(
            self._write_history(tool, outcome, ctx), name=f"task-history:{tool.value}"
        )

    async def _write_history(
        self, tool: ToolName, outcome: ToolOutcome, ctx: ToolContext
    ) -> None:
        try:
            async with unit_of_work(ctx.session_factory) as session:
                await TaskHistoryRepository(session).record(
                    ctx.owner_id,
                    outcome.task_type,
                    outcome.task_description,
                    conversation_id=ctx.conversation_id,
                    metadata={"tool": tool.value},
                )
        except Exception as e:
            logger.warning("Failed to record task history", tool=tool.value, error=str(e))
