"""
Tools the agent can call during a turn.

Import from here rather than the individual modules.
"""

from .catalog import DRAFTING_TOOLS, TODO_TOOLS, WEB_SEARCH_TOOL, ToolName, provider_tools
from .executor import ToolContext, ToolExecutor, ToolHandler, ToolOutcome, UndoAction
from .registry import build_executor, build_handlers
from .todos import TodoList

__all__ = [
    "DRAFTING_TOOLS",
    "TODO_TOOLS",
    "WEB_SEARCH_TOOL",
    "ToolName",
    "provider_tools",
    "ToolContext",
    "ToolExecutor",
    "ToolHandler",
    "ToolOutcome",
    "UndoAction",
    "build_executor",
    "build_handlers",
    "TodoList",
]
