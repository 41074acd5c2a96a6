"""
Client-facing event vocabulary for the chat stream.

The browser consumes these events, not the provider's. Payloads carry
human-readable summaries; raw tool results never leave the server.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from caselli.utils.sse_utils import sse_format

TEXT_DELTA = "text_delta"
TOOL_START = "tool_start"
TOOL_DONE = "tool_done"
WEB_SEARCH_RESULT = "web_search_result"
TODO_UPDATE = "todo_update"
FILE_CREATED = "file_created"
ITERATION = "iteration"
TITLE_UPDATE = "title_update"
ERROR = "error"
DONE = "done"


@dataclass(frozen=True)
class ClientEvent:
    name: str
    data: Dict[str, Any]

    def to_sse(self) -> str:
        return sse_format(self.data, event=self.name)


def text_delta(text: str) -> ClientEvent:
    return ClientEvent(TEXT_DELTA, {"text": text})


def tool_start(tool: str, status: str, input_summary: str) -> ClientEvent:
    return ClientEvent(
        TOOL_START, {"tool": tool, "status": status, "input_summary": input_summary}
    )


def tool_done(tool: str, result_summary: str, success: bool) -> ClientEvent:
    return ClientEvent(
        TOOL_DONE,
        {"tool": tool, "result_summary": result_summary, "success": success},
    )


def web_search_result(
    query: str, results_count: int, sources: List[Dict[str, str]]
) -> ClientEvent:
    return ClientEvent(
        WEB_SEARCH_RESULT,
        {"query": query, "results_count": results_count, "sources": sources},
    )


def todo_update(todos: List[Dict[str, Any]]) -> ClientEvent:
    return ClientEvent(TODO_UPDATE, {"todos": todos})


def file_created(filename: str, url: str, format: str, size: int) -> ClientEvent:
    return ClientEvent(
        FILE_CREATED,
        {"filename": filename, "url": url, "format": format, "size": size},
    )


def iteration(current: int, maximum: int, tool: Optional[str] = None) -> ClientEvent:
    data: Dict[str, Any] = {"current": current, "max": maximum}
    if tool:
        data["tool"] = tool
    return ClientEvent(ITERATION, data)


def title_update(title: str) -> ClientEvent:
    return ClientEvent(TITLE_UPDATE, {"title": title})


def error(message: str) -> ClientEvent:
    return ClientEvent(ERROR, {"message": message})


def done(payload: Dict[str, Any]) -> ClientEvent:
    return ClientEvent(DONE, payload)
