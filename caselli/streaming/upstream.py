"""
Typed events decoded from the Anthropic Messages streaming protocol.

`AnthropicStreamDecoder` turns parsed SSE frames (see sse_parser.py) into a
small set of typed events the orchestrator consumes, and assembles the
assistant content blocks that must be sent back on the next round.

Upstream event order for one message:
    message_start
    (content_block_start, content_block_delta*, content_block_stop)*
    message_delta
    message_stop
with `ping` frames anywhere and an `error` frame on mid-stream failure.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from caselli.streaming.sse_parser import SSEFrame
from caselli.utils.logging import get_logger

logger = get_logger(__name__)


class UpstreamError(Exception):
    """
    Failure reported by the inference provider.

    Attributes:
        status_code: HTTP status (or the status implied by a mid-stream error)
        error_type: Provider error type, e.g. "overloaded_error"
    """

    TRANSIENT_STATUS = (429, 529)
    TRANSIENT_TYPES = ("rate_limit_error", "overloaded_error")

    STREAM_ERROR_STATUS = {
        "invalid_request_error": 400,
        "authentication_error": 401,
        "permission_error": 403,
        "not_found_error": 404,
        "request_too_large": 413,
        "rate_limit_error": 429,
        "api_error": 500,
        "overloaded_error": 529,
    }

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        error_type: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_type = error_type

    @classmethod
    def from_payload(cls, status_code: Optional[int], payload: Any) -> "UpstreamError":
        """Build from an error body: {"type": "error", "error": {"type", "message"}}."""
        error = payload.get("error", {}) if isinstance(payload, dict) else {}
        error_type = error.get("type")
        message = error.get("message") or f"Upstream error ({status_code})"
        if status_code is None:
            status_code = cls.STREAM_ERROR_STATUS.get(error_type)
        return cls(message, status_code=status_code, error_type=error_type)

    @property
    def is_transient(self) -> bool:
        return (
            self.status_code in self.TRANSIENT_STATUS
            or self.error_type in self.TRANSIENT_TYPES
        )

    @property
    def is_context_overflow(self) -> bool:
        text = self.message.lower()
        return self.status_code in (400, 413) and (
            "prompt is too long" in text
            or "too many tokens" in text
            or "context window" in text
            or "context length" in text
        )

    def __str__(self) -> str:
        return f"{self.status_code} {self.error_type or ''}: {self.message}".strip()


@dataclass
class TextDelta:
    index: int
    text: str


@dataclass
class ToolUseStarted:
    index: int
    id: str
    name: str
    server: bool = False


@dataclass
class ToolInputDelta:
    index: int
    partial_json: str


@dataclass
class ToolUseFinished:
    """A tool call whose input JSON is complete. `input` is {} if it failed to parse."""

    index: int
    id: str
    name: str
    input: Dict[str, Any]
    server: bool = False


@dataclass
class WebSearchResults:
    index: int
    tool_use_id: str
    results: List[Dict[str, Any]]
    error: Optional[str] = None


@dataclass
class UsageUpdate:
    input_tokens: int
    output_tokens: int


@dataclass
class MessageFinished:
    stop_reason: Optional[str]
    content: List[Dict[str, Any]]
    input_tokens: int = 0
    output_tokens: int = 0


UpstreamEvent = Union[
    TextDelta,
    ToolUseStarted,
    ToolInputDelta,
    ToolUseFinished,
    WebSearchResults,
    UsageUpdate,
    MessageFinished,
]


@dataclass
class _BlockState:
    block: Dict[str, Any]
    json_parts: List[str] = field(default_factory=list)


class AnthropicStreamDecoder:
    """
    Stateful decoder for one streamed message.

    Feed it every frame in order; it returns zero or more typed events per
    frame and raises UpstreamError on an `error` frame.
    """

    TOOL_BLOCK_TYPES = ("tool_use", "server_tool_use")

    def __init__(self) -> None:
        self._blocks: Dict[int, _BlockState] = {}
        self.stop_reason: Optional[str] = None
        self.input_tokens = 0
        self.output_tokens = 0
        self.finished = False

    def decode(self, frame: SSEFrame) -> List[UpstreamEvent]:
        if frame.event == "ping":
            return []

        try:
            payload = json.loads(frame.data)
        except json.JSONDecodeError:
            logger.warning("Skipping undecodable stream frame", sse_event=frame.event)
            return []
        if not isinstance(payload, dict):
            logger.warning("Skipping non-object stream frame", sse_event=frame.event)
            return []

        kind = payload.get("type", frame.event)
        handler = getattr(self, f"_on_{kind}", None)
        if handler is None:
            logger.debug("Ignoring stream event", sse_event=kind)
            return []
        return handler(payload)

    def content_blocks(self) -> List[Dict[str, Any]]:
        """Assistant content in block order, ready to resend as message history."""
        blocks = []
        for index in sorted(self._blocks):
            block = self._blocks[index].block
            if block.get("type") == "text" and not block.get("text"):
                continue
            blocks.append(block)
        return blocks

    def _on_message_start(self, payload: Dict[str, Any]) -> List[UpstreamEvent]:
        usage = payload.get("message", {}).get("usage", {}) or {}
        self.input_tokens = (
            int(usage.get("input_tokens") or 0)
            + int(usage.get("cache_creation_input_tokens") or 0)
            + int(usage.get("cache_read_input_tokens") or 0)
        )
        self.output_tokens = int(usage.get("output_tokens") or 0)
        return [UsageUpdate(self.input_tokens, self.output_tokens)]

    def _on_content_block_start(self, payload: Dict[str, Any]) -> List[UpstreamEvent]:
        index = payload.get("index", len(self._blocks))
        block = dict(payload.get("content_block") or {})
        block_type = block.get("type")

        if block_type == "text":
            block["text"] = block.get("text", "")
            self._blocks[index] = _BlockState(block)
            return []

        if block_type in self.TOOL_BLOCK_TYPES:
            block["input"] = {}
            self._blocks[index] = _BlockState(block)
            return [
                ToolUseStarted(
                    index=index,
                    id=block.get("id", ""),
                    name=block.get("name", ""),
                    server=block_type == "server_tool_use",
                )
            ]

        self._blocks[index] = _BlockState(block)

        if block_type == "web_search_tool_result":
            content = block.get("content")
            if isinstance(content, list):
                results = [item for item in content if isinstance(item, dict)]
                error = None
            else:
                results = []
                error = (content or {}).get("error_code", "unavailable")
            return [
                WebSearchResults(
                    index=index,
                    tool_use_id=block.get("tool_use_id", ""),
                    results=results,
                    error=error,
                )
            ]

        return []

    def _on_content_block_delta(self, payload: Dict[str, Any]) -> List[UpstreamEvent]:
        index = payload.get("index", 0)
        delta = payload.get("delta") or {}
        state = self._blocks.get(index)
        if state is None:
            logger.warning("Delta for unknown content block", index=index)
            return []

        delta_type = delta.get("type")
        if delta_type == "text_delta":
            text = delta.get("text", "")
            state.block["text"] = state.block.get("text", "") + text
            return [TextDelta(index=index, text=text)] if text else []

        if delta_type == "input_json_delta":
            partial = delta.get("partial_json", "")
            state.json_parts.append(partial)
            return [ToolInputDelta(index=index, partial_json=partial)] if partial else []

        if delta_type == "citations_delta":
            citation = delta.get("citation")
            if citation:
                state.block.setdefault("citations", []).append(citation)
            return []

        return []

    def _on_content_block_stop(self, payload: Dict[str, Any]) -> List[UpstreamEvent]:
        index = payload.get("index", 0)
        state = self._blocks.get(index)
        if state is None or state.block.get("type") not in self.TOOL_BLOCK_TYPES:
            return []

        raw = "".join(state.json_parts).strip()
        parsed: Dict[str, Any] = {}
        if raw:
            try:
                value = json.loads(raw)
                if isinstance(value, dict):
                    parsed = value
                else:
                    logger.warning("Tool input is not an object", tool=state.block.get("name"))
            except json.JSONDecodeError:
                logger.warning(
                    "Tool input JSON failed to parse; using empty input",
                    tool=state.block.get("name"),
                    raw_length=len(raw),
                )
        state.block["input"] = parsed

        return [
            ToolUseFinished(
                index=index,
                id=state.block.get("id", ""),
                name=state.block.get("name", ""),
                input=parsed,
                server=state.block.get("type") == "server_tool_use",
            )
        ]

    def _on_message_delta(self, payload: Dict[str, Any]) -> List[UpstreamEvent]:
        delta = payload.get("delta") or {}
        if delta.get("stop_reason"):
            self.stop_reason = delta["stop_reason"]
        usage = payload.get("usage") or {}
        if usage.get("output_tokens") is not None:
            self.output_tokens = int(usage["output_tokens"])
        return [UsageUpdate(self.input_tokens, self.output_tokens)]

    def _on_message_stop(self, payload: Dict[str, Any]) -> List[UpstreamEvent]:
        self.finished = True
        return [
            MessageFinished(
                stop_reason=self.stop_reason,
                content=self.content_blocks(),
                input_tokens=self.input_tokens,
                output_tokens=self.output_tokens,
            )
        ]

    def _on_error(self, payload: Dict[str, Any]) -> List[UpstreamEvent]:
        raise UpstreamError.from_payload(None, payload)
