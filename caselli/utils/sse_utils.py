"""
SSE (Server-Sent Events) utility functions for proper wire format.

Formatting helpers for the client-facing event stream. Every frame the
browser receives goes through `sse_format`.
"""

import json
from typing import Any, Optional


def sse_format(
    data: Any,
    event: Optional[str] = None,
    id: Optional[str] = None,
    retry: Optional[int] = None,
) -> str:
    """
    Format data as a Server-Sent Event with proper wire format.

    - Handles multi-line data correctly
    - Ensures double newline termination
    - JSON-encodes non-string data compactly so it stays on one line

    Args:
        data: The data to send (will be JSON-encoded if not a string)
        event: Optional event type (e.g., "text_delta", "done", "error")
        id: Optional event ID for client-side tracking
        retry: Optional retry interval in milliseconds

    Returns:
        Properly formatted SSE message string

    Examples:
        >>> sse_format({"text": "Hello"}, event="text_delta")
        'event: text_delta\\ndata: {"text":"Hello"}\\n\\n'
    """
    lines = []

    if event:
        lines.append(f"event: {event}")

    if id:
        lines.append(f"id: {id}")

    if retry is not None:
        lines.append(f"retry: {retry}")

    if isinstance(data, str):
        data_str = data
    else:
        data_str = json.dumps(data, separators=(",", ":"), default=str)

    # Each line of a multi-line payload needs its own "data: " prefix
    for line in data_str.split("\n"):
        lines.append(f"data: {line}")

    return "\n".join(lines) + "\n\n"


def sse_heartbeat() -> str:
    """
    Generate a minimal SSE heartbeat comment.

    Comment lines (starting with ':') are ignored by EventSource parsers
    but keep proxies from closing an idle connection.

    Example:
        >>> sse_heartbeat()
        ': hb\\n\\n'
    """
    return ": hb\n\n"


def truncate_text(value: str, max_length: int = 120) -> str:
    """
    Shorten a summary string for display, appending an ellipsis.

    Example:
        >>> truncate_text("abcdef", 3)
        'abc...'
    """
    if len(value) <= max_length:
        return value
    return value[:max_length].rstrip() + "..."

