"""
Tests for the structlog processors.
"""

from caselli.utils.logging import (
    CONVERSATION_TEXT_LIMIT,
    RequestContextProcessor,
    clear_request_context,
    clip_conversation_text,
    filter_sensitive_data,
    set_request_context,
)


def test_sensitive_values_are_masked():
    event = filter_sensitive_data(
        None,
        "info",
        {"event": "x", "anthropic_api_key": "sk-ant-abcdef123456", "password": "hunter2"},
    )

    assert event["anthropic_api_key"] == "sk-a...3456"
    assert event["password"] == "***REDACTED***"
    assert event["event"] == "x"


def test_long_conversation_text_is_clipped():
    text = "We just got an offer on Main St " * 20

    event = clip_conversation_text(None, "info", {"event": "x", "message": text, "error": text})

    assert event["message"].startswith(text[:CONVERSATION_TEXT_LIMIT])
    assert event["message"].endswith(f"({len(text)} chars)")
    assert event["error"] == text


def test_request_context_is_merged_without_overwriting():
    set_request_context(request_id="req-1", user_id="u-1")
    try:
        event = RequestContextProcessor()(None, "info", {"event": "x", "user_id": "explicit"})
    finally:
        clear_request_context()

    assert event["request_id"] == "req-1"
    assert event["user_id"] == "explicit"
    assert RequestContextProcessor()(None, "info", {"event": "y"}) == {"event": "y"}
