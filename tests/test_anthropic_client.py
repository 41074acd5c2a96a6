"""
Tests for the streaming inference client over httpx.MockTransport.
"""

import json

import httpx
import pytest

from caselli.clients.anthropic import AnthropicStreamingClient
from caselli.clients.http import RetryConfig
from caselli.streaming.upstream import MessageFinished, TextDelta, UpstreamError


def sse(*payloads) -> bytes:
    return "".join(
        f"event: {p['type']}\ndata: {json.dumps(p)}\n\n" for p in payloads
    ).encode("utf-8")


HELLO_STREAM = sse(
    {"type": "message_start", "message": {"usage": {"input_tokens": 10, "output_tokens": 1}}},
    {"type": "content_block_start", "index": 0, "content_block": {"type": "text", "text": ""}},
    {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": "Hello"}},
    {"type": "content_block_stop", "index": 0},
    {"type": "message_delta", "delta": {"stop_reason": "end_turn"}, "usage": {"output_tokens": 3}},
    {"type": "message_stop"},
)


def error_response(status_code, error_type, message):
    return httpx.Response(
        status_code, json={"type": "error", "error": {"type": error_type, "message": message}}
    )


class Upstream:
    """Replays a list of responses, one per request."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responses.pop(0)


def make_client(settings, upstream, attempts=3):
    return AnthropicStreamingClient(
        settings,
        http_client=httpx.AsyncClient(
            transport=httpx.MockTransport(upstream), base_url=settings.anthropic_base_url
        ),
        retry_config=RetryConfig(max_attempts=attempts, delay_seconds=0),
    )


async def collect(client):
    return [
        event
        async for event in client.stream(
            system=[{"type": "text", "text": "You are Caselli."}],
            messages=[{"role": "user", "content": "Hi"}],
            tools=[],
        )
    ]


class TestAnthropicStreamingClient:
    async def test_streams_typed_events(self, settings):
        upstream = Upstream(
            httpx.Response(200, content=HELLO_STREAM, headers={"content-type": "text/event-stream"})
        )
        client = make_client(settings, upstream)

        events = await collect(client)
        await client.close()

        assert [e.text for e in events if isinstance(e, TextDelta)] == ["Hello"]
        assert isinstance(events[-1], MessageFinished)
        assert events[-1].output_tokens == 3

        request = upstream.requests[0]
        assert request.url.path == "/v1/messages"
        assert request.headers["x-api-key"] == settings.anthropic_api_key
        assert request.headers["anthropic-version"] == settings.anthropic_version
        body = json.loads(request.content)
        assert body["stream"] is True
        assert body["model"] == settings.anthropic_model
        assert body["messages"] == [{"role": "user", "content": "Hi"}]

    async def test_overloaded_is_retried_before_streaming(self, settings):
        upstream = Upstream(
            error_response(529, "overloaded_error", "Overloaded"),
            error_response(429, "rate_limit_error", "Slow down"),
            httpx.Response(200, content=HELLO_STREAM),
        )
        client = make_client(settings, upstream, attempts=3)

        events = await collect(client)
        await client.close()

        assert len(upstream.requests) == 3
        assert isinstance(events[-1], MessageFinished)

    async def test_retries_exhausted_raises_transient_error(self, settings):
        upstream = Upstream(
            error_response(529, "overloaded_error", "Overloaded"),
            error_response(529, "overloaded_error", "Overloaded"),
        )
        client = make_client(settings, upstream, attempts=2)

        with pytest.raises(UpstreamError) as exc_info:
            await collect(client)
        await client.close()

        assert exc_info.value.is_transient
        assert len(upstream.requests) == 2

    async def test_invalid_request_is_not_retried(self, settings):
        upstream = Upstream(
            error_response(400, "invalid_request_error", "prompt is too long: 250000 tokens"),
        )
        client = make_client(settings, upstream)

        with pytest.raises(UpstreamError) as exc_info:
            await collect(client)
        await client.close()

        assert len(upstream.requests) == 1
        assert exc_info.value.status_code == 400
        assert exc_info.value.is_context_overflow

    async def test_mid_stream_error_frame(self, settings):
        stream = sse(
            {"type": "message_start", "message": {"usage": {"input_tokens": 10}}},
            {"type": "error", "error": {"type": "overloaded_error", "message": "Overloaded"}},
        )
        client = make_client(settings, Upstream(httpx.Response(200, content=stream)))

        with pytest.raises(UpstreamError) as exc_info:
            await collect(client)
        await client.close()

        assert exc_info.value.error_type == "overloaded_error"

    async def test_truncated_stream_raises(self, settings):
        stream = sse(
            {"type": "message_start", "message": {"usage": {"input_tokens": 10}}},
            {"type": "content_block_start", "index": 0, "content_block": {"type": "text", "text": ""}},
        )
        client = make_client(settings, Upstream(httpx.Response(200, content=stream)))

        with pytest.raises(UpstreamError, match="message_stop"):
            await collect(client)
        await client.close()

    async def test_connection_failure_becomes_upstream_error(self, settings):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = make_client(settings, refuse, attempts=1)

        with pytest.raises(UpstreamError) as exc_info:
            await collect(client)
        await client.close()

        assert not exc_info.value.is_transient
