"""
Streaming client for the Anthropic Messages API.

Opens `POST /v1/messages` with `stream: true` and yields typed events as
bytes arrive. Only opening the stream is retried: once text has reached the
user, replaying the request would duplicate it.
"""

import json
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_fixed,
)

from caselli.clients.http import RetryConfig, TimeoutConfig, create_http_client
from caselli.config import Settings
from caselli.streaming.sse_parser import SSEFrameParser
from caselli.streaming.upstream import (
    AnthropicStreamDecoder,
    UpstreamError,
    UpstreamEvent,
)
from caselli.utils.logging import get_logger

logger = get_logger(__name__)


def _is_transient(exc: BaseException) -> bool:
    return isinstance(exc, UpstreamError) and exc.is_transient


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "Inference provider busy, retrying",
        attempt=retry_state.attempt_number,
        status_code=getattr(exc, "status_code", None),
        error_type=getattr(exc, "error_type", None),
    )


class AnthropicStreamingClient:
    """
    Thin streaming wrapper over the Messages API.

    Args:
        settings: Application settings (key, model, limits, retry policy)
        http_client: Optional pre-built AsyncClient (tests pass one backed by
            httpx.MockTransport)
        retry_config: Override for the 429/529 retry policy
    """

    def __init__(
        self,
        settings: Settings,
        http_client: Optional[httpx.AsyncClient] = None,
        retry_config: Optional[RetryConfig] = None,
    ):
        self.settings = settings
        self.retry_config = retry_config or RetryConfig(
            max_attempts=settings.upstream_retry_attempts + 1,
            delay_seconds=settings.upstream_retry_delay_seconds,
        )
        self.client = http_client or create_http_client(
            "anthropic-api",
            settings.anthropic_base_url,
            TimeoutConfig(
                connect_timeout=10.0,
                read_timeout=float(settings.anthropic_timeout_seconds),
            ),
        )

    async def close(self) -> None:
        await self.client.aclose()

    def _headers(self) -> Dict[str, str]:
        return {
            "x-api-key": self.settings.anthropic_api_key,
            "anthropic-version": self.settings.anthropic_version,
            "content-type": "application/json",
            "accept": "text/event-stream",
        }

    async def stream(
        self,
        *,
        system: List[Dict[str, Any]],
        messages: List[Dict[str, Any]],
        tools: List[Dict[str, Any]],
        max_tokens: Optional[int] = None,
        model: Optional[str] = None,
    ) -> AsyncIterator[UpstreamEvent]:
        """
        Stream one inference round.

        Yields:
            Typed upstream events, ending with MessageFinished

        Raises:
            UpstreamError: On HTTP errors (after retries for 429/529), on
                mid-stream error frames, or if the stream ends early
        """
        payload = {
            "model": model or self.settings.anthropic_model,
            "max_tokens": max_tokens or self.settings.anthropic_max_tokens,
            "system": system,
            "messages": messages,
            "tools": tools,
            "stream": True,
        }

        response = await self._open(payload)
        parser = SSEFrameParser()
        decoder = AnthropicStreamDecoder()

        try:
            async for chunk in response.aiter_bytes():
                for frame in parser.feed(chunk):
                    for event in decoder.decode(frame):
                        yield event
            for frame in parser.flush():
                for event in decoder.decode(frame):
                    yield event
        except httpx.HTTPError as e:
            raise UpstreamError(f"Stream interrupted: {e}") from e
        finally:
            await response.aclose()

        if not decoder.finished:
            raise UpstreamError("Stream ended before message_stop")

    async def _open(self, payload: Dict[str, Any]) -> httpx.Response:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.retry_config.max_attempts),
            wait=wait_fixed(self.retry_config.delay_seconds),
            retry=retry_if_exception(_is_transient),
            before_sleep=_log_retry,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await self._send(payload)
        raise UpstreamError("Retry loop exited without a response")

    async def _send(self, payload: Dict[str, Any]) -> httpx.Response:
        request = self.client.build_request(
            "POST", "/v1/messages", json=payload, headers=self._headers()
        )
        try:
            response = await self.client.send(request, stream=True)
        except httpx.TimeoutException as e:
            raise UpstreamError("Timed out connecting to the inference provider", error_type="timeout") from e
        except httpx.HTTPError as e:
            raise UpstreamError(f"Could not reach the inference provider: {e}") from e

        if response.status_code >= 400:
            body = await response.aread()
            await response.aclose()
            try:
                data = json.loads(body)
            except ValueError:
                data = {}
            error = UpstreamError.from_payload(response.status_code, data)
            logger.warning(
                "Inference request rejected",
                status_code=response.status_code,
                error_type=error.error_type,
                error=error.message,
            )
            raise error

        return response
