"""
Chat endpoint: one user message in, one server-sent event stream out.

The turn runs in its own task and pushes events onto a queue that the
response generator drains. If the client disconnects, the generator stops,
the turn's cancel flag is set, and the task is handed to the background
dispatcher so in-flight tool calls finish instead of being torn down
mid-write.
"""

import asyncio
import uuid
from typing import Any, AsyncGenerator, Dict, Optional, Tuple

from fastapi import APIRouter, Body, Depends, HTTPException, Request, status
from fastapi.responses import StreamingResponse

from caselli.clients.auth import AuthenticatedUser
from caselli.db.repositories import ConversationAccessError
from caselli.dependencies import get_current_user, get_services
from caselli.services.container import Services
from caselli.streaming.client_events import ClientEvent
from caselli.utils.logging import get_logger
from caselli.utils.sse_utils import sse_heartbeat

router = APIRouter()
logger = get_logger(__name__)

HEARTBEAT_INTERVAL_SECONDS = 15.0

# Marks the end of the producer's events
_END = object()


def _parse_request(payload: Any) -> Tuple[uuid.UUID, str]:
    if not isinstance(payload, dict):
        payload = {}
    raw_id = payload.get("conversation_id")
    message = payload.get("message")
    if not raw_id or not isinstance(message, str) or not message.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing conversation_id or message",
        )
    try:
        conversation_id = uuid.UUID(str(raw_id))
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid conversation_id"
        ) from e
    return conversation_id, message.strip()


@router.post(
    "/chat",
    status_code=status.HTTP_200_OK,
    summary="Send a message to the AI coworker",
    description="Runs one turn and streams its events as text/event-stream",
    response_class=StreamingResponse,
)
async def chat_endpoint(
    request: Request,
    payload: Optional[Dict[str, Any]] = Body(None),  # noqa: B008
    user: AuthenticatedUser = Depends(get_current_user),  # noqa: B008
    services: Services = Depends(get_services),  # noqa: B008
) -> StreamingResponse:
    conversation_id, message = _parse_request(payload)

    try:
        await services.chat.open_conversation(user.id, conversation_id)
    except ConversationAccessError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Conversation not found"
        ) from e

    request_id = getattr(request.state, "request_id", "unknown")
    logger.info(
        "Chat turn started",
        conversation_id=str(conversation_id),
        message_length=len(message),
    )

    queue: "asyncio.Queue[Any]" = asyncio.Queue()
    cancel = asyncio.Event()

    async def emit(event: ClientEvent) -> None:
        if not cancel.is_set():
            await queue.put(event)

    async def produce() -> None:
        try:
            await services.chat.run(user.id, conversation_id, message, emit, cancel)
        finally:
            await queue.put(_END)

    async def event_generator() -> AsyncGenerator[str, None]:
        producer = asyncio.create_task(produce(), name=f"chat-turn:{conversation_id}")
        loop = asyncio.get_running_loop()
        last_sent = loop.time()
        try:
            while True:
                if await request.is_disconnected():
                    logger.info(
                        "Client disconnected from chat stream",
                        conversation_id=str(conversation_id),
                    )
                    break
                try:
                    item = await asyncio.wait_for(queue.get(), timeout=1.0)
                except asyncio.TimeoutError:
                    if loop.time() - last_sent >= HEARTBEAT_INTERVAL_SECONDS:
                        yield sse_heartbeat()
                        last_sent = loop.time()
                    continue

                if item is _END:
                    await producer
                    break
                yield item.to_sse()
                last_sent = loop.time()
        finally:
            if not producer.done():
                cancel.set()
                services.dispatcher.track(producer)

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache, no-store, must-revalidate",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
            "X-Request-ID": request_id,
        },
    )
