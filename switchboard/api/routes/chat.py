"""Chat endpoint: submit a task and stream its execution as Server-Sent Events."""

import logging
from typing import Any, AsyncIterator

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from switchboard.api.deps import Services, get_services, get_user
from switchboard.api.schemas import ChatRequest
from switchboard.context import RequestContext
from switchboard.execution.state import AgentExecution
from switchboard.streaming.encoder import encode_stream
from switchboard.streaming.sink import EventChannel
from switchboard.task import task_from_message

logger = logging.getLogger(__name__)

router = APIRouter()


async def _conversation(
    services: Services, body: ChatRequest, thread_id: str | None
) -> list[dict[str, Any]]:
    if body.history is not None:
        return [m.model_dump() for m in body.history]
    get_thread = getattr(services.history, "get_thread", None)
    if thread_id and get_thread is not None:
        try:
            return await get_thread(thread_id, limit=services.history_limit)
        except Exception as e:
            logger.warning("Could not load history of thread %s: %s", thread_id, e)
    return []


async def _frames(
    services: Services, execution: AgentExecution, channel: EventChannel
) -> AsyncIterator[str]:
    try:
        async for frame in encode_stream(channel):
            yield frame
    finally:
        channel.close()
        if not execution.is_terminal:
            services.manager.cancel(execution.id, reason="client disconnected")


@router.post("/chat")
async def chat(
    body: ChatRequest,
    user_id: str = Depends(get_user),
    services: Services = Depends(get_services),
) -> StreamingResponse:
    """Run the task and stream its frames, from text-start through finish and [DONE]."""
    message = body.message
    if not isinstance(message, str):
        message = [p.to_part() for p in message]
    task = task_from_message(message, body.metadata)
    thread_id = body.thread_id or task.hint("threadId")
    ctx = RequestContext(user_id=user_id, thread_id=thread_id)
    conversation = await _conversation(services, body, thread_id)

    channel = EventChannel()
    execution = services.manager.start(task, ctx, channel, conversation)
    return StreamingResponse(
        _frames(services, execution, channel),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
            "X-Execution-Id": execution.id,
            "X-Request-Id": ctx.request_id,
        },
    )
