"""StreamEncoder: execution events to SSE frames, enforcing the frame ordering grammar.

    text-start, route?, model?, (text-delta | tool-invocation)*, finish, [DONE]

ErrorEvent has no frame of its own; it is carried on the finish frame as `error`.
"""

import json
import logging
from enum import IntEnum
from typing import Any, AsyncIterable, AsyncIterator

from switchboard.errors import StreamProtocolError
from switchboard.streaming.events import (
    ErrorEvent,
    Event,
    FinishEvent,
    ModelSelectedEvent,
    RouteEvent,
    TextDeltaEvent,
    ToolInvocationEvent,
    ToolState,
    Usage,
)

logger = logging.getLogger(__name__)

DONE = "[DONE]"


class _Stage(IntEnum):
    NEW = 0
    STARTED = 1
    ROUTED = 2
    MODEL = 3
    BODY = 4
    FINISHED = 5
    CLOSED = 6


def sse_frame(payload: dict[str, Any] | str) -> str:
    if isinstance(payload, str):
        return f"data: {payload}\n\n"
    data = json.dumps(payload, ensure_ascii=False, default=str)
    return f"data: {data}\n\n"


class StreamEncoder:
    """Stateful per-stream encoder. Raises StreamProtocolError rather than write a bad stream."""

    def __init__(self) -> None:
        self._stage = _Stage.NEW
        self._open_calls: set[str] = set()
        self._seen_calls: set[str] = set()
        self._error: ErrorEvent | None = None

    @property
    def finished(self) -> bool:
        return self._stage >= _Stage.FINISHED

    @property
    def errored(self) -> bool:
        return self._error is not None

    def open(self) -> str:
        if self._stage is not _Stage.NEW:
            raise StreamProtocolError("text-start already sent")
        self._stage = _Stage.STARTED
        return sse_frame({"type": "text-start"})

    def close(self) -> str:
        """Typed terminator followed by the bare sentinel frame."""
        if self._stage is not _Stage.FINISHED:
            raise StreamProtocolError("terminator before finish")
        self._stage = _Stage.CLOSED
        return sse_frame({"type": DONE}) + sse_frame(DONE)

    def _advance(self, stage: _Stage, what: str) -> None:
        if self._stage is _Stage.NEW:
            raise StreamProtocolError(f"{what} before text-start")
        if self._stage >= _Stage.FINISHED:
            raise StreamProtocolError(f"{what} after finish")
        if stage < _Stage.BODY and self._stage >= stage:
            raise StreamProtocolError(f"{what} out of order")
        self._stage = max(self._stage, stage)

    def encode(self, event: Event) -> str:
        """Return the frame for event, or '' when the event is folded into a later frame."""
        match event:
            case RouteEvent():
                self._advance(_Stage.ROUTED, "route")
                return sse_frame(
                    {
                        "type": "route",
                        "selectedModel": event.selected_model,
                        "fallbackModel": event.fallback_model,
                        "reasoning": event.reasoning,
                        "confidence": event.confidence,
                    }
                )
            case ModelSelectedEvent(model_used=model, is_fallback=is_fallback):
                self._advance(_Stage.MODEL, "model")
                return sse_frame({"type": "model", "modelUsed": model, "fallback": is_fallback})
            case TextDeltaEvent(delta=delta):
                self._advance(_Stage.BODY, "text-delta")
                return sse_frame({"type": "text-delta", "delta": delta})
            case ToolInvocationEvent():
                self._advance(_Stage.BODY, "tool-invocation")
                invocation = self._tool_payload(event)
                return sse_frame({"type": "tool-invocation", "toolInvocation": invocation})
            case ErrorEvent():
                if self._stage is _Stage.NEW or self._stage >= _Stage.FINISHED:
                    raise StreamProtocolError("error outside an open stream")
                self._error = event
                return ""
            case FinishEvent(full_text=text, usage=usage):
                self._advance(_Stage.FINISHED, "finish")
                if self._open_calls:
                    logger.warning(
                        "Finishing stream with unanswered tool calls: %s", sorted(self._open_calls)
                    )
                payload: dict[str, Any] = {"type": "finish", "text": text, "usage": usage.to_dict()}
                if self._error is not None:
                    payload["error"] = {"kind": self._error.kind, "message": self._error.message}
                return sse_frame(payload)
            case _:
                raise TypeError(f"Unknown event type: {type(event).__name__}")

    def _tool_payload(self, event: ToolInvocationEvent) -> dict[str, Any]:
        call_id = event.tool_call_id
        payload: dict[str, Any] = {
            "state": event.state.value,
            "toolCallId": call_id,
            "toolName": event.tool_name,
        }
        if event.state is ToolState.CALL:
            if call_id in self._seen_calls:
                raise StreamProtocolError(f"duplicate tool call {call_id}")
            self._seen_calls.add(call_id)
            self._open_calls.add(call_id)
            payload["args"] = event.args or {}
        else:
            if call_id not in self._open_calls:
                raise StreamProtocolError(f"tool result {call_id} without a preceding call")
            self._open_calls.discard(call_id)
            if event.args is not None:
                payload["args"] = event.args
            payload["result"] = event.result
        return payload


async def encode_stream(events: AsyncIterable[Event]) -> AsyncIterator[str]:
    """Frame a whole event stream. Always ends with finish and the terminator."""
    encoder = StreamEncoder()
    yield encoder.open()
    text: list[str] = []
    try:
        async for event in events:
            if isinstance(event, TextDeltaEvent):
                text.append(event.delta)
            frame = encoder.encode(event)
            if frame:
                yield frame
    except StreamProtocolError as e:
        logger.error("Dropping malformed event stream: %s", e)
        if not encoder.finished:
            encoder.encode(ErrorEvent(kind=e.kind, message=str(e)))
    if not encoder.finished:
        if not encoder.errored:
            encoder.encode(ErrorEvent(kind="internal", message="Execution ended without finishing"))
        joined = "".join(text)
        yield encoder.encode(FinishEvent(full_text=joined, usage=Usage.estimate(0, len(joined))))
    yield encoder.close()
