"""Event model, SSE framing and the per-execution output path."""

from switchboard.streaming.encoder import DONE, StreamEncoder, encode_stream, sse_frame
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
from switchboard.streaming.sink import EventChannel, PipelineEventSink

__all__ = [
    "DONE",
    "ErrorEvent",
    "Event",
    "EventChannel",
    "FinishEvent",
    "ModelSelectedEvent",
    "PipelineEventSink",
    "RouteEvent",
    "StreamEncoder",
    "TextDeltaEvent",
    "ToolInvocationEvent",
    "ToolState",
    "Usage",
    "encode_stream",
    "sse_frame",
]
