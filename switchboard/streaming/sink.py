"""PipelineEventSink and EventChannel: the single ordered output path of one execution."""

import asyncio
import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING, AsyncIterator, Iterator

from switchboard.errors import StreamProtocolError, StreamWriteFailure
from switchboard.streaming.events import Event, TextDeltaEvent, ToolInvocationEvent, ToolState

if TYPE_CHECKING:
    from switchboard.execution.state import AgentExecution

logger = logging.getLogger(__name__)

_END = object()


class EventChannel:
    """Unbounded queue from the execution (producer) to the HTTP response (consumer).

    The producer calls `send` and finally `end`; the consumer iterates and calls `close`
    when it stops reading (client gone). Sending on a closed channel raises StreamWriteFailure.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[object] = asyncio.Queue()
        self._closed = False
        self._ended = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, event: Event) -> None:
        if self._closed:
            raise StreamWriteFailure("Client disconnected")
        if self._ended:
            raise StreamProtocolError("Send after end of stream")
        await self._queue.put(event)

    def end(self) -> None:
        if not self._ended:
            self._ended = True
            self._queue.put_nowait(_END)

    def close(self) -> None:
        self._closed = True

    def __aiter__(self) -> AsyncIterator[Event]:
        return self._iter()

    async def _iter(self) -> AsyncIterator[Event]:
        while not self._closed:
            item = await self._queue.get()
            if item is _END:
                return
            yield item  # type: ignore[misc]


class PipelineEventSink:
    """Per-execution reference to the current output channel.

    Attached once at the start of the top-level run and detached at the end. Nested delegation
    code receives this sink instead of opening a channel of its own. Every emitted event is
    appended to the execution history in emission order.
    """

    def __init__(self, execution: "AgentExecution") -> None:
        self._execution = execution
        self._channel: EventChannel | None = None
        self._holders: list[str] = []
        self._open_calls: set[str] = set()
        self._text: list[str] = []

    @property
    def attached(self) -> bool:
        return self._channel is not None

    @property
    def text(self) -> str:
        """All text deltas emitted so far."""
        return "".join(self._text)

    @property
    def holder(self) -> str | None:
        return self._holders[-1] if self._holders else None

    def attach(self, channel: EventChannel) -> None:
        if self._channel is not None:
            raise StreamProtocolError("Sink already attached")
        self._channel = channel

    def detach(self) -> None:
        """Clear the channel and signal end of stream to the consumer."""
        channel, self._channel = self._channel, None
        if channel is not None:
            channel.end()

    @contextmanager
    def hold(self, owner: str) -> Iterator["PipelineEventSink"]:
        """Claim the sink for owner. One delegated branch at a time on top of the root owner."""
        if len(self._holders) > 1:
            raise StreamProtocolError(f"{owner} cannot hold the sink while {self.holder} holds it")
        self._holders.append(owner)
        try:
            yield self
        finally:
            self._holders.pop()

    async def emit(self, event: Event) -> None:
        if self._channel is None:
            raise StreamWriteFailure("Sink is not attached")
        if isinstance(event, ToolInvocationEvent):
            self._check_pairing(event)
        await self._channel.send(event)
        self._execution.history.append(event)
        if isinstance(event, TextDeltaEvent):
            self._text.append(event.delta)

    def _check_pairing(self, event: ToolInvocationEvent) -> None:
        if event.state is ToolState.CALL:
            if event.tool_call_id in self._open_calls:
                raise StreamProtocolError(f"Tool call {event.tool_call_id} already open")
            self._open_calls.add(event.tool_call_id)
        elif event.tool_call_id in self._open_calls:
            self._open_calls.discard(event.tool_call_id)
        else:
            raise StreamProtocolError(f"Tool result {event.tool_call_id} without a preceding call")
