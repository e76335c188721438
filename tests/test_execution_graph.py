"""Tests for AgentExecutionGraph: routing, fallback, delegation, approval, cancellation, framing."""

import asyncio

import pytest

from fakes import (
    FALLBACK,
    PRIMARY,
    CallTool,
    Fail,
    MemoryHistory,
    ScriptedInvoker,
    Wait,
    make_graph,
    run_to_end,
    start_run,
    collect,
    wait_until,
)
from switchboard.confirmation.registry import ConfirmationRegistry
from switchboard.execution.state import ExecutionPhase, ExecutionStatus
from switchboard.llm.protocol import ToolCall
from switchboard.streaming.encoder import encode_stream
from switchboard.streaming.events import (
    ErrorEvent,
    FinishEvent,
    ModelSelectedEvent,
    RouteEvent,
    TextDeltaEvent,
    ToolInvocationEvent,
    ToolState,
)
from switchboard.task import TaskDescriptor


FIX_LOGIN = CallTool("delegate_to_toby", {"task": "Fix the login bug"}, call_id="c1")
BOOK_SYNC = CallTool("createCalendarEvent", {"title": "Sync", "startTime": "10:00"})


def _as(agent_id: str, content: str) -> TaskDescriptor:
    return TaskDescriptor(content=content, metadata={"agentId": agent_id})


def _of(events, cls):
    return [e for e in events if isinstance(e, cls)]


async def _frames(events) -> list[str]:
    async def source():
        for event in events:
            yield event

    return [frame async for frame in encode_stream(source())]


class TestSimpleRun:
    @pytest.mark.asyncio
    async def test_route_model_deltas_finish(self) -> None:
        graph = make_graph(ScriptedInvoker({"Cleo": ["Hel", "lo"]}))
        execution, events = await run_to_end(graph, TaskDescriptor(content="hello"))

        assert isinstance(events[0], RouteEvent)
        assert events[0].selected_model == PRIMARY
        assert events[0].fallback_model == FALLBACK
        assert events[1] == ModelSelectedEvent(model_used=PRIMARY, is_fallback=False)
        assert [e.delta for e in _of(events, TextDeltaEvent)] == ["Hel", "lo"]
        finish = events[-1]
        assert isinstance(finish, FinishEvent)
        assert finish.full_text == "Hello"
        assert finish.usage.completion_tokens == 2
        assert finish.usage.total_tokens == finish.usage.prompt_tokens + 2
        assert execution.phase is ExecutionPhase.COMPLETED
        assert execution.status is ExecutionStatus.COMPLETED
        assert execution.current_agent_id == "cleo"
        assert execution.history == events
        assert execution.ended_at is not None

    @pytest.mark.asyncio
    async def test_model_frame_announced_for_empty_answer(self) -> None:
        graph = make_graph(ScriptedInvoker({"Cleo": []}))
        _, events = await run_to_end(graph, TaskDescriptor(content="hello"))
        assert [type(e) for e in events] == [RouteEvent, ModelSelectedEvent, FinishEvent]

    @pytest.mark.asyncio
    async def test_history_saved_after_finish(self) -> None:
        history = MemoryHistory()
        graph = make_graph(ScriptedInvoker({"Cleo": ["Hi!"]}), history=history)
        execution, _ = await run_to_end(graph, TaskDescriptor(content="hello"))
        await graph.drain()

        assert len(history.turns) == 1
        turn = history.turns[0]
        assert turn.execution_id == execution.id
        assert turn.thread_id == "thread-1"
        assert turn.user_content == "hello"
        assert turn.assistant_text == "Hi!"

    @pytest.mark.asyncio
    async def test_history_failure_does_not_fail_execution(self) -> None:
        graph = make_graph(ScriptedInvoker({"Cleo": ["Hi!"]}), history=MemoryHistory(fail=True))
        execution, events = await run_to_end(graph, TaskDescriptor(content="hello"))
        await graph.drain()
        assert execution.phase is ExecutionPhase.COMPLETED
        assert not _of(events, ErrorEvent)


class TestFallback:
    @pytest.mark.asyncio
    async def test_primary_failure_retries_on_fallback_once(self) -> None:
        invoker = ScriptedInvoker(
            {
                ("Cleo", PRIMARY): [Fail(RuntimeError("503 from provider"))],
                ("Cleo", FALLBACK): ["recovered"],
            }
        )
        graph = make_graph(invoker)
        execution, events = await run_to_end(graph, TaskDescriptor(content="hello"))

        assert [r.model for r in invoker.requests] == [PRIMARY, FALLBACK]
        assert _of(events, ModelSelectedEvent) == [
            ModelSelectedEvent(model_used=FALLBACK, is_fallback=True)
        ]
        assert execution.phase is ExecutionPhase.COMPLETED

        frames = await _frames(events)
        model_frames = [f for f in frames if '"type": "model"' in f]
        assert model_frames == [
            'data: {"type": "model", "modelUsed": "test:fallback", "fallback": true}\n\n'
        ]

    @pytest.mark.asyncio
    async def test_no_retry_after_partial_output(self) -> None:
        invoker = ScriptedInvoker({"Cleo": ["partial ", Fail(RuntimeError("connection reset"))]})
        graph = make_graph(invoker)
        execution, events = await run_to_end(graph, TaskDescriptor(content="hello"))

        assert len(invoker.requests) == 1
        assert execution.phase is ExecutionPhase.FAILED
        error = _of(events, ErrorEvent)[0]
        assert error.kind == "provider-failure"
        assert isinstance(events[-1], FinishEvent)
        assert events[-1].full_text == "partial "

    @pytest.mark.asyncio
    async def test_both_models_failing_still_frames_the_end(self) -> None:
        invoker = ScriptedInvoker({"Cleo": [Fail(TimeoutError("read timeout"))]})
        graph = make_graph(invoker)
        execution, events = await run_to_end(graph, TaskDescriptor(content="hello"))

        assert execution.phase is ExecutionPhase.FAILED
        assert execution.status is ExecutionStatus.FAILED
        assert [type(e) for e in events] == [RouteEvent, ErrorEvent, FinishEvent]

        frames = await _frames(events)
        assert frames[0] == 'data: {"type": "text-start"}\n\n'
        assert '"error": {"kind": "provider-failure"' in frames[-2]
        assert frames[-1] == 'data: {"type": "[DONE]"}\n\ndata: [DONE]\n\n'

    @pytest.mark.asyncio
    async def test_fallback_inside_delegation_is_reported_on_result(self) -> None:
        history = MemoryHistory()
        invoker = ScriptedInvoker(
            {
                "Cleo": [FIX_LOGIN, " Done."],
                ("Toby", PRIMARY): [Fail(RuntimeError("503 from provider"))],
                ("Toby", FALLBACK): ["fixed"],
            }
        )
        graph = make_graph(invoker, history=history)
        task = TaskDescriptor(content="can you help me out?", metadata={"enableTools": True})
        execution, events = await run_to_end(graph, task)
        await graph.drain()

        assert [r.model for r in invoker.requests] == [PRIMARY, PRIMARY, FALLBACK]
        # Announced before the specialist ran; the switch shows up on the delegation result
        assert _of(events, ModelSelectedEvent) == [
            ModelSelectedEvent(model_used=PRIMARY, is_fallback=False)
        ]
        result = [e for e in _of(events, ToolInvocationEvent) if e.state is ToolState.RESULT][0]
        assert result.result["status"] == "completed"
        assert result.result["summary"] == "fixed"
        assert result.result["model"] == FALLBACK
        assert result.result["fallback"] is True
        assert execution.phase is ExecutionPhase.COMPLETED

        (turn,) = history.turns
        assert turn.model == FALLBACK
        assert turn.metadata["fallback"] is True


class TestDelegation:
    @pytest.mark.asyncio
    async def test_explicit_delegation_streams_specialist_through_same_sink(self) -> None:
        invoker = ScriptedInvoker(
            {
                "Cleo": [FIX_LOGIN, " Done."],
                "Toby": ["Patch ", "applied"],
            }
        )
        graph = make_graph(invoker)
        task = TaskDescriptor(content="can you help me out?", metadata={"enableTools": True})
        execution, events = await run_to_end(graph, task)

        body = [e for e in events if isinstance(e, (TextDeltaEvent, ToolInvocationEvent))]
        assert body[0] == ToolInvocationEvent(
            tool_call_id="c1",
            tool_name="delegate_to_toby",
            state=ToolState.CALL,
            args={"task": "Fix the login bug"},
        )
        assert [e.delta for e in body[1:3]] == ["Patch ", "applied"]
        result = body[3]
        assert result.state is ToolState.RESULT and result.tool_call_id == "c1"
        assert result.result == {
            "agent": "toby",
            "status": "completed",
            "summary": "Patch applied",
            "model": PRIMARY,
            "fallback": False,
        }
        assert body[4] == TextDeltaEvent(delta=" Done.")

        assert events[-1].full_text == "Patch applied Done."
        assert execution.phase is ExecutionPhase.COMPLETED
        assert execution.current_agent_id == "cleo"

        toby_request = next(r for r in invoker.requests if r.agent_name == "Toby")
        assert toby_request.messages[0] == {"role": "user", "content": "can you help me out?"}
        assert toby_request.messages[-1]["content"].startswith("Fix the login bug")
        assert not any(t.name.startswith("delegate_to_") for t in toby_request.tools)

    @pytest.mark.asyncio
    async def test_unknown_specialist_is_an_error_result(self) -> None:
        invoker = ScriptedInvoker(
            {"Cleo": [CallTool("delegate_to_ghost", {"task": "x"}), "Sorry."]}
        )
        graph = make_graph(invoker)
        task = TaskDescriptor(content="can you help me out?", metadata={"enableTools": True})
        execution, events = await run_to_end(graph, task)

        result = [e for e in _of(events, ToolInvocationEvent) if e.state is ToolState.RESULT][0]
        assert result.result["error"] == "delegation-target-unavailable"
        assert execution.phase is ExecutionPhase.COMPLETED

    @pytest.mark.asyncio
    async def test_specialist_failure_becomes_error_result(self) -> None:
        invoker = ScriptedInvoker(
            {
                "Cleo": [
                    CallTool("delegate_to_toby", {"task": "x"}),
                    "Toby is unavailable right now.",
                ],
                "Toby": [Fail(RuntimeError("upstream 500"))],
            }
        )
        graph = make_graph(invoker)
        task = TaskDescriptor(content="can you help me out?", metadata={"enableTools": True})
        execution, events = await run_to_end(graph, task)

        result = [e for e in _of(events, ToolInvocationEvent) if e.state is ToolState.RESULT][0]
        assert result.result["status"] == "failed"
        assert result.result["error"] == "provider-failure"
        assert execution.phase is ExecutionPhase.COMPLETED
        assert not _of(events, ErrorEvent)

    @pytest.mark.asyncio
    async def test_implicit_delegation_on_explicit_mention(self) -> None:
        invoker = ScriptedInvoker({"Toby": ["It is sunny in Paris."], "Cleo": ["should not run"]})
        graph = make_graph(invoker)
        task = TaskDescriptor(content="Ask Toby to check the weather in Paris")
        execution, events = await run_to_end(graph, task)

        assert [r.agent_name for r in invoker.requests] == ["Toby"]
        assert [type(e) for e in events] == [
            RouteEvent,
            ModelSelectedEvent,
            ToolInvocationEvent,
            TextDeltaEvent,
            ToolInvocationEvent,
            FinishEvent,
        ]
        call, result = _of(events, ToolInvocationEvent)
        assert call.tool_name == "delegate_to_toby" and call.state is ToolState.CALL
        assert result.tool_call_id == call.tool_call_id
        assert events[-1].full_text == "It is sunny in Paris."
        assert execution.current_agent_id == "toby"

    @pytest.mark.asyncio
    async def test_keyword_intent_auto_enables_only_matching_tool(self) -> None:
        invoker = ScriptedInvoker({"Cleo": ["Here is what I found."]})
        graph = make_graph(invoker)
        task = TaskDescriptor(content="Please research the latest news and market trends")
        await run_to_end(graph, task)

        tool_names = [t.name for t in invoker.requests[0].tools]
        assert "delegate_to_apu" in tool_names
        assert not any(n.startswith("delegate_to_") and n != "delegate_to_apu" for n in tool_names)

    @pytest.mark.asyncio
    async def test_no_delegation_tools_without_intent(self) -> None:
        invoker = ScriptedInvoker({"Cleo": ["Hi"]})
        graph = make_graph(invoker)
        await run_to_end(graph, TaskDescriptor(content="hello"))
        assert not any(t.name.startswith("delegate_to_") for t in invoker.requests[0].tools)

    @pytest.mark.asyncio
    async def test_allowed_tools_limits_delegation_tools(self) -> None:
        invoker = ScriptedInvoker({"Cleo": ["ok"]})
        graph = make_graph(invoker)
        task = TaskDescriptor(
            content="can you help me out?",
            metadata={"enableTools": True, "allowedTools": ["get_current_time"]},
        )
        await run_to_end(graph, task)
        assert [t.name for t in invoker.requests[0].tools] == ["get_current_time"]

    @pytest.mark.asyncio
    async def test_allowed_delegation_tool_offered_without_intent(self) -> None:
        invoker = ScriptedInvoker({"Cleo": ["ok"]})
        graph = make_graph(invoker)
        task = TaskDescriptor(content="hello", metadata={"allowedTools": ["delegate_to_ami"]})
        await run_to_end(graph, task)
        assert [t.name for t in invoker.requests[0].tools] == ["delegate_to_ami"]

    @pytest.mark.asyncio
    async def test_mention_outside_allowed_tools_is_not_forced(self) -> None:
        invoker = ScriptedInvoker(
            {"Cleo": ["I can check that myself."], "Toby": ["should not run"]}
        )
        graph = make_graph(invoker)
        task = TaskDescriptor(
            content="Ask Toby to check the weather in Paris",
            metadata={"allowedTools": ["get_current_time"]},
        )
        execution, events = await run_to_end(graph, task)

        assert [r.agent_name for r in invoker.requests] == ["Cleo"]
        assert [t.name for t in invoker.requests[0].tools] == ["get_current_time"]
        assert not _of(events, ToolInvocationEvent)
        assert execution.current_agent_id == "cleo"


class _ParallelCalls:
    """Invoker whose model proposes several tool calls at once."""

    def __init__(self, calls: list[ToolCall]) -> None:
        self.calls = calls
        self.results: list = []
        self.requests: list = []

    async def stream(self, request):
        self.requests.append(request)
        self.results = await asyncio.gather(*(request.tool_handler(c) for c in self.calls))
        yield "Handled both."


class TestApproval:
    @pytest.mark.asyncio
    async def test_sensitive_calls_of_one_execution_are_approved_in_turn(self) -> None:
        registry = ConfirmationRegistry(timeout_seconds=60)
        invoker = _ParallelCalls(
            [
                ToolCall(call_id="c1", name="createCalendarEvent", args=BOOK_SYNC.args),
                ToolCall(call_id="c2", name="postTweet", args={"text": "gm"}),
            ]
        )
        graph = make_graph(invoker, confirmations=registry)
        execution, channel, runner = start_run(graph, _as("ami", "do both"))

        await wait_until(lambda: len(registry.list()) == 1)
        first = registry.list()[0]
        assert first.requested_tool == "createCalendarEvent"
        assert registry.resolve(first.id, approved=True).success

        await wait_until(lambda: [p.requested_tool for p in registry.list()] == ["postTweet"])
        second = registry.list()[0]
        assert second.execution_id == execution.id
        assert registry.resolve(first.id, approved=True).not_found
        assert registry.resolve(second.id, approved=False).success

        events = await collect(channel)
        await runner

        tool_events = [(e.tool_call_id, e.state) for e in _of(events, ToolInvocationEvent)]
        assert tool_events == [
            ("c1", ToolState.CALL),
            ("c1", ToolState.RESULT),
            ("c2", ToolState.CALL),
            ("c2", ToolState.RESULT),
        ]
        booked, denied = invoker.results
        assert booked["status"] == "queued"
        assert denied["error"] == "tool_denied"
        assert execution.phase is ExecutionPhase.COMPLETED
        assert registry.list() == []
    @pytest.mark.asyncio
    async def test_denial_continues_with_denied_result(self) -> None:
        registry = ConfirmationRegistry(timeout_seconds=60)
        invoker = ScriptedInvoker(
            {"Ami": [BOOK_SYNC, "Okay, not booked."]}
        )
        graph = make_graph(invoker, confirmations=registry)
        task = TaskDescriptor(content="Book a sync at 10", metadata={"agentId": "ami"})
        execution, channel, runner = start_run(graph, task)

        await wait_until(lambda: len(registry.list()) == 1)
        assert execution.status is ExecutionStatus.AWAITING_APPROVAL
        pending = registry.list()[0]
        assert pending.execution_id == execution.id
        assert pending.requested_tool == "createCalendarEvent"
        assert "Sync" in pending.message

        assert registry.resolve(pending.id, approved=False).success
        events = await collect(channel)
        await runner

        assert execution.phase is ExecutionPhase.COMPLETED
        result = [e for e in _of(events, ToolInvocationEvent) if e.state is ToolState.RESULT][0]
        assert result.result["error"] == "tool_denied"
        assert invoker.tool_results[0][1]["error"] == "tool_denied"
        assert events[-1].full_text == "Okay, not booked."
        assert registry.list() == []

    @pytest.mark.asyncio
    async def test_approval_with_edited_args_runs_tool(self) -> None:
        registry = ConfirmationRegistry(timeout_seconds=60)
        mail = CallTool("sendGmailMessage", {"to": ["a@x.io"], "subject": "Hi", "text": "..."})
        invoker = ScriptedInvoker({"Ami": [mail]})
        graph = make_graph(invoker, confirmations=registry)
        execution, channel, runner = start_run(graph, _as("ami", "mail a"))

        await wait_until(lambda: len(registry.list()) == 1)
        edited = {"to": ["b@x.io"], "subject": "Hello", "text": "Edited body"}
        registry.resolve(registry.list()[0].id, approved=True, edited_args=edited)
        events = await collect(channel)
        await runner

        result = [e for e in _of(events, ToolInvocationEvent) if e.state is ToolState.RESULT][0]
        assert result.result["status"] == "queued"
        assert result.args == edited
        assert execution.phase is ExecutionPhase.COMPLETED

    @pytest.mark.asyncio
    async def test_timeout_resolves_as_rejection(self) -> None:
        now = [0.0]
        registry = ConfirmationRegistry(timeout_seconds=30, clock=lambda: now[0])
        invoker = ScriptedInvoker({"Jenn": [CallTool("postTweet", {"text": "gm"}), "Not posted."]})
        graph = make_graph(invoker, confirmations=registry)
        execution, channel, runner = start_run(graph, _as("jenn", "tweet gm"))

        await wait_until(lambda: len(registry.list()) == 1)
        now[0] = 31.0
        assert len(registry.sweep_expired()) == 1
        events = await collect(channel)
        await runner

        result = [e for e in _of(events, ToolInvocationEvent) if e.state is ToolState.RESULT][0]
        assert result.result["error"] == "tool_denied"
        assert "timed out" in result.result["message"]
        assert execution.phase is ExecutionPhase.COMPLETED


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancel_mid_stream_closes_provider_stream(self) -> None:
        gate = asyncio.Event()
        invoker = ScriptedInvoker({"Cleo": ["first", Wait(gate), "second"]})
        graph = make_graph(invoker)
        execution, channel, runner = start_run(graph, TaskDescriptor(content="hello"))

        await wait_until(lambda: any(isinstance(e, TextDeltaEvent) for e in execution.history))
        assert execution.request_cancel("stop button")
        gate.set()
        events = await collect(channel)
        await runner

        assert execution.phase is ExecutionPhase.CANCELLED
        assert execution.status is ExecutionStatus.CANCELLED
        assert [e.delta for e in _of(events, TextDeltaEvent)] == ["first"]
        assert invoker.closed == 1
        assert _of(events, ErrorEvent)[0].kind == "cancelled"
        assert isinstance(events[-1], FinishEvent)

    @pytest.mark.asyncio
    async def test_cancel_while_awaiting_approval_frees_entry(self) -> None:
        registry = ConfirmationRegistry(timeout_seconds=60)
        booking = CallTool("createCalendarEvent", {"title": "x"})
        invoker = ScriptedInvoker({"Ami": [booking, "never"]})
        graph = make_graph(invoker, confirmations=registry)
        execution, channel, runner = start_run(graph, _as("ami", "book"))

        await wait_until(lambda: len(registry.list()) == 1)
        execution.request_cancel()
        assert registry.cancel_execution(execution.id) == 1
        assert registry.list() == []
        events = await collect(channel)
        await runner

        assert execution.phase is ExecutionPhase.CANCELLED
        assert not any(isinstance(e, TextDeltaEvent) and e.delta == "never" for e in events)

    @pytest.mark.asyncio
    async def test_client_disconnect_aborts_and_releases_confirmation(self) -> None:
        now = [0.0]
        registry = ConfirmationRegistry(timeout_seconds=30, clock=lambda: now[0])
        booking = CallTool("createCalendarEvent", {"title": "x"})
        invoker = ScriptedInvoker({"Ami": [booking, "after"]})
        graph = make_graph(invoker, confirmations=registry)
        execution, channel, runner = start_run(graph, _as("ami", "book"))

        await wait_until(lambda: len(registry.list()) == 1)
        channel.close()
        now[0] = 30.0
        registry.sweep_expired()
        await asyncio.wait_for(runner, timeout=2)

        assert registry.list() == []
        assert execution.phase is ExecutionPhase.CANCELLED
        assert execution.error is not None and execution.error.startswith("stream-write-failure")
