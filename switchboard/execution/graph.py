"""AgentExecutionGraph: runs one task from routing to finish, with hand-off and approval pauses.

Phases: INITIALIZING -> ROUTING -> EXECUTING(agent) -> [DELEGATING -> EXECUTING(specialist)]*
-> [AWAITING_APPROVAL -> EXECUTING]* -> FINALIZING -> COMPLETED | FAILED | CANCELLED.

All output goes through one PipelineEventSink. Tool calls proposed by a model arrive through the
invoker's tool handler, so delegation sub-runs and approval waits happen inside the owning agent's
turn and their events land on the same sink in time order.
"""

import asyncio
import logging
import uuid
from contextlib import aclosing
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

from switchboard.agents.instructions import build_instructions
from switchboard.agents.profiles import DELEGATION_TOOL_PREFIX, AgentProfile, AgentRegistry
from switchboard.confirmation.policy import ConfirmationPolicy
from switchboard.confirmation.registry import ConfirmationOutcome, ConfirmationRegistry
from switchboard.context import RequestContext
from switchboard.delegation.analyzer import (
    DelegationAnalyzer,
    DelegationIntent,
    HeuristicDelegationAnalyzer,
)
from switchboard.delegation.tools import delegation_prompt, delegation_tool, summarize
from switchboard.errors import (
    DelegationTargetUnavailable,
    ExecutionCancelled,
    ProviderFailure,
    StreamWriteFailure,
    SwitchboardError,
)
from switchboard.execution.state import AgentExecution, ExecutionPhase
from switchboard.history import ChatHistoryStore, ChatTurn
from switchboard.llm.protocol import InvocationRequest, ModelInvoker, ToolCall
from switchboard.llm.router import ModelRouter
from switchboard.logging_config import bind_execution
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
from switchboard.task import TaskDescriptor
from switchboard.tools.registry import ToolRegistry, ToolSpec

logger = logging.getLogger(__name__)

_P = ExecutionPhase


@dataclass(frozen=True)
class GraphConfig:
    auto_enable_threshold: float = 0.4
    force_threshold: float = 0.8
    max_hops: int = 1
    summary_chars: int = 2000

    @classmethod
    def from_settings(cls, settings: dict[str, Any]) -> "GraphConfig":
        cfg = settings.get("delegation") or {}
        return cls(
            auto_enable_threshold=float(cfg.get("auto_enable_threshold", 0.4)),
            force_threshold=float(cfg.get("force_threshold", 0.8)),
            max_hops=min(1, max(0, int(cfg.get("max_hops", 1)))),
            summary_chars=int(cfg.get("summary_chars", 2000)),
        )


def _new_call_id() -> str:
    return f"call_{uuid.uuid4().hex[:12]}"


def _error_result(err: BaseException) -> dict[str, Any]:
    kind = err.kind if isinstance(err, SwitchboardError) else "tool-error"
    return {"error": kind, "message": str(err) or type(err).__name__}


def _call_event(call: ToolCall) -> ToolInvocationEvent:
    return ToolInvocationEvent(
        tool_call_id=call.call_id, tool_name=call.name, state=ToolState.CALL, args=call.args
    )


class AgentExecutionGraph:
    """Stateless across runs; per-run state lives in AgentExecution and _Run."""

    def __init__(
        self,
        router: ModelRouter,
        invoker: ModelInvoker,
        agents: AgentRegistry,
        tools: ToolRegistry,
        confirmations: ConfirmationRegistry,
        analyzer: DelegationAnalyzer | None = None,
        policy: ConfirmationPolicy | None = None,
        history: ChatHistoryStore | None = None,
        config: GraphConfig | None = None,
        instructions: Callable[[AgentProfile], str] | None = None,
        project_root: Path | None = None,
    ) -> None:
        self.router = router
        self.invoker = invoker
        self.agents = agents
        self.tools = tools
        self.confirmations = confirmations
        self.analyzer = analyzer or HeuristicDelegationAnalyzer(agents)
        self.policy = policy or ConfirmationPolicy()
        self.history = history
        self.config = config or GraphConfig()
        self._instructions = instructions
        self._project_root = project_root or Path.cwd()
        self._instruction_cache: dict[str, str] = {}
        self._background: set[asyncio.Task[None]] = set()

    def instructions_for(self, profile: AgentProfile) -> str:
        if self._instructions is not None:
            return self._instructions(profile)
        cached = self._instruction_cache.get(profile.id)
        if cached is None:
            cached = build_instructions(profile, self.agents.specialists(), self._project_root)
            self._instruction_cache[profile.id] = cached
        return cached

    async def run(
        self,
        execution: AgentExecution,
        channel: EventChannel,
        ctx: RequestContext,
        conversation: list[dict[str, Any]] | None = None,
    ) -> None:
        """Drive execution to a terminal phase. Never raises except asyncio.CancelledError."""
        sink = PipelineEventSink(execution)
        sink.attach(channel)
        try:
            with bind_execution(execution.id):
                await _Run(self, execution, sink, ctx, conversation or []).execute()
        finally:
            sink.detach()

    def save_history(self, turn: ChatTurn) -> None:
        """Fire-and-forget persistence. Failures are logged, never raised."""
        if self.history is None:
            return
        task = asyncio.create_task(self._save(turn))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _save(self, turn: ChatTurn) -> None:
        try:
            await self.history.save_turn(turn)  # type: ignore[union-attr]
        except Exception as e:
            logger.exception("Failed to save chat history for %s: %s", turn.execution_id, e)

    async def drain(self) -> None:
        """Wait for pending history writes (shutdown and tests)."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)


class _Run:
    """State of one execution run."""

    def __init__(
        self,
        graph: AgentExecutionGraph,
        execution: AgentExecution,
        sink: PipelineEventSink,
        ctx: RequestContext,
        conversation: list[dict[str, Any]],
    ) -> None:
        self.g = graph
        self.execution = execution
        self.sink = sink
        self.ctx = ctx
        self.task: TaskDescriptor = execution.task
        self.conversation = [*conversation, {"role": "user", "content": self.task.content}]
        self.model = ""
        self.fallback = ""
        self.on_fallback = False
        self._announced = False
        self._deferred: list[Event] = []
        self._delegation_lock = asyncio.Lock()
        self._prompt_chars = 0
        # Abort raised inside a tool handler; providers may wrap it on the way out
        self._abort: BaseException | None = None

    async def execute(self) -> None:
        try:
            await self._execute()
        except ExecutionCancelled:
            await self._cancelled()
        except StreamWriteFailure as e:
            self._client_gone(e)
        except asyncio.CancelledError:
            self._release("cancelled")
            self._force_phase(_P.CANCELLED)
            raise
        except Exception as e:
            await self._failed(e)

    async def _execute(self) -> None:
        ex = self.execution
        ex.transition(_P.ROUTING)
        decision = self.g.router.route(self.task, self.ctx)
        ex.routing = decision
        self.model, self.fallback = decision.selected_model, decision.fallback_model
        await self.sink.emit(
            RouteEvent(
                selected_model=decision.selected_model,
                fallback_model=decision.fallback_model,
                reasoning=decision.reasoning,
                confidence=decision.confidence,
            )
        )
        self._check_cancel()

        owner = self._initial_owner()
        ex.transition(_P.EXECUTING, owner.id)
        intent = None
        if owner.supervisor and self.g.config.max_hops > 0:
            intent = self.g.analyzer.analyze(self.task.content, self.ctx)

        answered = False
        if intent is not None and intent.confidence >= self.g.config.force_threshold:
            answered = await self._implicit_delegation(owner, intent)
        if not answered:
            with self.sink.hold(owner.id):
                await self._agent_turn(owner, self.conversation, self._tools_for(owner, intent))
        await self._finalize()

    def _initial_owner(self) -> AgentProfile:
        requested = self.task.hint("agentId")
        if requested:
            profile = self.g.agents.get(str(requested))
            if profile is not None:
                return profile
            logger.warning(
                "Pre-selected agent %r is not available; using the supervisor", requested
            )
        return self.g.agents.supervisor()

    def _tools_for(self, profile: AgentProfile, intent: DelegationIntent | None) -> list[ToolSpec]:
        allowed = self.task.allowed_tools
        names = [n for n in profile.tools if allowed is None or n in allowed]
        specs = self.g.tools.resolve(names)
        if not profile.supervisor or self.g.config.max_hops <= 0:
            return specs
        specialists = self.g.agents.specialists()
        offered: set[str] = set()
        if allowed is not None:
            # allowedTools is the complete list, delegation tools included
            offered.update(p.id for p in specialists if p.delegation_tool in allowed)
        elif self.task.metadata.get("enableTools") is True:
            offered.update(p.id for p in specialists)
        elif intent is not None and intent.confidence >= self.g.config.auto_enable_threshold:
            target = self.g.agents.get(intent.target_agent_id)
            if target is not None:
                logger.info(
                    "Auto-enabled %s (confidence %.2f)", intent.tool_name, intent.confidence
                )
                offered.add(target.id)
        specs.extend(delegation_tool(p) for p in specialists if p.id in offered)
        return specs

    # Emission

    async def _announce(self) -> None:
        if not self._announced:
            self._announced = True
            await self.sink.emit(
                ModelSelectedEvent(model_used=self.model, is_fallback=self.on_fallback)
            )

    async def _emit_body(self, event: Event) -> None:
        """Emit a text or tool event, preceded by the model announcement and any deferred events."""
        await self._announce()
        while self._deferred:
            await self.sink.emit(self._deferred.pop(0))
        await self.sink.emit(event)

    def _check_cancel(self) -> None:
        if self.execution.cancel_requested:
            raise ExecutionCancelled(self.execution.cancel_reason or "cancelled")

    # Model turns

    async def _agent_turn(
        self,
        profile: AgentProfile,
        messages: list[dict[str, Any]],
        tools: list[ToolSpec],
    ) -> str:
        """Stream one agent's answer.

        An attempt that produced nothing is retried once on the fallback model.
        """
        instructions = self.g.instructions_for(profile)
        self._prompt_chars += len(instructions)
        self._prompt_chars += sum(len(str(m.get("content", ""))) for m in messages)
        tool_lock = asyncio.Lock()
        produced = False

        async def handle(call: ToolCall) -> Any:
            nonlocal produced
            produced = True
            async with tool_lock:
                try:
                    return await self._handle_tool(profile, call)
                except (ExecutionCancelled, StreamWriteFailure, asyncio.CancelledError) as e:
                    self._abort = e
                    raise

        while True:
            produced = False
            parts: list[str] = []
            request = InvocationRequest(
                model=self.model,
                agent_name=profile.name,
                instructions=instructions,
                messages=list(messages),
                task=self.task,
                tools=tools,
                tool_handler=handle if tools else None,
            )
            try:
                async with aclosing(self.g.invoker.stream(request)) as stream:
                    async for delta in stream:
                        self._check_cancel()
                        if not delta:
                            continue
                        produced = True
                        await self._emit_body(TextDeltaEvent(delta=delta))
                        parts.append(delta)
                self._check_cancel()
                await self._announce()
                return "".join(parts)
            except (ExecutionCancelled, StreamWriteFailure, asyncio.CancelledError):
                raise
            except Exception as e:
                if self._abort is not None:
                    raise self._abort from e
                if produced or self.on_fallback or self.fallback in ("", self.model):
                    raise ProviderFailure(self.model, e) from e
                logger.warning(
                    "Provider call failed on %s for execution %s, retrying on fallback %s: %s",
                    self.model,
                    self.execution.id,
                    self.fallback,
                    e,
                )
                self.model, self.on_fallback = self.fallback, True

    # Tools

    async def _handle_tool(self, profile: AgentProfile, call: ToolCall) -> Any:
        self._check_cancel()
        if call.name.startswith(DELEGATION_TOOL_PREFIX):
            return await self._explicit_delegation(profile, call)

        await self._emit_body(_call_event(call))
        spec = self.g.tools.get(call.name)
        args = call.args
        if self.g.policy.is_sensitive(call.name, spec):
            outcome = await self._await_approval(profile, call)
            if not outcome.approved:
                result: Any = {
                    "error": "tool_denied",
                    "message": f"The user did not approve {call.name}: {outcome.message}",
                }
                await self._tool_result(call, result)
                return result
            if outcome.edited_args:
                args = outcome.edited_args
        result = await self._invoke_tool(spec, call.name, args)
        await self._tool_result(call, result, args if args is not call.args else None)
        return result

    async def _tool_result(
        self, call: ToolCall, result: Any, args: dict[str, Any] | None = None
    ) -> None:
        await self._emit_body(
            ToolInvocationEvent(
                tool_call_id=call.call_id,
                tool_name=call.name,
                state=ToolState.RESULT,
                args=args,
                result=result,
            )
        )

    async def _invoke_tool(self, spec: ToolSpec | None, name: str, args: dict[str, Any]) -> Any:
        if spec is None or spec.handler is None:
            return {"error": "unknown_tool", "message": f"Tool {name!r} is not available"}
        try:
            return await spec.handler(args)
        except Exception as e:
            logger.exception("Tool %s failed: %s", name, e)
            return _error_result(e)

    async def _await_approval(self, profile: AgentProfile, call: ToolCall) -> ConfirmationOutcome:
        ex = self.execution
        ex.transition(_P.AWAITING_APPROVAL)
        confirmation_id = self.g.confirmations.register(
            ex.id,
            ex.thread_id,
            call.name,
            call.args,
            message=self.g.policy.message(call.name, call.args),
        )
        ex.pending_confirmation_id = confirmation_id
        try:
            outcome = await self.g.confirmations.wait(confirmation_id)
        finally:
            ex.pending_confirmation_id = None
        self._check_cancel()
        ex.transition(_P.EXECUTING, profile.id)
        logger.info("Confirmation %s for %s: %s", confirmation_id, call.name, outcome.reason.value)
        return outcome

    # Delegation

    async def _explicit_delegation(self, caller: AgentProfile, call: ToolCall) -> Any:
        await self._emit_body(_call_event(call))
        target = self.g.agents.for_tool(call.name)
        if not caller.supervisor:
            result: Any = {
                "error": "delegation-not-allowed",
                "message": f"{caller.name} cannot delegate further; answer the task directly.",
            }
        elif target is None or not target.enabled or target.supervisor:
            agent_id = call.name[len(DELEGATION_TOOL_PREFIX):]
            result = _error_result(DelegationTargetUnavailable(agent_id))
        else:
            result = await self._sub_run(caller, target, call.args)
            self.execution.transition(_P.EXECUTING, caller.id)
        await self._tool_result(call, result)
        return result

    async def _implicit_delegation(
        self, supervisor: AgentProfile, intent: DelegationIntent
    ) -> bool:
        """Hand the task to the detected specialist before any output.

        True if the specialist answered; otherwise the supervisor takes the turn.
        """
        target = self.g.agents.get(intent.target_agent_id)
        if target is None or target.supervisor:
            return False
        allowed = self.task.allowed_tools
        if allowed is not None and intent.tool_name not in allowed:
            return False
        logger.info(
            "Implicit delegation of %s to %s (confidence %.2f)",
            self.execution.id,
            target.id,
            intent.confidence,
        )
        call = ToolCall(
            call_id=_new_call_id(), name=intent.tool_name, args={"task": self.task.content}
        )
        # Held until the specialist's first output so the model frame names the model that answered
        self._deferred.append(_call_event(call))
        with self.sink.hold(supervisor.id):
            result = await self._sub_run(supervisor, target, call.args)
        await self._tool_result(call, result)
        if result.get("status") == "completed":
            return True
        self.execution.transition(_P.EXECUTING, supervisor.id)
        return False

    async def _sub_run(
        self, caller: AgentProfile, target: AgentProfile, args: dict[str, Any]
    ) -> dict[str, Any]:
        """Run target to completion on the shared sink. Branch failures become an error result."""
        async with self._delegation_lock:
            ex = self.execution
            ex.transition(_P.DELEGATING)
            ex.transition(_P.EXECUTING, target.id)
            prompt = delegation_prompt(args) or self.task.content
            messages = [*self.conversation, {"role": "user", "content": prompt}]
            try:
                with self.sink.hold(target.id):
                    text = await self._agent_turn(target, messages, self._tools_for(target, None))
            except (ExecutionCancelled, StreamWriteFailure, asyncio.CancelledError):
                raise
            except Exception as e:
                if self._abort is not None:
                    raise self._abort from e
                logger.exception("Delegation from %s to %s failed: %s", caller.id, target.id, e)
                return {
                    "agent": target.id,
                    "status": "failed",
                    **self._model_used(),
                    **_error_result(e),
                }
            self.conversation.append({"role": "assistant", "content": text})
            return {
                "agent": target.id,
                "status": "completed",
                "summary": summarize(text, self.g.config.summary_chars),
                **self._model_used(),
            }

    def _model_used(self) -> dict[str, Any]:
        # The model frame is sent once; a fallback switch inside a sub-run is reported here
        return {"model": self.model, "fallback": self.on_fallback}

    # Endings

    def _usage(self) -> Usage:
        return Usage.estimate(self._prompt_chars, len(self.sink.text))

    async def _finalize(self) -> None:
        ex = self.execution
        ex.transition(_P.FINALIZING)
        text = self.sink.text
        await self.sink.emit(FinishEvent(full_text=text, usage=self._usage()))
        ex.transition(_P.COMPLETED)
        self.g.save_history(
            ChatTurn(
                execution_id=ex.id,
                thread_id=ex.thread_id,
                user_id=ex.user_id,
                user_content=self.task.content,
                assistant_text=text,
                model=self.model,
                agent_id=ex.current_agent_id,
                metadata={"fallback": self.on_fallback, "usage": self._usage().to_dict()},
            )
        )
        logger.info("Execution %s completed (%d events)", ex.id, len(ex.history))

    async def _failed(self, err: Exception) -> None:
        ex = self.execution
        kind = err.kind if isinstance(err, SwitchboardError) else "internal"
        if isinstance(err, ProviderFailure):
            logger.error("Execution %s failed: %s", ex.id, err)
        else:
            logger.exception("Execution %s failed: %s", ex.id, err)
        ex.error = f"{kind}: {err}"
        self._release("failed")
        self._force_phase(_P.FAILED)
        await self._closing_frames(ErrorEvent(kind=kind, message=str(err)))

    async def _cancelled(self) -> None:
        ex = self.execution
        self._release("cancelled")
        self._force_phase(_P.CANCELLED)
        logger.info("Execution %s cancelled (%s)", ex.id, ex.cancel_reason)
        reason = ex.cancel_reason or "cancelled"
        await self._closing_frames(ErrorEvent(kind=ExecutionCancelled.kind, message=reason))

    def _client_gone(self, err: StreamWriteFailure) -> None:
        ex = self.execution
        ex.error = f"{err.kind}: {err}"
        self._release("client disconnected")
        self._force_phase(_P.CANCELLED)
        logger.info("Execution %s aborted: client disconnected", ex.id)

    async def _closing_frames(self, error: ErrorEvent) -> None:
        """Error then finish, so the client always sees end-of-stream framing."""
        try:
            await self.sink.emit(error)
            await self.sink.emit(FinishEvent(full_text=self.sink.text, usage=self._usage()))
        except StreamWriteFailure:
            logger.debug("Client gone before closing frames of %s", self.execution.id)

    def _release(self, reason: str) -> None:
        freed = self.g.confirmations.cancel_execution(self.execution.id)
        if freed:
            logger.info(
                "Released %d pending confirmation(s) of %s: %s", freed, self.execution.id, reason
            )

    def _force_phase(self, phase: ExecutionPhase) -> None:
        ex = self.execution
        if ex.is_terminal:
            return
        # Cancellation is only honoured before FINALIZING
        if ex.phase is _P.FINALIZING and phase is _P.CANCELLED:
            phase = _P.FAILED
        ex.transition(phase)
