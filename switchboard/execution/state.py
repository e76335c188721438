"""AgentExecution: mutable root of one run and its phase state machine."""

import time
import uuid
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

from switchboard.context import RequestContext
from switchboard.errors import InvalidTransition
from switchboard.llm.protocol import RoutingDecision
from switchboard.task import TaskDescriptor

if TYPE_CHECKING:
    from switchboard.streaming.events import Event


class ExecutionStatus(StrEnum):
    RUNNING = "running"
    AWAITING_APPROVAL = "awaiting-approval"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ExecutionPhase(StrEnum):
    INITIALIZING = "initializing"
    ROUTING = "routing"
    EXECUTING = "executing"
    DELEGATING = "delegating"
    AWAITING_APPROVAL = "awaiting-approval"
    FINALIZING = "finalizing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


_P = ExecutionPhase
_TERMINAL = frozenset({_P.COMPLETED, _P.FAILED, _P.CANCELLED})

# EXECUTING -> EXECUTING is the hand-back of ownership after a specialist sub-run
_TRANSITIONS: dict[ExecutionPhase, frozenset[ExecutionPhase]] = {
    _P.INITIALIZING: frozenset({_P.ROUTING, _P.FAILED, _P.CANCELLED}),
    _P.ROUTING: frozenset({_P.EXECUTING, _P.FAILED, _P.CANCELLED}),
    _P.EXECUTING: frozenset(
        {_P.EXECUTING, _P.DELEGATING, _P.AWAITING_APPROVAL, _P.FINALIZING, _P.FAILED, _P.CANCELLED}
    ),
    _P.DELEGATING: frozenset({_P.EXECUTING, _P.FAILED, _P.CANCELLED}),
    _P.AWAITING_APPROVAL: frozenset({_P.EXECUTING, _P.FAILED, _P.CANCELLED}),
    _P.FINALIZING: frozenset({_P.COMPLETED, _P.FAILED}),
    _P.COMPLETED: frozenset(),
    _P.FAILED: frozenset(),
    _P.CANCELLED: frozenset(),
}


@dataclass
class AgentExecution:
    """Owned by the graph that runs it; the streaming layer only reads it."""

    task: TaskDescriptor
    user_id: str | None = None
    thread_id: str | None = None
    id: str = field(default_factory=lambda: f"exec_{uuid.uuid4().hex}")
    phase: ExecutionPhase = ExecutionPhase.INITIALIZING
    current_agent_id: str | None = None
    history: list["Event"] = field(default_factory=list)
    routing: RoutingDecision | None = None
    started_at: float = field(default_factory=time.time)
    ended_at: float | None = None
    error: str | None = None
    cancel_reason: str | None = None
    pending_confirmation_id: str | None = None

    @classmethod
    def create(cls, task: TaskDescriptor, ctx: RequestContext) -> "AgentExecution":
        return cls(task=task, user_id=ctx.user_id, thread_id=ctx.thread_id or task.hint("threadId"))

    @property
    def status(self) -> ExecutionStatus:
        match self.phase:
            case ExecutionPhase.AWAITING_APPROVAL:
                return ExecutionStatus.AWAITING_APPROVAL
            case ExecutionPhase.COMPLETED:
                return ExecutionStatus.COMPLETED
            case ExecutionPhase.FAILED:
                return ExecutionStatus.FAILED
            case ExecutionPhase.CANCELLED:
                return ExecutionStatus.CANCELLED
            case _:
                return ExecutionStatus.RUNNING

    @property
    def is_terminal(self) -> bool:
        return self.phase in _TERMINAL

    @property
    def cancel_requested(self) -> bool:
        return self.cancel_reason is not None

    def request_cancel(self, reason: str = "cancelled") -> bool:
        """Set the cooperative stop flag. False if the run already ended or was asked to stop."""
        if self.is_terminal or self.cancel_requested:
            return False
        self.cancel_reason = reason
        return True

    def transition(self, phase: ExecutionPhase, agent_id: str | None = None) -> None:
        if phase not in _TRANSITIONS[self.phase]:
            raise InvalidTransition(f"{self.id}: {self.phase.value} -> {phase.value}")
        self.phase = phase
        if agent_id is not None:
            self.current_agent_id = agent_id
        if phase in _TERMINAL:
            self.ended_at = time.time()

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "status": self.status.value,
            "phase": self.phase.value,
            "currentAgentId": self.current_agent_id,
            "threadId": self.thread_id,
            "startedAt": self.started_at,
            "endedAt": self.ended_at,
            "selectedModel": self.routing.selected_model if self.routing else None,
            "events": len(self.history),
        }
