"""Error taxonomy for routing, delegation, confirmation and streaming."""

__all__ = [
    "ConfirmationNotFound",
    "ConfirmationTimeout",
    "DelegationTargetUnavailable",
    "ExecutionCancelled",
    "InvalidTransition",
    "ProviderFailure",
    "RoutingDegraded",
    "StreamProtocolError",
    "StreamWriteFailure",
    "SwitchboardError",
]


class SwitchboardError(Exception):
    """Base class for engine errors. `kind` is the name reported on the wire."""

    kind = "internal"


class RoutingDegraded(SwitchboardError):
    """No model satisfies the task's capability needs; the default is used instead.

    Never raised out of ModelRouter.route; kept as a named kind for logs and reasoning.
    """

    kind = "routing-degraded"


class ProviderFailure(SwitchboardError):
    """Model provider call errored or timed out."""

    kind = "provider-failure"

    def __init__(self, model: str, cause: BaseException | None = None) -> None:
        self.model = model
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Provider call failed for model {model!r}{detail}")


class DelegationTargetUnavailable(SwitchboardError):
    """Named specialist is not registered."""

    kind = "delegation-target-unavailable"

    def __init__(self, agent_id: str) -> None:
        self.agent_id = agent_id
        super().__init__(f"Specialist agent {agent_id!r} is not available")


class ConfirmationTimeout(SwitchboardError):
    """Human did not answer a confirmation in time."""

    kind = "confirmation-timeout"


class ConfirmationNotFound(SwitchboardError):
    """Confirmation id unknown, already resolved, or timed out."""

    kind = "confirmation-not-found"


class StreamWriteFailure(SwitchboardError):
    """Client went away while the execution was still emitting."""

    kind = "stream-write-failure"


class StreamProtocolError(SwitchboardError):
    """An event would violate the wire ordering grammar."""

    kind = "stream-protocol"


class InvalidTransition(SwitchboardError):
    """Execution state machine was asked for an illegal transition."""

    kind = "invalid-transition"


class ExecutionCancelled(SwitchboardError):
    """External stop signal observed at a cancellation checkpoint."""

    kind = "cancelled"
