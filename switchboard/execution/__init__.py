"""Execution engine: state machine, graph and manager."""

from switchboard.execution.graph import AgentExecutionGraph, GraphConfig
from switchboard.execution.manager import ExecutionManager
from switchboard.execution.state import AgentExecution, ExecutionPhase, ExecutionStatus

__all__ = [
    "AgentExecution",
    "AgentExecutionGraph",
    "ExecutionManager",
    "ExecutionPhase",
    "ExecutionStatus",
    "GraphConfig",
]
