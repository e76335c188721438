"""ExecutionManager: one asyncio task per execution, lookup by id, external stop signal."""

import asyncio
import logging
from typing import Any

from switchboard.confirmation.registry import ConfirmationRegistry
from switchboard.context import RequestContext
from switchboard.execution.graph import AgentExecutionGraph
from switchboard.execution.state import AgentExecution
from switchboard.streaming.sink import EventChannel
from switchboard.task import TaskDescriptor

logger = logging.getLogger(__name__)


class ExecutionManager:
    """Tracks live executions and the user that owns each of them."""

    def __init__(self, graph: AgentExecutionGraph, confirmations: ConfirmationRegistry) -> None:
        self._graph = graph
        self._confirmations = confirmations
        self._executions: dict[str, AgentExecution] = {}
        self._tasks: dict[str, asyncio.Task[None]] = {}

    def start(
        self,
        task: TaskDescriptor,
        ctx: RequestContext,
        channel: EventChannel,
        conversation: list[dict[str, Any]] | None = None,
    ) -> AgentExecution:
        """Create the execution and schedule its run. Events arrive on channel."""
        execution = AgentExecution.create(task, ctx)
        self._executions[execution.id] = execution
        self._tasks[execution.id] = asyncio.create_task(
            self._run(execution, channel, ctx, conversation),
            name=f"execution-{execution.id}",
        )
        logger.info("Execution %s started for user %s", execution.id, ctx.user_id or "-")
        return execution

    async def _run(
        self,
        execution: AgentExecution,
        channel: EventChannel,
        ctx: RequestContext,
        conversation: list[dict[str, Any]] | None,
    ) -> None:
        try:
            await self._graph.run(execution, channel, ctx, conversation)
        except asyncio.CancelledError:
            logger.info("Execution task %s cancelled", execution.id)
        except Exception as e:
            logger.exception("Execution %s crashed: %s", execution.id, e)
        finally:
            self._confirmations.cancel_execution(execution.id)
            self._tasks.pop(execution.id, None)
            self._executions.pop(execution.id, None)

    def get(self, execution_id: str) -> AgentExecution | None:
        return self._executions.get(execution_id)

    def owner_of(self, execution_id: str) -> str | None:
        execution = self._executions.get(execution_id)
        return execution.user_id if execution else None

    def active(self) -> list[AgentExecution]:
        return list(self._executions.values())

    def cancel(self, execution_id: str, reason: str = "cancelled by user") -> bool:
        """Deliver the stop signal. Pending confirmations of the execution are released at once."""
        execution = self._executions.get(execution_id)
        if execution is None or not execution.request_cancel(reason):
            return False
        self._confirmations.cancel_execution(execution_id)
        logger.info("Cancellation requested for %s: %s", execution_id, reason)
        return True

    async def wait(self, execution_id: str) -> None:
        task = self._tasks.get(execution_id)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel every running execution and wait for the tasks to end."""
        for execution_id in list(self._executions):
            self.cancel(execution_id, reason="server shutdown")
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        await self._graph.drain()
