"""ConfirmationRegistry: pending human approvals for sensitive tool calls.

At most one entry per execution is live (visible to approvers, timing out); further requests
from the same execution queue behind it. Every entry is resolved exactly once: by a human,
by the timeout sweep, or by cancellation of its execution.
"""

import asyncio
import logging
import threading
import time
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any, Callable

from switchboard.errors import ConfirmationNotFound, ConfirmationTimeout

logger = logging.getLogger(__name__)


class OutcomeReason(StrEnum):
    APPROVED = "approved"
    REJECTED = "rejected"
    TIMED_OUT = "timed-out"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class ConfirmationOutcome:
    approved: bool
    reason: OutcomeReason
    edited_args: dict[str, Any] | None = None

    @property
    def message(self) -> str:
        match self.reason:
            case OutcomeReason.APPROVED:
                return "approved"
            case OutcomeReason.REJECTED:
                return "rejected by user"
            case OutcomeReason.TIMED_OUT:
                return f"rejected: timed out ({ConfirmationTimeout.kind})"
            case OutcomeReason.CANCELLED:
                return "rejected due to cancellation"


@dataclass(frozen=True)
class ResolveResult:
    success: bool
    message: str
    not_found: bool = False


@dataclass
class PendingConfirmation:
    id: str
    execution_id: str
    thread_id: str | None
    requested_tool: str
    requested_args: dict[str, Any]
    created_at: datetime
    resolve: Callable[[ConfirmationOutcome], None]
    message: str = ""
    # Monotonic time at which the entry became live; None while queued
    live_since: float | None = field(default=None, repr=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "executionId": self.execution_id,
            "threadId": self.thread_id,
            "toolName": self.requested_tool,
            "args": self.requested_args,
            "message": self.message,
            "createdAt": self.created_at.isoformat(),
        }


def _settle(future: asyncio.Future[ConfirmationOutcome], outcome: ConfirmationOutcome) -> None:
    """Set future result from any thread."""

    def _set() -> None:
        if not future.done():
            future.set_result(outcome)

    loop = future.get_loop()
    try:
        running = asyncio.get_running_loop()
    except RuntimeError:
        running = None
    if running is loop:
        _set()
    elif not loop.is_closed():
        loop.call_soon_threadsafe(_set)


class ConfirmationRegistry:
    """Injectable table of pending confirmations. Mutations are serialized under one lock."""

    def __init__(
        self,
        timeout_seconds: float = 120.0,
        sweep_interval: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._timeout = timeout_seconds
        self._sweep_interval = sweep_interval
        self._clock = clock
        self._lock = threading.Lock()
        self._live: dict[str, PendingConfirmation] = {}
        self._live_by_execution: dict[str, str] = {}
        self._queued: dict[str, deque[PendingConfirmation]] = {}
        self._futures: dict[str, asyncio.Future[ConfirmationOutcome]] = {}
        self._task: asyncio.Task[None] | None = None

    @classmethod
    def from_settings(cls, settings: dict[str, Any]) -> "ConfirmationRegistry":
        cfg = settings.get("confirmation") or {}
        return cls(
            timeout_seconds=float(cfg.get("timeout_seconds", 120)),
            sweep_interval=float(cfg.get("sweep_interval", 5.0)),
        )

    @property
    def timeout_seconds(self) -> float:
        return self._timeout

    def register(
        self,
        execution_id: str,
        thread_id: str | None,
        requested_tool: str,
        args: dict[str, Any],
        message: str = "",
        on_resolve: Callable[[ConfirmationOutcome], None] | None = None,
    ) -> str:
        """Create an entry and return its id.

        Never blocks. The entry queues behind a live entry of the same execution.
        """
        confirmation_id = f"conf_{uuid.uuid4().hex[:16]}"
        future: asyncio.Future[ConfirmationOutcome] = asyncio.get_running_loop().create_future()

        def _resolve(outcome: ConfirmationOutcome) -> None:
            _settle(future, outcome)
            if on_resolve is not None:
                try:
                    on_resolve(outcome)
                except Exception as e:
                    logger.exception("on_resolve callback failed for %s: %s", confirmation_id, e)

        entry = PendingConfirmation(
            id=confirmation_id,
            execution_id=execution_id,
            thread_id=thread_id,
            requested_tool=requested_tool,
            requested_args=dict(args),
            created_at=datetime.now(timezone.utc),
            resolve=_resolve,
            message=message,
        )
        with self._lock:
            self._futures[confirmation_id] = future
            if execution_id in self._live_by_execution:
                self._queued.setdefault(execution_id, deque()).append(entry)
                queued = True
            else:
                self._make_live(entry)
                queued = False
        logger.info(
            "Confirmation %s registered for %s (execution %s%s)",
            confirmation_id,
            requested_tool,
            execution_id,
            ", queued" if queued else "",
        )
        return confirmation_id

    def _make_live(self, entry: PendingConfirmation) -> None:
        entry.live_since = self._clock()
        self._live[entry.id] = entry
        self._live_by_execution[entry.execution_id] = entry.id

    def _pop_live(self, confirmation_id: str) -> PendingConfirmation | None:
        """Remove a live entry and promote the next queued one. Caller holds the lock."""
        entry = self._live.pop(confirmation_id, None)
        if entry is None:
            return None
        self._live_by_execution.pop(entry.execution_id, None)
        queue = self._queued.get(entry.execution_id)
        if queue:
            self._make_live(queue.popleft())
            if not queue:
                del self._queued[entry.execution_id]
        self._futures.pop(confirmation_id, None)
        return entry

    def list(self) -> list[PendingConfirmation]:
        """Live entries, oldest first. Queued entries are not visible."""
        with self._lock:
            return sorted(self._live.values(), key=lambda e: e.created_at)

    def get(self, confirmation_id: str) -> PendingConfirmation | None:
        with self._lock:
            return self._live.get(confirmation_id)

    def resolve(
        self,
        confirmation_id: str,
        approved: bool,
        edited_args: dict[str, Any] | None = None,
    ) -> ResolveResult:
        """Resolve a live entry exactly once. Unknown or resolved ids are a not-found failure."""
        with self._lock:
            entry = self._pop_live(confirmation_id)
        if entry is None:
            logger.debug("Resolve for unknown confirmation %s", confirmation_id)
            return ResolveResult(
                success=False,
                message=f"Confirmation {confirmation_id} not found or already resolved",
                not_found=True,
            )
        outcome = ConfirmationOutcome(
            approved=bool(approved),
            reason=OutcomeReason.APPROVED if approved else OutcomeReason.REJECTED,
            edited_args=dict(edited_args) if approved and edited_args else None,
        )
        entry.resolve(outcome)
        logger.info("Confirmation %s %s", confirmation_id, outcome.reason.value)
        return ResolveResult(
            success=True,
            message="Action confirmed" if approved else "Action rejected",
        )

    async def wait(self, confirmation_id: str) -> ConfirmationOutcome:
        """Suspend until the entry is resolved."""
        with self._lock:
            future = self._futures.get(confirmation_id)
        if future is None:
            raise ConfirmationNotFound(f"Confirmation {confirmation_id} not found")
        return await asyncio.shield(future)

    def sweep_expired(self) -> "list[str]":
        """Reject live entries older than the timeout. Returns the ids that timed out."""
        now = self._clock()
        expired: list[PendingConfirmation] = []
        with self._lock:
            # Promotion inside the loop may make queued entries live; they start a fresh clock
            for entry in list(self._live.values()):
                if entry.live_since is not None and now - entry.live_since >= self._timeout:
                    popped = self._pop_live(entry.id)
                    if popped is not None:
                        expired.append(popped)
        outcome = ConfirmationOutcome(approved=False, reason=OutcomeReason.TIMED_OUT)
        for entry in expired:
            logger.warning(
                "Confirmation %s (%s) timed out after %.0fs",
                entry.id,
                entry.requested_tool,
                self._timeout,
            )
            entry.resolve(outcome)
        return [e.id for e in expired]

    def cancel_execution(self, execution_id: str) -> int:
        """Reject live and queued entries of an execution. Returns how many were freed."""
        with self._lock:
            entries = list(self._queued.pop(execution_id, ()))
            live_id = self._live_by_execution.get(execution_id)
            if live_id is not None:
                live = self._pop_live(live_id)
                if live is not None:
                    entries.insert(0, live)
            for entry in entries:
                self._futures.pop(entry.id, None)
        outcome = ConfirmationOutcome(approved=False, reason=OutcomeReason.CANCELLED)
        for entry in entries:
            entry.resolve(outcome)
        if entries:
            logger.info(
                "Released %d confirmation(s) of cancelled execution %s", len(entries), execution_id
            )
        return len(entries)

    def start(self) -> None:
        """Start the timeout sweep loop as an asyncio task."""
        if self._task is None:
            self._task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        """Cancel and await the sweep task."""
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval)
            try:
                self.sweep_expired()
            except Exception as e:
                logger.exception("Confirmation sweep failed: %s", e)
