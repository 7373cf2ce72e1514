"""Single-flight trigger coordination for update cycles.

Triggers are signals, not messages. Any number of triggers that arrive
while a cycle is running collapse into exactly one follow-up cycle, and
two cycles never run at the same time.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any

from compose_updater.logging import get_logger

log = get_logger("compose_updater.coordinator")


class CoordinatorState(Enum):
    """Externally visible coordinator state."""

    IDLE = "idle"
    RUNNING = "running"
    RUNNING_WITH_PENDING = "running_with_pending"


class TriggerOutcome(Enum):
    """What a single ``trigger()`` call did."""

    STARTED = "started"
    QUEUED = "queued"
    COALESCED = "coalesced"
    REJECTED = "rejected"


class TriggerCoordinator:
    """Runs update cycles on one background worker task.

    Callers only ever call ``trigger()``, which returns as soon as the state
    transition is recorded. The worker clears the pending flag before each
    cycle starts, so a trigger that lands mid-cycle is never lost.
    """

    def __init__(self, run_cycle: Callable[[], Awaitable[Any]]) -> None:
        self._run_cycle = run_cycle
        self._cond = asyncio.Condition()
        self._running = False
        self._pending = False
        self._stopping = False
        self._worker: asyncio.Task[None] | None = None
        self._cycles_completed = 0
        self._triggers_received = 0
        self._triggers_coalesced = 0
        self._last_trigger_source: str | None = None
        self._last_cycle_finished: float | None = None

    # ------------------------------------------------------------------
    # Public status surface
    # ------------------------------------------------------------------

    @property
    def state(self) -> CoordinatorState:
        if self._running and self._pending:
            return CoordinatorState.RUNNING_WITH_PENDING
        if self._running or self._pending:
            return CoordinatorState.RUNNING
        return CoordinatorState.IDLE

    @property
    def cycles_completed(self) -> int:
        return self._cycles_completed

    @property
    def triggers_received(self) -> int:
        return self._triggers_received

    @property
    def triggers_coalesced(self) -> int:
        return self._triggers_coalesced

    @property
    def is_started(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def status_snapshot(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "cycles_completed": self._cycles_completed,
            "triggers_received": self._triggers_received,
            "triggers_coalesced": self._triggers_coalesced,
            "last_trigger_source": self._last_trigger_source,
            "seconds_since_last_cycle": (
                round(time.monotonic() - self._last_cycle_finished, 1)
                if self._last_cycle_finished is not None
                else None
            ),
        }

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Spawn the worker task on the running event loop."""
        if self.is_started:
            return
        self._stopping = False
        self._worker = asyncio.create_task(self._work(), name="update-cycle-worker")
        log.debug("coordinator_started")

    async def stop(self) -> None:
        """Stop the worker after any in-flight cycle finishes.

        A pending follow-up cycle is dropped. Running cycles are never
        cancelled.
        """
        async with self._cond:
            self._stopping = True
            self._cond.notify_all()
        if self._worker is not None:
            await self._worker
            self._worker = None
        log.debug("coordinator_stopped")

    # ------------------------------------------------------------------
    # Signalling
    # ------------------------------------------------------------------

    async def trigger(self, source: str = "manual") -> TriggerOutcome:
        """Request an update cycle."""
        async with self._cond:
            self._triggers_received += 1
            if self._stopping:
                log.warning("trigger_rejected", source=source, reason="coordinator stopping")
                return TriggerOutcome.REJECTED

            if self._pending:
                self._triggers_coalesced += 1
                log.debug("trigger_coalesced", source=source)
                return TriggerOutcome.COALESCED

            self._pending = True
            self._last_trigger_source = source
            outcome = TriggerOutcome.QUEUED if self._running else TriggerOutcome.STARTED
            self._cond.notify_all()

        log.info("trigger_accepted", source=source, outcome=outcome.value)
        return outcome

    async def wait_idle(self) -> None:
        """Block until no cycle is running or pending.

        Only returns once the worker has been started and drained.
        """
        async with self._cond:
            await self._cond.wait_for(lambda: not self._running and not self._pending)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _work(self) -> None:
        while True:
            async with self._cond:
                await self._cond.wait_for(lambda: self._pending or self._stopping)
                if self._stopping:
                    if self._pending:
                        log.info("pending_cycle_dropped", reason="coordinator stopping")
                        self._pending = False
                        self._cond.notify_all()
                    return
                self._pending = False
                self._running = True

            try:
                await self._run_cycle()
            except Exception:
                log.exception("update_cycle_crashed")
            finally:
                async with self._cond:
                    self._running = False
                    self._cycles_completed += 1
                    self._last_cycle_finished = time.monotonic()
                    self._cond.notify_all()
