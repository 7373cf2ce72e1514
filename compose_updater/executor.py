"""Update executor: stop, pull and start the affected workloads.

Lifecycle:
1. Stop the target (whole stack via ``down`` or the named services)
2. Pull images, unless detection already refreshed them this cycle
3. Start the target again

Steps run sequentially. A failed step is logged with its captured output
and the remaining steps are still attempted; leaving the stack stopped is
worse than a partially restarted one.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable, Sequence

from compose_updater.errors import ConfigError, ExecutionError
from compose_updater.logging import get_logger
from compose_updater.models import CommandResult, ExecutionReport, StepOutcome
from compose_updater.orchestrator import Orchestrator

log = get_logger("compose_updater.executor")


class UpdateExecutor:
    """Executes restarts with best-effort step semantics."""

    def __init__(self, orchestrator: Orchestrator) -> None:
        self._orchestrator = orchestrator
        self._lock = asyncio.Lock()
        self._state = "idle"
        self._current_operation: str | None = None

    @property
    def state(self) -> str:
        return self._state

    @property
    def current_operation(self) -> str | None:
        return self._current_operation

    @property
    def is_busy(self) -> bool:
        return self._lock.locked()

    async def apply(
        self,
        names: Sequence[str] | None,
        *,
        refreshed: bool = True,
    ) -> ExecutionReport:
        """Restart *names* (``None`` for the whole stack).

        An empty *names* restarts nothing and returns an empty report.

        Raises ``ExecutionError`` carrying the report when any step failed,
        after every step has been attempted.
        """
        if names is not None and not names:
            log.info("restart_skipped", reason="empty target")
            return ExecutionReport(target=[])

        if self._lock.locked():
            raise ExecutionError("Update already in progress")

        async with self._lock:
            return await self._do_apply(list(names) if names is not None else None, refreshed)

    async def _do_apply(self, target: list[str] | None, refreshed: bool) -> ExecutionReport:
        start = time.monotonic()
        label = "whole stack" if target is None else ", ".join(target)
        report = ExecutionReport(target=target)
        self._state = "updating"
        log.info("restart_started", target=label, refreshed=refreshed)

        try:
            await self._step(
                report, "stop", f"Stopping {label}", self._orchestrator.stop_workloads, target
            )
            if not refreshed:
                await self._step(report, "pull", f"Pulling {label}", self._pull, target)
            await self._step(
                report, "start", f"Starting {label}", self._orchestrator.start_workloads, target
            )
        finally:
            self._state = "idle"
            self._current_operation = None

        elapsed = round(time.monotonic() - start, 2)
        if not report.ok:
            log.error(
                "restart_incomplete",
                target=label,
                failed_steps=report.failed_steps,
                duration_seconds=elapsed,
            )
            raise ExecutionError(
                f"Restart steps failed: {', '.join(report.failed_steps)}",
                report=report,
            )

        log.info("restart_completed", target=label, duration_seconds=elapsed)
        return report

    async def _step(
        self,
        report: ExecutionReport,
        name: str,
        operation: str,
        action: Callable[[list[str] | None], Awaitable[CommandResult]],
        target: list[str] | None,
    ) -> None:
        self._current_operation = operation
        try:
            await action(target)
        except (ExecutionError, ConfigError) as exc:
            log.error(
                "execution_step_failed",
                step=name,
                error=str(exc),
                command=getattr(exc, "command", None),
                returncode=getattr(exc, "returncode", None),
                output=getattr(exc, "output", ""),
            )
            report.steps.append(StepOutcome(name=name, ok=False, error=str(exc)))
            return
        except Exception as exc:
            log.exception("execution_step_failed", step=name, error=str(exc))
            report.steps.append(
                StepOutcome(name=name, ok=False, error=f"Unexpected error: {exc}")
            )
            return
        report.steps.append(StepOutcome(name=name, ok=True))

    async def _pull(self, target: list[str] | None) -> CommandResult:
        workloads = await self._orchestrator.list_workload_specs()
        if target is not None:
            wanted = set(target)
            workloads = [w for w in workloads if w.name in wanted]
        return await self._orchestrator.refresh_desired_state(workloads)
