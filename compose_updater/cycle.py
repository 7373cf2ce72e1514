"""One update cycle: reload definitions, detect changes, restart if needed."""

from __future__ import annotations

import time
from pathlib import Path

from compose_updater.detector import ChangeDetector
from compose_updater.errors import ConfigError, ExecutionError, RefreshError
from compose_updater.executor import UpdateExecutor
from compose_updater.logging import get_logger
from compose_updater.models import (
    CycleResult,
    CycleStatus,
    RestartMode,
    SelectionPolicy,
    WorkloadSpec,
)
from compose_updater.orchestrator import Orchestrator
from compose_updater.policy import load_policy
from compose_updater.utils import now_iso, timed_operation

log = get_logger("compose_updater.cycle")


class UpdateCycle:
    """Callable handed to the ``TriggerCoordinator``.

    Workload and policy definitions are re-read on every run so edits to
    the compose file or policy file are picked up without a restart.
    """

    def __init__(
        self,
        orchestrator: Orchestrator,
        policy_path: str | Path,
        restart_mode: RestartMode = RestartMode.WHOLE_STACK,
        detector: ChangeDetector | None = None,
        executor: UpdateExecutor | None = None,
    ) -> None:
        self._orchestrator = orchestrator
        self._policy_path = Path(policy_path)
        self._restart_mode = restart_mode
        self._detector = detector or ChangeDetector(orchestrator)
        self._executor = executor or UpdateExecutor(orchestrator)
        self._last_result: CycleResult | None = None

    @property
    def restart_mode(self) -> RestartMode:
        return self._restart_mode

    @property
    def last_result(self) -> CycleResult | None:
        return self._last_result

    async def __call__(self) -> CycleResult:
        return await self.run()

    async def load_definitions(self) -> tuple[list[WorkloadSpec], SelectionPolicy]:
        """Read workloads and policy; raises ``ConfigError`` when malformed."""
        workloads = await self._orchestrator.list_workload_specs()
        policy = load_policy(self._policy_path)
        return workloads, policy

    async def run(self) -> CycleResult:
        start = time.monotonic()
        result = CycleResult(status=CycleStatus.ABORTED)
        async with timed_operation("update_cycle_completed", log=log) as timing:
            try:
                await self._run(result)
            finally:
                result.duration_seconds = round(time.monotonic() - start, 2)
                result.completed_at = now_iso()
                timing["status"] = result.status.value
                self._last_result = result
        return result

    async def _run(self, result: CycleResult) -> None:
        try:
            workloads, policy = await self.load_definitions()
        except ConfigError as exc:
            log.error("cycle_aborted", reason="config_error", error=str(exc))
            result.error = str(exc)
            return

        try:
            detection = await self._detector.detect(workloads, policy)
        except RefreshError as exc:
            log.error("cycle_aborted", reason="refresh_failed", error=str(exc))
            result.error = str(exc)
            return

        result.decisions = detection.decisions
        if not detection.decisions:
            result.status = CycleStatus.NO_WORKLOADS
            return
        if not detection.any_required:
            result.status = CycleStatus.UP_TO_DATE
            return

        if self._restart_mode is RestartMode.WHOLE_STACK:
            target: list[str] | None = None
        else:
            target = detection.required_names
        result.restart_target = target
        log.info(
            "updating_workloads",
            mode=self._restart_mode.value,
            changed=detection.required_names,
        )

        try:
            result.execution = await self._executor.apply(target, refreshed=True)
        except ExecutionError as exc:
            log.error("cycle_restart_failed", error=str(exc))
            result.execution = exc.report
            result.restarted = exc.report is not None
            result.status = CycleStatus.PARTIAL
            result.error = str(exc)
            return

        result.restarted = True
        result.status = CycleStatus.UPDATED
