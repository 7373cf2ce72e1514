"""Change detection: decide which workloads need a restart."""

from __future__ import annotations

from collections.abc import Sequence

from compose_updater.errors import ConfigError, ExecutionError, RefreshError, ResolveError
from compose_updater.logging import get_logger
from compose_updater.models import (
    DetectionResult,
    SelectionPolicy,
    UpdateDecision,
    WorkloadSpec,
)
from compose_updater.orchestrator import Orchestrator
from compose_updater.resolver import DigestResolver

log = get_logger("compose_updater.detector")


class ChangeDetector:
    """Compares registry digests with running containers.

    Flow per call:
    1. Filter workloads through the selection policy
    2. Refresh (pull) the active set once
    3. Resolve digests per workload; failures skip only that workload
    """

    def __init__(self, orchestrator: Orchestrator, resolver: DigestResolver | None = None) -> None:
        self._orchestrator = orchestrator
        self._resolver = resolver or DigestResolver(orchestrator)

    async def detect(
        self,
        workloads: Sequence[WorkloadSpec],
        policy: SelectionPolicy,
    ) -> DetectionResult:
        active = policy.filter(list(workloads))
        for skipped in workloads:
            if skipped not in active:
                log.debug("workload_not_selected", workload=skipped.name)

        if not active:
            log.info("no_active_workloads", declared=len(workloads))
            return DetectionResult()

        log.info("refreshing_images", workloads=len(active))
        try:
            await self._orchestrator.refresh_desired_state(active)
        except (ExecutionError, ConfigError) as exc:
            log.error(
                "refresh_failed",
                error=str(exc),
                command=getattr(exc, "command", None),
                output=getattr(exc, "output", ""),
            )
            raise RefreshError(f"Image refresh failed: {exc}") from exc

        result = DetectionResult()
        for workload in active:
            result.decisions.append(await self._decide(workload))
        return result

    async def _decide(self, workload: WorkloadSpec) -> UpdateDecision:
        try:
            digests = await self._resolver.resolve(workload)
        except ResolveError as exc:
            log.warning("workload_skipped", workload=workload.name, error=str(exc))
            return UpdateDecision(
                workload_name=workload.name,
                required=False,
                reason=f"skipped: {exc}",
                skipped=True,
            )

        if digests.running_digest is None:
            reason = "no running container"
        elif digests.update_required:
            reason = "digest changed"
        else:
            reason = "up to date"

        if digests.update_required:
            log.info(
                "update_required",
                workload=workload.name,
                reason=reason,
                desired=digests.desired_digest,
                running=digests.running_digest,
            )
        else:
            log.info("workload_up_to_date", workload=workload.name)

        return UpdateDecision(
            workload_name=workload.name,
            required=digests.update_required,
            reason=reason,
            digests=digests,
        )
