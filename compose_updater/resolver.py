"""Digest lookups against the orchestrator."""

from __future__ import annotations

from compose_updater.errors import ConfigError, ExecutionError, ResolveError
from compose_updater.logging import get_logger
from compose_updater.models import DigestPair, WorkloadSpec
from compose_updater.orchestrator import Orchestrator

log = get_logger("compose_updater.resolver")

_QUOTES = "\"'"


def normalize_digest(raw: str | None) -> str | None:
    """Strip whitespace and quoting left over from CLI output.

    Returns None when nothing remains. No other normalization is applied;
    digests compare by exact string equality.
    """
    if raw is None:
        return None
    value = raw.strip().strip(_QUOTES).strip()
    return value or None


class DigestResolver:
    """Resolves desired (pulled image) and running (container) digests."""

    def __init__(self, orchestrator: Orchestrator) -> None:
        self._orchestrator = orchestrator

    async def resolve_desired(self, image_reference: str) -> str:
        try:
            raw = await self._orchestrator.inspect_image_digest(image_reference)
        except (ExecutionError, ConfigError) as exc:
            raise ResolveError(
                f"Failed to inspect image {image_reference}: {exc}"
            ) from exc

        digest = normalize_digest(raw)
        if digest is None:
            raise ResolveError(f"Empty digest for image {image_reference}")
        return digest

    async def resolve_running(self, workload_name: str) -> str | None:
        try:
            raw = await self._orchestrator.inspect_running_digest(workload_name)
        except (ExecutionError, ConfigError) as exc:
            raise ResolveError(
                f"Failed to inspect running container for {workload_name}: {exc}",
                workload=workload_name,
            ) from exc
        return normalize_digest(raw)

    async def resolve(self, workload: WorkloadSpec) -> DigestPair:
        """Resolve both digests for *workload*; raises ``ResolveError``."""
        try:
            desired = await self.resolve_desired(workload.image_reference)
        except ResolveError as exc:
            exc.workload = workload.name
            raise
        running = await self.resolve_running(workload.name)
        log.debug(
            "digests_resolved",
            workload=workload.name,
            desired=desired,
            running=running,
        )
        return DigestPair(desired_digest=desired, running_digest=running)
