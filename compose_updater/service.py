"""Service runtime: wires the orchestrator, cycle, coordinator and triggers."""

from __future__ import annotations

import asyncio
import contextlib
import signal

from compose_updater.config import Settings
from compose_updater.coordinator import TriggerCoordinator
from compose_updater.cycle import UpdateCycle
from compose_updater.logging import get_logger
from compose_updater.models import CycleResult
from compose_updater.orchestrator import DockerComposeOrchestrator, Orchestrator
from compose_updater.server import WebhookServer, create_app

log = get_logger("compose_updater.service")


class UpdaterService:
    """Owns every trigger source and the single update worker."""

    def __init__(self, settings: Settings, orchestrator: Orchestrator | None = None) -> None:
        self._settings = settings
        self._orchestrator = orchestrator or DockerComposeOrchestrator(
            project_dir=settings.project_dir,
            compose_file=settings.compose_file,
            binary=settings.docker_binary,
            verbose=settings.verbose,
        )
        self.cycle = UpdateCycle(
            self._orchestrator,
            policy_path=settings.policy_path,
            restart_mode=settings.restart_mode_enum,
        )
        self.coordinator = TriggerCoordinator(self.cycle)
        self._timer_task: asyncio.Task[None] | None = None
        self._server: WebhookServer | None = None

    async def validate(self) -> None:
        """Load definitions once; a ``ConfigError`` here is fatal."""
        workloads, policy = await self.cycle.load_definitions()
        active = policy.filter(workloads)
        log.info(
            "definitions_loaded",
            workloads=len(workloads),
            active=len(active),
            restart_mode=self.cycle.restart_mode.value,
        )

    async def start(self) -> None:
        """Validate, bind the webhook listener, then start the worker and timer.

        The listener binds first so a port conflict fails startup before
        any cycle can begin.
        """
        await self.validate()

        if self._settings.webhook_enabled:
            app = create_app(
                self.coordinator,
                secret=self._settings.resolved_webhook_secret(),
                cycle=self.cycle,
            )
            server = WebhookServer(
                app,
                host=self._settings.webhook_host,
                port=self._settings.webhook_port,
            )
            await server.start()
            self._server = server

        self.coordinator.start()
        if self._settings.interval_seconds > 0:
            self._timer_task = asyncio.create_task(
                self._timer_loop(self._settings.interval_seconds), name="update-timer"
            )
        else:
            log.info("timer_disabled")

    async def stop(self) -> None:
        if self._timer_task is not None:
            self._timer_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._timer_task
            self._timer_task = None
        if self._server is not None:
            await self._server.stop()
            self._server = None
        await self.coordinator.stop()

    async def run_once(self) -> CycleResult | None:
        """Manual trigger: run exactly one cycle through the coordinator."""
        await self.validate()
        self.coordinator.start()
        try:
            await self.coordinator.trigger("manual")
            await self.coordinator.wait_idle()
        finally:
            await self.coordinator.stop()
        return self.cycle.last_result

    async def _timer_loop(self, interval: int) -> None:
        while True:
            await self.coordinator.trigger("timer")
            await asyncio.sleep(interval)


async def run_service(settings: Settings) -> None:
    """Run until SIGINT/SIGTERM."""
    service = UpdaterService(settings)
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop_event.set)

    try:
        await service.start()
        await stop_event.wait()
    finally:
        log.info("shutting_down")
        await service.stop()


async def run_once(settings: Settings) -> CycleResult | None:
    return await UpdaterService(settings).run_once()
