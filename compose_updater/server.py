"""aiohttp server exposing the update webhook.

Endpoints:
- ``POST /update``  signed trigger (``X-Webhook-Signature``), returns "accepted"
                    or 503 once the coordinator is stopping
- ``GET /status``   coordinator and last-cycle state (signed over an empty body)
- ``GET /health``   liveness, never authenticated
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any

from aiohttp import web

from compose_updater.auth import SIGNATURE_HEADER, require_signature, verify_signature
from compose_updater.coordinator import TriggerCoordinator, TriggerOutcome
from compose_updater.errors import AuthError
from compose_updater.logging import get_logger

if TYPE_CHECKING:
    from compose_updater.cycle import UpdateCycle

log = get_logger("compose_updater.server")


def _unauthorized() -> web.Response:
    return web.json_response({"error": "Unauthorized"}, status=401)


def create_app(
    coordinator: TriggerCoordinator,
    secret: str = "",
    cycle: UpdateCycle | None = None,
) -> web.Application:
    """Build the aiohttp application.

    An empty *secret* leaves every endpoint open; that posture is logged.
    """
    started_at = time.monotonic()
    if not secret:
        log.warning("webhook_auth_disabled", reason="no shared secret configured")

    async def handle_update(request: web.Request) -> web.Response:
        body = await request.read()
        try:
            require_signature(body, request.headers.get(SIGNATURE_HEADER), secret)
        except AuthError as exc:
            log.warning("webhook_auth_failed", remote=request.remote, reason=str(exc))
            return _unauthorized()

        outcome = await coordinator.trigger("webhook")
        log.info("webhook_trigger", remote=request.remote, outcome=outcome.value)
        if outcome is TriggerOutcome.REJECTED:
            return web.json_response({"error": "Service stopping"}, status=503)
        return web.Response(text="accepted")

    async def handle_status(request: web.Request) -> web.Response:
        body = await request.read()
        if not verify_signature(body, request.headers.get(SIGNATURE_HEADER), secret):
            return _unauthorized()

        payload: dict[str, Any] = {
            **coordinator.status_snapshot(),
            "uptime_seconds": round(time.monotonic() - started_at, 1),
        }
        if cycle is not None:
            last = cycle.last_result
            payload["restart_mode"] = cycle.restart_mode.value
            payload["last_cycle"] = last.to_dict() if last else None
        return web.json_response(payload)

    async def handle_health(_request: web.Request) -> web.Response:
        return web.json_response({"status": "ok"})

    app = web.Application()
    app.router.add_post("/update", handle_update)
    app.router.add_get("/status", handle_status)
    app.router.add_get("/health", handle_health)
    return app


class WebhookServer:
    """Runs the webhook app on its own ``AppRunner``."""

    def __init__(
        self,
        app: web.Application,
        host: str = "0.0.0.0",
        port: int = 8080,
    ) -> None:
        self._app = app
        self._host = host
        self._port = port
        self._runner: web.AppRunner | None = None

    async def start(self) -> None:
        runner = web.AppRunner(self._app)
        await runner.setup()
        site = web.TCPSite(runner, self._host, self._port)
        try:
            await site.start()
        except OSError:
            await runner.cleanup()
            raise
        self._runner = runner
        log.info("webhook_server_started", host=self._host, port=self._port)

    async def stop(self) -> None:
        if self._runner is None:
            return
        await self._runner.cleanup()
        self._runner = None
        log.info("webhook_server_stopped")
