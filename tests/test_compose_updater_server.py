"""Tests for compose_updater.server — aiohttp webhook endpoints."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, PropertyMock, patch

import pytest
from aiohttp import web
from aiohttp.test_utils import TestClient, TestServer

from compose_updater.auth import compute_signature
from compose_updater.coordinator import TriggerOutcome
from compose_updater.models import CycleResult, CycleStatus, RestartMode
from compose_updater.server import WebhookServer, create_app

SECRET = "my-secret"

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_mock_coordinator(outcome: TriggerOutcome = TriggerOutcome.STARTED) -> MagicMock:
    """Return a mock TriggerCoordinator."""
    coordinator = MagicMock()
    coordinator.trigger = AsyncMock(return_value=outcome)
    coordinator.status_snapshot = MagicMock(
        return_value={"state": "idle", "cycles_completed": 3}
    )
    return coordinator


def _make_mock_cycle(last: CycleResult | None = None) -> MagicMock:
    cycle = MagicMock()
    type(cycle).last_result = PropertyMock(return_value=last)
    type(cycle).restart_mode = PropertyMock(return_value=RestartMode.WHOLE_STACK)
    return cycle


async def _make_client(
    coordinator: MagicMock | None = None,
    secret: str = "",
    cycle: MagicMock | None = None,
) -> TestClient:
    """Create an aiohttp TestClient wrapping our server app."""
    coord = coordinator or _make_mock_coordinator()
    app = create_app(coordinator=coord, secret=secret, cycle=cycle)
    client = TestClient(TestServer(app))
    await client.start_server()
    return client


# ---------------------------------------------------------------------------
# TestUpdateEndpoint
# ---------------------------------------------------------------------------


class TestUpdateEndpoint:
    """Tests for POST /update."""

    async def test_valid_signature_triggers(self) -> None:
        coord = _make_mock_coordinator()
        client = await _make_client(coordinator=coord, secret=SECRET)
        body = b'{"push_data": {"tag": "latest"}}'
        try:
            resp = await client.post(
                "/update",
                data=body,
                headers={"X-Webhook-Signature": compute_signature(body, SECRET)},
            )
            assert resp.status == 200
            assert await resp.text() == "accepted"
            coord.trigger.assert_awaited_once_with("webhook")
        finally:
            await client.close()

    async def test_coalesced_trigger_still_accepted(self) -> None:
        coord = _make_mock_coordinator(outcome=TriggerOutcome.COALESCED)
        client = await _make_client(coordinator=coord, secret=SECRET)
        body = b"ping"
        try:
            resp = await client.post(
                "/update",
                data=body,
                headers={"X-Webhook-Signature": compute_signature(body, SECRET)},
            )
            assert resp.status == 200
            assert await resp.text() == "accepted"
        finally:
            await client.close()

    async def test_rejected_trigger_returns_503(self) -> None:
        coord = _make_mock_coordinator(outcome=TriggerOutcome.REJECTED)
        client = await _make_client(coordinator=coord, secret=SECRET)
        body = b"ping"
        try:
            resp = await client.post(
                "/update",
                data=body,
                headers={"X-Webhook-Signature": compute_signature(body, SECRET)},
            )
            assert resp.status == 503
            data = await resp.json()
            assert data["error"] == "Service stopping"
        finally:
            await client.close()

    async def test_prefixed_signature_accepted(self) -> None:
        coord = _make_mock_coordinator()
        client = await _make_client(coordinator=coord, secret=SECRET)
        body = b"payload"
        try:
            resp = await client.post(
                "/update",
                data=body,
                headers={"X-Webhook-Signature": "sha256=" + compute_signature(body, SECRET)},
            )
            assert resp.status == 200
        finally:
            await client.close()

    async def test_missing_signature_401(self) -> None:
        coord = _make_mock_coordinator()
        client = await _make_client(coordinator=coord, secret=SECRET)
        try:
            resp = await client.post("/update", data=b"payload")
            assert resp.status == 401
            data = await resp.json()
            assert data["error"] == "Unauthorized"
            coord.trigger.assert_not_awaited()
        finally:
            await client.close()

    async def test_tampered_body_401(self) -> None:
        coord = _make_mock_coordinator()
        client = await _make_client(coordinator=coord, secret=SECRET)
        signature = compute_signature(b"payload", SECRET)
        try:
            resp = await client.post(
                "/update",
                data=b"paylaod",
                headers={"X-Webhook-Signature": signature},
            )
            assert resp.status == 401
            coord.trigger.assert_not_awaited()
        finally:
            await client.close()

    async def test_no_secret_allows_unsigned(self) -> None:
        coord = _make_mock_coordinator()
        client = await _make_client(coordinator=coord, secret="")
        try:
            resp = await client.post("/update", data=b"anything")
            assert resp.status == 200
            coord.trigger.assert_awaited_once_with("webhook")
        finally:
            await client.close()

    async def test_get_not_allowed(self) -> None:
        client = await _make_client(secret=SECRET)
        try:
            resp = await client.get("/update")
            assert resp.status == 405
        finally:
            await client.close()

    async def test_put_not_allowed(self) -> None:
        client = await _make_client()
        try:
            resp = await client.put("/update", data=b"x")
            assert resp.status == 405
        finally:
            await client.close()

    async def test_disabled_auth_is_logged(self) -> None:
        with patch("compose_updater.server.log") as mock_log:
            create_app(coordinator=_make_mock_coordinator(), secret="")
        mock_log.warning.assert_called_once()
        assert mock_log.warning.call_args.args[0] == "webhook_auth_disabled"


# ---------------------------------------------------------------------------
# TestStatusAndHealth
# ---------------------------------------------------------------------------


class TestStatusAndHealth:
    """Tests for GET /status and GET /health."""

    async def test_health_no_auth_required(self) -> None:
        client = await _make_client(secret="super-secret")
        try:
            resp = await client.get("/health")
            assert resp.status == 200
            assert (await resp.json())["status"] == "ok"
        finally:
            await client.close()

    async def test_status_requires_signature(self) -> None:
        client = await _make_client(secret=SECRET)
        try:
            resp = await client.get("/status")
            assert resp.status == 401
        finally:
            await client.close()

    async def test_status_with_signature(self) -> None:
        last = CycleResult(status=CycleStatus.UP_TO_DATE)
        client = await _make_client(secret=SECRET, cycle=_make_mock_cycle(last))
        try:
            resp = await client.get(
                "/status",
                headers={"X-Webhook-Signature": compute_signature(b"", SECRET)},
            )
            assert resp.status == 200
            data = await resp.json()
            assert data["state"] == "idle"
            assert data["cycles_completed"] == 3
            assert data["restart_mode"] == "whole-stack"
            assert data["last_cycle"]["status"] == "up_to_date"
            assert "uptime_seconds" in data
        finally:
            await client.close()

    async def test_status_without_cycle(self) -> None:
        client = await _make_client()
        try:
            resp = await client.get("/status")
            data = await resp.json()
            assert "last_cycle" not in data
        finally:
            await client.close()


# ---------------------------------------------------------------------------
# TestWebhookServerLifecycle
# ---------------------------------------------------------------------------


class TestWebhookServerLifecycle:
    """Tests for WebhookServer start/stop."""

    async def test_start_stop(self) -> None:
        server = WebhookServer(web.Application(), host="127.0.0.1", port=9090)

        with (
            patch.object(web, "AppRunner") as mock_runner_cls,
            patch.object(web, "TCPSite") as mock_site_cls,
        ):
            mock_runner = AsyncMock()
            mock_runner_cls.return_value = mock_runner
            mock_site = AsyncMock()
            mock_site_cls.return_value = mock_site

            await server.start()

            mock_runner.setup.assert_awaited_once()
            mock_site_cls.assert_called_once_with(mock_runner, "127.0.0.1", 9090)
            mock_site.start.assert_awaited_once()

            await server.stop()
            mock_runner.cleanup.assert_awaited_once()
            assert server._runner is None

    async def test_stop_without_start(self) -> None:
        server = WebhookServer(web.Application())
        await server.stop()
        assert server._runner is None

    async def test_bind_failure_cleans_up_runner(self) -> None:
        server = WebhookServer(web.Application(), host="127.0.0.1", port=9090)

        with (
            patch.object(web, "AppRunner") as mock_runner_cls,
            patch.object(web, "TCPSite") as mock_site_cls,
        ):
            mock_runner = AsyncMock()
            mock_runner_cls.return_value = mock_runner
            mock_site = AsyncMock()
            mock_site.start.side_effect = OSError(98, "address already in use")
            mock_site_cls.return_value = mock_site

            with pytest.raises(OSError, match="address already in use"):
                await server.start()

        mock_runner.cleanup.assert_awaited_once()
        assert server._runner is None
