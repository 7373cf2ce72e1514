"""Shared fixtures for compose_updater tests."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import pytest

from compose_updater.models import CommandResult, WorkloadSpec


class FakeOrchestrator:
    """In-memory orchestrator recording every call.

    ``desired`` maps image references and ``running`` maps workload names to
    a digest string, ``None`` (running only) or an exception to raise.
    """

    def __init__(self) -> None:
        self.workloads: list[WorkloadSpec] = []
        self.desired: dict[str, Any] = {}
        self.running: dict[str, Any] = {}
        self.calls: list[tuple[str, Any]] = []
        self.list_error: Exception | None = None
        self.refresh_error: Exception | None = None
        self.stop_error: Exception | None = None
        self.start_error: Exception | None = None

    def add(self, name: str, image: str, desired: Any, running: Any) -> None:
        self.workloads.append(WorkloadSpec(name=name, image_reference=image))
        self.desired[image] = desired
        self.running[name] = running

    def called(self, method: str) -> list[Any]:
        return [args for name, args in self.calls if name == method]

    async def list_workload_specs(self) -> list[WorkloadSpec]:
        self.calls.append(("list", None))
        if self.list_error is not None:
            raise self.list_error
        return list(self.workloads)

    async def refresh_desired_state(self, workloads: Sequence[WorkloadSpec]) -> CommandResult:
        self.calls.append(("refresh", [w.name for w in workloads]))
        if self.refresh_error is not None:
            raise self.refresh_error
        return CommandResult(command="docker compose pull", returncode=0)

    async def inspect_image_digest(self, image_reference: str) -> str:
        self.calls.append(("inspect_image", image_reference))
        value = self.desired[image_reference]
        if isinstance(value, Exception):
            raise value
        return value

    async def inspect_running_digest(self, workload_name: str) -> str | None:
        self.calls.append(("inspect_running", workload_name))
        value = self.running.get(workload_name)
        if isinstance(value, Exception):
            raise value
        return value

    async def stop_workloads(self, names: Sequence[str] | None) -> CommandResult:
        self.calls.append(("stop", None if names is None else list(names)))
        if self.stop_error is not None:
            raise self.stop_error
        return CommandResult(command="docker compose down", returncode=0)

    async def start_workloads(self, names: Sequence[str] | None) -> CommandResult:
        self.calls.append(("start", None if names is None else list(names)))
        if self.start_error is not None:
            raise self.start_error
        return CommandResult(command="docker compose up -d", returncode=0)


@pytest.fixture
def orchestrator() -> FakeOrchestrator:
    return FakeOrchestrator()


@pytest.fixture
def compose_project(tmp_path):
    """Write a compose file into a temp project dir and return the dir."""

    def _write(content: str, name: str = "docker-compose.yml"):
        (tmp_path / name).write_text(content, encoding="utf-8")
        return tmp_path

    return _write
