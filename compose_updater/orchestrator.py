"""Orchestrator boundary: every docker subprocess call lives here.

``Orchestrator`` is the interface the detector, resolver and executor
depend on. ``DockerComposeOrchestrator`` implements it on top of the
``docker`` / ``docker compose`` CLI.
"""

from __future__ import annotations

import asyncio
import contextlib
import shlex
from collections.abc import AsyncIterator, Sequence
from pathlib import Path
from typing import Any, Protocol

import yaml

from compose_updater.errors import ConfigError, ExecutionError
from compose_updater.logging import get_logger
from compose_updater.models import CommandResult, WorkloadSpec

log = get_logger("compose_updater.orchestrator")

COMPOSE_FILE_NAMES = (
    "docker-compose.yml",
    "docker-compose.yaml",
    "compose.yml",
    "compose.yaml",
)

# Longest single output line accepted from a docker command
STREAM_LIMIT = 1024 * 1024


class Orchestrator(Protocol):
    """Operations the updater needs from the container runtime.

    ``names=None`` on stop/start means the whole declared stack.
    """

    async def list_workload_specs(self) -> list[WorkloadSpec]: ...

    async def refresh_desired_state(self, workloads: Sequence[WorkloadSpec]) -> CommandResult: ...

    async def inspect_image_digest(self, image_reference: str) -> str: ...

    async def inspect_running_digest(self, workload_name: str) -> str | None: ...

    async def stop_workloads(self, names: Sequence[str] | None) -> CommandResult: ...

    async def start_workloads(self, names: Sequence[str] | None) -> CommandResult: ...


class CommandStream:
    """A subprocess whose merged stdout/stderr is consumed line by line.

    Iterate it once with ``async for``; ``returncode`` is set after the
    stream is exhausted.
    """

    def __init__(
        self,
        args: Sequence[str],
        cwd: str | None = None,
        limit: int = STREAM_LIMIT,
    ) -> None:
        self.args = list(args)
        self.returncode: int | None = None
        self._cwd = cwd
        self._limit = limit
        self._started = False

    @property
    def command(self) -> str:
        return shlex.join(self.args)

    def __aiter__(self) -> AsyncIterator[str]:
        if self._started:
            raise RuntimeError(f"Command stream already consumed: {self.command}")
        self._started = True
        return self._lines()

    async def _lines(self) -> AsyncIterator[str]:
        try:
            proc = await asyncio.create_subprocess_exec(
                *self.args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
                cwd=self._cwd,
                limit=self._limit,
            )
        except OSError as exc:
            self.returncode = -1
            raise ExecutionError(
                f"Failed to start command: {exc}",
                command=self.command,
                returncode=-1,
            ) from exc

        assert proc.stdout is not None
        drained = False
        try:
            async for raw in proc.stdout:
                yield raw.decode(errors="replace").rstrip("\r\n")
            drained = True
        except ValueError as exc:
            # a single output line overran the stream buffer
            self.returncode = -1
            raise ExecutionError(
                f"Failed to read command output: {exc}",
                command=self.command,
                returncode=-1,
            ) from exc
        finally:
            if not drained:
                await _terminate(proc)
        self.returncode = await proc.wait()


async def _terminate(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is None:
        with contextlib.suppress(ProcessLookupError):
            proc.kill()
    await proc.wait()

def _noop(action: str) -> CommandResult:
    # compose treats "no services" as "every service"
    log.debug("compose_command_skipped", action=action, reason="no services")
    return CommandResult(command="", returncode=0)


class DockerComposeOrchestrator:
    """Docker Compose implementation of ``Orchestrator``."""

    def __init__(
        self,
        project_dir: str = ".",
        compose_file: str | None = None,
        binary: str = "docker",
        verbose: bool = False,
    ) -> None:
        self._project_dir = project_dir
        self._compose_file = compose_file
        self._binary = binary
        self._verbose = verbose

    # ------------------------------------------------------------------
    # Workload discovery
    # ------------------------------------------------------------------

    def compose_path(self) -> Path:
        """Locate the compose file, raising ``ConfigError`` when none exists."""
        if self._compose_file:
            path = Path(self._compose_file)
            if not path.is_absolute():
                path = Path(self._project_dir) / path
            if not path.is_file():
                raise ConfigError(f"Compose file not found: {path}")
            return path

        for name in COMPOSE_FILE_NAMES:
            candidate = Path(self._project_dir) / name
            if candidate.is_file():
                return candidate
        raise ConfigError(
            f"No compose file found in {self._project_dir} (tried {', '.join(COMPOSE_FILE_NAMES)})"
        )

    async def list_workload_specs(self) -> list[WorkloadSpec]:
        path = self.compose_path()
        try:
            data: Any = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError) as exc:
            raise ConfigError(f"Failed to read compose file {path}: {exc}") from exc

        if not isinstance(data, dict):
            raise ConfigError(f"{path}: compose file must be a mapping")
        services = data.get("services")
        if not isinstance(services, dict):
            raise ConfigError(f"{path}: 'services' must be a mapping")

        workloads: list[WorkloadSpec] = []
        for name, service in services.items():
            if not isinstance(service, dict):
                raise ConfigError(f"{path}: service '{name}' must be a mapping")
            image = service.get("image")
            if not image:
                log.debug("service_without_image", service=name)
                continue
            workloads.append(WorkloadSpec(name=str(name), image_reference=str(image)))
        return workloads

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def refresh_desired_state(self, workloads: Sequence[WorkloadSpec]) -> CommandResult:
        names = [w.name for w in workloads]
        return await self._run(self._compose_args("pull", *names))

    async def inspect_image_digest(self, image_reference: str) -> str:
        result = await self._run(["image", "inspect", "--format={{.Id}}", image_reference])
        return result.text

    async def inspect_running_digest(self, workload_name: str) -> str | None:
        result = await self._run(self._compose_args("ps", "-q", workload_name))
        container_ids = [line.strip() for line in result.output if line.strip()]
        if not container_ids:
            return None
        if len(container_ids) > 1:
            log.debug(
                "multiple_containers_for_service",
                service=workload_name,
                containers=len(container_ids),
            )
        inspected = await self._run(
            ["container", "inspect", "--format={{.Image}}", container_ids[0]]
        )
        return inspected.text

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def stop_workloads(self, names: Sequence[str] | None) -> CommandResult:
        if names is not None and not names:
            return _noop("stop")
        if names is None:
            return await self._run(self._compose_args("down"))
        return await self._run(self._compose_args("stop", *names))

    async def start_workloads(self, names: Sequence[str] | None) -> CommandResult:
        if names is not None and not names:
            return _noop("up")
        if names is None:
            return await self._run(self._compose_args("up", "-d"))
        return await self._run(self._compose_args("up", "-d", *names))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _compose_args(self, *args: str) -> list[str]:
        return ["compose", "-f", str(self.compose_path()), *args]

    async def _run(self, args: Sequence[str]) -> CommandResult:
        """Run a docker command, logging output as it arrives."""
        stream = CommandStream([self._binary, *args], cwd=self._project_dir)
        lines: list[str] = []
        async for line in stream:
            lines.append(line)
            if self._verbose:
                log.info("command_output", command=stream.command, line=line)
            else:
                log.debug("command_output", command=stream.command, line=line)

        result = CommandResult(
            command=stream.command,
            returncode=stream.returncode if stream.returncode is not None else -1,
            output=lines,
        )
        if not result.ok:
            raise ExecutionError(
                f"Command failed (rc={result.returncode}): {result.command}",
                command=result.command,
                returncode=result.returncode,
                output=result.text,
            )
        return result
