"""Data models for change detection, restarts and update cycles."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from compose_updater.utils import now_iso


class RestartMode(Enum):
    """Which workloads get restarted once any update is required."""

    WHOLE_STACK = "whole-stack"
    SUBSET = "subset"


@dataclass(frozen=True)
class WorkloadSpec:
    """One declared service and the image it runs."""

    name: str
    image_reference: str


@dataclass(frozen=True)
class SelectionPolicy:
    """Include/exclude filter applied to workload names.

    Exclusion always wins. An empty ``include`` set allows every workload
    that is not excluded.
    """

    include: frozenset[str] = frozenset()
    exclude: frozenset[str] = frozenset()

    @classmethod
    def from_lists(
        cls,
        include: list[str] | None = None,
        exclude: list[str] | None = None,
    ) -> SelectionPolicy:
        return cls(include=frozenset(include or ()), exclude=frozenset(exclude or ()))

    def allows(self, name: str) -> bool:
        if name in self.exclude:
            return False
        if self.include:
            return name in self.include
        return True

    def filter(self, workloads: list[WorkloadSpec]) -> list[WorkloadSpec]:
        return [w for w in workloads if self.allows(w.name)]

    @property
    def is_empty(self) -> bool:
        return not self.include and not self.exclude


@dataclass(frozen=True)
class DigestPair:
    """Desired (registry) and running digests for one workload."""

    desired_digest: str
    running_digest: str | None

    @property
    def update_required(self) -> bool:
        if self.running_digest is None:
            return True
        return self.desired_digest != self.running_digest


@dataclass
class UpdateDecision:
    """Per-workload outcome of change detection."""

    workload_name: str
    required: bool
    reason: str
    digests: DigestPair | None = None
    skipped: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "workload": self.workload_name,
            "required": self.required,
            "reason": self.reason,
            "skipped": self.skipped,
            "desired_digest": self.digests.desired_digest if self.digests else None,
            "running_digest": self.digests.running_digest if self.digests else None,
        }


@dataclass
class DetectionResult:
    """Decisions for every active workload plus the cycle-level verdict."""

    decisions: list[UpdateDecision] = field(default_factory=list)

    @property
    def any_required(self) -> bool:
        return any(d.required for d in self.decisions)

    @property
    def required_names(self) -> list[str]:
        return [d.workload_name for d in self.decisions if d.required]

    @property
    def skipped_names(self) -> list[str]:
        return [d.workload_name for d in self.decisions if d.skipped]


@dataclass
class CommandResult:
    """Captured output and exit status of one orchestrator command."""

    command: str
    returncode: int
    output: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def text(self) -> str:
        return "\n".join(self.output)


@dataclass
class StepOutcome:
    """Result of one restart step (stop, pull, start)."""

    name: str
    ok: bool
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "ok": self.ok, "error": self.error}


@dataclass
class ExecutionReport:
    """All steps attempted by one ``UpdateExecutor.apply`` call."""

    target: list[str] | None
    steps: list[StepOutcome] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(step.ok for step in self.steps)

    @property
    def failed_steps(self) -> list[str]:
        return [step.name for step in self.steps if not step.ok]

    def to_dict(self) -> dict[str, Any]:
        return {
            "target": self.target,
            "ok": self.ok,
            "steps": [step.to_dict() for step in self.steps],
        }


class CycleStatus(Enum):
    """Outcome of one update cycle."""

    UP_TO_DATE = "up_to_date"
    NO_WORKLOADS = "no_workloads"
    UPDATED = "updated"
    PARTIAL = "partial"
    ABORTED = "aborted"


@dataclass
class CycleResult:
    """Summary of one full detection (and optional restart) pass."""

    status: CycleStatus
    decisions: list[UpdateDecision] = field(default_factory=list)
    restart_target: list[str] | None = None
    restarted: bool = False
    execution: ExecutionReport | None = None
    error: str | None = None
    started_at: str = field(default_factory=now_iso)
    completed_at: str | None = None
    duration_seconds: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.status not in (CycleStatus.ABORTED, CycleStatus.PARTIAL)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "decisions": [d.to_dict() for d in self.decisions],
            "restart_target": self.restart_target,
            "restarted": self.restarted,
            "execution": self.execution.to_dict() if self.execution else None,
            "error": self.error,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "duration_seconds": self.duration_seconds,
        }
