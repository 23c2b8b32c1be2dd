"""Run results: per-plugin outcomes and the per-platform RunReport.

Pydantic v2 models so that reports can be printed, compared in tests and
serialised to JSON for automation.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field

from kernel_build.errors import MutationError


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class OutcomeStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"


class RunState(str, Enum):
    """Lifecycle of one platform run: pending -> running -> completed | aborted."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED = "aborted"


class RunStatus(str, Enum):
    """Overall verdict of a run."""
    OK = "ok"
    PARTIAL = "partial"
    ABORTED = "aborted"


_STATUS_RANK: dict[RunStatus, int] = {
    RunStatus.OK: 0,
    RunStatus.PARTIAL: 1,
    RunStatus.ABORTED: 2,
}


def worst_status(statuses: list[RunStatus]) -> RunStatus:
    """Return the most severe status (``ok`` for an empty list)."""
    return max(statuses, key=_STATUS_RANK.__getitem__, default=RunStatus.OK)


# ---------------------------------------------------------------------------
# Per-plugin outcome
# ---------------------------------------------------------------------------

class PluginFailure(BaseModel):
    """Serialisable description of a failed mutation."""

    kind: str = Field(default="MutationError")
    plugin: str
    platform: str
    cause_type: str = Field(..., description="Class name of the underlying exception")
    message: str = Field(..., description="String form of the underlying exception")
    fatal: bool = Field(default=False, description="True when the failure aborted the run")

    @classmethod
    def from_error(cls, error: MutationError, *, fatal: bool = False) -> "PluginFailure":
        return cls(
            plugin=error.plugin,
            platform=error.platform,
            cause_type=error.cause_type,
            message=str(error.cause),
            fatal=fatal,
        )


class PluginOutcome(BaseModel):
    """Result of invoking one plugin's mutation function."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    plugin: str
    platform: str
    status: OutcomeStatus
    duration_seconds: float = Field(default=0.0, ge=0.0)
    failure: Optional[PluginFailure] = None
    error: Optional[MutationError] = Field(default=None, exclude=True, repr=False)

    @computed_field  # type: ignore[misc]
    @property
    def succeeded(self) -> bool:
        return self.status == OutcomeStatus.SUCCESS


# ---------------------------------------------------------------------------
# RunReport
# ---------------------------------------------------------------------------

class RunReport(BaseModel):
    """Aggregate result of applying every plugin for one platform."""

    platform: str
    state: RunState = RunState.PENDING
    outcomes: list[PluginOutcome] = Field(default_factory=list)
    skipped: list[str] = Field(
        default_factory=list,
        description="Plugins not invoked because a critical plugin aborted the run",
    )
    started_at: Optional[str] = None
    finished_at: Optional[str] = None
    duration_seconds: float = Field(default=0.0, ge=0.0)

    @computed_field  # type: ignore[misc]
    @property
    def status(self) -> RunStatus:
        if self.state == RunState.ABORTED:
            return RunStatus.ABORTED
        if any(not o.succeeded for o in self.outcomes):
            return RunStatus.PARTIAL
        return RunStatus.OK

    def mark_running(self) -> None:
        self.state = RunState.RUNNING
        self.started_at = datetime.now(timezone.utc).isoformat()

    def mark_finished(self, state: RunState, duration: float) -> None:
        self.state = state
        self.finished_at = datetime.now(timezone.utc).isoformat()
        self.duration_seconds = max(duration, 0.0)

    def failures(self) -> list[PluginOutcome]:
        return [o for o in self.outcomes if not o.succeeded]

    def succeeded(self) -> list[str]:
        return [o.plugin for o in self.outcomes if o.succeeded]

    def statuses(self) -> dict[str, OutcomeStatus]:
        """Plugin name -> outcome status, in invocation order."""
        return {o.plugin: o.status for o in self.outcomes}

    def outcome_for(self, plugin: str) -> PluginOutcome | None:
        for outcome in self.outcomes:
            if outcome.plugin == plugin:
                return outcome
        return None
