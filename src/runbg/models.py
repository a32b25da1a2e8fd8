from __future__ import annotations

from dataclasses import dataclass
from typing import Any

JOB_PREFIX = "cmd"
UNIT_SUFFIX = ".service"
CANONICAL_STATES = ("running", "failed", "inactive", "dead")
CLEANABLE_STATES = ("failed", "inactive", "dead")
STOPPABLE_ACTIVE_STATES = frozenset({"active", "activating", "reloading"})


class RunbgError(RuntimeError):
    """Base error for job lifecycle failures."""


class ConfigError(RunbgError):
    """Raised when the runbg config file is invalid."""


class SupervisorEnvironmentError(RunbgError):
    """Raised when systemd or one of its control tools is unavailable."""


class NotFoundError(RunbgError):
    """Raised when a job identifier is unknown to the supervisor."""


class StateError(RunbgError):
    """Raised when an action is invalid for the unit's current state."""


class EmptyCommand(RunbgError):
    """Raised when a job start is requested without a command."""


class SupervisorError(RunbgError):
    """Opaque supervisor failure carrying the raw diagnostic output."""

    def __init__(self, message: str, diagnostic: str = "") -> None:
        super().__init__(message)
        self.diagnostic = diagnostic.strip()


class SupervisorUnavailable(SupervisorError):
    pass


class LaunchError(SupervisorError):
    pass


class StopError(SupervisorError):
    pass


class CleanError(SupervisorError):
    pass


@dataclass(frozen=True)
class UnitRecord:
    name: str
    state: str
    description: str = ""

    def to_json(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "state": self.state,
            "description": self.description,
        }


@dataclass(frozen=True)
class BatchTarget:
    name: str
    state: str | None = None  # best-effort, may be stale


@dataclass(frozen=True)
class BatchResult:
    succeeded: int
    failed: int
    total: int
    confirmed: bool = True

    @property
    def ok(self) -> bool:
        return self.failed == 0
