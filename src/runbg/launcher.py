from __future__ import annotations

from typing import Protocol, Sequence

from runbg._logging import get_logger
from runbg.models import EmptyCommand
from runbg.naming import IdentifierAllocator, JobIdentifier

_log = get_logger("launcher")


class JobLaunchClient(Protocol):
    def launch(self, job: JobIdentifier, command: Sequence[str]) -> None: ...


def start_job(
    command: Sequence[str],
    *,
    supervisor: JobLaunchClient,
    allocator: IdentifierAllocator | None = None,
) -> JobIdentifier:
    """Start ``command`` as a new transient unit and return its identifier.

    Raises ``EmptyCommand`` for an empty command line and lets the
    supervisor's ``LaunchError`` propagate.
    """
    tokens = [str(token) for token in command]
    if not tokens:
        raise EmptyCommand("no command specified")
    job = (allocator or IdentifierAllocator()).allocate()
    _log.info("job_start_requested job=%s", job.name)
    supervisor.launch(job, tokens)
    return job
