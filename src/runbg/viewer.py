from __future__ import annotations

from typing import Callable, Protocol

from runbg._logging import get_logger
from runbg.naming import JobIdentifier

_log = get_logger("viewer")

DEFAULT_TAIL_LINES = 50

SectionCallback = Callable[[str, str], None]


class StatusClient(Protocol):
    def show_status(self, job: JobIdentifier | str) -> int: ...

    def stream_logs(
        self, job: JobIdentifier | str, tail_lines: int = ..., follow: bool = ...
    ) -> None: ...


def show_status(
    job: JobIdentifier | str,
    *,
    supervisor: StatusClient,
    follow: bool = False,
    tail_lines: int = DEFAULT_TAIL_LINES,
    on_section: SectionCallback | None = None,
) -> JobIdentifier:
    """Show a unit's status followed by its recent logs.

    ``on_section(kind, unit_name)`` is called before each part with kind
    ``"status"``, ``"logs"`` or ``"follow"``. A non-zero status exit (inactive
    or failed units) does not stop the log tail. An interrupt while following
    ends the view normally.
    """
    ident = job if isinstance(job, JobIdentifier) else JobIdentifier.parse(job)
    unit_name = ident.unit_name

    if on_section is not None:
        on_section("status", unit_name)
    rc = supervisor.show_status(ident)
    if rc != 0:
        _log.debug("status_nonzero unit=%s exit=%d", unit_name, rc)

    if on_section is not None:
        on_section("logs", unit_name)
        if follow:
            on_section("follow", unit_name)
    try:
        supervisor.stream_logs(ident, tail_lines, follow)
    except KeyboardInterrupt:
        if not follow:
            raise
        _log.info("log_follow_interrupted unit=%s", unit_name)
    return ident
