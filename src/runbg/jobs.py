from __future__ import annotations

from runbg._logging import get_logger
from runbg.batch import BatchEventCallback, ConfirmFn, run_batch
from runbg.models import (
    CLEANABLE_STATES,
    JOB_PREFIX,
    STOPPABLE_ACTIVE_STATES,
    BatchResult,
    StateError,
    SupervisorError,
    UnitRecord,
)
from runbg.naming import JobIdentifier
from runbg.registry import group_by_state, select_names
from runbg.supervisor import SystemdSupervisor
from runbg.units import parse_units

_log = get_logger("jobs")


def list_jobs(
    supervisor: SystemdSupervisor, *, prefix: str = JOB_PREFIX
) -> dict[str, list[UnitRecord]]:
    return group_by_state(parse_units(supervisor.query_all(), prefix=prefix))


def list_job_names(
    supervisor: SystemdSupervisor, state: str, *, prefix: str = JOB_PREFIX
) -> list[str]:
    records = parse_units(supervisor.query_units(state), prefix=prefix)
    return [record.name for record in records]


def clean_jobs(
    supervisor: SystemdSupervisor,
    *,
    confirm: ConfirmFn,
    assume_yes: bool = False,
    on_event: BatchEventCallback | None = None,
    prefix: str = JOB_PREFIX,
) -> BatchResult:
    """Reset failed, inactive and dead managed units.

    Each cleanable state is queried separately; a failed query is logged and
    skipped. Targets are taken from the merged records in canonical state
    order, so a unit listed under several filters is cleaned once.
    """
    records: list[UnitRecord] = []
    for state in CLEANABLE_STATES:
        try:
            records.extend(parse_units(supervisor.query_units(state), prefix=prefix))
        except SupervisorError as exc:
            _log.warning("clean_query_failed state=%s error=%s", state, exc)
    targets = select_names(group_by_state(records), CLEANABLE_STATES)
    return run_batch(
        targets,
        supervisor.reset_failed,
        confirm=confirm,
        annotate=supervisor.query_state,
        on_event=on_event,
        assume_yes=assume_yes,
        operation="clean",
        prefix=prefix,
    )


def kill_all_jobs(
    supervisor: SystemdSupervisor,
    *,
    confirm: ConfirmFn,
    assume_yes: bool = False,
    on_event: BatchEventCallback | None = None,
    prefix: str = JOB_PREFIX,
) -> BatchResult:
    """Stop every running managed unit."""
    running = list_job_names(supervisor, "running", prefix=prefix)
    return run_batch(
        running,
        supervisor.stop,
        confirm=confirm,
        on_event=on_event,
        assume_yes=assume_yes,
        operation="kill-all",
        prefix=prefix,
    )


def kill_job(
    job: JobIdentifier | str, *, supervisor: SystemdSupervisor
) -> JobIdentifier:
    ident = job if isinstance(job, JobIdentifier) else JobIdentifier.parse(job)
    state = supervisor.query_state(ident)
    if state not in STOPPABLE_ACTIVE_STATES:
        raise StateError(f"unit '{ident.unit_name}' is not running (state: {state})")
    supervisor.stop(ident)
    return ident
