from __future__ import annotations

from typing import Any

import pytest

from runbg.jobs import clean_jobs, kill_all_jobs, kill_job, list_jobs
from runbg.launcher import start_job
from runbg.models import (
    EmptyCommand,
    LaunchError,
    NotFoundError,
    StateError,
    StopError,
)
from runbg.naming import IdentifierAllocator, JobIdentifier
from runbg.viewer import show_status

RUNNING_TABLE = (
    "cmd-1.service loaded active running first\n"
    "cmd-2.service loaded active running second\n"
    "cmd-3.service loaded active running third\n"
)


def _control_calls(fake_systemd) -> list[list[str]]:
    return [
        call
        for call in fake_systemd.calls
        if any(verb in call for verb in ("stop", "reset-failed"))
    ]


def test_list_jobs_groups_managed_units(fake_systemd, supervisor) -> None:
    fake_systemd.tables["--all"] = (
        "cmd-1.service loaded failed failed boom\n"
        "dbus.service loaded active running bus\n"
        "cmd-2.service loaded active running work\n"
        "cmd-3.service loaded failed failed again\n"
    )
    groups = list_jobs(supervisor)
    assert list(groups) == ["failed", "active"]
    assert [record.name for record in groups["failed"]] == [
        "cmd-1.service",
        "cmd-3.service",
    ]


def test_clean_with_nothing_to_clean_issues_no_control_calls(
    fake_systemd, supervisor
) -> None:
    result = clean_jobs(supervisor, confirm=lambda _t: pytest.fail("no prompt expected"))
    assert (result.succeeded, result.failed, result.total) == (0, 0, 0)
    assert result.ok
    assert _control_calls(fake_systemd) == []
    assert fake_systemd.verbs("show") == []


def test_clean_unions_states_and_dedupes(fake_systemd, supervisor) -> None:
    fake_systemd.tables["--state=failed"] = "cmd-1.service loaded failed failed x\n"
    fake_systemd.tables["--state=inactive"] = (
        "cmd-2.service loaded inactive dead y\n"
        "cmd-1.service loaded failed failed x\n"
    )
    fake_systemd.tables["--state=dead"] = "cmd-2.service loaded inactive dead y\n"
    fake_systemd.states.update({"cmd-1.service": "failed", "cmd-2.service": "inactive"})
    previews: list[Any] = []

    def _confirm(targets):
        previews.append(list(targets))
        return True

    result = clean_jobs(supervisor, confirm=_confirm)
    assert (result.succeeded, result.failed, result.total) == (2, 0, 2)
    assert [(t.name, t.state) for t in previews[0]] == [
        ("cmd-1.service", "failed"),
        ("cmd-2.service", "inactive"),
    ]
    assert [call[-1] for call in fake_systemd.verbs("reset-failed")] == [
        "cmd-1.service",
        "cmd-2.service",
    ]


def test_clean_skips_states_whose_query_fails(fake_systemd, supervisor) -> None:
    fake_systemd.table_rc["--state=failed"] = 1
    fake_systemd.tables["--state=dead"] = "cmd-9.service loaded inactive dead z\n"
    result = clean_jobs(supervisor, confirm=lambda _t: True)
    assert result.total == 1


def test_clean_targets_follow_state_order_not_query_order(
    fake_systemd, supervisor
) -> None:
    fake_systemd.tables["--state=dead"] = (
        "cmd-5.service loaded inactive dead later\n"
        "cmd-4.service loaded failed failed earlier\n"
        "cmd-6.service loaded deactivating stop-sigterm busy\n"
    )
    result = clean_jobs(supervisor, confirm=lambda _t: True)
    assert result.total == 2
    assert [call[-1] for call in fake_systemd.verbs("reset-failed")] == [
        "cmd-4.service",
        "cmd-5.service",
    ]


def test_kill_all_continues_past_a_failed_stop(fake_systemd, supervisor) -> None:
    fake_systemd.tables["--state=running"] = RUNNING_TABLE
    fake_systemd.failures[("stop", "cmd-2.service")] = (1, "Job canceled\n")
    events: list[dict[str, Any]] = []
    result = kill_all_jobs(supervisor, confirm=lambda _t: True, on_event=events.append)
    assert (result.succeeded, result.failed, result.total) == (2, 1, 3)
    assert [call[-1] for call in fake_systemd.verbs("stop")] == [
        "cmd-1.service",
        "cmd-2.service",
        "cmd-3.service",
    ]
    failures = [event for event in events if event["event"] == "target_failed"]
    assert failures[0]["target"] == "cmd-2.service"


def test_kill_all_abort_has_no_side_effects(fake_systemd, supervisor) -> None:
    fake_systemd.tables["--state=running"] = RUNNING_TABLE
    result = kill_all_jobs(supervisor, confirm=lambda _t: False)
    assert not result.confirmed
    assert _control_calls(fake_systemd) == []


def test_kill_job_requires_running_state(fake_systemd, supervisor) -> None:
    fake_systemd.states["cmd-1.service"] = "failed"
    with pytest.raises(StateError, match="state: failed"):
        kill_job("cmd-1", supervisor=supervisor)
    assert fake_systemd.verbs("stop") == []


def test_kill_job_stops_activating_unit(fake_systemd, supervisor) -> None:
    fake_systemd.states["cmd-1.service"] = "activating"
    job = kill_job("cmd-1.service", supervisor=supervisor)
    assert job == JobIdentifier("cmd-1")
    assert fake_systemd.verbs("stop")[-1][-1] == "cmd-1.service"


def test_kill_job_unknown_and_failed_stop(fake_systemd, supervisor) -> None:
    with pytest.raises(NotFoundError):
        kill_job("cmd-404", supervisor=supervisor)
    fake_systemd.states["cmd-1.service"] = "active"
    fake_systemd.failures[("stop", "cmd-1.service")] = (1, "denied")
    with pytest.raises(StopError):
        kill_job("cmd-1", supervisor=supervisor)


def test_start_job_allocates_and_launches(fake_systemd, supervisor) -> None:
    allocator = IdentifierAllocator(clock=lambda: 1700000000.0)
    job = start_job(["python3", "-m", "http.server"], supervisor=supervisor, allocator=allocator)
    assert job.name == "cmd-1700000000"
    assert fake_systemd.calls[-1][-4:] == [
        "--unit=cmd-1700000000",
        "python3",
        "-m",
        "http.server",
    ]


def test_start_job_rejects_empty_command(fake_systemd, supervisor) -> None:
    with pytest.raises(EmptyCommand):
        start_job([], supervisor=supervisor)
    assert fake_systemd.calls == []


def test_start_job_propagates_launch_error(fake_systemd, supervisor) -> None:
    fake_systemd.launch_result = (1, "Failed to start transient service unit")
    with pytest.raises(LaunchError):
        start_job(["true"], supervisor=supervisor)


def test_show_status_fetches_logs_for_failed_unit(fake_systemd, supervisor) -> None:
    sections: list[tuple[str, str]] = []
    show_status(
        "cmd-5",
        supervisor=supervisor,
        on_section=lambda kind, unit: sections.append((kind, unit)),
    )
    assert sections == [("status", "cmd-5.service"), ("logs", "cmd-5.service")]
    journal = fake_systemd.calls[-1]
    assert journal[0] == "journalctl"
    assert journal[journal.index("-n") + 1] == "50"
    assert "-f" not in journal


def test_show_status_follow_ends_on_interrupt(fake_systemd, supervisor) -> None:
    fake_systemd.journal_interrupt = True
    sections: list[str] = []
    show_status(
        "cmd-5",
        supervisor=supervisor,
        follow=True,
        on_section=lambda kind, _unit: sections.append(kind),
    )
    assert sections == ["status", "logs", "follow"]
