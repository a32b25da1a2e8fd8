from __future__ import annotations

import shutil
import subprocess
from pathlib import Path
from typing import Any, Callable, Sequence

from runbg._logging import get_logger
from runbg.models import (
    CleanError,
    LaunchError,
    NotFoundError,
    StopError,
    SupervisorEnvironmentError,
    SupervisorError,
    SupervisorUnavailable,
)
from runbg.naming import JobIdentifier

_log = get_logger("supervisor")

Runner = Callable[..., "subprocess.CompletedProcess[str]"]

REQUIRED_TOOLS = ("systemctl", "systemd-run", "journalctl")
_UNIT_QUERY_FLAGS = ("--no-pager", "--no-legend", "--plain")


def _as_identifier(job: JobIdentifier | str) -> JobIdentifier:
    if isinstance(job, JobIdentifier):
        return job
    return JobIdentifier.parse(job)


def _init_is_systemd(runner: Runner, comm_path: Path) -> bool:
    if shutil.which("pidof") is not None:
        try:
            pidof = runner(
                ["pidof", "systemd"],
                stdout=subprocess.PIPE,
                stderr=subprocess.DEVNULL,
                text=True,
                check=False,
            )
        except OSError:
            pidof = None
        if pidof is not None and pidof.returncode == 0 and (pidof.stdout or "").strip():
            return True
    try:
        return comm_path.read_text(encoding="utf-8").strip() == "systemd"
    except OSError:
        return False


class SystemdSupervisor:
    """Thin client over ``systemd-run``, ``systemctl`` and ``journalctl``.

    Every call blocks on one subprocess. Captured calls merge stderr into
    stdout so supervisor diagnostics travel with the raised error; passthrough
    calls inherit the terminal.
    """

    def __init__(
        self,
        *,
        user_scope: bool = True,
        runner: Runner = subprocess.run,
    ) -> None:
        self.user_scope = user_scope
        self._run = runner

    def _scope(self) -> list[str]:
        return ["--user"] if self.user_scope else []

    def _invoke(
        self, argv: list[str], **kwargs: Any
    ) -> subprocess.CompletedProcess[str]:
        _log.debug("supervisor_call argv=%s", " ".join(argv))
        try:
            return self._run(argv, check=False, **kwargs)
        except FileNotFoundError as exc:
            raise SupervisorEnvironmentError(
                f"required command '{argv[0]}' is not available in PATH"
            ) from exc

    def _capture(self, argv: list[str]) -> tuple[int, str]:
        completed = self._invoke(
            argv, stdout=subprocess.PIPE, stderr=subprocess.STDOUT, text=True
        )
        return completed.returncode, completed.stdout or ""

    def _passthrough(self, argv: list[str]) -> int:
        return self._invoke(argv).returncode

    def check_environment(self, *, comm_path: Path = Path("/proc/1/comm")) -> None:
        if not _init_is_systemd(self._run, comm_path):
            raise SupervisorEnvironmentError(
                "systemd is not available on this system (init process is not systemd)"
            )
        for tool in REQUIRED_TOOLS:
            if shutil.which(tool) is None:
                raise SupervisorEnvironmentError(
                    f"required command '{tool}' is not available in PATH"
                )

    def launch(self, job: JobIdentifier, command: Sequence[str]) -> None:
        argv = [
            "systemd-run",
            *self._scope(),
            "--same-dir",
            f"--unit={job.name}",
            *command,
        ]
        rc, output = self._capture(argv)
        if rc != 0:
            raise LaunchError(
                f"systemd-run failed for {job.name} (exit {rc})", output
            )
        _log.info("job_launched unit=%s command=%s", job.unit_name, " ".join(command))

    def _query_table(self, selector: str) -> str:
        argv = [
            "systemctl",
            *self._scope(),
            "--type=service",
            selector,
            *_UNIT_QUERY_FLAGS,
        ]
        rc, output = self._capture(argv)
        # Non-zero with output is a partial listing, not a failure.
        if rc != 0 and not output.strip():
            raise SupervisorUnavailable(
                f"failed to query systemctl ({selector}, exit {rc})", output
            )
        return output

    def query_all(self) -> str:
        return self._query_table("--all")

    def query_units(self, state: str) -> str:
        return self._query_table(f"--state={state}")

    def query_state(self, job: JobIdentifier | str) -> str:
        ident = _as_identifier(job)
        argv = [
            "systemctl",
            *self._scope(),
            "show",
            ident.unit_name,
            "-p",
            "LoadState",
            "-p",
            "ActiveState",
        ]
        rc, output = self._capture(argv)
        props: dict[str, str] = {}
        for line in output.splitlines():
            key, sep, value = line.strip().partition("=")
            if sep:
                props[key] = value.strip()
        if props.get("LoadState") == "not-found" or (rc != 0 and not props):
            raise NotFoundError(f"unit '{ident.unit_name}' not found")
        if "ActiveState" not in props:
            raise SupervisorError(
                f"systemctl show returned no ActiveState for {ident.unit_name}",
                output,
            )
        return props["ActiveState"]

    def show_status(self, job: JobIdentifier | str) -> int:
        ident = _as_identifier(job)
        # status exits non-zero for inactive and failed units.
        return self._passthrough(
            ["systemctl", *self._scope(), "status", ident.unit_name, "--no-pager"]
        )

    def stop(self, job: JobIdentifier | str) -> None:
        ident = _as_identifier(job)
        rc, output = self._capture(
            ["systemctl", *self._scope(), "stop", ident.unit_name]
        )
        if rc != 0:
            raise StopError(f"failed to stop {ident.unit_name} (exit {rc})", output)
        _log.info("unit_stopped unit=%s", ident.unit_name)

    def reset_failed(self, job: JobIdentifier | str) -> None:
        ident = _as_identifier(job)
        rc, output = self._capture(
            ["systemctl", *self._scope(), "reset-failed", ident.unit_name]
        )
        if rc != 0:
            raise CleanError(f"failed to clean {ident.unit_name} (exit {rc})", output)
        _log.info("unit_cleaned unit=%s", ident.unit_name)

    def stream_logs(
        self, job: JobIdentifier | str, tail_lines: int = 50, follow: bool = False
    ) -> None:
        """Pass the unit's journal through to the terminal.

        With ``follow`` this blocks until journalctl exits or the process is
        interrupted; ``KeyboardInterrupt`` propagates to the caller.
        """
        if tail_lines < 1:
            raise ValueError("tail_lines must be >= 1")
        ident = _as_identifier(job)
        argv = [
            "journalctl",
            *self._scope(),
            "-u",
            ident.unit_name,
            "-n",
            str(tail_lines),
            "--no-pager",
        ]
        if follow:
            argv.append("-f")
        rc = self._passthrough(argv)
        if rc != 0:
            raise SupervisorError(
                f"failed to get logs for {ident.unit_name} (exit {rc})"
            )
