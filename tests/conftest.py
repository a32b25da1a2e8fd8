from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Any, Iterator

import pytest

from runbg._logging import shutdown_logging
from runbg.supervisor import SystemdSupervisor


class FakeSystemd:
    """Stands in for ``subprocess.run`` against systemctl/journalctl/systemd-run."""

    def __init__(self) -> None:
        self.calls: list[list[str]] = []
        self.tables: dict[str, str] = {}
        self.table_rc: dict[str, int] = {}
        self.states: dict[str, str] = {}
        self.failures: dict[tuple[str, str], tuple[int, str]] = {}
        self.launch_result: tuple[int, str] = (0, "Running as unit: x.service\n")
        self.journal_rc = 0
        self.journal_interrupt = False

    def verbs(self, verb: str) -> list[list[str]]:
        return [call for call in self.calls if verb in call]

    def __call__(self, argv: list[str], **kwargs: Any) -> subprocess.CompletedProcess[str]:
        argv = list(argv)
        self.calls.append(argv)
        tool = argv[0]
        args = [item for item in argv[1:] if item != "--user"]
        if tool == "pidof":
            return subprocess.CompletedProcess(argv, 0, stdout="1\n")
        if tool == "systemd-run":
            rc, out = self.launch_result
            return subprocess.CompletedProcess(argv, rc, stdout=out)
        if tool == "journalctl":
            if self.journal_interrupt:
                raise KeyboardInterrupt
            return subprocess.CompletedProcess(argv, self.journal_rc)
        if "--type=service" in args:
            selector = args[1]
            text = self.tables.get(selector, "")
            return subprocess.CompletedProcess(
                argv, self.table_rc.get(selector, 0), stdout=text
            )
        verb, unit = args[0], args[1]
        if verb == "show":
            state = self.states.get(unit)
            if state is None:
                out = "LoadState=not-found\nActiveState=inactive\n"
            else:
                out = f"LoadState=loaded\nActiveState={state}\n"
            return subprocess.CompletedProcess(argv, 0, stdout=out)
        if verb == "status":
            rc = 0 if self.states.get(unit) == "active" else 3
            return subprocess.CompletedProcess(argv, rc, stdout=f"{unit} status\n")
        rc, out = self.failures.get((verb, unit), (0, ""))
        return subprocess.CompletedProcess(argv, rc, stdout=out)


@pytest.fixture
def fake_systemd() -> FakeSystemd:
    return FakeSystemd()


@pytest.fixture
def supervisor(fake_systemd: FakeSystemd) -> SystemdSupervisor:
    return SystemdSupervisor(runner=fake_systemd)


@pytest.fixture(autouse=True)
def _isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    monkeypatch.delenv("RUNBG_CONFIG", raising=False)
    monkeypatch.delenv("NO_COLOR", raising=False)
    monkeypatch.delenv("RUNBG_LOG_FILE", raising=False)
    monkeypatch.delenv("RUNBG_LOG_LEVEL", raising=False)


@pytest.fixture(autouse=True)
def _fresh_logging() -> Iterator[None]:
    shutdown_logging()
    yield
    shutdown_logging()
