from __future__ import annotations

import argparse
import json
import subprocess
import sys
import time
from typing import Any, NoReturn, Sequence

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from runbg._logging import get_logger, setup_logging, shutdown_logging
from runbg.batch import BatchEventCallback, ConfirmFn, prompt_confirm
from runbg.config import Settings, load_settings
from runbg.jobs import clean_jobs, kill_all_jobs, kill_job, list_jobs
from runbg.launcher import start_job
from runbg.models import (
    BatchResult,
    BatchTarget,
    ConfigError,
    RunbgError,
    SupervisorError,
    UnitRecord,
)
from runbg.naming import IdentifierAllocator
from runbg.registry import summarize_groups
from runbg.supervisor import SystemdSupervisor
from runbg.utils import join_command
from runbg.viewer import show_status

_cli_log = get_logger("cli")

_STATE_STYLES = {
    "running": "green",
    "active": "green",
    "failed": "red",
    "inactive": "yellow",
    "dead": "bright_black",
}

_EPILOG = """\
examples:
  runbg gowitness report server
  runbg -l -v
  runbg -s cmd-1732459032 -f
  runbg -k cmd-1732459032
  runbg -K
  runbg --clean -y

environment:
  NO_COLOR         disable colored output if set
  RUNBG_CONFIG     config file path (default: ~/.config/runbg/config.yaml)
  RUNBG_LOG_LEVEL  log level for diagnostics (default: WARNING)
  RUNBG_LOG_FILE   also write INFO-level lifecycle logs to this file
"""


class _ArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> NoReturn:
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def _console(settings: Settings) -> Console:
    return Console(highlight=False, no_color=not settings.color)


def _err_console(settings: Settings) -> Console:
    return Console(highlight=False, no_color=not settings.color, stderr=True)


def _make_supervisor(settings: Settings) -> SystemdSupervisor:
    return SystemdSupervisor(user_scope=settings.user_scope)


def _build_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(
        prog="runbg",
        description="Run commands as transient systemd user services and manage them.",
        epilog=_EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    actions = parser.add_mutually_exclusive_group()
    actions.add_argument(
        "-l",
        "--list",
        action="store_true",
        help="List all managed units grouped by state",
    )
    actions.add_argument(
        "-s",
        "--status",
        metavar="UNIT",
        default=None,
        help="Show status and logs for a unit",
    )
    actions.add_argument(
        "--clean", action="store_true", help="Clean dead/failed/inactive managed units"
    )
    actions.add_argument(
        "-k",
        "--kill",
        metavar="UNIT",
        default=None,
        help="Stop a specific running unit",
    )
    actions.add_argument(
        "-K",
        "--kill-all",
        action="store_true",
        help="Stop all running managed units",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        default=None,
        help="Show unit descriptions",
    )
    parser.add_argument(
        "-f", "--follow", action="store_true", help="Follow logs in real time (with -s)"
    )
    parser.add_argument(
        "-n",
        "--lines",
        type=int,
        default=None,
        help="Number of log lines to show with -s (default: 50)",
    )
    parser.add_argument(
        "-y",
        "--yes",
        action="store_true",
        default=None,
        help="Answer yes to all confirmations",
    )
    parser.add_argument(
        "--no-color", action="store_true", help="Disable colored output"
    )
    parser.add_argument(
        "--format",
        choices=["table", "json"],
        default="table",
        help="Output format for -l",
    )
    parser.add_argument("--config", default=None, help="Config YAML path")
    parser.add_argument(
        "command_line",
        nargs=argparse.REMAINDER,
        metavar="command",
        help="Command to start as a transient unit",
    )
    return parser


def _resolve_settings(args: argparse.Namespace) -> Settings:
    settings = load_settings(args.config)
    overrides: dict[str, Any] = settings.to_json()
    overrides.pop("source")
    if args.no_color:
        overrides["color"] = False
    if args.yes:
        overrides["assume_yes"] = True
    if args.verbose:
        overrides["verbose"] = True
    if args.lines is not None:
        if args.lines < 1:
            raise ConfigError("--lines must be >= 1")
        overrides["tail_lines"] = args.lines
    return Settings(source=settings.source, **overrides)


def _state_style(state: str | None) -> str:
    return _STATE_STYLES.get(state or "", "default")


def _render_groups(
    console: Console, groups: dict[str, list[UnitRecord]], *, verbose: bool
) -> None:
    if not groups:
        console.print("[bright_black]No managed units found.[/bright_black]")
        return
    counts = summarize_groups(groups)
    for state, records in groups.items():
        label = f"[{_state_style(state)}]{escape(state.upper())}[/]"
        table = Table(
            title=f"{label} ({counts[state]})",
            title_justify="left",
            show_header=verbose,
        )
        table.add_column("Unit", style="bold", no_wrap=True)
        if verbose:
            table.add_column("Description", style="bright_black")
        for record in records:
            if verbose:
                table.add_row(escape(record.name), escape(record.description or "-"))
            else:
                table.add_row(escape(record.name))
        console.print(table)


def _make_confirm(console: Console, question: str) -> ConfirmFn:
    def _confirm(targets: Sequence[BatchTarget]) -> bool:
        return prompt_confirm(f"\n{question} (y/N) ", read=console.input)

    return _confirm


def _make_batch_reporter(
    console: Console, err_console: Console, *, verb: str
) -> BatchEventCallback:
    def _on_event(event: dict[str, Any]) -> None:
        name = str(event.get("event", ""))
        if name == "nothing_to_do":
            console.print(f"[green]✓[/green] No managed units to {verb}.")
        elif name == "preview":
            targets: list[BatchTarget] = list(event.get("targets", []))
            console.print(f"Found {len(targets)} unit(s) to {verb}:")
            for target in targets:
                if target.state:
                    style = _state_style(target.state)
                    label = escape(f"[{target.state}]")
                    console.print(f"  {escape(target.name)} [{style}]{label}[/]")
                else:
                    console.print(f"  {escape(target.name)}")
        elif name == "aborted":
            console.print("Aborted.")
        elif name == "target_failed":
            target_name = escape(str(event.get("target", "")))
            error = escape(str(event.get("error", "")))
            err_console.print(f"[red]✗[/red] Failed to {verb} {target_name}: {error}")

    return _on_event


def _render_batch_summary(console: Console, result: BatchResult, *, done: str) -> None:
    if not result.confirmed:
        return
    mark = "[green]✓[/green]" if result.ok else "[yellow]![/yellow]"
    console.print(f"\n{mark} {done} {result.succeeded}/{result.total} units")


def _cmd_list(
    args: argparse.Namespace, settings: Settings, supervisor: SystemdSupervisor
) -> int:
    groups = list_jobs(supervisor)
    if args.format == "json":
        payload = {
            state: [record.to_json() for record in records]
            for state, records in groups.items()
        }
        print(json.dumps(payload, indent=2))
        return 0
    _render_groups(_console(settings), groups, verbose=settings.verbose)
    return 0


def _cmd_status(
    args: argparse.Namespace, settings: Settings, supervisor: SystemdSupervisor
) -> int:
    console = _console(settings)

    def _on_section(kind: str, unit_name: str) -> None:
        if kind == "status":
            console.print(f"[blue]=== Status for {escape(unit_name)} ===[/blue]")
        elif kind == "logs":
            console.print("\n[blue]=== Recent logs ===[/blue]")
        elif kind == "follow":
            console.print(
                "[bright_black](Following logs, press Ctrl+C to exit)[/bright_black]"
            )

    show_status(
        args.status,
        supervisor=supervisor,
        follow=bool(args.follow),
        tail_lines=settings.tail_lines,
        on_section=_on_section,
    )
    return 0


def _cmd_clean(
    args: argparse.Namespace, settings: Settings, supervisor: SystemdSupervisor
) -> int:
    console = _console(settings)
    result = clean_jobs(
        supervisor,
        confirm=_make_confirm(console, "Clean these units?"),
        assume_yes=settings.assume_yes,
        on_event=_make_batch_reporter(console, _err_console(settings), verb="clean"),
    )
    _render_batch_summary(console, result, done="Cleaned")
    return 0


def _cmd_kill(
    args: argparse.Namespace, settings: Settings, supervisor: SystemdSupervisor
) -> int:
    job = kill_job(args.kill, supervisor=supervisor)
    _console(settings).print(f"[green]✓[/green] Stopped {escape(job.unit_name)}")
    return 0


def _cmd_kill_all(
    args: argparse.Namespace, settings: Settings, supervisor: SystemdSupervisor
) -> int:
    console = _console(settings)
    result = kill_all_jobs(
        supervisor,
        confirm=_make_confirm(console, "Stop ALL of these units?"),
        assume_yes=settings.assume_yes,
        on_event=_make_batch_reporter(console, _err_console(settings), verb="stop"),
    )
    _render_batch_summary(console, result, done="Stopped")
    return 0


def _cmd_start(
    args: argparse.Namespace, settings: Settings, supervisor: SystemdSupervisor
) -> int:
    console = _console(settings)
    command = list(args.command_line)
    if command and command[0] == "--":
        command = command[1:]
    job = start_job(command, supervisor=supervisor, allocator=IdentifierAllocator())
    console.print(f"Starting unit: [blue]{escape(job.name)}[/blue]")
    command_text = escape(join_command(command))
    console.print(f"Command: [bright_black]{command_text}[/bright_black]")
    console.print("\n[green]✓[/green] Unit started successfully")
    console.print(
        f"View status with: [bright_black]runbg -s {escape(job.name)}[/bright_black]"
    )
    return 0


def _select_command(args: argparse.Namespace) -> str:
    if args.list:
        return "list"
    if args.status:
        return "status"
    if args.clean:
        return "clean"
    if args.kill_all:
        return "kill-all"
    if args.kill:
        return "kill"
    return "start"


_HANDLERS = {
    "list": _cmd_list,
    "status": _cmd_status,
    "clean": _cmd_clean,
    "kill": _cmd_kill,
    "kill-all": _cmd_kill_all,
    "start": _cmd_start,
}


def main(argv: Sequence[str] | None = None) -> int:
    setup_logging()
    parser = _build_parser()
    raw_argv = list(argv) if argv is not None else sys.argv[1:]
    args = parser.parse_args(raw_argv)
    command = _select_command(args)
    if command == "start" and not [tok for tok in args.command_line if tok != "--"]:
        parser.print_help(sys.stderr)
        return 1

    started = time.perf_counter()
    _cli_log.info("cli_command_start command=%s argv=%s", command, " ".join(raw_argv))

    exit_code = 1
    try:
        settings = _resolve_settings(args)
        supervisor = _make_supervisor(settings)
        supervisor.check_environment()
        exit_code = int(_HANDLERS[command](args, settings, supervisor))
    except KeyboardInterrupt:
        _cli_log.error("cli_command_error command=%s kind=interrupted", command)
        print("\n[interrupted]", file=sys.stderr)
        exit_code = 130
    except SupervisorError as exc:
        _cli_log.error(
            "cli_command_error command=%s kind=%s error=%s",
            command,
            type(exc).__name__,
            exc,
        )
        print(f"[error] {exc}", file=sys.stderr)
        if exc.diagnostic:
            print(f"  {exc.diagnostic}", file=sys.stderr)
        exit_code = 1
    except RunbgError as exc:
        _cli_log.error(
            "cli_command_error command=%s kind=%s error=%s",
            command,
            type(exc).__name__,
            exc,
        )
        print(f"[error] {exc}", file=sys.stderr)
        exit_code = 1
    except (OSError, subprocess.SubprocessError, ValueError) as exc:
        _cli_log.error(
            "cli_command_error command=%s kind=%s error=%s",
            command,
            type(exc).__name__,
            exc,
        )
        print(f"[error] {type(exc).__name__}: {exc}", file=sys.stderr)
        exit_code = 1
    finally:
        _cli_log.info(
            "cli_command_end command=%s exit_code=%s duration_sec=%.3f",
            command,
            exit_code,
            time.perf_counter() - started,
        )
        shutdown_logging()

    return exit_code


if __name__ == "__main__":
    raise SystemExit(main())
