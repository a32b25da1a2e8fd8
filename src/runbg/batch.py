"""Batch stop/cleanup over a set of job units.

A batch deduplicates its targets, previews them with a best-effort state
annotation, asks for confirmation, and then runs the action on each target
in turn. Per-target failures are reported as events and counted; they never
abort the batch.
"""

from __future__ import annotations

import subprocess
import time
from typing import Any, Callable, Iterable, Sequence

from runbg._logging import get_logger
from runbg.models import JOB_PREFIX, BatchResult, BatchTarget, RunbgError
from runbg.naming import JobIdentifier
from runbg.utils import dedupe_preserving_order

_log = get_logger("batch")

BatchEventCallback = Callable[[dict[str, Any]], None]
ConfirmFn = Callable[[Sequence[BatchTarget]], bool]
AnnotateFn = Callable[[JobIdentifier], str]
ActionFn = Callable[[JobIdentifier], None]

AFFIRMATIVE_ANSWERS = frozenset({"y", "yes"})


def _notify_event(callback: BatchEventCallback | None, event: dict[str, Any]) -> None:
    if callback is None:
        return
    try:
        callback(event)
    except Exception as exc:  # pragma: no cover - callback isolation
        _log.warning("Ignoring batch event callback error: %s", exc)


def dedupe_targets(
    targets: Iterable[JobIdentifier | str], *, prefix: str = JOB_PREFIX
) -> list[JobIdentifier]:
    """Normalize targets to identifiers, dropping blanks and repeats.

    ``cmd-1`` and ``cmd-1.service`` name the same job and collapse to one
    entry at the position of the first.
    """
    idents: list[JobIdentifier] = []
    for target in targets:
        if isinstance(target, JobIdentifier):
            idents.append(target)
        elif str(target).strip():
            idents.append(JobIdentifier.parse(target, prefix=prefix))
    return dedupe_preserving_order(idents)


def prompt_confirm(question: str, *, read: Callable[[str], str] = input) -> bool:
    """Ask a yes/no question; anything but ``y``/``yes`` means no."""
    try:
        answer = read(question)
    except (EOFError, KeyboardInterrupt):
        return False
    return str(answer).strip().lower() in AFFIRMATIVE_ANSWERS


def _annotate(annotate: AnnotateFn | None, job: JobIdentifier) -> str | None:
    if annotate is None:
        return None
    try:
        state = annotate(job)
    except (RunbgError, OSError, subprocess.SubprocessError) as exc:
        _log.debug("batch_annotate_failed target=%s error=%s", job.unit_name, exc)
        return None
    return str(state).strip() or None


def _diagnostic(exc: BaseException) -> str:
    detail = getattr(exc, "diagnostic", "")
    return f"{exc}\n{detail}" if detail else str(exc)


def run_batch(
    targets: Iterable[JobIdentifier | str],
    action: ActionFn,
    *,
    confirm: ConfirmFn,
    annotate: AnnotateFn | None = None,
    on_event: BatchEventCallback | None = None,
    assume_yes: bool = False,
    operation: str = "batch",
    prefix: str = JOB_PREFIX,
) -> BatchResult:
    jobs = dedupe_targets(targets, prefix=prefix)
    if not jobs:
        _notify_event(on_event, {"event": "nothing_to_do", "operation": operation})
        return BatchResult(succeeded=0, failed=0, total=0, confirmed=False)

    preview = [
        BatchTarget(name=job.unit_name, state=_annotate(annotate, job)) for job in jobs
    ]
    _notify_event(
        on_event,
        {"event": "preview", "operation": operation, "targets": preview},
    )

    if not assume_yes:
        try:
            confirmed = bool(confirm(preview))
        except (EOFError, KeyboardInterrupt):
            confirmed = False
        if not confirmed:
            _log.info("batch_aborted operation=%s targets=%d", operation, len(jobs))
            _notify_event(on_event, {"event": "aborted", "operation": operation})
            return BatchResult(succeeded=0, failed=0, total=0, confirmed=False)

    started = time.perf_counter()
    succeeded = 0
    failed = 0
    for job in jobs:
        try:
            action(job)
        except Exception as exc:  # one target never aborts the batch
            failed += 1
            _log.warning(
                "batch_target_failed operation=%s target=%s error=%s",
                operation,
                job.unit_name,
                exc,
            )
            _notify_event(
                on_event,
                {
                    "event": "target_failed",
                    "operation": operation,
                    "target": job.unit_name,
                    "error": _diagnostic(exc),
                },
            )
            continue
        succeeded += 1
        _notify_event(
            on_event,
            {"event": "target_done", "operation": operation, "target": job.unit_name},
        )

    result = BatchResult(succeeded=succeeded, failed=failed, total=len(jobs))
    _log.info(
        "batch_finished operation=%s succeeded=%d failed=%d total=%d duration_sec=%.3f",
        operation,
        succeeded,
        failed,
        result.total,
        time.perf_counter() - started,
    )
    _notify_event(
        on_event,
        {"event": "finished", "operation": operation, "result": result},
    )
    return result
