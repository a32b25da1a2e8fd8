"""Logging setup for the runbg CLI.

Diagnostics go to stderr in ``key=value`` form so they never mix with the
tables and prompts on stdout. Each ``main()`` run installs the handlers and
releases them on exit.
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

ROOT_LOGGER = "runbg"
LEVEL_ENV_VAR = "RUNBG_LOG_LEVEL"
FILE_ENV_VAR = "RUNBG_LOG_FILE"

_FORMAT = "ts=%(asctime)s level=%(levelname)s logger=%(name)s msg=%(message)s"
_HANDLER_TAG = "_runbg_handler"


class _StderrHandler(logging.StreamHandler):
    """Writes to whatever ``sys.stderr`` is when a record is emitted."""

    def __init__(self) -> None:
        logging.Handler.__init__(self)

    @property
    def stream(self):
        return sys.stderr


def _resolve_level(level: int | None) -> int:
    if level is not None:
        return level
    name = os.environ.get(LEVEL_ENV_VAR, "").strip().upper()
    resolved = logging.getLevelName(name) if name else None
    return resolved if isinstance(resolved, int) else logging.WARNING


def _tagged(root: logging.Logger, tag: str) -> logging.Handler | None:
    return next(
        (h for h in root.handlers if getattr(h, _HANDLER_TAG, None) == tag), None
    )


def _install(root: logging.Logger, tag: str, handler: logging.Handler) -> None:
    setattr(handler, _HANDLER_TAG, tag)
    handler.setFormatter(logging.Formatter(_FORMAT))
    root.addHandler(handler)


def _drop(root: logging.Logger, handler: logging.Handler) -> None:
    root.removeHandler(handler)
    handler.close()


def get_logger(name: str) -> logging.Logger:
    """Return a child logger under the ``runbg`` namespace."""
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


def setup_logging(*, level: int | None = None) -> None:
    """Configure the ``runbg`` logger from *level* or the environment.

    The stderr level comes from *level* or ``RUNBG_LOG_LEVEL`` and defaults to
    WARNING. ``RUNBG_LOG_FILE`` adds a file handler that records at least
    INFO-level lifecycle events (launches, stops, batch summaries). Calling
    this again reconfigures the existing handlers in place.
    """
    root = logging.getLogger(ROOT_LOGGER)
    stderr_level = _resolve_level(level)

    stderr_handler = _tagged(root, "stderr")
    if stderr_handler is None:
        stderr_handler = _StderrHandler()
        _install(root, "stderr", stderr_handler)
    stderr_handler.setLevel(stderr_level)

    effective = stderr_level
    file_handler = _tagged(root, "file")
    raw_path = os.environ.get(FILE_ENV_VAR, "").strip()
    if not raw_path:
        if file_handler is not None:
            _drop(root, file_handler)
    else:
        path = Path(raw_path).expanduser().resolve()
        if isinstance(file_handler, logging.FileHandler):
            if Path(file_handler.baseFilename) != path:
                _drop(root, file_handler)
                file_handler = None
        if file_handler is None:
            path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(path, encoding="utf-8")
            _install(root, "file", file_handler)
        file_handler.setLevel(min(stderr_level, logging.INFO))
        effective = min(effective, file_handler.level)

    root.setLevel(effective)


def shutdown_logging() -> None:
    """Flush and detach every handler installed by ``setup_logging``."""
    root = logging.getLogger(ROOT_LOGGER)
    for handler in list(root.handlers):
        if getattr(handler, _HANDLER_TAG, None) is not None:
            handler.flush()
            _drop(root, handler)
