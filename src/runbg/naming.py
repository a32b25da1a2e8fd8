"""Job identifiers and their allocation."""

from __future__ import annotations

import re
import time
from dataclasses import dataclass
from typing import Callable

from runbg.models import JOB_PREFIX, UNIT_SUFFIX, NotFoundError


def is_managed(name: str, *, prefix: str = JOB_PREFIX) -> bool:
    return name.startswith(f"{prefix}-")


def strip_unit_suffix(name: str) -> str:
    if name.endswith(UNIT_SUFFIX):
        return name[: -len(UNIT_SUFFIX)]
    return name


@dataclass(frozen=True, order=True)
class JobIdentifier:
    name: str

    @classmethod
    def parse(cls, raw: str, *, prefix: str = JOB_PREFIX) -> "JobIdentifier":
        """Build an identifier from user input or a unit table name.

        Surrounding whitespace and the ``.service`` suffix are dropped. Names
        outside the managed namespace are rejected.
        """
        name = strip_unit_suffix(str(raw).strip())
        if not is_managed(name, prefix=prefix) or name == f"{prefix}-":
            raise NotFoundError(
                f"'{raw}' is not a managed job (expected '{prefix}-<id>')"
            )
        return cls(name)

    @property
    def unit_name(self) -> str:
        return f"{self.name}{UNIT_SUFFIX}"

    def __str__(self) -> str:
        return self.name


class IdentifierAllocator:
    """Allocates ``<prefix>-<epochSeconds>`` job identifiers.

    The wall clock only has one-second resolution, so two launches from the
    same allocator inside one second would collide. The allocator remembers
    the last value it issued and bumps past it, keeping identifiers strictly
    increasing for the lifetime of the instance.
    """

    def __init__(
        self,
        *,
        prefix: str = JOB_PREFIX,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not re.fullmatch(r"[A-Za-z0-9_]+", prefix):
            raise ValueError(f"Invalid job prefix '{prefix}'")
        self.prefix = prefix
        self._clock = clock
        self._last: int | None = None

    def allocate(self) -> JobIdentifier:
        value = int(self._clock())
        if self._last is not None and value <= self._last:
            value = self._last + 1
        self._last = value
        return JobIdentifier(f"{self.prefix}-{value}")
