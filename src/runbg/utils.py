from __future__ import annotations

import os
import shlex
from typing import Hashable, Iterable, Sequence, TypeVar

T = TypeVar("T", bound=Hashable)


def dedupe_preserving_order(values: Iterable[T]) -> list[T]:
    seen: set[T] = set()
    deduped: list[T] = []
    for value in values:
        if value in seen:
            continue
        deduped.append(value)
        seen.add(value)
    return deduped


def join_command(command: Sequence[str]) -> str:
    return " ".join(shlex.quote(token) for token in command)


def env_flag(key: str) -> bool:
    # NO_COLOR semantics: any non-empty value counts as set.
    return bool(os.environ.get(key, ""))


def env_default(key: str, fallback: str) -> str:
    value = os.environ.get(key)
    return value if value else fallback
