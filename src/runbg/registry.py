from __future__ import annotations

from collections import defaultdict
from typing import Iterable, Mapping, Sequence

from runbg.models import CANONICAL_STATES, UnitRecord


def group_by_state(
    records: Iterable[UnitRecord],
    *,
    state_order: Sequence[str] = CANONICAL_STATES,
) -> dict[str, list[UnitRecord]]:
    """Group records by state in display order.

    Canonical states come first (empty ones omitted), followed by any other
    state in the order it was first seen. Records keep their input order
    inside each group.
    """
    grouped: dict[str, list[UnitRecord]] = defaultdict(list)
    for record in records:
        grouped[record.state].append(record)

    ordered: dict[str, list[UnitRecord]] = {}
    for state in state_order:
        if grouped.get(state):
            ordered[state] = grouped[state]
    for state, members in grouped.items():
        if state not in ordered and members:
            ordered[state] = members
    return ordered


def select_names(
    groups: Mapping[str, Sequence[UnitRecord]], states: Iterable[str]
) -> list[str]:
    names: list[str] = []
    for state in states:
        names.extend(record.name for record in groups.get(state, ()))
    return names


def summarize_groups(groups: Mapping[str, Sequence[UnitRecord]]) -> dict[str, int]:
    return {state: len(members) for state, members in groups.items()}
