"""Parsing of ``systemctl list-units`` tables into unit records."""

from __future__ import annotations

import re

from runbg.models import JOB_PREFIX, UnitRecord
from runbg.naming import is_managed

_HEADER_RE = re.compile(r"^(UNIT|●)")
_FOOTER_MARKERS = ("loaded units listed", "To show all")
_MIN_FIELDS = 4


def parse_unit_line(line: str, *, prefix: str = JOB_PREFIX) -> UnitRecord | None:
    # Columns: UNIT LOAD ACTIVE SUB DESCRIPTION...
    fields = line.split()
    if len(fields) < _MIN_FIELDS:
        return None
    if not is_managed(fields[0], prefix=prefix):
        return None
    return UnitRecord(
        name=fields[0],
        state=fields[2],
        description=" ".join(fields[4:]),
    )


def parse_units(output: str, *, prefix: str = JOB_PREFIX) -> list[UnitRecord]:
    """Return the managed units in ``output`` in table order.

    Leading header lines are skipped, parsing stops at the first footer line,
    and every row that is malformed or outside the ``prefix`` namespace is
    ignored. The function does no I/O.
    """
    units: list[UnitRecord] = []
    in_header = True
    for raw_line in output.splitlines():
        line = raw_line.strip()
        if not line:
            continue
        if in_header and _HEADER_RE.match(line):
            continue
        in_header = False
        if any(marker in line for marker in _FOOTER_MARKERS):
            break
        record = parse_unit_line(line, prefix=prefix)
        if record is not None:
            units.append(record)
    return units
