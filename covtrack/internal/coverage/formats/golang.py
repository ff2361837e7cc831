"""Go cover profiles, as written by ``go test -coverprofile``.

The first line declares the counting mode, every other line one block::

    mode: count
    pkg/foo.go:1.2,3.4 5 6

i.e. ``file:start_line.start_column,end_line.end_column statements executed``.
"""

import re
import typing as t

from covtrack.errors import InvalidReportError
from covtrack.internal.coverage.probes import ProbeRegistry
from covtrack.internal.coverage.probes import SourceLocation
from covtrack.internal.coverage.snapshot import CoverageSnapshot


MODES = ("set", "count", "atomic")
# Longest block accepted, in lines
MAX_BLOCK_LINES = 10000

MODE_RE = re.compile(r"^mode: (?P<mode>\w+)$")
BLOCK_RE = re.compile(
    r"^(?P<file>.+):(?P<start_line>\d+)\.(?P<start_column>\d+),(?P<end_line>\d+)\.(?P<end_column>\d+)"
    r" (?P<statements>\d+) (?P<executed>\d+)$"
)


def is_golang(text: str) -> bool:
    return text.lstrip().startswith("mode:")


def parse(text: str, registry: ProbeRegistry) -> CoverageSnapshot:
    """Register one line probe per line spanned by each block.

    Lines shared by several blocks sum the executions of those blocks.
    """
    lines = text.splitlines()
    if not lines:
        raise InvalidReportError("reading mode line")

    m = MODE_RE.match(lines[0].strip())
    if m is None or m["mode"] not in MODES:
        raise InvalidReportError("mode line is not valid", lineno=1)

    counts: t.Dict[int, int] = {}
    for lineno, line in enumerate(lines[1:], start=2):
        line = line.strip()
        if not line:
            continue

        block = BLOCK_RE.match(line)
        if block is None:
            raise InvalidReportError("parsing region", lineno=lineno)

        start_line, end_line = int(block["start_line"]), int(block["end_line"])
        if end_line < start_line:
            raise InvalidReportError("region ends before it starts", lineno=lineno)
        if end_line - start_line >= MAX_BLOCK_LINES:
            raise InvalidReportError("region spans more than %d lines" % MAX_BLOCK_LINES, lineno=lineno)

        executed = int(block["executed"])
        for source_line in range(start_line, end_line + 1):
            probe_id = registry.register(SourceLocation(block["file"], source_line))
            counts[probe_id] = counts.get(probe_id, 0) + executed

    return CoverageSnapshot(counts)
