"""LCOV tracefiles.

See the TRACEFILE FORMAT section of ``man geninfo``. Only the line (``DA``)
and branch (``BRDA``) records carry probe data; function records and summary
counters are ignored since they can be derived.
"""

import typing as t

from covtrack.errors import InvalidReportError
from covtrack.internal.coverage.probes import ProbeRegistry
from covtrack.internal.coverage.probes import SourceLocation
from covtrack.internal.coverage.snapshot import CoverageSnapshot


def _ints(value: str, n: int, context: str, lineno: int) -> t.List[int]:
    parts = value.split(",")
    if len(parts) < n:
        raise InvalidReportError(context, lineno=lineno)
    try:
        values = [int(p) for p in parts[:n]]
    except ValueError as e:
        raise InvalidReportError(context, lineno=lineno) from e
    # Every numeric LCOV field is non-negative
    if any(v < 0 for v in values):
        raise InvalidReportError(context, lineno=lineno)
    return values


def parse(text: str, registry: ProbeRegistry) -> CoverageSnapshot:
    counts: t.Dict[int, int] = {}
    source_file: t.Optional[str] = None
    # (line, block, branch) -> branch index on that line, in order of appearance
    branch_indices: t.Dict[t.Tuple[int, int, int], int] = {}
    branches_per_line: t.Dict[int, int] = {}
    records = 0

    def _add(location: SourceLocation, count: int) -> None:
        probe_id = registry.register(location)
        counts[probe_id] = counts.get(probe_id, 0) + count

    for lineno, line in enumerate(text.splitlines(), start=1):
        line = line.strip()
        if not line or line.startswith("#"):
            continue

        tag, _, value = line.partition(":")
        if tag == "SF":
            source_file = value
            branch_indices.clear()
            branches_per_line.clear()
            registry.register_file(source_file)
        elif tag == "end_of_record":
            if source_file is None:
                raise InvalidReportError("end_of_record outside a source file", lineno=lineno)
            source_file = None
            records += 1
        elif tag in ("DA", "BRDA"):
            if source_file is None:
                raise InvalidReportError("%s record outside a source file" % tag, lineno=lineno)
            if tag == "DA":
                source_line, count = _ints(value, 2, "parsing DA", lineno)
                _add(SourceLocation(source_file, source_line), count)
            else:
                fields = value.split(",")
                if len(fields) < 4:
                    raise InvalidReportError("parsing BRDA", lineno=lineno)
                source_line, block, branch = _ints(value, 3, "parsing BRDA", lineno)
                taken = fields[3].strip()
                key = (source_line, block, branch)
                index = branch_indices.get(key)
                if index is None:
                    index = branch_indices[key] = branches_per_line.get(source_line, 0)
                    branches_per_line[source_line] = index + 1
                try:
                    count = 0 if taken == "-" else int(taken)
                except ValueError as e:
                    raise InvalidReportError("parsing BRDA", lineno=lineno) from e
                if count < 0:
                    raise InvalidReportError("parsing BRDA", lineno=lineno)
                _add(SourceLocation(source_file, source_line, index), count)

    if source_file is not None:
        raise InvalidReportError("missing end_of_record for %s" % source_file)
    if not records:
        raise InvalidReportError("no source file records")

    return CoverageSnapshot(counts)
