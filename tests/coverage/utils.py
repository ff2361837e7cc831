import typing as t

from covtrack.internal.coverage.probes import UnitKind
from covtrack.internal.coverage.report import CoverageReport


def line_counts(report: CoverageReport) -> t.Dict[str, t.Dict[int, int]]:
    """Map each file of a report to its line probes and their hit counts"""
    counts: t.Dict[str, t.Dict[int, int]] = {}
    for unit in report.units:
        if unit.probe.kind is UnitKind.LINE:
            counts.setdefault(unit.probe.location.file, {})[unit.probe.location.line] = unit.count
    return counts


def branch_counts(report: CoverageReport, path: str, line: int) -> t.List[int]:
    return [
        u.count
        for u in report.units
        if u.probe.kind is UnitKind.BRANCH and u.probe.location.file == path and u.probe.location.line == line
    ]
