from collections import defaultdict
from enum import Enum
import json
import typing as t

import attr

from covtrack.internal.coverage.probes import Probe
from covtrack.internal.coverage.probes import ProbeRegistry
from covtrack.internal.coverage.probes import UnitKind
from covtrack.internal.coverage.snapshot import CoverageSnapshot
from covtrack.internal.coverage.util import collapse_ranges
from covtrack.internal.coverage.util import format_ranges
from covtrack.internal.logger import get_logger


log = get_logger(__name__)


class ProbeStatus(str, Enum):
    UNCOVERED = "uncovered"
    COVERED = "covered"

    @classmethod
    def from_count(cls, count: int) -> "ProbeStatus":
        return cls.COVERED if count > 0 else cls.UNCOVERED


def percentage(executed: int, total: int) -> float:
    # A file without executable units is vacuously fully covered
    if total == 0:
        return 100.0
    return executed * 100.0 / total


@attr.s(frozen=True, slots=True)
class UnitCoverage(object):
    probe = attr.ib(type=Probe)
    count = attr.ib(type=int)

    @property
    def covered(self) -> bool:
        return self.count > 0

    @property
    def status(self) -> ProbeStatus:
        return ProbeStatus.from_count(self.count)


@attr.s(frozen=True, slots=True)
class FileCoverage(object):
    path = attr.ib(type=str)
    executed = attr.ib(type=int)
    total = attr.ib(type=int)
    lines_executed = attr.ib(type=int, default=0)
    lines_total = attr.ib(type=int, default=0)
    branches_executed = attr.ib(type=int, default=0)
    branches_total = attr.ib(type=int, default=0)
    missed_lines = attr.ib(type=t.Tuple[t.Tuple[int, int], ...], default=())

    @property
    def percentage(self) -> float:
        return percentage(self.executed, self.total)


@attr.s(frozen=True, slots=True)
class CoverageReport(object):
    files = attr.ib(type=t.Tuple[FileCoverage, ...])
    units = attr.ib(type=t.Tuple[UnitCoverage, ...])
    warnings = attr.ib(type=int, default=0)
    partial = attr.ib(type=bool, default=False)

    @property
    def executed(self) -> int:
        return sum(f.executed for f in self.files)

    @property
    def total(self) -> int:
        return sum(f.total for f in self.files)

    @property
    def percentage(self) -> float:
        return percentage(self.executed, self.total)

    def file(self, path: str) -> t.Optional[FileCoverage]:
        for f in self.files:
            if f.path == path:
                return f
        return None

    def unit(self, probe_id: int) -> t.Optional[UnitCoverage]:
        for u in self.units:
            if u.probe.id == probe_id:
                return u
        return None


class ReportBuilder(object):
    """Turns a snapshot into a per-file and per-unit coverage report.

    Units are ordered by source location (file, line, branch index) so that
    reports built from the same inputs are identical no matter in which order
    probes were registered or hit.
    """

    def build(self, snapshot: CoverageSnapshot, registry: ProbeRegistry, warnings: int = 0) -> CoverageReport:
        unknown = [probe_id for probe_id in snapshot.counts if registry.get(probe_id) is None]
        if unknown:
            log.warning("Skipping %d hit counts for probes missing from the registry", len(unknown))

        units_by_file: t.DefaultDict[str, t.List[UnitCoverage]] = defaultdict(list)
        for probe in registry.all():
            units_by_file[probe.location.file].append(UnitCoverage(probe=probe, count=snapshot.count(probe.id)))
        for path in registry.files():
            units_by_file.setdefault(path, [])

        files = []
        units: t.List[UnitCoverage] = []
        for path in sorted(units_by_file):
            file_units = sorted(units_by_file[path], key=lambda u: u.probe.location.sort_key())
            files.append(self._file_coverage(path, file_units))
            units.extend(file_units)

        return CoverageReport(
            files=tuple(files),
            units=tuple(units),
            warnings=warnings + len(unknown),
            partial=snapshot.partial,
        )

    def _file_coverage(self, path: str, units: t.List[UnitCoverage]) -> FileCoverage:
        lines = [u for u in units if u.probe.kind is UnitKind.LINE]
        branches = [u for u in units if u.probe.kind is UnitKind.BRANCH]
        missed = sorted({u.probe.location.line for u in lines if not u.covered})

        return FileCoverage(
            path=path,
            executed=sum(1 for u in units if u.covered),
            total=len(units),
            lines_executed=sum(1 for u in lines if u.covered),
            lines_total=len(lines),
            branches_executed=sum(1 for u in branches if u.covered),
            branches_total=len(branches),
            missed_lines=tuple(collapse_ranges(missed)),
        )


def gen_json_report(report: CoverageReport) -> str:
    """Machine-readable report: one record per file and one per probe."""
    return json.dumps(
        {
            "summary": {
                "executed": report.executed,
                "total": report.total,
                "percentage": report.percentage,
                "warnings": report.warnings,
                "partial": report.partial,
            },
            "files": [
                {
                    "file": f.path,
                    "executed": f.executed,
                    "total": f.total,
                    "percentage": f.percentage,
                    "lines": {"executed": f.lines_executed, "total": f.lines_total},
                    "branches": {"executed": f.branches_executed, "total": f.branches_total},
                    "missed_lines": format_ranges(f.missed_lines),
                }
                for f in report.files
            ],
            "probes": [
                {
                    "id": u.probe.id,
                    "kind": u.probe.kind.value,
                    "file": u.probe.location.file,
                    "line": u.probe.location.line,
                    "branch": u.probe.location.branch,
                    "count": u.count,
                    "covered": u.covered,
                }
                for u in report.units
            ],
        },
        indent=2,
    )


def gen_lcov_report(report: CoverageReport, test_name: str = "") -> str:
    """LCOV tracefile, as described in the TRACEFILE FORMAT section of ``man geninfo``."""
    units_by_file: t.DefaultDict[str, t.List[UnitCoverage]] = defaultdict(list)
    for u in report.units:
        units_by_file[u.probe.location.file].append(u)

    out = []
    for f in report.files:
        out.append(f"TN:{test_name}")
        out.append(f"SF:{f.path}")

        branches = [u for u in units_by_file[f.path] if u.probe.kind is UnitKind.BRANCH]
        for u in branches:
            # Branch index 2k + arm maps onto block k, branch arm
            block, arm = divmod(t.cast(int, u.probe.location.branch), 2)
            out.append(f"BRDA:{u.probe.location.line},{block},{arm},{u.count}")
        out.append(f"BRF:{len(branches)}")
        out.append(f"BRH:{sum(1 for u in branches if u.covered)}")

        lines = [u for u in units_by_file[f.path] if u.probe.kind is UnitKind.LINE and u.probe.location.line > 0]
        for u in lines:
            out.append(f"DA:{u.probe.location.line},{u.count}")
        out.append(f"LF:{len(lines)}")
        out.append(f"LH:{sum(1 for u in lines if u.covered)}")
        out.append("end_of_record")

    return "\n".join(out) + "\n" if out else ""
