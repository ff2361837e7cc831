import json
import random

import pytest

from covtrack.internal.coverage.probes import ProbeRegistry
from covtrack.internal.coverage.probes import SourceLocation
from covtrack.internal.coverage.report import ProbeStatus
from covtrack.internal.coverage.report import ReportBuilder
from covtrack.internal.coverage.report import gen_json_report
from covtrack.internal.coverage.report import gen_lcov_report
from covtrack.internal.coverage.report import percentage
from covtrack.internal.coverage.snapshot import CoverageSnapshot


@pytest.fixture
def report(sample_registry):
    sample_registry.register_file("c.py")
    return ReportBuilder().build(CoverageSnapshot({0: 3, 2: 500}), sample_registry)


def test_per_file_coverage(report):
    a, b, c = report.files

    assert (a.path, a.executed, a.total, a.percentage) == ("a.py", 1, 2, 50.0)
    assert (b.path, b.executed, b.total, b.percentage) == ("b.py", 1, 1, 100.0)
    assert a.missed_lines == ((9, 9),)


def test_file_without_probes_is_fully_covered(report):
    c = report.file("c.py")

    assert c is not None
    assert c.total == 0
    assert c.percentage == 100.0


def test_per_unit_coverage(report):
    assert [(u.probe.id, u.count, u.status) for u in report.units] == [
        (0, 3, ProbeStatus.COVERED),
        (1, 0, ProbeStatus.UNCOVERED),
        (2, 500, ProbeStatus.COVERED),
    ]


def test_overall_coverage(report):
    assert report.executed == 2
    assert report.total == 3
    assert report.percentage == pytest.approx(200 / 3)
    assert not report.partial
    assert report.warnings == 0


def test_empty_report_is_fully_covered():
    report = ReportBuilder().build(CoverageSnapshot.empty(), ProbeRegistry())

    assert report.files == ()
    assert report.percentage == 100.0
    assert percentage(0, 0) == 100.0


def test_unknown_probes_are_skipped_and_counted(sample_registry):
    report = ReportBuilder().build(CoverageSnapshot({0: 1, 99: 4}), sample_registry, warnings=2)

    assert report.unit(99) is None
    assert report.unit(0).count == 1
    assert report.warnings == 3


def test_partial_snapshot_gives_partial_report(sample_registry):
    report = ReportBuilder().build(CoverageSnapshot({0: 1}, partial=True), sample_registry)

    assert report.partial


def test_ordering_does_not_depend_on_registration_order():
    locations = [
        SourceLocation(f, line, branch) for f in ("b.py", "a.py") for line in (3, 1, 2) for branch in (None, 1, 0)
    ]

    reports = []
    for seed in range(3):
        shuffled = list(locations)
        random.Random(seed).shuffle(shuffled)
        registry = ProbeRegistry()
        counts = {registry.register(loc): loc.line for loc in shuffled}
        reports.append(ReportBuilder().build(CoverageSnapshot(counts), registry))

    orders = [[(str(u.probe.location), u.count) for u in r.units] for r in reports]
    assert orders[0] == orders[1] == orders[2]
    assert [loc for loc, _ in orders[0][:4]] == ["a.py:1", "a.py:1#0", "a.py:1#1", "a.py:2"]


def test_branch_and_line_breakdown():
    registry = ProbeRegistry()
    line = registry.register(SourceLocation("a.py", 1))
    taken = registry.register(SourceLocation("a.py", 1, 0))
    registry.register(SourceLocation("a.py", 1, 1))

    f = ReportBuilder().build(CoverageSnapshot({line: 1, taken: 1}), registry).file("a.py")

    assert (f.lines_executed, f.lines_total) == (1, 1)
    assert (f.branches_executed, f.branches_total) == (1, 2)
    assert f.missed_lines == ()


def test_json_report(report):
    data = json.loads(gen_json_report(report))

    assert data["summary"] == {
        "executed": 2,
        "total": 3,
        "percentage": pytest.approx(200 / 3),
        "warnings": 0,
        "partial": False,
    }
    assert [f["file"] for f in data["files"]] == ["a.py", "b.py", "c.py"]
    assert data["files"][0]["missed_lines"] == "9"
    assert data["probes"][1] == {
        "id": 1,
        "kind": "line",
        "file": "a.py",
        "line": 9,
        "branch": None,
        "count": 0,
        "covered": False,
    }


def test_lcov_report():
    registry = ProbeRegistry()
    registry.register(SourceLocation("a.py", 1))
    registry.register(SourceLocation("a.py", 2))
    registry.register(SourceLocation("a.py", 1, 0))
    registry.register(SourceLocation("a.py", 1, 1))
    registry.register(SourceLocation("a.py", 1, 2))
    registry.register_file("empty.py")

    report = ReportBuilder().build(CoverageSnapshot({0: 4, 2: 4, 4: 1}), registry)

    assert gen_lcov_report(report, test_name="unit") == (
        "TN:unit\n"
        "SF:a.py\n"
        "BRDA:1,0,0,4\n"
        "BRDA:1,0,1,0\n"
        "BRDA:1,1,0,1\n"
        "BRF:3\n"
        "BRH:2\n"
        "DA:1,4\n"
        "DA:2,0\n"
        "LF:2\n"
        "LH:1\n"
        "end_of_record\n"
        "TN:unit\n"
        "SF:empty.py\n"
        "BRF:0\n"
        "BRH:0\n"
        "LF:0\n"
        "LH:0\n"
        "end_of_record\n"
    )


def test_lcov_report_empty():
    assert gen_lcov_report(ReportBuilder().build(CoverageSnapshot.empty(), ProbeRegistry())) == ""
