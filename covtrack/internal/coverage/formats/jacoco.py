"""JaCoCo XML reports.

Source paths are the package name joined with the source file name, e.g.
``dev/example/Sample.java``. A line counts as hit as many times as it has
covered instructions; its branches become branch probes, the covered ones
first.
"""

import typing as t
from xml.parsers.expat import ExpatError

import xmltodict

from covtrack.errors import InvalidReportError
from covtrack.internal.coverage.probes import ProbeRegistry
from covtrack.internal.coverage.probes import SourceLocation
from covtrack.internal.coverage.snapshot import CoverageSnapshot


FORCE_LIST = ("group", "package", "sourcefile", "line")


def is_jacoco(text: str) -> bool:
    return text.lstrip().startswith("<")


def _int(attrs: t.Mapping[str, str], name: str) -> int:
    try:
        value = int(attrs.get("@" + name, 0))
    except ValueError as e:
        raise InvalidReportError("parsing line attribute %s" % name) from e
    if value < 0:
        raise InvalidReportError("line attribute %s is negative" % name)
    return value


def _iter_packages(node: t.Mapping[str, t.Any]) -> t.Iterator[t.Mapping[str, t.Any]]:
    yield from node.get("package") or ()
    for group in node.get("group") or ():
        yield from _iter_packages(group)


def parse(text: str, registry: ProbeRegistry) -> CoverageSnapshot:
    try:
        document = xmltodict.parse(text, force_list=FORCE_LIST)
    except ExpatError as e:
        raise InvalidReportError("parsing XML") from e

    report = document.get("report") if isinstance(document, dict) else None
    if not isinstance(report, dict):
        raise InvalidReportError("missing report element")

    counts: t.Dict[int, int] = {}
    for package in _iter_packages(report):
        package_name = package.get("@name", "")
        for sourcefile in package.get("sourcefile") or ():
            name = sourcefile.get("@name")
            if not name:
                raise InvalidReportError("source file without a name")
            path = "%s/%s" % (package_name, name) if package_name else name
            registry.register_file(path)

            for line in sourcefile.get("line") or ():
                nr = _int(line, "nr")
                probe_id = registry.register(SourceLocation(path, nr))
                counts[probe_id] = counts.get(probe_id, 0) + _int(line, "ci")

                covered_branches = _int(line, "cb")
                for index in range(covered_branches + _int(line, "mb")):
                    probe_id = registry.register(SourceLocation(path, nr, index))
                    counts[probe_id] = counts.get(probe_id, 0) + (1 if index < covered_branches else 0)

    return CoverageSnapshot(counts)
