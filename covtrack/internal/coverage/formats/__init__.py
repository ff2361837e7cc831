"""Importers for coverage reports produced by other tools.

Each importer registers probes for the units found in a report with a
:class:`ProbeRegistry` and returns the hit counts as a snapshot, so foreign
reports can be merged and reported like collected coverage.
"""

import typing as t

from covtrack.errors import InvalidReportError
from covtrack.internal.coverage.formats import golang
from covtrack.internal.coverage.formats import jacoco
from covtrack.internal.coverage.formats import lcov
from covtrack.internal.coverage.probes import ProbeRegistry
from covtrack.internal.coverage.snapshot import CoverageSnapshot


GOLANG = "golang"
JACOCO = "jacoco"
LCOV = "lcov"

_PARSERS: t.Dict[str, t.Callable[[str, ProbeRegistry], CoverageSnapshot]] = {
    GOLANG: golang.parse,
    JACOCO: jacoco.parse,
    LCOV: lcov.parse,
}


def detect_format(text: str) -> str:
    if golang.is_golang(text):
        return GOLANG
    if jacoco.is_jacoco(text):
        return JACOCO
    return LCOV


def parse_report(
    data: t.Union[str, bytes],
    registry: t.Optional[ProbeRegistry] = None,
    format: t.Optional[str] = None,
) -> t.Tuple[ProbeRegistry, CoverageSnapshot]:
    if isinstance(data, bytes):
        try:
            data = data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise InvalidReportError("decoding report") from e

    if registry is None:
        registry = ProbeRegistry()
    if format is None:
        format = detect_format(data)

    try:
        parser = _PARSERS[format]
    except KeyError:
        raise ValueError("Unsupported report format: %s" % format)

    return registry, parser(data, registry)
