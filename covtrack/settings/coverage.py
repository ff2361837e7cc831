from typing import List
from typing import Optional

from envier import En
from envier import validators


SESSION_MODE_DELTA = "delta"
SESSION_MODE_TOTAL = "total"

REPORT_FORMAT_JSON = "json"
REPORT_FORMAT_LCOV = "lcov"


def _parse_paths(value: str) -> List[str]:
    return [p for p in value.replace(",", ":").split(":") if p]


class CoverageConfig(En):
    __prefix__ = "covtrack"

    output = En.v(
        str,
        "output",
        default="coverage-report.json",
        help_type="String",
        help="Where the report is written. A file path, ``-`` for standard output or an http(s) URL",
    )

    format = En.v(
        str,
        "format",
        default=REPORT_FORMAT_JSON,
        help_type="String",
        help="Report format, one of json or lcov",
        validator=validators.choice([REPORT_FORMAT_JSON, REPORT_FORMAT_LCOV]),
    )

    threshold = En.v(
        Optional[float],
        "threshold",
        default=None,
        help_type="Float",
        help="Minimum overall coverage percentage. Lower coverage makes the run fail",
    )

    strict = En.v(
        bool,
        "strict",
        default=False,
        help_type="Boolean",
        help="Raise on hits for unknown probes instead of logging them",
    )

    session_mode = En.v(
        str,
        "session_mode",
        default=SESSION_MODE_DELTA,
        help_type="String",
        help="What ending a session returns: delta (hits of the session) or total (process-wide counts)",
        validator=validators.choice([SESSION_MODE_DELTA, SESSION_MODE_TOTAL]),
    )

    include = En.v(
        list,
        "include",
        parser=_parse_paths,
        default=[],
        help_type="List",
        help="Colon or comma separated paths whose Python files are instrumented. Defaults to the working directory",
    )

    http_timeout = En.v(
        float,
        "http_timeout",
        default=10.0,
        help_type="Float",
        help="Timeout in seconds when posting a report over HTTP",
    )


config = CoverageConfig()
