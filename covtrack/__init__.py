from ._logger import configure_covtrack_logger


# configure covtrack logger before other modules log
configure_covtrack_logger()  # noqa: E402

from .errors import CoverageError  # noqa: E402
from .internal.coverage.probes import Probe  # noqa: E402
from .internal.coverage.probes import ProbeRegistry  # noqa: E402
from .internal.coverage.probes import SourceLocation  # noqa: E402
from .internal.coverage.probes import UnitKind  # noqa: E402
from .internal.coverage.report import CoverageReport  # noqa: E402
from .internal.coverage.report import ReportBuilder  # noqa: E402
from .internal.coverage.snapshot import CoverageSnapshot  # noqa: E402
from .internal.coverage.tracker import ExecutionTracker  # noqa: E402
from .version import __version__  # noqa: E402


__all__ = [
    "__version__",
    "CoverageError",
    "CoverageReport",
    "CoverageSnapshot",
    "ExecutionTracker",
    "Probe",
    "ProbeRegistry",
    "ReportBuilder",
    "SourceLocation",
    "UnitKind",
]
