"""Exceptions raised by the coverage engine.

Everything derives from :class:`CoverageError` so that the command line tool
can report any engine failure uniformly.
"""

import typing as t


class CoverageError(Exception):
    """Base class for all coverage engine errors."""


class DuplicateLocationError(CoverageError):
    """A source location was registered twice with conflicting metadata."""

    def __init__(self, location, existing_kind, new_kind):
        super().__init__(
            "%s already registered as a %s probe, cannot register it as a %s probe"
            % (location, existing_kind.value, new_kind.value)
        )
        self.location = location
        self.existing_kind = existing_kind
        self.new_kind = new_kind


class RegistryFrozenError(CoverageError):
    """A probe was registered after the registry was frozen for execution."""


class UnknownProbeError(CoverageError):
    """A hit referenced a probe id that the registry does not know about."""

    def __init__(self, probe_id: int):
        super().__init__("unknown probe id %r" % (probe_id,))
        self.probe_id = probe_id


class SessionNotFoundError(CoverageError):
    """A session handle is unknown to the tracker or was already ended."""

    def __init__(self, session_id: int):
        super().__init__("session %r is not active" % (session_id,))
        self.session_id = session_id


class InstrumentationError(CoverageError):
    """Source code could not be read or compiled for instrumentation."""


class ReportWriteError(CoverageError):
    """A report sink failed to write the report."""


class InvalidReportError(CoverageError):
    """A foreign coverage report could not be parsed.

    ``context`` describes what the parser was doing when it failed, e.g.
    ``"parsing region"``. The underlying exception, if any, is chained.
    """

    def __init__(self, context: str = "", lineno: t.Optional[int] = None):
        self.context = context
        self.lineno = lineno
        super().__init__(str(self))

    def __str__(self) -> str:
        msg = "invalid report"
        if self.context:
            msg += " (%s)" % self.context
        if self.lineno is not None:
            msg += " at line %d" % self.lineno
        cause = self.__cause__
        if cause is not None:
            msg += ": %s" % cause
        return msg
