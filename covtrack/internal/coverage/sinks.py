import abc
from contextlib import contextmanager
import http.client as httplib
import os
import sys
import typing as t
from urllib import parse

from covtrack.errors import ReportWriteError
from covtrack.internal.logger import get_logger
from covtrack.settings.coverage import config


log = get_logger(__name__)


class ReportSink(abc.ABC):
    """Destination of an encoded report."""

    content_type = "application/json"

    @abc.abstractmethod
    def write(self, payload: str) -> None:
        """Write the payload, raising ``ReportWriteError`` on failure."""


class FileSink(ReportSink):
    def __init__(self, path: str) -> None:
        self.path = path

    def write(self, payload: str) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        try:
            os.makedirs(directory, exist_ok=True)
            with open(self.path, "w", encoding="utf-8") as f:
                f.write(payload)
        except OSError as e:
            raise ReportWriteError("cannot write report to %s: %s" % (self.path, e)) from e
        log.debug("Coverage report written to %s", self.path)

    def __repr__(self):
        return f"FileSink({self.path!r})"


class StreamSink(ReportSink):
    def __init__(self, stream: t.Optional[t.TextIO] = None) -> None:
        self._stream = stream

    @property
    def stream(self) -> t.TextIO:
        # Resolved lazily so that a replaced sys.stdout is honoured
        return self._stream if self._stream is not None else sys.stdout

    def write(self, payload: str) -> None:
        try:
            self.stream.write(payload)
            self.stream.flush()
        except (OSError, ValueError) as e:
            raise ReportWriteError("cannot write report to stream: %s" % e) from e


@contextmanager
def _connection(url: str, timeout: float) -> t.Iterator[httplib.HTTPConnection]:
    parts = parse.urlsplit(url)
    try:
        Connection = {"http": httplib.HTTPConnection, "https": httplib.HTTPSConnection}[parts.scheme]
    except KeyError:
        raise ValueError("Unsupported scheme: %s" % parts.scheme)

    connection = Connection(parts.hostname, parts.port, timeout=timeout)
    try:
        yield connection
    finally:
        connection.close()


class HTTPSink(ReportSink):
    """POST the report to an HTTP endpoint. Any non-2xx response is a failure."""

    def __init__(self, url: str, timeout: t.Optional[float] = None, content_type: t.Optional[str] = None) -> None:
        self.url = url
        self.timeout = config.http_timeout if timeout is None else timeout
        if content_type is not None:
            self.content_type = content_type

    def write(self, payload: str) -> None:
        parts = parse.urlsplit(self.url)
        path = parts.path or "/"
        if parts.query:
            path += "?" + parts.query

        try:
            with _connection(self.url, self.timeout) as conn:
                conn.request("POST", path, body=payload.encode("utf-8"), headers={"Content-Type": self.content_type})
                resp = conn.getresponse()
                resp.read()
        except (OSError, httplib.HTTPException, ValueError) as e:
            raise ReportWriteError("cannot send report to %s: %s" % (self.url, e)) from e

        if not 200 <= resp.status < 300:
            raise ReportWriteError("cannot send report to %s: HTTP %d %s" % (self.url, resp.status, resp.reason))
        log.debug("Coverage report sent to %s", self.url)


def sink_for(output: str, content_type: str = "application/json") -> ReportSink:
    """Pick a sink for an output destination: ``-`` for stdout, an http(s) URL or a file path."""
    if output == "-":
        return StreamSink()
    if output.startswith(("http://", "https://")):
        return HTTPSink(output, content_type=content_type)
    return FileSink(output)
