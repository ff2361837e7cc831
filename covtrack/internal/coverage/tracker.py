from contextlib import contextmanager
from contextvars import ContextVar
import itertools
import threading
import typing as t

import attr

from covtrack.errors import CoverageError
from covtrack.errors import SessionNotFoundError
from covtrack.internal.coverage.counter import HitCounter
from covtrack.internal.coverage.probes import ProbeRegistry
from covtrack.internal.coverage.snapshot import CoverageSnapshot
from covtrack.internal.coverage.snapshot import merge
from covtrack.internal.coverage.snapshot import merge_all
from covtrack.internal.logger import get_logger
from covtrack.settings.coverage import SESSION_MODE_DELTA
from covtrack.settings.coverage import SESSION_MODE_TOTAL
from covtrack.settings.coverage import config


log = get_logger(__name__)

_tracker_ids = itertools.count()


@attr.s(slots=True, eq=False)
class Session(object):
    """Handle of a test-run session.

    ``counter`` only receives the hits notified from a context in which the
    session is active.
    """

    id = attr.ib(type=int)
    counter = attr.ib(type=HitCounter, repr=False)
    active = attr.ib(type=bool, default=True)


SessionRef = t.Union[Session, int]


class ExecutionTracker(object):
    """Aggregates probe hits into sessions and snapshots.

    The tracker owns the process-wide :class:`HitCounter`. Instrumented code
    reports hits through :meth:`notify_hit`, which also credits every session
    active in the calling context. Sessions begun in different threads run in
    parallel; sessions begun in the same context nest, and an outer session
    sees the hits of the inner ones.

    The lifecycle is explicit: :meth:`start` freezes the registry before the
    program under test runs and :meth:`teardown` ends whatever is still open.
    """

    def __init__(
        self,
        registry: ProbeRegistry,
        strict: t.Optional[bool] = None,
        session_mode: t.Optional[str] = None,
    ) -> None:
        if session_mode is None:
            session_mode = config.session_mode
        if session_mode not in (SESSION_MODE_DELTA, SESSION_MODE_TOTAL):
            raise ValueError("invalid session mode %r" % (session_mode,))

        self._registry = registry
        self._counter = HitCounter(registry)
        self._strict = config.strict if strict is None else strict
        self._session_mode = session_mode

        self._session_ids = itertools.count(1)
        self._sessions: t.Dict[int, Session] = {}
        self._lock = threading.Lock()
        self._ctx_sessions: ContextVar[t.Tuple[Session, ...]] = ContextVar(
            "covtrack_sessions_%d" % next(_tracker_ids), default=()
        )

        self._warnings = 0
        self._closed = False

    @property
    def registry(self) -> ProbeRegistry:
        return self._registry

    @property
    def counter(self) -> HitCounter:
        return self._counter

    @property
    def strict(self) -> bool:
        return self._strict

    @property
    def warnings(self) -> int:
        return self._warnings

    def start(self) -> None:
        self._registry.freeze()
        self._closed = False

    def notify_hit(self, probe_id: int) -> None:
        """Record one execution of a probe.

        This is called from instrumented code, so engine errors are logged and
        counted rather than raised, unless the tracker is strict.
        """
        if self._closed:
            return

        try:
            self._counter.increment(probe_id)
            for session in self._ctx_sessions.get():
                if session.active:
                    session.counter.increment(probe_id)
        except CoverageError as e:
            with self._lock:
                self._warnings += 1
            if self._strict:
                raise
            log.warning("notify::hit_dropped", extra={"product": "tracker", "more_info": " %s" % e})

    def begin_session(self) -> Session:
        session = Session(
            id=next(self._session_ids),
            counter=HitCounter(self._registry),
        )
        with self._lock:
            self._sessions[session.id] = session
        self._ctx_sessions.set(self._ctx_sessions.get() + (session,))
        log.debug("Began coverage session %d", session.id)
        return session

    def end_session(self, handle: SessionRef) -> CoverageSnapshot:
        return self._end(handle, partial=False)

    def abort_session(self, handle: SessionRef) -> CoverageSnapshot:
        """End a session that did not terminate cleanly and return what it collected."""
        return self._end(handle, partial=True)

    def _end(self, handle: SessionRef, partial: bool) -> CoverageSnapshot:
        session_id = handle.id if isinstance(handle, Session) else handle
        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is None:
            raise SessionNotFoundError(session_id)

        session.active = False
        stack = self._ctx_sessions.get()
        if session in stack:
            self._ctx_sessions.set(tuple(s for s in stack if s is not session))

        if self._session_mode == SESSION_MODE_TOTAL:
            snapshot = self._counter.snapshot(partial=partial)
        else:
            snapshot = session.counter.snapshot(partial=partial)

        log.debug(
            "%s coverage session %d with %d probes hit", "Aborted" if partial else "Ended", session.id, len(snapshot)
        )
        return snapshot

    def open_sessions(self) -> t.Tuple[Session, ...]:
        with self._lock:
            return tuple(self._sessions.values())

    @contextmanager
    def session(self) -> t.Iterator[Session]:
        """Run a block in a new session. The session is aborted if the block raises."""
        handle = self.begin_session()
        try:
            yield handle
        except BaseException:
            if handle.active:
                self.abort_session(handle)
            raise
        if handle.active:
            self.end_session(handle)

    @contextmanager
    def activate(self, handle: Session) -> t.Iterator[Session]:
        """Credit the hits of the current context, e.g. a worker thread, to an existing session."""
        if not handle.active:
            raise SessionNotFoundError(handle.id)
        token = self._ctx_sessions.set(self._ctx_sessions.get() + (handle,))
        try:
            yield handle
        finally:
            self._ctx_sessions.reset(token)

    @staticmethod
    def merge(a: CoverageSnapshot, b: CoverageSnapshot) -> CoverageSnapshot:
        return merge(a, b)

    @staticmethod
    def merge_all(snapshots: t.Iterable[CoverageSnapshot]) -> CoverageSnapshot:
        return merge_all(snapshots)

    def flush(self) -> CoverageSnapshot:
        """Process-wide counts so far, without ending any session."""
        return self._counter.snapshot()

    def teardown(self) -> CoverageSnapshot:
        for session in self.open_sessions():
            log.debug("Aborting coverage session %d still open at teardown", session.id)
            self.abort_session(session)
        self._closed = True
        return self._counter.snapshot()
