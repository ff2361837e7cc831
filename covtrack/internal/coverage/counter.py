import threading
import typing as t

from covtrack.errors import UnknownProbeError
from covtrack.internal.coverage.probes import ProbeRegistry
from covtrack.internal.coverage.snapshot import CoverageSnapshot


class HitCounter(object):
    """Concurrency-safe hit counts keyed by probe id.

    Entries are created on the first increment of a probe and only ever grow.
    All mutations and the snapshot copy happen under a single lock, so a
    snapshot reflects every increment that completed before it and none that
    started after it.
    """

    def __init__(self, registry: ProbeRegistry) -> None:
        self._registry = registry
        self._counts: t.Dict[int, int] = {}
        self._lock = threading.Lock()

    @property
    def registry(self) -> ProbeRegistry:
        return self._registry

    def increment(self, probe_id: int, n: int = 1) -> None:
        if probe_id not in self._registry:
            raise UnknownProbeError(probe_id)
        if n < 0:
            raise ValueError("hit counts cannot be decremented")

        with self._lock:
            self._counts[probe_id] = self._counts.get(probe_id, 0) + n

    def count(self, probe_id: int) -> int:
        with self._lock:
            return self._counts.get(probe_id, 0)

    def snapshot(self, partial: bool = False) -> CoverageSnapshot:
        with self._lock:
            counts = self._counts.copy()
        return CoverageSnapshot(counts, partial=partial)

    def __len__(self) -> int:
        return len(self._counts)

    def __repr__(self):
        return f"HitCounter(entries={len(self._counts)})"
