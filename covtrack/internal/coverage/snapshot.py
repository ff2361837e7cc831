import time
from types import MappingProxyType
import typing as t

import attr


def _freeze_counts(counts: t.Mapping[int, int]) -> t.Mapping[int, int]:
    for probe_id, count in counts.items():
        if count < 0:
            raise ValueError("probe %r has a negative hit count: %r" % (probe_id, count))
    return MappingProxyType(dict(counts))


@attr.s(frozen=True, slots=True, eq=False)
class CoverageSnapshot(object):
    """Immutable point-in-time copy of probe hit counts.

    Equality only considers the counts: two snapshots that agree on every probe
    are equal regardless of when they were captured. Probes with a zero count
    are kept, so a snapshot can tell "registered and never hit" apart from
    "unknown".
    """

    counts = attr.ib(type=t.Mapping[int, int], converter=_freeze_counts, factory=dict)
    captured_at = attr.ib(type=float, factory=time.time)
    partial = attr.ib(type=bool, default=False)

    @classmethod
    def empty(cls) -> "CoverageSnapshot":
        return cls({})

    def count(self, probe_id: int) -> int:
        return self.counts.get(probe_id, 0)

    def probe_ids(self) -> t.FrozenSet[int]:
        return frozenset(self.counts)

    def covered(self) -> t.FrozenSet[int]:
        return frozenset(probe_id for probe_id, count in self.counts.items() if count > 0)

    def merge(self, other: "CoverageSnapshot") -> "CoverageSnapshot":
        return merge(self, other)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CoverageSnapshot):
            return NotImplemented
        return dict(self.counts) == dict(other.counts)

    def __hash__(self):
        return hash(frozenset(self.counts.items()))

    def __len__(self) -> int:
        return len(self.counts)

    def __repr__(self):
        return f"CoverageSnapshot(probes={len(self.counts)}, hits={sum(self.counts.values())}, partial={self.partial})"


def merge(a: CoverageSnapshot, b: CoverageSnapshot) -> CoverageSnapshot:
    """Pointwise sum of two snapshots over the union of their probe ids.

    The result is the same whatever the order of the operands or of the
    merges, so the final report never depends on how sessions were combined.
    """
    counts = dict(a.counts)
    for probe_id, count in b.counts.items():
        counts[probe_id] = counts.get(probe_id, 0) + count
    return CoverageSnapshot(counts, captured_at=max(a.captured_at, b.captured_at), partial=a.partial or b.partial)


def merge_all(snapshots: t.Iterable[CoverageSnapshot]) -> CoverageSnapshot:
    result = CoverageSnapshot.empty()
    for snapshot in snapshots:
        result = merge(result, snapshot)
    return result
