from enum import Enum
import typing as t

import attr

from covtrack.errors import DuplicateLocationError
from covtrack.errors import RegistryFrozenError
from covtrack.internal.logger import get_logger


log = get_logger(__name__)


class UnitKind(str, Enum):
    LINE = "line"
    BRANCH = "branch"


@attr.s(frozen=True, slots=True, order=False)
class SourceLocation(object):
    """Where an executable unit lives in the source.

    ``branch`` is ``None`` for line units and the index of the branch arm on
    ``line`` otherwise.
    """

    file = attr.ib(type=str)
    line = attr.ib(type=int)
    branch = attr.ib(type=t.Optional[int], default=None)

    @line.validator
    def _check_line(self, attribute, value):
        if value < 0:
            raise ValueError("line numbers cannot be negative: %r" % (value,))

    @branch.validator
    def _check_branch(self, attribute, value):
        if value is not None and value < 0:
            raise ValueError("branch indices cannot be negative: %r" % (value,))

    def sort_key(self) -> t.Tuple[str, int, int]:
        # Line units sort before the branches on the same line
        return (self.file, self.line, -1 if self.branch is None else self.branch)

    def __lt__(self, other: "SourceLocation") -> bool:
        return self.sort_key() < other.sort_key()

    def __str__(self):
        if self.branch is None:
            return "%s:%d" % (self.file, self.line)
        return "%s:%d#%d" % (self.file, self.line, self.branch)


@attr.s(frozen=True, slots=True)
class Probe(object):
    id = attr.ib(type=int)
    kind = attr.ib(type=UnitKind)
    location = attr.ib(type=SourceLocation)


class ProbeRegistry(object):
    """Assigns stable identifiers to the executable units found by instrumentation.

    Probe ids are dense and follow registration order, so iterating over
    :meth:`all` is reproducible across runs. The registry is populated once and
    then frozen before execution starts; a frozen registry is never mutated
    again, which is why readers need no locking.
    """

    def __init__(self) -> None:
        self._probes: t.List[Probe] = []
        self._by_location: t.Dict[SourceLocation, Probe] = {}
        self._files: t.Dict[str, None] = {}
        self._frozen = False

    def register(self, location: SourceLocation, kind: t.Optional[UnitKind] = None) -> int:
        if kind is None:
            kind = UnitKind.LINE if location.branch is None else UnitKind.BRANCH

        existing = self._by_location.get(location)
        if existing is not None:
            if existing.kind is not kind:
                raise DuplicateLocationError(location, existing.kind, kind)
            return existing.id

        if self._frozen:
            raise RegistryFrozenError("cannot register %s, the probe registry is frozen" % (location,))

        probe = Probe(id=len(self._probes), kind=kind, location=location)
        self._probes.append(probe)
        self._by_location[location] = probe
        self._files.setdefault(location.file, None)

        return probe.id

    def register_file(self, path: str) -> None:
        """Declare a source file, even one without any executable unit."""
        if path in self._files:
            return
        if self._frozen:
            raise RegistryFrozenError("cannot register %s, the probe registry is frozen" % (path,))
        self._files[path] = None

    def freeze(self) -> None:
        if not self._frozen:
            log.debug("Freezing probe registry with %d probes in %d files", len(self._probes), len(self._files))
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def get(self, probe_id: int) -> t.Optional[Probe]:
        if 0 <= probe_id < len(self._probes):
            return self._probes[probe_id]
        return None

    def lookup(self, location: SourceLocation) -> t.Optional[Probe]:
        return self._by_location.get(location)

    def all(self) -> t.Tuple[Probe, ...]:
        return tuple(self._probes)

    def files(self) -> t.Tuple[str, ...]:
        return tuple(self._files)

    def __contains__(self, probe_id: object) -> bool:
        return isinstance(probe_id, int) and 0 <= probe_id < len(self._probes)

    def __len__(self) -> int:
        return len(self._probes)

    def __iter__(self) -> t.Iterator[Probe]:
        return iter(self.all())

    def __repr__(self):
        return f"ProbeRegistry(probes={len(self._probes)}, files={len(self._files)}, frozen={self._frozen})"
