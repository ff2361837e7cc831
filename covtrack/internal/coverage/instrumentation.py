"""
Coverage instrumentation for Python source code using the sys.monitoring API.

Every executable line of a module becomes a line probe and every conditional
jump (``POP_JUMP_IF_*``, ``FOR_ITER``) becomes two branch probes on the jump's
line: index ``2k`` when the jump is taken and ``2k + 1`` when execution falls
through, ``k`` being the position of the jump among the jumps of that line.

LINE and BRANCH events are enabled locally on the instrumented code objects
only, and the callbacks never return DISABLE for known locations, so every
execution is counted.
"""

import abc
import dis
import os
import sys
import tokenize
from types import CodeType
import typing as t

from covtrack.errors import InstrumentationError
from covtrack.internal.coverage.probes import Probe
from covtrack.internal.coverage.probes import SourceLocation
from covtrack.internal.coverage.tracker import ExecutionTracker
from covtrack.internal.logger import get_logger


log = get_logger(__name__)


# This is primarily to make mypy happy without having to nest the rest of this module behind a version check
assert sys.version_info >= (3, 12)  # nosec

TOOL_NAME = "covtrack"
# COVERAGE_ID first, then the ids CPython leaves unassigned
TOOL_IDS = (sys.monitoring.COVERAGE_ID, 3, 4)

EVENTS = sys.monitoring.events
# Python 3.14 splits BRANCH into BRANCH_LEFT (fall through) and BRANCH_RIGHT (jump taken)
SPLIT_BRANCH_EVENTS = hasattr(EVENTS, "BRANCH_LEFT")
BRANCH_EVENTS = EVENTS.BRANCH_LEFT | EVENTS.BRANCH_RIGHT if SPLIT_BRANCH_EVENTS else EVENTS.BRANCH
LOCAL_EVENTS = EVENTS.LINE | BRANCH_EVENTS

RESUME = dis.opmap["RESUME"]
BRANCH_OPNAMES = frozenset(name for name in dis.opmap if name.startswith("POP_JUMP_IF_")) | {"FOR_ITER"}


class Instrumenter(abc.ABC):
    """Discovers the executable units of a source file and arranges for hits to be notified.

    Implementations register one probe per unit with the tracker's registry and
    make the instrumented program call ``tracker.notify_hit(probe_id)`` when the
    unit executes.
    """

    def __init__(self, tracker: ExecutionTracker) -> None:
        self.tracker = tracker

    @abc.abstractmethod
    def instrument(self, path: str) -> t.List[Probe]:
        ...


class _BranchSite(t.NamedTuple):
    fallthrough: int
    taken_probe: int
    not_taken_probe: int


def _iter_code_objects(code: CodeType) -> t.Iterator[CodeType]:
    yield code
    for const in code.co_consts:
        if isinstance(const, CodeType):
            yield from _iter_code_objects(const)


def _traceable_instructions(code: CodeType) -> t.List[dis.Instruction]:
    # LINE events are not emitted for the instructions up to and including RESUME
    instructions = list(dis.get_instructions(code))
    for i, instr in enumerate(instructions):
        if instr.opcode == RESUME:
            return instructions[i + 1 :]
    return instructions


class PythonInstrumenter(Instrumenter):
    def __init__(self, tracker: ExecutionTracker, root: t.Optional[str] = None) -> None:
        super().__init__(tracker)
        self.root = os.path.abspath(root or os.getcwd())

        self._modules: t.Dict[str, CodeType] = {}
        self._line_probes: t.Dict[CodeType, t.Dict[int, int]] = {}
        self._branch_sites: t.Dict[CodeType, t.Dict[int, _BranchSite]] = {}
        self._tool_id: t.Optional[int] = None

    @property
    def installed(self) -> bool:
        return self._tool_id is not None

    def display_path(self, path: str) -> str:
        """The path probes are registered under: relative to the root when the file lives below it."""
        try:
            rel = os.path.relpath(path, self.root)
        except ValueError:
            return path
        return path if rel.startswith(os.pardir) else rel

    def code_for(self, path: str) -> t.Optional[CodeType]:
        return self._modules.get(os.path.abspath(path))

    def instrumented_paths(self) -> t.Tuple[str, ...]:
        return tuple(self._modules)

    def instrument(self, path: str) -> t.List[Probe]:
        path = os.path.abspath(path)
        if path in self._modules:
            return []

        try:
            with tokenize.open(path) as f:
                source = f.read()
            module_code = compile(source, path, "exec", dont_inherit=True)
        except (OSError, SyntaxError, ValueError) as e:
            raise InstrumentationError("cannot instrument %s: %s" % (path, e)) from e

        return self.instrument_code(module_code, path)

    def instrument_code(self, module_code: CodeType, path: str) -> t.List[Probe]:
        registry = self.tracker.registry
        file = self.display_path(path)
        registry.register_file(file)

        probes: t.Dict[int, Probe] = {}
        branches_on_line: t.Dict[int, int] = {}

        def _register(location: SourceLocation) -> int:
            probe_id = registry.register(location)
            probe = registry.get(probe_id)
            if probe is not None:
                probes.setdefault(probe_id, probe)
            return probe_id

        for code in _iter_code_objects(module_code):
            instructions = _traceable_instructions(code)

            lines = self._line_probes.setdefault(code, {})
            for instr in instructions:
                lineno = instr.positions.lineno if instr.positions is not None else None
                if lineno is None or lineno <= 0 or lineno in lines:
                    continue
                lines[lineno] = _register(SourceLocation(file, lineno))

            sites = self._branch_sites.setdefault(code, {})
            for i, instr in enumerate(instructions):
                if instr.opname not in BRANCH_OPNAMES or i + 1 >= len(instructions):
                    continue
                lineno = instr.positions.lineno if instr.positions is not None else None
                if lineno is None or lineno <= 0:
                    continue
                k = branches_on_line.get(lineno, 0)
                branches_on_line[lineno] = k + 1
                sites[instr.offset] = _BranchSite(
                    fallthrough=instructions[i + 1].offset,
                    taken_probe=_register(SourceLocation(file, lineno, 2 * k)),
                    not_taken_probe=_register(SourceLocation(file, lineno, 2 * k + 1)),
                )

            if self._tool_id is not None:
                sys.monitoring.set_local_events(self._tool_id, code, LOCAL_EVENTS)

        self._modules[path] = module_code
        log.debug("Instrumented %s with %d probes", file, len(probes))
        return list(probes.values())

    def install(self) -> None:
        if self._tool_id is not None:
            return

        for tool_id in TOOL_IDS:
            if sys.monitoring.get_tool(tool_id) is None:
                break
            log.debug("Monitoring tool id %d already used by %r", tool_id, sys.monitoring.get_tool(tool_id))
        else:
            raise InstrumentationError("no free sys.monitoring tool id to register the coverage tool")

        sys.monitoring.use_tool_id(tool_id, TOOL_NAME)
        sys.monitoring.register_callback(tool_id, EVENTS.LINE, self._on_line)
        if SPLIT_BRANCH_EVENTS:
            sys.monitoring.register_callback(tool_id, EVENTS.BRANCH_LEFT, self._on_branch_left)
            sys.monitoring.register_callback(tool_id, EVENTS.BRANCH_RIGHT, self._on_branch_right)
        else:
            sys.monitoring.register_callback(tool_id, EVENTS.BRANCH, self._on_branch)
        self._tool_id = tool_id

        for code in self._line_probes:
            sys.monitoring.set_local_events(tool_id, code, LOCAL_EVENTS)
        log.debug("Registered coverage tool with monitoring tool id %d", tool_id)

    def uninstall(self) -> None:
        tool_id = self._tool_id
        if tool_id is None:
            return

        for code in self._line_probes:
            sys.monitoring.set_local_events(tool_id, code, 0)
        sys.monitoring.register_callback(tool_id, EVENTS.LINE, None)
        if SPLIT_BRANCH_EVENTS:
            sys.monitoring.register_callback(tool_id, EVENTS.BRANCH_LEFT, None)
            sys.monitoring.register_callback(tool_id, EVENTS.BRANCH_RIGHT, None)
        else:
            sys.monitoring.register_callback(tool_id, EVENTS.BRANCH, None)
        sys.monitoring.free_tool_id(tool_id)
        self._tool_id = None

    def _on_line(self, code: CodeType, line: int):
        lines = self._line_probes.get(code)
        probe_id = lines.get(line) if lines is not None else None
        if probe_id is None:
            return sys.monitoring.DISABLE
        self.tracker.notify_hit(probe_id)

    def _site(self, code: CodeType, offset: int) -> t.Optional[_BranchSite]:
        sites = self._branch_sites.get(code)
        return sites.get(offset) if sites is not None else None

    def _on_branch(self, code: CodeType, offset: int, destination: int):
        site = self._site(code, offset)
        if site is None:
            return sys.monitoring.DISABLE
        self.tracker.notify_hit(site.not_taken_probe if destination == site.fallthrough else site.taken_probe)

    def _on_branch_left(self, code: CodeType, offset: int, destination: int):
        site = self._site(code, offset)
        if site is None:
            return sys.monitoring.DISABLE
        self.tracker.notify_hit(site.not_taken_probe)

    def _on_branch_right(self, code: CodeType, offset: int, destination: int):
        site = self._site(code, offset)
        if site is None:
            return sys.monitoring.DISABLE
        self.tracker.notify_hit(site.taken_probe)
