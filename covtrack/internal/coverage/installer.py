import builtins
import importlib.abc
import importlib.machinery
import os
from pathlib import Path
import runpy
import sys
from types import ModuleType
import typing as t

from covtrack.errors import InstrumentationError
from covtrack.internal.coverage.instrumentation import PythonInstrumenter
from covtrack.internal.coverage.tracker import ExecutionTracker
from covtrack.internal.logger import get_logger


log = get_logger(__name__)

EXCLUDED_DIRS = frozenset({"__pycache__", ".git", ".hg", ".tox", ".venv", "venv", "node_modules", "site-packages"})
# Never instrument the coverage engine itself
COVTRACK_ROOT = Path(__file__).resolve().parents[2]


class InstrumentedLoader(importlib.machinery.SourceFileLoader):
    """Source loader that executes the instrumented code object of a module."""

    def __init__(self, fullname: str, path: str, instrumenter: PythonInstrumenter) -> None:
        super().__init__(fullname, path)
        self._instrumenter = instrumenter

    def get_code(self, fullname):
        code = self._instrumenter.code_for(self.path)
        if code is None:
            return super().get_code(fullname)
        return code


class ModuleCodeFinder(importlib.abc.MetaPathFinder):
    """Serve instrumented code for the modules the instrumenter knows about.

    Modules that were not instrumented are left to the regular finders.
    """

    def __init__(self, instrumenter: PythonInstrumenter) -> None:
        self.instrumenter = instrumenter

    def find_spec(self, fullname, path=None, target=None):
        spec = importlib.machinery.PathFinder.find_spec(fullname, path)
        if spec is None or spec.origin is None or not isinstance(spec.loader, importlib.machinery.SourceFileLoader):
            return None
        if self.instrumenter.code_for(spec.origin) is None:
            return None

        spec.loader = InstrumentedLoader(fullname, spec.origin, self.instrumenter)
        return spec


def iter_source_files(include_paths: t.Iterable[Path]) -> t.Iterator[Path]:
    for include_path in include_paths:
        if include_path.is_file():
            if include_path.suffix == ".py":
                yield include_path
            continue
        for dirpath, dirnames, filenames in os.walk(include_path):
            if Path(dirpath).resolve().is_relative_to(COVTRACK_ROOT):
                dirnames[:] = []
                continue
            dirnames[:] = sorted(d for d in dirnames if d not in EXCLUDED_DIRS and not d.startswith("."))
            for filename in sorted(filenames):
                if filename.endswith(".py"):
                    yield Path(dirpath) / filename


def instrument_paths(instrumenter: PythonInstrumenter, include_paths: t.Iterable[Path]) -> int:
    """Instrument every Python file below the include paths. Returns the number of files that were skipped.

    A file that cannot be compiled is skipped with a warning rather than
    aborting the run, since include paths routinely contain fixtures that are
    not meant to be imported.
    """
    skipped = 0
    for source_file in iter_source_files(include_paths):
        try:
            instrumenter.instrument(str(source_file))
        except InstrumentationError as e:
            skipped += 1
            log.warning("Skipping %s", e)
    return skipped


class CoverageInstallation(object):
    def __init__(self, instrumenter: PythonInstrumenter, finder: ModuleCodeFinder, skipped: int = 0) -> None:
        self.instrumenter = instrumenter
        self.finder = finder
        # Files below the include paths that could not be instrumented
        self.skipped = skipped

    @property
    def tracker(self) -> ExecutionTracker:
        return self.instrumenter.tracker

    def uninstall(self) -> None:
        if self.finder in sys.meta_path:
            sys.meta_path.remove(self.finder)
        self.instrumenter.uninstall()


def install(
    tracker: ExecutionTracker,
    include_paths: t.Optional[t.List[Path]] = None,
    extra_files: t.Iterable[str] = (),
    root: t.Optional[str] = None,
) -> CoverageInstallation:
    """Instrument the include paths, freeze the registry and start collecting.

    ``extra_files`` are instrumented even when they live outside the include
    paths, e.g. the script being run. Failing to instrument one of them is fatal.
    """
    if include_paths is None:
        include_paths = [Path(os.getcwd())]

    instrumenter = PythonInstrumenter(tracker, root=root)
    for extra_file in extra_files:
        instrumenter.instrument(extra_file)
    skipped = instrument_paths(instrumenter, include_paths)

    tracker.start()
    instrumenter.install()

    finder = ModuleCodeFinder(instrumenter)
    sys.meta_path.insert(0, finder)
    # Modules may be cached from an earlier finder lookup
    importlib.invalidate_caches()

    log.debug("Coverage installed for %d files", len(instrumenter.instrumented_paths()))
    return CoverageInstallation(instrumenter, finder, skipped)


def run_script(installation: CoverageInstallation, path: str, args: t.Sequence[str]) -> None:
    """Execute a script as ``__main__`` with its instrumented code."""
    path = os.path.abspath(path)
    code = installation.instrumenter.code_for(path)
    if code is None:
        raise InstrumentationError("%s was not instrumented" % path)

    main = ModuleType("__main__")
    main.__file__ = path
    main.__builtins__ = builtins  # type: ignore[attr-defined]
    main.__loader__ = InstrumentedLoader("__main__", path, installation.instrumenter)  # type: ignore[assignment]

    saved_main, saved_argv, saved_path0 = sys.modules.get("__main__"), sys.argv, sys.path[0]
    sys.modules["__main__"] = main
    sys.argv = [path, *args]
    sys.path[0] = os.path.dirname(path)
    try:
        exec(code, main.__dict__)
    finally:
        if saved_main is not None:
            sys.modules["__main__"] = saved_main
        sys.argv = saved_argv
        sys.path[0] = saved_path0


def run_module(installation: CoverageInstallation, module: str, args: t.Sequence[str]) -> None:
    """Execute a module as ``__main__``, like ``python -m``."""
    if installation.finder not in sys.meta_path:
        raise InstrumentationError("coverage is not installed, cannot run %s" % module)

    saved_argv, saved_path0 = sys.argv, sys.path[0]
    sys.argv = [module, *args]
    sys.path[0] = os.getcwd()
    try:
        runpy.run_module(module, run_name="__main__", alter_sys=True)
    finally:
        sys.argv = saved_argv
        sys.path[0] = saved_path0
