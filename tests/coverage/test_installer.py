import sys
import textwrap

import pytest

from covtrack.errors import InstrumentationError
from covtrack.internal.coverage.installer import ModuleCodeFinder
from covtrack.internal.coverage.installer import install
from covtrack.internal.coverage.installer import iter_source_files
from covtrack.internal.coverage.installer import run_module
from covtrack.internal.coverage.installer import run_script
from covtrack.internal.coverage.probes import ProbeRegistry
from covtrack.internal.coverage.report import ReportBuilder
from covtrack.internal.coverage.tracker import ExecutionTracker
from tests.coverage.utils import line_counts


@pytest.fixture
def project(tmp_path, monkeypatch, clean_modules):
    (tmp_path / "covpkg").mkdir()
    (tmp_path / "covpkg" / "__init__.py").write_text("")
    (tmp_path / "covpkg" / "helper.py").write_text(
        textwrap.dedent(
            """\
            def double(x):
                return x * 2


            def unused():
                return None
            """
        )
    )
    (tmp_path / "main.py").write_text(
        textwrap.dedent(
            """\
            import sys

            from covpkg.helper import double

            with open(sys.argv[1], "w") as f:
                f.write(str(double(21)))
            """
        )
    )
    (tmp_path / "covmain.py").write_text(
        textwrap.dedent(
            """\
            import sys

            if __name__ == "__main__":
                with open(sys.argv[1], "w") as f:
                    f.write("main")
            """
        )
    )
    (tmp_path / ".hidden").mkdir()
    (tmp_path / ".hidden" / "skipped.py").write_text("x = 1\n")
    monkeypatch.syspath_prepend(str(tmp_path))
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def installed(project):
    tracker = ExecutionTracker(ProbeRegistry())
    installation = install(tracker, include_paths=[project], root=str(project))
    try:
        yield installation
    finally:
        installation.uninstall()
        tracker.teardown()


def _lines(installation):
    tracker = installation.tracker
    return line_counts(ReportBuilder().build(tracker.flush(), tracker.registry))


def test_iter_source_files_skips_hidden_and_cache_dirs(project):
    (project / "__pycache__").mkdir()
    (project / "__pycache__" / "cached.py").write_text("")
    (project / "notes.txt").write_text("")

    files = sorted(p.relative_to(project).as_posix() for p in iter_source_files([project]))

    assert files == ["covmain.py", "covpkg/__init__.py", "covpkg/helper.py", "main.py"]


def test_iter_source_files_single_file(project):
    assert list(iter_source_files([project / "main.py", project / "notes.md"])) == [project / "main.py"]


def test_install(installed):
    assert isinstance(sys.meta_path[0], ModuleCodeFinder)
    assert installed.tracker.registry.frozen
    assert installed.skipped == 0
    files = set(installed.tracker.registry.files())
    assert files == {"covmain.py", "covpkg/__init__.py", "covpkg/helper.py", "main.py"}


def test_uninstall(installed):
    installed.uninstall()

    assert installed.finder not in sys.meta_path
    assert not installed.instrumenter.installed


def test_import_hook_serves_instrumented_code(installed):
    import covpkg.helper

    covpkg.helper.double(1)
    covpkg.helper.double(2)

    lines = _lines(installed)["covpkg/helper.py"]
    assert lines == {1: 1, 2: 2, 5: 1, 6: 0}


def test_run_script(installed, project):
    out = project / "out.txt"
    argv = sys.argv

    run_script(installed, str(project / "main.py"), [str(out)])

    assert out.read_text() == "42"
    assert sys.argv is argv
    lines = _lines(installed)
    # The with statement line also runs when the block exits
    assert {line for line, count in lines["main.py"].items() if count} == {1, 3, 5, 6}
    assert lines["covpkg/helper.py"][2] == 1


def test_run_script_not_instrumented(installed, tmp_path_factory):
    other = tmp_path_factory.mktemp("other") / "script.py"
    other.write_text("pass\n")

    with pytest.raises(InstrumentationError):
        run_script(installed, str(other), [])


def test_run_module(installed, project):
    out = project / "out.txt"

    run_module(installed, "covmain", [str(out)])

    assert out.read_text() == "main"
    assert _lines(installed)["covmain.py"][5] == 1


def test_run_module_after_uninstall(installed):
    installed.uninstall()

    with pytest.raises(InstrumentationError):
        run_module(installed, "covmain", [])


def test_broken_files_are_skipped(project):
    (project / "broken.py").write_text("def broken(:\n")
    tracker = ExecutionTracker(ProbeRegistry())

    installation = install(tracker, include_paths=[project], root=str(project))
    try:
        assert installation.skipped == 1
        assert "broken.py" not in tracker.registry.files()
        assert "main.py" in tracker.registry.files()
    finally:
        installation.uninstall()


def test_broken_extra_file_is_fatal(project, tmp_path_factory):
    script = tmp_path_factory.mktemp("scripts") / "broken.py"
    script.write_text("def broken(:\n")

    with pytest.raises(InstrumentationError):
        install(ExecutionTracker(ProbeRegistry()), include_paths=[project], extra_files=[str(script)])
