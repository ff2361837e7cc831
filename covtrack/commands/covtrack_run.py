#!/usr/bin/env python
import argparse
import logging
import os
from pathlib import Path
import sys
import typing as t

import attr

from covtrack.errors import CoverageError
from covtrack.internal.coverage.formats import parse_report
from covtrack.internal.coverage.installer import install
from covtrack.internal.coverage.installer import run_module
from covtrack.internal.coverage.installer import run_script
from covtrack.internal.coverage.probes import ProbeRegistry
from covtrack.internal.coverage.report import CoverageReport
from covtrack.internal.coverage.report import ReportBuilder
from covtrack.internal.coverage.report import gen_json_report
from covtrack.internal.coverage.report import gen_lcov_report
from covtrack.internal.coverage.sinks import sink_for
from covtrack.internal.coverage.snapshot import CoverageSnapshot
from covtrack.internal.coverage.snapshot import merge_all
from covtrack.internal.coverage.tracker import ExecutionTracker
from covtrack.settings.coverage import REPORT_FORMAT_JSON
from covtrack.settings.coverage import REPORT_FORMAT_LCOV
from covtrack.settings.coverage import config
from covtrack.version import __version__


log = logging.getLogger("covtrack.commands")

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_BELOW_THRESHOLD = 2

USAGE = """
Measure line and branch coverage of a Python program, or merge coverage
reports produced by other tools, and write a machine-readable report.


Examples
covtrack run -- tests/run_all.py
covtrack run --threshold 80 -- -m pytest tests
covtrack report --format lcov -o merged.info cover.out jacoco.xml
"""

CONTENT_TYPES = {REPORT_FORMAT_JSON: "application/json", REPORT_FORMAT_LCOV: "text/plain"}


def _add_output_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-o",
        "--output",
        default=config.output,
        help="report destination: a file path, - for stdout or an http(s) URL (default: %(default)s)",
    )
    parser.add_argument(
        "-f",
        "--format",
        choices=(REPORT_FORMAT_JSON, REPORT_FORMAT_LCOV),
        default=config.format,
        help="report format (default: %(default)s)",
    )
    parser.add_argument(
        "--threshold",
        type=float,
        default=config.threshold,
        metavar="PERCENT",
        help="exit with status 2 when overall coverage is below PERCENT",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description=USAGE,
        prog="covtrack",
        formatter_class=argparse.RawTextHelpFormatter,
    )
    parser.add_argument("-d", "--debug", help="enable debug logging (disabled by default)", action="store_true")
    parser.add_argument("-v", "--version", action="version", version="%(prog)s " + __version__)
    subparsers = parser.add_subparsers(dest="subcommand", required=True)

    run = subparsers.add_parser(
        "run",
        help="run a Python program with coverage",
        usage="covtrack run [options] -- <script.py | -m module> [args ...]",
    )
    _add_output_arguments(run)
    run.add_argument(
        "-i",
        "--include",
        action="append",
        default=None,
        help="path whose Python files are instrumented, may be repeated (default: the working directory)",
    )
    run.add_argument("--root", default=None, help="directory report paths are made relative to (default: cwd)")
    run.add_argument(
        "--strict",
        action="store_true",
        default=config.strict,
        help="fail on hits for unknown probes instead of logging them",
    )
    run.add_argument("command", nargs=argparse.REMAINDER, help="the script or -m module to run, with its arguments")

    report = subparsers.add_parser("report", help="merge Go, JaCoCo and LCOV reports into one report")
    _add_output_arguments(report)
    report.add_argument("files", nargs="+", help="coverage reports to merge")

    return parser


def write_report(report: CoverageReport, output: str, format: str) -> None:
    payload = gen_lcov_report(report) if format == REPORT_FORMAT_LCOV else gen_json_report(report)
    sink_for(output, content_type=CONTENT_TYPES[format]).write(payload)


def _finish(report: CoverageReport, args: argparse.Namespace) -> int:
    try:
        write_report(report, args.output, args.format)
    except CoverageError as e:
        log.error("covtrack: %s", e)
        return EXIT_ERROR

    print(
        "covtrack: %d/%d units covered (%.2f%%), %d warnings"
        % (report.executed, report.total, report.percentage, report.warnings),
        file=sys.stderr,
    )

    if args.threshold is not None and report.percentage < args.threshold:
        log.error("covtrack: coverage %.2f%% is below the threshold of %.2f%%", report.percentage, args.threshold)
        return EXIT_BELOW_THRESHOLD
    return EXIT_OK


def _exit_status(e: SystemExit) -> int:
    if e.code is None:
        return 0
    if isinstance(e.code, int):
        return e.code
    return 1


def run_command(args: argparse.Namespace) -> int:
    command: t.List[str] = list(args.command)
    if command and command[0] == "--":
        command = command[1:]
    if not command or (command[0] == "-m" and len(command) < 2):
        log.error("covtrack: nothing to run")
        return EXIT_ERROR

    module: t.Optional[str] = None
    script: t.Optional[str] = None
    if command[0] == "-m":
        module, program_args = command[1], command[2:]
    else:
        script, program_args = command[0], command[1:]

    include = args.include or config.include or [os.getcwd()]
    registry = ProbeRegistry()
    tracker = ExecutionTracker(registry, strict=args.strict)

    try:
        installation = install(
            tracker,
            include_paths=[Path(p).resolve() for p in include],
            extra_files=[script] if script is not None else (),
            root=args.root,
        )
    except CoverageError as e:
        log.error("covtrack: instrumentation failed: %s", e)
        return EXIT_ERROR

    crashed = False
    status = 0
    try:
        if module is not None:
            run_module(installation, module, program_args)
        else:
            run_script(installation, t.cast(str, script), program_args)
    except SystemExit as e:
        status = _exit_status(e)
    except Exception:
        crashed = True
        log.exception("covtrack: %s raised an exception, reporting partial coverage", module or script)
    finally:
        installation.uninstall()

    if status:
        log.warning("covtrack: %s exited with status %d", module or script, status)

    snapshot: CoverageSnapshot = tracker.teardown()
    if crashed:
        snapshot = attr.evolve(snapshot, partial=True)

    report = ReportBuilder().build(snapshot, registry, warnings=tracker.warnings + installation.skipped)
    return _finish(report, args)


def report_command(args: argparse.Namespace) -> int:
    registry = ProbeRegistry()
    snapshots = []
    for path in args.files:
        try:
            with open(path, "rb") as f:
                data = f.read()
            _, snapshot = parse_report(data, registry)
        except OSError as e:
            log.error("covtrack: cannot read %s: %s", path, e)
            return EXIT_ERROR
        except CoverageError as e:
            log.error("covtrack: %s: %s", path, e)
            return EXIT_ERROR
        snapshots.append(snapshot)

    registry.freeze()
    report = ReportBuilder().build(merge_all(snapshots), registry)
    return _finish(report, args)


def main(argv: t.Optional[t.Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.debug:
        logging.getLogger("covtrack").setLevel(logging.DEBUG)

    if args.subcommand == "run":
        return run_command(args)
    return report_command(args)


if __name__ == "__main__":
    sys.exit(main())
