#!/usr/bin/env python3
# ============================================================================
# CLI PROCESS RUNNER
# ============================================================================
# STATUS: Tool - Run one process from the command line
# PURPOSE: Execute or check a process without the orchestrator or a store
# CREATED: 18 OCT 2026
# ============================================================================
"""
Run a process definition directly, once or under a schedule.

Usage:
    # Run once with positional arguments
    dbflow-run nightly_load 2026-10-18

    # Run a process file
    dbflow-run ./processes/nightly_load.yaml 2026-10-18

    # Validate only
    dbflow-run nightly_load --check

    # Run at every occurrence of a named schedule
    dbflow-run nightly_load --schedule:nightly --schedules-file jobs.yaml

Exit code is 0 when every run succeeded, 1 on any load or run failure.
Ctrl-C cancels the running process.
"""

import argparse
import asyncio
import logging
import os
import signal
import sys
from datetime import datetime
from typing import List, Optional

import yaml

from core.cancellation import CancellationToken
from core.errors import DefinitionError
from core.logging import configure_logging
from core.models import ProcessDefinition
from orchestrator.engine import ProcessContext, ProcessResult, TaskGraphEngine
from recurrence import ScheduleSet, parse_schedule_set, sleep_until
from services import ProcessService

logger = logging.getLogger(__name__)

_SCHEDULE_PREFIX = "--schedule:"


def load_schedule_text(path: str, name: str) -> str:
    """
    Read one named schedule from a YAML file.

    The file is either a mapping of name -> text or a jobs file with a
    top-level `schedules` mapping.

    Raises:
        DefinitionError: If the file cannot be read or lacks the schedule
    """
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise DefinitionError(f"Cannot read schedules file {path}: {e}") from e

    if isinstance(data, dict) and isinstance(data.get("schedules"), dict):
        data = data["schedules"]
    if not isinstance(data, dict) or name not in data:
        raise DefinitionError(f"Schedule '{name}' not found in {path}")
    return str(data[name])


def _print_result(result: ProcessResult) -> None:
    print(f"{result.process_id}: {result.status.value}")
    for name, status in result.task_statuses.items():
        print(f"  {name:<24} {status.value}")
    if result.message:
        print(f"  message: {result.message}")


class ProcessRunner:
    """Runs one process definition, optionally under a schedule."""

    def __init__(
        self,
        service: ProcessService,
        process: ProcessDefinition,
        args: List[str],
        properties: dict,
    ):
        self.service = service
        self.process = process
        self.args = args
        self.properties = properties
        self.token = CancellationToken()
        self._stop_event = asyncio.Event()

    def interrupt(self) -> None:
        """Cancel the running process and any pending occurrence."""
        logger.info("Interrupt received, cancelling")
        self.token.cancel()
        self._stop_event.set()

    async def run_once(self) -> ProcessResult:
        context = ProcessContext(
            variables=dict(self.properties),
            args=list(self.args),
            token=self.token.child(),
            loader=self.service.get_or_raise,
        )
        result = await TaskGraphEngine(self.process, context).run()
        _print_result(result)
        return result

    async def run_scheduled(self, schedules: ScheduleSet) -> bool:
        """Run at every occurrence until the schedule ends or Ctrl-C."""
        ok = True
        if schedules.is_immediate:
            ok = (await self.run_once()).succeeded and ok

        while not self._stop_event.is_set():
            wake = schedules.next_from(datetime.now())
            if wake is None:
                logger.info("Schedule has no further occurrence")
                break
            print(f"Next run at {wake.isoformat(sep=' ')}")
            if not await sleep_until(wake, self._stop_event):
                break
            ok = (await self.run_once()).succeeded and ok
        return ok


def _normalize_argv(argv: List[str]) -> List[str]:
    """Rewrite `--schedule:<name>` into `--schedule <name>`."""
    normalized = []
    for arg in argv:
        if arg.startswith(_SCHEDULE_PREFIX):
            normalized.extend(["--schedule", arg[len(_SCHEDULE_PREFIX):]])
        else:
            normalized.append(arg)
    return normalized


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dbflow-run",
        description="Run or check a dbflow process",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s nightly_load 2026-10-18
  %(prog)s ./processes/nightly_load.yaml --check
  %(prog)s nightly_load --schedule:nightly --schedules-file jobs.yaml
        """,
    )
    parser.add_argument("process", help="Process id or path to a process YAML file")
    parser.add_argument("args", nargs="*", help="Positional arguments for the process")
    parser.add_argument(
        "--check",
        action="store_true",
        help="Validate the process and print its execution order",
    )
    parser.add_argument(
        "--schedule", "-s",
        metavar="NAME",
        help="Run at every occurrence of this schedule (also --schedule:NAME)",
    )
    parser.add_argument(
        "--schedules-file",
        default=os.environ.get("JOBS_FILE"),
        help="YAML file with named schedules (default: $JOBS_FILE)",
    )
    parser.add_argument(
        "--processes-dir", "-d",
        default=None,
        help="Process definition directory (default: $PROCESSES_DIR or ./processes)",
    )
    parser.add_argument(
        "--properties", "-p",
        default=None,
        help="YAML properties file bound as process variables",
    )
    parser.add_argument(
        "--log-level", "-l",
        default=os.environ.get("LOG_LEVEL", "WARNING"),
        help="Log level (default: WARNING)",
    )
    return parser


async def _run(runner: ProcessRunner, schedules: Optional[ScheduleSet]) -> bool:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, runner.interrupt)
        except NotImplementedError:
            # Windows doesn't support add_signal_handler
            pass

    if schedules is None:
        return (await runner.run_once()).succeeded
    return await runner.run_scheduled(schedules)


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(_normalize_argv(sys.argv[1:] if argv is None else argv))

    configure_logging(level=args.log_level)

    service = ProcessService(processes_dir=args.processes_dir)
    try:
        process = service.get_or_raise(args.process)
        order = service.check(process)
        properties = service.load_properties(os.path.abspath(args.properties) if args.properties else None)
        schedules = None
        if args.schedule:
            if not args.schedules_file:
                raise DefinitionError("--schedule needs --schedules-file or $JOBS_FILE")
            text = load_schedule_text(args.schedules_file, args.schedule)
            schedules = parse_schedule_set(text)
    except DefinitionError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    if args.check:
        print(f"{process.process_id} v{process.version}: OK")
        print(f"  order: {' -> '.join(order)}")
        return 0

    runner = ProcessRunner(service, process, args.args, properties)
    try:
        ok = asyncio.run(_run(runner, schedules))
    except KeyboardInterrupt:
        print("Interrupted", file=sys.stderr)
        return 1
    return 0 if ok else 1


if __name__ == "__main__":
    sys.exit(main())
