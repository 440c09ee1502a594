from __future__ import annotations

import argparse
import logging
import subprocess
import sys
from dataclasses import replace

from schtask import api
from schtask.config import Settings
from schtask.errors import TaskSchedulerError
from schtask.logging_setup import setup_logging
from schtask.models import SUCCESS_MESSAGE

logger = logging.getLogger(__name__)

DEMO_EXECUTABLE = "C:\\Windows\\System32\\notepad.exe"
DEMO_ARGUMENTS = "C:\\Windows\\System32\\drivers\\etc\\hosts"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="schtask")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
    )
    sub = parser.add_subparsers(dest="cmd", required=True)

    p_create = sub.add_parser("create", help="create or replace a logon task")
    p_create.add_argument("name")
    p_create.add_argument("executable")
    # Everything after the executable is passed to it, including "-" options.
    p_create.add_argument("arguments", nargs=argparse.REMAINDER)

    sub.add_parser("resolve", help="print the Task Scheduler CLSID and IID")
    sub.add_parser("demo", help="create the two sample notepad tasks")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)

    settings = Settings.from_env()
    if args.log_level:
        settings = replace(settings, log_level=args.log_level)
    setup_logging(settings)

    if args.cmd == "create":
        arguments = subprocess.list2cmdline(args.arguments) or None
        result = api.create_task(
            args.name, args.executable, arguments, settings=settings
        )
        print(result)
        return 0 if result == SUCCESS_MESSAGE else 1

    if args.cmd == "resolve":
        try:
            ids = api.resolve_identifiers(settings=settings)
        except TaskSchedulerError as e:
            print(str(e))
            return 1
        except Exception as e:
            logger.error(f"Unexpected error resolving identifiers: {e}", exc_info=True)
            print(f"Unexpected error: {e}")
            return 1
        print(f"CLSID: {ids.service_class_id}")
        print(f"IID: {ids.service_interface_id}")
        return 0

    if args.cmd == "demo":
        first = api.create_task("MyTask", DEMO_EXECUTABLE, None, settings=settings)
        print(f"Task without arguments: {first}")
        second = api.create_task(
            "MyTaskWithArgs", DEMO_EXECUTABLE, DEMO_ARGUMENTS, settings=settings
        )
        print(f"Task with arguments: {second}")
        return 0 if first == second == SUCCESS_MESSAGE else 1

    return 2


if __name__ == "__main__":
    sys.exit(main())
