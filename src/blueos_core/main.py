"""Command line entry point for the BlueOS core supervisor."""

import argparse
import asyncio
import os
import sys
from typing import List, Optional

import structlog
from pydantic import ValidationError

from blueos_core import __version__
from blueos_core.core.config import Settings
from blueos_core.core.exceptions import SupervisorError
from blueos_core.supervisor import Supervisor
from blueos_core.utils.logging import setup_logging

logger = structlog.get_logger()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="blueos-core", description="BlueOS core service supervisor")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="cmd")

    sub.add_parser("start", help="Bootstrap the host, launch every service and stay resident")
    sub.add_parser("status", help="Show which service sessions are alive")
    cmd_attach = sub.add_parser("attach", help="Attach the terminal to a service session")
    cmd_attach.add_argument("name", help="Service name")

    return parser


def _status(supervisor: Supervisor) -> int:
    sessions = asyncio.run(supervisor.status())
    width = max((len(name) for name in sessions), default=0)
    for name, alive in sessions.items():
        print(f"{name.ljust(width)}  {'running' if alive else 'absent'}")
    return 0


def _attach(supervisor: Supervisor, name: str) -> int:
    if name not in supervisor.registry.names():
        print(f"ERROR: unknown service '{name}'", file=sys.stderr)
        return 1
    argv = list(supervisor.sessions.attach_command(name))
    os.execvp(argv[0], argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = Settings()
    except ValidationError as e:
        setup_logging()
        logger.error("Invalid supervisor configuration", error=str(e))
        return 1

    setup_logging(settings.log_level, settings.log_format)

    try:
        supervisor = Supervisor(settings)
        if args.cmd == "status":
            return _status(supervisor)
        if args.cmd == "attach":
            return _attach(supervisor, args.name)
        asyncio.run(supervisor.serve())
    except SupervisorError as e:
        logger.error("BlueOS core supervisor aborted", error=str(e), code=e.code)
        return 1

    return 0


def run():
    sys.exit(main())


if __name__ == "__main__":
    run()
