"""Command that runs the workflow service."""

from __future__ import annotations

import argparse
import asyncio
import sys

from .engine import WorkflowEngine
from .scheduler import Scheduler, SchedulerError
from .storage import InMemoryStorage
from .webserver import ApiServer

DEFAULT_AMQP_URL = "amqp://localhost"
DEFAULT_ADDR = "0.0.0.0:3000"


async def run(amqp_url: str = DEFAULT_AMQP_URL, addr: str = DEFAULT_ADDR) -> None:
    """Set up storage, scheduler and engine, then serve the API until cancelled."""
    storage = InMemoryStorage()
    scheduler = Scheduler(amqp_url, storage)
    try:
        await scheduler.start_leader_election()
        engine = WorkflowEngine(scheduler, storage)
        await ApiServer(engine).start(addr)
    finally:
        await scheduler.close()


def main(argv: list[str] | None = None) -> int:
    """Run the service; return the process exit status."""
    parser = argparse.ArgumentParser(prog="upplysning", description="Workflow service.")
    parser.add_argument("--amqp-url", default=DEFAULT_AMQP_URL, help="task queue URL")
    parser.add_argument("--addr", default=DEFAULT_ADDR, help="host:port to listen on")
    args = parser.parse_args(argv)
    try:
        asyncio.run(run(args.amqp_url, args.addr))
    except KeyboardInterrupt:
        return 0
    except (OSError, ValueError, SchedulerError) as exc:
        print(exc, file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())