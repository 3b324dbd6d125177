from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from collections.abc import Sequence

from node_health_agent.core.config import ConfigError, load_config
from node_health_agent.core.orchestrator import HeartbeatOrchestrator

LOGGER = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _positive_int(s: str) -> int:
    try:
        value = int(s)
    except ValueError as e:
        raise argparse.ArgumentTypeError("delay must be an integer") from e
    if value < 1:
        raise argparse.ArgumentTypeError("delay must be >= 1")
    return value


def configure_logging(log_file: str | None = None) -> None:
    """Configure root logging; level from NODE_AGENT_LOG_LEVEL (default INFO)."""
    level_name = os.getenv("NODE_AGENT_LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers)


async def run_loop(orchestrator: HeartbeatOrchestrator, *, delay: int, run_once: bool) -> None:
    """Run cycles back to back with ``delay`` seconds between them."""
    while True:
        try:
            await orchestrator.run_cycle()
        except Exception:
            if run_once:
                raise
            LOGGER.exception("Heartbeat cycle crashed; retrying after %ss", delay)

        if run_once:
            return
        await asyncio.sleep(delay)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        description="Report node, service, log and website health to the monitoring collector."
    )
    p.add_argument(
        "--config",
        default=None,
        help="Path to JSON config (default: $NODE_AGENT_CONFIG or config.json)",
    )
    p.add_argument("--run-once", action="store_true", help="Run a single cycle and exit")
    p.add_argument(
        "--delay",
        type=_positive_int,
        default=10,
        help="Seconds to sleep between cycles. Default: 10",
    )
    p.add_argument("--log-file", default=None, help="Also write logs to this file")
    return p


def main(argv: Sequence[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_file)

    try:
        config = load_config(args.config)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        raise SystemExit(2)

    orchestrator = HeartbeatOrchestrator(config)
    try:
        asyncio.run(run_loop(orchestrator, delay=args.delay, run_once=args.run_once))
    except KeyboardInterrupt:
        LOGGER.info("Interrupted; exiting")


if __name__ == "__main__":
    main()
