"""Process entry point: load config, configure logging, run the agent."""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys
from pathlib import Path
from typing import Optional

import structlog
from structlog.contextvars import bind_contextvars

from .agent import MonitorAgent
from .config.manager import initialize_config
from .logging_setup import configure_logging

logger = structlog.get_logger(__name__)

EXIT_OK = 0
EXIT_CONFIG_ERROR = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hostwatch",
        description="Sample host health at independent rates and persist JSON snapshot logs.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("config/default.toml"),
        help="TOML configuration file (default: config/default.toml)",
    )
    parser.add_argument(
        "--env-file",
        type=Path,
        default=Path(".env"),
        help=".env file with HOSTWATCH_* overrides (default: .env)",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Sample every metric family once, persist one snapshot and exit",
    )
    return parser


def _install_signal_handlers(agent: MonitorAgent) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, agent.request_stop)
        except (NotImplementedError, RuntimeError):
            # Windows event loops: KeyboardInterrupt cancels asyncio.run instead
            pass


async def _run(agent: MonitorAgent, once: bool) -> int:
    bind_contextvars(host_identity=agent.host_identity)
    if once:
        result = await agent.run_once()
        return EXIT_OK if result is not None else 1
    _install_signal_handlers(agent)
    await agent.run()
    return EXIT_OK


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = initialize_config(args.config, args.env_file)
    except (ValueError, KeyError, OSError) as exc:
        print(f"hostwatch: configuration error: {exc}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    configure_logging(config.get("logging.level"), config.get("logging.file_path") or None)
    agent = MonitorAgent.from_config(config)

    try:
        return asyncio.run(_run(agent, args.once))
    except KeyboardInterrupt:
        logger.info("monitor_agent_interrupted")
        return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
