"""Entry point for the compose updater."""

from __future__ import annotations

import argparse
import asyncio
import sys

from compose_updater import __version__
from compose_updater.config import load_settings
from compose_updater.errors import ConfigError
from compose_updater.logging import get_logger, setup_logging
from compose_updater.service import run_once, run_service


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="compose-updater",
        description="Restart Docker Compose services when their images change.",
    )
    parser.add_argument("--once", action="store_true", help="Run a single update cycle and exit")
    parser.add_argument("--verbose", action="store_true", help="Log docker command output")
    parser.add_argument("--project-dir", help="Compose project directory")
    parser.add_argument(
        "--restart-mode",
        choices=["whole-stack", "subset"],
        help="Restart the whole stack or only changed services",
    )
    parser.add_argument("--interval", type=int, help="Timer period in seconds (0 disables)")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def main(argv: list[str] | None = None) -> int:
    """Parse arguments, then run one cycle or the long-lived service."""
    args = build_parser().parse_args(argv)

    overrides: dict[str, object] = {}
    if args.verbose:
        overrides["verbose"] = True
    if args.project_dir:
        overrides["project_dir"] = args.project_dir
    if args.restart_mode:
        overrides["restart_mode"] = args.restart_mode
    if args.interval is not None:
        overrides["interval_seconds"] = args.interval

    try:
        settings = load_settings(**overrides)
    except ConfigError as exc:
        print(f"compose-updater: {exc}", file=sys.stderr)
        return 2

    setup_logging(settings)
    log = get_logger("compose_updater")

    try:
        if args.once:
            result = asyncio.run(run_once(settings))
            return 0 if result is not None and result.succeeded else 1
        asyncio.run(run_service(settings))
    except (ConfigError, OSError) as exc:
        log.error("startup_failed", error=str(exc))
        return 2
    except KeyboardInterrupt:
        pass
    return 0


if __name__ == "__main__":
    sys.exit(main())
