"""AskYoav entry point.

Usage:
    python -m askyoav [OPTIONS]

Options:
    --config PATH    Path to YAML config file
    --profile NAME   Profile name (dev, prod, test)
    --mock           Use the mock completion client
    --dry-run        Load config and exit
    --version        Show version
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

from . import __version__
from .chat import ChatContext, ChatController
from .config import AskYoavConfig
from .config.loader import load_config
from .config.profiles import detect_profile
from .console import ChatConsole
from .llm import create_completion_client


def setup_logging(level: str) -> None:
    """Configure logging based on config."""
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=numeric_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="askyoav",
        description="AskYoav - streaming chat client for a llama.cpp server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m askyoav                     # Run with auto-detected profile
  python -m askyoav --profile prod      # Run with production profile
  python -m askyoav --config my.yaml    # Run with custom config file
  python -m askyoav --mock              # Chat without a server

Environment:
  ASKYOAV_PROFILE       Set profile (dev, prod, test)
  ASKYOAV_SERVER_HOST   Override the completion server URL
""",
    )

    parser.add_argument(
        "--config",
        type=Path,
        help="Path to YAML config file",
        metavar="PATH",
    )

    parser.add_argument(
        "--profile",
        choices=["dev", "prod", "test"],
        help="Configuration profile to use",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"AskYoav v{__version__}",
    )

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Load config and exit (for testing)",
    )

    parser.add_argument(
        "--mock",
        action="store_true",
        help="Use the mock completion client (no server needed)",
    )

    return parser.parse_args(argv)


async def run_chat(config: AskYoavConfig, use_mock: bool) -> int:
    """Run the interactive chat until the user quits.

    Returns:
        Exit code
    """
    logger = logging.getLogger("askyoav")

    client = create_completion_client(config.server, use_mock=use_mock)
    controller = ChatController(ChatContext.from_config(config), client)

    check_health = getattr(client, "check_health", None)
    if check_health is not None and not await check_health():
        logger.warning(f"Completion server at {config.server.host} is not responding")
        print(f"Warning: cannot reach {config.server.host}. Is the llama.cpp server running?")

    try:
        await ChatConsole(controller).run()
    finally:
        await controller.aclose()
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point for AskYoav.

    Returns:
        Exit code (0 for success, non-zero for errors)
    """
    load_dotenv()
    args = parse_args(argv)

    profile = args.profile or detect_profile().value
    try:
        if args.config:
            config = load_config(path=args.config)
        else:
            config = load_config(profile=profile)
    except FileNotFoundError as e:
        print(f"Error: Config file not found: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        return 1

    setup_logging(config.logging.level)
    logger = logging.getLogger("askyoav")

    logger.info(f"AskYoav v{__version__}")
    logger.info(f"Profile: {profile}")
    logger.info(f"Log level: {config.logging.level}")

    use_mock = config.server.use_mock or args.mock

    if args.dry_run:
        logger.info("Dry run mode - exiting after config load")
        logger.info(f"Server: {'mock' if use_mock else config.server.host}")
        logger.info(f"Character: {config.session.char}, user: {config.session.user}")
        logger.info(f"Sampling: {config.sampling}")
        return 0

    try:
        return asyncio.run(run_chat(config, use_mock))
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received")
        return 0


if __name__ == "__main__":
    sys.exit(main())
