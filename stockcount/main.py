"""
STOCKCOUNT Application Entry Point

Main entry point for the voice inventory session server. Handles
command-line arguments, configuration loading, signal handling, and the
server lifecycle.

Usage:
    stockcount                          # Run with default config
    stockcount --config /path/to/config.yaml
    stockcount --log-level DEBUG
    stockcount --seed-catalog           # Populate an empty inventory first
    stockcount --dry-run                # Validate config without starting

Entry Points:
    - CLI: `stockcount` command (via pyproject.toml)
    - Direct: `python -m stockcount.main`
"""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys
from typing import TYPE_CHECKING

from stockcount import __version__
from stockcount.config import StockcountConfig, load_config
from stockcount.exceptions import ConfigurationError, StockcountError
from stockcount.logging_config import get_logger, setup_logging

if TYPE_CHECKING:
    from types import FrameType

__all__ = ["main", "async_main", "create_parser"]

# Module logger
logger = get_logger(__name__)


# =============================================================================
# Argument Parser
# =============================================================================


def create_parser() -> argparse.ArgumentParser:
    """Create command-line argument parser.

    Returns:
        Configured ArgumentParser instance
    """
    parser = argparse.ArgumentParser(
        prog="stockcount",
        description="STOCKCOUNT Voice Inventory Session Server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    # Configuration
    parser.add_argument(
        "-c",
        "--config",
        type=str,
        metavar="PATH",
        help="Path to configuration file (default: auto-discover)",
    )

    # Logging
    parser.add_argument(
        "-l",
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Set logging level (overrides config file)",
    )
    parser.add_argument(
        "--log-file",
        type=str,
        metavar="PATH",
        help="Path to log file (default: stdout only)",
    )

    # Server
    parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Host to bind to (overrides config file)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port to listen on (overrides config file)",
    )

    # Operation modes
    parser.add_argument(
        "--seed-catalog",
        action="store_true",
        help="Populate an empty inventory with the default catalog",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Validate configuration and exit without starting the server",
    )

    return parser


# =============================================================================
# Signal Handlers
# =============================================================================


class GracefulShutdown:
    """Manages graceful shutdown on SIGINT (Ctrl+C) and SIGTERM."""

    def __init__(self) -> None:
        self._shutdown_requested = False
        self._shutdown_event: asyncio.Event | None = None
        self._original_handlers: dict[int, signal.Handlers] = {}

    @property
    def shutdown_requested(self) -> bool:
        return self._shutdown_requested

    def install_handlers(self) -> None:
        """Install signal handlers for graceful shutdown."""
        self._original_handlers[signal.SIGINT] = signal.signal(
            signal.SIGINT, self._handle_signal
        )
        self._original_handlers[signal.SIGTERM] = signal.signal(
            signal.SIGTERM, self._handle_signal
        )
        logger.debug("Signal handlers installed for graceful shutdown")

    def restore_handlers(self) -> None:
        """Restore original signal handlers."""
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()
        logger.debug("Original signal handlers restored")

    def _handle_signal(self, signum: int, frame: FrameType | None) -> None:
        signal_name = signal.Signals(signum).name
        if self._shutdown_requested:
            logger.warning(f"Received {signal_name} again - forcing immediate exit")
            sys.exit(1)

        logger.info(f"Received {signal_name} - initiating graceful shutdown...")
        self._shutdown_requested = True

        if self._shutdown_event is not None:
            self._shutdown_event.get_loop().call_soon_threadsafe(self._shutdown_event.set)

    def get_shutdown_event(self) -> asyncio.Event:
        """Get or create the async shutdown event."""
        if self._shutdown_event is None:
            self._shutdown_event = asyncio.Event()
        return self._shutdown_event


# =============================================================================
# Main Entry Points
# =============================================================================


async def async_main(
    args: argparse.Namespace,
    config: StockcountConfig,
    shutdown: GracefulShutdown,
) -> int:
    """Run the session server until shutdown is requested.

    Returns:
        Exit code (0 for success)
    """
    from voice.session_server import build_server

    shutdown_event = shutdown.get_shutdown_event()

    server = await build_server(
        config, seed_catalog=args.seed_catalog, host=args.host, port=args.port
    )

    try:
        await server.start_background()
        logger.info("Inventory session server running. Press Ctrl+C to stop.")
        await shutdown_event.wait()

        logger.info("Shutdown signal received, closing sessions...")
        return 0

    except OSError as e:
        logger.error(f"Could not start server: {e}")
        return 1
    finally:
        await server.stop()
        server.store.close()


def main() -> int:
    """Main entry point for the STOCKCOUNT application.

    Returns:
        Exit code (0 for success, non-zero for errors)
    """
    parser = create_parser()
    args = parser.parse_args()

    # Basic setup before config is loaded
    setup_logging(log_level=args.log_level or "INFO")

    logger.info(f"STOCKCOUNT v{__version__} starting...")

    try:
        logger.debug(f"Loading configuration from: {args.config or 'auto-discover'}")
        config = load_config(args.config)
        logger.info("Configuration loaded successfully")
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return 1

    setup_logging(
        log_level=args.log_level or config.log_level,
        log_file=args.log_file or config.log_file,
    )

    if args.dry_run:
        logger.info("Dry run mode - configuration valid, exiting")
        print("Configuration is valid")
        return 0

    shutdown = GracefulShutdown()
    shutdown.install_handlers()

    try:
        return asyncio.run(async_main(args, config, shutdown))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except StockcountError as e:
        logger.error(f"STOCKCOUNT error: {e}")
        return 1
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        return 1
    finally:
        shutdown.restore_handlers()
        logger.info("STOCKCOUNT shutdown complete")


if __name__ == "__main__":
    sys.exit(main())
