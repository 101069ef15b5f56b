"""Session entrypoint. Loads config, connects, logs every event."""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from loguru import logger

from ircsession import __version__
from ircsession.adapters.irc import IRCTransport
from ircsession.config import Config, load_config_with_env
from ircsession.errors import ConfigurationError
from ircsession.events import Event, Listener
from ircsession.session import Session


def setup_logging(verbose: bool = False) -> None:
    """Configure loguru. Replace default logging."""
    logger.remove()
    logger.add(
        sys.stderr,
        level="DEBUG" if verbose else "INFO",
        format=(
            "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | "
            "<cyan>{name}</cyan> | {message}"
        ),
    )


class LoggingListener(Listener):
    """Logs every event the session produces."""

    def on_event(self, event: Event) -> None:
        logger.info("[{}] {}", event.kind, event)


def build_session(config: Config, listener: object | None = None) -> Session:
    """Create a session from validated config."""
    return Session(
        config.identity,
        listener if listener is not None else LoggingListener(),
        channels=config.channels,
        nickserv_password=config.nickserv_password,
        max_line_bytes=config.max_line_bytes,
    )


def main() -> None:
    """Main entrypoint."""
    parser = argparse.ArgumentParser(description="ircsession: connect and log IRC session events")
    parser.add_argument(
        "--config",
        "-c",
        type=Path,
        default=Path("config.yaml"),
        help="Path to config file (default: config.yaml)",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    args = parser.parse_args()

    setup_logging(args.verbose)

    if not args.config.exists():
        logger.error("Config file not found: {}", args.config)
        sys.exit(1)

    try:
        config = Config(load_config_with_env(args.config), validate=True)
    except ConfigurationError as exc:
        logger.error("Invalid config {}: {}", args.config, exc)
        sys.exit(1)
    logger.info("Config loaded from {}", args.config)

    session = build_session(config)
    try:
        asyncio.run(_run(session, config))
    except KeyboardInterrupt:
        logger.info("Interrupted")


async def _run(session: Session, config: Config) -> None:
    """Async run loop. Start the transport and wait."""
    transport = IRCTransport(
        session,
        server=str(config.server),
        port=config.port,
        tls=config.tls,
        throttle_limit=config.throttle_limit,
    )
    await transport.start()

    try:
        while True:
            await asyncio.sleep(60)
    except asyncio.CancelledError:
        logger.info("Session shutting down")
        await transport.stop()


if __name__ == "__main__":
    main()
