"""Main entry point for Switchboard.

Initializes logging in two phases (defaults then config-driven), loads
and validates the config, discovers feature modules, builds the command
tree, initializes every module, and then serves commands typed on the
console until EOF or SIGTERM/SIGINT.

Key functions:
    main: Async entry point.
    run: Synchronous wrapper for the ``switchboard`` console script.
"""

import asyncio
import signal
import sys

import structlog

from . import __version__
from .logging_config import setup_logging


class ConsoleSink:
    """Prints responses to stdout."""

    async def send(self, message, response) -> None:
        print(response.render(), flush=True)


async def _console_loop(bot, identity, shutdown_event: asyncio.Event) -> None:
    from .bot import IncomingMessage
    from .context import RequestContext

    context = RequestContext.build(
        user_id=identity.user_id,
        role_ids=identity.role_ids,
        channel_id=identity.channel_id,
        category_id=identity.category_id,
        capabilities=identity.capabilities,
    )
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader()
    await loop.connect_read_pipe(lambda: asyncio.StreamReaderProtocol(reader), sys.stdin)
    while not shutdown_event.is_set():
        line = await reader.readline()
        if not line:
            break
        content = line.decode("utf-8", errors="replace").rstrip("\r\n")
        await bot.process_message(IncomingMessage(content=content, context=context))
    shutdown_event.set()


async def main():
    """Main async entry point."""
    # Phase 1: defaults, cache_logger_on_first_use=False
    setup_logging()
    logger = structlog.get_logger("switchboard")

    logger.info("switchboard_starting", version=__version__)

    # Import here to ensure logging is configured first
    from .bootstrap import build_tree
    from .bot import CommandBot
    from .config import get_config
    from .dispatcher import Dispatcher
    from .loader import ModuleLoader

    config = get_config()
    config.validate()

    # Phase 2: reconfigure with real config, cache_logger_on_first_use=True
    setup_logging(config)

    factories = ModuleLoader(config.modules_dir, config.module_allowlist).discover()
    tree = build_tree(config, factories)
    dispatcher = Dispatcher.from_config(tree, config)
    await dispatcher.initialize_all()

    bot = CommandBot.from_config(dispatcher, ConsoleSink(), config)

    loop = asyncio.get_running_loop()
    shutdown_event = asyncio.Event()

    def handle_shutdown(sig):
        logger.info("shutdown_signal_received", signal=sig.name)
        shutdown_event.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, handle_shutdown, sig)
        except NotImplementedError:
            # Windows: add_signal_handler not supported
            if sig == signal.SIGINT:
                signal.signal(
                    signal.SIGINT,
                    lambda s, f: handle_shutdown(signal.SIGINT),
                )

    console_task = asyncio.create_task(
        _console_loop(bot, config.console_identity, shutdown_event)
    )
    try:
        await shutdown_event.wait()
    finally:
        console_task.cancel()
        try:
            await console_task
        except asyncio.CancelledError:
            pass
        logger.info("switchboard_stopped")


def run():
    """Synchronous entry point for the ``switchboard`` console script."""
    from .exceptions import ConfigurationError

    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(78)


if __name__ == "__main__":
    run()
