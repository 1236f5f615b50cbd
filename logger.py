import os
import logging
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.traceback import install

# ignore errors from these libs
import aiohttp, tomlkit, websockets

console = Console()

_print = print  # save python's print.

print = console.print  # raw print, for things the operator has to see (urls, qr codes)

QUIET_LOGGERS = ("websockets", "aiohttp", "asyncio", "pyngrok", "zeroconf")


def setup_logging(level: Optional[str] = None):
    FORMAT = "%(message)s"
    logging_handler = RichHandler(
        level=level or os.environ.get("LOGLEVEL", "INFO"),
        console=console,
        rich_tracebacks=True,
        tracebacks_suppress=[aiohttp, tomlkit, websockets]
    )

    logging.basicConfig(
        level="NOTSET", format=FORMAT, datefmt="[%X]", handlers=[logging_handler]
    )

    # the root logger passes everything, keep library debug output out of it
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    install(
        console = console
    )
