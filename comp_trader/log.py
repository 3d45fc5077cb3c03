"""
Console logging for comp-trader.

Every module logs through ``logging.getLogger(__name__)``; this module wires
those records into the shared rich console so log lines and the agent's
panels/tables interleave cleanly.
"""

import logging

from rich.console import Console
from rich.logging import RichHandler

console = Console()

LOG_FORMAT = "%(message)s"
DATE_FORMAT = "[%X]"


def setup_logging(level: str = "INFO") -> logging.Logger:
    """Attach a RichHandler to the package logger. Safe to call twice."""
    logger = logging.getLogger("comp_trader")
    logger.setLevel(level.upper())

    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        handler = RichHandler(
            console=console,
            rich_tracebacks=True,
            show_path=False,
            log_time_format=DATE_FORMAT,
        )
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)

    # Keep web3/urllib3 chatter out of the trading log
    logging.getLogger("web3").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    return logger
