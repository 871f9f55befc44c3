"""structlog setup for the devbrain CLI.

Library modules call ``structlog.get_logger()`` and never print; the CLI calls
``configure_logging()`` once so events render to stderr next to rich output.
"""

from __future__ import annotations

import logging
import sys

import structlog

_configured = False


def configure_logging(verbose: bool = False) -> None:
    """Configure structlog once per process.

    Args:
        verbose: Emit DEBUG events; otherwise only WARNING and above are shown
            so the rich progress output stays readable.
    """
    global _configured
    if _configured:
        return

    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=level)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="%H:%M:%S"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.dev.ConsoleRenderer(colors=False, pad_event_to=30),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )
    _configured = True
