"""structlog configuration for the MCP server process."""

import logging
import sys

import structlog


def configure_logging(level: str = "INFO", stream=None) -> None:
    """Configure stdlib logging and the structlog processor chain.

    Logs go to stderr by default so the stdio transport keeps stdout
    for JSON-RPC frames.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ...)
        stream: Output stream override
    """
    logging.basicConfig(
        format="%(message)s",
        stream=stream or sys.stderr,
        level=getattr(logging, level.upper(), logging.INFO),
        force=True,
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
