"""Log setup for the mailsync process.

Supervisors, the pipeline and the API all log through structlog; records
from imaplib, uvicorn and the HTTP/Elasticsearch clients are routed
through the same renderer so one process emits one log format.
"""

from __future__ import annotations

import logging
import sys

import structlog

# Libraries that log every HTTP round-trip at INFO.
_CHATTY_LOGGERS = ("elastic_transport", "httpx", "httpcore", "uvicorn.access")


def setup_logging(*, json: bool = True, level: str = "INFO") -> None:
    """Install the mailsync log pipeline on the stdlib root logger.

    ``MAILSYNC_LOG_JSON`` selects JSON lines (for log shippers) or the
    console renderer; ``MAILSYNC_LOG_LEVEL`` is *level*.  Below DEBUG the
    per-request logs of the Elasticsearch and HTTP clients are dropped.
    Safe to call more than once: existing root handlers are replaced.
    """
    pre_chain: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    renderer: structlog.types.Processor = (
        structlog.processors.JSONRenderer() if json else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level.upper())

    quiet = logging.WARNING if root.level > logging.DEBUG else logging.NOTSET
    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(quiet)
