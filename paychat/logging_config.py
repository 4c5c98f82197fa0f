"""
Logging setup for the API server and the CLI.

Every module logs through ``logging.getLogger(__name__)``; those records and
structlog's own loggers share one processor chain and one stderr handler.
Output is JSON lines unless ``LOG_FORMAT=console`` (or ``auto`` on a
terminal), so the CLI chat on stdout is not interleaved with log noise.
"""

import logging
import sys
from typing import Any, MutableMapping, Optional

import structlog

from .config import settings

# Event keys that may carry a payment authorization or key material.
SENSITIVE_KEYS = frozenset({"signature", "x_payment", "payment_header", "private_key", "wallet_private_key"})

REDACTED = "[redacted]"

QUIET_LOGGERS = ("uvicorn.access", "httpcore", "httpx", "anthropic")


def redact_secrets(_logger: Any, _method: str, event_dict: MutableMapping[str, Any]) -> MutableMapping[str, Any]:
    """structlog processor masking payment signatures and keys."""

    for key in SENSITIVE_KEYS.intersection(event_dict):
        if event_dict[key]:
            event_dict[key] = REDACTED
    return event_dict


def _use_console(log_format: str) -> bool:
    fmt = log_format.lower()
    if fmt == "console":
        return True
    if fmt == "json":
        return False
    return sys.stderr.isatty()


def setup_logging(log_level: Optional[str] = None, log_format: Optional[str] = None) -> None:
    """Configure structlog and route stdlib logging through it.

    Args:
        log_level: Override level (default: settings.log_level)
        log_format: ``json``, ``console`` or ``auto`` (default: settings.log_format)
    """
    level = getattr(logging, (log_level or settings.log_level).upper(), logging.INFO)
    console = _use_console(log_format or settings.log_format)

    pre_chain: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        redact_secrets,
    ]
    if console:
        renderer: structlog.types.Processor = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())
    else:
        pre_chain += [structlog.processors.format_exc_info, structlog.processors.UnicodeDecoder()]
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
