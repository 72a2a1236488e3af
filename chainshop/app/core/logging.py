"""
Structured logging configuration using structlog.

JSON lines in production, colored console output in development. Wallet
address and chain id are bound as context variables so every event logged
while a wallet is connected carries them.
"""
import logging
import sys
from typing import Any, Optional

import structlog

# Event keys whose values never reach the log output
SENSITIVE_KEYS = frozenset({"password", "token", "authorization", "private_key", "raw_transaction"})

# Chatty third-party loggers, kept at WARNING unless running at DEBUG
NOISY_LOGGERS = ("web3", "aiohttp.access", "aiohttp.client", "urllib3", "asyncio")


def redact_sensitive(logger: Any, method_name: str, event_dict: dict) -> dict:
    for key in SENSITIVE_KEYS.intersection(event_dict):
        if event_dict[key]:
            event_dict[key] = "***"
    return event_dict


def setup_logging(log_level: str = "INFO", json_format: bool = True) -> None:
    """
    Configure structlog for structured logging.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        json_format: JSON output when True, human-readable console output otherwise.
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(level if level <= logging.DEBUG else logging.WARNING)

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        redact_sensitive,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]
    processors.append(
        structlog.processors.JSONRenderer() if json_format else structlog.dev.ConsoleRenderer(colors=True)
    )

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def bind_wallet_context(address: Optional[str], chain_id: Optional[int]) -> None:
    """Attach (or with no address, drop) the connected wallet on all later log events."""
    if address:
        structlog.contextvars.bind_contextvars(wallet=address, chain_id=chain_id)
    else:
        structlog.contextvars.unbind_contextvars("wallet", "chain_id")


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
