"""Shared utility functions for the sapp project."""

import logging
from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal

import colorlog

CENT = Decimal("0.01")


def get_logger(name: str) -> logging.Logger:
    """Get a logger with a colorized format for the project.

    The handler lives on the top-level project logger; ``sapp.worker`` and friends propagate to it,
    so handlers added there (such as the log file) see every record.
    """
    top = logging.getLogger(name.split(".", 1)[0])
    if not top.handlers:
        handler = logging.StreamHandler()
        formatter = colorlog.ColoredFormatter(
            "%(log_color)s%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
            log_colors={
                "DEBUG": "cyan",
                "INFO": "green",
                "WARNING": "yellow",
                "ERROR": "red",
                "CRITICAL": "bold_red",
            },
        )
        handler.setFormatter(formatter)
        top.addHandler(handler)
        top.setLevel(logging.INFO)
    top.propagate = False
    return logging.getLogger(name)


def utcnow() -> datetime:
    """Get the current UTC time as a naive datetime, the form stored in the database."""
    return datetime.now(UTC).replace(tzinfo=None)


def to_money(value: object) -> Decimal:
    """Convert a number to a Decimal rounded to cents."""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def truncate(text: str, limit: int) -> str:
    """Shorten text for log output."""
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."
