"""
Logging setup for Session Ledger.
"""
import logging
import os
import sys


def setup_logging() -> None:
    """Configure root logging from the environment.

    ``LOG_LEVEL`` sets the level (default WARNING) and ``LOG_FORMAT`` the
    record format. Output goes to stderr so reports on stdout stay clean.
    """
    log_level = os.getenv("LOG_LEVEL", "WARNING").upper()
    log_format = os.getenv(
        "LOG_FORMAT",
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logging.basicConfig(
        level=getattr(logging, log_level, logging.WARNING),
        format=log_format,
        handlers=[logging.StreamHandler(sys.stderr)],
        force=True,
    )


def get_logger(name: str) -> logging.Logger:
    """Get a named logger.

    Args:
        name: Dotted logger name, e.g. ``session_ledger.pricing``

    Returns:
        The logger for that name
    """
    return logging.getLogger(name)
