"""Logging setup for the PeerAssist backend.

Every module logs through a child of the ``peerassist`` logger so a single
call to ``setup_logging`` controls level and output for the whole service.
"""

import logging
import sys

ROOT_LOGGER_NAME = "peerassist"
LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

_VALID_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def get_logger(name: str) -> logging.Logger:
    """Return a logger namespaced under ``peerassist``."""
    if name == ROOT_LOGGER_NAME or name.startswith(ROOT_LOGGER_NAME + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def setup_logging(level: str = "INFO", debug: bool = False) -> logging.Logger:
    """Configure the ``peerassist`` logger.

    Safe to call more than once: the console handler is only attached the
    first time. Unknown level names fall back to INFO.
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)

    level_name = (level or "INFO").upper()
    if level_name not in _VALID_LEVELS:
        level_name = "INFO"
    if debug:
        level_name = "DEBUG"
    logger.setLevel(getattr(logging, level_name))

    has_console = any(getattr(h, "_peerassist_console", False) for h in logger.handlers)
    if not has_console:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._peerassist_console = True  # type: ignore[attr-defined]
        logger.addHandler(handler)

    return logger


def log_auth_event(event: str, email: str, success: bool, reason: str | None = None) -> None:
    """Log an authentication event (signup, login, password reset)."""
    logger = get_logger("auth.events")
    message = f"{event} | email={email} | success={success}"
    if reason:
        message += f" | reason={reason}"
    if success:
        logger.info(message)
    else:
        logger.warning(message)


def log_task_event(
    event: str,
    task_id: str,
    actor: str,
    success: bool = True,
    detail: str | None = None,
) -> None:
    """Log a task lifecycle event (apply, accept, completion)."""
    logger = get_logger("tasks.events")
    message = f"{event} | task={task_id} | actor={actor} | success={success}"
    if detail:
        message += f" | {detail}"
    if success:
        logger.info(message)
    else:
        logger.warning(message)
