"""Logging setup for the PhysioFit backend.

All loggers live under the ``physiofit`` namespace so the relay library
(``physiofit.*``) and the API (``physiofit.chat`` etc.) share handlers.
"""

import logging
import sys

from physiofit.protocols import RelayOutcome

ROOT_LOGGER = "physiofit"
LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def setup_logging(level: str = "INFO") -> logging.Logger:
    """Attach a single stream handler to the physiofit logger.

    Safe to call more than once. Unknown level names fall back to INFO.
    """
    logger = logging.getLogger(ROOT_LOGGER)
    resolved = logging.getLevelName(str(level).upper())
    if not isinstance(resolved, int):
        resolved = logging.INFO
    logger.setLevel(resolved)

    if not any(getattr(h, "_physiofit_handler", False) for h in logger.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._physiofit_handler = True
        logger.addHandler(handler)
    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger in the physiofit namespace."""
    if name != ROOT_LOGGER and not name.startswith(f"{ROOT_LOGGER}."):
        name = f"{ROOT_LOGGER}.{name}"
    return logging.getLogger(name)


def log_turn_outcome(outcome: RelayOutcome) -> None:
    """One summary line per processed turn; WARNING if a side-effect write failed."""
    logger = get_logger("physiofit.chat")
    level = logging.INFO if outcome.fully_persisted else logging.WARNING
    logger.log(
        level,
        f"TURN | {outcome.principal} | user_saved={outcome.user_turn.ok} "
        f"bot_saved={outcome.assistant_turn.ok} "
        f"observations={len(outcome.observations)} "
        f"observations_loaded={outcome.observations_loaded} "
        f"reply_chars={len(outcome.reply)}",
    )
