"""Logging configuration helpers."""

import logging

_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Attach one stream handler to the kiosk logger and set its level.

    Safe to call repeatedly: later calls only adjust the level, so the app
    factory can run more than once in a process (tests, reloads).
    """
    logger = logging.getLogger("guest_kiosk")
    resolved = logging.getLevelName(level.strip().upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level: {level!r}")
    logger.setLevel(resolved)
    if logger.handlers:
        return
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(_FORMAT))
    logger.addHandler(handler)
    logger.propagate = False
