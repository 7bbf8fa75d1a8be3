import logging
import sys

FORMATTER = logging.Formatter(
    "%(asctime)s | %(levelname)-7s | %(name)-32s | %(message)s",
    datefmt="%H:%M:%S",
)

NOISY_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "aiosqlite")


def setup_logging(level: str = "INFO") -> None:
    """Configure the root logger once for the whole process."""
    root_logger = logging.getLogger()
    root_logger.setLevel(level.upper())

    if root_logger.hasHandlers():
        root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(FORMATTER)
    root_logger.addHandler(console_handler)

    # Keep third-party chatter down unless we are debugging
    noisy_level = logging.DEBUG if level.upper() == "DEBUG" else logging.WARNING
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(noisy_level)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
