"""Logging configuration for the tokenhealth.* logger tree."""
import logging
from pathlib import Path

from rich.logging import RichHandler

LOGGER_NAME = "tokenhealth"
FILE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(level="INFO", log_file=None):
    """Rich console handler plus an optional plain-text file handler.

    Safe to call more than once: handlers are attached on the first call,
    later calls only adjust levels and add the file handler if it is new.
    """
    numeric_level = getattr(logging, str(level).upper(), logging.INFO)

    root = logging.getLogger(LOGGER_NAME)
    root.setLevel(numeric_level)

    rich_handlers = [h for h in root.handlers if isinstance(h, RichHandler)]
    if not rich_handlers:
        # Messages carry token symbols and [..] tags, never rich markup.
        root.addHandler(RichHandler(level=numeric_level, rich_tracebacks=True, markup=False))

    if log_file:
        log_path = Path(log_file).resolve()
        existing = [h for h in root.handlers
                    if isinstance(h, logging.FileHandler) and Path(h.baseFilename) == log_path]
        if not existing:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_path)
            file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
            root.addHandler(file_handler)

    for handler in root.handlers:
        handler.setLevel(numeric_level)

    return root
