"""Logging for homestack.

Every module logs through ``get_logger(__name__)``. All of them sit under the
``homestack`` package logger, which owns the two handlers: a Rich console
handler on stderr and, once ``configure_logging`` is given a file, a plain
file handler. Generated artifacts never contain log output.
"""
import logging
import tempfile
from pathlib import Path
from typing import Optional, Union

from rich.console import Console
from rich.logging import RichHandler

PACKAGE = "homestack"

# stderr, so command output on stdout stays parseable
console = Console(stderr=True)

DEFAULT_LOG_FILE = Path.home() / ".cache" / PACKAGE / f"{PACKAGE}.log"
FILE_FORMAT = "%(asctime)s | %(threadName)s | %(name)s | %(levelname)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _package_logger() -> logging.Logger:
    root = logging.getLogger(PACKAGE)
    if not any(isinstance(h, RichHandler) for h in root.handlers):
        handler = RichHandler(console=console, show_path=False, markup=False)
        handler.setFormatter(logging.Formatter("%(message)s"))
        handler.setLevel(logging.INFO)
        root.addHandler(handler)
        root.setLevel(logging.INFO)
    return root


def get_logger(name: str) -> logging.Logger:
    """Logger for a homestack module; handlers live on the package logger."""
    _package_logger()
    return logging.getLogger(name)


def _log_path(log_file: Union[str, Path, None]) -> Path:
    """Requested log file, or one in the temp dir when its directory can't be made."""
    target = Path(log_file) if log_file else DEFAULT_LOG_FILE
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
    except OSError:
        target = Path(tempfile.gettempdir()) / f"{PACKAGE}.log"
    return target


def configure_logging(verbose: bool = False, log_file: Union[str, Path, None] = None) -> Optional[Path]:
    """Set levels for a CLI run and attach the file handler.

    Calling it again adjusts levels but never adds a second file handler.

    Args:
        verbose: Log debug messages to the console and the file
        log_file: Log file (defaults to ~/.cache/homestack/homestack.log)

    Returns:
        Path of the log file in use, or None if it could not be opened
    """
    root = _package_logger()
    level = logging.DEBUG if verbose else logging.INFO
    root.setLevel(level)

    current = None
    for handler in root.handlers:
        if isinstance(handler, RichHandler):
            handler.setLevel(level)
        elif isinstance(handler, logging.FileHandler):
            handler.setLevel(level)
            current = Path(handler.baseFilename)
    if current is not None:
        return current

    target = _log_path(log_file)
    try:
        file_handler = logging.FileHandler(target)
    except OSError as e:
        root.warning(f"File logging disabled: {e}")
        return None
    file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=DATE_FORMAT))
    file_handler.setLevel(level)
    root.addHandler(file_handler)
    root.debug(f"Logging to {target}")
    return target
