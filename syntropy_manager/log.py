"""
Logging setup: rich console output plus a plain-text file under ~/.syntropy/logs.
"""
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from rich.logging import RichHandler

from .ui import err_console

LOGGER_NAME = "syntropy_manager"


def init_logging(
    *,
    base_dir: Optional[Path] = None,
    level: str = "info",
    verbose: bool = False,
) -> tuple[logging.Logger, Optional[Path]]:
    """
    Initializes:
      - a rich console handler on stderr (INFO, DEBUG when verbose)
      - a timestamped log file under base_dir when one is given
    Returns the package logger and the log file path.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG)
    logger.handlers.clear()
    logger.propagate = False

    console_level = logging.DEBUG if verbose else getattr(logging, level.upper(), logging.INFO)
    ch = RichHandler(console=err_console, show_path=False, rich_tracebacks=True, markup=False)
    ch.setLevel(console_level)
    ch.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))
    logger.addHandler(ch)

    log_path = None
    if base_dir is not None:
        base_dir.mkdir(parents=True, exist_ok=True)
        ts = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
        log_path = base_dir / f"manager-{ts}.log"
        fh = logging.FileHandler(log_path, encoding="utf-8")
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(logging.Formatter(
            "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        ))
        logger.addHandler(fh)

    logger.debug("logging initialised file=%s", log_path)
    return logger, log_path
