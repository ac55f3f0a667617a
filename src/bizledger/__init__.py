import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional


LOG_DIR_ENV = "BIZLEDGER_LOG_DIR"
LOG_FILE_NAME = "bizledger.log"


def default_log_file() -> Path:
    """Return the log file path, honouring ``BIZLEDGER_LOG_DIR``.

    Without the override, logs go to ``.logs/`` under the working directory
    so an installed package never writes next to its own sources.
    """

    override = os.environ.get(LOG_DIR_ENV)
    log_dir = Path(override).expanduser() if override else Path.cwd() / ".logs"
    return log_dir / LOG_FILE_NAME


def configure_logging(log_file: Optional[Path] = None, name: str = __name__) -> logging.Logger:
    """Attach a rotating file handler and a stderr handler to ``name``.

    Calling it again for a logger that already has handlers is a no-op. A log
    file that cannot be created only costs the file handler.
    """

    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    logger.setLevel(logging.INFO)
    formatter = logging.Formatter(
        fmt="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    target = Path(log_file) if log_file is not None else default_log_file()
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            target,
            maxBytes=1_000_000,
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
    except OSError as exc:
        print(
            f"Warning: unable to initialize log file at '{target}': {exc}",
            file=sys.stderr,
        )

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    return logger


log = configure_logging()
log.debug("Logger initialized for the 'bizledger' package.")
