"""Logging for the vat_invoice package: progress-safe console output plus a debug log file."""
import logging
import logging.config
import sys
from pathlib import Path
from typing import Any, Dict

from tqdm import tqdm

LOG_FILENAME = "vat_invoice.log"
PACKAGE_LOGGER = "vat_invoice"



class TqdmConsoleHandler(logging.Handler):
    """Writes records through ``tqdm.write`` so they print above an active progress bar."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            tqdm.write(self.format(record), file=self.stream)
        except Exception:
            self.handleError(record)

    @property
    def stream(self):
        # Looked up per record so a redirected stderr is honoured.
        return sys.stderr


def console_level_for(verbose: bool) -> str:
    return "DEBUG" if verbose else "WARNING"


def get_logging_config(
    logs_folder: Path,
    log_filename: str = LOG_FILENAME,
    verbose: bool = False
) -> Dict[str, Any]:
    """Build the dictConfig mapping for the package logger tree.

    Only ``vat_invoice.*`` is wired to the handlers; the root logger is left
    alone so an embedding application keeps its own setup.
    """
    logs_folder.mkdir(parents=True, exist_ok=True)

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "console": {"format": "%(levelname)s %(message)s"},
            "file": {
                "format": "%(asctime)s %(name)s %(levelname)s %(funcName)s:%(lineno)d %(message)s"
            }
        },
        "handlers": {
            "console": {
                "()": TqdmConsoleHandler,
                "level": console_level_for(verbose),
                "formatter": "console"
            },
            "file": {
                "class": "logging.FileHandler",
                "level": "DEBUG",
                "formatter": "file",
                "filename": str(logs_folder / log_filename),
                "encoding": "utf-8"
            }
        },
        "loggers": {
            PACKAGE_LOGGER: {
                "level": "DEBUG",
                "handlers": ["console", "file"],
                "propagate": False
            }
        }
    }


def setup_logging(logs_folder: Path, log_filename: str = LOG_FILENAME, verbose: bool = False) -> Path:
    """Configure package logging and return the log file path."""
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in package_logger.handlers[:]:
        handler.close()
        package_logger.removeHandler(handler)

    logging.config.dictConfig(get_logging_config(logs_folder, log_filename, verbose))
    return logs_folder / log_filename
