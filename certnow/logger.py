"""
Logging setup for certnow.

Progress messages go to stdout, one line per stage, colored when the
output is a terminal.
"""

import logging
import sys
from typing import Optional


DEFAULT_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"


class ColoredFormatter(logging.Formatter):
    """Formatter that colors the level name when stdout is a terminal."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
    }
    RESET = "\033[0m"

    def __init__(self, use_colors: bool = True):
        super().__init__(DEFAULT_FORMAT)
        self.use_colors = use_colors and sys.stdout.isatty()

    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        color = self.COLORS.get(record.levelname)
        if not self.use_colors or not color:
            return text
        tag = f"[{record.levelname}]"
        return text.replace(tag, f"[{color}{record.levelname}{self.RESET}]", 1)


class StructuredLogger(logging.Logger):
    """
    Logger with helpers for the stage-by-stage output of a renewal run.
    """

    def section(self, title: str) -> None:
        """
        Log a section header.

        Args:
            title: Section title
        """
        self.info("")
        self.info("=" * 60)
        self.info(title)
        self.info("=" * 60)

    def stage(self, number: int, total: int, title: str) -> None:
        """
        Log the start of a numbered pipeline stage.

        Args:
            number: 1-based stage number
            total: Total number of stages
            title: Stage description
        """
        self.info("")
        self.info(f"--- [{number}/{total}] {title} ---")

    def success(self, message: str) -> None:
        """Log a success message."""
        self.info(f"[OK] {message}")

    def failure(self, message: str) -> None:
        """Log a failure message."""
        self.error(f"[FAIL] {message}")


_logger: Optional[StructuredLogger] = None


def setup_logger(
    name: str = "certnow",
    verbose: bool = False,
    use_colors: bool = True,
    log_file: Optional[str] = None,
) -> StructuredLogger:
    """
    Setup and configure the global logger.

    Args:
        name: Logger name
        verbose: Enable debug-level logging
        use_colors: Enable colored output
        log_file: Optional file path for log output

    Returns:
        Configured StructuredLogger instance
    """
    global _logger

    logging.setLoggerClass(StructuredLogger)
    logger = logging.getLogger(name)
    logger.__class__ = StructuredLogger

    level = logging.DEBUG if verbose else logging.INFO
    logger.setLevel(level)
    logger.handlers.clear()
    logger.propagate = False

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(ColoredFormatter(use_colors=use_colors))
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter(DEFAULT_FORMAT))
        logger.addHandler(file_handler)

    _logger = logger
    return logger


def get_logger() -> StructuredLogger:
    """
    Get the global logger instance, creating a default one on first use.

    Returns:
        The configured StructuredLogger instance
    """
    global _logger

    if _logger is None:
        _logger = setup_logger()

    return _logger
