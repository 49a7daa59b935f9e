"""Logging initialization using loguru.

Library modules only emit through ``loguru.logger``; sinks are configured
here by the CLI (or by an embedding application).
"""

import sys
from pathlib import Path

from loguru import logger


def default_log_directory() -> Path:
    return Path.home() / ".cloudrename" / "logs"


def init_logging(level: str = "WARNING", log_dir: str | Path | None = None) -> None:
    """Send log records to stderr at ``level`` and, optionally, to a rotating file.

    Args:
        level: Minimum level for the stderr sink.
        log_dir: Directory for ``cloudrename_{date}.log`` files. No file sink when None.
    """
    logger.remove()
    logger.add(sys.stderr, level=level, format="<level>{level: <8}</level> {name}: {message}")

    if log_dir is not None:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        logger.add(
            str(log_path / "cloudrename_{time:YYYYMMDD}.log"),
            rotation="10 MB",
            retention="10 days",
            enqueue=True,
            backtrace=False,
            diagnose=False,
            level="DEBUG",
        )
