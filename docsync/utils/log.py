"""Loguru sink setup for docsync."""

import sys
from pathlib import Path
from typing import List, Optional

from loguru import logger

_sink_ids: List[int] = []


def configure_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    """Route docsync logs to stderr and, optionally, a rotating file.

    Replaces sinks installed by a previous call, so it is safe to call
    again after a config reload.

    Args:
        level: Minimum level for the stderr sink
        log_file: Path of a JSON log file (disabled when None)
    """
    logger.remove()
    _sink_ids.clear()

    _sink_ids.append(logger.add(sys.stderr, level=level.upper()))

    if log_file:
        path = Path(log_file).expanduser()
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            _sink_ids.append(
                logger.add(
                    path,
                    rotation="5 MB",
                    retention=5,
                    enqueue=True,
                    serialize=True,
                    level="DEBUG",
                )
            )
        except OSError as exc:
            logger.warning("Failed to initialise file log sink {}: {}", path, exc)
