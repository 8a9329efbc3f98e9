"""Logging setup for uxinsight.

Library modules log through ``logging.getLogger(__name__)``; this wires
the ``uxinsight`` logger to stderr (and optionally a file) once per
process.
"""

from __future__ import annotations

import logging
import sys
from typing import Optional

from ..config import LoggingConfig

_CONFIGURED = False


def setup_logging(config: Optional[LoggingConfig] = None) -> logging.Logger:
    global _CONFIGURED
    if config is None:
        config = LoggingConfig()

    root_logger = logging.getLogger("uxinsight")
    root_logger.setLevel(getattr(logging, config.level.upper(), logging.INFO))
    if _CONFIGURED:
        return root_logger

    formatter = logging.Formatter(config.format)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if config.file:
        file_handler = logging.FileHandler(config.file)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    _CONFIGURED = True
    root_logger.info("Logging initialized at %s level", config.level)
    return root_logger
