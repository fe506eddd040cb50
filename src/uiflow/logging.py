"""uiflow.logging

Module-level loggers for the engine.

The library never installs handlers of its own; hosts configure the standard
`logging` tree (the `uiflow` logger carries a NullHandler so an unconfigured
host stays silent).
"""

from __future__ import annotations

import logging

ROOT_LOGGER_NAME = "uiflow"

logging.getLogger(ROOT_LOGGER_NAME).addHandler(logging.NullHandler())


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
