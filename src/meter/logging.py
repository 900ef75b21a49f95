from __future__ import annotations

import logging
import os


ROOT_LOGGER = "meter"
LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"


def _configure_root() -> logging.Logger:
    root = logging.getLogger(ROOT_LOGGER)
    if root.handlers:
        return root

    level = os.environ.get("LOG_LEVEL", "INFO").upper().strip()
    try:
        root.setLevel(level)
    except ValueError:
        root.setLevel(logging.INFO)

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    log_file = os.environ.get("LOG_FILE")
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    formatter = logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)

    # stderr only; keep stdout for command output
    root.propagate = False
    return root


def get_logger(name: str) -> logging.Logger:
    """Child of the `meter` logger, which is set up once from LOG_LEVEL / LOG_FILE."""
    _configure_root()
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")
