from __future__ import annotations

import logging
import os
from typing import IO, Optional

LOG_LEVEL_ENV = "LUABRIDGE_LOG_LEVEL"


def get_logger(name: str = "luabridge") -> logging.Logger:
    return logging.getLogger(name)


def default_level() -> str:
    return os.environ.get(LOG_LEVEL_ENV, "warning")


def configure_logging(*, level: Optional[str] = None, stream: Optional[IO[str]] = None) -> None:
    """Attach one stream handler to the root logger unless one is already there."""
    normalized = (level or default_level()).strip().upper()
    level_value = getattr(logging, normalized, logging.INFO)
    handler = logging.StreamHandler(stream)
    handler.setFormatter(logging.Formatter("%(levelname)s %(name)s %(message)s"))
    root = logging.getLogger()
    root.setLevel(level_value)
    if not root.handlers:
        root.addHandler(handler)
