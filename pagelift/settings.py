"""Environment-driven defaults."""

from __future__ import annotations

import logging
import os
from pathlib import Path

_DEFAULT_LOG_LEVEL = logging.WARNING
_HANDLER_NAME = "pagelift-cli"
_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def parse_log_level(raw: str) -> int | None:
    return _LEVELS.get(raw.strip().lower())


def log_level() -> int:
    raw = os.getenv("PAGELIFT_LOG_LEVEL")
    if raw is None:
        return _DEFAULT_LOG_LEVEL
    parsed = parse_log_level(raw)
    return parsed if parsed is not None else _DEFAULT_LOG_LEVEL


def log_folder() -> Path | None:
    raw = os.getenv("PAGELIFT_LOG_FOLDER", "").strip()
    return Path(raw) if raw else None


def mapping_file() -> Path | None:
    raw = os.getenv("PAGELIFT_MAPPING_FILE", "").strip()
    return Path(raw) if raw else None


def configure_logging(level: int | None = None) -> None:
    """Attach one stderr handler to the ``pagelift`` logger tree, replacing a previous one."""

    root = logging.getLogger("pagelift")
    root.setLevel(level if level is not None else log_level())
    for handler in [item for item in root.handlers if item.get_name() == _HANDLER_NAME]:
        root.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(logging.Formatter("%(levelname)s %(name)s %(message)s"))
    root.addHandler(handler)
