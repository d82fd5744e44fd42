from __future__ import annotations

import logging
import logging.handlers
import os
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

from .config_parser import LoggingConfig, SyslogConfig

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "crit": logging.CRITICAL,
    "critical": logging.CRITICAL,
}

_TAGS = {
    logging.DEBUG: "[debug]",
    logging.INFO: "[info]",
    logging.WARNING: "[warn]",
    logging.ERROR: "[error]",
    logging.CRITICAL: "[crit]",
}

LINE_FORMAT = "%(asctime)s %(level_tag)s %(name)s: %(message)s"


def _level_tag(levelno: int) -> str:
    return _TAGS.get(levelno, f"[lvl{levelno}]")


class SyslogFormatter(logging.Formatter):
    """Formats 'bidns: [tag] logger: message'; syslog supplies the timestamp."""

    def format(self, record):
        record.level_tag = _level_tag(record.levelno)
        return f"bidns: {record.level_tag} {record.name}: {record.getMessage()}"


class BracketLevelFormatter(logging.Formatter):
    """Bracketed level tags ('[warn]') with UTC ISO-8601 timestamps."""

    def formatTime(self, record, datefmt=None):
        return datetime.fromtimestamp(record.created, timezone.utc).strftime(
            "%Y-%m-%dT%H:%M:%SZ"
        )

    def format(self, record):
        record.level_tag = _level_tag(record.levelno)
        return super().format(record)


def _syslog_handler(syslog: Union[bool, SyslogConfig]) -> logging.Handler:
    opts = syslog if isinstance(syslog, SyslogConfig) else SyslogConfig()
    facility = getattr(
        logging.handlers.SysLogHandler,
        f"LOG_{opts.facility.upper()}",
        logging.handlers.SysLogHandler.LOG_USER,
    )
    handler = logging.handlers.SysLogHandler(address=opts.address, facility=facility)
    handler.setFormatter(SyslogFormatter())
    return handler


def init_logging(cfg: Union[LoggingConfig, Dict[str, Any], None]) -> None:
    """
    Brief: Configure the root logger from the `logging` config section.

    Inputs:
      - cfg: LoggingConfig, or a mapping with the same keys (level, stderr,
        file, syslog), or None for defaults (info to stderr).

    Outputs:
      - None. Existing root handlers are replaced, so calling this twice does
        not duplicate output. A syslog socket that cannot be opened is
        reported as a warning and skipped.

    Example:
      >>> init_logging(LoggingConfig(level="debug", file="./bidns.log"))
    """
    if not isinstance(cfg, LoggingConfig):
        cfg = LoggingConfig.model_validate(cfg or {})

    formatter = BracketLevelFormatter(fmt=LINE_FORMAT)
    root = logging.getLogger()
    root.setLevel(_LEVELS[cfg.level])
    for h in list(root.handlers):
        root.removeHandler(h)

    if cfg.stderr:
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(formatter)
        root.addHandler(stderr_handler)

    if cfg.file and cfg.file.strip():
        path = os.path.abspath(os.path.expanduser(cfg.file.strip()))
        os.makedirs(os.path.dirname(path), exist_ok=True)
        file_handler = logging.FileHandler(path, mode="a", encoding="utf-8")
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    if cfg.syslog:
        try:
            root.addHandler(_syslog_handler(cfg.syslog))
        except (OSError, ValueError) as e:
            root.warning("Failed to configure syslog: %s", e)

    logging.captureWarnings(True)
