"""Logging setup: stdlib handlers rendered through structlog."""

from __future__ import annotations

import logging
import os
import sys
import threading
from dataclasses import dataclass
from typing import Any, MutableMapping, Optional

import structlog

from sf_common.config.env import parse_bool_env

ENV_LEVEL = "SF_LOG_LEVEL"
ENV_JSON = "SF_LOG_JSON"
ENV_FILE = "SF_LOG_FILE"


@dataclass(frozen=True)
class LogSettings:
    level: int
    json: bool
    log_file: Optional[str]


def _resolve_level(value: str | int | None, debug: bool) -> int:
    if debug:
        return logging.DEBUG
    if value is None:
        return logging.INFO
    if isinstance(value, int):
        return value
    if value.strip().isdigit():
        return int(value)
    return logging.getLevelNamesMapping().get(value.strip().upper(), logging.INFO)


def resolve_settings(
    level: str | int | None,
    debug: bool,
    log_file: str | None,
    json: bool | None,
) -> LogSettings:
    """Merge explicit arguments with SF_LOG_* environment overrides."""
    env_json = parse_bool_env(os.environ.get(ENV_JSON))
    return LogSettings(
        level=_resolve_level(level or os.environ.get(ENV_LEVEL), debug),
        json=bool(env_json if json is None else json),
        log_file=os.environ.get(ENV_FILE) if log_file is None else log_file,
    )


def _add_thread_name(
    _logger: Any, _method: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    # Seed pipelines run on "seed_N" worker threads.
    event_dict.setdefault("thread", threading.current_thread().name)
    return event_dict


def _shared_processors() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.processors.add_log_level,
        _add_thread_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]


def _build_handlers(settings: LogSettings) -> list[logging.Handler]:
    renderer: structlog.types.Processor = (
        structlog.processors.JSONRenderer()
        if settings.json
        else structlog.dev.ConsoleRenderer()
    )
    formatter = structlog.stdlib.ProcessorFormatter(
        processor=renderer,
        foreign_pre_chain=_shared_processors(),
    )
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if settings.log_file:
        handlers.append(logging.FileHandler(settings.log_file))
    for handler in handlers:
        handler.setFormatter(formatter)
    return handlers


def configure_logging(
    *,
    level: str | int | None = None,
    debug: bool = False,
    log_file: str | None = None,
    json: bool | None = None,
    force: bool = False,
) -> None:
    """Install stderr (and optional file) handlers on the root logger.

    Existing handlers are kept unless ``force`` is set, so an embedding
    application's logging is left alone by default.
    """
    settings = resolve_settings(level, debug, log_file, json)
    root_logger = logging.getLogger()

    if force or not root_logger.handlers:
        if force:
            root_logger.handlers.clear()
        root_logger.setLevel(settings.level)
        for handler in _build_handlers(settings):
            root_logger.addHandler(handler)

    structlog.configure(
        processors=[
            *_shared_processors(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
