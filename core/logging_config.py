"""
Structlog configuration
"""
import logging
import json
import structlog
from structlog.processors import TimeStamper, add_log_level, JSONRenderer
from structlog.dev import ConsoleRenderer
from structlog.contextvars import merge_contextvars
from structlog.stdlib import ProcessorFormatter
from typing import Any, List

from core.config import settings

SECURITY_LOGGER_NAME = "security"

# keys that must never reach a log line
_REDACTED_KEYS = frozenset({"authorization", "password", "secret_key", "api_key", "sign_string", "signature"})


def redact_secrets(_logger: Any, _method: str, event_dict: dict) -> dict:
    for key in list(event_dict):
        if key.lower() in _REDACTED_KEYS:
            event_dict[key] = "***"
    return event_dict


def get_renderer() -> Any:
    """Console renderer when LOG_FORMAT=console, JSON otherwise.

    structlog passes default/sort_keys to the serializer, so wrap json.dumps.
    """
    if settings.LOG_FORMAT.lower() == "console":
        return ConsoleRenderer(colors=settings.DEBUG)

    def _dumps(obj, default=None, **kwargs):
        return json.dumps(obj, ensure_ascii=False, default=default, **kwargs)
    return JSONRenderer(serializer=_dumps)


def configure_logging() -> None:
    """Configure structlog and bridge stdlib logging into the same processor chain."""
    timestamper = TimeStamper(fmt="iso")

    shared_pre_chain: List[Any] = [
        merge_contextvars,
        add_log_level,
        structlog.stdlib.add_logger_name,
        timestamper,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        redact_secrets,
    ]

    structlog.configure(
        processors=[
            *shared_pre_chain,
            ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # stdlib records (uvicorn, sqlalchemy, celery) are rendered by the same renderer
    formatter = ProcessorFormatter(
        foreign_pre_chain=shared_pre_chain,
        processors=[
            ProcessorFormatter.remove_processors_meta,
            get_renderer(),
        ],
    )

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    level = logging.DEBUG if settings.DEBUG else getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    root.setLevel(level)

    # request lines from the provider clients are logged by the adapters themselves
    for noisy in ("httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(max(level, logging.WARNING))


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def log_security_event(event: str, **context: Any) -> None:
    """Forged callbacks, Basic-Auth mismatches and similar go to the `security` logger."""
    structlog.get_logger(SECURITY_LOGGER_NAME).warning(event, security=True, **context)

