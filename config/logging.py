import logging.config
from datetime import datetime, timezone
from typing import Any
import structlog

#
# --- helpers --------------------------------------------------------------
#
def _add_timestamp(_, __, event: dict[str, Any]):
    event["timestamp"] = datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")
    return event


#
# --- public API -----------------------------------------------------------
#
def configure_logging(level: str = "INFO") -> None:
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {"plain": {"format": "%(message)s"}},
            "handlers": {
                "default": {"class": "logging.StreamHandler", "formatter": "plain"}
            },
            "loggers": {
                "": {"handlers": ["default"], "level": level},
                # urllib3 loga cada retry em DEBUG; mantém o ruído baixo
                "urllib3": {"level": "WARNING"},
            },
        }
    )

    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(level)),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.CallsiteParameterAdder(
                [structlog.processors.CallsiteParameter.FILENAME,
                 structlog.processors.CallsiteParameter.LINENO]
            ),
            _add_timestamp,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(ensure_ascii=False),
        ],
    )
