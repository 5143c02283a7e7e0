"""
Structured logging configuration.

structlog renders every event as JSON through the stdlib root logger, whose
handler uses python-json-logger. Identity and bank details must never reach
the logs, so a redaction processor runs before rendering.
"""
import logging
import sys
from typing import Any, MutableMapping

import structlog
from pythonjsonlogger import jsonlogger

from merchant_onboarding.config import get_settings

REDACTED = "[redacted]"

# Keys whose values are compliance or banking secrets, matched at any depth.
SENSITIVE_KEYS = frozenset(
    {
        "account_number",
        "routing_number",
        "iban",
        "id_number",
        "ssn_last_4",
        "personal_id_number",
        "tax_id",
        "vat_id",
        "dob",
    }
)

_configured = False


def _redact(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: REDACTED if k in SENSITIVE_KEYS else _redact(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_redact(item) for item in value]
    return value


def redact_sensitive_fields(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Replace sensitive values in the event, including nested vendor payloads."""
    for key, value in list(event_dict.items()):
        event_dict[key] = REDACTED if key in SENSITIVE_KEYS else _redact(value)
    return event_dict


def add_service(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    settings = get_settings()
    event_dict.setdefault("service", settings.app_name)
    event_dict.setdefault("env", settings.app_env)
    return event_dict


def setup_logging(force: bool = False) -> None:
    """
    Configure structlog and the root logger.

    Safe to call from every entry point (API, workers); only the first call
    configures anything unless ``force`` is set.
    """
    global _configured
    if _configured and not force:
        return

    settings = get_settings()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            add_service,
            redact_sensitive_fields,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        jsonlogger.JsonFormatter(
            "%(asctime)s %(levelname)s %(name)s %(message)s",
            rename_fields={"asctime": "@timestamp", "levelname": "level", "name": "logger"},
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(settings.log_level)

    logging.getLogger("stripe").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.database_echo else logging.WARNING
    )

    _configured = True
    structlog.get_logger(__name__).info("logging_configured", log_level=settings.log_level)
