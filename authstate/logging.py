from __future__ import annotations

import logging
import os
import uuid
from contextvars import ContextVar
from typing import Any, Dict, Optional

import structlog

# Context variable for correlation ID (per-request tracking)
correlation_id_var: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)


def get_correlation_id() -> Optional[str]:
    """Get the current correlation ID for request tracing."""
    return correlation_id_var.get()


def set_correlation_id(correlation_id: Optional[str] = None) -> str:
    """Set or generate a correlation ID for the current request context."""
    cid = correlation_id or str(uuid.uuid4())
    correlation_id_var.set(cid)
    return cid


def _add_correlation_id(
    logger: Any, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    """Processor to add correlation_id to all log entries."""
    cid = get_correlation_id()
    if cid:
        event_dict["correlation_id"] = cid
    return event_dict


# Key variants recognised as sensitive, matched case-insensitively.
_USERNAME_KEYS = {"username", "user_name"}
_EMAIL_KEYS = {"email", "mail"}
_PHONE_KEYS = {"phone", "mobile"}
_PASSWORD_KEYS = {"password", "pwd", "plaintext", "credential"}
_TOKEN_KEYS = {"token", "auth_token", "access_token", "session_token"}
_API_KEY_KEYS = {"apikey", "api_key"}
_SESSION_ID_KEYS = {"sessionid", "session_id"}
_NEVER_MASKED = {"userid", "user_id", "id"}


def _keep_ends(value: str, head: int, tail: int) -> str:
    if len(value) <= head + tail:
        return "*" * len(value)
    return value[:head] + "*" * (len(value) - head - tail) + value[len(value) - tail:]


def _mask_username(value: str) -> str:
    if len(value) <= 2:
        return "*" * len(value)
    if len(value) <= 4:
        return _keep_ends(value, 1, 1)
    return _keep_ends(value, 2, 2)


def _mask_email(value: str) -> str:
    local, sep, domain = value.partition("@")
    if not sep or not domain:
        return "*" * len(value)
    return f"{_mask_username(local)}@{domain}"


def _mask_value(key: str, value: str) -> str:
    lower_key = key.lower()
    if lower_key in _USERNAME_KEYS:
        return _mask_username(value)
    if lower_key in _EMAIL_KEYS:
        return _mask_email(value)
    if lower_key in _PHONE_KEYS:
        return _keep_ends(value, 3, 4)
    if lower_key in _PASSWORD_KEYS:
        return "*" * min(len(value), 8)
    if lower_key in _TOKEN_KEYS:
        return _keep_ends(value, 6, 4)
    if lower_key in _API_KEY_KEYS or lower_key in _SESSION_ID_KEYS:
        return _keep_ends(value, 4, 4)
    return value


def mask_sensitive(data: Any) -> Any:
    """Recursively mask credentials, identifiers and contact details.

    Values under id-like keys (``id``, ``user_id``) are kept as-is; only string
    values are masked, nested dicts and lists are walked.
    """
    if isinstance(data, dict):
        masked: Dict[Any, Any] = {}
        for key, value in data.items():
            if not isinstance(key, str) or key.lower() in _NEVER_MASKED:
                masked[key] = value
            elif isinstance(value, str):
                masked[key] = _mask_value(key, value)
            else:
                masked[key] = mask_sensitive(value)
        return masked
    if isinstance(data, (list, tuple)):
        return [mask_sensitive(item) for item in data]
    return data


def _redact_pii(
    logger: Any, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    """Processor to redact PII from log entries."""
    event = event_dict.pop("event", None)
    redacted = mask_sensitive(event_dict)
    if event is not None:
        redacted["event"] = event
    return redacted


def _configure_structlog(
    log_level: str = "INFO",
    json_output: bool = True,
    development_mode: bool = False,
) -> None:
    """Configure structlog processors.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        json_output: If True, output JSON; if False, output human-readable
        development_mode: If True, use pretty console output
    """
    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        _add_correlation_id,
        _redact_pii,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if development_mode or not json_output:
        processors = shared_processors + [
            structlog.dev.ConsoleRenderer(colors=True),
        ]
    else:
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


# Initialize logging on module import
_log_level = os.getenv("LOG_LEVEL", "INFO").upper()
_json_output = os.getenv("LOG_JSON", "true").lower() in {"1", "true", "yes", "on"}
_dev_mode = os.getenv("LOG_DEV_MODE", "false").lower() in {"1", "true", "yes", "on"}

_configure_structlog(
    log_level=_log_level,
    json_output=_json_output,
    development_mode=_dev_mode,
)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a configured logger with correlation ID support."""
    return structlog.get_logger(name)
