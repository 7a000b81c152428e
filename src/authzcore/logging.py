"""Centralized logging utilities for authzcore.

Log records can carry four context fields (``operation``, ``role_id``,
``template_id``, ``user_type``). ``AuthzLoggerAdapter`` binds them and
``AuthzFormatter`` renders them, as JSON or as ``key=value`` pairs. Values
attached to records are previewed and scrubbed of credentials before they
are written, since backend error bodies occasionally echo tokens back.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Optional

from .config import AuthzConfig, LogLevel


# Credentials that may appear in backend error bodies
SECRET_PATTERNS = [
    re.compile(r'(?:password|passwd|pwd|secret|token|key|api[_-]?key|auth[_-]?token)\s*[:=]\s*["\']?[^"\'\s]+', re.I),
    re.compile(r"(?:bearer|basic)\s+[a-zA-Z0-9+/=._-]+", re.I),
    re.compile(r'client[_-]?secret\s*[:=]\s*["\']?[^"\'\s]+', re.I),
    re.compile(r"eyJ[a-zA-Z0-9_-]+\.[a-zA-Z0-9_-]+\.[a-zA-Z0-9_-]*"),  # compact JWS
]

CONTEXT_FIELDS = ("operation", "role_id", "template_id", "user_type")

_STANDARD_RECORD_KEYS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
) | {"message", "asctime", "taskName"}

ELLIPSIS = "…"


def safe_preview(value: Any, limit: int = 240) -> str:
    """Render ``value`` on one line, at most ``limit`` characters long.

    ``None`` renders as an empty string. Sets are sorted so permission sets
    log the same way every time; other containers are rendered as JSON.
    """
    if value is None:
        return ""
    if isinstance(value, (set, frozenset)):
        value = sorted(value, key=str)

    text = value if isinstance(value, str) else None
    if text is None and isinstance(value, (dict, list, tuple)):
        try:
            text = json.dumps(value, default=str, ensure_ascii=False)
        except (TypeError, ValueError):
            pass
    if text is None:
        text = str(value)

    text = " ".join(text.split())
    if len(text) <= limit:
        return text
    return text[: limit - len(ELLIPSIS)] + ELLIPSIS


def redact_secrets(text: str, replacement: str = "[REDACTED]") -> str:
    """Replace anything that looks like a credential with ``replacement``.

    Non-string input is returned unchanged.
    """
    if not isinstance(text, str):
        return text
    for pattern in SECRET_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


def safe_log_value(value: Any, limit: int = 240, redact: bool = True) -> str:
    """safe_preview() followed by redact_secrets()."""
    preview = safe_preview(value, limit=limit)
    return redact_secrets(preview) if redact else preview


class AuthzFormatter(logging.Formatter):
    """Render records as one JSON object per line, or as plain text.

    Context fields become top-level keys (JSON) or ``key=value`` pairs
    (plain). Any other ``extra`` attached to the record is included in JSON
    output through safe_log_value().
    """

    def __init__(self, json_format: bool = True, redact_secrets: bool = True, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.json_format = json_format
        self.redact = redact_secrets

    def _context(self, record: logging.LogRecord) -> dict[str, str]:
        return {
            key: str(getattr(record, key))
            for key in CONTEXT_FIELDS
            if getattr(record, key, None) is not None
        }

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        if self.redact:
            message = redact_secrets(message)
        timestamp = self.formatTime(record, self.datefmt)
        context = self._context(record)

        if not self.json_format:
            head = " ".join([f"[{timestamp}]", record.levelname, record.name, *(f"{k}={v}" for k, v in context.items())])
            text = f"{head} : {message}"
            if record.exc_info:
                text += "\n" + self.formatException(record.exc_info)
            return text

        payload: dict[str, Any] = {
            "timestamp": timestamp,
            "level": record.levelname,
            "logger": record.name,
            "message": message,
            **context,
        }
        payload.update(
            (key, safe_log_value(value, redact=self.redact))
            for key, value in vars(record).items()
            if key not in _STANDARD_RECORD_KEYS and key not in CONTEXT_FIELDS
        )
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str, ensure_ascii=False)


class AuthzLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that binds authorization context to every record.

    Usage:
        logger = get_authz_logger(__name__, operation="delete_global_role")
        logger.info("Deleting role", role_id="DOCTOR")
    """

    def __init__(self, logger: logging.Logger, **context: Any):
        super().__init__(logger, {})
        self.context = {k: v for k, v in context.items() if k in CONTEXT_FIELDS and v is not None}

    def bind(self, **context: Any) -> "AuthzLoggerAdapter":
        """Return a new adapter with additional context fields."""
        merged = {**self.context, **context}
        return AuthzLoggerAdapter(self.logger, **merged)

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        extra = dict(kwargs.get("extra") or {})
        for key in CONTEXT_FIELDS:
            value = kwargs.pop(key, self.context.get(key))
            if value is not None:
                extra[key] = value
        kwargs["extra"] = extra
        return msg, kwargs


def setup_logging(
    config: Optional[AuthzConfig] = None,
    json_format: Optional[bool] = None,
    redact_secrets: bool = True,
) -> None:
    """Install a single stderr handler on the root logger.

    The level comes from ``config.log_level`` and the output format from
    ``config.log_json`` unless ``json_format`` overrides it. Without a
    config the environment is read via load_config_from_env(). Calling this
    again replaces the previous handler.
    """
    if config is None:
        from .config import load_config_from_env
        config = load_config_from_env()

    level = getattr(logging, LogLevel(config.log_level).value, logging.INFO)
    use_json = config.log_json if json_format is None else json_format

    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(AuthzFormatter(json_format=use_json, redact_secrets=redact_secrets))

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level)
    logging.getLogger("authzcore").setLevel(level)


def get_authz_logger(name: str, **context: Any) -> AuthzLoggerAdapter:
    """Get a logger adapter with authorization context bound.

    Args:
        name: Logger name (typically __name__)
        **context: Any of ``operation``, ``role_id``, ``template_id``, ``user_type``

    Example:
        logger = get_authz_logger(__name__, operation="set_default_template")
        logger.info("Clearing previous default", template_id="12")
    """
    return AuthzLoggerAdapter(logging.getLogger(name), **context)


__all__ = [
    "safe_preview",
    "redact_secrets",
    "safe_log_value",
    "AuthzFormatter",
    "AuthzLoggerAdapter",
    "setup_logging",
    "get_authz_logger",
]
