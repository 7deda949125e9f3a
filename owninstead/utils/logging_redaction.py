"""
Logging redaction helpers.
Redacts bank/brokerage credentials and push tokens from log messages.
"""

from __future__ import annotations

import logging
import re
from typing import Iterable


_PATTERNS: Iterable[tuple[re.Pattern, str]] = (
    # Plaid access tokens: access-sandbox-<uuid>
    (re.compile(r"access-(sandbox|development|production)-[A-Za-z0-9\-]+"), "access-[REDACTED]"),
    # Expo push tokens
    (re.compile(r"Expo(nent)?PushToken\[[^\]]+\]"), "ExpoPushToken[REDACTED]"),
    # Authorization: Bearer <token>
    (re.compile(r"(Bearer\s+)([A-Za-z0-9\-\._]+)"), r"\1[REDACTED]"),
    # Generic secret key/value pairs
    (re.compile(r"(?i)(access_token|user_secret|secret|token)\s*[:=]\s*([A-Za-z0-9\-\._]+)"), r"\1=[REDACTED]"),
)


def redact_message(message: str) -> str:
    redacted = message
    for pattern, replacement in _PATTERNS:
        redacted = pattern.sub(replacement, redacted)
    return redacted


class RedactingFilter(logging.Filter):
    """Filter that redacts sensitive data from log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        try:
            message = record.getMessage()
        except (TypeError, ValueError):
            # Malformed format args; let the handler report it
            return True
        record.msg = redact_message(message)
        record.args = ()
        return True


def install_redaction_filter() -> None:
    root = logging.getLogger()
    for existing in root.filters:
        if isinstance(existing, RedactingFilter):
            return
    redacting = RedactingFilter()
    root.addFilter(redacting)
    # Root logger filters do not apply to records propagated from children
    for handler in root.handlers:
        if not any(isinstance(f, RedactingFilter) for f in handler.filters):
            handler.addFilter(redacting)
