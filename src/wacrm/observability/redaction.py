"""Redaction helpers for safe logging. All provider data must pass through these.

Webhook payloads carry customer phone numbers, WhatsApp JIDs, display names,
message text and signed media URLs. None of those may reach the logs in
clear; callers log identifiers through ``safe_log_context`` and phones only
through ``phone_tail``.
"""

import re
from typing import Any

_JID_PATTERN = re.compile(r"[\w.+-]+@(?:s\.whatsapp\.net|c\.us|g\.us|lid|broadcast)\b")
_URL_PATTERN = re.compile(r"https?://\S+")
_PHONE_PATTERN = re.compile(r"\+?\d[\d\s\-()]{8,}\d")
_EMAIL_PATTERN = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")

_REDACTED = "[REDACTED]"


def redact_string(value: str) -> str:
    """Redact JIDs, URLs, phones and e-mails from a string."""
    result = _JID_PATTERN.sub(_REDACTED, value)
    result = _URL_PATTERN.sub(_REDACTED, result)
    result = _PHONE_PATTERN.sub(_REDACTED, result)
    result = _EMAIL_PATTERN.sub(_REDACTED, result)
    return result


def redact_value(value: Any) -> str:
    """Redact any value for safe logging. Returns string representation."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        return redact_string(value)
    if isinstance(value, dict):
        # Structure only, never values
        return f"dict(keys={sorted(str(k) for k in value.keys())})"
    if isinstance(value, (list, tuple)):
        return f"list(len={len(value)})"
    if hasattr(value, "value") and isinstance(getattr(value, "value"), str):
        # Enums
        return redact_string(value.value)
    return f"<{type(value).__name__}>"


def phone_tail(phone: str | None, keep: int = 4) -> str:
    """Mask a canonical phone, keeping only its last digits."""
    if not phone:
        return "null"
    if len(phone) <= keep:
        return "*" * len(phone)
    return "*" * (len(phone) - keep) + phone[-keep:]


def id_prefix(value: str | None, size: int = 8) -> str:
    """Shorten a provider/database identifier for logs."""
    if not value:
        return "null"
    return value[:size]


def safe_log_context(**kwargs: Any) -> dict[str, str]:
    """Build a context dict safe for logging. All values are redacted."""
    return {k: redact_value(v) for k, v in kwargs.items()}
