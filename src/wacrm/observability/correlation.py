"""Correlation ID management for webhook tracing."""

import uuid
from contextvars import ContextVar, Token

# Context variable for correlation ID - accessible across async calls and
# copied into the threadpool that runs the ingestion pipeline
correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")

CORRELATION_ID_HEADER = "X-Correlation-ID"


def generate_correlation_id() -> str:
    """Generate a new correlation ID."""
    return uuid.uuid4().hex


def get_correlation_id() -> str:
    """Get current correlation ID from context."""
    return correlation_id_var.get()


def set_correlation_id(cid: str) -> Token[str]:
    """Set correlation ID in context."""
    return correlation_id_var.set(cid)


def reset_correlation_id(token: Token[str]) -> None:
    """Reset correlation ID to previous value."""
    correlation_id_var.reset(token)


def resolve_correlation_id(header_value: str | None) -> str:
    """Reuse an upstream correlation ID when it looks sane, else mint one.

    Provider retries arrive without our header, so most webhook calls get a
    fresh ID; proxies in front of the app may forward their own.
    """
    if header_value:
        candidate = header_value.strip()
        if 0 < len(candidate) <= 128 and candidate.isprintable():
            return candidate
    return generate_correlation_id()
