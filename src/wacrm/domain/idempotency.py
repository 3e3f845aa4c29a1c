"""Idempotency guard for provider redeliveries.

UAZAPI delivers at least once and retries on timeouts, so the same
provider message id can arrive several times, sometimes concurrently. The
guard runs after identity resolution (whose side effects are idempotent on
their own) and before the message insert. The insert itself is
``ON CONFLICT DO NOTHING``, which covers a retry racing the first attempt
past this check.
"""

from wacrm.observability.logging import get_logger
from wacrm.observability.redaction import id_prefix, safe_log_context

from .ports import MessageRecord, PersistenceGateway

logger = get_logger(__name__)


class IdempotencyGuard:
    def __init__(self, gateway: PersistenceGateway) -> None:
        self._gateway = gateway

    def existing_message(self, provider_message_id: str) -> MessageRecord | None:
        """Return the already-recorded message for this provider id, if any."""
        existing = self._gateway.find_message_by_provider_id(provider_message_id)
        if existing is not None:
            logger.info(
                "duplicate message ignored",
                extra={
                    "extra_fields": safe_log_context(
                        message_id_prefix=id_prefix(provider_message_id),
                        existing_id_prefix=id_prefix(existing.message_id),
                    )
                },
            )
        return existing
