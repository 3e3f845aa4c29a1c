"""Identity resolution - contact and conversation for a phone in a company.

Contact:      find-or-create by (company_id, phone); a non-empty observed
              name refreshes the stored one.
Conversation: find-or-create by (company_id, phone); every event advances
              last_message_at.

Both steps must survive two deliveries racing for the same new phone. The
gateway guarantees this (unique index + INSERT ... ON CONFLICT), so no lock
is held here.
"""

from dataclasses import dataclass
from datetime import datetime

from wacrm.config import DEFAULT_SOURCE_TAG
from wacrm.observability.logging import get_logger
from wacrm.observability.redaction import id_prefix, phone_tail, safe_log_context

from .ports import PersistenceGateway

logger = get_logger(__name__)

FALLBACK_NAME_PREFIX = "Contato"


def fallback_contact_name(phone: str) -> str:
    return f"{FALLBACK_NAME_PREFIX} {phone}"


@dataclass(frozen=True)
class ResolvedIdentity:
    contact_id: str
    conversation_id: str


class IdentityResolver:
    """Find-or-create the Contact and Conversation for an event."""

    def __init__(self, gateway: PersistenceGateway, *, source_tag: str = DEFAULT_SOURCE_TAG) -> None:
        self._gateway = gateway
        self._source_tag = source_tag

    def resolve(
        self,
        *,
        company_id: str,
        instance_id: str,
        phone: str,
        display_name: str,
        avatar_url: str | None,
        timestamp: datetime,
    ) -> ResolvedIdentity:
        """Resolve (contact_id, conversation_id), creating either as needed.

        Args:
            company_id: Tenant owning the instance.
            instance_id: Instance the event arrived on.
            phone: Canonical phone of the customer side.
            display_name: Observed name, "" when none was observed.
            avatar_url: Profile picture URL, stored on creation only.
            timestamp: Event time, used for last_message_at.

        Raises:
            PersistenceError: If the gateway fails.
        """
        contact_id = self._gateway.find_or_create_contact(
            company_id,
            phone,
            display_name,
            avatar_url or None,
            fallback_name=fallback_contact_name(phone),
            source_tag=self._source_tag,
        )
        conversation_id = self._gateway.find_or_create_conversation(
            company_id,
            phone,
            instance_id,
            timestamp,
        )

        logger.info(
            "identity resolved",
            extra={
                "extra_fields": safe_log_context(
                    company_id_prefix=id_prefix(company_id),
                    phone_tail=phone_tail(phone),
                    contact_id_prefix=id_prefix(contact_id),
                    conversation_id_prefix=id_prefix(conversation_id),
                )
            },
        )
        return ResolvedIdentity(contact_id=contact_id, conversation_id=conversation_id)
