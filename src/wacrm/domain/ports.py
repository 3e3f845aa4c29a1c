"""Collaborator contracts for the ingestion pipeline.

The orchestrator only talks to these protocols. ``wacrm.infra.gateway``
implements the lookup and persistence side with Postgres and
``wacrm.infra.media_store`` the media side over HTTP.

Implementations raise ``PersistenceError`` / ``MediaFetchError`` from
``wacrm.domain.errors``, never driver-specific exceptions.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from wacrm.whatsapp.media import MediaResolution
from wacrm.whatsapp.models import Direction


@dataclass(frozen=True)
class InstanceRecord:
    """A connected messaging line and its owning company."""

    instance_id: str
    company_id: str
    company_name: str


@dataclass(frozen=True)
class MessageRecord:
    """A persisted message, as needed for duplicate detection."""

    message_id: str
    provider_message_id: str
    conversation_id: str
    company_id: str


@dataclass(frozen=True)
class NewMessage:
    """Fields of a message row about to be inserted."""

    provider_message_id: str
    conversation_id: str
    company_id: str
    instance_id: str
    content: str
    message_type: str
    direction: Direction
    sender_name: str
    sender_phone: str
    media_url: str | None
    timestamp: datetime
    status: str


class InstanceLookup(Protocol):
    def resolve_instance(self, instance_name: str) -> InstanceRecord | None:
        """Connected instance for a provider instance name, or None."""
        ...


class PersistenceGateway(Protocol):
    def find_lead_name(self, company_id: str, phone: str) -> str | None:
        """Name of the live CRM lead for (company_id, phone), or None."""
        ...

    def find_or_create_contact(
        self,
        company_id: str,
        phone: str,
        name: str,
        avatar_url: str | None,
        *,
        fallback_name: str,
        source_tag: str,
    ) -> str:
        """Atomic find-or-create keyed by (company_id, phone).

        A non-empty ``name`` refreshes an existing contact; a new contact
        is stored with ``name`` or ``fallback_name``.
        """
        ...

    def find_or_create_conversation(
        self,
        company_id: str,
        phone: str,
        instance_id: str,
        last_message_at: datetime,
    ) -> str:
        """Atomic find-or-create keyed by (company_id, phone)."""
        ...

    def find_message_by_provider_id(self, provider_message_id: str) -> MessageRecord | None:
        ...

    def insert_message(self, message: NewMessage) -> tuple[str, bool]:
        """Insert-or-return by provider message id.

        Returns:
            (message_id, created). ``created`` is False when a row with the
            same provider id already existed.
        """
        ...


class MediaStore(Protocol):
    def persist_media(
        self,
        company_id: str,
        message_id: str,
        source_url: str,
        media: MediaResolution,
    ) -> str:
        """Fetch ``source_url`` and store it durably. Returns the stored URL."""
        ...
