"""Postgres persistence gateway for the ingestion pipeline.

Implements ``InstanceLookup`` and ``PersistenceGateway`` over the
repositories. Each operation runs in its own short transaction, so no lock
outlives a single statement group and concurrent deliveries only ever
serialize on the unique indexes.
"""

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime
from typing import TypeVar

import psycopg2
from psycopg2.extensions import cursor as PgCursor

from wacrm.domain.errors import PersistenceError
from wacrm.domain.ports import InstanceRecord, MessageRecord, NewMessage
from wacrm.observability.logging import get_logger
from wacrm.observability.redaction import safe_log_context

from .db import txn
from .repositories import (
    contacts_repository,
    conversations_repository,
    instances_repository,
    leads_repository,
    messages_repository,
)

logger = get_logger(__name__)

T = TypeVar("T")


class PostgresGateway:
    """psycopg2-backed instance lookup and persistence.

    Args:
        dsn: libpq DSN or postgres:// URL.
        password: Applied when the DSN carries no password.
    """

    def __init__(self, dsn: str, password: str | None = None) -> None:
        self._dsn = dsn
        self._password = password

    @contextmanager
    def _cursor(self, operation: str) -> Iterator[PgCursor]:
        if not self._dsn:
            raise PersistenceError("database not configured")
        try:
            with txn(dsn=self._dsn, password=self._password) as cur:
                yield cur
        except psycopg2.Error as exc:
            logger.error(
                "database operation failed",
                extra={
                    "extra_fields": safe_log_context(
                        operation=operation,
                        pgcode=exc.pgcode,
                        error_type=type(exc).__name__,
                    )
                },
            )
            raise PersistenceError(f"{operation} failed") from exc

    def _run(self, operation: str, fn: Callable[[PgCursor], T]) -> T:
        with self._cursor(operation) as cur:
            return fn(cur)

    def resolve_instance(self, instance_name: str) -> InstanceRecord | None:
        return self._run(
            "resolve_instance",
            lambda cur: instances_repository.get_connected_instance(cur, instance_name),
        )

    def find_lead_name(self, company_id: str, phone: str) -> str | None:
        return self._run(
            "find_lead_name",
            lambda cur: leads_repository.get_lead_name(cur, company_id, phone),
        )

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
        contact_id, _created = self._run(
            "find_or_create_contact",
            lambda cur: contacts_repository.upsert_contact(
                cur,
                company_id=company_id,
                phone=phone,
                name=name,
                fallback_name=fallback_name,
                avatar_url=avatar_url,
                source_tag=source_tag,
            ),
        )
        return contact_id

    def find_or_create_conversation(
        self,
        company_id: str,
        phone: str,
        instance_id: str,
        last_message_at: datetime,
    ) -> str:
        conversation_id, _created = self._run(
            "find_or_create_conversation",
            lambda cur: conversations_repository.upsert_conversation(
                cur,
                company_id=company_id,
                phone=phone,
                instance_id=instance_id,
                last_message_at=last_message_at,
            ),
        )
        return conversation_id

    def find_message_by_provider_id(self, provider_message_id: str) -> MessageRecord | None:
        return self._run(
            "find_message_by_provider_id",
            lambda cur: messages_repository.get_by_provider_id(cur, provider_message_id),
        )

    def insert_message(self, message: NewMessage) -> tuple[str, bool]:
        return self._run(
            "insert_message",
            lambda cur: messages_repository.insert_message(cur, message),
        )
