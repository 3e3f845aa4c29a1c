"""Conversations repository - one conversation per (company, contact phone).

Requires the unique index:

    CREATE UNIQUE INDEX chat_conversations_company_phone_key
        ON chat_conversations (company_id, contact_phone);
"""

from datetime import datetime

from psycopg2.extensions import cursor as PgCursor

from wacrm.infra.db import fetchone
from wacrm.infra.time import ensure_utc

ACTIVE_STATUS = "active"


def upsert_conversation(
    cur: PgCursor,
    *,
    company_id: str,
    phone: str,
    instance_id: str,
    last_message_at: datetime,
) -> tuple[str, bool]:
    """Resolve or create the conversation and advance its activity time.

    New conversations start ``active`` and linked to ``instance_id``.
    Existing ones keep their status and instance; ``last_message_at`` only
    moves forward, so a late redelivery cannot rewind it.

    Returns:
        Tuple of (conversation_id, created).
    """
    row = fetchone(
        cur,
        """
        INSERT INTO chat_conversations (
            company_id, contact_phone, instance_id, status,
            last_message_at, created_at, updated_at
        )
        VALUES (%s, %s, %s, %s, %s, now(), now())
        ON CONFLICT (company_id, contact_phone) DO UPDATE
        SET last_message_at = GREATEST(chat_conversations.last_message_at,
                                       EXCLUDED.last_message_at),
            updated_at      = now()
        RETURNING id, (xmax = 0) AS created
        """,
        (company_id, phone, instance_id, ACTIVE_STATUS, ensure_utc(last_message_at)),
    )
    return (str(row[0]), bool(row[1]))
