"""Messages repository - exactly one row per provider message id.

Requires the unique index:

    CREATE UNIQUE INDEX chat_messages_uazapi_message_id_key
        ON chat_messages (uazapi_message_id);
"""

from psycopg2.extensions import cursor as PgCursor

from wacrm.domain.errors import PersistenceError
from wacrm.domain.ports import MessageRecord, NewMessage
from wacrm.infra.db import fetchone
from wacrm.infra.time import ensure_utc


def get_by_provider_id(cur: PgCursor, provider_message_id: str) -> MessageRecord | None:
    """Fetch the message recorded for a provider message id, if any."""
    row = fetchone(
        cur,
        """
        SELECT id, uazapi_message_id, conversation_id, company_id
        FROM chat_messages
        WHERE uazapi_message_id = %s
        """,
        (provider_message_id,),
    )
    if row is None:
        return None
    return MessageRecord(
        message_id=str(row[0]),
        provider_message_id=row[1],
        conversation_id=str(row[2]),
        company_id=str(row[3]),
    )


def insert_message(cur: PgCursor, message: NewMessage) -> tuple[str, bool]:
    """Insert a message unless its provider id is already recorded.

    Returns:
        Tuple of (message_id, created). On conflict the existing row's id is
        returned with created=False.
    """
    row = fetchone(
        cur,
        """
        INSERT INTO chat_messages (
            conversation_id, company_id, instance_id, uazapi_message_id,
            content, message_type, media_url, direction, status,
            sender_name, sender_phone, timestamp, created_at
        )
        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, now())
        ON CONFLICT (uazapi_message_id) DO NOTHING
        RETURNING id
        """,
        (
            message.conversation_id,
            message.company_id,
            message.instance_id,
            message.provider_message_id,
            message.content,
            message.message_type,
            message.media_url,
            message.direction,
            message.status,
            message.sender_name,
            message.sender_phone,
            ensure_utc(message.timestamp),
        ),
    )
    if row is not None:
        return (str(row[0]), True)

    existing = get_by_provider_id(cur, message.provider_message_id)
    if existing is None:
        # Conflict row vanished between statements (deleted concurrently)
        raise PersistenceError("message conflict without existing row")
    return (existing.message_id, False)
