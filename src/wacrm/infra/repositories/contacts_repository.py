"""Contacts repository - CRM contact identity by (company, phone).

Uses raw SQL with psycopg2 (no ORM).

Find-or-create strategy
───────────────────────
A single ``INSERT ... ON CONFLICT (company_id, phone_number) DO UPDATE``
both creates the contact and resolves concurrent deliveries for the same new
phone onto one row. Requires the unique index:

    CREATE UNIQUE INDEX chat_contacts_company_phone_key
        ON chat_contacts (company_id, phone_number);

On conflict only the name may change, and only when a non-empty name was
observed; profile picture and source tag keep their first values.
"""

from psycopg2.extensions import cursor as PgCursor

from wacrm.infra.db import fetchone


def upsert_contact(
    cur: PgCursor,
    *,
    company_id: str,
    phone: str,
    name: str,
    fallback_name: str,
    avatar_url: str | None,
    source_tag: str,
) -> tuple[str, bool]:
    """Resolve or create the contact for a phone within a company.

    Args:
        cur:           Database cursor (must be inside a transaction).
        company_id:    Tenant identifier.
        phone:         Canonical phone (digits only).
        name:          Observed display name, "" when none was observed.
        fallback_name: Name stored on creation when ``name`` is empty.
        avatar_url:    Profile picture URL, stored on creation only.
        source_tag:    Creation source (lead_source).

    Returns:
        Tuple of (contact_id, created).
    """
    row = fetchone(
        cur,
        """
        INSERT INTO chat_contacts (
            company_id, phone_number, name, profile_image_url,
            lead_source, created_at, updated_at
        )
        VALUES (%s, %s, %s, %s, %s, now(), now())
        ON CONFLICT (company_id, phone_number) DO UPDATE
        SET name       = CASE WHEN %s <> '' THEN EXCLUDED.name
                              ELSE chat_contacts.name END,
            updated_at = now()
        RETURNING id, (xmax = 0) AS created
        """,
        (
            company_id,
            phone,
            name or fallback_name,
            avatar_url,
            source_tag,
            name,
        ),
    )
    return (str(row[0]), bool(row[1]))
