"""Leads repository - names registered in the CRM lead list.

Read-only: leads are created and edited by the CRM. Soft-deleted leads
(``deleted_at`` set) are ignored.
"""

from psycopg2.extensions import cursor as PgCursor

from wacrm.infra.db import fetchone


def get_lead_name(cur: PgCursor, company_id: str, phone: str) -> str | None:
    """Name of the live lead registered for a phone within a company.

    Args:
        cur:        Database cursor.
        company_id: Tenant identifier.
        phone:      Canonical phone (digits only).

    Returns:
        The lead name, or None if no named live lead exists.
    """
    row = fetchone(
        cur,
        """
        SELECT name
        FROM leads
        WHERE company_id = %s
          AND phone = %s
          AND deleted_at IS NULL
          AND coalesce(name, '') <> ''
        LIMIT 1
        """,
        (company_id, phone),
    )
    if row is None:
        return None
    return row[0]
