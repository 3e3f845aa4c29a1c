"""Instances repository - provider instance to company lookup.

Uses raw SQL with psycopg2 (no ORM). Instances are created by the
instance-management flow; ingestion only reads them.
"""

from psycopg2.extensions import cursor as PgCursor

from wacrm.domain.ports import InstanceRecord
from wacrm.infra.db import fetchone

CONNECTED_STATUS = "connected"


def get_connected_instance(cur: PgCursor, instance_name: str) -> InstanceRecord | None:
    """Resolve a provider instance name to its instance and company.

    Args:
        cur:           Database cursor.
        instance_name: Provider-side instance name (``instanceName``).

    Returns:
        InstanceRecord, or None if unknown or not connected.
    """
    row = fetchone(
        cur,
        """
        SELECT i.id, i.company_id, c.name
        FROM whatsapp_life_instances i
        JOIN companies c ON c.id = i.company_id
        WHERE i.provider_instance_id = %s
          AND i.status = %s
        LIMIT 1
        """,
        (instance_name, CONNECTED_STATUS),
    )
    if row is None:
        return None
    return InstanceRecord(
        instance_id=str(row[0]),
        company_id=str(row[1]),
        company_name=row[2] or "",
    )
