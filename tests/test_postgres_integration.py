"""Postgres integration tests for the gateway (requires Postgres).

Creates the CRM tables if missing and removes only the rows it inserted.
"""

import os
import threading
import uuid

import pytest

from helpers import make_event
from wacrm.config import Settings
from wacrm.domain.ingestion import Outcome, WebhookIngestor
from wacrm.infra.db import txn
from wacrm.infra.gateway import PostgresGateway

DATABASE_URL = os.environ.get("DATABASE_URL")
CI = os.environ.get("CI")

if CI and not DATABASE_URL:
    raise RuntimeError(
        "Postgres integration tests require DATABASE_URL in CI (refusing to skip silently)."
    )

pytestmark = pytest.mark.skipif(
    not DATABASE_URL,
    reason="DATABASE_URL not set - skipping Postgres integration tests",
)

THREADS = 8

SCHEMA = """
CREATE TABLE IF NOT EXISTS companies (
    id   uuid PRIMARY KEY DEFAULT gen_random_uuid(),
    name text NOT NULL
);
CREATE TABLE IF NOT EXISTS whatsapp_life_instances (
    id                   uuid PRIMARY KEY DEFAULT gen_random_uuid(),
    company_id           uuid NOT NULL REFERENCES companies(id),
    provider_instance_id text NOT NULL,
    status               text NOT NULL
);
CREATE TABLE IF NOT EXISTS chat_contacts (
    id                uuid PRIMARY KEY DEFAULT gen_random_uuid(),
    company_id        uuid NOT NULL,
    phone_number      text NOT NULL,
    name              text,
    profile_image_url text,
    lead_source       text,
    created_at        timestamptz NOT NULL DEFAULT now(),
    updated_at        timestamptz NOT NULL DEFAULT now()
);
CREATE UNIQUE INDEX IF NOT EXISTS chat_contacts_company_phone_key
    ON chat_contacts (company_id, phone_number);
CREATE TABLE IF NOT EXISTS leads (
    id         uuid PRIMARY KEY DEFAULT gen_random_uuid(),
    company_id uuid NOT NULL,
    phone      text,
    name       text,
    deleted_at timestamptz
);
CREATE TABLE IF NOT EXISTS chat_conversations (
    id              uuid PRIMARY KEY DEFAULT gen_random_uuid(),
    company_id      uuid NOT NULL,
    contact_phone   text NOT NULL,
    instance_id     uuid,
    status          text NOT NULL,
    last_message_at timestamptz,
    created_at      timestamptz NOT NULL DEFAULT now(),
    updated_at      timestamptz NOT NULL DEFAULT now()
);
CREATE UNIQUE INDEX IF NOT EXISTS chat_conversations_company_phone_key
    ON chat_conversations (company_id, contact_phone);
CREATE TABLE IF NOT EXISTS chat_messages (
    id                uuid PRIMARY KEY DEFAULT gen_random_uuid(),
    conversation_id   uuid NOT NULL,
    company_id        uuid NOT NULL,
    instance_id       uuid,
    uazapi_message_id text NOT NULL,
    content           text,
    message_type      text,
    media_url         text,
    direction         text,
    status            text,
    sender_name       text,
    sender_phone      text,
    timestamp         timestamptz,
    created_at        timestamptz NOT NULL DEFAULT now()
);
CREATE UNIQUE INDEX IF NOT EXISTS chat_messages_uazapi_message_id_key
    ON chat_messages (uazapi_message_id);
"""


@pytest.fixture
def company():
    """Create a company with a connected instance; clean up its rows after."""
    instance_name = f"inst-{uuid.uuid4().hex[:12]}"
    with txn() as cur:
        cur.execute(SCHEMA)
        cur.execute("INSERT INTO companies (name) VALUES (%s) RETURNING id", ("Loja Teste",))
        company_id = str(cur.fetchone()[0])
        cur.execute(
            """
            INSERT INTO whatsapp_life_instances (company_id, provider_instance_id, status)
            VALUES (%s, %s, 'connected')
            """,
            (company_id, instance_name),
        )

    yield {"company_id": company_id, "instance_name": instance_name}

    with txn() as cur:
        cur.execute("DELETE FROM chat_messages WHERE company_id = %s", (company_id,))
        cur.execute("DELETE FROM chat_conversations WHERE company_id = %s", (company_id,))
        cur.execute("DELETE FROM chat_contacts WHERE company_id = %s", (company_id,))
        cur.execute("DELETE FROM leads WHERE company_id = %s", (company_id,))
        cur.execute("DELETE FROM whatsapp_life_instances WHERE company_id = %s", (company_id,))
        cur.execute("DELETE FROM companies WHERE id = %s", (company_id,))


@pytest.fixture
def pg_gateway():
    return PostgresGateway(os.environ["DATABASE_URL"], password=os.environ.get("DB_PASSWORD"))


def _count(table: str, company_id: str) -> int:
    with txn() as cur:
        cur.execute(f"SELECT count(*) FROM {table} WHERE company_id = %s", (company_id,))
        return cur.fetchone()[0]


def _run_concurrently(fn):
    barrier = threading.Barrier(THREADS)
    results = []
    errors = []
    lock = threading.Lock()

    def worker():
        barrier.wait()
        try:
            value = fn()
        except Exception as exc:  # noqa: BLE001
            with lock:
                errors.append(exc)
            return
        with lock:
            results.append(value)

    threads = [threading.Thread(target=worker) for _ in range(THREADS)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    return results


class TestPostgresIngestion:
    def test_first_and_second_delivery(self, company, pg_gateway):
        ingestor = WebhookIngestor(instances=pg_gateway, gateway=pg_gateway, settings=Settings())
        body = make_event({"id": f"MSG-{uuid.uuid4().hex}"}, instanceName=company["instance_name"])

        first = ingestor.ingest(body)
        second = ingestor.ingest(body)

        assert first.outcome == Outcome.SUCCESS
        assert second.outcome == Outcome.DUPLICATE
        assert second.message_id == first.message_id
        assert _count("chat_contacts", company["company_id"]) == 1
        assert _count("chat_conversations", company["company_id"]) == 1
        assert _count("chat_messages", company["company_id"]) == 1

    def test_unknown_instance(self, company, pg_gateway):
        assert pg_gateway.resolve_instance(f"missing-{uuid.uuid4().hex}") is None

    def test_live_lead_name_used(self, company, pg_gateway):
        phone = "5511988887777"
        with txn() as cur:
            cur.execute(
                """
                INSERT INTO leads (company_id, phone, name, deleted_at)
                VALUES (%s, %s, 'Lead Removido', now()), (%s, %s, 'Maria Silva', NULL)
                """,
                (company["company_id"], phone, company["company_id"], phone),
            )

        assert pg_gateway.find_lead_name(company["company_id"], phone) == "Maria Silva"
        assert pg_gateway.find_lead_name(company["company_id"], "5511900000000") is None


class TestConcurrentDeliveries:
    def test_contact_created_once(self, company, pg_gateway):
        phone = "5511988887777"

        ids = _run_concurrently(
            lambda: pg_gateway.find_or_create_contact(
                company["company_id"],
                phone,
                "",
                None,
                fallback_name=f"Contato {phone}",
                source_tag="whatsapp_webhook",
            )
        )

        assert len(set(ids)) == 1
        assert _count("chat_contacts", company["company_id"]) == 1

    def test_same_message_persisted_once(self, company, pg_gateway):
        ingestor = WebhookIngestor(instances=pg_gateway, gateway=pg_gateway, settings=Settings())
        body = make_event({"id": f"MSG-{uuid.uuid4().hex}"}, instanceName=company["instance_name"])

        results = _run_concurrently(lambda: ingestor.ingest(body))

        assert {result.outcome for result in results} <= {Outcome.SUCCESS, Outcome.DUPLICATE}
        assert sum(result.outcome == Outcome.SUCCESS for result in results) == 1
        assert len({result.message_id for result in results}) == 1
        assert _count("chat_messages", company["company_id"]) == 1
        assert _count("chat_conversations", company["company_id"]) == 1
