"""Shared test helpers for the ingestion tests.

This module contains payload builders and in-memory collaborators that can
be imported by both conftest.py and individual test files. These are NOT
fixtures - they are regular functions and classes.
"""

from __future__ import annotations

import copy
import threading
import uuid
from datetime import datetime
from typing import Any

from wacrm.domain.errors import MediaFetchError, PersistenceError
from wacrm.domain.ports import InstanceRecord, MessageRecord, NewMessage
from wacrm.whatsapp.media import MediaResolution

INSTANCE_NAME = "inst-1"
COMPANY_ID = "company-0001"
INSTANCE_ID = "instance-0001"
CUSTOMER_PHONE = "5511988887777"
BUSINESS_PHONE = "5511900001111"


def make_event(message: dict[str, Any] | None = None, **envelope: Any) -> dict[str, Any]:
    """Direct-shape UAZAPI event; the MSG1 text message by default."""
    body: dict[str, Any] = {
        "message": {
            "id": "MSG1",
            "sender": f"{CUSTOMER_PHONE}@s.whatsapp.net",
            "fromMe": False,
            "messageType": "conversation",
            "text": "Olá",
        },
        "instanceName": INSTANCE_NAME,
    }
    if message:
        body["message"].update(message)
    body.update(envelope)
    return body


def make_outbound_event(message: dict[str, Any] | None = None, **envelope: Any) -> dict[str, Any]:
    """Message typed on the business phone, addressed to the customer chat."""
    base = {
        "id": "OUT1",
        "sender": f"{BUSINESS_PHONE}@s.whatsapp.net",
        "chatid": f"{CUSTOMER_PHONE}@s.whatsapp.net",
        "fromMe": True,
        "wasSentByApi": False,
        "deviceSent": True,
        "senderName": "Atendente",
        "text": "Bom dia!",
    }
    if message:
        base.update(message)
    return make_event(base, **envelope)


def make_image_event(**message: Any) -> dict[str, Any]:
    base = {
        "id": "IMG1",
        "messageType": "imageMessage",
        "text": "",
        "media": {"url": "https://mmg.whatsapp.net/d/f/abc.enc"},
    }
    base.update(message)
    return make_event(base)


def wrap_nested(event: dict[str, Any]) -> dict[str, Any]:
    return {"body": copy.deepcopy(event)}


def wrap_batched(event: dict[str, Any]) -> list[dict[str, Any]]:
    return [{"body": copy.deepcopy(event), "headers": {"content-type": "application/json"}}]


class FakeGateway:
    """In-memory InstanceLookup + PersistenceGateway with unique-key semantics."""

    def __init__(self, instances: dict[str, InstanceRecord] | None = None) -> None:
        if instances is None:
            instances = {
                INSTANCE_NAME: InstanceRecord(
                    instance_id=INSTANCE_ID,
                    company_id=COMPANY_ID,
                    company_name="Loja Teste",
                )
            }
        self.instances = instances
        self.contacts: dict[tuple[str, str], dict[str, Any]] = {}
        self.conversations: dict[tuple[str, str], dict[str, Any]] = {}
        self.messages: dict[str, dict[str, Any]] = {}
        self.leads: dict[tuple[str, str], str] = {}
        self.fail_on: set[str] = set()
        self._lock = threading.Lock()

    def _check(self, operation: str) -> None:
        if operation in self.fail_on:
            raise PersistenceError(f"{operation} failed")

    def resolve_instance(self, instance_name: str) -> InstanceRecord | None:
        self._check("resolve_instance")
        return self.instances.get(instance_name)

    def find_lead_name(self, company_id: str, phone: str) -> str | None:
        self._check("find_lead_name")
        return self.leads.get((company_id, phone))

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
        self._check("find_or_create_contact")
        with self._lock:
            key = (company_id, phone)
            row = self.contacts.get(key)
            if row is None:
                row = {
                    "id": str(uuid.uuid4()),
                    "name": name or fallback_name,
                    "profile_image_url": avatar_url,
                    "lead_source": source_tag,
                }
                self.contacts[key] = row
            elif name:
                row["name"] = name
            return row["id"]

    def find_or_create_conversation(
        self,
        company_id: str,
        phone: str,
        instance_id: str,
        last_message_at: datetime,
    ) -> str:
        self._check("find_or_create_conversation")
        with self._lock:
            key = (company_id, phone)
            row = self.conversations.get(key)
            if row is None:
                row = {
                    "id": str(uuid.uuid4()),
                    "instance_id": instance_id,
                    "status": "active",
                    "last_message_at": last_message_at,
                }
                self.conversations[key] = row
            else:
                row["last_message_at"] = max(row["last_message_at"], last_message_at)
            return row["id"]

    def find_message_by_provider_id(self, provider_message_id: str) -> MessageRecord | None:
        self._check("find_message_by_provider_id")
        row = self.messages.get(provider_message_id)
        if row is None:
            return None
        return MessageRecord(
            message_id=row["id"],
            provider_message_id=provider_message_id,
            conversation_id=row["message"].conversation_id,
            company_id=row["message"].company_id,
        )

    def insert_message(self, message: NewMessage) -> tuple[str, bool]:
        self._check("insert_message")
        with self._lock:
            existing = self.messages.get(message.provider_message_id)
            if existing is not None:
                return existing["id"], False
            message_id = str(uuid.uuid4())
            self.messages[message.provider_message_id] = {"id": message_id, "message": message}
            return message_id, True

    def stored_message(self, provider_message_id: str) -> NewMessage:
        return self.messages[provider_message_id]["message"]


class FakeMediaStore:
    """Records persist_media calls and returns a deterministic URL."""

    def __init__(self, error: Exception | None = None) -> None:
        self.calls: list[tuple[str, str, str, MediaResolution]] = []
        self.error = error

    def persist_media(
        self,
        company_id: str,
        message_id: str,
        source_url: str,
        media: MediaResolution,
    ) -> str:
        self.calls.append((company_id, message_id, source_url, media))
        if self.error is not None:
            raise self.error
        return f"https://media.example.test/{company_id}/whatsapp/{message_id}"


def failing_media_store(message: str = "media download failed") -> FakeMediaStore:
    return FakeMediaStore(error=MediaFetchError(message))
